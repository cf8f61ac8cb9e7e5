import logging

from web3 import Web3

from .addresses import is_valid_address
from .classifier import is_suspicious_input, to_hex
from .types import TraceStep, TraceType


class TraceAnalyzer:
    """Classify internal call steps by account kind and selector."""

    def __init__(self, ledger):
        self.ledger = ledger

    def _is_contract(self, address) -> bool:
        if not is_valid_address(address):
            logging.warning(f"Trace address {address!r} is not a valid account, treating as EOA")
            return False
        return self.ledger.is_contract(address)

    def analyze(self, steps: list[dict], related_contracts: set[str]) -> list[TraceStep]:
        analyzed = []
        for step in steps:
            from_addr, to_addr = step.get("from"), step.get("to")
            from_contract = self._is_contract(from_addr)
            to_contract = self._is_contract(to_addr)

            if from_contract:
                related_contracts.add(Web3.to_checksum_address(from_addr))
            if to_contract:
                related_contracts.add(Web3.to_checksum_address(to_addr))

            analyzed.append(TraceStep(
                from_address=from_addr,
                to_address=to_addr,
                value=step.get("value"),
                input=to_hex(step.get("input")) or None,
                type=TraceType.between(from_contract, to_contract),
                suspicious=is_suspicious_input(step.get("input")),
                call_type=step.get("type") or None,
            ))

        suspicious = sum(1 for s in analyzed if s.suspicious)
        logging.info(f"Analyzed {len(analyzed)} internal calls ({suspicious} suspicious)")
        return analyzed
