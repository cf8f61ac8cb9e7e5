"""Four-phase incident analysis with a checkpoint after every phase."""

import datetime
import logging
from typing import Optional

from web3 import Web3

from .classifier import classify_transaction, decode_logs, is_proxy_bytecode
from .crawler import InteractionGraphCrawler, transaction_history
from .history import DEFAULT_STRIDE, ImplementationHistorySampler
from .state import StateInspector
from .traces import TraceAnalyzer
from .types import Report, StateChanges

PHASE_LABELS = ("step1", "step2", "step3", "final")
ERROR_LABEL = "error"


def _transaction_details(tx) -> dict:
    details = dict(tx)
    details["value"] = str(Web3.from_wei(int(tx["value"]), "ether"))
    details["blockNumber"] = int(tx["blockNumber"])
    details["gas"] = int(tx["gas"])
    if tx.get("gasPrice") is not None:
        details["gasPrice"] = str(Web3.from_wei(int(tx["gasPrice"]), "gwei"))
    return details


def _receipt_details(receipt) -> dict:
    details = dict(receipt)
    details["blockNumber"] = int(receipt["blockNumber"])
    details["gasUsed"] = int(receipt["gasUsed"])
    return details


class ForensicsAnalyzer:
    """
    Reconstructs one incident from a seed transaction.

    Phases run strictly in order: seed transaction, victim contract history,
    interaction crawl from the suspect, implementation history. The partial
    report is checkpointed after each phase; on failure it is checkpointed
    under the error label and the exception is re-raised.
    """

    def __init__(self, ledger, explorer, trace_provider, checkpoints,
                 history_stride: int = DEFAULT_STRIDE):
        self.ledger = ledger
        self.explorer = explorer
        self.trace_provider = trace_provider
        self.checkpoints = checkpoints
        self.inspector = StateInspector(ledger)
        self.trace_analyzer = TraceAnalyzer(ledger)
        # Built up front so a bad stride fails before any phase runs
        self.sampler = ImplementationHistorySampler(ledger, self.inspector, stride=history_stride)
        self.report: Optional[Report] = None

    def _phases(self):
        return [
            ("step1", "🔍 Analyzing hack transaction", lambda: self.analyze_hack_transaction(self.report.hack_transaction)),
            ("step2", "📄 Analyzing victim contract", lambda: self.analyze_victim_contract(self.report.victim_contract)),
            ("step3", "🕸️  Tracing contract interactions", lambda: self.trace_contract_calls(self.report.suspect_address)),
            ("final", "📚 Analyzing implementation history", self.analyze_implementation_history),
        ]

    def _restore(self, hack_tx: str) -> int:
        """Load the newest completed phase checkpoint; returns the index of the next phase"""
        for index in range(len(PHASE_LABELS) - 1, -1, -1):
            label = f"{hack_tx}_{PHASE_LABELS[index]}"
            if self.checkpoints.exists(label):
                self.report = self.checkpoints.load(label)
                logging.info(f"Resuming from checkpoint {label}")
                return index + 1
        return 0

    def run(self, hack_tx: str, victim_contract: str, suspect_address: str, resume: bool = False) -> Report:
        first_phase = self._restore(hack_tx) if resume else 0
        if first_phase == 0:
            self.report = Report(
                hack_transaction=hack_tx,
                victim_contract=victim_contract,
                suspect_address=suspect_address,
                start_time=datetime.datetime.now(datetime.timezone.utc).isoformat(),
            )

        try:
            for label, title, phase in self._phases()[first_phase:]:
                logging.info(f"\n{title}...")
                phase()
                self.checkpoints.save(f"{hack_tx}_{label}", self.report)
        except Exception as e:
            logging.error(f"Analysis failed: {e}")
            self.checkpoints.save(f"{hack_tx}_{ERROR_LABEL}", self.report, error=e)
            raise

        return self.report

    def analyze_hack_transaction(self, tx_hash: str):
        tx = self.ledger.get_transaction(tx_hash)
        receipt = self.ledger.get_transaction_receipt(tx_hash)
        logs = decode_logs(receipt.get("logs"))
        steps = self.trace_provider.get_internal_calls(tx_hash)
        traces = self.trace_analyzer.analyze(steps, self.report.related_contracts)
        block_number = int(receipt["blockNumber"])

        victim = self.report.victim_contract
        changes = StateChanges(
            before=self.inspector.state_at(victim, block_number - 1),
            after=self.inspector.state_at(victim, block_number),
        )
        if changes.implementation_changed:
            logging.warning(f"⚠️  Implementation changed: {changes.before.implementation} -> {changes.after.implementation}")
        if changes.admin_changed:
            logging.warning(f"⚠️  Admin changed: {changes.before.admin} -> {changes.after.admin}")

        self.report.state_changes = changes
        self.report.hack_details = {
            "transaction": _transaction_details(tx),
            "receipt": _receipt_details(receipt),
            "logs": logs,
            "traces": traces,
        }

    def analyze_victim_contract(self, address: str):
        code = self.ledger.get_code(address)
        analyzed = [classify_transaction(tx) for tx in transaction_history(self.explorer, address)]
        suspicious = [tx for tx in analyzed if tx.suspicious]
        logging.info(f"Victim history: {len(analyzed)} transactions, {len(suspicious)} suspicious")

        self.report.victim_analysis = {
            "isProxy": is_proxy_bytecode(code),
            "codeHash": "0x" + bytes(Web3.keccak(code)).hex(),
            "transactions": [tx.to_dict() for tx in suspicious],
        }

    def trace_contract_calls(self, start_address: str):
        crawler = InteractionGraphCrawler(self.explorer, self.ledger, self.report)
        return crawler.crawl(start_address)

    def analyze_implementation_history(self):
        self.report.implementation_history = self.sampler.sample(self.report.victim_contract)
