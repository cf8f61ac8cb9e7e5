"""Type definitions for the forensics engine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class StorageSlot(Enum):
    """EIP-1967 proxy storage slots."""
    IMPLEMENTATION = "0x360894a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca505d382bbc"
    ADMIN = "0xb53127684a568b3173ae13b9f8a6016e243e63b6e8ee1178d6a717850b5d6103"
    BEACON = "0xa3f0ad74e5423aebfd80d3ef4346578335a9a72aeaee59ff6cb3582b35133d50"

    @property
    def position(self) -> int:
        return int(self.value, 16)


class TraceType(str, Enum):
    CONTRACT_TO_CONTRACT = "contract-to-contract"
    CONTRACT_TO_EOA = "contract-to-eoa"
    EOA_TO_CONTRACT = "eoa-to-contract"
    EOA_TO_EOA = "eoa-to-eoa"

    @classmethod
    def between(cls, from_contract: bool, to_contract: bool) -> "TraceType":
        if from_contract:
            return cls.CONTRACT_TO_CONTRACT if to_contract else cls.CONTRACT_TO_EOA
        return cls.EOA_TO_CONTRACT if to_contract else cls.EOA_TO_EOA


@dataclass(frozen=True)
class ContractState:
    """Proxy state snapshot at one block height."""
    implementation: str
    admin: str

    def to_dict(self) -> dict:
        return {"implementation": self.implementation, "admin": self.admin}

    @classmethod
    def from_dict(cls, data: dict) -> "ContractState":
        return cls(implementation=data["implementation"], admin=data["admin"])


@dataclass(frozen=True)
class StateChanges:
    """Victim state immediately before and after the seed transaction."""
    before: ContractState
    after: ContractState

    @property
    def implementation_changed(self) -> bool:
        return self.before.implementation != self.after.implementation

    @property
    def admin_changed(self) -> bool:
        return self.before.admin != self.after.admin

    def to_dict(self) -> dict:
        return {
            "before": self.before.to_dict(),
            "after": self.after.to_dict(),
            "implementationChanged": self.implementation_changed,
            "adminChanged": self.admin_changed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StateChanges":
        return cls(
            before=ContractState.from_dict(data["before"]),
            after=ContractState.from_dict(data["after"]),
        )


@dataclass
class DecodedInput:
    """Method name and decoded parameters of call input."""
    method: str
    params: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"method": self.method, "params": dict(self.params)}


UNKNOWN_INPUT = "unknown"


@dataclass
class Classification:
    decoded_input: Optional[DecodedInput]
    suspicious: bool
    reasons: list[str]


@dataclass
class AnalyzedTransaction:
    """A ledger transaction with its classification."""
    hash: str
    from_address: Optional[str]
    to_address: Optional[str]
    value: Optional[str]
    input: Optional[str]
    block_number: Optional[int]
    timestamp: Optional[str]  # ISO-8601, UTC
    decoded_input: Optional[DecodedInput] = None
    suspicious: bool = False
    reasons: list[str] = field(default_factory=list)

    @property
    def method(self) -> str:
        return self.decoded_input.method if self.decoded_input else UNKNOWN_INPUT

    def to_dict(self) -> dict:
        return {
            "hash": self.hash,
            "from": self.from_address,
            "to": self.to_address,
            "value": self.value,
            "input": self.input,
            "blockNumber": self.block_number,
            "timestamp": self.timestamp,
            "decodedInput": self.decoded_input.to_dict() if self.decoded_input else None,
            "suspicious": self.suspicious,
            "reason": list(self.reasons),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AnalyzedTransaction":
        decoded = data.get("decodedInput")
        return cls(
            hash=data["hash"],
            from_address=data.get("from"),
            to_address=data.get("to"),
            value=data.get("value"),
            input=data.get("input"),
            block_number=data.get("blockNumber"),
            timestamp=data.get("timestamp"),
            decoded_input=DecodedInput(decoded["method"], decoded.get("params", {})) if decoded else None,
            suspicious=data.get("suspicious", False),
            reasons=list(data.get("reason", [])),
        )


@dataclass
class TraceStep:
    """One internal call inside a transaction."""
    from_address: Optional[str]
    to_address: Optional[str]
    value: Optional[str]
    input: Optional[str]
    type: TraceType
    suspicious: bool = False
    call_type: Optional[str] = None  # call, delegatecall, staticcall...

    def to_dict(self) -> dict:
        return {
            "from": self.from_address,
            "to": self.to_address,
            "value": self.value,
            "input": self.input,
            "type": self.type.value,
            "callType": self.call_type,
            "suspicious": self.suspicious,
        }


@dataclass(frozen=True)
class ImplementationSighting:
    block_number: int
    implementation: str

    def to_dict(self) -> dict:
        return {"blockNumber": self.block_number, "implementation": self.implementation}

    @classmethod
    def from_dict(cls, data: dict) -> "ImplementationSighting":
        return cls(block_number=int(data["blockNumber"]), implementation=data["implementation"])


@dataclass
class Report:
    """Aggregate result of one investigation run."""
    hack_transaction: str
    victim_contract: str
    suspect_address: str
    start_time: str
    hack_details: Optional[dict] = None
    state_changes: Optional[StateChanges] = None
    victim_analysis: Optional[dict] = None
    suspicious_actions: list[AnalyzedTransaction] = field(default_factory=list)
    related_contracts: set[str] = field(default_factory=set)
    interactions: list[dict] = field(default_factory=list)
    implementation_history: list[ImplementationSighting] = field(default_factory=list)

    def to_dict(self) -> dict:
        hack_details = None
        if self.hack_details is not None:
            hack_details = dict(self.hack_details)
            hack_details["stateChanges"] = self.state_changes.to_dict() if self.state_changes else None
        return {
            "hackTransaction": self.hack_transaction,
            "victimContract": self.victim_contract,
            "suspectAddress": self.suspect_address,
            "startTime": self.start_time,
            "hackDetails": hack_details,
            "victimAnalysis": self.victim_analysis,
            "suspiciousActions": [action.to_dict() for action in self.suspicious_actions],
            "relatedContracts": sorted(self.related_contracts),
            "interactions": list(self.interactions),
            "implementationHistory": [s.to_dict() for s in self.implementation_history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Report":
        hack_details = data.get("hackDetails")
        state_changes = None
        if hack_details is not None:
            hack_details = dict(hack_details)
            raw_changes = hack_details.pop("stateChanges", None)
            if raw_changes:
                state_changes = StateChanges.from_dict(raw_changes)
        return cls(
            hack_transaction=data["hackTransaction"],
            victim_contract=data["victimContract"],
            suspect_address=data["suspectAddress"],
            start_time=data["startTime"],
            hack_details=hack_details,
            state_changes=state_changes,
            victim_analysis=data.get("victimAnalysis"),
            suspicious_actions=[AnalyzedTransaction.from_dict(a) for a in data.get("suspiciousActions", [])],
            related_contracts=set(data.get("relatedContracts", [])),
            interactions=list(data.get("interactions", [])),
            implementation_history=[
                ImplementationSighting.from_dict(s) for s in data.get("implementationHistory", [])
            ],
        )
