"""Contract Forensics - reconstruct proxy-upgrade incidents on EVM chains."""

from .addresses import is_valid_address, require_valid_address
from .analyzer import ForensicsAnalyzer
from .checkpoint import JsonCheckpointSink
from .classifier import CriticalFunction, classify_input, classify_transaction, decode_logs
from .crawler import Frontier, InteractionGraphCrawler
from .errors import (
    ConfigError,
    DecodeError,
    ForensicsError,
    StorageReadError,
    TransportError,
    ValidationError,
)
from .explorer import ExplorerClient
from .formatters import format_json, format_summary, format_text
from .history import ImplementationHistorySampler
from .rpc import LedgerClient
from .state import StateInspector
from .traces import TraceAnalyzer
from .types import (
    AnalyzedTransaction,
    ContractState,
    ImplementationSighting,
    Report,
    StateChanges,
    StorageSlot,
    TraceStep,
)

__version__ = "1.0.0"
__all__ = [
    "is_valid_address",
    "require_valid_address",
    "ForensicsAnalyzer",
    "JsonCheckpointSink",
    "CriticalFunction",
    "classify_input",
    "classify_transaction",
    "decode_logs",
    "Frontier",
    "InteractionGraphCrawler",
    "ConfigError",
    "DecodeError",
    "ForensicsError",
    "StorageReadError",
    "TransportError",
    "ValidationError",
    "ExplorerClient",
    "format_json",
    "format_summary",
    "format_text",
    "ImplementationHistorySampler",
    "LedgerClient",
    "StateInspector",
    "TraceAnalyzer",
    "AnalyzedTransaction",
    "ContractState",
    "ImplementationSighting",
    "Report",
    "StateChanges",
    "StorageSlot",
    "TraceStep",
]
