import logging
from abc import ABC, abstractmethod

PROVIDER_NAMES = ("explorer", "calltracer")


class TraceProvider(ABC):
    @abstractmethod
    def get_internal_calls(self, tx_hash: str) -> list[dict]:
        """Internal calls of a transaction as from/to/value/input/type records"""
        pass


class ExplorerTraceProvider(TraceProvider):
    def __init__(self, explorer):
        self.explorer = explorer

    def get_internal_calls(self, tx_hash: str) -> list[dict]:
        return self.explorer.list_internal_calls(tx_hash)


class CallTracerProvider(TraceProvider):
    """Internal calls from debug_traceTransaction, for nodes that expose it"""

    def __init__(self, ledger):
        self.ledger = ledger

    def get_internal_calls(self, tx_hash: str) -> list[dict]:
        trace = self.ledger.trace_transaction(tx_hash)
        if not trace:
            return []
        return self.flatten(trace)

    @staticmethod
    def flatten(trace: dict) -> list[dict]:
        steps = []

        def _extract_from_node(node):
            if not isinstance(node, dict):
                return
            steps.append({
                "from": node.get("from"),
                "to": node.get("to"),
                "value": str(int(node.get("value") or "0x0", 16)),
                "input": node.get("input", "0x"),
                "type": (node.get("type") or "CALL").lower(),
            })
            for call in node.get("calls") or []:
                _extract_from_node(call)

        # The root frame is the transaction itself
        for call in trace.get("calls") or []:
            _extract_from_node(call)
        return steps


def get_trace_provider(provider_name: str, explorer=None, ledger=None) -> TraceProvider:
    """Factory function to get trace provider by name"""
    providers = {
        "explorer": lambda: ExplorerTraceProvider(explorer),
        "calltracer": lambda: CallTracerProvider(ledger),
    }

    factory = providers.get(provider_name.lower())
    if factory:
        logging.debug(f"Using trace provider: {provider_name}")
        return factory()

    raise ValueError(f"Unknown trace provider: {provider_name}")
