"""Ledger RPC access with ordered endpoint failover."""

import logging
from typing import Callable, Optional, Sequence

from requests.exceptions import RequestException
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from web3 import Web3
from web3.exceptions import Web3Exception

from .errors import TransportError

RETRYABLE_ERRORS = (RequestException, Web3Exception, ValueError, OSError)


def connect(url: str, timeout: int = 30) -> Web3:
    return Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout}))


class LedgerClient:
    """
    Blocking ledger client over an ordered list of RPC endpoints.

    Each call is retried `retries_per_endpoint` times on the current endpoint,
    then moves on to the next one. The last endpoint that answered stays the
    preferred one for later calls. TransportError is raised only once every
    endpoint has been exhausted.
    """

    def __init__(
        self,
        endpoints: Sequence[str],
        retries_per_endpoint: int = 3,
        timeout: int = 30,
        backoff: float = 1,
        web3_factory: Optional[Callable[[str], Web3]] = None,
    ):
        if not endpoints:
            raise ValueError("At least one RPC endpoint is required")
        self.endpoints = list(endpoints)
        self.retries_per_endpoint = retries_per_endpoint
        self.backoff = backoff
        self._factory = web3_factory or (lambda url: connect(url, timeout))
        self._clients: dict[str, Web3] = {}
        self._preferred = 0
        self._code_cache: dict[str, bytes] = {}

    def _w3(self, endpoint: str) -> Web3:
        if endpoint not in self._clients:
            self._clients[endpoint] = self._factory(endpoint)
        return self._clients[endpoint]

    def _call(self, label: str, fn: Callable[[Web3], object]):
        last_error = None
        count = len(self.endpoints)
        for offset in range(count):
            index = (self._preferred + offset) % count
            endpoint = self.endpoints[index]
            retrying = Retrying(
                stop=stop_after_attempt(self.retries_per_endpoint),
                wait=wait_exponential(multiplier=self.backoff, max=10),
                retry=retry_if_exception_type(RETRYABLE_ERRORS),
                reraise=True,
            )
            try:
                result = retrying(fn, self._w3(endpoint))
            except RETRYABLE_ERRORS as e:
                last_error = e
                logging.warning(f"RPC {label} failed on endpoint #{index}: {e}")
                continue
            if index != self._preferred:
                logging.info(f"Switched RPC endpoint to #{index}")
                self._preferred = index
            return result
        raise TransportError(f"RPC {label} failed on all {count} endpoints: {last_error}") from last_error

    def get_transaction(self, tx_hash: str):
        return self._call("eth_getTransactionByHash", lambda w3: w3.eth.get_transaction(tx_hash))

    def get_transaction_receipt(self, tx_hash: str):
        return self._call("eth_getTransactionReceipt", lambda w3: w3.eth.get_transaction_receipt(tx_hash))

    def get_code(self, address: str, block="latest") -> bytes:
        checksum = Web3.to_checksum_address(address)
        code = self._call("eth_getCode", lambda w3: w3.eth.get_code(checksum, block_identifier=block))
        return bytes(code or b"")

    def get_storage_at(self, address: str, position: int, block) -> bytes:
        checksum = Web3.to_checksum_address(address)
        word = self._call(
            "eth_getStorageAt",
            lambda w3: w3.eth.get_storage_at(checksum, position, block_identifier=block),
        )
        return bytes(word)

    def get_block_number(self) -> int:
        return int(self._call("eth_blockNumber", lambda w3: w3.eth.block_number))

    def is_contract(self, address: str) -> bool:
        checksum = Web3.to_checksum_address(address)
        if checksum not in self._code_cache:
            self._code_cache[checksum] = self.get_code(checksum)
        return len(self._code_cache[checksum]) > 0

    def trace_transaction(self, tx_hash: str) -> dict:
        """Nested call frames from debug_traceTransaction with the callTracer"""
        response = self._call(
            "debug_traceTransaction",
            lambda w3: w3.provider.make_request(
                "debug_traceTransaction", [tx_hash, {"tracer": "callTracer", "timeout": "30s"}]
            ),
        )
        if "error" in response:
            logging.warning(f"Call tracer error for {tx_hash}: {response['error']}")
            return {}
        return response.get("result") or {}
