"""Etherscan-compatible block explorer client."""

import logging
import time

import requests
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from urllib3.util.retry import Retry

from .errors import TransportError

DEFAULT_EXPLORER_URL = "https://api.polygonscan.com/api"
MAX_BLOCK = 99999999
RESULT_WINDOW = 10000


class APIRateLimiter:
    def __init__(self, min_delay: float = 0.2):
        self.last_call = 0
        self.min_delay = min_delay

    def wait(self):
        elapsed = time.time() - self.last_call
        if elapsed < self.min_delay:
            time.sleep(self.min_delay - elapsed)
        self.last_call = time.time()


def build_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": "contract-forensics/1.0"})
    retry_cfg = Retry(total=5, backoff_factor=0.5,
                      status_forcelist=(429, 500, 502, 503, 504),
                      allowed_methods=frozenset(["GET", "POST"]))
    adapter = HTTPAdapter(max_retries=retry_cfg, pool_connections=10, pool_maxsize=10)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class ExplorerClient:
    """
    Transaction lists and internal call traces from an Etherscan-style API.

    A response whose status is not "1" means "no data" and yields an empty
    list. Network failures are retried; once retries are exhausted they
    surface as TransportError.
    """

    def __init__(self, api_key: str, base_url: str = DEFAULT_EXPLORER_URL,
                 session: requests.Session = None, limiter: APIRateLimiter = None,
                 timeout: int = 30):
        self.api_key = api_key
        self.base_url = base_url
        self.session = session or build_session()
        self.limiter = limiter or APIRateLimiter()
        self.timeout = timeout

    @retry(
        wait=wait_exponential(multiplier=1, min=2, max=10),
        stop=stop_after_attempt(5),
        retry=retry_if_exception_type(RequestException),
        reraise=True,
    )
    def _get(self, params: dict) -> dict:
        self.limiter.wait()
        resp = self.session.get(self.base_url, params={**params, "apikey": self.api_key}, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def _result_list(self, params: dict, what: str) -> list[dict]:
        try:
            data = self._get(params)
        except RequestException as e:
            raise TransportError(f"Explorer request for {what} failed: {e}") from e

        if data.get("status") != "1":
            logging.debug(f"Explorer returned no data for {what}: {data.get('message')}")
            return []
        result = data.get("result")
        if not isinstance(result, list):
            logging.warning(f"Unexpected explorer result for {what}: {result}")
            return []
        return [item for item in result if isinstance(item, dict)]

    def list_transactions(self, address: str, start_block: int = 0, end_block: int = MAX_BLOCK,
                          sort: str = "asc") -> list[dict]:
        """
        Full transaction list of an address.

        The explorer returns at most RESULT_WINDOW rows per query. A full reply
        is followed by another query starting at the last block seen, and rows
        already returned are dropped.
        """
        txs = []
        seen = set()
        while True:
            params = {
                "module": "account",
                "action": "txlist",
                "address": address,
                "startblock": start_block,
                "endblock": end_block,
                "sort": sort,
            }
            batch = self._result_list(params, f"txlist {address}")
            fresh = [tx for tx in batch if tx.get("hash") not in seen]
            txs.extend(fresh)
            seen.update(tx.get("hash") for tx in fresh)

            if len(batch) < RESULT_WINDOW:
                return txs
            if not fresh:
                logging.warning(f"More than {RESULT_WINDOW} transactions of {address} in one block, history truncated")
                return txs

            last_block = int(batch[-1]["blockNumber"])
            if sort == "desc":
                end_block = last_block
            else:
                start_block = last_block
            logging.info(f"txlist {address}: {len(txs)} transactions so far, continuing from block {last_block}")

    def list_internal_calls(self, tx_hash: str) -> list[dict]:
        params = {
            "module": "account",
            "action": "txlistinternal",
            "txhash": tx_hash,
        }
        return self._result_list(params, f"txlistinternal {tx_hash}")

    def close(self):
        self.session.close()
