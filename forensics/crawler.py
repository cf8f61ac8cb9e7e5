"""Breadth-first crawl of the contract interaction graph."""

import logging
from collections import deque
from typing import Iterable

import networkx as nx
from web3 import Web3

from .addresses import is_valid_address, short_addr
from .classifier import classify_transaction
from .types import Report


class Frontier:
    """
    Pending/processed bookkeeping for the crawl.

    An address is queued at most once for the whole run, so it is processed at
    most once however many times it is discovered.
    """

    def __init__(self, seeds: Iterable[str] = ()):
        self._pending = deque()
        self._seen = set()
        self.processed: set[str] = set()
        for seed in seeds:
            self.push(seed)

    @staticmethod
    def _key(address):
        return Web3.to_checksum_address(address) if is_valid_address(address) else address

    def push(self, address) -> bool:
        key = self._key(address)
        if key in self._seen:
            return False
        self._seen.add(key)
        self._pending.append(key)
        return True

    def pop(self):
        return self._pending.popleft()

    @property
    def pending(self) -> list:
        return list(self._pending)

    def mark_processed(self, address: str):
        self.processed.add(address)

    def __bool__(self):
        return bool(self._pending)

    def __len__(self):
        return len(self._pending)


def transaction_history(explorer, address: str) -> list[dict]:
    """Full history of an address in ascending block order, minus entries with invalid endpoints"""
    if not is_valid_address(address):
        logging.warning(f"Invalid contract address: {address!r}")
        return []
    txs = explorer.list_transactions(address, sort="asc")
    valid = [tx for tx in txs if is_valid_address(tx.get("from")) and is_valid_address(tx.get("to"))]
    if len(valid) != len(txs):
        logging.warning(f"Dropped {len(txs) - len(valid)} transactions with invalid endpoints for {address}")
    return sorted(valid, key=lambda tx: int(tx.get("blockNumber") or 0))


def rank_contracts(graph: nx.DiGraph, top_n: int = 10) -> list[tuple[str, int]]:
    """Contracts ordered by how often the crawl saw them being called"""
    ranked = sorted(graph.in_degree(weight="weight"), key=lambda x: (-x[1], x[0]))
    ranked = [(addr, int(weight)) for addr, weight in ranked if weight > 0]

    if ranked:
        logging.info(f"Top {min(top_n, len(ranked))} Contacted Contracts:")
    for i, (contract, weight) in enumerate(ranked[:top_n], 1):
        logging.info(f"{i}. {contract}: {weight} calls")
    return ranked


class InteractionGraphCrawler:
    """
    Walks every contract transitively reachable from a start address through
    transaction recipients. There is no depth bound: the crawl ends only when
    the frontier is empty.
    """

    def __init__(self, explorer, ledger, report: Report):
        self.explorer = explorer
        self.ledger = ledger
        self.report = report
        self.graph = nx.DiGraph()

    def _add_edge(self, source: str, target: str):
        if self.graph.has_edge(source, target):
            self.graph[source][target]["weight"] += 1
        else:
            self.graph.add_edge(source, target, weight=1)

    def crawl(self, start_address: str) -> Frontier:
        frontier = Frontier([start_address])

        while frontier:
            address = frontier.pop()
            if not is_valid_address(address):
                logging.warning(f"Invalid address detected: {address!r}. Skipped.")
                continue
            if address in frontier.processed:
                continue
            frontier.mark_processed(address)

            txs = transaction_history(self.explorer, address)
            logging.info(f"Processing {address}: {len(txs)} transactions, {len(frontier)} pending")

            for tx in txs:
                to_addr = tx.get("to")
                if is_valid_address(to_addr) and self.ledger.is_contract(to_addr):
                    target = Web3.to_checksum_address(to_addr)
                    if frontier.push(target):
                        logging.debug(f"  + Contract discovered: {short_addr(target)} (via {short_addr(address)})")
                    self.report.related_contracts.add(target)
                    self._add_edge(address, target)

                analysis = classify_transaction(tx)
                if analysis.suspicious:
                    logging.warning(f"  ! Suspicious {analysis.method} in {analysis.hash}")
                    self.report.suspicious_actions.append(analysis)

        self.report.interactions = [
            {"from": source, "to": target, "weight": data["weight"]}
            for source, target, data in self.graph.edges(data=True)
        ]
        logging.info(f"Crawl finished: {len(frontier.processed)} addresses processed, "
                     f"{self.graph.number_of_edges()} interactions")
        rank_contracts(self.graph)
        return frontier
