import logging

from .addresses import ZERO_ADDRESS
from .errors import StorageReadError
from .types import ImplementationSighting

DEFAULT_STRIDE = 1000


class ImplementationHistorySampler:
    """
    Strided scan of a proxy's implementation slot from genesis to the head.

    The head is read once when sampling starts. Upgrades that are reverted
    between two samples are not observed, and repeated sightings of the same
    implementation are kept as-is.
    """

    def __init__(self, ledger, inspector, stride: int = DEFAULT_STRIDE, start_block: int = 0):
        if stride <= 0:
            raise ValueError("stride must be positive")
        self.ledger = ledger
        self.inspector = inspector
        self.stride = stride
        self.start_block = start_block

    def sample(self, address: str) -> list[ImplementationSighting]:
        latest = self.ledger.get_block_number()
        logging.info(f"Sampling implementation of {address} over [{self.start_block}, {latest}) every {self.stride} blocks")

        sightings = []
        for block in range(self.start_block, latest, self.stride):
            try:
                implementation = self.inspector.implementation_at(address, block)
            except StorageReadError as e:
                logging.warning(f"Skipping sample at block {block}: {e}")
                continue
            if implementation != ZERO_ADDRESS:
                sightings.append(ImplementationSighting(block, implementation))

        logging.info(f"Implementation history: {len(sightings)} sightings")
        return sightings
