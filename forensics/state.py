"""EIP-1967 proxy state reads."""

from web3 import Web3

from .errors import StorageReadError
from .types import ContractState, StorageSlot


def word_to_address(word) -> str:
    """Checksum address held in the low-order 20 bytes of a storage word"""
    if isinstance(word, str):
        word = Web3.to_bytes(hexstr=word)
    raw = bytes(word).rjust(32, b"\x00")[-20:]
    return Web3.to_checksum_address("0x" + raw.hex())


class StateInspector:
    def __init__(self, ledger):
        self.ledger = ledger

    def read_slot(self, address: str, slot: StorageSlot, block) -> str:
        try:
            word = self.ledger.get_storage_at(address, slot.position, block)
        except Exception as e:
            raise StorageReadError(
                f"Could not read {slot.name.lower()} slot of {address} at block {block}: {e}"
            ) from e
        return word_to_address(word)

    def implementation_at(self, address: str, block) -> str:
        return self.read_slot(address, StorageSlot.IMPLEMENTATION, block)

    def state_at(self, address: str, block) -> ContractState:
        # Zero words come back as the zero address: no proxy, or not yet initialized
        return ContractState(
            implementation=self.read_slot(address, StorageSlot.IMPLEMENTATION, block),
            admin=self.read_slot(address, StorageSlot.ADMIN, block),
        )
