from web3 import Web3

from .errors import ValidationError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def is_valid_address(address) -> bool:
    """True for a well-formed account address other than the zero address"""
    if not isinstance(address, str) or not Web3.is_address(address):
        return False
    return int(address, 16) != 0


def require_valid_address(address) -> str:
    if not is_valid_address(address):
        raise ValidationError(f"Invalid address: {address!r}")
    return Web3.to_checksum_address(address)


def short_addr(addr: str) -> str:
    c = Web3.to_checksum_address(addr)
    return c[:6] + "..." + c[-4:]
