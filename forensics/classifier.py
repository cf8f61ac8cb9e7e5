"""Selector-based classification of call input and proxy event decoding."""

import datetime
import logging
from enum import Enum
from typing import Optional

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from .errors import DecodeError
from .types import UNKNOWN_INPUT, AnalyzedTransaction, Classification, DecodedInput

SUSPICIOUS_SIGNATURE = "suspicious_signature"
SELECTOR_HEX_LEN = 10  # "0x" + 4 bytes


class CriticalFunction(Enum):
    UPGRADE_TO = "0x3659cfe6"
    UPGRADE_TO_AND_CALL = "0x4f1ef286"
    CHANGE_ADMIN = "0x8f283970"
    INITIALIZE = "0x8129fc1c"

    @property
    def selector(self) -> str:
        return self.value

    @property
    def params(self) -> list[tuple[str, str]]:
        return PARAM_SCHEMAS[self]

    @property
    def suspicious(self) -> bool:
        return self in SUSPICIOUS_FUNCTIONS

    @classmethod
    def from_selector(cls, selector: str) -> Optional["CriticalFunction"]:
        try:
            return cls(selector.lower())
        except ValueError:
            return None


PARAM_SCHEMAS = {
    CriticalFunction.UPGRADE_TO: [("implementation", "address")],
    CriticalFunction.UPGRADE_TO_AND_CALL: [("implementation", "address"), ("data", "bytes")],
    CriticalFunction.CHANGE_ADMIN: [("newAdmin", "address")],
    CriticalFunction.INITIALIZE: [],
}

SUSPICIOUS_FUNCTIONS = frozenset({
    CriticalFunction.UPGRADE_TO,
    CriticalFunction.UPGRADE_TO_AND_CALL,
    CriticalFunction.CHANGE_ADMIN,
})


class ProxyEvent(Enum):
    IMPLEMENTATION_CHANGED = "0xbc7cd75a20ee27fd9adebab32041f755214dbc6bffa90cc0225b39da2e5c2d3b"
    ADMIN_CHANGED = "0x7e644d02266064d5d04a8737b839beb5a3f63eb0d7981dbc610fe9027e0569c8"


def to_hex(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    value = str(value)
    return value if value.startswith("0x") else "0x" + value


def _normalize_param(abi_type: str, value):
    if abi_type == "address":
        return Web3.to_checksum_address(value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value


def decode_params(function: CriticalFunction, input_hex: str) -> dict:
    schema = function.params
    if not schema:
        return {}
    try:
        data = Web3.to_bytes(hexstr=input_hex[SELECTOR_HEX_LEN:])
        values = decode([abi_type for _, abi_type in schema], data)
    except (DecodingError, ValueError, TypeError) as e:
        raise DecodeError(f"Cannot decode {function.name} parameters: {e}") from e
    return {name: _normalize_param(abi_type, value) for (name, abi_type), value in zip(schema, values)}


def decode_input(input_hex: str) -> DecodedInput:
    function = CriticalFunction.from_selector(input_hex[:SELECTOR_HEX_LEN])
    if function is None:
        return DecodedInput(UNKNOWN_INPUT)
    try:
        return DecodedInput(function.name, decode_params(function, input_hex))
    except DecodeError as e:
        logging.warning(str(e))
        return DecodedInput(UNKNOWN_INPUT)


def is_suspicious_input(input_data) -> bool:
    input_hex = to_hex(input_data)
    if len(input_hex) < SELECTOR_HEX_LEN:
        return False
    function = CriticalFunction.from_selector(input_hex[:SELECTOR_HEX_LEN])
    return function is not None and function.suspicious


def classify_input(input_data) -> Classification:
    """
    Classify call input by its leading selector.

    Suspicion depends on the selector alone; a parameter decoding failure only
    degrades the decoded input to "unknown".
    """
    input_hex = to_hex(input_data)
    if len(input_hex) < SELECTOR_HEX_LEN:
        return Classification(decoded_input=None, suspicious=False, reasons=[])

    reasons = []
    suspicious = is_suspicious_input(input_hex)
    if suspicious:
        reasons.append(SUSPICIOUS_SIGNATURE)
    return Classification(decoded_input=decode_input(input_hex), suspicious=suspicious, reasons=reasons)


def _iso_timestamp(raw) -> Optional[str]:
    if raw in (None, ""):
        return None
    ts = datetime.datetime.fromtimestamp(int(raw), tz=datetime.timezone.utc)
    return ts.isoformat()


def _optional_int(raw) -> Optional[int]:
    if raw in (None, ""):
        return None
    if isinstance(raw, str) and raw.startswith("0x"):
        return int(raw, 16)
    return int(raw)


def classify_transaction(tx: dict) -> AnalyzedTransaction:
    classification = classify_input(tx.get("input"))
    return AnalyzedTransaction(
        hash=to_hex(tx.get("hash")),
        from_address=tx.get("from"),
        to_address=tx.get("to"),
        value=str(tx["value"]) if tx.get("value") is not None else None,
        input=to_hex(tx.get("input")) or None,
        block_number=_optional_int(tx.get("blockNumber")),
        timestamp=_iso_timestamp(tx.get("timeStamp")),
        decoded_input=classification.decoded_input,
        suspicious=classification.suspicious,
        reasons=classification.reasons,
    )


def is_proxy_bytecode(code) -> bool:
    """True if deployed bytecode embeds any critical-function selector"""
    code_hex = to_hex(code).lower()
    return any(function.selector[2:] in code_hex[2:] for function in CriticalFunction)


def decode_log(log) -> Optional[dict]:
    topics = [to_hex(t).lower() for t in (log.get("topics") or [])]
    if not topics:
        return None

    signature = topics[0]
    base = {
        "blockNumber": _optional_int(log.get("blockNumber")),
        "transactionHash": to_hex(log.get("transactionHash")),
    }
    if signature == ProxyEvent.IMPLEMENTATION_CHANGED.value:
        if len(topics) < 2:
            raise DecodeError("Upgraded event without implementation topic")
        return {
            "type": "implementation_change",
            "newImplementation": Web3.to_checksum_address("0x" + topics[1][-40:]),
            **base,
        }
    if signature == ProxyEvent.ADMIN_CHANGED.value:
        try:
            previous_admin, new_admin = decode(["address", "address"], Web3.to_bytes(hexstr=to_hex(log.get("data"))))
        except (DecodingError, ValueError, TypeError) as e:
            raise DecodeError(f"Cannot decode AdminChanged data: {e}") from e
        return {
            "type": "admin_change",
            "previousAdmin": Web3.to_checksum_address(previous_admin),
            "newAdmin": Web3.to_checksum_address(new_admin),
            **base,
        }
    return {
        "type": "unknown",
        "signature": signature,
        "data": to_hex(log.get("data")),
        "topics": topics,
        **base,
    }


def decode_logs(logs) -> list[dict]:
    decoded = []
    for log in logs or []:
        try:
            entry = decode_log(log)
        except DecodeError as e:
            logging.warning(f"Skipping log: {e}")
            continue
        if entry is not None:
            decoded.append(entry)
    return decoded
