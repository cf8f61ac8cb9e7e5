"""Output formatters for forensic reports."""

import datetime
import json
import os
from collections.abc import Mapping
from decimal import Decimal
from enum import Enum
from typing import Optional

from .types import Report

MAX_SAFE_INTEGER = 2**53 - 1


def to_jsonable(value):
    """
    Convert report values to JSON-native types.

    Sets become sorted lists, byte strings become 0x-prefixed hex, and
    integers outside the double-precision safe range become decimal strings.
    """
    if hasattr(value, "to_dict"):
        return to_jsonable(value.to_dict())
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool) or value is None or isinstance(value, (str, float)):
        return value
    if isinstance(value, int):
        return str(value) if abs(value) > MAX_SAFE_INTEGER else value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted(to_jsonable(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return str(value)


def build_metadata(report: Report, known_implementation: Optional[str] = None,
                   analyzed_at: Optional[str] = None) -> dict:
    return {
        "analyzedAt": analyzed_at or datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "hackTransaction": report.hack_transaction,
        "victimContract": report.victim_contract,
        "hackerAddress": report.suspect_address,
        "knownImplementation": known_implementation,
    }


def format_json(report: Report, metadata: dict) -> str:
    return json.dumps({"metadata": metadata, "analysis": to_jsonable(report)}, indent=2)


def _format_state_changes(report: Report) -> str:
    changes = report.state_changes
    if changes is None:
        return "No state change data"

    lines = [
        "Before the hack:",
        f"- Implementation: {changes.before.implementation}",
        f"- Admin: {changes.before.admin}",
        "",
        "After the hack:",
        f"- Implementation: {changes.after.implementation}",
        f"- Admin: {changes.after.admin}",
    ]
    if changes.implementation_changed:
        lines.append("")
        lines.append("⚠️  IMPLEMENTATION CHANGED")
    if changes.admin_changed:
        lines.append("⚠️  ADMIN CHANGED")
    return "\n".join(lines)


def _format_suspicious_actions(report: Report) -> str:
    if not report.suspicious_actions:
        return "No suspicious action detected"

    blocks = []
    for action in report.suspicious_actions:
        blocks.append("\n".join([
            f"Transaction: {action.hash}",
            f"From: {action.from_address}",
            f"To: {action.to_address}",
            f"Reason: {', '.join(action.reasons)}",
            f"Method: {action.method}",
            f"Timestamp: {action.timestamp}",
        ]))
    return "\n\n".join(blocks)


def _format_implementation_history(report: Report) -> str:
    if not report.implementation_history:
        return "No implementation history available"
    return "\n".join(f"Block {s.block_number}: {s.implementation}" for s in report.implementation_history)


def _section(title: str, body: str) -> list[str]:
    return [title, "-" * len(title), body, ""]


def format_text(report: Report, metadata: dict) -> str:
    """Plain-text report; section order is fixed"""
    lines = [
        "HACK ANALYSIS REPORT",
        "====================",
        f"Analyzed at: {metadata['analyzedAt']}",
        "",
    ]
    lines += _section("BASIC INFORMATION", "\n".join([
        f"Hack transaction: {metadata['hackTransaction']}",
        f"Victim contract: {metadata['victimContract']}",
        f"Hacker address: {metadata['hackerAddress']}",
        f"Known implementation: {metadata['knownImplementation'] or 'N/A'}",
    ]))
    lines += _section("STATE CHANGES", _format_state_changes(report))
    lines += _section("SUSPICIOUS ACTIONS", _format_suspicious_actions(report))
    lines += _section("RELATED CONTRACTS", "\n".join(sorted(report.related_contracts)) or "None")
    lines += _section("IMPLEMENTATION HISTORY", _format_implementation_history(report))
    return "\n".join(lines)


def format_summary(report: Report) -> str:
    """Short console summary of a finished analysis."""
    lines = ["=== ANALYSIS RESULTS ==="]
    changes = report.state_changes
    if changes is not None:
        lines.append("Implementation changes:")
        lines.append(f"  Before: {changes.before.implementation}")
        lines.append(f"  After:  {changes.after.implementation}")
        if changes.implementation_changed:
            lines.append("⚠️  IMPLEMENTATION CHANGE DETECTED!")

    if report.suspicious_actions:
        lines.append("")
        lines.append("🚨 Suspicious actions:")
        for action in report.suspicious_actions:
            lines.append(f"- Transaction {action.hash}")
            lines.append(f"  From: {action.from_address}")
            lines.append(f"  To: {action.to_address}")
            lines.append(f"  Reason: {', '.join(action.reasons)}")

    lines.append("")
    lines.append(f"🔗 Related contracts: {len(report.related_contracts)}")
    for contract in sorted(report.related_contracts):
        lines.append(f"- {contract}")

    if report.implementation_history:
        lines.append("")
        lines.append("📚 Implementation history:")
        for sighting in report.implementation_history:
            lines.append(f"- Block {sighting.block_number}: {sighting.implementation}")
    return "\n".join(lines)


def write_reports(report: Report, output_dir: str, known_implementation: Optional[str] = None) -> tuple[str, str]:
    os.makedirs(output_dir, exist_ok=True)
    metadata = build_metadata(report, known_implementation)
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")

    json_path = os.path.join(output_dir, f"hack_analysis_{timestamp}.json")
    text_path = os.path.join(output_dir, f"hack_analysis_{timestamp}.txt")
    with open(json_path, "w") as f:
        f.write(format_json(report, metadata))
    with open(text_path, "w") as f:
        f.write(format_text(report, metadata))
    return json_path, text_path
