import json
import os
import shutil
import sys
import tempfile
import unittest
from decimal import Decimal
from unittest import TestCase

from web3 import Web3

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))

from forensics.formatters import (
    build_metadata,
    format_json,
    format_summary,
    format_text,
    to_jsonable,
    write_reports,
)
from forensics.types import (
    AnalyzedTransaction,
    ContractState,
    DecodedInput,
    ImplementationSighting,
    Report,
    StateChanges,
    TraceStep,
    TraceType,
)


PROXY = Web3.to_checksum_address("0x8b5ea07b683953c82901e0f3ad1dcc66cdd79568")
HELPER = Web3.to_checksum_address("0x14bdc3a3ae09f5518b923b69489cbcafb238e617")
SUSPECT = Web3.to_checksum_address("0x6d24389cec21cd5437d5c581a40dae6b336c9e5d")
OLD_IMPL = Web3.to_checksum_address("0x4660083d21e3a7e1ec5af8f46a31dcfaa78479ed")
NEW_IMPL = Web3.to_checksum_address("0xeba675f1d0fe4c00e179c1f224b8b18dd476e76a")


def make_report() -> Report:
    report = Report(
        hack_transaction="0xhack",
        victim_contract=PROXY,
        suspect_address=SUSPECT,
        start_time="2024-01-01T00:00:00+00:00",
        hack_details={
            "transaction": {"hash": b"\x01\x02", "value": "1.5", "gas": 500000},
            "receipt": {"blockNumber": 100},
            "logs": [],
            "traces": [TraceStep(HELPER, PROXY, "0", "0x3659cfe6", TraceType.CONTRACT_TO_CONTRACT, True, "call")],
        },
        state_changes=StateChanges(
            before=ContractState(OLD_IMPL, SUSPECT),
            after=ContractState(NEW_IMPL, SUSPECT),
        ),
        related_contracts={PROXY, HELPER},
        implementation_history=[ImplementationSighting(0, OLD_IMPL), ImplementationSighting(1000, NEW_IMPL)],
    )
    report.suspicious_actions.append(AnalyzedTransaction(
        hash="0x02",
        from_address=SUSPECT,
        to_address=PROXY,
        value="0",
        input="0x3659cfe6",
        block_number=100,
        timestamp="2023-11-14T22:13:20+00:00",
        decoded_input=DecodedInput("UPGRADE_TO", {"newImplementation": NEW_IMPL}),
        suspicious=True,
        reasons=["suspicious_signature"],
    ))
    return report


class TestToJsonable(TestCase):
    def test_native_conversions(self):
        value = {
            "big": 2**64,
            "safe": 2**53 - 1,
            "price": Decimal("30.5"),
            "raw": b"\xde\xad",
            "flag": True,
            "nothing": None,
            "seen": {"0xb", "0xa"},
        }

        self.assertEqual(to_jsonable(value), {
            "big": str(2**64),
            "safe": 2**53 - 1,
            "price": "30.5",
            "raw": "0xdead",
            "flag": True,
            "nothing": None,
            "seen": ["0xa", "0xb"],
        })

    def test_enum_and_dataclass(self):
        self.assertEqual(to_jsonable(TraceType.EOA_TO_EOA), "eoa-to-eoa")
        self.assertEqual(to_jsonable(ImplementationSighting(5, NEW_IMPL)),
                         {"blockNumber": 5, "implementation": NEW_IMPL})


class TestReportSerialization(TestCase):
    def test_json_round_trip(self):
        report = make_report()

        data = json.loads(format_json(report, build_metadata(report, analyzed_at="now")))
        analysis = data["analysis"]

        self.assertEqual(data["metadata"]["hackerAddress"], SUSPECT)
        self.assertIsNone(data["metadata"]["knownImplementation"])
        self.assertEqual(set(analysis["relatedContracts"]), {PROXY, HELPER})
        self.assertTrue(analysis["hackDetails"]["stateChanges"]["implementationChanged"])
        self.assertEqual(analysis["hackDetails"]["transaction"]["hash"], "0x0102")
        self.assertEqual(analysis["hackDetails"]["traces"][0]["type"], "contract-to-contract")

        restored = Report.from_dict(analysis)
        self.assertEqual(restored.related_contracts, report.related_contracts)
        self.assertEqual(restored.state_changes, report.state_changes)
        self.assertEqual(restored.implementation_history, report.implementation_history)
        self.assertEqual(restored.suspicious_actions[0].method, "UPGRADE_TO")
        self.assertNotIn("stateChanges", restored.hack_details)

    def test_text_sections_in_order(self):
        report = make_report()

        text = format_text(report, build_metadata(report, known_implementation=OLD_IMPL, analyzed_at="now"))

        positions = [text.index(title) for title in (
            "HACK ANALYSIS REPORT",
            "BASIC INFORMATION",
            "STATE CHANGES",
            "SUSPICIOUS ACTIONS",
            "RELATED CONTRACTS",
            "IMPLEMENTATION HISTORY",
        )]
        self.assertEqual(positions, sorted(positions))
        self.assertIn("IMPLEMENTATION CHANGED", text)
        self.assertNotIn("ADMIN CHANGED", text)
        self.assertIn("Method: UPGRADE_TO", text)
        self.assertIn(f"Known implementation: {OLD_IMPL}", text)
        self.assertIn(f"Block 1000: {NEW_IMPL}", text)

    def test_text_for_empty_report(self):
        report = Report("0xhack", PROXY, SUSPECT, "2024-01-01T00:00:00+00:00")

        text = format_text(report, build_metadata(report, analyzed_at="now"))

        self.assertIn("No state change data", text)
        self.assertIn("No suspicious action detected", text)
        self.assertIn("Known implementation: N/A", text)

    def test_summary(self):
        summary = format_summary(make_report())

        self.assertIn("IMPLEMENTATION CHANGE DETECTED", summary)
        self.assertIn("Related contracts: 2", summary)
        self.assertIn("- Transaction 0x02", summary)


class TestWriteReports(TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def test_writes_json_and_text(self):
        output_dir = os.path.join(self.tmpdir, "reports")

        json_path, text_path = write_reports(make_report(), output_dir, known_implementation=OLD_IMPL)

        self.assertTrue(os.path.basename(json_path).startswith("hack_analysis_"))
        self.assertEqual(os.path.splitext(json_path)[0], os.path.splitext(text_path)[0])
        with open(json_path) as f:
            self.assertEqual(json.load(f)["metadata"]["knownImplementation"], OLD_IMPL)
        with open(text_path) as f:
            self.assertTrue(f.read().startswith("HACK ANALYSIS REPORT"))


if __name__ == "__main__":
    unittest.main()
