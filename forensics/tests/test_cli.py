import logging
import os
import shutil
import sys
import tempfile
import unittest
from unittest import TestCase, mock

from click.testing import CliRunner
from web3 import Web3

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))

from forensics.cli import cli, mask_api_key, setup_logging
from forensics.config import DEFAULT_RPC_URL, Settings, load_config, load_settings
from forensics.errors import ConfigError, TransportError
from forensics.types import ContractState, ImplementationSighting, Report


HACK_TX = "0xe97e555d9423cf40a7ffe4dcf6a795067f7f133b89efc0f472650528ad8535ca"
VICTIM = Web3.to_checksum_address("0x8b5ea07b683953c82901e0f3ad1dcc66cdd79568")
SUSPECT = Web3.to_checksum_address("0x6d24389cec21cd5437d5c581a40dae6b336c9e5d")
IMPL = Web3.to_checksum_address("0x4660083d21e3a7e1ec5af8f46a31dcfaa78479ed")


class TestCli(TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self.settings = Settings(explorer_api_key="KEY")
        patches = {
            "setup_logging": mock.patch("forensics.cli.setup_logging"),
            "load_settings": mock.patch("forensics.cli.load_settings", return_value=self.settings),
            "build_ledger": mock.patch("forensics.cli.build_ledger"),
            "build_explorer": mock.patch("forensics.cli.build_explorer"),
        }
        self.mocks = {}
        for name, patcher in patches.items():
            self.mocks[name] = patcher.start()
            self.addCleanup(patcher.stop)

    @mock.patch("forensics.cli.write_reports", return_value=("out.json", "out.txt"))
    @mock.patch("forensics.cli.ForensicsAnalyzer")
    def test_analyze(self, mock_analyzer, mock_write):
        report = Report(HACK_TX, VICTIM, SUSPECT, "2024-01-01T00:00:00+00:00")
        mock_analyzer.return_value.run.return_value = report

        result = self.runner.invoke(cli, ["analyze", HACK_TX, VICTIM.lower(), SUSPECT, "--stride", "500"])

        self.assertEqual(result.exit_code, 0, result.output)
        mock_analyzer.return_value.run.assert_called_once_with(HACK_TX, VICTIM, SUSPECT, resume=False)
        self.assertEqual(mock_analyzer.call_args.kwargs["history_stride"], 500)
        mock_write.assert_called_once_with(report, ".", None)
        self.assertIn("Reports generated", result.output)
        self.mocks["build_explorer"].return_value.close.assert_called_once()

    @mock.patch("forensics.cli.ForensicsAnalyzer")
    def test_analyze_failure(self, mock_analyzer):
        mock_analyzer.return_value.run.side_effect = TransportError("all endpoints down")

        result = self.runner.invoke(cli, ["analyze", HACK_TX, VICTIM, SUSPECT])

        self.assertEqual(result.exit_code, 1)
        self.assertIn("all endpoints down", result.output)
        self.mocks["build_explorer"].return_value.close.assert_called_once()

    def test_analyze_rejects_invalid_address(self):
        result = self.runner.invoke(cli, ["analyze", HACK_TX, "0x1234", SUSPECT])

        self.assertEqual(result.exit_code, 2)
        self.mocks["build_ledger"].assert_not_called()

    def test_analyze_requires_api_key(self):
        self.settings.explorer_api_key = None

        result = self.runner.invoke(cli, ["analyze", HACK_TX, VICTIM, SUSPECT])

        self.assertEqual(result.exit_code, 2)
        self.assertIn("API key", result.output)

    def test_rpc_option_overrides_settings(self):
        with mock.patch("forensics.cli.StateInspector") as mock_inspector:
            mock_inspector.return_value.state_at.return_value = ContractState(IMPL, SUSPECT)
            result = self.runner.invoke(cli, ["-r", "https://a", "-r", "https://b", "state", VICTIM, "100"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(self.settings.rpc_urls, ["https://a", "https://b"])
        mock_inspector.return_value.state_at.assert_called_once_with(VICTIM, 100)
        self.assertIn(f"Implementation: {IMPL}", result.output)

    @mock.patch("forensics.cli.ImplementationHistorySampler")
    def test_history(self, mock_sampler):
        mock_sampler.return_value.sample.return_value = [ImplementationSighting(0, IMPL)]

        result = self.runner.invoke(cli, ["history", VICTIM, "--stride", "10"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(mock_sampler.call_args.kwargs["stride"], 10)
        self.assertIn(f"Block 0: {IMPL}", result.output)

    def test_config_error(self):
        self.mocks["load_settings"].side_effect = ConfigError("bad config")

        result = self.runner.invoke(cli, ["history", VICTIM])

        self.assertEqual(result.exit_code, 1)
        self.assertIn("bad config", result.output)

    def test_mask_api_key(self):
        self.assertEqual(mask_api_key("https://rpc.example/v1?api-key=secret"), "https://rpc.example/v1?api-key=***")
        self.assertEqual(mask_api_key("https://polygon-rpc.com"), "https://polygon-rpc.com")

    def test_mask_api_key_in_path(self):
        self.assertEqual(
            mask_api_key("https://polygon-mainnet.g.alchemy.com/v2/SECRETKEY123"),
            "https://polygon-mainnet.g.alchemy.com/v2/***",
        )
        self.assertEqual(
            mask_api_key("https://polygon-mainnet.infura.io/v3/abc123?apikey=other"),
            "https://polygon-mainnet.infura.io/v3/***?apikey=***",
        )

    @mock.patch("forensics.cli.ForensicsAnalyzer")
    def test_analyze_does_not_print_rpc_key(self, mock_analyzer):
        mock_analyzer.return_value.run.side_effect = TransportError("down")
        self.settings.rpc_urls = ["https://polygon-mainnet.g.alchemy.com/v2/SECRETKEY123"]

        result = self.runner.invoke(cli, ["analyze", HACK_TX, VICTIM, SUSPECT])

        self.assertIn("Using RPC: https://polygon-mainnet.g.alchemy.com/v2/***", result.output)
        self.assertNotIn("SECRETKEY123", result.output)


class TestSetupLogging(TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.saved_handlers = logging.root.handlers[:]
        self.saved_level = logging.root.level

    def tearDown(self):
        for handler in logging.root.handlers[:]:
            logging.root.removeHandler(handler)
            handler.close()
        for handler in self.saved_handlers:
            logging.root.addHandler(handler)
        logging.root.setLevel(self.saved_level)
        shutil.rmtree(self.tmpdir)

    def test_replaced_file_handler_is_closed(self):
        logging.root.handlers = []
        setup_logging(log_file=os.path.join(self.tmpdir, "first.log"))
        first = [h for h in logging.root.handlers if isinstance(h, logging.FileHandler)][0]

        setup_logging(verbose=True, log_file=os.path.join(self.tmpdir, "second.log"))

        self.assertNotIn(first, logging.root.handlers)
        self.assertIsNone(first.stream)
        self.assertEqual(logging.root.level, logging.DEBUG)


@mock.patch("forensics.config.load_dotenv")
class TestConfig(TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def _write(self, content):
        path = os.path.join(self.tmpdir, "config.yaml")
        with open(path, "w") as f:
            f.write(content)
        return path

    def test_missing_default_config(self, mock_dotenv):
        cwd = os.getcwd()
        os.chdir(self.tmpdir)
        try:
            self.assertEqual(load_config(), {})
        finally:
            os.chdir(cwd)

    def test_missing_explicit_config(self, mock_dotenv):
        with self.assertLogs(level="ERROR"):
            with self.assertRaises(ConfigError):
                load_config(os.path.join(self.tmpdir, "nope.yaml"))

    def test_non_mapping_config(self, mock_dotenv):
        with self.assertRaises(ConfigError):
            load_config(self._write("- just\n- a list\n"))

    def test_defaults(self, mock_dotenv):
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = load_settings(self._write(""))

        self.assertEqual(settings.rpc_urls, [DEFAULT_RPC_URL])
        self.assertIsNone(settings.explorer_api_key)
        self.assertEqual(settings.history_stride, 1000)
        mock_dotenv.assert_called_once()

    def test_file_then_environment(self, mock_dotenv):
        path = self._write(
            "rpc_urls: https://one, https://two\n"
            "history_stride: 250\n"
            "explorer_api_key: FROM_FILE\n"
        )

        with mock.patch.dict(os.environ, {}, clear=True):
            settings = load_settings(path)
        self.assertEqual(settings.rpc_urls, ["https://one", "https://two"])
        self.assertEqual(settings.history_stride, 250)
        self.assertEqual(settings.explorer_api_key, "FROM_FILE")

        env = {"POLYGON_RPC": "https://env", "POLYGONSCAN_API_KEY": "FROM_ENV"}
        with mock.patch.dict(os.environ, env, clear=True):
            settings = load_settings(path)
        self.assertEqual(settings.rpc_urls, ["https://env"])
        self.assertEqual(settings.explorer_api_key, "FROM_ENV")

    def test_numeric_settings_are_coerced(self, mock_dotenv):
        path = self._write('history_stride: "500"\nrpc_timeout: "10"\nmin_request_delay: "0.5"\ntrace_provider: CallTracer\n')

        with mock.patch.dict(os.environ, {}, clear=True):
            settings = load_settings(path)

        self.assertEqual(settings.history_stride, 500)
        self.assertEqual(settings.rpc_timeout, 10)
        self.assertEqual(settings.min_request_delay, 0.5)
        self.assertEqual(settings.trace_provider, "calltracer")

    def test_invalid_settings(self, mock_dotenv):
        for content in (
            "history_stride: 0\n",
            "history_stride: -5\n",
            "retries_per_endpoint: many\n",
            "request_timeout: true\n",
            "min_request_delay: -1\n",
            "trace_provider: tenderly\n",
            "rpc_urls: []\n",
        ):
            with self.subTest(content=content):
                path = self._write(content)
                with mock.patch.dict(os.environ, {}, clear=True):
                    with self.assertRaises(ConfigError):
                        load_settings(path)

    @mock.patch("forensics.cli.setup_logging")
    @mock.patch("forensics.cli.ForensicsAnalyzer")
    def test_cli_rejects_zero_stride_before_analysis(self, mock_analyzer, mock_logging, mock_dotenv):
        path = self._write("history_stride: 0\nexplorer_api_key: KEY\n")

        with mock.patch.dict(os.environ, {}, clear=True):
            result = CliRunner().invoke(cli, ["-c", path, "analyze", HACK_TX, VICTIM, SUSPECT])

        self.assertEqual(result.exit_code, 1)
        self.assertIsInstance(result.exception, SystemExit)
        self.assertIn("history_stride must be a positive integer", result.output)
        mock_analyzer.assert_not_called()


if __name__ == "__main__":
    unittest.main()
