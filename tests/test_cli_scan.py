"""CLI tests for the scan command."""

import json
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner

sys.path.insert(0, str(Path(__file__).parent.parent))

from sticker_scout.cli import _echo_hit, cli
from sticker_scout.models import ScanResult, ScanStats, ScannedHit, Sticker


def _result(status="completed", hits=None, error=None):
    return ScanResult(
        status=status,
        strategy="api",
        hits=hits or [],
        stats=ScanStats(records_seen=3, pages_fetched=1),
        stop_reason="short_page" if status == "completed" else "halt_status",
        error=error,
    )


class TestCliScan(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()

    @patch("sticker_scout.cli.setup_logging")
    @patch("sticker_scout.cli.ensure_directories")
    @patch("sticker_scout.cli.load_config", return_value={"logging": {}, "output": {"save_csv": False}})
    @patch("sticker_scout.cli.export_hits", return_value={"json": "out/x.json"})
    @patch("sticker_scout.cli.run_scan")
    def test_scan_passes_options(self, mock_scan, mock_export, *_mocks):
        mock_scan.return_value = _result()
        result = self.runner.invoke(
            cli,
            ["scan", "--mode", "api", "--no-headless", "--dry-run", "--sort-by", "price", "--connect", "http://127.0.0.1:9222"],
        )
        self.assertEqual(result.exit_code, 0, result.output)
        kwargs = mock_scan.call_args.kwargs
        self.assertEqual(kwargs["mode"], "api")
        self.assertFalse(kwargs["headless"])
        self.assertTrue(kwargs["dry_run"])
        self.assertEqual(kwargs["sort_by"], "price")
        self.assertEqual(kwargs["connect_endpoint"], "http://127.0.0.1:9222")
        self.assertEqual(mock_export.call_args.kwargs["strategy"], "api")

    @patch("sticker_scout.cli.setup_logging")
    @patch("sticker_scout.cli.ensure_directories")
    @patch("sticker_scout.cli.load_config", return_value={"logging": {}})
    @patch("sticker_scout.cli.export_hits", return_value={})
    @patch("sticker_scout.cli.run_scan")
    def test_defaults_defer_to_config(self, mock_scan, *_mocks):
        mock_scan.return_value = _result()
        result = self.runner.invoke(cli, ["scan"])
        self.assertEqual(result.exit_code, 0, result.output)
        kwargs = mock_scan.call_args.kwargs
        self.assertIsNone(kwargs["mode"])
        self.assertIsNone(kwargs["headless"])
        self.assertIsNone(kwargs["dry_run"])
        self.assertIsNone(kwargs["sort_by"])

    @patch("sticker_scout.cli.setup_logging")
    @patch("sticker_scout.cli.ensure_directories")
    @patch("sticker_scout.cli.load_config", return_value={"logging": {}})
    @patch("sticker_scout.cli.export_hits", return_value={"json": "out/x.json"})
    @patch("sticker_scout.cli.run_scan")
    def test_failed_scan_exports_then_exits_nonzero(self, mock_scan, mock_export, *_mocks):
        mock_scan.return_value = _result(status="failed", error="Stopping due to HTTP 403")
        result = self.runner.invoke(cli, ["scan"])
        self.assertEqual(result.exit_code, 1)
        mock_export.assert_called_once()

    @patch("sticker_scout.cli.setup_logging")
    @patch("sticker_scout.cli.ensure_directories")
    @patch("sticker_scout.cli.load_config", return_value={"logging": {}})
    @patch("sticker_scout.cli.export_hits")
    @patch("sticker_scout.cli.run_scan", side_effect=RuntimeError("browser crashed"))
    def test_unexpected_error_exits_nonzero(self, mock_scan, mock_export, *_mocks):
        result = self.runner.invoke(cli, ["scan"])
        self.assertEqual(result.exit_code, 1)
        mock_export.assert_not_called()

    @patch("sticker_scout.cli.setup_logging")
    @patch("sticker_scout.cli.ensure_directories")
    @patch("sticker_scout.cli.load_config", return_value={"logging": {}})
    @patch("sticker_scout.cli.export_hits", return_value={})
    @patch("sticker_scout.cli.run_scan")
    def test_no_stream_disables_hit_lines(self, mock_scan, _mock_export, mock_load, *_mocks):
        mock_scan.return_value = _result()
        result = self.runner.invoke(cli, ["scan", "--no-stream"])
        self.assertEqual(result.exit_code, 0, result.output)
        config = mock_scan.call_args.kwargs["config"]
        self.assertFalse(config["output"]["stream_hits"])

    @patch("sticker_scout.cli.load_config", side_effect=FileNotFoundError("Configuration file not found"))
    def test_missing_config(self, _mock_load):
        result = self.runner.invoke(cli, ["scan"])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Configuration file not found", result.output)

    def test_echo_hit_format(self):
        hit = ScannedHit(name="AWP", price=5.0, stickers=[Sticker("Holo")])
        with patch("sticker_scout.cli.click.echo") as mock_echo:
            _echo_hit(hit)
        line = json.loads(mock_echo.call_args.args[0])
        self.assertEqual(line["type"], "HIT")
        self.assertEqual(line["data"]["name"], "AWP")
        self.assertEqual(line["data"]["stickers"], [{"name": "Holo", "type": None, "price": None}])


if __name__ == "__main__":
    unittest.main()
