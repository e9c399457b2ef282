"""CLI tests for extraction, analysis, locators and conversion."""

import json
import sys
import tempfile
import unittest
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

sys.path.insert(0, str(Path(__file__).parent.parent))

from monitra.cli import cli
from monitra.errors import FetchError
from monitra.pipeline import METHOD_LEARNED, ExtractionOutcome, ExtractionState
from monitra.records import ProductRecord

URL = "https://shop.example.in/p/1"


def _outcome():
    record = ProductRecord(
        name="Phone", brand="Acme", price=Decimal("109900"), currency="INR", source_url=URL
    )
    states = [ExtractionState.START, ExtractionState.CACHE_LOOKUP, ExtractionState.LEARNING, ExtractionState.DONE]
    return ExtractionOutcome(record=record, states=states, method=METHOD_LEARNED)


class TestCliExtract(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()

    @patch("monitra.cli.setup_logging")
    @patch("monitra.cli.ensure_directories")
    @patch("monitra.cli.load_config", return_value={"logging": {}})
    @patch("monitra.cli.build_orchestrator")
    def test_extract_json_with_canonical_price(self, mock_build, *_mocks):
        orchestrator = MagicMock()
        orchestrator.__enter__.return_value = orchestrator
        orchestrator.run.return_value = _outcome()
        mock_build.return_value = orchestrator

        result = self.runner.invoke(cli, ["extract", URL, "--json", "--canonical"])
        self.assertEqual(result.exit_code, 0, result.output)

        payload = json.loads(result.stdout)
        self.assertEqual(payload["name"], "Phone")
        self.assertEqual(payload["price"], "109900")
        self.assertEqual(payload["currency"], "INR")
        self.assertEqual(payload["canonical_price"], "1318.800")
        self.assertEqual(payload["method"], METHOD_LEARNED)
        self.assertEqual(payload["states"], ["start", "cache_lookup", "learning", "done"])
        orchestrator.run.assert_called_once_with(URL)
        orchestrator.__exit__.assert_called_once()

    @patch("monitra.cli.setup_logging")
    @patch("monitra.cli.ensure_directories")
    @patch("monitra.cli.load_config", return_value={"logging": {}})
    @patch("monitra.cli.build_orchestrator")
    def test_extract_reports_failures(self, mock_build, *_mocks):
        orchestrator = MagicMock()
        orchestrator.__enter__.return_value = orchestrator
        orchestrator.run.side_effect = [_outcome(), FetchError("HTTP 503 for x")]
        mock_build.return_value = orchestrator

        result = self.runner.invoke(cli, ["extract", URL, "https://down.example.com/p", "--json"])
        self.assertEqual(result.exit_code, 1)

        payload = json.loads(result.stdout)
        self.assertEqual(len(payload), 2)
        self.assertEqual(payload[0]["name"], "Phone")
        self.assertEqual(payload[1]["error_type"], "FetchError")

    @patch("monitra.cli.setup_logging")
    @patch("monitra.cli.ensure_directories")
    @patch("monitra.cli.load_config", return_value={"logging": {}})
    @patch("monitra.cli.build_orchestrator")
    def test_extract_text_output(self, mock_build, *_mocks):
        orchestrator = MagicMock()
        orchestrator.__enter__.return_value = orchestrator
        orchestrator.run.return_value = _outcome()
        mock_build.return_value = orchestrator

        result = self.runner.invoke(cli, ["extract", URL])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Price:    109900 INR", result.stdout)
        self.assertIn("start -> cache_lookup -> learning -> done", result.stdout)


class TestCliConvert(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()

    @patch("monitra.cli.setup_logging")
    @patch("monitra.cli.ensure_directories")
    @patch("monitra.cli.load_config", return_value={"logging": {}})
    def test_convert_defaults_to_usd(self, *_mocks):
        result = self.runner.invoke(cli, ["convert", "100", "eur"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("100 EUR = 108.000 USD", result.stdout)

    @patch("monitra.cli.setup_logging")
    @patch("monitra.cli.ensure_directories")
    @patch("monitra.cli.load_config", return_value={"logging": {}, "currency": {"rates": {"EUR": "1.10"}}})
    def test_convert_uses_configured_rates(self, *_mocks):
        result = self.runner.invoke(cli, ["convert", "10", "EUR", "USD"])
        self.assertIn("10 EUR = 11.000 USD", result.stdout)

    @patch("monitra.cli.setup_logging")
    @patch("monitra.cli.ensure_directories")
    @patch("monitra.cli.load_config", return_value={"logging": {}})
    def test_convert_rejects_bad_amount(self, *_mocks):
        result = self.runner.invoke(cli, ["convert", "ten", "EUR"])
        self.assertEqual(result.exit_code, 2)


class TestCliLocators(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self.tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
        self.tmp.close()
        self.config = {
            "logging": {},
            "storage": {"default_backend": "sqlite", "sqlite": {"database_path": self.tmp.name}},
        }

    def tearDown(self):
        Path(self.tmp.name).unlink(missing_ok=True)

    def _invoke(self, args):
        with patch("monitra.cli.setup_logging"), patch("monitra.cli.ensure_directories"), patch(
            "monitra.cli.load_config", return_value=self.config
        ):
            return self.runner.invoke(cli, args)

    def test_set_show_and_list(self):
        result = self._invoke(["locators", "set", "https://www.shop.example.com/p/1", "--name", "h1", "--price", ".price"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Saved locators for shop.example.com", result.stdout)

        result = self._invoke(["locators", "show", "shop.example.com"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("price: .price", result.stdout)

        result = self._invoke(["locators", "list"])
        self.assertIn("shop.example.com", result.stdout)

    def test_show_missing_domain(self):
        result = self._invoke(["locators", "show", "nowhere.example.com"])
        self.assertEqual(result.exit_code, 1)

    def test_list_empty(self):
        result = self._invoke(["locators", "list"])
        self.assertIn("No learned locators yet.", result.stdout)


class TestCliAnalyze(unittest.TestCase):
    @patch("monitra.cli.setup_logging")
    @patch("monitra.cli.ensure_directories")
    @patch("monitra.cli.load_config", return_value={"logging": {}})
    def test_analyze_saved_file(self, *_mocks):
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("page.html").write_text(
                '<html><head><title>Widget</title></head><body><h1 itemprop="name">Widget</h1>'
                '<span itemprop="price">$19.99</span></body></html>',
                encoding="utf-8",
            )
            result = runner.invoke(cli, ["analyze", "--html-file", "page.html"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("HTML Structure Analysis for Product Page:", result.stdout)
        self.assertIn('[itemprop="price"]', result.stdout)

    @patch("monitra.cli.setup_logging")
    @patch("monitra.cli.ensure_directories")
    @patch("monitra.cli.load_config", return_value={"logging": {}})
    def test_analyze_requires_input(self, *_mocks):
        result = CliRunner().invoke(cli, ["analyze"])
        self.assertEqual(result.exit_code, 2)


if __name__ == "__main__":
    unittest.main()
