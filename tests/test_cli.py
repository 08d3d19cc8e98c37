"""
Tests for the run_ingestion command line.

Components are mocked; the commands only format and exit.
"""

import importlib.util
import json
from pathlib import Path

import pytest
from click.testing import CliRunner
from unittest.mock import Mock, patch

SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "run_ingestion.py"


@pytest.fixture
def cli_module():
    spec = importlib.util.spec_from_file_location("run_ingestion", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestParseMaterial:
    def test_with_percentage(self, cli_module):
        share = cli_module.parse_material("cotton:60")

        assert share.name == "cotton"
        assert share.percentage == 60.0

    def test_defaults_to_full_share(self, cli_module):
        assert cli_module.parse_material("polyester").percentage == 100.0

    def test_bad_percentage(self, cli_module):
        import click

        with pytest.raises(click.BadParameter):
            cli_module.parse_material("cotton:lots")


class TestCommands:
    """Tests for check, health and classify."""

    def test_classify_prints_result(self, cli_module):
        components = Mock()
        components.classifier.classify.return_value.as_dict.return_value = {"success": True, "candidates": []}

        with patch.object(cli_module, "build_components", return_value=components):
            result = CliRunner().invoke(
                cli_module.cli, ["classify", "Crew neck tee", "--fabric", "knit", "-m", "cotton:100"]
            )

        assert result.exit_code == 0
        assert json.loads(result.output) == {"success": True, "candidates": []}
        product = components.classifier.classify.call_args[0][0]
        assert product.fabric_type == "knit"
        assert product.materials[0].name == "cotton"

    def test_classify_failure_exits_nonzero(self, cli_module):
        from tariff_rag.errors import InsufficientDataError

        components = Mock()
        components.classifier.classify.side_effect = InsufficientDataError("no candidates")

        with patch.object(cli_module, "build_components", return_value=components):
            result = CliRunner().invoke(cli_module.cli, ["classify", "mystery item", "--no-fallback"])

        assert result.exit_code == 1
        assert json.loads(result.output)["error_type"] == "InsufficientDataError"

    def test_unhealthy_exit_code(self, cli_module):
        components = Mock()
        components.scheduler.health_check.return_value = {"healthy": False, "kinds": {}}

        with patch.object(cli_module, "build_components", return_value=components):
            result = CliRunner().invoke(cli_module.cli, ["health"])

        assert result.exit_code == 2
        assert json.loads(result.output)["healthy"] is False

    def test_failed_check_exits_nonzero(self, cli_module):
        components = Mock()
        report = components.scheduler.run_check.return_value
        report.success = False
        report.skipped = False
        report.processed = []
        report.failed = []
        report.summary.return_value = "Check failed"

        with patch.object(cli_module, "build_components", return_value=components):
            result = CliRunner().invoke(cli_module.cli, ["check"])

        assert result.exit_code == 1
        components.scheduler.run_check.assert_called_once_with(dry_run=False)
