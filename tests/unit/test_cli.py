"""Tests for the command-line interface."""

import json
from unittest.mock import AsyncMock, Mock, patch

import pytest
from typer.testing import CliRunner

from domo_offboard import __version__
from domo_offboard.cli import _run_transfer, app, load_config
from domo_offboard.exceptions import ConfigurationError
from domo_offboard.orchestration import KindResult, MigrationRun

TEST_CONFIG_CONTENT = """
domo:
  instance: acme
  access_token: test-token
deployment:
  audit_log_dataset_id: audit-ds
"""


@pytest.fixture
def cli_runner():
    """Create CLI runner instance."""
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    """Create a temporary configuration file."""
    path = tmp_path / "offboard.yaml"
    path.write_text(TEST_CONFIG_CONTENT)
    return path


@pytest.fixture
def sample_run():
    """Create a finished run with one failed kind."""
    run = MigrationRun(42, 99)
    run.kinds = [
        KindResult("DATASET", discovered=2, transferred=2),
        KindResult("GOAL", error="period lookup failed"),
    ]
    return run


class TestLoadConfig:
    def test_overrides_applied(self, config_file):
        config = load_config(
            config_file, kinds="dataset, card", concurrent_kinds=True, log_level="debug"
        )

        assert config.kinds == ["DATASET", "CARD"]
        assert config.migration.concurrent_kinds is True
        assert config.logging.level == "DEBUG"

    def test_defaults_keep_all_kinds(self, config_file):
        config = load_config(config_file)
        assert config.kinds == ["all"]
        assert config.migration.concurrent_kinds is False

    def test_unknown_kind_rejected(self, config_file):
        with pytest.raises(ConfigurationError, match="DATASETS"):
            load_config(config_file, kinds="DATASETS")


class TestCommands:
    def test_version(self, cli_runner):
        result = cli_runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_kinds_lists_registry(self, cli_runner):
        result = cli_runner.invoke(app, ["kinds"])

        assert result.exit_code == 0
        assert "DATASET" in result.stdout
        assert "PUBLICATION" in result.stdout

    def test_transfer_reports_summary_and_writes_output(
        self, cli_runner, config_file, sample_run, tmp_path
    ):
        output = tmp_path / "run.json"
        with patch(
            "domo_offboard.cli._run_transfer", new=AsyncMock(return_value=sample_run)
        ) as run_transfer:
            result = cli_runner.invoke(
                app,
                ["transfer", "42", "99", "--config", str(config_file), "--output", str(output)],
            )

        assert result.exit_code == 0
        assert "period lookup failed" in result.stdout
        config, source, new_owner = run_transfer.await_args.args
        assert (source, new_owner) == ("42", "99")
        assert config.domo.base_url == "https://acme.domo.com"
        assert json.loads(output.read_text())["summary"]["failed_kinds"] == ["GOAL"]

    def test_transfer_exits_nonzero_when_run_raises(self, cli_runner, config_file):
        with patch(
            "domo_offboard.cli._run_transfer",
            new=AsyncMock(side_effect=RuntimeError("unreachable")),
        ):
            result = cli_runner.invoke(app, ["transfer", "42", "99", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "unreachable" in result.stdout

    def test_offboard_exits_nonzero_when_kinds_failed(
        self, cli_runner, config_file, sample_run
    ):
        with patch(
            "domo_offboard.cli._run_offboard", new=AsyncMock(return_value=sample_run)
        ) as run_offboard:
            result = cli_runner.invoke(
                app, ["offboard", "42", "99", "--config", str(config_file), "--keep-user"]
            )

        assert result.exit_code == 1
        assert run_offboard.await_args.args[3] is False

    def test_transfer_rejects_unknown_kind_before_running(self, cli_runner, config_file):
        with patch("domo_offboard.cli._run_transfer", new=AsyncMock()) as run_transfer:
            result = cli_runner.invoke(
                app, ["transfer", "42", "99", "--kinds", "DATASETS", "--config", str(config_file)]
            )

        assert result.exit_code == 1
        assert "DATASETS" in result.stdout
        run_transfer.assert_not_awaited()

    def test_offboard_rejects_unknown_kind_from_config_file(self, cli_runner, tmp_path):
        path = tmp_path / "offboard.yaml"
        path.write_text(TEST_CONFIG_CONTENT + "kinds: [DATASETS]\n")
        with patch("domo_offboard.cli._run_offboard", new=AsyncMock()) as run_offboard:
            result = cli_runner.invoke(app, ["offboard", "42", "99", "--config", str(path)])

        assert result.exit_code == 1
        assert "DATASETS" in result.stdout
        run_offboard.assert_not_awaited()

    def test_summary_shows_request_stats(self, cli_runner, config_file, sample_run):
        sample_run.request_stats = {"request_count": 31, "error_count": 2}
        with patch("domo_offboard.cli._run_transfer", new=AsyncMock(return_value=sample_run)):
            result = cli_runner.invoke(app, ["transfer", "42", "99", "--config", str(config_file)])

        assert "API requests" in result.stdout
        assert "31" in result.stdout

    def test_validate_fails_without_configuration(self, cli_runner, tmp_path):
        result = cli_runner.invoke(
            app, ["validate", "--config", str(tmp_path / "missing.yaml")]
        )

        assert result.exit_code == 1
        assert "Validation failed" in result.stdout


@pytest.mark.asyncio
class TestRunHelpers:
    async def test_run_transfer_records_client_stats(self, config_file, sample_run):
        config = load_config(config_file)
        stats = {"request_count": 12, "error_count": 1, "error_rate": 1 / 12}
        with patch("domo_offboard.cli.DomoClient") as client_cls, patch(
            "domo_offboard.cli.MigrationOrchestrator"
        ) as orchestrator_cls:
            client = client_cls.return_value.__aenter__.return_value
            client.get_stats = Mock(return_value=stats)
            orchestrator_cls.return_value.kinds = []
            orchestrator_cls.return_value.transfer_content = AsyncMock(return_value=sample_run)

            run = await _run_transfer(config, "42", "99")

        assert run is sample_run
        assert run.request_stats == stats
        orchestrator_cls.assert_called_once_with(client, config)
