"""Tests for the pricestream click CLI."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from pricestream.common.exceptions import SigningCredentialError
from pricestream.publisher.cli import cli
from pricestream.publisher.status import StatusResult


@pytest.fixture
def runner(monkeypatch: pytest.MonkeyPatch) -> CliRunner:
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("SYMBOLS", "BTC,ETH,SOMI")
    return CliRunner()


@patch("pricestream.publisher.cli.setup_logging")
@patch("pricestream.publisher.cli.run_publisher", new_callable=AsyncMock)
def test_run_once_passes_options(
    mock_run: AsyncMock, _mock_logging: MagicMock, runner: CliRunner
) -> None:
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["run", "--once", "--symbols", "btc, eth,btc", "--interval", "5"])

    assert result.exit_code == 0, result.output
    _, kwargs = mock_run.call_args
    assert kwargs["symbols"] == ["BTC", "ETH"]
    assert kwargs["interval"] == 5.0
    assert kwargs["once"] is True


@patch("pricestream.publisher.cli.setup_logging")
@patch("pricestream.publisher.cli.run_publisher", new_callable=AsyncMock)
def test_run_defaults_from_settings(
    mock_run: AsyncMock, _mock_logging: MagicMock, runner: CliRunner
) -> None:
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["run"])

    assert result.exit_code == 0, result.output
    _, kwargs = mock_run.call_args
    assert kwargs["symbols"] == ["BTC", "ETH", "SOMI"]
    assert kwargs["interval"] == 30.0
    assert kwargs["once"] is False


@patch("pricestream.publisher.cli.setup_logging")
@patch(
    "pricestream.publisher.cli.run_publisher",
    new_callable=AsyncMock,
    side_effect=SigningCredentialError("PRIVATE_KEY environment variable is required"),
)
def test_missing_writer_key_exits_1(
    _mock_run: AsyncMock, _mock_logging: MagicMock, runner: CliRunner
) -> None:
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["run", "--once"])

    assert result.exit_code == 1


@patch("pricestream.publisher.cli.setup_logging")
def test_json_logs_flag(mock_logging: MagicMock, runner: CliRunner) -> None:
    with patch("pricestream.publisher.cli.run_publisher", new_callable=AsyncMock):
        with runner.isolated_filesystem():
            runner.invoke(cli, ["run", "--once", "--json-logs", "--log-level", "debug"])

    kwargs = mock_logging.call_args.kwargs
    assert kwargs["json_format"] is True
    assert kwargs["level"] == 10


@pytest.mark.parametrize(
    "args",
    [
        ["run", "--log-level", "LOUD"],
        ["run", "--interval", "0"],
        ["run", "--symbols", " , "],
    ],
)
def test_invalid_options_rejected(args: list[str], runner: CliRunner) -> None:
    result = runner.invoke(cli, args)
    assert result.exit_code == 2


def test_status_json(runner: CliRunner) -> None:
    status = StatusResult(backend="memory", store_connected=True, active_alerts=3)

    with patch("pricestream.publisher.cli.query_status", new=AsyncMock(return_value=status)):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["status", "--json"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["active_alerts"] == 3
    assert data["store"] == {"backend": "memory", "connected": True}


def test_version(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["--version"])
    assert "0.1.0" in result.output
