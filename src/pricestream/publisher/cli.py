"""
Click CLI for the price publisher.

This module implements the `pricestream` CLI tool with `run` and `status`
subcommands.
"""

import asyncio
import logging
import sys

import click
from pydantic import ValidationError

from pricestream import __version__
from pricestream.common.exceptions import SigningCredentialError
from pricestream.common.logging import setup_logging
from pricestream.config.settings import Settings
from pricestream.publisher.orchestrator import run_publisher
from pricestream.publisher.status import format_status, query_status

# Valid log levels for validation
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def validate_symbols(
    _ctx: click.Context, _param: click.Parameter, value: str | None
) -> list[str] | None:
    """Validate and parse comma-separated symbols."""
    if value is None:
        return None

    symbols = [s.strip().upper() for s in value.split(",") if s.strip()]

    if not symbols:
        raise click.BadParameter("At least one symbol is required")

    return list(dict.fromkeys(symbols))


def validate_interval(
    _ctx: click.Context, _param: click.Parameter, value: float | None
) -> float | None:
    """Validate publish interval in seconds."""
    if value is not None and value <= 0:
        raise click.BadParameter(f"Interval must be positive, got {value}")
    return value


def validate_log_level(_ctx: click.Context, _param: click.Parameter, value: str) -> str:
    """Validate log level."""
    value_upper = value.upper()
    if value_upper not in VALID_LOG_LEVELS:
        raise click.BadParameter(
            f"Invalid log level: '{value}'. Valid levels: {', '.join(VALID_LOG_LEVELS)}"
        )
    return value_upper


def load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from None


@click.group()
@click.version_option(version=__version__, prog_name="pricestream")
def cli() -> None:
    """Price feed publisher CLI.

    Publishes multi-source price quotes to the data streams ledger and
    triggers user price alerts.

    \b
    Commands:
      run     Start the publish loop
      status  Show latest published prices and active alerts
    """
    pass


@cli.command()
@click.option(
    "--symbols",
    default=None,
    callback=validate_symbols,
    help="Comma-separated list of symbols (e.g., BTC,ETH,SOMI). Default: SYMBOLS env",
)
@click.option(
    "--interval",
    default=None,
    type=float,
    callback=validate_interval,
    help="Seconds between publish cycles. Default: PUBLISH_INTERVAL_MS env / 1000",
)
@click.option("--once", is_flag=True, default=False, help="Run a single cycle and exit.")
@click.option(
    "--log-level",
    default="INFO",
    callback=validate_log_level,
    help="Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO",
)
@click.option("--json-logs", is_flag=True, default=False, help="Emit logs as JSON lines.")
def run(
    symbols: list[str] | None,
    interval: float | None,
    once: bool,
    log_level: str,
    json_logs: bool,
) -> None:
    """Start the publish loop.

    Fetches prices every INTERVAL seconds, writes them to the ledger and
    evaluates alerts. Stops cleanly on SIGINT or SIGTERM.

    \b
    Example:
      pricestream run --symbols BTC,ETH,SOMI --interval 30
      pricestream run --once
    """
    setup_logging(level=getattr(logging, log_level), json_format=json_logs)
    logger = logging.getLogger(__name__)

    settings = load_settings()
    symbols = symbols or settings.symbol_list
    interval = interval if interval is not None else settings.publish_interval

    # Display startup banner
    logger.info("=" * 60)
    logger.info("Price Publisher - Starting")
    logger.info("=" * 60)
    logger.info("Configuration:")
    logger.info("  Symbols:     %s", ", ".join(symbols))
    logger.info("  Interval:    %ss", f"{interval:g}")
    logger.info("  Mode:        %s", "Single run" if once else "Continuous")
    logger.info("  Store:       %s", settings.store_backend.value)
    logger.info("  Log Level:   %s", log_level)
    logger.info("=" * 60)

    try:
        asyncio.run(run_publisher(settings, symbols=symbols, interval=interval, once=once))
    except SigningCredentialError as e:
        logger.error("Cannot start publisher: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Received interrupt signal - shutting down")
    except Exception as e:
        logger.error("Fatal error: %s", e, exc_info=True)
        sys.exit(1)

    sys.exit(0)


@cli.command()
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    default=False,
    help="Output in JSON format for machine consumption.",
)
def status(as_json: bool) -> None:
    """Show latest published prices and the active alert count.

    \b
    Example:
      pricestream status
      pricestream status --json
    """
    settings = load_settings()
    result = asyncio.run(query_status(settings))
    click.echo(format_status(result, as_json=as_json))


def main() -> None:
    """Entry point for the pricestream CLI."""
    cli()


if __name__ == "__main__":
    main()
