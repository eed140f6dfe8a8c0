"""
Price publisher orchestration.

Wires the source clients, ledger, store, evaluator and notifier together,
runs the startup checks and then the publish loop until a shutdown signal.
"""

import asyncio
import logging
import signal
import time
from typing import Optional

from pricestream.alerts.evaluator import AlertEvaluator
from pricestream.common.exceptions import PersistenceError
from pricestream.config.settings import Settings
from pricestream.ledger.client import StreamsLedgerClient
from pricestream.ledger.serializer import WriteSerializer
from pricestream.notifications.telegram import TelegramNotifier
from pricestream.publisher.cycle import PublishCycle
from pricestream.publisher.supervisor import TaskSupervisor
from pricestream.sources.aggregator import PriceAggregator
from pricestream.sources.coingecko import CoinGeckoClient
from pricestream.sources.dia import DIA_ONLY_ASSETS, DiaOracleClient
from pricestream.storage import create_store
from pricestream.utils.helpers import format_uptime

logger = logging.getLogger(__name__)

# Upper bound on waiting for in-flight alert evaluations at shutdown
DRAIN_TIMEOUT = 30.0


def log_source_plan(aggregator: PriceAggregator, symbols: list[str]) -> None:
    primary_batch, secondary_batch = aggregator.plan(symbols)
    unsupported = [s for s in symbols if s not in primary_batch and s not in secondary_batch]

    if primary_batch:
        logger.info("  %s: %s", aggregator.primary.source.value, ", ".join(primary_batch))
    if secondary_batch and aggregator.secondary is not None:
        logger.info("  %s: %s", aggregator.secondary.source.value, ", ".join(secondary_batch))
    if unsupported:
        logger.warning("  Unsupported: %s", ", ".join(unsupported))


async def log_startup_health(
    primary: CoinGeckoClient,
    secondary: DiaOracleClient,
    evaluator: AlertEvaluator,
) -> None:
    primary_ok, secondary_ok = await asyncio.gather(primary.ping(), secondary.ping())

    logger.info("CoinGecko API: %s", "reachable" if primary_ok else "unreachable")
    if secondary.is_enabled():
        logger.info("DIA Oracle: %s", "reachable" if secondary_ok else "unreachable")
    else:
        logger.info("DIA Oracle: disabled")

    key_status = primary.get_key_status()
    if key_status.total > 0:
        logger.info("CoinGecko: %d/%d keys healthy", key_status.healthy, key_status.total)

    try:
        logger.info("Active alerts: %d", await evaluator.active_alert_count())
    except PersistenceError as e:
        logger.warning("Could not count active alerts: %s", e)


def install_signal_handlers(stop_event: asyncio.Event) -> list[signal.Signals]:
    loop = asyncio.get_running_loop()
    installed = []

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
            installed.append(sig)
        except NotImplementedError:
            logger.warning("Signal handler for %s not supported on this platform", sig.name)

    return installed


async def run_publisher(
    settings: Settings,
    symbols: Optional[list[str]] = None,
    interval: Optional[float] = None,
    once: bool = False,
) -> list[str]:
    """
    Run the price publisher.

    Args:
        settings: Runtime configuration
        symbols: Symbols to publish (defaults to settings.symbol_list)
        interval: Seconds between cycles (defaults to settings.publish_interval)
        once: Run a single cycle and exit

    Returns:
        Symbols published by the last completed cycle when `once` is set,
        otherwise an empty list.

    Raises:
        SigningCredentialError: the writer identity cannot be loaded
    """
    symbols = [s.upper() for s in (symbols or settings.symbol_list)]
    interval = settings.publish_interval if interval is None else interval

    # Fatal before anything else is opened
    ledger = StreamsLedgerClient(
        settings.rpc_url,
        settings.private_key,
        contract_address=settings.streams_contract_address,
        receipt_timeout=settings.receipt_timeout_seconds,
        timeout=settings.http_timeout_seconds,
    )
    logger.info("Publisher wallet: %s", ledger.writer_address)

    store = create_store(settings)
    primary = CoinGeckoClient(
        api_keys=settings.api_keys,
        base_url=settings.coingecko_api_url,
        timeout=settings.http_timeout_seconds,
    )
    secondary = DiaOracleClient(
        settings.rpc_url, enabled=settings.enable_dia, timeout=settings.http_timeout_seconds
    )
    aggregator = PriceAggregator(primary, secondary, secondary_only=DIA_ONLY_ASSETS)
    serializer = WriteSerializer(ledger, delay=settings.write_delay)
    notifier = TelegramNotifier(
        store,
        settings.telegram_bot_token,
        api_url=settings.telegram_api_url,
        timeout=settings.http_timeout_seconds,
    )
    evaluator = AlertEvaluator(store, serializer, notifier, dedup_capacity=settings.dedup_capacity)
    supervisor = TaskSupervisor()
    cycle = PublishCycle(symbols, aggregator, serializer, store, evaluator, supervisor)

    stop_event = asyncio.Event()
    start_time = time.monotonic()
    published: list[str] = []

    try:
        log_source_plan(aggregator, symbols)
        await log_startup_health(primary, secondary, evaluator)

        if once:
            published = await cycle.tick()
        else:
            installed = install_signal_handlers(stop_event)
            try:
                await cycle.run_forever(stop_event, interval)
            finally:
                for sig in installed:
                    asyncio.get_running_loop().remove_signal_handler(sig)

    finally:
        await supervisor.drain(timeout=DRAIN_TIMEOUT)

        pending = serializer.status().pending
        try:
            await asyncio.wait_for(serializer.drain(), timeout=DRAIN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Ledger queue not drained within %.0fs", DRAIN_TIMEOUT)
        else:
            if pending:
                logger.info("Flushed %d queued ledger write(s)", pending)
        await serializer.close()

        for client in (notifier, primary, secondary, ledger, store):
            try:
                await client.close()
            except Exception as e:
                logger.warning("Failed to close %s: %s", type(client).__name__, e)

        logger.info("Shutdown complete (uptime %s)", format_uptime(time.monotonic() - start_time))

    return published
