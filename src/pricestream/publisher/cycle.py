"""Publish cycle: fetch quotes, write them to the ledger, hand off to alerts.

IDLE -> FETCHING -> PUBLISHING -> IDLE on every tick. A symbol that fails to
encode or write is logged and skipped; the rest of the tick continues.
"""

import asyncio
import logging
from typing import Optional

from pricestream.alerts.evaluator import AlertEvaluator
from pricestream.common.exceptions import EncodingError, LedgerWriteError, PersistenceError
from pricestream.config.enumerations import PriceSource, PublishState
from pricestream.ledger.client import DataStream, EventStream
from pricestream.ledger.encoding import SchemaEncoder, stream_id
from pricestream.ledger.serializer import WriteSerializer
from pricestream.models import PriceQuote, PriceRecord
from pricestream.publisher.supervisor import TaskSupervisor
from pricestream.sources.aggregator import PriceAggregator
from pricestream.sources.dia import DIA_ORACLE_ADDRESS
from pricestream.storage.base import AlertStore
from pricestream.utils.helpers import format_price

logger = logging.getLogger(__name__)

PRICE_FEED_SCHEMA = (
    "uint64 timestamp, string symbol, uint256 price, uint8 decimals, "
    "string source, address sourceAddress"
)
PRICE_UPDATE_EVENT_ID = "PriceUpdateV2"

# Quotes from off-chain APIs carry the zero address
OFFCHAIN_SOURCE = "0x0000000000000000000000000000000000000000"

SOURCE_ADDRESSES = {
    PriceSource.COINGECKO: OFFCHAIN_SOURCE,
    PriceSource.DIA: DIA_ORACLE_ADDRESS,
}


def price_stream_id(symbol: str) -> str:
    return stream_id(f"price-{symbol.lower()}")


class PublishCycle:
    def __init__(
        self,
        symbols: list[str],
        aggregator: PriceAggregator,
        serializer: WriteSerializer,
        store: AlertStore,
        evaluator: AlertEvaluator,
        supervisor: Optional[TaskSupervisor] = None,
    ) -> None:
        self.symbols = [s.upper() for s in symbols]
        self.aggregator = aggregator
        self.serializer = serializer
        self.store = store
        self.evaluator = evaluator
        self.supervisor = supervisor or TaskSupervisor()
        self.encoder = SchemaEncoder(PRICE_FEED_SCHEMA)
        self.schema_id = serializer.ledger.compute_schema_id(PRICE_FEED_SCHEMA)
        self.state = PublishState.IDLE
        self.ticks = 0

    async def tick(self) -> list[str]:
        """Run one cycle and return the symbols that were published."""
        published: list[str] = []
        self.ticks += 1

        try:
            self.state = PublishState.FETCHING
            logger.info("Fetching prices for %s", ", ".join(self.symbols))
            quotes = await self.aggregator.aggregate(self.symbols)
            logger.info("Total prices fetched: %d/%d", len(quotes), len(self.symbols))

            self.state = PublishState.PUBLISHING
            for symbol, quote in quotes.items():
                if await self.publish_quote(quote):
                    published.append(symbol)
        finally:
            self.state = PublishState.IDLE

        return published

    def encode_quote(self, quote: PriceQuote) -> str:
        return self.encoder.encode_data(
            {
                "timestamp": quote.timestamp,
                "symbol": quote.symbol,
                "price": quote.price,
                "decimals": quote.decimals,
                "source": quote.source.value,
                "sourceAddress": SOURCE_ADDRESSES.get(quote.source, OFFCHAIN_SOURCE),
            }
        )

    async def publish_quote(self, quote: PriceQuote) -> bool:
        symbol = quote.symbol

        try:
            data = self.encode_quote(quote)
            data_id = price_stream_id(symbol)
        except EncodingError as e:
            logger.error("✗ %s: %s", symbol, e)
            return False

        try:
            handle = await self.serializer.set_and_emit_events(
                f"price-{symbol}",
                [DataStream(id=data_id, schema_id=self.schema_id, data=data)],
                [EventStream(id=PRICE_UPDATE_EVENT_ID, argument_topics=[], data=data)],
            )
        except LedgerWriteError as e:
            logger.error("✗ %s: %s", symbol, e)
            return False
        except Exception as e:
            logger.error("✗ %s: unexpected write failure: %s", symbol, e, exc_info=True)
            return False

        if not handle:
            logger.error("✗ %s: no transaction hash returned", symbol)
            return False

        logger.info("✓ %s: $%s (%s)", symbol, format_price(quote.price, quote.decimals), quote.source.value)

        try:
            await self.store.insert_price_record(PriceRecord.from_quote(quote))
        except PersistenceError as e:
            logger.error("Failed to store price history for %s: %s", symbol, e)

        self.supervisor.spawn(self.check_alerts(symbol, quote.price), name=f"alerts-{symbol}")
        return True

    async def check_alerts(self, symbol: str, price: int) -> list[str]:
        try:
            triggered = await self.evaluator.evaluate(symbol, price)
        except PersistenceError as e:
            logger.error("Alert check failed for %s: %s", symbol, e)
            return []

        if triggered:
            logger.info("%d alert(s) triggered for %s", len(triggered), symbol)
        return triggered

    async def run_forever(self, stop_event: asyncio.Event, interval: float) -> None:
        """Tick every `interval` seconds until `stop_event` is set."""
        while not stop_event.is_set():
            await self.tick()

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

        logger.info("Publish loop stopped after %d tick(s)", self.ticks)
