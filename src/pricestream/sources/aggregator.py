import asyncio
import logging
from typing import Iterable, Optional

from pricestream.models import PriceQuote
from pricestream.sources.base import PriceMap, PriceSourceClient

logger = logging.getLogger(__name__)


class PriceAggregator:
    """Merges source client readings into one quote per symbol.

    The primary source always wins when both sources return a symbol in the
    same cycle. Symbols neither source resolves are omitted.
    """

    def __init__(
        self,
        primary: PriceSourceClient,
        secondary: Optional[PriceSourceClient] = None,
        secondary_only: Iterable[str] = (),
    ) -> None:
        self.primary = primary
        self.secondary = secondary
        self.secondary_only = frozenset(s.upper() for s in secondary_only)

    def plan(self, symbols: Iterable[str]) -> tuple[list[str], list[str]]:
        """Split symbols into (primary batch, secondary-first batch)."""
        primary_batch: list[str] = []
        secondary_batch: list[str] = []

        for symbol in dict.fromkeys(s.upper() for s in symbols):
            if symbol in self.secondary_only:
                secondary_batch.append(symbol)
            elif self.primary.supports(symbol):
                primary_batch.append(symbol)
            elif self.secondary is not None and self.secondary.supports(symbol):
                secondary_batch.append(symbol)

        return primary_batch, secondary_batch

    async def aggregate(self, symbols: Iterable[str]) -> dict[str, PriceQuote]:
        primary_batch, secondary_batch = self.plan(symbols)

        primary_prices, secondary_prices = await asyncio.gather(
            self._fetch(self.primary, primary_batch),
            self._fetch(self.secondary, secondary_batch),
        )

        quotes: dict[str, PriceQuote] = {
            symbol: PriceQuote.from_reading(symbol, reading, self.primary.source)
            for symbol, reading in primary_prices.items()
        }

        missing = [s for s in primary_batch if s not in quotes]
        if missing and self.secondary is not None:
            fallback = [s for s in missing if self.secondary.supports(s)]
            if fallback:
                logger.info("Trying %s fallback for: %s", self.secondary.source.value, ", ".join(fallback))
                secondary_prices = {**secondary_prices, **await self._fetch(self.secondary, fallback)}

        if self.secondary is not None:
            for symbol, reading in secondary_prices.items():
                quotes.setdefault(
                    symbol, PriceQuote.from_reading(symbol, reading, self.secondary.source)
                )

        return quotes

    async def _fetch(self, client: Optional[PriceSourceClient], symbols: list[str]) -> PriceMap:
        if client is None or not symbols:
            return {}

        try:
            return await client.fetch_prices(symbols)
        except Exception as e:
            logger.error("%s fetch failed: %s", client.source.value, e)
            return {}
