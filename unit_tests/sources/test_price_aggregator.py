"""Tests for primary/secondary price aggregation."""

from typing import Iterable, Optional

import pytest

from pricestream.config.enumerations import PriceSource
from pricestream.models import SourceReading
from pricestream.sources.aggregator import PriceAggregator
from pricestream.sources.base import PriceMap


class FakeSource:
    def __init__(
        self,
        source: PriceSource,
        supported: set[str],
        prices: dict[str, int],
        error: Optional[Exception] = None,
    ) -> None:
        self.source = source
        self.supported = supported
        self.prices = prices
        self.error = error
        self.calls: list[list[str]] = []

    def supports(self, symbol: str) -> bool:
        return symbol in self.supported

    async def fetch_prices(self, symbols: Iterable[str]) -> PriceMap:
        symbols = list(symbols)
        self.calls.append(symbols)
        if self.error is not None:
            raise self.error
        return {
            s: SourceReading(price=self.prices[s], timestamp=1_700_000_000)
            for s in symbols
            if s in self.prices
        }

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


def make_primary(prices: dict[str, int], **kwargs) -> FakeSource:
    return FakeSource(PriceSource.COINGECKO, {"BTC", "ETH", "USDC"}, prices, **kwargs)


def make_secondary(prices: dict[str, int]) -> FakeSource:
    return FakeSource(PriceSource.DIA, {"BTC", "ETH", "SOMI"}, prices)


@pytest.mark.asyncio
async def test_primary_wins_when_both_sources_answer() -> None:
    primary = make_primary({"BTC": 100})
    secondary = make_secondary({"BTC": 999})
    aggregator = PriceAggregator(primary, secondary)

    quotes = await aggregator.aggregate(["BTC"])

    assert quotes["BTC"].price == 100
    assert quotes["BTC"].source == PriceSource.COINGECKO
    assert secondary.calls == []


@pytest.mark.asyncio
async def test_three_symbol_scenario() -> None:
    primary = make_primary({"BTC": 3_000_000_000_000, "ETH": 160_000_000_000})
    secondary = make_secondary({"BTC": 1, "SOMI": 50_000_000})
    aggregator = PriceAggregator(primary, secondary, secondary_only={"SOMI"})

    quotes = await aggregator.aggregate(["BTC", "ETH", "SOMI"])

    assert set(quotes) == {"BTC", "ETH", "SOMI"}
    assert quotes["BTC"].source == PriceSource.COINGECKO
    assert quotes["ETH"].source == PriceSource.COINGECKO
    assert quotes["SOMI"].source == PriceSource.DIA
    assert quotes["SOMI"].price == 50_000_000
    assert primary.calls == [["BTC", "ETH"]]


@pytest.mark.asyncio
async def test_secondary_fills_symbols_primary_missed() -> None:
    primary = make_primary({"BTC": 100})
    secondary = make_secondary({"ETH": 200})
    aggregator = PriceAggregator(primary, secondary)

    quotes = await aggregator.aggregate(["BTC", "ETH"])

    assert quotes["ETH"].price == 200
    assert quotes["ETH"].source == PriceSource.DIA
    assert secondary.calls == [["ETH"]]


@pytest.mark.asyncio
async def test_symbol_missing_everywhere_is_omitted() -> None:
    primary = make_primary({})
    secondary = make_secondary({})
    aggregator = PriceAggregator(primary, secondary)

    quotes = await aggregator.aggregate(["USDC", "DOGE"])

    assert quotes == {}


@pytest.mark.asyncio
async def test_primary_exception_falls_back_to_secondary() -> None:
    primary = make_primary({}, error=RuntimeError("boom"))
    secondary = make_secondary({"BTC": 7})
    aggregator = PriceAggregator(primary, secondary)

    quotes = await aggregator.aggregate(["BTC"])

    assert quotes["BTC"].source == PriceSource.DIA


@pytest.mark.asyncio
async def test_without_secondary() -> None:
    aggregator = PriceAggregator(make_primary({"BTC": 1}))

    quotes = await aggregator.aggregate(["BTC", "SOMI"])

    assert set(quotes) == {"BTC"}


def test_plan_splits_batches() -> None:
    aggregator = PriceAggregator(make_primary({}), make_secondary({}), secondary_only={"SOMI"})

    primary_batch, secondary_batch = aggregator.plan(["btc", "SOMI", "ETH", "DOGE", "BTC"])

    assert primary_batch == ["BTC", "ETH"]
    assert secondary_batch == ["SOMI"]
