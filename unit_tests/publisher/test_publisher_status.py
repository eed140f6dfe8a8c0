"""Tests for publisher status query and formatting."""

import json
import time
from unittest.mock import AsyncMock

import pytest

from pricestream.common.exceptions import PersistenceError
from pricestream.config.enumerations import AlertCondition, PriceSource
from pricestream.config.settings import Settings
from pricestream.models import Alert, PriceRecord
from pricestream.publisher.status import StatusResult, SymbolStatus, format_status, query_status
from pricestream.storage.memory import InMemoryAlertStore


def make_settings() -> Settings:
    return Settings(_env_file=None, symbols="BTC,ETH", store_backend="memory")


def make_record(symbol: str, age: float) -> PriceRecord:
    return PriceRecord(
        symbol=symbol,
        price=3_100_012_345_678,
        decimals=8,
        source=PriceSource.COINGECKO,
        timestamp=int(time.time() - age),
    )


# --- SymbolStatus ---


def test_age_display_never() -> None:
    assert SymbolStatus(symbol="BTC").age_display == "never"


@pytest.mark.parametrize(
    "age,suffix", [(10, "s ago"), (300, "m ago"), (7200, "h ago"), (3 * 86400, "d ago")]
)
def test_age_display_units(age: float, suffix: str) -> None:
    status = SymbolStatus(symbol="BTC", latest=make_record("BTC", age))
    assert status.age_display.endswith(suffix)


# --- query_status ---


@pytest.mark.asyncio
async def test_query_status_reads_store() -> None:
    store = InMemoryAlertStore()
    await store.insert_price_record(make_record("BTC", 5))
    await store.save_alert(
        Alert(
            id="a1",
            owner_identity="0xabc",
            symbol="BTC",
            condition=AlertCondition.ABOVE,
            threshold=1,
            created_at=1,
        )
    )

    result = await query_status(make_settings(), store=store)

    assert result.store_connected is True
    assert result.active_alerts == 1
    assert [s.symbol for s in result.symbols] == ["BTC", "ETH"]
    assert result.symbols[0].latest is not None
    assert result.symbols[1].latest is None


@pytest.mark.asyncio
async def test_query_status_store_error() -> None:
    store = InMemoryAlertStore()
    store.get_active_alerts = AsyncMock(side_effect=PersistenceError("refused"))  # type: ignore[method-assign]

    result = await query_status(make_settings(), store=store)

    assert result.store_connected is False
    assert result.error is not None and "refused" in result.error


# --- format_status ---


def test_format_table() -> None:
    result = StatusResult(
        backend="redis",
        store_connected=True,
        active_alerts=2,
        symbols=[SymbolStatus("BTC", make_record("BTC", 5)), SymbolStatus("ETH")],
    )

    output = format_status(result)

    assert "redis (Connected)" in output
    assert "2 active" in output
    assert "$31000.12" in output
    assert "never" in output


def test_format_table_error() -> None:
    result = StatusResult(backend="redis", error="Cannot read redis store: refused")

    output = format_status(result)

    assert "Disconnected" in output
    assert "refused" in output
    assert "Latest Prices" not in output


def test_format_json() -> None:
    result = StatusResult(
        backend="memory",
        store_connected=True,
        symbols=[SymbolStatus("BTC", make_record("BTC", 5))],
    )

    data = json.loads(format_status(result, as_json=True))

    assert data["prices"][0]["price"] == "31000.12"
    assert data["prices"][0]["source"] == "COINGECKO"
    assert "error" not in data
