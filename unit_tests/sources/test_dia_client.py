"""Tests for the DIA oracle client with a mocked contract."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from web3.exceptions import ContractLogicError

from pricestream.config.enumerations import PriceSource
from pricestream.sources.dia import DIA_ORACLE_ADDRESS, DiaOracleClient


def make_client(values: dict[str, tuple[int, int]], enabled: bool = True) -> DiaOracleClient:
    client = DiaOracleClient("http://localhost:8545", enabled=enabled, web3=MagicMock())

    async def read_value(key: str) -> tuple[int, int]:
        if key not in values:
            raise ContractLogicError("execution reverted")
        return values[key]

    client.read_value = AsyncMock(side_effect=read_value)  # type: ignore[method-assign]
    return client


def test_contract_bound_to_oracle_address() -> None:
    w3 = MagicMock()
    client = DiaOracleClient("http://localhost:8545", web3=w3)

    assert client.oracle_address == DIA_ORACLE_ADDRESS
    assert w3.eth.contract.call_args.kwargs["address"] == DIA_ORACLE_ADDRESS
    assert client.source == PriceSource.DIA


@pytest.mark.asyncio
async def test_read_value_calls_get_value() -> None:
    w3 = MagicMock()
    contract = w3.eth.contract.return_value
    contract.functions.getValue.return_value.call = AsyncMock(return_value=(42, 7))
    client = DiaOracleClient("http://localhost:8545", web3=w3)

    assert await client.read_value("BTC/USD") == (42, 7)
    contract.functions.getValue.assert_called_once_with("BTC/USD")


@pytest.mark.asyncio
async def test_fetch_prices_reads_each_symbol() -> None:
    client = make_client({"BTC/USD": (3_000_000_000_000, 100), "SOMI/USD": (50_000_000, 101)})

    prices = await client.fetch_prices(["BTC", "somi"])

    assert prices["BTC"].price == 3_000_000_000_000
    assert prices["BTC"].timestamp == 100
    assert prices["SOMI"].price == 50_000_000


@pytest.mark.asyncio
async def test_eth_reads_weth_feed() -> None:
    client = make_client({"WETH/USD": (150_000_000_000, 5)})

    prices = await client.fetch_prices(["ETH"])

    assert prices["ETH"].price == 150_000_000_000
    client.read_value.assert_awaited_once_with("WETH/USD")


@pytest.mark.asyncio
async def test_zero_price_is_omitted() -> None:
    client = make_client({"BTC/USD": (0, 0)})
    assert await client.fetch_prices(["BTC"]) == {}


@pytest.mark.asyncio
async def test_failed_read_omits_only_that_symbol() -> None:
    client = make_client({"BTC/USD": (1, 1)})

    prices = await client.fetch_prices(["BTC", "SOL"])

    assert set(prices) == {"BTC"}


@pytest.mark.asyncio
async def test_unsupported_symbol_is_not_read() -> None:
    client = make_client({})

    assert await client.fetch_prices(["DOGE"]) == {}
    client.read_value.assert_not_awaited()


@pytest.mark.asyncio
async def test_disabled_client_returns_empty() -> None:
    client = make_client({"BTC/USD": (1, 1)}, enabled=False)

    assert await client.fetch_prices(["BTC"]) == {}
    assert client.supports("BTC") is False
    assert await client.ping() is False


@pytest.mark.asyncio
async def test_ping_reads_btc() -> None:
    client = make_client({"BTC/USD": (1, 1)})
    assert await client.ping() is True


@pytest.mark.asyncio
async def test_ping_failure() -> None:
    client = make_client({})
    assert await client.ping() is False
