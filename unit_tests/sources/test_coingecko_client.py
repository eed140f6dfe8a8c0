"""Tests for the CoinGecko client with mocked HTTP responses."""

import json
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from pricestream.config.enumerations import PriceSource
from pricestream.sources.coingecko import API_KEY_PARAM, CoinGeckoClient


def make_response(status: int = 200, payload: Optional[Any] = None) -> MagicMock:
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=payload)
    resp.text = AsyncMock(return_value=json.dumps(payload))
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


def make_session(*responses: MagicMock) -> MagicMock:
    session = MagicMock()
    session.closed = False
    session.get = MagicMock(side_effect=list(responses))
    session.close = AsyncMock()
    return session


BTC_PAYLOAD = {"bitcoin": {"usd": 31000.12345678, "last_updated_at": 1_700_000_000}}


def sent_key(session: MagicMock, call_index: int) -> Optional[str]:
    return session.get.call_args_list[call_index].kwargs["params"].get(API_KEY_PARAM)


@pytest.mark.asyncio
async def test_fetch_prices_parses_fixed_point() -> None:
    session = make_session(make_response(200, BTC_PAYLOAD))
    client = CoinGeckoClient(api_keys=["k1"], session=session)

    prices = await client.fetch_prices(["btc"])

    assert prices["BTC"].price == 3_100_012_345_678
    assert prices["BTC"].timestamp == 1_700_000_000
    assert sent_key(session, 0) == "k1"
    assert client.source == PriceSource.COINGECKO


@pytest.mark.asyncio
async def test_fetch_prices_batches_all_symbols_in_one_call() -> None:
    payload = {
        "bitcoin": {"usd": 30000, "last_updated_at": 1},
        "ethereum": {"usd": 1500, "last_updated_at": 2},
    }
    session = make_session(make_response(200, payload))
    client = CoinGeckoClient(session=session)

    prices = await client.fetch_prices(["BTC", "ETH", "NOPE"])

    assert set(prices) == {"BTC", "ETH"}
    session.get.assert_called_once()
    assert session.get.call_args.kwargs["params"]["ids"] == "bitcoin,ethereum"


@pytest.mark.asyncio
async def test_missing_timestamp_defaults_to_now() -> None:
    session = make_session(make_response(200, {"bitcoin": {"usd": 1}}))
    client = CoinGeckoClient(session=session)

    with patch("pricestream.sources.coingecko.now_seconds", return_value=1234):
        prices = await client.fetch_prices(["BTC"])

    assert prices["BTC"].timestamp == 1234


@pytest.mark.asyncio
async def test_unsupported_symbols_make_no_request() -> None:
    session = make_session()
    client = CoinGeckoClient(session=session)

    assert await client.fetch_prices(["SOMI", "XYZ"]) == {}
    session.get.assert_not_called()


@pytest.mark.asyncio
async def test_rate_limit_rotates_to_next_key() -> None:
    session = make_session(make_response(429), make_response(200, BTC_PAYLOAD))
    client = CoinGeckoClient(api_keys=["k1", "k2"], session=session)

    prices = await client.fetch_prices(["BTC"])

    assert "BTC" in prices
    assert sent_key(session, 0) == "k1"
    assert sent_key(session, 1) == "k2"
    assert client.pool.health["k1"].rate_limited_until is not None
    assert client.pool.health["k1"].consecutive_failures == 0


@pytest.mark.asyncio
async def test_last_attempt_uses_public_endpoint() -> None:
    session = make_session(make_response(429), make_response(200, BTC_PAYLOAD))
    client = CoinGeckoClient(api_keys=["k1"], session=session)

    prices = await client.fetch_prices(["BTC"])

    assert "BTC" in prices
    assert session.get.call_count == 2
    assert sent_key(session, 1) is None


@pytest.mark.asyncio
async def test_public_rate_limit_returns_empty() -> None:
    session = make_session(make_response(429), make_response(429))
    client = CoinGeckoClient(api_keys=["k1"], session=session)

    assert await client.fetch_prices(["BTC"]) == {}
    assert session.get.call_count == 2


@pytest.mark.asyncio
async def test_error_envelope_is_treated_as_rate_limit() -> None:
    envelope = {"status": {"error_code": 429, "error_message": "exceeded"}}
    session = make_session(make_response(200, envelope), make_response(200, BTC_PAYLOAD))
    client = CoinGeckoClient(api_keys=["k1", "k2"], session=session)

    prices = await client.fetch_prices(["BTC"])

    assert "BTC" in prices
    assert client.pool.health["k1"].rate_limited_until is not None


@pytest.mark.asyncio
async def test_server_error_counts_failure_without_retry() -> None:
    session = make_session(make_response(500, {"error": "boom"}))
    client = CoinGeckoClient(api_keys=["k1", "k2"], session=session)

    assert await client.fetch_prices(["BTC"]) == {}
    session.get.assert_called_once()
    assert client.pool.health["k1"].consecutive_failures == 1
    assert client.pool.current_index == 1


@pytest.mark.asyncio
async def test_network_error_returns_empty() -> None:
    session = MagicMock()
    session.closed = False
    session.get = MagicMock(side_effect=aiohttp.ClientConnectionError("down"))
    client = CoinGeckoClient(api_keys=["k1"], session=session)

    assert await client.fetch_prices(["BTC"]) == {}
    assert client.pool.health["k1"].consecutive_failures == 1


@pytest.mark.asyncio
async def test_success_resets_key_health() -> None:
    session = make_session(make_response(200, BTC_PAYLOAD))
    client = CoinGeckoClient(api_keys=["k1"], session=session)
    client.pool.health["k1"].consecutive_failures = 2

    await client.fetch_prices(["BTC"])

    assert client.pool.health["k1"].consecutive_failures == 0


@pytest.mark.asyncio
async def test_zero_or_missing_prices_are_skipped() -> None:
    payload = {"bitcoin": {"usd": 0}, "ethereum": {}}
    session = make_session(make_response(200, payload))
    client = CoinGeckoClient(session=session)

    assert await client.fetch_prices(["BTC", "ETH"]) == {}


@pytest.mark.asyncio
async def test_ping() -> None:
    session = make_session(make_response(200, {"gecko_says": "(V3) To the Moon!"}))
    client = CoinGeckoClient(session=session)

    assert await client.ping() is True
    assert session.get.call_args.args[0].endswith("/ping")


@pytest.mark.asyncio
async def test_close_leaves_injected_session_open() -> None:
    session = make_session()
    client = CoinGeckoClient(session=session)

    await client.close()

    session.close.assert_not_called()


def test_key_status() -> None:
    client = CoinGeckoClient(api_keys=["k1", "k2"], session=make_session())
    status = client.get_key_status()
    assert status.total == 2
    assert status.healthy == 2
