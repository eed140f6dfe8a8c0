"""CoinGecko client with multi-key fallback.

Uses the CoinGecko Demo API with up to three API keys. A key that fails or
hits the rate limit is rotated out and the public endpoint is the last resort.

Demo API: https://api.coingecko.com/api/v3/
Rate limit: 30 calls/min per key
"""

import asyncio
import logging
import time
from typing import Any, Callable, Iterable, Optional

import aiohttp

from pricestream.common.exceptions import (
    PriceStreamError,
    RateLimitedError,
    validate_async_response,
)
from pricestream.config.enumerations import PriceSource
from pricestream.models import PRICE_DECIMALS, SourceReading
from pricestream.sources.base import PriceMap
from pricestream.sources.credentials import CredentialPool, KeyStatus, mask_key
from pricestream.utils.helpers import now_seconds, to_fixed_point

logger = logging.getLogger(__name__)

COINGECKO_API_BASE = "https://api.coingecko.com/api/v3"
API_KEY_PARAM = "x_cg_demo_api_key"

COINGECKO_IDS: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "USDC": "usd-coin",
    "USDT": "tether",
    "ARB": "arbitrum",
    "SOL": "solana",
    "WETH": "weth",
    "MATIC": "matic-network",
    "AVAX": "avalanche-2",
    "LINK": "chainlink",
    "UNI": "uniswap",
    "AAVE": "aave",
    "SOMNIA": "somnia",
    "DOGE": "dogecoin",
    "PEPE": "pepe",
    "SHIB": "shiba-inu",
}


class CoinGeckoClient:
    """Primary price source backed by the CoinGecko `/simple/price` endpoint."""

    source = PriceSource.COINGECKO

    def __init__(
        self,
        api_keys: Optional[list[str]] = None,
        base_url: str = COINGECKO_API_BASE,
        coin_ids: Optional[dict[str, str]] = None,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.coin_ids = dict(coin_ids or COINGECKO_IDS)
        self.pool = CredentialPool(api_keys or [], clock=clock)
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session = session
        self._owns_session = session is None

        if len(self.pool) == 0:
            logger.warning("No CoinGecko API keys configured, using public API (lower rate limits)")
        else:
            logger.info("Loaded %d CoinGecko API key(s)", len(self.pool))

    def get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                headers={"Accept": "application/json"}, timeout=self.timeout
            )
            self._owns_session = True
        return self.session

    def supports(self, symbol: str) -> bool:
        return symbol.upper() in self.coin_ids

    async def fetch_prices(self, symbols: Iterable[str]) -> PriceMap:
        """Fetch USD prices for every supported symbol in one batched call.

        Rate-limited keys are rotated out and the same request is retried, up
        to one attempt per key plus one against the public endpoint. Any other
        failure ends the call with an empty result.
        """
        valid = [s for s in dict.fromkeys(s.upper() for s in symbols) if s in self.coin_ids]
        if not valid:
            return {}

        ids = ",".join(self.coin_ids[s] for s in valid)
        attempts = len(self.pool) + 1

        for attempt in range(attempts):
            is_last = attempt == attempts - 1
            api_key = None if is_last else self.pool.next_eligible()

            try:
                data = await self.request_prices(ids, api_key)

            except RateLimitedError:
                if api_key is None:
                    logger.warning("Rate limited on public API")
                    return {}
                self.pool.mark_failure(api_key, rate_limited=True)
                logger.warning(
                    "Rate limited on key %s... (attempt %d/%d), trying next",
                    mask_key(api_key),
                    attempt + 1,
                    attempts,
                )
                continue

            except (PriceStreamError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                if api_key is not None:
                    self.pool.mark_failure(api_key)
                logger.error("CoinGecko attempt %d/%d failed: %s", attempt + 1, attempts, e)
                return {}

            if api_key is not None:
                self.pool.mark_success(api_key)

            results = self.parse_prices(data, valid)
            logger.info("Fetched %d/%d CoinGecko prices", len(results), len(valid))
            return results

        return {}

    async def request_prices(self, ids: str, api_key: Optional[str]) -> dict[str, Any]:
        params = {"ids": ids, "vs_currencies": "usd", "include_last_updated_at": "true"}
        if api_key:
            params[API_KEY_PARAM] = api_key

        async with self.get_session().get(
            f"{self.base_url}/simple/price", params=params
        ) as response:
            await validate_async_response(response, source="coingecko")
            data = await response.json()

        if not isinstance(data, dict):
            raise ValueError(f"Unexpected CoinGecko payload: {type(data).__name__}")

        # Some plans answer 200 with an error envelope instead of 429
        status = data.get("status")
        if isinstance(status, dict) and status.get("error_code") == 429:
            raise RateLimitedError("coingecko")

        return data

    def parse_prices(self, data: dict[str, Any], symbols: list[str]) -> PriceMap:
        results: PriceMap = {}

        for symbol in symbols:
            entry = data.get(self.coin_ids[symbol])
            if not isinstance(entry, dict) or not entry.get("usd"):
                continue

            try:
                price = to_fixed_point(entry["usd"], PRICE_DECIMALS)
                timestamp = int(entry.get("last_updated_at") or now_seconds())
                results[symbol] = SourceReading(price=price, timestamp=timestamp)
            except ValueError as e:
                logger.warning("Skipping malformed CoinGecko price for %s: %s", symbol, e)

        return results

    async def ping(self) -> bool:
        params = {}
        if api_key := self.pool.next_eligible():
            params[API_KEY_PARAM] = api_key

        try:
            async with self.get_session().get(f"{self.base_url}/ping", params=params) as response:
                return 200 <= response.status < 300
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("CoinGecko ping failed: %s", e)
            return False

    def get_key_status(self) -> KeyStatus:
        return self.pool.status()

    async def close(self) -> None:
        if self.session is not None and self._owns_session and not self.session.closed:
            await self.session.close()
