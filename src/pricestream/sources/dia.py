"""DIA oracle client.

Reads prices from the DIA Oracle V2 key-value contract. Used for assets the
primary provider does not list and as a fallback for the ones it misses.
"""

import asyncio
import logging
from typing import Iterable, Optional

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import Web3Exception

from pricestream.config.enumerations import PriceSource
from pricestream.models import SourceReading
from pricestream.sources.base import PriceMap

logger = logging.getLogger(__name__)

DIA_ORACLE_ADDRESS = "0x9206296Ea3aEE3E6bdC07F7AaeF14DfCf33d865D"

DIA_ORACLE_V2_ABI = [
    {
        "name": "getValue",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "key", "type": "string"}],
        "outputs": [
            {"name": "price", "type": "uint128"},
            {"name": "timestamp", "type": "uint128"},
        ],
    }
]

DIA_ASSET_KEYS: dict[str, str] = {
    "BTC": "BTC/USD",
    "WETH": "WETH/USD",
    "USDT": "USDT/USD",
    "USDC": "USDC/USD",
    "ARB": "ARB/USD",
    "SOL": "SOL/USD",
    "SOMI": "SOMI/USD",
    # ETH reads the WETH feed
    "ETH": "WETH/USD",
}

# Never requested from the primary provider
DIA_ONLY_ASSETS = frozenset({"SOMI"})

PING_KEY = "BTC/USD"


class DiaOracleClient:
    """Secondary price source reading `getValue(key)` from the oracle contract.

    DIA feeds use 8 decimals, matching the published quote precision. A zero
    price means the key is unset and the symbol is left out of the result.
    """

    source = PriceSource.DIA

    def __init__(
        self,
        rpc_url: str,
        enabled: bool = True,
        oracle_address: str = DIA_ORACLE_ADDRESS,
        asset_keys: Optional[dict[str, str]] = None,
        timeout: float = 10.0,
        web3: Optional[AsyncWeb3] = None,
    ) -> None:
        self.enabled = enabled
        self.oracle_address = AsyncWeb3.to_checksum_address(oracle_address)
        self.asset_keys = dict(asset_keys or DIA_ASSET_KEYS)
        self.w3 = web3 or AsyncWeb3(
            AsyncHTTPProvider(
                rpc_url, request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)}
            )
        )
        self.contract = self.w3.eth.contract(address=self.oracle_address, abi=DIA_ORACLE_V2_ABI)

        if self.enabled:
            logger.info("DIA oracle client initialized at %s", self.oracle_address)

    def is_enabled(self) -> bool:
        return self.enabled

    def supports(self, symbol: str) -> bool:
        return self.enabled and symbol.upper() in self.asset_keys

    async def read_value(self, key: str) -> tuple[int, int]:
        price, timestamp = await self.contract.functions.getValue(key).call()
        return int(price), int(timestamp)

    async def fetch_price(self, symbol: str) -> Optional[SourceReading]:
        if not self.enabled:
            return None

        if (key := self.asset_keys.get(symbol.upper())) is None:
            logger.warning("No DIA asset key for %s", symbol)
            return None

        try:
            price, timestamp = await self.read_value(key)
        except (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error("Failed to fetch DIA price for %s: %s", symbol, e)
            return None

        if price == 0:
            logger.warning("No DIA price data for %s", symbol)
            return None

        return SourceReading(price=price, timestamp=timestamp)

    async def fetch_prices(self, symbols: Iterable[str]) -> PriceMap:
        """Read every supported symbol concurrently."""
        if not self.enabled:
            return {}

        wanted = [s for s in dict.fromkeys(s.upper() for s in symbols) if s in self.asset_keys]
        if not wanted:
            return {}

        logger.debug("Fetching DIA prices for %s", ", ".join(wanted))
        readings = await asyncio.gather(*(self.fetch_price(s) for s in wanted))

        results = {
            symbol: reading for symbol, reading in zip(wanted, readings) if reading is not None
        }
        logger.info("Fetched %d/%d DIA prices", len(results), len(wanted))
        return results

    async def ping(self) -> bool:
        if not self.enabled:
            return False

        try:
            price, _ = await self.read_value(PING_KEY)
            return price > 0
        except (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("DIA ping failed: %s", e)
            return False

    async def close(self) -> None:
        disconnect = getattr(self.w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
