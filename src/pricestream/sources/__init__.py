from pricestream.sources.aggregator import PriceAggregator
from pricestream.sources.base import PriceMap, PriceSourceClient
from pricestream.sources.coingecko import COINGECKO_IDS, CoinGeckoClient
from pricestream.sources.credentials import CredentialHealth, CredentialPool, KeyStatus
from pricestream.sources.dia import DIA_ASSET_KEYS, DIA_ONLY_ASSETS, DiaOracleClient

__all__ = [
    "COINGECKO_IDS",
    "CoinGeckoClient",
    "CredentialHealth",
    "CredentialPool",
    "DIA_ASSET_KEYS",
    "DIA_ONLY_ASSETS",
    "DiaOracleClient",
    "KeyStatus",
    "PriceAggregator",
    "PriceMap",
    "PriceSourceClient",
]
