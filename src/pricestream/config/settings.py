# src/pricestream/config/settings.py

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

from pricestream.config.enumerations import StoreBackend


class Settings(BaseSettings):
    """Runtime configuration read from the environment and a `.env` file."""

    symbols: str = "BTC,ETH,USDC,USDT,SOMI"
    publish_interval_ms: int = 30_000

    coingecko_api_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key_1: Optional[str] = None
    coingecko_api_key_2: Optional[str] = None
    coingecko_api_key_3: Optional[str] = None

    rpc_url: str = "https://dream-rpc.somnia.network"
    streams_contract_address: str = "0x6AB397FF662e42312c003175DCD76EfF69D048Fc"
    private_key: Optional[str] = None
    enable_dia: bool = True

    telegram_bot_token: Optional[str] = None
    telegram_api_url: str = "https://api.telegram.org"

    store_backend: StoreBackend = StoreBackend.REDIS
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_db: int = 0

    http_timeout_seconds: float = 10.0
    receipt_timeout_seconds: float = 120.0
    write_delay_ms: int = 50
    dedup_capacity: int = 10_000

    class Config:
        env_file = ".env"
        extra = "ignore"

    @field_validator("symbols")
    @classmethod
    def normalize_symbols(cls, value: str) -> str:
        return ",".join(s.strip().upper() for s in value.split(",") if s.strip())

    @property
    def symbol_list(self) -> list[str]:
        return [s for s in self.symbols.split(",") if s]

    @property
    def api_keys(self) -> list[str]:
        """Configured CoinGecko keys in rotation order."""
        keys = [self.coingecko_api_key_1, self.coingecko_api_key_2, self.coingecko_api_key_3]
        return [k for k in keys if k]

    @property
    def publish_interval(self) -> float:
        return self.publish_interval_ms / 1000

    @property
    def write_delay(self) -> float:
        return self.write_delay_ms / 1000
