"""Base abstractions for price source clients."""

from typing import Iterable, Protocol

from pricestream.config.enumerations import PriceSource
from pricestream.models import SourceReading

PriceMap = dict[str, SourceReading]


class PriceSourceClient(Protocol):
    """Protocol shared by every provider client.

    `fetch_prices` never raises for partial failure: symbols the provider
    cannot resolve are simply absent from the returned mapping.
    """

    source: PriceSource

    def supports(self, symbol: str) -> bool: ...

    async def fetch_prices(self, symbols: Iterable[str]) -> PriceMap: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...
