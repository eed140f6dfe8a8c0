"""Query and format publisher status from the alert store.

Used by the `pricestream status` command.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from pricestream.common.exceptions import PersistenceError
from pricestream.config.settings import Settings
from pricestream.models import PriceRecord
from pricestream.storage import create_store
from pricestream.storage.base import AlertStore
from pricestream.utils.helpers import format_price


@dataclass
class SymbolStatus:
    symbol: str
    latest: Optional[PriceRecord] = None

    @property
    def age_seconds(self) -> Optional[float]:
        if self.latest is None:
            return None
        return time.time() - self.latest.timestamp

    @property
    def age_display(self) -> str:
        age = self.age_seconds
        if age is None:
            return "never"
        if age < 60:
            return f"{age:.0f}s ago"
        if age < 3600:
            return f"{age / 60:.0f}m ago"
        if age < 86400:
            return f"{age / 3600:.1f}h ago"
        return f"{age / 86400:.1f}d ago"


@dataclass
class StatusResult:
    backend: str = ""
    store_connected: bool = False
    active_alerts: int = 0
    symbols: list[SymbolStatus] = field(default_factory=list)
    error: Optional[str] = None


async def query_status(
    settings: Settings, store: Optional[AlertStore] = None, timeout: float = 5.0
) -> StatusResult:
    """Collect the latest price per configured symbol and the active alert count."""
    result = StatusResult(backend=settings.store_backend.value)
    owns_store = store is None
    store = store or create_store(settings)

    try:
        result.active_alerts = len(
            await asyncio.wait_for(store.get_active_alerts(), timeout=timeout)
        )
        result.store_connected = True

        for symbol in settings.symbol_list:
            latest = await store.get_latest_price(symbol)
            result.symbols.append(SymbolStatus(symbol=symbol, latest=latest))

    except (PersistenceError, asyncio.TimeoutError) as e:
        result.error = f"Cannot read {result.backend} store: {str(e) or 'timed out'}"
    finally:
        if owns_store:
            await store.close()

    return result


def format_status(result: StatusResult, as_json: bool = False) -> str:
    if as_json:
        return _format_json(result)
    return _format_table(result)


def _format_json(result: StatusResult) -> str:
    data: dict[str, object] = {
        "store": {"backend": result.backend, "connected": result.store_connected},
        "active_alerts": result.active_alerts,
        "prices": [
            {
                "symbol": s.symbol,
                "price": format_price(s.latest.price, s.latest.decimals) if s.latest else None,
                "source": s.latest.source.value if s.latest else None,
                "updated_at": (
                    datetime.fromtimestamp(s.latest.timestamp, tz=timezone.utc).isoformat()
                    if s.latest
                    else None
                ),
                "age": s.age_display,
            }
            for s in result.symbols
        ],
    }
    if result.error:
        data["error"] = result.error
    return json.dumps(data, indent=2)


def _format_table(result: StatusResult) -> str:
    lines: list[str] = []

    lines.append("Store Health")
    lines.append("-" * 40)
    state = "Connected" if result.store_connected else "Disconnected"
    lines.append(f"  Backend:  {result.backend} ({state})")

    if result.error:
        lines.append(f"  Error:    {result.error}")
        return "\n".join(lines)

    lines.append(f"  Alerts:   {result.active_alerts} active")
    lines.append("")
    lines.append("Latest Prices")
    lines.append("-" * 40)

    for s in result.symbols:
        if s.latest is None:
            lines.append(f"  {s.symbol:<8s} {'-':>16s}  never")
            continue
        price = f"${format_price(s.latest.price, s.latest.decimals)}"
        lines.append(f"  {s.symbol:<8s} {price:>16s}  {s.latest.source.value:<10s} {s.age_display}")

    return "\n".join(lines)
