import time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from pricestream.models import PRICE_DECIMALS

DISPLAY_PRECISION = 2


def now_seconds() -> int:
    return int(time.time())


def to_fixed_point(value: Union[float, int, str], decimals: int = PRICE_DECIMALS) -> int:
    """Convert a provider's decimal price to a fixed-point integer."""
    try:
        scaled = Decimal(str(value)) * (Decimal(10) ** decimals)
    except InvalidOperation:
        raise ValueError(f"Not a price: {value!r}") from None

    if not scaled.is_finite():
        raise ValueError(f"Not a price: {value!r}")

    if scaled < 0:
        raise ValueError(f"Price must be non-negative: {value!r}")

    return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_price(
    price: int, decimals: int = PRICE_DECIMALS, precision: int = DISPLAY_PRECISION
) -> str:
    """Render a fixed-point price for display.

    The fraction is truncated, not rounded, to `precision` digits.

    >>> format_price(3_100_012_345_678)
    '31000.12'
    """
    divisor = 10**decimals
    whole, fraction = divmod(price, divisor)
    if decimals == 0 or precision == 0:
        return str(whole)

    fraction_digits = str(fraction).zfill(decimals)[:precision]
    return f"{whole}.{fraction_digits}"


def parse_price(text: str, decimals: int = PRICE_DECIMALS) -> int:
    """Parse a formatted price back into a fixed-point integer."""
    text = text.strip().lstrip("$").replace(",", "")
    if not text:
        raise ValueError("Empty price string")

    whole, _, fraction = text.partition(".")
    if not (whole or "0").isdigit() or (fraction and not fraction.isdigit()):
        raise ValueError(f"Not a price: {text!r}")

    if len(fraction) > decimals:
        raise ValueError(f"More than {decimals} fractional digits: {text!r}")

    return int(whole or "0") * 10**decimals + int(fraction.ljust(decimals, "0") or "0")


def short_id(value: str, length: int = 10) -> str:
    return f"{value[:length]}..." if len(value) > length else value


def short_address(address: str) -> str:
    """0x1234...abcd style rendering of a wallet address."""
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def format_uptime(seconds: float) -> str:
    """Format elapsed seconds as a human-readable uptime string."""
    total = int(seconds)
    days, remainder = divmod(total, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, _ = divmod(remainder, 60)
    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
