import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pricestream.config.enumerations import (
    AlertCondition,
    AlertStatus,
    NotificationStatus,
    PriceSource,
)

logger = logging.getLogger(__name__)

PRICE_DECIMALS = 8


class SourceReading(BaseModel):
    """A raw reading from one provider before it is tagged with its source."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    price: int = Field(description="Fixed-point price", ge=0)
    timestamp: int = Field(description="Unix seconds reported by the provider", ge=0)


class PriceQuote(BaseModel):
    """The authoritative reading for one symbol in one publish cycle."""

    model_config = ConfigDict(
        frozen=True,
        validate_assignment=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    symbol: str = Field(description="Upper-case asset symbol")
    price: int = Field(description="Fixed-point price", ge=0)
    decimals: int = Field(default=PRICE_DECIMALS, ge=0, le=255)
    timestamp: int = Field(description="Unix seconds", ge=0)
    source: PriceSource

    @field_validator("symbol")
    @classmethod
    def upper_symbol(cls, value: str) -> str:
        return value.upper()

    @classmethod
    def from_reading(cls, symbol: str, reading: SourceReading, source: PriceSource) -> "PriceQuote":
        return cls(symbol=symbol, price=reading.price, timestamp=reading.timestamp, source=source)


class Alert(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=False)

    id: str
    owner_identity: str = Field(description="Wallet address of the alert owner")
    symbol: str
    condition: AlertCondition
    threshold: int = Field(description="Fixed-point threshold price", ge=0)
    status: AlertStatus = AlertStatus.ACTIVE
    created_at: int
    triggered_at: Optional[int] = None
    notified_at: Optional[int] = None

    def is_crossed_by(self, price: int) -> bool:
        """True when `price` satisfies the alert condition."""
        if self.condition == AlertCondition.ABOVE:
            return price >= self.threshold
        return price <= self.threshold


class PriceRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    price: int
    decimals: int
    source: PriceSource
    timestamp: int

    @classmethod
    def from_quote(cls, quote: PriceQuote) -> "PriceRecord":
        return cls(
            symbol=quote.symbol,
            price=quote.price,
            decimals=quote.decimals,
            source=quote.source,
            timestamp=quote.timestamp,
        )


class MessagingLink(BaseModel):
    """Link between an owner identity and a Telegram chat."""

    owner_identity: str
    chat_id: str
    username: Optional[str] = None
    verified: bool = False
    linked_at: int = 0


class NotificationLogEntry(BaseModel):
    alert_id: str
    owner_identity: str
    chat_id: Optional[str] = None
    channel: str = "alert"
    status: NotificationStatus
    error_message: Optional[str] = None
    created_at: int = 0
