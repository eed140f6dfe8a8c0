from pricestream.config.enumerations import (
    AlertCondition,
    AlertStatus,
    NotificationStatus,
    PriceSource,
    PublishState,
    StoreBackend,
    WriteStatus,
)
from pricestream.config.settings import Settings

__all__ = [
    "AlertCondition",
    "AlertStatus",
    "NotificationStatus",
    "PriceSource",
    "PublishState",
    "Settings",
    "StoreBackend",
    "WriteStatus",
]
