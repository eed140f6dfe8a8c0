from enum import Enum


class PriceSource(str, Enum):
    """Provider tag carried by every published quote."""

    COINGECKO = "COINGECKO"
    DIA = "DIA"


class AlertCondition(str, Enum):
    ABOVE = "ABOVE"
    BELOW = "BELOW"


class AlertStatus(str, Enum):
    ACTIVE = "ACTIVE"
    TRIGGERED = "TRIGGERED"
    DISABLED = "DISABLED"


class PublishState(Enum):
    """States of one publish cycle iteration."""

    IDLE = "idle"
    FETCHING = "fetching"
    PUBLISHING = "publishing"


class WriteStatus(Enum):
    SUBMITTED = "submitted"
    FAILED = "failed"


class NotificationStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class StoreBackend(str, Enum):
    REDIS = "redis"
    MEMORY = "memory"
