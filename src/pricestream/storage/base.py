from abc import ABC, abstractmethod
from typing import Optional

from pricestream.models import (
    Alert,
    MessagingLink,
    NotificationLogEntry,
    PriceRecord,
)


class AlertStore(ABC):
    """Persistence operations the pipeline consumes.

    Alert creation and deletion belong to the CRUD layer; `save_alert` and
    `save_messaging_link` exist for that layer and for seeding.
    """

    @abstractmethod
    async def get_active_alerts_by_asset(self, symbol: str) -> list[Alert]:
        """Get all ACTIVE alerts for a symbol"""
        pass

    @abstractmethod
    async def get_active_alerts(self) -> list[Alert]:
        """Get all ACTIVE alerts"""
        pass

    @abstractmethod
    async def get_alert(self, alert_id: str) -> Optional[Alert]:
        pass

    @abstractmethod
    async def save_alert(self, alert: Alert) -> None:
        pass

    @abstractmethod
    async def trigger_alert(self, alert_id: str, triggered_at: int) -> Optional[Alert]:
        """Move an ACTIVE alert to TRIGGERED.

        Returns the updated alert, or None when the alert is missing or no
        longer ACTIVE.
        """
        pass

    @abstractmethod
    async def mark_alert_notified(self, alert_id: str, notified_at: int) -> bool:
        pass

    @abstractmethod
    async def insert_price_record(self, record: PriceRecord) -> None:
        pass

    @abstractmethod
    async def get_latest_price(self, symbol: str) -> Optional[PriceRecord]:
        pass

    @abstractmethod
    async def get_price_history(self, symbol: str, limit: int = 100) -> list[PriceRecord]:
        """Most recent first"""
        pass

    @abstractmethod
    async def log_notification(self, entry: NotificationLogEntry) -> None:
        pass

    @abstractmethod
    async def get_notification_log(self, alert_id: str) -> list[NotificationLogEntry]:
        pass

    @abstractmethod
    async def get_messaging_link(self, owner_identity: str) -> Optional[MessagingLink]:
        pass

    @abstractmethod
    async def save_messaging_link(self, link: MessagingLink) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass
