import logging
from collections import defaultdict, deque
from typing import Optional

from pricestream.config.enumerations import AlertStatus
from pricestream.models import Alert, MessagingLink, NotificationLogEntry, PriceRecord
from pricestream.storage.base import AlertStore

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 1000


class InMemoryAlertStore(AlertStore):
    """Process-local store for development runs and tests."""

    def __init__(self, history_limit: int = HISTORY_LIMIT) -> None:
        self.alerts: dict[str, Alert] = {}
        self.links: dict[str, MessagingLink] = {}
        self.history: dict[str, deque[PriceRecord]] = defaultdict(
            lambda: deque(maxlen=history_limit)
        )
        self.notifications: list[NotificationLogEntry] = []

    async def get_active_alerts_by_asset(self, symbol: str) -> list[Alert]:
        symbol = symbol.upper()
        return [
            a.model_copy()
            for a in self.alerts.values()
            if a.symbol == symbol and a.status == AlertStatus.ACTIVE
        ]

    async def get_active_alerts(self) -> list[Alert]:
        return [a.model_copy() for a in self.alerts.values() if a.status == AlertStatus.ACTIVE]

    async def get_alert(self, alert_id: str) -> Optional[Alert]:
        alert = self.alerts.get(alert_id)
        return alert.model_copy() if alert else None

    async def save_alert(self, alert: Alert) -> None:
        self.alerts[alert.id] = alert.model_copy(update={"symbol": alert.symbol.upper()})

    async def trigger_alert(self, alert_id: str, triggered_at: int) -> Optional[Alert]:
        alert = self.alerts.get(alert_id)
        if alert is None or alert.status != AlertStatus.ACTIVE:
            return None

        updated = alert.model_copy(
            update={"status": AlertStatus.TRIGGERED, "triggered_at": triggered_at}
        )
        self.alerts[alert_id] = updated
        return updated.model_copy()

    async def mark_alert_notified(self, alert_id: str, notified_at: int) -> bool:
        if (alert := self.alerts.get(alert_id)) is None:
            return False
        self.alerts[alert_id] = alert.model_copy(update={"notified_at": notified_at})
        return True

    async def insert_price_record(self, record: PriceRecord) -> None:
        self.history[record.symbol].appendleft(record)

    async def get_latest_price(self, symbol: str) -> Optional[PriceRecord]:
        records = self.history.get(symbol.upper())
        return records[0] if records else None

    async def get_price_history(self, symbol: str, limit: int = 100) -> list[PriceRecord]:
        return list(self.history.get(symbol.upper(), ()))[:limit]

    async def log_notification(self, entry: NotificationLogEntry) -> None:
        self.notifications.append(entry)

    async def get_notification_log(self, alert_id: str) -> list[NotificationLogEntry]:
        return [n for n in self.notifications if n.alert_id == alert_id]

    async def get_messaging_link(self, owner_identity: str) -> Optional[MessagingLink]:
        return self.links.get(owner_identity.lower())

    async def save_messaging_link(self, link: MessagingLink) -> None:
        self.links[link.owner_identity.lower()] = link

    async def close(self) -> None:
        logger.debug("In-memory store closed")
