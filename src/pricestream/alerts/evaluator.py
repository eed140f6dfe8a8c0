"""Alert evaluation against freshly published prices.

Per crossing alert: record it in the session dedup cache, persist the
ACTIVE -> TRIGGERED transition, then broadcast the triggered event and notify
the owner. Persistence is the commit point; broadcast and notification
failures are logged and never revert it.
"""

import asyncio
import logging
from typing import Callable, Optional

from web3 import Web3

from pricestream.common.exceptions import LedgerWriteError, PersistenceError
from pricestream.ledger.client import EventStream, is_already_registered
from pricestream.ledger.encoding import BYTES32_PATTERN, SchemaEncoder
from pricestream.ledger.serializer import WriteHandle, WriteSerializer
from pricestream.models import Alert
from pricestream.notifications.telegram import TelegramNotifier
from pricestream.storage.base import AlertStore
from pricestream.utils.cache import DEFAULT_CAPACITY, BoundedKeyCache
from pricestream.utils.helpers import format_price, now_seconds, short_id

logger = logging.getLogger(__name__)

ALERT_TRIGGERED_EVENT_ID = "AlertTriggeredV2"
ALERT_EVENT_SCHEMA = (
    "bytes32 alertId, address userAddress, string asset, string condition, "
    "uint256 thresholdPrice, uint256 currentPrice, uint64 triggeredAt"
)


def alert_id_bytes32(alert_id: str) -> str:
    """Alert ids that are already bytes32 hex pass through; others are hashed."""
    if BYTES32_PATTERN.match(alert_id):
        return alert_id.lower()
    return "0x" + bytes(Web3.keccak(text=alert_id)).hex()


class AlertEvaluator:
    def __init__(
        self,
        store: AlertStore,
        serializer: WriteSerializer,
        notifier: Optional[TelegramNotifier] = None,
        dedup_capacity: int = DEFAULT_CAPACITY,
        clock: Callable[[], int] = now_seconds,
    ) -> None:
        self.store = store
        self.serializer = serializer
        self.notifier = notifier
        self.dedup = BoundedKeyCache(dedup_capacity)
        self.clock = clock
        self.encoder = SchemaEncoder(ALERT_EVENT_SCHEMA)
        self.event_registered = False
        self._register_lock = asyncio.Lock()

    async def evaluate(self, symbol: str, current_price: int) -> list[str]:
        """Trigger every ACTIVE alert for `symbol` crossed by `current_price`.

        Returns the ids of alerts moved to TRIGGERED by this call. Raises
        PersistenceError only when the active alerts cannot be loaded.
        """
        alerts = await self.store.get_active_alerts_by_asset(symbol)
        triggered: list[str] = []
        followups = []

        for alert in alerts:
            if alert.id in self.dedup or not alert.is_crossed_by(current_price):
                continue

            logger.info(
                "Alert triggered: %s %s %s (current: %s)",
                alert.symbol,
                alert.condition.value,
                format_price(alert.threshold),
                format_price(current_price),
            )

            triggered_at = self.clock()
            self.dedup.add(alert.id, triggered_at)

            try:
                updated = await self.store.trigger_alert(alert.id, triggered_at)
            except PersistenceError as e:
                logger.error("Failed to persist trigger for %s: %s", short_id(alert.id), e)
                updated = None

            if updated is None:
                # Not committed; the alert stays ACTIVE and is evaluated again next cycle
                self.dedup.discard(alert.id)
                continue

            triggered.append(alert.id)
            followups.append(self.broadcast(updated, current_price))
            if self.notifier is not None:
                followups.append(self.notifier.notify_alert(updated, current_price))

        if followups:
            results = await asyncio.gather(*followups, return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    logger.error("Post-trigger step failed for %s: %s", symbol, result)

        return triggered

    async def broadcast(self, alert: Alert, current_price: int) -> WriteHandle:
        """Emit the triggered event through the write serializer."""
        await self.ensure_event_registered()

        data = self.encoder.encode_data(
            {
                "alertId": alert_id_bytes32(alert.id),
                "userAddress": alert.owner_identity,
                "asset": alert.symbol,
                "condition": alert.condition.value,
                "thresholdPrice": alert.threshold,
                "currentPrice": current_price,
                "triggeredAt": alert.triggered_at or self.clock(),
            }
        )

        handle = await self.serializer.emit_events(
            f"alert-{short_id(alert.id, 10)}",
            [EventStream(id=ALERT_TRIGGERED_EVENT_ID, argument_topics=[], data=data)],
        )
        logger.info("Event emitted for %s", short_id(alert.id))
        return handle

    async def ensure_event_registered(self) -> None:
        async with self._register_lock:
            if self.event_registered:
                return

            ledger = self.serializer.ledger

            async def execute() -> WriteHandle:
                result = await ledger.register_event_schema(ALERT_TRIGGERED_EVENT_ID, "alertData")
                if not result.ok and is_already_registered(result.error or ""):
                    return None
                return result.unwrap()

            try:
                await self.serializer.submit("register-alert-event", execute)
            except LedgerWriteError as e:
                if not is_already_registered(str(e)):
                    logger.error("Failed to register %s schema: %s", ALERT_TRIGGERED_EVENT_ID, e)
                    return

            self.event_registered = True
            logger.info("%s event schema registered", ALERT_TRIGGERED_EVENT_ID)

    async def active_alert_count(self) -> int:
        return len(await self.store.get_active_alerts())
