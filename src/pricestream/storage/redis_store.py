import json
import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional

import redis.asyncio as redis  # type: ignore
from redis.exceptions import RedisError, WatchError  # type: ignore

from pricestream.common.exceptions import PersistenceError
from pricestream.config.enumerations import AlertStatus
from pricestream.models import Alert, MessagingLink, NotificationLogEntry, PriceRecord
from pricestream.storage.base import AlertStore

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 1000


@contextmanager
def persistence_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except RedisError as e:
        logger.error("Redis %s failed: %s", operation, e)
        raise PersistenceError(f"{operation}: {e}") from e


def dump_alert(alert: Alert) -> str:
    data = alert.model_dump(mode="json")
    # Thresholds can exceed 2**53
    data["threshold"] = str(alert.threshold)
    return json.dumps(data)


def dump_record(record: PriceRecord) -> str:
    data = record.model_dump(mode="json")
    data["price"] = str(record.price)
    return json.dumps(data)


class RedisAlertStore(AlertStore):
    """Redis-backed store.

    Layout (all keys under `namespace`):
        alert:<id>                JSON alert
        alerts:active:<SYMBOL>    set of ACTIVE alert ids
        prices:<SYMBOL>           capped list of price records, newest first
        notifications:<alert id>  list of notification log entries
        telegram_links            hash owner -> JSON link
    """

    def __init__(
        self,
        namespace: str = "pricestream",
        host: Optional[str] = None,
        port: Optional[int] = None,
        db: Optional[int] = None,
        history_limit: int = HISTORY_LIMIT,
        client: Optional[redis.Redis] = None,
    ):
        self.namespace = namespace
        self.history_limit = history_limit
        self.redis = client or redis.Redis(
            host=host or os.environ.get("REDIS_HOST", "redis"),
            port=int(port or os.environ.get("REDIS_PORT", 6379)),
            db=int(db if db is not None else os.environ.get("REDIS_DB", 0)),
            decode_responses=True,
        )

    def alert_key(self, alert_id: str) -> str:
        return f"{self.namespace}:alert:{alert_id}"

    def active_key(self, symbol: str) -> str:
        return f"{self.namespace}:alerts:active:{symbol.upper()}"

    def prices_key(self, symbol: str) -> str:
        return f"{self.namespace}:prices:{symbol.upper()}"

    def notifications_key(self, alert_id: str) -> str:
        return f"{self.namespace}:notifications:{alert_id}"

    @property
    def links_key(self) -> str:
        return f"{self.namespace}:telegram_links"

    async def get_active_alerts_by_asset(self, symbol: str) -> list[Alert]:
        with persistence_errors("get_active_alerts_by_asset"):
            alert_ids = sorted(await self.redis.smembers(self.active_key(symbol)))
            if not alert_ids:
                return []
            raw_alerts = await self.redis.mget([self.alert_key(i) for i in alert_ids])

        alerts = [Alert.model_validate_json(raw) for raw in raw_alerts if raw]
        return [a for a in alerts if a.status == AlertStatus.ACTIVE]

    async def get_active_alerts(self) -> list[Alert]:
        alerts: list[Alert] = []
        with persistence_errors("get_active_alerts"):
            async for key in self.redis.scan_iter(match=f"{self.namespace}:alerts:active:*"):
                symbol = key.rsplit(":", 1)[-1]
                alerts.extend(await self.get_active_alerts_by_asset(symbol))
        return alerts

    async def get_alert(self, alert_id: str) -> Optional[Alert]:
        with persistence_errors("get_alert"):
            raw = await self.redis.get(self.alert_key(alert_id))
        return Alert.model_validate_json(raw) if raw else None

    async def save_alert(self, alert: Alert) -> None:
        alert = alert.model_copy(update={"symbol": alert.symbol.upper()})
        with persistence_errors("save_alert"):
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.set(self.alert_key(alert.id), dump_alert(alert))
                if alert.status == AlertStatus.ACTIVE:
                    pipe.sadd(self.active_key(alert.symbol), alert.id)
                else:
                    pipe.srem(self.active_key(alert.symbol), alert.id)
                await pipe.execute()

    async def trigger_alert(self, alert_id: str, triggered_at: int) -> Optional[Alert]:
        """WATCH/MULTI guarded ACTIVE -> TRIGGERED transition."""
        key = self.alert_key(alert_id)

        with persistence_errors("trigger_alert"):
            async with self.redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        return None

                    alert = Alert.model_validate_json(raw)
                    if alert.status != AlertStatus.ACTIVE:
                        return None

                    updated = alert.model_copy(
                        update={"status": AlertStatus.TRIGGERED, "triggered_at": triggered_at}
                    )
                    pipe.multi()
                    pipe.set(key, dump_alert(updated))
                    pipe.srem(self.active_key(alert.symbol), alert_id)
                    await pipe.execute()
                    return updated

                except WatchError:
                    logger.info("Alert %s changed during trigger, leaving it alone", alert_id)
                    return None

    async def mark_alert_notified(self, alert_id: str, notified_at: int) -> bool:
        if (alert := await self.get_alert(alert_id)) is None:
            return False

        with persistence_errors("mark_alert_notified"):
            await self.redis.set(
                self.alert_key(alert_id),
                dump_alert(alert.model_copy(update={"notified_at": notified_at})),
            )
        return True

    async def insert_price_record(self, record: PriceRecord) -> None:
        key = self.prices_key(record.symbol)
        with persistence_errors("insert_price_record"):
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.lpush(key, dump_record(record))
                pipe.ltrim(key, 0, self.history_limit - 1)
                await pipe.execute()

    async def get_latest_price(self, symbol: str) -> Optional[PriceRecord]:
        with persistence_errors("get_latest_price"):
            raw = await self.redis.lindex(self.prices_key(symbol), 0)
        return PriceRecord.model_validate_json(raw) if raw else None

    async def get_price_history(self, symbol: str, limit: int = 100) -> list[PriceRecord]:
        with persistence_errors("get_price_history"):
            rows = await self.redis.lrange(self.prices_key(symbol), 0, limit - 1)
        return [PriceRecord.model_validate_json(row) for row in rows]

    async def log_notification(self, entry: NotificationLogEntry) -> None:
        with persistence_errors("log_notification"):
            await self.redis.rpush(self.notifications_key(entry.alert_id), entry.model_dump_json())

    async def get_notification_log(self, alert_id: str) -> list[NotificationLogEntry]:
        with persistence_errors("get_notification_log"):
            rows = await self.redis.lrange(self.notifications_key(alert_id), 0, -1)
        return [NotificationLogEntry.model_validate_json(row) for row in rows]

    async def get_messaging_link(self, owner_identity: str) -> Optional[MessagingLink]:
        with persistence_errors("get_messaging_link"):
            raw = await self.redis.hget(self.links_key, owner_identity.lower())
        return MessagingLink.model_validate_json(raw) if raw else None

    async def save_messaging_link(self, link: MessagingLink) -> None:
        with persistence_errors("save_messaging_link"):
            await self.redis.hset(self.links_key, link.owner_identity.lower(), link.model_dump_json())

    async def close(self) -> None:
        await self.redis.aclose()
        logger.info("Redis connection closed")
