"""Best-effort Telegram delivery for triggered alerts.

Failures are written to the notification log and dropped. Nothing here is
retried and nothing here raises into the caller.
"""

import asyncio
import html
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import aiohttp

from pricestream.common.exceptions import (
    NotificationError,
    PersistenceError,
    PriceStreamError,
    validate_async_response,
)
from pricestream.config.enumerations import AlertCondition, NotificationStatus
from pricestream.models import PRICE_DECIMALS, Alert, NotificationLogEntry
from pricestream.storage.base import AlertStore
from pricestream.utils.helpers import format_price, now_seconds, short_address, short_id

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
NO_LINK_MESSAGE = "No verified Telegram link"


def format_alert_message(
    alert: Alert,
    current_price: int,
    decimals: int = PRICE_DECIMALS,
    sent_at: Optional[datetime] = None,
) -> str:
    sent_at = sent_at or datetime.now(timezone.utc)
    direction = "above" if alert.condition == AlertCondition.ABOVE else "below"

    return "\n".join(
        [
            "🔔 <b>Price Alert Triggered!</b>",
            "",
            f"<b>Asset:</b> {html.escape(alert.symbol)}",
            f"<b>Condition:</b> Price went {direction} ${format_price(alert.threshold, decimals)}",
            f"<b>Current Price:</b> ${format_price(current_price, decimals)}",
            f"<b>Time:</b> {sent_at.strftime('%a, %d %b %Y %H:%M:%S GMT')}",
            "",
            f"<i>Wallet: {html.escape(short_address(alert.owner_identity))}</i>",
        ]
    )


class TelegramNotifier:
    def __init__(
        self,
        store: AlertStore,
        bot_token: Optional[str],
        api_url: str = TELEGRAM_API_URL,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], int] = now_seconds,
    ) -> None:
        self.store = store
        self.bot_token = bot_token
        self.api_url = api_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session = session
        self._owns_session = session is None
        self.clock = clock

        if not self.bot_token:
            logger.warning("TELEGRAM_BOT_TOKEN not set, alert notifications are disabled")

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token)

    def get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self.session

    async def send_message(self, chat_id: str, text: str, parse_mode: str = "HTML") -> None:
        """POST sendMessage. Raises NotificationError on any failure."""
        if not self.bot_token:
            raise NotificationError("bot token not configured")

        url = f"{self.api_url}/bot{self.bot_token}/sendMessage"
        payload = {"chat_id": chat_id, "text": text, "parse_mode": parse_mode}

        try:
            async with self.get_session().post(url, json=payload) as response:
                await validate_async_response(response, source="telegram")
        except PriceStreamError as e:
            raise NotificationError(str(e), e.response) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NotificationError(f"{type(e).__name__}: {e}") from e

    async def send_test_message(self, chat_id: str) -> bool:
        text = (
            "🧪 <b>Test Notification</b>\n\n"
            "If you see this, your price alert notifications are working!"
        )
        try:
            await self.send_message(chat_id, text)
        except NotificationError as e:
            logger.warning("Test notification to %s failed: %s", chat_id, e)
            return False
        return True

    async def notify_alert(self, alert: Alert, current_price: int) -> bool:
        """Deliver a triggered-alert message to the owner's verified chat.

        Returns True when the message was accepted by Telegram.
        """
        try:
            link = await self.store.get_messaging_link(alert.owner_identity)
        except PersistenceError as e:
            logger.error("Could not load Telegram link for alert %s: %s", alert.id, e)
            return False

        if link is None or not link.verified:
            logger.info("No verified Telegram link for %s", short_id(alert.owner_identity))
            await self.record(alert, None, NotificationStatus.FAILED, NO_LINK_MESSAGE)
            return False

        try:
            await self.send_message(link.chat_id, format_alert_message(alert, current_price))
        except NotificationError as e:
            logger.error("Telegram notification for alert %s failed: %s", alert.id, e)
            await self.record(alert, link.chat_id, NotificationStatus.FAILED, str(e))
            return False

        logger.info(
            "Alert notification sent for %s to %s", alert.symbol, link.username or link.chat_id
        )
        await self.record(alert, link.chat_id, NotificationStatus.SUCCESS)

        try:
            await self.store.mark_alert_notified(alert.id, self.clock())
        except PersistenceError as e:
            logger.error("Could not mark alert %s notified: %s", alert.id, e)

        return True

    async def record(
        self,
        alert: Alert,
        chat_id: Optional[str],
        status: NotificationStatus,
        error_message: Optional[str] = None,
    ) -> None:
        entry = NotificationLogEntry(
            alert_id=alert.id,
            owner_identity=alert.owner_identity,
            chat_id=chat_id,
            status=status,
            error_message=error_message,
            created_at=self.clock(),
        )
        try:
            await self.store.log_notification(entry)
        except PersistenceError as e:
            logger.error("Could not write notification log for alert %s: %s", alert.id, e)

    async def close(self) -> None:
        if self.session is not None and self._owns_session and not self.session.closed:
            await self.session.close()
