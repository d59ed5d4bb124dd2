"""Notification dispatcher.

Hands deposit lifecycle events to the email service. Dispatch happens only
after the deposit transaction has committed, and a failed delivery is logged
and never touches financial state. Uses a singleton pattern to share the
HTTP client.
"""

import asyncio
import logging
from typing import Iterable, Optional

import httpx

from depositflow.config import get_settings
from depositflow.deposits.events import DepositEvent

logger = logging.getLogger(__name__)

# Singleton dispatcher instance
_dispatcher_instance: Optional["NotificationDispatcher"] = None
_dispatcher_lock = asyncio.Lock()


class NotificationDispatcher:
    """Base dispatcher. Subclasses deliver one event at a time."""

    async def send(self, event: DepositEvent) -> bool:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class LoggingDispatcher(NotificationDispatcher):
    """Logs events instead of delivering them (no webhook configured)."""

    async def send(self, event: DepositEvent) -> bool:
        logger.info(
            f"Event {event.type.value} for deposit {event.deposit_id} "
            f"(user {event.user_id}, {event.net_amount} {event.currency})"
        )
        return True


class WebhookDispatcher(NotificationDispatcher):
    """POSTs event payloads as JSON to the email service."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, event: DepositEvent) -> bool:
        """Deliver one event.

        Returns:
            True if the email service accepted the event
        """
        try:
            response = await self._client.post(self.url, json=event.to_payload())
            response.raise_for_status()
            return True
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Notification {event.type.value} for deposit {event.deposit_id} "
                f"rejected: HTTP {e.response.status_code}"
            )
            return False
        except httpx.HTTPError as e:
            logger.error(
                f"Failed to deliver {event.type.value} for deposit {event.deposit_id}: {e}"
            )
            return False

    async def close(self) -> None:
        await self._client.aclose()


async def get_dispatcher() -> NotificationDispatcher:
    """Get or create the dispatcher configured in settings."""
    global _dispatcher_instance

    if _dispatcher_instance is not None:
        return _dispatcher_instance

    async with _dispatcher_lock:
        if _dispatcher_instance is not None:
            return _dispatcher_instance

        settings = get_settings()
        if settings.notification_webhook_url:
            _dispatcher_instance = WebhookDispatcher(
                settings.notification_webhook_url, timeout=settings.http_timeout
            )
        else:
            logger.warning("Notification webhook not configured - events are only logged")
            _dispatcher_instance = LoggingDispatcher()
        return _dispatcher_instance


def set_dispatcher(dispatcher: Optional[NotificationDispatcher]) -> None:
    """Replace the shared dispatcher (tests, custom wiring)."""
    global _dispatcher_instance
    _dispatcher_instance = dispatcher


async def close_dispatcher() -> None:
    """Close the shared dispatcher (call on shutdown)."""
    global _dispatcher_instance
    if _dispatcher_instance is not None:
        await _dispatcher_instance.close()
        _dispatcher_instance = None


async def dispatch_events(
    events: Iterable[DepositEvent],
    dispatcher: Optional[NotificationDispatcher] = None,
) -> int:
    """Send committed events in order.

    Returns:
        Number of events delivered
    """
    dispatcher = dispatcher or await get_dispatcher()
    delivered = 0
    for event in events:
        try:
            if await dispatcher.send(event):
                delivered += 1
        except Exception as e:
            logger.error(f"Dispatcher error for deposit {event.deposit_id} ({event.type.value}): {e}")
    return delivered
