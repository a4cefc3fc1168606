"""Operational failure notifications.

Notification is a side channel: send() never raises. Delivery failures are
logged and swallowed so they cannot mask the error being reported.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import aiohttp

from core.config import SyncSettings


logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Accepts a free-text message and subject."""

    @abstractmethod
    async def _deliver(self, subject: str, message: str) -> None:
        pass

    async def send(self, subject: str, message: str) -> bool:
        """Deliver a notification. Returns False (never raises) on failure."""
        try:
            await self._deliver(subject, message)
            return True
        except Exception as e:
            logger.error(f"Error sending notification '{subject}': {e}")
            return False


class LogNotifier(NotificationSink):
    """Writes notifications to the log (default when no webhook is configured)."""

    async def _deliver(self, subject: str, message: str) -> None:
        logger.error(f"[{subject}] {message}")


class InMemoryNotifier(NotificationSink):
    """Collects notifications in a list. For tests and local runs."""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []

    async def _deliver(self, subject: str, message: str) -> None:
        self.sent.append((subject, message))


class WebhookNotifier(NotificationSink):
    """POSTs {"subject", "message"} as JSON to a webhook URL."""

    def __init__(self, url: str, timeout_seconds: int = 10):
        self.url = url
        self.timeout_seconds = timeout_seconds

    async def _deliver(self, subject: str, message: str) -> None:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.url, json={"subject": subject, "message": message}) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise RuntimeError(f"Webhook returned {response.status}: {body}")
        logger.info("Error notification sent.")


def create_notifier(settings: SyncSettings, override: Optional[NotificationSink] = None) -> NotificationSink:
    """Pick the notifier for the given settings."""
    if override is not None:
        return override
    if settings.notify_webhook_url:
        return WebhookNotifier(settings.notify_webhook_url, timeout_seconds=settings.http_timeout_seconds)
    return LogNotifier()
