"""
Notification sinks.

The sweeper and the delegation manager only know the `NotificationSink`
protocol; delivery (log line, webhook, push channel) is pluggable so tests can
pass a recording double.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import requests

logger = logging.getLogger(__name__)

DELEGATION_EXPIRED = "DELEGATION_EXPIRED"


class NotificationSink(Protocol):
    def notify(self, target_user: str, message: str, payload: dict[str, Any]) -> bool:
        """Deliver one notification; return whether it was delivered."""
        ...


class LoggingNotificationSink:
    """Default sink: writes the notification to the application log."""

    def notify(self, target_user: str, message: str, payload: dict[str, Any]) -> bool:
        logger.info("Notification target_user=%s type=%s message=%s", target_user, payload.get("type"), message)
        return True


class WebhookNotificationSink:
    """
    POST each notification as JSON to a configured URL.

    Delivery failures are logged and reported as `False`, never raised into
    the sweep that produced them.
    """

    def __init__(self, url: str, timeout: float = 10, session: requests.Session | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self._http = session or requests.Session()

    def notify(self, target_user: str, message: str, payload: dict[str, Any]) -> bool:
        body = {"target_user": target_user, "message": message, "payload": payload}
        try:
            resp = self._http.post(self.url, json=body, timeout=self.timeout)
            if resp.status_code >= 400:
                logger.warning(
                    "Notification webhook returned status=%s target_user=%s", resp.status_code, target_user
                )
                return False
        except requests.RequestException as e:
            logger.warning("Notification webhook failed: %s target_user=%s", type(e).__name__, target_user)
            return False
        return True


def build_notification_sink(webhook_url: str | None) -> NotificationSink:
    if webhook_url:
        return WebhookNotificationSink(webhook_url)
    return LoggingNotificationSink()
