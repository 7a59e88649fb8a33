from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Optional, Protocol

import httpx

from ..config import Settings, get_settings
from .request_id import get_request_id

logger = logging.getLogger(__name__)

NotificationEventName = Literal[
    "booking_created",
    "booking_confirmed",
    "booking_rejected",
    "booking_cancelled",
    "owner_message",
]


@dataclass(frozen=True)
class NotificationEvent:
    event: NotificationEventName
    booking_id: Optional[int] = None
    recipient_user_id: Optional[int] = None
    recipient_owner_id: Optional[int] = None
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class NotificationDispatcher(Protocol):
    async def dispatch(self, event: NotificationEvent) -> None: ...


class LoggingNotificationDispatcher:
    """Writes one JSON line per event; a delivery worker tails these."""

    def __init__(self, target: logging.Logger | None = None) -> None:
        self.target = target or logging.getLogger("notifications")

    async def dispatch(self, event: NotificationEvent) -> None:
        self.target.info(json.dumps(event.to_dict(), ensure_ascii=True, default=str))


class WebhookNotificationDispatcher:
    def __init__(self, url: str, *, timeout: float = 5.0, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self.client = client

    async def dispatch(self, event: NotificationEvent) -> None:
        body = json.loads(json.dumps(event.to_dict(), default=str))
        headers = {}
        request_id = get_request_id()
        if request_id:
            headers["X-Request-ID"] = request_id
        if self.client is not None:
            response = await self.client.post(self.url, json=body, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json=body, headers=headers)
            response.raise_for_status()


def build_dispatcher(settings: Settings | None = None) -> NotificationDispatcher:
    settings = settings or get_settings()
    if settings.notification_webhook_url:
        return WebhookNotificationDispatcher(
            settings.notification_webhook_url,
            timeout=settings.notification_timeout_seconds,
        )
    return LoggingNotificationDispatcher()


class NotificationOutbox:
    """Events collected during a unit of work and sent only after it commits."""

    def __init__(self) -> None:
        self.events: list[NotificationEvent] = []

    def add(self, event: NotificationEvent) -> None:
        self.events.append(event)

    async def flush(self, dispatcher: NotificationDispatcher) -> list[NotificationEvent]:
        """Dispatch queued events. Returns the ones that failed; failures never propagate."""
        failed: list[NotificationEvent] = []
        pending, self.events = self.events, []
        for event in pending:
            try:
                await dispatcher.dispatch(event)
            except Exception:
                logger.exception(
                    "notification delivery failed: %s",
                    json.dumps(event.to_dict(), ensure_ascii=True, default=str),
                    extra={"notification_event": event.event, "request_id": get_request_id()},
                )
                failed.append(event)
        return failed
