"""
Notification dispatch.

Status and event listeners are registered against xAPI path patterns.
Each incoming record is converted to its typed variant and every
matching listener is called with (device_id, path, value, notification),
in registration order.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Iterable

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .metrics import get_metrics
from .models import (
    ActionNotification,
    EventsNotification,
    HealthCheckNotification,
    Notification,
    StatusNotification,
    parse_notification,
)
from .paths import path_match, short_name

logger = structlog.get_logger()

Listener = Callable[[str | None, str, Any, Notification], Any]
ActionDelegate = Callable[[ActionNotification], Any]


@dataclass(eq=False)
class ListenerRegistration:
    """A (pattern, callback) pair. remove() detaches it from its registry."""

    path: str
    callback: Listener
    _registry: list["ListenerRegistration"]

    def remove(self) -> None:
        if self in self._registry:
            self._registry.remove(self)


class NotificationRouter:
    """Fan out status/event notifications to matching listeners."""

    def __init__(self):
        self._status_listeners: list[ListenerRegistration] = []
        self._event_listeners: list[ListenerRegistration] = []
        self._action_delegate: ActionDelegate | None = None

    def on_status(self, path: str, callback: Listener) -> ListenerRegistration:
        registration = ListenerRegistration(path, callback, self._status_listeners)
        self._status_listeners.append(registration)
        return registration

    def on_event(self, path: str, callback: Listener) -> ListenerRegistration:
        registration = ListenerRegistration(path, callback, self._event_listeners)
        self._event_listeners.append(registration)
        return registration

    def on_action(self, delegate: ActionDelegate | None) -> None:
        """Set the single handler that receives (still unverified) action records."""
        self._action_delegate = delegate

    async def process_notifications(self, records: Iterable[dict | Notification]) -> None:
        records = list(records)
        logger.debug("notifications_received", count=len(records))
        for record in records:
            await self.process_notification(record)

    async def process_notification(self, record: dict | Notification) -> None:
        if not isinstance(record, (dict, BaseModel)):
            logger.warning("notification_malformed", record_type=type(record).__name__)
            return
        if isinstance(record, dict) and not isinstance(record.get("type"), (str, type(None))):
            logger.warning("notification_malformed", type=repr(record.get("type")))
            return
        try:
            notification = parse_notification(record)
        except PydanticValidationError as e:
            logger.warning(
                "notification_malformed",
                type=record.get("type") if isinstance(record, dict) else None,
                error=str(e),
            )
            return

        get_metrics().increment("wi_notifications_total", {"type": str(notification.type)})

        if isinstance(notification, StatusNotification):
            for path, value in notification.changes.updated.items():
                await self._dispatch(self._status_listeners, path, value, notification)
        elif isinstance(notification, EventsNotification):
            for event in notification.events:
                await self._dispatch(self._event_listeners, event.key, event.value, notification)
        elif isinstance(notification, HealthCheckNotification):
            logger.info("health_check_received", device=notification.device_id)
        elif isinstance(notification, ActionNotification):
            await self._dispatch_action(notification)
        else:
            logger.debug("notification_type_unknown", type=notification.type)

    async def _dispatch(
        self,
        listeners: list[ListenerRegistration],
        path: str,
        value: Any,
        notification: Notification,
    ) -> None:
        # Copy so a listener removing itself does not skip its neighbour
        for registration in list(listeners):
            if not path_match(path, registration.path):
                continue
            try:
                result = registration.callback(notification.device_id, path, value, notification)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "listener_failed",
                    pattern=registration.path,
                    path=path,
                    device=short_name(notification.device_id or ""),
                    error=repr(e),
                )

    async def _dispatch_action(self, notification: ActionNotification) -> None:
        if self._action_delegate is None:
            logger.debug("action_ignored_no_handler")
            return
        try:
            result = self._action_delegate(notification)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("action_handler_failed", error=repr(e))
