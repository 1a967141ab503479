"""Summary: Notification records and subscriber fan-out.

Importance: Keeps users informed about messages, test drives, listings, and payments.
Alternatives: Push transient toasts without storing notification history.
"""

from __future__ import annotations

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, replace
from datetime import datetime
from typing import Any, Callable

from drivelink.errors import NotFoundError, StorageError, ValidationError
from drivelink.models import (
    NOTIFICATION_CATEGORIES,
    NOTIFICATION_PRIORITIES,
    NOTIFICATION_TYPES,
    Notification,
)
from drivelink.presence import Clock, utc_now
from drivelink.storage.sqlite_store import KeyValueStore


logger = logging.getLogger(__name__)

NotificationListener = Callable[[list[Notification]], None]

STORAGE_KEY = "notifications"


class PermissionProvider(ABC):
    """Summary: Platform permission API for out-of-band alerts.

    Importance: Alerts outside the app are shown only after the user grants permission.
    Alternatives: Always show alerts and let the platform drop them.
    """

    @abstractmethod
    async def request_permission(self) -> str:
        """Return "granted" or "denied"."""


class StaticPermissionProvider(PermissionProvider):
    """Permission provider with a fixed answer, for servers and tests."""

    def __init__(self, answer: str = "denied") -> None:
        self._answer = answer

    async def request_permission(self) -> str:
        return self._answer


class AlertChannel(ABC):
    """Summary: Out-of-band alert surface such as desktop or push notifications.

    Importance: Reaches users who are not looking at the notification center.
    Alternatives: Send an email for every notification.
    """

    @abstractmethod
    def show(self, notification: Notification) -> None:
        """Display the notification outside the app."""


class LoggingAlertChannel(AlertChannel):
    def __init__(self) -> None:
        self.shown: list[Notification] = []

    def show(self, notification: Notification) -> None:
        self.shown.append(notification)
        logger.info("Alert: %s - %s", notification.title, notification.message)


def notification_to_dict(notification: Notification) -> dict[str, Any]:
    data = asdict(notification)
    data["timestamp"] = notification.timestamp.isoformat()
    return data


def notification_from_dict(data: dict[str, Any]) -> Notification:
    if not isinstance(data["id"], str):
        raise TypeError(f"Notification id must be a string, got {data['id']!r}")
    return Notification(
        id=data["id"],
        category=data["category"],
        type=data["type"],
        title=data["title"],
        message=data["message"],
        timestamp=datetime.fromisoformat(data["timestamp"]),
        priority=data.get("priority", "medium"),
        read=bool(data.get("read", False)),
        action_url=data.get("action_url"),
        action_text=data.get("action_text"),
        vehicle_id=data.get("vehicle_id"),
        vehicle_title=data.get("vehicle_title"),
    )


class NotificationService:
    """Summary: Stores notifications and pushes snapshots to subscribers.

    Importance: Every mutation produces a full list so views never apply diffs.
    Alternatives: Publish incremental add and remove events.
    """

    def __init__(
        self,
        store: KeyValueStore,
        permissions: PermissionProvider | None = None,
        alerts: AlertChannel | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._permissions = permissions or StaticPermissionProvider()
        self._alerts = alerts
        self._clock = clock or utc_now
        self._lock = threading.RLock()
        self._listeners: list[NotificationListener] = []
        self._permission_granted = False
        self._notifications = self._load()
        start = max((_sequence(item.id) for item in self._notifications), default=0) + 1
        self._ids = itertools.count(start)

    def notify(
        self,
        category: str,
        type: str,
        title: str,
        message: str,
        *,
        priority: str = "medium",
        action_url: str | None = None,
        action_text: str | None = None,
        vehicle_id: str | None = None,
        vehicle_title: str | None = None,
    ) -> Notification:
        """Summary: Create, store, and publish a notification.

        Importance: Single entry point for every notification source.
        Alternatives: Let each feature append to the list directly.
        """

        errors: dict[str, list[str]] = {}
        if category not in NOTIFICATION_CATEGORIES:
            errors["category"] = [f"Unknown category {category}"]
        if type not in NOTIFICATION_TYPES:
            errors["type"] = [f"Unknown type {type}"]
        if priority not in NOTIFICATION_PRIORITIES:
            errors["priority"] = [f"Unknown priority {priority}"]
        if errors:
            raise ValidationError(errors)
        with self._lock:
            notification = Notification(
                id=f"notif_{next(self._ids):06d}",
                category=category,
                type=type,
                title=title,
                message=message,
                timestamp=self._clock(),
                priority=priority,
                action_url=action_url,
                action_text=action_text,
                vehicle_id=vehicle_id,
                vehicle_title=vehicle_title,
            )
            self._notifications.insert(0, notification)
        self._changed()
        if self._permission_granted and self._alerts is not None:
            self._alerts.show(notification)
        return notification

    def subscribe(self, handler: NotificationListener) -> Callable[[], None]:
        """Summary: Receive the current list now and after every mutation.

        Importance: New views render immediately without a separate fetch.
        Alternatives: Require callers to call get_all before subscribing.
        """

        with self._lock:
            self._listeners.append(handler)
            snapshot = list(self._notifications)
        handler(snapshot)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._listeners:
                    self._listeners.remove(handler)

        return unsubscribe

    def mark_as_read(self, notification_id: str) -> Notification:
        with self._lock:
            index = self._index(notification_id)
            current = self._notifications[index]
            if current.read:
                return current
            updated = replace(current, read=True)
            self._notifications[index] = updated
        self._changed()
        return updated

    def mark_all_as_read(self) -> int:
        """Mark every notification read; returns how many changed."""

        with self._lock:
            changed = sum(1 for item in self._notifications if not item.read)
            self._notifications = [
                item if item.read else replace(item, read=True) for item in self._notifications
            ]
        self._changed()
        return changed

    def remove(self, notification_id: str) -> None:
        with self._lock:
            del self._notifications[self._index(notification_id)]
        self._changed()

    def clear(self) -> None:
        with self._lock:
            self._notifications = []
        self._changed()

    def get_all(self) -> list[Notification]:
        with self._lock:
            return list(self._notifications)

    def get_unread(self) -> list[Notification]:
        return [item for item in self.get_all() if not item.read]

    def get_unread_count(self) -> int:
        return len(self.get_unread())

    def get_by_category(self, category: str) -> list[Notification]:
        return [item for item in self.get_all() if item.category == category]

    def get_by_vehicle(self, vehicle_id: str) -> list[Notification]:
        return [item for item in self.get_all() if item.vehicle_id == vehicle_id]

    async def request_permission(self) -> bool:
        """Summary: Ask the platform whether alerts may be shown.

        Importance: Out-of-band alerts are gated on an explicit grant.
        Alternatives: Assume permission and handle platform errors.
        """

        answer = await self._permissions.request_permission()
        self._permission_granted = answer == "granted"
        logger.info("Notification permission %s.", answer)
        return self._permission_granted

    def message_received(self, vehicle_title: str, vehicle_id: str, sender_name: str) -> Notification:
        return self.notify(
            "message",
            "info",
            "New Message Received",
            f"You have a new message about {vehicle_title} from {sender_name}",
            priority="medium",
            vehicle_id=vehicle_id,
            vehicle_title=vehicle_title,
            action_url="/guest-dashboard?tab=messages",
            action_text="View Message",
        )

    def test_drive_confirmed(self, vehicle_title: str, vehicle_id: str, date: str) -> Notification:
        return self.notify(
            "test_drive",
            "success",
            "Test Drive Confirmed",
            f"Your test drive for {vehicle_title} has been confirmed for {date}",
            priority="high",
            vehicle_id=vehicle_id,
            vehicle_title=vehicle_title,
            action_url="/guest-dashboard?tab=test-drives",
            action_text="View Details",
        )

    def test_drive_update(
        self,
        vehicle_title: str,
        vehicle_id: str,
        title: str,
        message: str,
        type: str = "info",
    ) -> Notification:
        return self.notify(
            "test_drive",
            type,
            title,
            message,
            priority="high" if type in ("error", "warning") else "medium",
            vehicle_id=vehicle_id,
            vehicle_title=vehicle_title,
            action_url="/guest-dashboard?tab=test-drives",
            action_text="View Details",
        )

    def listing_approved(self, vehicle_title: str, vehicle_id: str) -> Notification:
        return self.notify(
            "listing",
            "success",
            "Listing Approved",
            f"Your listing for {vehicle_title} has been approved and is now live",
            priority="high",
            vehicle_id=vehicle_id,
            vehicle_title=vehicle_title,
            action_url="/guest-dashboard?tab=listings",
            action_text="View Listing",
        )

    def listing_rejected(
        self, vehicle_title: str, vehicle_id: str, reason: str | None = None
    ) -> Notification:
        suffix = f": {reason}" if reason else ""
        return self.notify(
            "listing",
            "warning",
            "Listing Needs Attention",
            f"Your listing for {vehicle_title} needs some updates{suffix}",
            priority="high",
            vehicle_id=vehicle_id,
            vehicle_title=vehicle_title,
            action_url="/guest-dashboard?tab=listings",
            action_text="Update Listing",
        )

    def payment_reminder(self, vehicle_title: str, vehicle_id: str, amount: int) -> Notification:
        return self.notify(
            "payment",
            "warning",
            "Payment Required",
            f"Payment of ¥{amount:,} is required for your {vehicle_title} listing",
            priority="high",
            vehicle_id=vehicle_id,
            vehicle_title=vehicle_title,
            action_url=f"/payment?listing={vehicle_id}",
            action_text="Make Payment",
        )

    def system_notice(self, title: str, message: str, type: str = "info") -> Notification:
        return self.notify("system", type, title, message, priority="medium")

    def _changed(self) -> None:
        with self._lock:
            snapshot = list(self._notifications)
            listeners = list(self._listeners)
        self._save(snapshot)
        for listener in listeners:
            try:
                listener(list(snapshot))
            except Exception as exc:
                logger.warning("Notification listener failed: %s", exc)

    def _index(self, notification_id: str) -> int:
        for index, item in enumerate(self._notifications):
            if item.id == notification_id:
                return index
        raise NotFoundError("notification", notification_id)

    def _load(self) -> list[Notification]:
        notifications: list[Notification] = []
        for raw in self._store.get_list(STORAGE_KEY):
            if not isinstance(raw, dict):
                logger.warning("Skipping notification record of type %s.", type(raw).__name__)
                continue
            try:
                notifications.append(notification_from_dict(raw))
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping corrupted notification record: %s", exc)
        return notifications

    def _save(self, snapshot: list[Notification]) -> None:
        try:
            self._store.put(STORAGE_KEY, [notification_to_dict(item) for item in snapshot])
        except StorageError as exc:
            logger.warning("Notifications may not survive a restart: %s", exc)


def _sequence(notification_id: str) -> int:
    _, _, suffix = notification_id.rpartition("_")
    return int(suffix) if suffix.isdigit() else 0
