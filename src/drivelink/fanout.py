"""Summary: Derives notifications from realtime and test-drive events.

Importance: Turns message and scheduling activity into notification records for the local user.
Alternatives: Have each service create notifications inline.
"""

from __future__ import annotations

import logging
from typing import Callable

from drivelink.errors import NotFoundError
from drivelink.models import Notification, RealtimeEvent, TestDriveRequest
from drivelink.notifications import NotificationService
from drivelink.realtime import RealtimeBus
from drivelink.test_drives import TestDriveService
from drivelink.threads import ThreadService


logger = logging.getLogger(__name__)


class NotificationFanout:
    """Summary: Bus tap and test-drive listener that creates notifications.

    Importance: Keeps the notification center in step with messages and request updates.
    Alternatives: Poll stores for changes and diff them.
    """

    def __init__(
        self,
        notifications: NotificationService,
        threads: ThreadService,
        viewer_id: str,
    ) -> None:
        self._notifications = notifications
        self._threads = threads
        self._viewer_id = viewer_id

    def attach(self, bus: RealtimeBus, test_drives: TestDriveService) -> Callable[[], None]:
        """Subscribe to both sources; returns a callable that detaches them."""

        remove_tap = bus.add_tap(self.handle_event)
        unsubscribe = test_drives.subscribe(self.handle_request_change)

        def detach() -> None:
            remove_tap()
            unsubscribe()

        return detach

    def handle_event(self, event: RealtimeEvent) -> Notification | None:
        """Summary: Create a message notification for messages from other users.

        Importance: The viewer hears about replies in threads they belong to.
        Alternatives: Notify on every message including the viewer's own.
        """

        if event.type != "message_sent" or event.user_id == self._viewer_id:
            return None
        if event.thread_id is None:
            return None
        try:
            thread = self._threads.get_thread(event.thread_id)
        except NotFoundError:
            logger.warning("Message event for unknown thread %s.", event.thread_id)
            return None
        if thread.participant(self._viewer_id) is None:
            return None
        sender_name = str(event.data.get("sender_name") or event.user_id)
        return self._notifications.message_received(
            thread.vehicle_title, thread.vehicle_id, sender_name
        )

    def handle_request_change(
        self, request: TestDriveRequest, previous: str | None
    ) -> Notification | None:
        """Map a test-drive transition to a notification, if it warrants one."""

        title = request.vehicle_title
        vehicle_id = request.vehicle_id
        status = request.status
        when = f"{request.buyer_data.preferred_date} {request.buyer_data.preferred_time}"
        if status == "draft":
            return self._notifications.test_drive_update(
                title,
                vehicle_id,
                "Test Drive Request Queued",
                f"Your request for {title} will be sent when you are back online",
            )
        if status == "sent" and previous == "sending":
            return self._notifications.test_drive_update(
                title,
                vehicle_id,
                "Test Drive Request Sent",
                f"{request.seller_name} received your request for {when}",
                type="success",
            )
        if status == "sent" and previous == "sent":
            reschedule = request.state.reschedule
            if reschedule is None:
                return None
            return self._notifications.test_drive_update(
                title,
                vehicle_id,
                "Test Drive Rescheduled",
                f"The seller proposed {reschedule.date} {reschedule.time} for {title}",
            )
        if status == "failed":
            return self._notifications.test_drive_update(
                title,
                vehicle_id,
                "Test Drive Request Failed",
                request.state.reason,
                type="error",
            )
        if status == "confirmed":
            return self._notifications.test_drive_confirmed(title, vehicle_id, when)
        if status == "cancelled":
            return self._notifications.test_drive_update(
                title,
                vehicle_id,
                "Test Drive Cancelled",
                request.state.seller_message or f"Your test drive for {title} was cancelled",
                type="warning",
            )
        if status == "completed":
            return self._notifications.test_drive_update(
                title,
                vehicle_id,
                "Test Drive Completed",
                f"How was {title}? Let the seller know if you want to proceed",
                type="success",
            )
        return None
