"""Summary: Message threads between buyers and sellers.

Importance: Owns conversations, read tracking, and thread organization for listings.
Alternatives: Store messages in a relational table and rebuild threads per query.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from typing import Any, Callable, Iterable

from drivelink.errors import NotFoundError, ValidationError
from drivelink.listings import ListingDirectory
from drivelink.models import (
    MESSAGE_TYPES,
    THREAD_PRIORITIES,
    THREAD_STATUSES,
    Attachment,
    Message,
    Participant,
    Thread,
)
from drivelink.presence import Clock, utc_now
from drivelink.realtime import RealtimeBus


logger = logging.getLogger(__name__)

ThreadListener = Callable[[Thread], None]

_STATUS_RANK = {"failed": -1, "sending": 0, "sent": 1, "delivered": 2, "read": 3}


def message_payload(message: Message) -> dict[str, Any]:
    """Serialize a message for realtime events and API responses."""

    return {
        "id": message.id,
        "thread_id": message.thread_id,
        "sender_id": message.sender_id,
        "sender_name": message.sender_name,
        "sender_role": message.sender_role,
        "content": message.content,
        "message_type": message.message_type,
        "status": message.status,
        "timestamp": message.timestamp.isoformat(),
        "read_by": sorted(message.read_by),
        "attachments": [
            {
                "id": item.id,
                "name": item.name,
                "url": item.url,
                "kind": item.kind,
                "size": item.size,
                "mime_type": item.mime_type,
            }
            for item in message.attachments
        ],
    }


def escalate_status(message: Message, status: str) -> None:
    """Summary: Move a message status forward, never backward.

    Importance: A read message must never regress to sent or delivered.
    Alternatives: Store a timestamp per status and derive the latest.
    """

    if message.status == "read":
        return
    if _STATUS_RANK[status] > _STATUS_RANK[message.status]:
        message.status = status


class ThreadService:
    """Summary: In-memory store for message threads.

    Importance: Keeps append, activity, and unread bookkeeping atomic per mutation.
    Alternatives: Persist each message individually and aggregate on read.
    """

    def __init__(
        self,
        listings: ListingDirectory,
        bus: RealtimeBus | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._listings = listings
        self._bus = bus
        self._clock = clock or utc_now
        self._threads: dict[str, Thread] = {}
        self._listeners: dict[str, list[ThreadListener]] = {}
        self._lock = threading.RLock()

    def create_thread(
        self,
        vehicle_id: str,
        subject: str,
        first_message: str,
        sender: Participant,
    ) -> Thread:
        """Summary: Open a conversation about a listing with its seller.

        Importance: Seeds participants from the caller and the listing's seller.
        Alternatives: Require callers to pass the full participant list.
        """

        errors: dict[str, list[str]] = {}
        if not subject.strip():
            errors["subject"] = ["Subject is required"]
        if not first_message.strip():
            errors["first_message"] = ["Message content is required"]
        if errors:
            raise ValidationError(errors)
        listing = self._listings.get_listing_by_id(vehicle_id)
        if listing is None:
            raise NotFoundError("listing", vehicle_id)

        participants = [sender]
        if sender.id != listing.seller_id:
            participants.append(
                Participant(
                    id=listing.seller_id,
                    name=listing.seller_name,
                    role="seller",
                    email=listing.seller_email,
                )
            )
        now = self._clock()
        thread_id = f"thread_{uuid.uuid4().hex[:12]}"
        message = Message(
            id=f"msg_{uuid.uuid4().hex[:12]}",
            thread_id=thread_id,
            sender_id=sender.id,
            sender_name=sender.name,
            sender_role=sender.role,
            content=first_message,
            timestamp=now,
            read_by={sender.id},
        )
        thread = Thread(
            id=thread_id,
            vehicle_id=listing.id,
            vehicle_title=listing.title,
            subject=subject,
            participants=participants,
            created_at=now,
            last_activity=now,
            messages=[message],
        )
        with self._lock:
            self._threads[thread_id] = thread
            snapshot = copy.deepcopy(thread)
        logger.info("Created thread %s for vehicle %s.", thread_id, vehicle_id)
        if self._bus is not None:
            self._bus.send_message(thread_id, sender.id, message_payload(message))
        return snapshot

    def add_message(
        self,
        thread_id: str,
        sender_id: str,
        content: str,
        message_type: str = "text",
        attachments: Iterable[Attachment] = (),
    ) -> Message:
        """Summary: Append a message to a thread.

        Importance: Append, last-activity, and unread updates happen together or not at all.
        Alternatives: Update unread counters lazily when a viewer opens the thread.
        """

        if message_type not in MESSAGE_TYPES:
            raise ValidationError({"message_type": [f"Unknown message type {message_type}"]})
        attachment_list = list(attachments)
        if not content.strip() and not attachment_list:
            raise ValidationError({"content": ["Message content is required"]})
        with self._lock:
            thread = self._require(thread_id)
            sender = thread.participant(sender_id)
            if sender is None:
                raise ValidationError({"sender_id": [f"{sender_id} is not a participant"]})
            message = Message(
                id=f"msg_{uuid.uuid4().hex[:12]}",
                thread_id=thread_id,
                sender_id=sender.id,
                sender_name=sender.name,
                sender_role=sender.role,
                content=content,
                timestamp=self._clock(),
                message_type=message_type,
                read_by={sender.id},
                attachments=attachment_list,
            )
            thread.messages.append(message)
            thread.last_activity = max(thread.last_activity, message.timestamp)
            snapshot = copy.deepcopy(message)
            thread_snapshot = copy.deepcopy(thread)
        self._notify(thread_snapshot)
        if self._bus is not None:
            self._bus.send_message(thread_id, sender_id, message_payload(snapshot))
        return snapshot

    def mark_thread_as_read(self, thread_id: str, reader_id: str) -> int:
        """Summary: Mark every message in a thread as read by a participant.

        Importance: Resets the reader's unread count and escalates message status.
        Alternatives: Store a single last-read cursor per participant.
        """

        with self._lock:
            thread = self._require(thread_id)
            self._require_participant(thread, reader_id)
            newly_read = [
                message for message in thread.messages if reader_id not in message.read_by
            ]
            for message in newly_read:
                message.read_by.add(reader_id)
                if len(message.read_by) > 1:
                    escalate_status(message, "read")
            thread_snapshot = copy.deepcopy(thread)
        if newly_read:
            self._notify(thread_snapshot)
            if self._bus is not None:
                for message in newly_read:
                    self._bus.mark_message_read(thread_id, reader_id, message.id)
        return len(newly_read)

    def mark_message_as_read(self, thread_id: str, message_id: str, reader_id: str) -> Message:
        """Mark a single message as read by a participant."""

        with self._lock:
            thread = self._require(thread_id)
            self._require_participant(thread, reader_id)
            message = self._require_message(thread, message_id)
            changed = reader_id not in message.read_by
            if changed:
                message.read_by.add(reader_id)
                if len(message.read_by) > 1:
                    escalate_status(message, "read")
            snapshot = copy.deepcopy(message)
            thread_snapshot = copy.deepcopy(thread)
        if changed:
            self._notify(thread_snapshot)
            if self._bus is not None:
                self._bus.mark_message_read(thread_id, reader_id, message_id)
        return snapshot

    def mark_message_delivered(self, thread_id: str, message_id: str) -> Message:
        with self._lock:
            message = self._require_message(self._require(thread_id), message_id)
            escalate_status(message, "delivered")
            return copy.deepcopy(message)

    def get_thread(self, thread_id: str) -> Thread:
        with self._lock:
            return copy.deepcopy(self._require(thread_id))

    def list_threads(self) -> list[Thread]:
        with self._lock:
            threads = [copy.deepcopy(thread) for thread in self._threads.values()]
        return _by_activity(threads)

    def threads_for_vehicle(self, vehicle_id: str) -> list[Thread]:
        return [thread for thread in self.list_threads() if thread.vehicle_id == vehicle_id]

    def threads_for_participant(self, user_id: str) -> list[Thread]:
        return [
            thread for thread in self.list_threads() if thread.participant(user_id) is not None
        ]

    def search_threads(self, query: str) -> list[Thread]:
        """Summary: Case-insensitive search over titles, subjects, names, and content.

        Importance: Lets dashboards find conversations quickly.
        Alternatives: Use SQLite FTS for full-text search.
        """

        needle = query.strip().lower()
        threads = self.list_threads()
        if not needle:
            return threads
        return [thread for thread in threads if _matches(thread, needle)]

    def filter_threads(
        self,
        status: str | None = None,
        priority: str | None = None,
        tag: str | None = None,
    ) -> list[Thread]:
        """Return threads matching every provided field exactly."""

        results = self.list_threads()
        if status is not None:
            results = [thread for thread in results if thread.status == status]
        if priority is not None:
            results = [thread for thread in results if thread.priority == priority]
        if tag is not None:
            results = [thread for thread in results if tag in thread.tags]
        return results

    def unread_count(self, thread_id: str, viewer_id: str) -> int:
        with self._lock:
            return self._require(thread_id).unread_count_for(viewer_id)

    def total_unread(self, viewer_id: str) -> int:
        with self._lock:
            return sum(
                thread.unread_count_for(viewer_id)
                for thread in self._threads.values()
                if thread.participant(viewer_id) is not None
            )

    def update_status(self, thread_id: str, status: str) -> Thread:
        if status not in THREAD_STATUSES:
            raise ValidationError({"status": [f"Unknown thread status {status}"]})
        return self._update(thread_id, {"status": status})

    def update_priority(self, thread_id: str, priority: str) -> Thread:
        if priority not in THREAD_PRIORITIES:
            raise ValidationError({"priority": [f"Unknown thread priority {priority}"]})
        return self._update(thread_id, {"priority": priority})

    def archive_thread(self, thread_id: str) -> Thread:
        return self.update_status(thread_id, "archived")

    def unarchive_thread(self, thread_id: str) -> Thread:
        return self.update_status(thread_id, "active")

    def delete_thread(self, thread_id: str) -> None:
        """Summary: Remove a thread and its messages permanently.

        Importance: Lets participants discard conversations instead of only archiving them.
        Alternatives: Keep a deleted status and filter it from every query.
        """

        with self._lock:
            self._require(thread_id)
            del self._threads[thread_id]
            self._listeners.pop(thread_id, None)
        logger.info("Deleted thread %s.", thread_id)
        if self._bus is not None:
            self._bus.thread_updated(thread_id, "system", {"deleted": True})

    def add_tag(self, thread_id: str, tag: str) -> Thread:
        with self._lock:
            tags = set(self._require(thread_id).tags)
        tags.add(tag)
        return self._update(thread_id, {"tags": tags})

    def remove_tag(self, thread_id: str, tag: str) -> Thread:
        with self._lock:
            tags = set(self._require(thread_id).tags)
        tags.discard(tag)
        return self._update(thread_id, {"tags": tags})

    def subscribe(self, thread_id: str, handler: ThreadListener) -> Callable[[], None]:
        """Summary: Receive a thread snapshot after each of its mutations.

        Importance: Keeps open conversation views in sync with the store.
        Alternatives: Poll get_thread on an interval.
        """

        with self._lock:
            self._require(thread_id)
            self._listeners.setdefault(thread_id, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._listeners.get(thread_id, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def _update(self, thread_id: str, changes: dict[str, Any]) -> Thread:
        with self._lock:
            thread = self._require(thread_id)
            for name, value in changes.items():
                setattr(thread, name, value)
            snapshot = copy.deepcopy(thread)
        self._notify(snapshot)
        if self._bus is not None:
            payload = {
                name: sorted(value) if isinstance(value, set) else value
                for name, value in changes.items()
            }
            self._bus.thread_updated(thread_id, "system", payload)
        return snapshot

    def _notify(self, thread: Thread) -> None:
        with self._lock:
            handlers = list(self._listeners.get(thread.id, []))
        for handler in handlers:
            try:
                handler(copy.deepcopy(thread))
            except Exception as exc:
                logger.warning("Thread listener failed for %s: %s", thread.id, exc)

    def _require(self, thread_id: str) -> Thread:
        thread = self._threads.get(thread_id)
        if thread is None:
            raise NotFoundError("thread", thread_id)
        return thread

    @staticmethod
    def _require_participant(thread: Thread, user_id: str) -> None:
        if thread.participant(user_id) is None:
            raise ValidationError({"reader_id": [f"{user_id} is not a participant"]})

    @staticmethod
    def _require_message(thread: Thread, message_id: str) -> Message:
        for message in thread.messages:
            if message.id == message_id:
                return message
        raise NotFoundError("message", message_id)


def _by_activity(threads: list[Thread]) -> list[Thread]:
    return sorted(threads, key=lambda thread: thread.last_activity, reverse=True)


def _matches(thread: Thread, needle: str) -> bool:
    if needle in thread.vehicle_title.lower() or needle in thread.subject.lower():
        return True
    if any(needle in participant.name.lower() for participant in thread.participants):
        return True
    return any(needle in message.content.lower() for message in thread.messages)
