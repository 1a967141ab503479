"""Summary: In-process realtime event bus for messaging.

Importance: Pushes message, typing, and presence events to connected clients.
Alternatives: Run a WebSocket broker and let clients subscribe directly.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from drivelink.errors import NotFoundError
from drivelink.models import RealtimeEvent
from drivelink.presence import Clock, PresenceTracker, utc_now


logger = logging.getLogger(__name__)

EventSink = Callable[[RealtimeEvent], None]

PRESENCE_STATUSES = ("online", "away", "busy", "offline")


@dataclass
class Connection:
    """Summary: A logical client connection to the bus.

    Importance: Scopes delivery to the thread a client is viewing.
    Alternatives: Deliver every event to every client and filter client-side.
    """

    id: str
    user_id: str
    thread_id: str | None
    last_ping: datetime
    status: str = "connected"
    sink: EventSink | None = None


class RealtimeBus:
    """Summary: Publishes realtime events to connections and service taps.

    Importance: Decouples stores from listeners so a real transport can replace the sinks.
    Alternatives: Call UI callbacks directly from each store.
    """

    def __init__(
        self,
        presence: PresenceTracker,
        heartbeat_timeout_seconds: float = 30.0,
        clock: Clock | None = None,
    ) -> None:
        self._presence = presence
        self._heartbeat_timeout = timedelta(seconds=heartbeat_timeout_seconds)
        self._clock = clock or utc_now
        self._connections: dict[str, Connection] = {}
        self._taps: list[EventSink] = []
        self._lock = threading.RLock()
        self._dispatch_lock = threading.RLock()
        presence.bind(self.publish)

    @property
    def presence(self) -> PresenceTracker:
        return self._presence

    def connect(self, user_id: str, thread_id: str | None = None) -> str:
        """Summary: Register a connection for a user and optional current thread.

        Importance: Marks the user online and announces it to other clients.
        Alternatives: Treat presence as a separate explicit API call.
        """

        connection_id = f"conn_{uuid.uuid4().hex[:12]}"
        with self._lock:
            self._connections[connection_id] = Connection(
                id=connection_id,
                user_id=user_id,
                thread_id=thread_id,
                last_ping=self._clock(),
            )
        self._presence.mark_online(user_id)
        logger.info("Connection %s opened for %s.", connection_id, user_id)
        self.publish("user_online", None, user_id, {"connection_id": connection_id})
        return connection_id

    def subscribe(self, connection_id: str, handler: EventSink) -> Callable[[], None]:
        """Summary: Attach the handler that receives events for a connection.

        Importance: Delivers events synchronously in dispatch order.
        Alternatives: Buffer events in a per-connection queue.
        """

        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                raise NotFoundError("connection", connection_id)
            connection.sink = handler

        def unsubscribe() -> None:
            with self._lock:
                current = self._connections.get(connection_id)
                if current is not None and current.sink is handler:
                    current.sink = None

        return unsubscribe

    def add_tap(self, handler: EventSink) -> Callable[[], None]:
        """Summary: Register a service-level observer that sees every event.

        Importance: Feeds the notification fan-out without a client connection.
        Alternatives: Give the fan-out one connection per thread.
        """

        with self._lock:
            self._taps.append(handler)

        def remove() -> None:
            with self._lock:
                if handler in self._taps:
                    self._taps.remove(handler)

        return remove

    def join_thread(self, connection_id: str, thread_id: str | None) -> None:
        """Move a connection to another thread view."""

        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                raise NotFoundError("connection", connection_id)
            connection.thread_id = thread_id

    def disconnect(self, connection_id: str) -> None:
        """Summary: Close a connection; closing an unknown or closed one is a no-op.

        Importance: Lets clients disconnect on unmount without tracking state.
        Alternatives: Raise on double disconnect.
        """

        with self._lock:
            connection = self._connections.pop(connection_id, None)
            if connection is None:
                return
            connection.status = "disconnected"
            connection.sink = None
            still_connected = any(
                other.user_id == connection.user_id for other in self._connections.values()
            )
        logger.info("Connection %s closed for %s.", connection_id, connection.user_id)
        if still_connected:
            return
        self._presence.mark_offline(connection.user_id)
        self.publish("user_offline", None, connection.user_id, {"connection_id": connection_id})

    def send_message(self, thread_id: str, user_id: str, message: dict[str, Any]) -> None:
        """Announce a new message and clear the sender's typing marker."""

        self.publish("message_sent", thread_id, user_id, message)
        self._presence.stop_typing(thread_id, user_id)

    def mark_message_read(self, thread_id: str, user_id: str, message_id: str) -> None:
        self.publish("message_read", thread_id, user_id, {"message_id": message_id})

    def thread_updated(self, thread_id: str, user_id: str, changes: dict[str, Any]) -> None:
        self.publish("thread_updated", thread_id, user_id, changes)

    def start_typing(self, thread_id: str, user_id: str) -> None:
        self._presence.start_typing(thread_id, user_id)

    def stop_typing(self, thread_id: str, user_id: str) -> None:
        self._presence.stop_typing(thread_id, user_id)

    def get_typing_users(self, thread_id: str) -> list[str]:
        return self._presence.get_typing_users(thread_id)

    def is_user_online(self, user_id: str) -> bool:
        return self._presence.is_online(user_id)

    def online_users(self) -> list[str]:
        return self._presence.online_users()

    def update_presence(self, user_id: str, status: str) -> None:
        """Summary: Change a user's presence status and broadcast it.

        Importance: Supports away and busy states in addition to connect and disconnect.
        Alternatives: Derive presence only from open connections.
        """

        if status not in PRESENCE_STATUSES:
            raise ValueError(f"Unknown presence status: {status}")
        if status == "offline":
            self._presence.mark_offline(user_id)
            self.publish("user_offline", None, user_id, {"status": status})
            return
        self._presence.mark_online(user_id)
        self.publish("user_online", None, user_id, {"status": status})

    def ping(self, connection_id: str) -> None:
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                raise NotFoundError("connection", connection_id)
            connection.last_ping = self._clock()

    def reap_stale(self) -> list[str]:
        """Summary: Disconnect connections that missed the heartbeat window.

        Importance: Keeps presence accurate when clients vanish without disconnecting.
        Alternatives: Rely on transport-level close events only.
        """

        now = self._clock()
        with self._lock:
            stale = [
                connection.id
                for connection in self._connections.values()
                if now - connection.last_ping > self._heartbeat_timeout
            ]
        for connection_id in stale:
            logger.warning("Connection %s missed heartbeat, disconnecting.", connection_id)
            self.disconnect(connection_id)
        return stale

    def get_connection(self, connection_id: str) -> Connection | None:
        with self._lock:
            return self._connections.get(connection_id)

    def stats(self) -> dict[str, int]:
        with self._lock:
            total = len(self._connections)
            active = sum(1 for item in self._connections.values() if item.status == "connected")
        return {
            "total_connections": total,
            "active_connections": active,
            "online_users": len(self._presence.online_users()),
            "typing_users": self._presence.typing_count(),
        }

    def publish(
        self, event_type: str, thread_id: str | None, user_id: str, data: dict[str, Any]
    ) -> RealtimeEvent:
        """Summary: Build an event and deliver it to interested connections and taps.

        Importance: Single dispatch path keeps per-connection ordering.
        Alternatives: Queue events and deliver them from a background worker.
        """

        event = RealtimeEvent(
            type=event_type,
            thread_id=thread_id,
            user_id=user_id,
            data=dict(data),
            timestamp=self._clock(),
        )
        with self._dispatch_lock:
            with self._lock:
                sinks = [
                    connection.sink
                    for connection in self._connections.values()
                    if connection.sink is not None
                    and connection.status == "connected"
                    and (thread_id is None or connection.thread_id == thread_id)
                ]
                sinks.extend(self._taps)
            for sink in sinks:
                try:
                    sink(event)
                except Exception as exc:
                    logger.warning("Handler failed for %s event: %s", event_type, exc)
        return event

    def close(self) -> None:
        with self._lock:
            self._connections.clear()
            self._taps.clear()
        self._presence.clear()
