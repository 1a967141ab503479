"""Summary: Typing indicators and online presence.

Importance: Shows who is composing a reply and who is connected right now.
Alternatives: Poll the server for presence on a fixed interval.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from drivelink.models import TypingState


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Emit = Callable[[str, str | None, str, dict[str, Any]], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PresenceTracker:
    """Summary: Tracks typing users per thread and the set of online users.

    Importance: Backs typing indicators and online badges in conversation views.
    Alternatives: Store presence in Redis with key expiry.
    """

    def __init__(
        self,
        timeout_seconds: float = 3.0,
        clock: Clock | None = None,
        emit: Emit | None = None,
    ) -> None:
        self._timeout = timedelta(seconds=timeout_seconds)
        self._clock = clock or utc_now
        self._emit = emit
        self._typing: dict[str, dict[str, datetime]] = {}
        self._online: set[str] = set()
        self._lock = threading.RLock()

    def bind(self, emit: Emit) -> None:
        """Route typing events to an emitter such as the realtime bus."""

        self._emit = emit

    def start_typing(self, thread_id: str, user_id: str) -> None:
        """Summary: Record or refresh a typing marker for the user.

        Importance: Emits a typing event only when the user starts, not on every keystroke.
        Alternatives: Emit on each keystroke and debounce in the client.
        """

        with self._lock:
            stopped = self._expire_thread(thread_id)
            entries = self._typing.setdefault(thread_id, {})
            is_new = user_id not in entries
            entries[user_id] = self._clock() + self._timeout
        self._emit_stopped(stopped)
        if is_new:
            self._send("user_typing", thread_id, user_id, {"is_typing": True})

    def stop_typing(self, thread_id: str, user_id: str) -> None:
        """Remove a typing marker; stopping a user who is not typing emits nothing."""

        with self._lock:
            entries = self._typing.get(thread_id)
            if not entries or user_id not in entries:
                return
            del entries[user_id]
            if not entries:
                del self._typing[thread_id]
        self._send("user_typing", thread_id, user_id, {"is_typing": False})

    def get_typing_users(self, thread_id: str) -> list[str]:
        """Summary: Return users with an unexpired typing marker.

        Importance: Expires stale markers lazily so no timer thread is needed.
        Alternatives: Run a background task that clears markers every second.
        """

        with self._lock:
            stopped = self._expire_thread(thread_id)
            users = list(self._typing.get(thread_id, {}))
        self._emit_stopped(stopped)
        return users

    def typing_states(self, thread_id: str) -> list[TypingState]:
        with self._lock:
            stopped = self._expire_thread(thread_id)
            states = [
                TypingState(thread_id=thread_id, user_id=user_id, expires_at=expires_at)
                for user_id, expires_at in self._typing.get(thread_id, {}).items()
            ]
        self._emit_stopped(stopped)
        return states

    def sweep(self) -> int:
        """Expire stale markers in every thread and return how many were removed."""

        with self._lock:
            stopped: list[tuple[str, str]] = []
            for thread_id in list(self._typing):
                stopped.extend(self._expire_thread(thread_id))
        self._emit_stopped(stopped)
        return len(stopped)

    def typing_count(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._typing.values())

    def mark_online(self, user_id: str) -> bool:
        """Add a user to the online set; returns True when the user was offline."""

        with self._lock:
            if user_id in self._online:
                return False
            self._online.add(user_id)
            return True

    def mark_offline(self, user_id: str) -> bool:
        """Remove a user from the online set; returns True when the user was online."""

        with self._lock:
            if user_id not in self._online:
                return False
            self._online.discard(user_id)
            return True

    def is_online(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._online

    def online_users(self) -> list[str]:
        with self._lock:
            return sorted(self._online)

    def clear(self) -> None:
        with self._lock:
            self._typing.clear()
            self._online.clear()

    def _expire_thread(self, thread_id: str) -> list[tuple[str, str]]:
        entries = self._typing.get(thread_id)
        if not entries:
            return []
        now = self._clock()
        expired = [user_id for user_id, expires_at in entries.items() if expires_at <= now]
        for user_id in expired:
            del entries[user_id]
        if not entries:
            del self._typing[thread_id]
        return [(thread_id, user_id) for user_id in expired]

    def _emit_stopped(self, stopped: list[tuple[str, str]]) -> None:
        for thread_id, user_id in stopped:
            logger.debug("Typing marker for %s in %s expired.", user_id, thread_id)
            self._send("user_typing", thread_id, user_id, {"is_typing": False})

    def _send(self, event_type: str, thread_id: str | None, user_id: str, data: dict[str, Any]) -> None:
        if self._emit is not None:
            self._emit(event_type, thread_id, user_id, data)
