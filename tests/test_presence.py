"""Summary: Tests for typing indicators and online presence.

Importance: Ensures typing markers expire and events fire only on real changes.
Alternatives: Verify typing behavior manually in a browser.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from drivelink.presence import PresenceTracker


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _recorder() -> tuple[list[tuple[str, str | None, str, dict[str, Any]]], Any]:
    events: list[tuple[str, str | None, str, dict[str, Any]]] = []

    def emit(event_type: str, thread_id: str | None, user_id: str, data: dict[str, Any]) -> None:
        events.append((event_type, thread_id, user_id, data))

    return events, emit


def test_typing_marker_expires_after_timeout() -> None:
    """Summary: Verify a typing marker disappears once its timeout passes.

    Importance: Users who stop typing without sending should not look busy forever.
    Alternatives: Require clients to always send an explicit stop.
    """

    clock = _Clock()
    events, emit = _recorder()
    tracker = PresenceTracker(timeout_seconds=3, clock=clock, emit=emit)
    tracker.start_typing("thread-1", "buyer-1")
    clock.advance(2)
    assert tracker.get_typing_users("thread-1") == ["buyer-1"]
    clock.advance(1.5)
    assert tracker.get_typing_users("thread-1") == []
    assert events == [
        ("user_typing", "thread-1", "buyer-1", {"is_typing": True}),
        ("user_typing", "thread-1", "buyer-1", {"is_typing": False}),
    ]


def test_refreshing_typing_extends_marker_without_new_event() -> None:
    """Summary: Ensure repeated keystrokes refresh the marker silently.

    Importance: Avoids flooding listeners with duplicate typing events.
    Alternatives: Debounce keystrokes in the client.
    """

    clock = _Clock()
    events, emit = _recorder()
    tracker = PresenceTracker(timeout_seconds=3, clock=clock, emit=emit)
    tracker.start_typing("thread-1", "buyer-1")
    clock.advance(2)
    tracker.start_typing("thread-1", "buyer-1")
    clock.advance(2)
    assert tracker.get_typing_users("thread-1") == ["buyer-1"]
    assert len(events) == 1


def test_stop_typing_is_silent_for_idle_user() -> None:
    """Summary: Verify stopping a user who is not typing emits nothing.

    Importance: Message sends always clear typing, even when none was set.
    Alternatives: Emit a stop event unconditionally.
    """

    events, emit = _recorder()
    tracker = PresenceTracker(emit=emit)
    tracker.stop_typing("thread-1", "buyer-1")
    assert events == []
    tracker.start_typing("thread-1", "buyer-1")
    tracker.stop_typing("thread-1", "buyer-1")
    assert [item[3]["is_typing"] for item in events] == [True, False]
    assert tracker.typing_count() == 0


def test_sweep_expires_markers_across_threads() -> None:
    """Summary: Verify sweep clears expired markers in every thread.

    Importance: Supports a periodic cleanup without per-thread reads.
    Alternatives: Only expire markers on read.
    """

    clock = _Clock()
    tracker = PresenceTracker(timeout_seconds=3, clock=clock)
    tracker.start_typing("thread-1", "buyer-1")
    tracker.start_typing("thread-2", "seller-1")
    clock.advance(5)
    assert tracker.sweep() == 2
    assert tracker.typing_count() == 0


def test_online_set_tracks_transitions() -> None:
    """Summary: Verify mark_online and mark_offline report real changes.

    Importance: Callers use the return value to decide whether to broadcast.
    Alternatives: Broadcast on every call.
    """

    tracker = PresenceTracker()
    assert tracker.mark_online("seller-1") is True
    assert tracker.mark_online("seller-1") is False
    assert tracker.mark_online("buyer-1") is True
    assert tracker.online_users() == ["buyer-1", "seller-1"]
    assert tracker.mark_offline("seller-1") is True
    assert tracker.mark_offline("seller-1") is False
    assert tracker.is_online("seller-1") is False
