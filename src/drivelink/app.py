"""Summary: Application factory wiring core services.

Importance: Builds each store once and passes it by reference to every entrypoint.
Alternatives: Instantiate services as module-level singletons.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from drivelink.config import AppConfig
from drivelink.fanout import NotificationFanout
from drivelink.listings import JsonListingDirectory, ListingDirectory
from drivelink.models import Participant
from drivelink.notifications import LoggingAlertChannel, NotificationService, PermissionProvider
from drivelink.presence import PresenceTracker
from drivelink.realtime import RealtimeBus
from drivelink.sender import MockTestDriveSender, TestDriveSender
from drivelink.storage.sqlite_store import KeyValueStore, SqliteKeyValueStore
from drivelink.test_drives import TestDriveService
from drivelink.threads import ThreadService


@dataclass(frozen=True)
class AppServices:
    """Summary: Bundle of core services for DriveLink.

    Importance: Simplifies passing dependencies to UI or API layers.
    Alternatives: Use a dependency injection container.
    """

    store: KeyValueStore
    listings: ListingDirectory
    presence: PresenceTracker
    bus: RealtimeBus
    threads: ThreadService
    notifications: NotificationService
    test_drives: TestDriveService
    fanout: NotificationFanout
    viewer: Participant
    detach_fanout: Callable[[], None]

    def close(self) -> None:
        """Detach listeners and stop applying in-flight results."""

        self.detach_fanout()
        self.test_drives.close()
        self.bus.close()


def build_services(
    config: AppConfig,
    store: KeyValueStore | None = None,
    listings: ListingDirectory | None = None,
    sender: TestDriveSender | None = None,
    permissions: PermissionProvider | None = None,
) -> AppServices:
    """Summary: Build core services from configuration.

    Importance: Provides a single construction path; collaborators can be overridden for tests.
    Alternatives: Instantiate services directly within the API entrypoint.
    """

    if store is None:
        sqlite_store = SqliteKeyValueStore(config.db_path)
        sqlite_store.initialize()
        store = sqlite_store
    listings = listings or JsonListingDirectory(Path(config.listings_path))
    sender = sender or MockTestDriveSender(
        delay_seconds=config.send_delay_seconds,
        success_rate=config.send_success_rate,
    )
    presence = PresenceTracker(timeout_seconds=config.typing_timeout_seconds)
    bus = RealtimeBus(presence, heartbeat_timeout_seconds=config.heartbeat_timeout_seconds)
    threads = ThreadService(listings=listings, bus=bus)
    notifications = NotificationService(
        store=store, permissions=permissions, alerts=LoggingAlertChannel()
    )
    test_drives = TestDriveService(store=store, sender=sender)
    viewer = Participant(
        id=config.default_user_id,
        name=config.default_user_name,
        role="buyer",
        email=config.default_user_email,
    )
    fanout = NotificationFanout(notifications=notifications, threads=threads, viewer_id=viewer.id)
    detach = fanout.attach(bus, test_drives)
    return AppServices(
        store=store,
        listings=listings,
        presence=presence,
        bus=bus,
        threads=threads,
        notifications=notifications,
        test_drives=test_drives,
        fanout=fanout,
        viewer=viewer,
        detach_fanout=detach,
    )
