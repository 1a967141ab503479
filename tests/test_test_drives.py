"""Summary: Tests for the test-drive request lifecycle.

Importance: Ensures scheduling, retries, seller responses, and offline sync follow legal transitions.
Alternatives: Rely on manual testing of the booking form.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from drivelink.errors import InvalidStateError, NotFoundError, SendFailure, ValidationError
from drivelink.models import (
    Confirmed,
    Listing,
    Reschedule,
    SendResult,
    TestDriveFormData,
    TestDriveRequest,
)
from drivelink.sender import MockTestDriveSender
from drivelink.storage.sqlite_store import MemoryKeyValueStore
from drivelink.test_drives import REQUESTS_KEY, TestDriveService


PRIUS = Listing(
    id="car-1",
    title="2019 Toyota Prius S",
    price="¥1,850,000",
    seller_id="seller-1",
    seller_name="Kenji Sato",
    seller_email="kenji@example.com",
)


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _form(**overrides: str) -> TestDriveFormData:
    """Summary: Build a valid test-drive form.

    Importance: Keeps each test focused on the field it changes.
    Alternatives: Repeat the full form in every test.
    """

    values = {
        "name": "Mika Ito",
        "email": "mika@example.com",
        "phone": "090-1234-5678",
        "preferred_date": "2025-03-10",
        "preferred_time": "10:30",
        "license_type": "regular",
        "driving_experience": "5 years",
        "emergency_contact_name": "Taro Ito",
        "emergency_contact_phone": "03-1234-5678",
    }
    values.update(overrides)
    return TestDriveFormData(**values)


def _build_service(
    store: MemoryKeyValueStore | None = None,
    sender: MockTestDriveSender | None = None,
) -> tuple[TestDriveService, MockTestDriveSender, MemoryKeyValueStore]:
    store = store or MemoryKeyValueStore()
    sender = sender or MockTestDriveSender(delay_seconds=0)
    service = TestDriveService(store=store, sender=sender, clock=_Clock())
    return service, sender, store


def _schedule_sent(service: TestDriveService, sender: MockTestDriveSender) -> TestDriveRequest:
    sender.queue_outcome(SendResult(success=True, message="ok"))
    return asyncio.run(service.schedule_test_drive(_form(), PRIUS))


def test_schedule_success_marks_request_sent() -> None:
    """Summary: Verify a successful send leaves the request pending with the seller.

    Importance: The happy path is the most common booking flow.
    Alternatives: Mark requests confirmed immediately.
    """

    service, sender, _ = _build_service()
    changes: list[tuple[str, str | None]] = []
    service.subscribe(lambda request, previous: changes.append((request.status, previous)))
    request = _schedule_sent(service, sender)
    assert request.status == "sent"
    assert request.vehicle_title == PRIUS.title
    assert request.seller_email == PRIUS.seller_email
    assert request.response == SendResult(success=True, message="ok")
    assert changes == [("sending", None), ("sent", "sending")]
    assert [item.id for item in sender.sent] == [request.id]


def test_invalid_form_raises_before_any_change() -> None:
    """Summary: Ensure validation errors leave no request behind.

    Importance: Bad input must not create half-built records.
    Alternatives: Store the request as failed with validation errors.
    """

    service, sender, _ = _build_service()
    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(
            service.schedule_test_drive(
                _form(name="A", email="not-an-email", preferred_date="2025-02-01"), PRIUS
            )
        )
    assert set(excinfo.value.errors) == {"name", "email", "preferred_date"}
    assert service.list_requests() == []
    assert sender.sent == []


def test_failed_send_then_retry_keeps_same_id() -> None:
    """Summary: Verify a failed request can be retried under the same ID.

    Importance: Buyers retry without creating duplicate requests for the seller.
    Alternatives: Create a new request on retry.
    """

    service, sender, _ = _build_service()
    sender.queue_outcome(SendResult(success=False, message="SMTP unavailable"))
    with pytest.raises(SendFailure) as excinfo:
        asyncio.run(service.schedule_test_drive(_form(), PRIUS))
    request_id = excinfo.value.request_id
    failed = service.get_request(request_id)
    assert failed.status == "failed"
    assert failed.state.reason == "SMTP unavailable"

    sender.queue_outcome(SendResult(success=True, message="ok"))
    retried = asyncio.run(service.retry_failed_request(request_id))
    assert retried.id == request_id
    assert retried.status == "sent"
    assert retried.version > failed.version
    assert len(service.list_requests()) == 1


def test_sender_exception_is_recorded_as_failure() -> None:
    """Summary: Ensure exceptions from the sender behave like failed sends.

    Importance: Transport crashes must not leave requests stuck in sending.
    Alternatives: Let the exception propagate unchanged.
    """

    class _BrokenSender(MockTestDriveSender):
        async def send(self, request: TestDriveRequest) -> SendResult:
            raise ConnectionError("network down")

    service, _, _ = _build_service(sender=_BrokenSender(delay_seconds=0))
    with pytest.raises(SendFailure) as excinfo:
        asyncio.run(service.schedule_test_drive(_form(), PRIUS))
    assert service.get_request(excinfo.value.request_id).state.reason == "network down"


def test_retry_rejects_non_failed_request_without_mutation() -> None:
    """Summary: Verify retrying a sent request is rejected and nothing changes.

    Importance: Illegal transitions must not resend email to the seller.
    Alternatives: Treat retry of a sent request as a no-op success.
    """

    service, sender, _ = _build_service()
    request = _schedule_sent(service, sender)
    with pytest.raises(InvalidStateError):
        asyncio.run(service.retry_failed_request(request.id))
    assert service.get_request(request.id) == request
    assert len(sender.sent) == 1
    with pytest.raises(NotFoundError):
        asyncio.run(service.retry_failed_request("td_missing"))


def test_seller_confirms_then_completes() -> None:
    """Summary: Walk a request through confirm and complete.

    Importance: Confirmed drives show up as upcoming until they happen.
    Alternatives: Drop confirmed requests once the date passes.
    """

    service, sender, _ = _build_service()
    request = _schedule_sent(service, sender)
    confirmed = asyncio.run(
        service.respond_to_test_drive(request.id, "confirm", "See you at the dealership.")
    )
    assert confirmed.status == "confirmed"
    assert confirmed.state.seller_message == "See you at the dealership."
    assert sender.confirmations == [
        ("mika@example.com", "Test Drive Update - 2019 Toyota Prius S")
    ]
    assert [item.id for item in service.get_upcoming_test_drives()] == [request.id]
    completed = service.complete_test_drive(request.id)
    assert completed.status == "completed"
    assert service.get_upcoming_test_drives() == []
    with pytest.raises(InvalidStateError):
        service.cancel_test_drive(request.id)


def test_seller_reschedule_keeps_request_pending() -> None:
    """Summary: Verify a reschedule attaches the proposal and stays sent.

    Importance: The buyer still has to accept the new slot.
    Alternatives: Cancel and recreate the request.
    """

    service, sender, _ = _build_service()
    request = _schedule_sent(service, sender)
    with pytest.raises(ValidationError):
        asyncio.run(service.respond_to_test_drive(request.id, "reschedule", "Later?"))
    proposal = Reschedule(date="2025-03-12", time="14:00")
    updated = asyncio.run(
        service.respond_to_test_drive(request.id, "reschedule", "Afternoon works better.", proposal)
    )
    assert updated.status == "sent"
    assert updated.state.reschedule == proposal
    assert sender.confirmations[-1][1] == "Test Drive Rescheduled - 2019 Toyota Prius S"
    declined = asyncio.run(service.respond_to_test_drive(request.id, "decline", "Sold already."))
    assert declined.status == "cancelled"
    with pytest.raises(InvalidStateError):
        asyncio.run(service.respond_to_test_drive(request.id, "confirm", "Too late"))


def test_offline_requests_sync_independently() -> None:
    """Summary: Verify queued requests are replayed with independent outcomes.

    Importance: One failed send must not block the rest of the queue.
    Alternatives: Abort the batch on the first failure.
    """

    service, sender, _ = _build_service()
    service.set_online(False)
    first = asyncio.run(service.schedule_test_drive(_form(), PRIUS))
    second = asyncio.run(service.schedule_test_drive(_form(preferred_time="15:00"), PRIUS))
    assert first.status == "draft"
    assert service.offline_queue() == [first.id, second.id]
    assert asyncio.run(service.sync_offline_requests()).sent == []

    service.set_online(True)
    sender.queue_outcome(SendResult(success=False, message="bounced"))
    sender.queue_outcome(SendResult(success=True, message="ok"))
    report = asyncio.run(service.sync_offline_requests())
    assert report.failed == [first.id]
    assert report.sent == [second.id]
    assert service.get_request(first.id).status == "failed"
    assert service.get_request(second.id).status == "sent"
    assert service.offline_queue() == []


def test_queries_are_safe_on_empty_store() -> None:
    """Summary: Ensure lookups on an empty store return empty results.

    Importance: Fresh installs should render empty dashboards, not errors.
    Alternatives: Raise when no requests exist.
    """

    service, _, _ = _build_service()
    assert service.get_requests_by_vehicle_id("car-1") == []
    assert service.get_requests_for_seller("kenji@example.com") == []
    assert service.get_requests_by_status("kenji@example.com", "sent") == []
    assert service.get_requests_by_status("kenji@example.com", "bogus") == []
    assert service.get_upcoming_test_drives() == []
    assert service.load_draft("car-1") is None


def test_requests_and_drafts_survive_restart() -> None:
    """Summary: Verify a new service instance restores saved state.

    Importance: Requests and drafts must outlive the session that created them.
    Alternatives: Keep state in memory only.
    """

    service, sender, store = _build_service()
    request = _schedule_sent(service, sender)
    service.save_draft("car-2", {"name": "Mika", "phone": "090", "unknown": "x"})
    restored, _, _ = _build_service(store=store)
    assert restored.get_request(request.id) == request
    assert restored.get_requests_for_buyer("mika@example.com")[0].id == request.id
    assert restored.load_draft("car-2") == {"name": "Mika", "phone": "090"}
    restored.clear_draft("car-2")
    assert restored.load_draft("car-2") is None


def test_request_interrupted_mid_send_loads_as_failed() -> None:
    """Summary: Ensure a request saved while sending becomes retryable on restart.

    Importance: A crash during send must not leave the request stuck.
    Alternatives: Resume the send automatically on startup.
    """

    service, sender, store = _build_service()
    request = _schedule_sent(service, sender)
    stored = store.get(REQUESTS_KEY)
    stored[0]["state"] = {"status": "sending"}
    store.put(REQUESTS_KEY, stored)
    restored, _, _ = _build_service(store=store)
    assert restored.get_request(request.id).status == "failed"


def test_corrupted_storage_starts_empty() -> None:
    """Summary: Verify unreadable saved data degrades to an empty store.

    Importance: A bad write must never prevent the app from starting.
    Alternatives: Fail fast and ask the user to reset storage.
    """

    store = MemoryKeyValueStore()
    store.put_raw(REQUESTS_KEY, "{not json")
    service, sender, _ = _build_service(store=store)
    assert service.list_requests() == []
    request = _schedule_sent(service, sender)
    assert [item["id"] for item in store.get(REQUESTS_KEY)] == [request.id]


def test_non_mapping_records_are_skipped_on_load() -> None:
    """Summary: Verify stored entries that are not records are ignored at startup.

    Importance: A single junk entry must not prevent the service from starting.
    Alternatives: Reject the whole stored list when one entry is malformed.
    """

    store = MemoryKeyValueStore()
    store.put(REQUESTS_KEY, ["junk", 42, None])
    service, sender, _ = _build_service(store=store)
    assert service.list_requests() == []
    assert service.get_requests_for_seller("kenji@example.com") == []
    request = _schedule_sent(service, sender)
    assert service.get_request(request.id).status == "sent"


def test_drive_times_follow_the_marketplace_timezone() -> None:
    """Summary: Verify preferred dates and times are read in the configured local timezone.

    Importance: A drive that already started locally must not show as upcoming.
    Alternatives: Treat every preferred time as UTC.
    """

    tokyo = timezone(timedelta(hours=9))
    clock = _Clock()
    clock.now = datetime(2025, 3, 10, 2, 0, tzinfo=timezone.utc)
    sender = MockTestDriveSender(delay_seconds=0)
    service = TestDriveService(
        store=MemoryKeyValueStore(), sender=sender, clock=clock, local_timezone=tokyo
    )
    sender.queue_outcome(SendResult(success=True, message="ok"))
    sender.queue_outcome(SendResult(success=True, message="ok"))
    started = asyncio.run(service.schedule_test_drive(_form(preferred_time="10:30"), PRIUS))
    later = asyncio.run(service.schedule_test_drive(_form(preferred_time="12:00"), PRIUS))
    for request in (started, later):
        asyncio.run(service.respond_to_test_drive(request.id, "confirm", "Booked."))
    # 02:00 UTC is 11:00 in Tokyo
    assert [item.id for item in service.get_upcoming_test_drives()] == [later.id]
    assert service.get_upcoming_test_drives(datetime(2025, 3, 10, 10, 0)) == [
        service.get_request(started.id),
        service.get_request(later.id),
    ]

    clock.now = datetime(2025, 3, 10, 20, 0, tzinfo=timezone.utc)
    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(service.schedule_test_drive(_form(preferred_date="2025-03-10"), PRIUS))
    assert set(excinfo.value.errors) == {"preferred_date"}


def test_confirmation_to_invalid_buyer_email_is_not_sent() -> None:
    """Summary: Ensure the sender refuses to email an invalid buyer address.

    Importance: Records saved before address checks tightened must not reach the mail provider.
    Alternatives: Let the provider bounce the message.
    """

    sender = MockTestDriveSender(delay_seconds=0)
    now = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
    request = TestDriveRequest(
        id="td_legacy",
        vehicle_id=PRIUS.id,
        vehicle_title=PRIUS.title,
        vehicle_price=PRIUS.price,
        seller_email=PRIUS.seller_email,
        seller_name=PRIUS.seller_name,
        buyer_data=_form(email="mika@example"),
        timestamp=now,
        last_updated=now,
        state=Confirmed(seller_message="Booked."),
    )
    result = asyncio.run(sender.send_confirmation(request, "Booked."))
    assert result == SendResult(success=False, message="Invalid recipient email address")
    assert sender.confirmations == []
    valid = asyncio.run(sender.send_confirmation(replace(request, buyer_data=_form()), "Booked."))
    assert valid.success
    assert sender.confirmations == [("mika@example.com", "Test Drive Update - 2019 Toyota Prius S")]
