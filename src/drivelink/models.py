"""Summary: Domain model dataclasses for DriveLink.

Importance: Defines the threads, requests, and notifications shared across services and storage.
Alternatives: Use Pydantic models or ORM classes directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union


THREAD_STATUSES = ("active", "archived")
THREAD_PRIORITIES = ("low", "normal", "high", "urgent")
MESSAGE_TYPES = ("text", "system")
MESSAGE_STATUSES = ("sending", "sent", "delivered", "read", "failed")
PARTICIPANT_ROLES = ("buyer", "seller", "admin")
MEETING_LOCATIONS = ("seller_location", "buyer_location", "neutral_location", "custom")
NOTIFICATION_CATEGORIES = ("message", "test_drive", "listing", "payment", "system")
NOTIFICATION_TYPES = ("success", "warning", "error", "info")
NOTIFICATION_PRIORITIES = ("low", "medium", "high")


@dataclass(frozen=True)
class Participant:
    """Summary: Represents a buyer, seller, or admin taking part in a thread.

    Importance: Seeds thread membership and drives unread tracking per viewer.
    Alternatives: Store only participant IDs and resolve names on demand.
    """

    id: str
    name: str
    role: str
    avatar: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class Attachment:
    """Summary: Represents a file attached to a message.

    Importance: Lets messages carry photos and documents about a vehicle.
    Alternatives: Embed attachment URLs in the message content.
    """

    id: str
    name: str
    url: str
    kind: str
    size: int
    mime_type: str


@dataclass
class Message:
    """Summary: Represents a single message inside a thread.

    Importance: Core unit of buyer-seller conversation and read tracking.
    Alternatives: Model messages as rows without thread back-references.
    """

    id: str
    thread_id: str
    sender_id: str
    sender_name: str
    sender_role: str
    content: str
    timestamp: datetime
    message_type: str = "text"
    status: str = "sent"
    read_by: set[str] = field(default_factory=set)
    attachments: list[Attachment] = field(default_factory=list)


@dataclass
class Thread:
    """Summary: Represents a conversation about one vehicle.

    Importance: Groups a buyer, a seller, and their messages for a listing.
    Alternatives: Use a flat message log keyed by vehicle.
    """

    id: str
    vehicle_id: str
    vehicle_title: str
    subject: str
    participants: list[Participant]
    created_at: datetime
    last_activity: datetime
    messages: list[Message] = field(default_factory=list)
    status: str = "active"
    priority: str = "normal"
    tags: set[str] = field(default_factory=set)

    def participant(self, user_id: str) -> Participant | None:
        """Return the participant with the given ID, if any."""

        for participant in self.participants:
            if participant.id == user_id:
                return participant
        return None

    def unread_count_for(self, viewer_id: str) -> int:
        """Summary: Count messages the viewer has not read.

        Importance: Gives each participant their own unread badge.
        Alternatives: Keep a single global counter per thread.
        """

        return sum(1 for message in self.messages if viewer_id not in message.read_by)


@dataclass(frozen=True)
class Listing:
    """Summary: Snapshot of a vehicle listing used by messaging and test drives.

    Importance: Supplies seller details without depending on the listing store.
    Alternatives: Pass full listing records from the catalog service.
    """

    id: str
    title: str
    price: str
    seller_id: str
    seller_name: str
    seller_email: str


@dataclass(frozen=True)
class TestDriveFormData:
    """Summary: Snapshot of the buyer's test-drive form.

    Importance: Captures contact and scheduling details sent to the seller.
    Alternatives: Store the raw form payload as a dict.
    """

    __test__ = False

    name: str
    email: str
    phone: str
    preferred_date: str
    preferred_time: str
    meeting_location: str = "seller_location"
    custom_location: str = ""
    license_type: str = ""
    driving_experience: str = ""
    emergency_contact_name: str = ""
    emergency_contact_phone: str = ""
    additional_notes: str = ""


@dataclass(frozen=True)
class SendResult:
    """Summary: Outcome reported by the send side effect.

    Importance: The state machine depends only on this success and message contract.
    Alternatives: Raise exceptions from the sender instead of returning results.
    """

    success: bool
    message: str = ""


@dataclass(frozen=True)
class Reschedule:
    """Proposed new date and time attached by a seller."""

    date: str
    time: str


@dataclass(frozen=True)
class Draft:
    """Request created while offline and waiting for the first send."""

    status = "draft"


@dataclass(frozen=True)
class Sending:
    """Request whose send side effect is in flight."""

    status = "sending"


@dataclass(frozen=True)
class Sent:
    """Request delivered to the seller, optionally carrying a reschedule proposal."""

    reschedule: Reschedule | None = None
    seller_message: str | None = None
    status = "sent"


@dataclass(frozen=True)
class Failed:
    """Request whose last send attempt failed."""

    reason: str
    status = "failed"


@dataclass(frozen=True)
class Confirmed:
    """Request confirmed by the seller."""

    seller_message: str = ""
    status = "confirmed"


@dataclass(frozen=True)
class Cancelled:
    """Request declined by the seller or cancelled later."""

    seller_message: str = ""
    status = "cancelled"


@dataclass(frozen=True)
class Completed:
    """Test drive that took place."""

    status = "completed"


RequestState = Union[Draft, Sending, Sent, Failed, Confirmed, Cancelled, Completed]

TEST_DRIVE_STATUSES = (
    "draft",
    "sending",
    "sent",
    "confirmed",
    "completed",
    "cancelled",
    "failed",
)


@dataclass(frozen=True)
class TestDriveRequest:
    """Summary: A buyer's request to test drive a vehicle.

    Importance: Tracks the scheduling lifecycle from submission to completion.
    Alternatives: Use one record with many optional fields per lifecycle stage.
    """

    __test__ = False

    id: str
    vehicle_id: str
    vehicle_title: str
    vehicle_price: str
    seller_email: str
    seller_name: str
    buyer_data: TestDriveFormData
    timestamp: datetime
    last_updated: datetime
    state: RequestState
    version: int = 1
    response: SendResult | None = None

    @property
    def status(self) -> str:
        """Return the lifecycle status name derived from the state."""

        return self.state.status


@dataclass(frozen=True)
class Notification:
    """Summary: User-facing notification derived from marketplace events.

    Importance: Surfaces messages, test-drive updates, and listing changes.
    Alternatives: Render events directly without a notification record.
    """

    id: str
    category: str
    type: str
    title: str
    message: str
    timestamp: datetime
    priority: str = "medium"
    read: bool = False
    action_url: str | None = None
    action_text: str | None = None
    vehicle_id: str | None = None
    vehicle_title: str | None = None


@dataclass(frozen=True)
class TypingState:
    """Ephemeral typing marker for a user in a thread."""

    thread_id: str
    user_id: str
    expires_at: datetime


@dataclass(frozen=True)
class RealtimeEvent:
    """Summary: Event pushed to realtime connections.

    Importance: Carries message, typing, and presence updates to listeners.
    Alternatives: Push full thread snapshots on every change.
    """

    type: str
    thread_id: str | None
    user_id: str
    data: dict[str, Any]
    timestamp: datetime
