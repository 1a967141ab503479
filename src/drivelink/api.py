"""Summary: FastAPI application for DriveLink.

Importance: Exposes messaging, notifications, and test drives to dashboard clients.
Alternatives: Embed the services directly in a server-rendered UI.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from drivelink.app import build_services, AppServices
from drivelink.config import AppConfig
from drivelink.errors import (
    InvalidStateError,
    NotFoundError,
    SendFailure,
    StorageError,
    ValidationError,
)
from drivelink.models import Participant, Reschedule, TestDriveFormData, Thread
from drivelink.notifications import notification_to_dict
from drivelink.test_drives import request_to_dict
from drivelink.threads import message_payload


logger = logging.getLogger(__name__)


class ParticipantPayload(BaseModel):
    """Summary: Participant details supplied by the session layer.

    Importance: Lets clients open threads as someone other than the default user.
    Alternatives: Resolve the participant from an auth token.
    """

    id: str
    name: str
    role: str = Field(default="buyer", pattern="^(buyer|seller|admin)$")
    avatar: str | None = None
    email: str | None = None


class ThreadCreateRequest(BaseModel):
    """Summary: Request payload for opening a thread.

    Importance: Starts a conversation with a listing's seller.
    Alternatives: Open threads implicitly on the first message.
    """

    vehicle_id: str
    subject: str
    content: str
    sender: ParticipantPayload | None = None


class MessageCreateRequest(BaseModel):
    """Request payload for appending a message."""

    sender_id: str
    content: str
    message_type: str = "text"


class ReadRequest(BaseModel):
    reader_id: str


class ThreadUpdateRequest(BaseModel):
    """Request payload for status and priority changes."""

    status: str | None = None
    priority: str | None = None


class TagRequest(BaseModel):
    tag: str = Field(min_length=1)


class TypingRequest(BaseModel):
    user_id: str
    is_typing: bool = True


class PresenceRequest(BaseModel):
    user_id: str
    status: str


class TestDriveFormPayload(BaseModel):
    """Summary: Test-drive form fields submitted by the buyer.

    Importance: Mirrors the form so field-level errors map back to inputs.
    Alternatives: Accept a free-form JSON object.
    """

    name: str = ""
    email: str = ""
    phone: str = ""
    preferred_date: str = ""
    preferred_time: str = ""
    meeting_location: str = "seller_location"
    custom_location: str = ""
    license_type: str = ""
    driving_experience: str = ""
    emergency_contact_name: str = ""
    emergency_contact_phone: str = ""
    additional_notes: str = ""


class TestDriveCreateRequest(BaseModel):
    """Request payload for scheduling a test drive."""

    vehicle_id: str
    form: TestDriveFormPayload


class TestDriveResponseRequest(BaseModel):
    """Summary: Seller response payload.

    Importance: Carries confirm, decline, or reschedule decisions with a message.
    Alternatives: Use separate endpoints per response type.
    """

    response_type: str
    message: str = ""
    reschedule_date: str | None = None
    reschedule_time: str | None = None


class CancelRequest(BaseModel):
    message: str = ""


class ConnectivityRequest(BaseModel):
    online: bool


def thread_payload(thread: Thread, viewer_id: str) -> dict[str, Any]:
    """Serialize a thread with the viewer's unread count."""

    return {
        "id": thread.id,
        "vehicle_id": thread.vehicle_id,
        "vehicle_title": thread.vehicle_title,
        "subject": thread.subject,
        "participants": [
            {"id": item.id, "name": item.name, "role": item.role, "avatar": item.avatar}
            for item in thread.participants
        ],
        "messages": [message_payload(message) for message in thread.messages],
        "status": thread.status,
        "priority": thread.priority,
        "tags": sorted(thread.tags),
        "created_at": thread.created_at.isoformat(),
        "last_activity": thread.last_activity.isoformat(),
        "unread_count": thread.unread_count_for(viewer_id),
    }


def request_payload(request) -> dict[str, Any]:
    data = request_to_dict(request)
    data["status"] = request.status
    return data


def create_app(config: AppConfig, services: AppServices | None = None) -> FastAPI:
    """Summary: Create a FastAPI app wired to DriveLink services.

    Importance: Ensures the API layer shares the same configuration and storage.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app = FastAPI(title="DriveLink API", version="0.1.0")
    services = services or build_services(config)
    app.state.services = services

    @app.exception_handler(ValidationError)
    def handle_validation(_: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc), "errors": exc.errors})

    @app.exception_handler(NotFoundError)
    def handle_not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidStateError)
    def handle_invalid_state(_: Request, exc: InvalidStateError) -> JSONResponse:
        return JSONResponse(
            status_code=409, content={"detail": str(exc), "status": exc.current}
        )

    @app.exception_handler(SendFailure)
    def handle_send_failure(_: Request, exc: SendFailure) -> JSONResponse:
        return JSONResponse(
            status_code=502, content={"detail": exc.message, "request_id": exc.request_id}
        )

    @app.exception_handler(StorageError)
    def handle_storage(_: Request, exc: StorageError) -> JSONResponse:
        logger.warning("Storage failure surfaced to API: %s", exc)
        return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        """Summary: Enforce API key authentication when configured.

        Importance: Adds a minimal security layer for local and private deployments.
        Alternatives: Use OAuth or session-based authentication.
        """

        if not config.api_key:
            return
        if x_api_key != config.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    viewer_id = services.viewer.id

    @app.get("/health")
    def health() -> dict[str, Any]:
        """Summary: Health check endpoint.

        Importance: Supports uptime checks in local and cloud deployments.
        Alternatives: Use a metrics endpoint only.
        """

        return {"status": "ok", "realtime": services.bus.stats()}

    @app.post("/threads", dependencies=[Depends(require_api_key)])
    def create_thread(payload: ThreadCreateRequest) -> dict[str, Any]:
        sender = services.viewer
        if payload.sender is not None:
            sender = Participant(**payload.sender.model_dump())
        thread = services.threads.create_thread(
            payload.vehicle_id, payload.subject, payload.content, sender
        )
        return thread_payload(thread, sender.id)

    @app.get("/threads", dependencies=[Depends(require_api_key)])
    def list_threads(
        query: str = "",
        status: str | None = None,
        priority: str | None = None,
        tag: str | None = None,
        viewer: str | None = None,
    ) -> list[dict[str, Any]]:
        """Summary: Search and filter threads, most recent activity first.

        Importance: Backs the inbox views of buyer and seller dashboards.
        Alternatives: Return every thread and filter in the client.
        """

        matches = {thread.id for thread in services.threads.search_threads(query)}
        threads = services.threads.filter_threads(status=status, priority=priority, tag=tag)
        viewer_key = viewer or viewer_id
        return [
            thread_payload(thread, viewer_key)
            for thread in threads
            if thread.id in matches and (viewer is None or thread.participant(viewer))
        ]

    @app.get("/threads/{thread_id}", dependencies=[Depends(require_api_key)])
    def get_thread(thread_id: str, viewer: str | None = None) -> dict[str, Any]:
        return thread_payload(services.threads.get_thread(thread_id), viewer or viewer_id)

    @app.delete("/threads/{thread_id}", dependencies=[Depends(require_api_key)])
    def delete_thread(thread_id: str) -> dict[str, str]:
        services.threads.delete_thread(thread_id)
        return {"status": "deleted"}

    @app.post("/threads/{thread_id}/messages", dependencies=[Depends(require_api_key)])
    def add_message(thread_id: str, payload: MessageCreateRequest) -> dict[str, Any]:
        message = services.threads.add_message(
            thread_id, payload.sender_id, payload.content, payload.message_type
        )
        return message_payload(message)

    @app.post("/threads/{thread_id}/read", dependencies=[Depends(require_api_key)])
    def mark_read(thread_id: str, payload: ReadRequest) -> dict[str, Any]:
        marked = services.threads.mark_thread_as_read(thread_id, payload.reader_id)
        return {"marked": marked, "unread_count": 0}

    @app.patch("/threads/{thread_id}", dependencies=[Depends(require_api_key)])
    def update_thread(thread_id: str, payload: ThreadUpdateRequest) -> dict[str, Any]:
        thread = services.threads.get_thread(thread_id)
        if payload.status is not None:
            thread = services.threads.update_status(thread_id, payload.status)
        if payload.priority is not None:
            thread = services.threads.update_priority(thread_id, payload.priority)
        return thread_payload(thread, viewer_id)

    @app.post("/threads/{thread_id}/tags", dependencies=[Depends(require_api_key)])
    def add_tag(thread_id: str, payload: TagRequest) -> dict[str, Any]:
        return thread_payload(services.threads.add_tag(thread_id, payload.tag), viewer_id)

    @app.delete("/threads/{thread_id}/tags/{tag}", dependencies=[Depends(require_api_key)])
    def remove_tag(thread_id: str, tag: str) -> dict[str, Any]:
        return thread_payload(services.threads.remove_tag(thread_id, tag), viewer_id)

    @app.post("/threads/{thread_id}/typing", dependencies=[Depends(require_api_key)])
    def set_typing(thread_id: str, payload: TypingRequest) -> dict[str, Any]:
        services.threads.get_thread(thread_id)
        if payload.is_typing:
            services.bus.start_typing(thread_id, payload.user_id)
        else:
            services.bus.stop_typing(thread_id, payload.user_id)
        return {"typing": services.bus.get_typing_users(thread_id)}

    @app.get("/threads/{thread_id}/typing", dependencies=[Depends(require_api_key)])
    def get_typing(thread_id: str) -> dict[str, Any]:
        return {"typing": services.bus.get_typing_users(thread_id)}

    @app.get("/presence", dependencies=[Depends(require_api_key)])
    def presence() -> dict[str, Any]:
        return {"online": services.bus.online_users()}

    @app.post("/presence", dependencies=[Depends(require_api_key)])
    def update_presence(payload: PresenceRequest) -> dict[str, Any]:
        try:
            services.bus.update_presence(payload.user_id, payload.status)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"online": services.bus.online_users()}

    @app.get("/notifications", dependencies=[Depends(require_api_key)])
    def list_notifications(
        category: str | None = None, unread: bool = False
    ) -> list[dict[str, Any]]:
        """Summary: List notifications, newest first.

        Importance: Feeds the notification center with category filters.
        Alternatives: Page notifications with cursors.
        """

        items = services.notifications.get_unread() if unread else services.notifications.get_all()
        if category is not None:
            items = [item for item in items if item.category == category]
        return [notification_to_dict(item) for item in items]

    @app.get("/notifications/unread-count", dependencies=[Depends(require_api_key)])
    def unread_count() -> dict[str, int]:
        return {"unread": services.notifications.get_unread_count()}

    @app.post("/notifications/read-all", dependencies=[Depends(require_api_key)])
    def read_all() -> dict[str, int]:
        return {"marked": services.notifications.mark_all_as_read()}

    @app.post("/notifications/permission", dependencies=[Depends(require_api_key)])
    async def request_permission() -> dict[str, bool]:
        return {"granted": await services.notifications.request_permission()}

    @app.post("/notifications/{notification_id}/read", dependencies=[Depends(require_api_key)])
    def read_notification(notification_id: str) -> dict[str, Any]:
        return notification_to_dict(services.notifications.mark_as_read(notification_id))

    @app.delete("/notifications/{notification_id}", dependencies=[Depends(require_api_key)])
    def delete_notification(notification_id: str) -> dict[str, str]:
        services.notifications.remove(notification_id)
        return {"status": "deleted"}

    @app.delete("/notifications", dependencies=[Depends(require_api_key)])
    def clear_notifications() -> dict[str, str]:
        services.notifications.clear()
        return {"status": "cleared"}

    @app.post("/test-drives", dependencies=[Depends(require_api_key)])
    async def schedule_test_drive(payload: TestDriveCreateRequest) -> dict[str, Any]:
        """Summary: Schedule a test drive for a listing.

        Importance: Returns 502 with the request ID when the seller could not be reached.
        Alternatives: Always return 200 and let clients poll status.
        """

        listing = services.listings.get_listing_by_id(payload.vehicle_id)
        if listing is None:
            raise NotFoundError("listing", payload.vehicle_id)
        form = TestDriveFormData(**payload.form.model_dump())
        request = await services.test_drives.schedule_test_drive(form, listing)
        return request_payload(request)

    @app.get("/test-drives", dependencies=[Depends(require_api_key)])
    def list_test_drives(
        buyer_email: str | None = None,
        seller_email: str | None = None,
        vehicle_id: str | None = None,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        test_drives = services.test_drives
        if seller_email is not None and status is not None:
            requests = test_drives.get_requests_by_status(seller_email, status)
        elif seller_email is not None:
            requests = test_drives.get_requests_for_seller(seller_email)
        elif buyer_email is not None:
            requests = test_drives.get_requests_for_buyer(buyer_email)
        elif vehicle_id is not None:
            requests = test_drives.get_requests_by_vehicle_id(vehicle_id)
        else:
            requests = test_drives.list_requests()
        if status is not None:
            requests = [item for item in requests if item.status == status]
        return [request_payload(item) for item in requests]

    @app.get("/test-drives/upcoming", dependencies=[Depends(require_api_key)])
    def upcoming_test_drives() -> list[dict[str, Any]]:
        return [request_payload(item) for item in services.test_drives.get_upcoming_test_drives()]

    @app.post("/test-drives/sync", dependencies=[Depends(require_api_key)])
    async def sync_offline() -> dict[str, list[str]]:
        report = await services.test_drives.sync_offline_requests()
        return {"sent": report.sent, "failed": report.failed, "skipped": report.skipped}

    @app.post("/connectivity", dependencies=[Depends(require_api_key)])
    def set_connectivity(payload: ConnectivityRequest) -> dict[str, Any]:
        services.test_drives.set_online(payload.online)
        return {"online": services.test_drives.is_online, "queued": services.test_drives.offline_queue()}

    @app.put("/test-drives/drafts/{vehicle_id}", dependencies=[Depends(require_api_key)])
    def save_draft(vehicle_id: str, payload: dict[str, str]) -> dict[str, str]:
        return services.test_drives.save_draft(vehicle_id, payload)

    @app.get("/test-drives/drafts/{vehicle_id}", dependencies=[Depends(require_api_key)])
    def load_draft(vehicle_id: str) -> dict[str, str]:
        draft = services.test_drives.load_draft(vehicle_id)
        if draft is None:
            raise HTTPException(status_code=404, detail="Draft not found")
        return draft

    @app.delete("/test-drives/drafts/{vehicle_id}", dependencies=[Depends(require_api_key)])
    def clear_draft(vehicle_id: str) -> dict[str, str]:
        services.test_drives.clear_draft(vehicle_id)
        return {"status": "cleared"}

    @app.get("/test-drives/{request_id}", dependencies=[Depends(require_api_key)])
    def get_test_drive(request_id: str) -> dict[str, Any]:
        return request_payload(services.test_drives.get_request(request_id))

    @app.post("/test-drives/{request_id}/retry", dependencies=[Depends(require_api_key)])
    async def retry_test_drive(request_id: str) -> dict[str, Any]:
        return request_payload(await services.test_drives.retry_failed_request(request_id))

    @app.post("/test-drives/{request_id}/respond", dependencies=[Depends(require_api_key)])
    async def respond_test_drive(request_id: str, payload: TestDriveResponseRequest) -> dict[str, Any]:
        reschedule = None
        if payload.response_type == "reschedule":
            reschedule = Reschedule(
                date=payload.reschedule_date or "", time=payload.reschedule_time or ""
            )
        request = await services.test_drives.respond_to_test_drive(
            request_id, payload.response_type, payload.message, reschedule
        )
        return request_payload(request)

    @app.post("/test-drives/{request_id}/complete", dependencies=[Depends(require_api_key)])
    def complete_test_drive(request_id: str) -> dict[str, Any]:
        return request_payload(services.test_drives.complete_test_drive(request_id))

    @app.post("/test-drives/{request_id}/cancel", dependencies=[Depends(require_api_key)])
    def cancel_test_drive(request_id: str, payload: CancelRequest) -> dict[str, Any]:
        return request_payload(services.test_drives.cancel_test_drive(request_id, payload.message))

    return app
