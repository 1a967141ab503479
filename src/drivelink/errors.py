"""Summary: Error taxonomy for DriveLink services.

Importance: Lets callers react to validation, lookup, state, send, and storage failures distinctly.
Alternatives: Raise ValueError everywhere and parse messages.
"""

from __future__ import annotations


class DriveLinkError(Exception):
    """Base class for all DriveLink service errors."""


class ValidationError(DriveLinkError):
    """Summary: Input failed field-level rules.

    Importance: Carries every field problem so forms can highlight them together.
    Alternatives: Raise on the first invalid field only.
    """

    def __init__(self, errors: dict[str, list[str]]) -> None:
        self.errors = {field: list(messages) for field, messages in errors.items()}
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Invalid fields: {fields}")


class NotFoundError(DriveLinkError):
    """A referenced thread, request, connection, or notification does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class InvalidStateError(DriveLinkError):
    """Summary: Operation is not allowed from the entity's current state.

    Importance: Keeps the test-drive lifecycle legal, e.g. retrying only failed requests.
    Alternatives: Silently ignore illegal transitions.
    """

    def __init__(self, request_id: str, current: str, action: str) -> None:
        self.request_id = request_id
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} request {request_id} in state {current}")


class SendFailure(DriveLinkError):
    """The send side effect reported failure; the request is already marked failed."""

    def __init__(self, message: str, request_id: str) -> None:
        self.message = message
        self.request_id = request_id
        super().__init__(message)


class StorageError(DriveLinkError):
    """The persistence collaborator could not read or write a value."""
