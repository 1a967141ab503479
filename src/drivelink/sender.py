"""Summary: Send side effect for test-drive requests and seller responses.

Importance: Encapsulates email dispatch so the state machine depends only on a result contract.
Alternatives: Call an email SDK directly from the state machine.
"""

from __future__ import annotations

import asyncio
import logging
import random
from abc import ABC, abstractmethod

from drivelink.models import Reschedule, SendResult, TestDriveRequest
from drivelink.validation import is_valid_email


logger = logging.getLogger(__name__)


class TestDriveSender(ABC):
    """Summary: Abstract interface for delivering test-drive emails.

    Importance: Lets tests and deployments swap mock and real delivery.
    Alternatives: Use provider-specific classes directly in the service.
    """

    __test__ = False

    @abstractmethod
    async def send(self, request: TestDriveRequest) -> SendResult:
        """Summary: Deliver a test-drive request to the seller.

        Importance: Its outcome decides whether a request becomes sent or failed.
        Alternatives: Queue the email and report success immediately.
        """

    @abstractmethod
    async def send_confirmation(
        self, request: TestDriveRequest, message: str, reschedule: Reschedule | None = None
    ) -> SendResult:
        """Summary: Deliver the seller's response to the buyer.

        Importance: Keeps buyers informed of confirmations and reschedules.
        Alternatives: Rely on in-app notifications only.
        """


class MockTestDriveSender(TestDriveSender):
    """Summary: Simulated sender with an artificial delay and configurable outcome.

    Importance: Enables offline workflows and repeatable tests.
    Alternatives: Use a local SMTP sink for development.
    """

    def __init__(
        self,
        delay_seconds: float = 1.0,
        success_rate: float = 0.9,
        seed: int | None = None,
    ) -> None:
        self._delay_seconds = delay_seconds
        self._success_rate = success_rate
        self._random = random.Random(seed)
        self.outcomes: list[SendResult] = []
        self.sent: list[TestDriveRequest] = []
        self.confirmations: list[tuple[str, str]] = []

    def queue_outcome(self, result: SendResult) -> None:
        """Force the next send to return a specific result."""

        self.outcomes.append(result)

    async def send(self, request: TestDriveRequest) -> SendResult:
        logger.info(
            "Sending test drive request %s to %s for %s on %s %s.",
            request.id,
            request.seller_email,
            request.vehicle_title,
            request.buyer_data.preferred_date,
            request.buyer_data.preferred_time,
        )
        await asyncio.sleep(self._delay_seconds)
        self.sent.append(request)
        if self.outcomes:
            return self.outcomes.pop(0)
        if self._random.random() < self._success_rate:
            return SendResult(success=True, message="Test drive request sent successfully")
        return SendResult(success=False, message="Failed to send email. Please try again.")

    async def send_confirmation(
        self, request: TestDriveRequest, message: str, reschedule: Reschedule | None = None
    ) -> SendResult:
        recipient = request.buyer_data.email
        if not is_valid_email(recipient):
            return SendResult(success=False, message="Invalid recipient email address")
        if reschedule:
            subject = f"Test Drive Rescheduled - {request.vehicle_title}"
            body = (
                f"Your test drive has been rescheduled to {reschedule.date} at "
                f"{reschedule.time}. {message}"
            )
        else:
            subject = f"Test Drive Update - {request.vehicle_title}"
            body = (
                f"Your test drive for {request.buyer_data.preferred_date} at "
                f"{request.buyer_data.preferred_time}: {message}"
            )
        await asyncio.sleep(self._delay_seconds / 2)
        self.confirmations.append((recipient, subject))
        logger.info("Sent %r to %s (%s chars).", subject, recipient, len(body))
        return SendResult(success=True, message="Message sent successfully")
