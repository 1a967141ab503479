"""Summary: Field rules for the test-drive request form.

Importance: Rejects incomplete or malformed requests before any state changes.
Alternatives: Validate inside the HTTP layer with Pydantic constraints only.
"""

from __future__ import annotations

import re
from datetime import date

from drivelink.models import MEETING_LOCATIONS, TestDriveFormData


_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_PATTERN = re.compile(r"^[+]?[0-9\-().]{10,15}$")
_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def is_valid_email(value: str) -> bool:
    return bool(_EMAIL_PATTERN.match(value.strip()))


def is_valid_phone(value: str) -> bool:
    """Accept Japanese and international formats once whitespace is removed."""

    return bool(_PHONE_PATTERN.match(re.sub(r"\s", "", value)))


def validate_test_drive_form(form: TestDriveFormData, today: date) -> dict[str, list[str]]:
    """Summary: Collect every field problem in a test-drive form.

    Importance: Lets the UI show all errors at once instead of one per submit.
    Alternatives: Stop at the first invalid field.
    """

    errors: dict[str, list[str]] = {}

    def add(field: str, message: str) -> None:
        errors.setdefault(field, []).append(message)

    name = form.name.strip()
    if not name:
        add("name", "Name is required")
    elif len(name) < 2:
        add("name", "Name must be at least 2 characters")

    if not form.email.strip():
        add("email", "Email is required")
    elif not is_valid_email(form.email):
        add("email", "Please enter a valid email address")

    if not form.phone.strip():
        add("phone", "Phone number is required")
    elif not is_valid_phone(form.phone):
        add("phone", "Please enter a valid phone number")

    if not form.preferred_date:
        add("preferred_date", "Preferred date is required")
    else:
        try:
            preferred = date.fromisoformat(form.preferred_date)
        except ValueError:
            add("preferred_date", "Please enter a date as YYYY-MM-DD")
        else:
            if preferred < today:
                add("preferred_date", "Please select a future date")

    if not form.preferred_time:
        add("preferred_time", "Preferred time is required")
    elif not _TIME_PATTERN.match(form.preferred_time):
        add("preferred_time", "Please enter a time as HH:MM")

    if form.meeting_location not in MEETING_LOCATIONS:
        add("meeting_location", "Unknown meeting location")
    elif form.meeting_location == "custom" and not form.custom_location.strip():
        add("custom_location", "Please specify the custom location")

    if not form.license_type.strip():
        add("license_type", "License type is required")
    if not form.driving_experience.strip():
        add("driving_experience", "Driving experience is required")
    if not form.emergency_contact_name.strip():
        add("emergency_contact_name", "Emergency contact name is required")
    if not form.emergency_contact_phone.strip():
        add("emergency_contact_phone", "Emergency contact phone is required")
    elif not is_valid_phone(form.emergency_contact_phone):
        add("emergency_contact_phone", "Please enter a valid emergency contact phone")

    return errors
