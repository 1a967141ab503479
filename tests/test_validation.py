"""Summary: Tests for test-drive form validation.

Importance: Ensures every field rule reports errors the form can display together.
Alternatives: Validate only in the browser.
"""

from __future__ import annotations

from datetime import date

from drivelink.models import TestDriveFormData
from drivelink.validation import is_valid_email, is_valid_phone, validate_test_drive_form


TODAY = date(2025, 3, 1)


def _form(**overrides: str) -> TestDriveFormData:
    values = {
        "name": "Mika Ito",
        "email": "mika@example.com",
        "phone": "+81 90 1234 5678",
        "preferred_date": "2025-03-01",
        "preferred_time": "09:00",
        "license_type": "regular",
        "driving_experience": "5 years",
        "emergency_contact_name": "Taro Ito",
        "emergency_contact_phone": "03-1234-5678",
    }
    values.update(overrides)
    return TestDriveFormData(**values)


def test_valid_form_has_no_errors() -> None:
    """Summary: Verify a complete form passes, including a same-day date.

    Importance: Same-day bookings are allowed.
    Alternatives: Require at least one day of notice.
    """

    assert validate_test_drive_form(_form(), TODAY) == {}


def test_all_problems_are_reported_together() -> None:
    """Summary: Ensure every invalid field is listed in one pass.

    Importance: Buyers fix all problems before resubmitting.
    Alternatives: Stop at the first error.
    """

    errors = validate_test_drive_form(
        TestDriveFormData(
            name="",
            email="",
            phone="12",
            preferred_date="2025-02-28",
            preferred_time="25:00",
        ),
        TODAY,
    )
    assert errors["name"] == ["Name is required"]
    assert errors["email"] == ["Email is required"]
    assert errors["phone"] == ["Please enter a valid phone number"]
    assert errors["preferred_date"] == ["Please select a future date"]
    assert errors["preferred_time"] == ["Please enter a time as HH:MM"]
    assert {"license_type", "driving_experience", "emergency_contact_name", "emergency_contact_phone"} <= set(errors)


def test_custom_location_requires_details() -> None:
    """Summary: Verify a custom meeting place must be described.

    Importance: Sellers need to know where to bring the car.
    Alternatives: Default custom locations to the seller's address.
    """

    errors = validate_test_drive_form(_form(meeting_location="custom"), TODAY)
    assert errors == {"custom_location": ["Please specify the custom location"]}
    assert validate_test_drive_form(
        _form(meeting_location="custom", custom_location="Shibuya Station"), TODAY
    ) == {}
    assert "meeting_location" in validate_test_drive_form(_form(meeting_location="moon"), TODAY)


def test_email_and_phone_helpers() -> None:
    """Summary: Check the email and phone format helpers directly.

    Importance: Both are reused by the sender and the form.
    Alternatives: Inline the regular expressions.
    """

    assert is_valid_email("kenji@example.com")
    assert not is_valid_email("kenji@example")
    assert is_valid_phone("090-1234-5678")
    assert is_valid_phone("+81 (3) 1234-5678")
    assert not is_valid_phone("phone")
