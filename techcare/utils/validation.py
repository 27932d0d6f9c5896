"""
Client-side field validation.

Checks run before any Identity Provider call so obviously bad input is
rejected with an inline message instead of a round trip.
"""

from __future__ import annotations

import re

from techcare.models.auth_models import ValidationResult

__all__ = [
    "normalize_email",
    "validate_email",
    "validate_name",
    "validate_password",
    "validate_password_confirmation",
]

_EMAIL_RE: re.Pattern[str] = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)

# C0 controls, DEL and C1 controls.
_CONTROL_CHAR_RE: re.Pattern[str] = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def normalize_email(email: str) -> str:
    """Strip whitespace and lowercase."""
    return email.strip().lower()


def validate_email(email: str) -> ValidationResult:
    """Validate an email address against a simplified RFC 5322 regex."""
    if not email or not email.strip():
        return ValidationResult(is_valid=False, error_message="Email address is required.")
    if not _EMAIL_RE.match(email.strip()):
        return ValidationResult(
            is_valid=False,
            error_message="Please enter a valid email address.",
        )
    return ValidationResult(is_valid=True)


def validate_password(password: str, min_length: int = 6) -> ValidationResult:
    """Enforce the minimum password length.

    Parameters
    ----------
    password:
        The raw password string.
    min_length:
        Minimum number of characters (``AppConfig.MIN_PASSWORD_LENGTH``).
    """
    if not password:
        return ValidationResult(is_valid=False, error_message="Password is required.")
    if len(password) < min_length:
        return ValidationResult(
            is_valid=False,
            error_message=f"Password must be at least {min_length} characters.",
        )
    return ValidationResult(is_valid=True)


def validate_password_confirmation(
    password: str,
    confirm: str,
    min_length: int = 6,
) -> ValidationResult:
    result = validate_password(password, min_length)
    if not result.is_valid:
        return result
    if password != confirm:
        return ValidationResult(is_valid=False, error_message="Passwords do not match.")
    return ValidationResult(is_valid=True)


def validate_name(name: str, field_label: str = "Name") -> ValidationResult:
    """Validate a display name.

    Rejects empty names and control characters (newlines, tabs) that
    would corrupt log lines and rendered text.
    """
    stripped = (name or "").strip()
    if not stripped:
        return ValidationResult(is_valid=False, error_message=f"{field_label} is required.")
    if _CONTROL_CHAR_RE.search(stripped):
        return ValidationResult(
            is_valid=False,
            error_message=(
                f"{field_label} contains invalid characters. "
                "Only printable characters are allowed."
            ),
        )
    return ValidationResult(is_valid=True)
