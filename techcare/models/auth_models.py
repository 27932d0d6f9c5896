"""
Authentication Pipeline Models.

Pydantic models and enumerations for the contracts between the
``SessionManager``, its collaborators, and the UI layer.  Every
user-initiated auth operation returns an ``AuthResult`` rather than
raising, so calling code renders inline messages without try/except.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel

from techcare.exceptions import AuthProviderError
from techcare.models.enums import Destination, UserRole
from techcare.models.user import AuthSession, ExtendedProfile, Identity, Profile


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

class AuthErrorCode(StrEnum):
    """Authentication error categories surfaced to the UI."""

    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_NOT_CONFIRMED = "email_not_confirmed"
    EMAIL_ALREADY_EXISTS = "email_already_exists"
    WEAK_PASSWORD = "weak_password"
    TRANSIENT_PROVIDER_ERROR = "transient_provider_error"
    NETWORK_ERROR = "network_error"
    VALIDATION_ERROR = "validation_error"
    NOT_AUTHENTICATED = "not_authenticated"
    UNKNOWN_ERROR = "unknown_error"


# ---------------------------------------------------------------------------
# Supabase error-code mapping
# ---------------------------------------------------------------------------

SUPABASE_ERROR_MAP: dict[str, tuple[AuthErrorCode, str]] = {
    "invalid_credentials": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "invalid login credentials": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "email_not_confirmed": (
        AuthErrorCode.EMAIL_NOT_CONFIRMED,
        "Please confirm your email address before signing in.",
    ),
    "email not confirmed": (
        AuthErrorCode.EMAIL_NOT_CONFIRMED,
        "Please confirm your email address before signing in.",
    ),
    "user_already_exists": (
        AuthErrorCode.EMAIL_ALREADY_EXISTS,
        "An account with this email already exists. Try signing in.",
    ),
    "already registered": (
        AuthErrorCode.EMAIL_ALREADY_EXISTS,
        "An account with this email already exists. Try signing in.",
    ),
    "weak_password": (
        AuthErrorCode.WEAK_PASSWORD,
        "Password is too weak. Choose a longer password.",
    ),
}


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationResult(BaseModel):
    """Result of a single client-side field validation check."""

    is_valid: bool
    error_message: Optional[str] = None


# ---------------------------------------------------------------------------
# Unified auth response
# ---------------------------------------------------------------------------

class AuthResult(BaseModel):
    """Unified response for login, registration, logout-adjacent and
    password operations.

    Attributes
    ----------
    success:
        ``True`` when the operation completed without error.
    error:
        Human-readable error description (``None`` on success).
    error_code:
        Structured error category (``None`` on success).
    message:
        Informational message for successful operations (registration,
        password reset).
    destination:
        Route the host should navigate to, when the action implies one.
    user_id:
        Id of the authenticated or registered user.
    role:
        Role derived from the identity at sign-in.
    """

    success: bool
    error: Optional[str] = None
    error_code: Optional[AuthErrorCode] = None
    message: Optional[str] = None
    destination: Optional[Destination] = None
    user_id: Optional[str] = None
    role: Optional[UserRole] = None


# ---------------------------------------------------------------------------
# Identity-provider contracts
# ---------------------------------------------------------------------------

class SessionLookup(BaseModel):
    """Outcome of ``get_session()``: a session, an error, or neither."""

    session: Optional[AuthSession] = None
    error: Optional[AuthProviderError] = None

    model_config = {"arbitrary_types_allowed": True}


class SignUpOutcome(BaseModel):
    """Outcome of ``sign_up()``.

    ``session`` is ``None`` when the project requires e-mail confirmation
    before the first sign-in.
    """

    user: Identity
    session: Optional[AuthSession] = None


# ---------------------------------------------------------------------------
# Local profile cache model
# ---------------------------------------------------------------------------

PROFILE_CACHE_VERSION: int = 1


class CachedProfile(BaseModel):
    """Payload stored under ``user_profile_{id}``.

    ``version`` is compared against :data:`PROFILE_CACHE_VERSION` on read;
    entries written by an older layout are discarded instead of adopted.
    """

    version: int = PROFILE_CACHE_VERSION
    profile: Profile
    extended_profile: Optional[ExtendedProfile] = None
    timestamp: datetime
