"""
Data Models Package.

Re-exports the Pydantic models for short imports:
    from techcare.models import Identity, Profile, FullUserView
    from techcare.models import UserRole, AuthEvent, AuthResult
"""

from __future__ import annotations

from techcare.models.auth_models import (
    AuthErrorCode,
    AuthResult,
    CachedProfile,
    SessionLookup,
    SignUpOutcome,
    ValidationResult,
)
from techcare.models.enums import AuthEvent, Destination, LifecycleState, UserRole
from techcare.models.user import (
    AuthSession,
    CustomerProfile,
    ExtendedProfile,
    FullUserView,
    Identity,
    MinimalUserView,
    Profile,
    TechnicianProfile,
    UserView,
)

__all__ = [
    "AuthErrorCode",
    "AuthEvent",
    "AuthResult",
    "AuthSession",
    "CachedProfile",
    "CustomerProfile",
    "Destination",
    "ExtendedProfile",
    "FullUserView",
    "Identity",
    "LifecycleState",
    "MinimalUserView",
    "Profile",
    "SessionLookup",
    "SignUpOutcome",
    "TechnicianProfile",
    "UserRole",
    "UserView",
    "ValidationResult",
]
