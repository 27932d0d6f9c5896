"""
Shared Enumerations for TechCare Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents,
so code like ``if role == "technician"`` continues to work.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional


class UserRole(StrEnum):
    """Canonical application roles.

    The identity provider and older profile rows spell the customer role
    either ``"user"`` or ``"customer"``.  Both collapse to ``CUSTOMER``
    in :meth:`normalize`, so nothing past the boundary compares raw
    strings.
    """

    ADMIN = "admin"
    TECHNICIAN = "technician"
    CUSTOMER = "customer"

    @classmethod
    def normalize(cls, raw: object) -> Optional["UserRole"]:
        """Map a raw role value to a ``UserRole``.

        ``"user"`` and ``"customer"`` both map to ``CUSTOMER``.  Empty,
        missing or unrecognised values return ``None``.
        """
        if isinstance(raw, UserRole):
            return raw
        if not isinstance(raw, str):
            return None
        value = raw.strip().lower()
        if value in ("user", "customer"):
            return cls.CUSTOMER
        try:
            return cls(value)
        except ValueError:
            return None


class AuthEvent(StrEnum):
    """Lifecycle events emitted by the identity provider."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


class LifecycleState(StrEnum):
    """Session manager lifecycle."""

    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZING = "INITIALIZING"
    READY = "READY"


class Destination(StrEnum):
    """In-app routes the host should navigate to after auth actions."""

    HOME = "/"
    LOGIN = "/login"
    ADMIN_DASHBOARD = "/admin"
    TECHNICIAN_DASHBOARD = "/technician-dashboard"
    CUSTOMER_DASHBOARD = "/customer-dashboard"

    @classmethod
    def for_role(cls, role: Optional[UserRole]) -> "Destination":
        """Landing page for *role*; customers and unknown roles share one."""
        if role == UserRole.ADMIN:
            return cls.ADMIN_DASHBOARD
        if role == UserRole.TECHNICIAN:
            return cls.TECHNICIAN_DASHBOARD
        return cls.CUSTOMER_DASHBOARD
