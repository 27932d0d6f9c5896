"""
Exception hierarchy for the TechCare session layer.

Internal reconciliation code raises these and recovers from them locally;
user-initiated actions translate them into ``AuthResult`` values so the
UI never sees a raw exception.
"""

from __future__ import annotations

from typing import Any, Optional


class TechCareError(Exception):
    """Base exception for all TechCare errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for structured logging."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class OfflineModeError(TechCareError):
    """Raised when Supabase is required but no client is configured."""

    def __init__(self, message: str = "Supabase client is not initialised.") -> None:
        super().__init__(message, code="OFFLINE")


class AuthProviderError(TechCareError):
    """An error reported by the identity provider.

    ``is_transient`` marks 400-class token-refresh style failures that
    must not abort session bootstrap.
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        is_transient: bool = False,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message, code=code or "AUTH_PROVIDER_ERROR", details={"status": status})
        self.status = status
        self.is_transient = is_transient


class ProfileFetchError(TechCareError):
    """A Profile Store read failed."""

    def __init__(self, message: str, user_id: str) -> None:
        super().__init__(message, code="PROFILE_FETCH_FAILED", details={"user_id": user_id})
        self.user_id = user_id


class ProfileFetchTimeout(ProfileFetchError):
    """A Profile Store read exceeded its deadline."""

    def __init__(self, operation: str, user_id: str, timeout_s: float) -> None:
        super().__init__(f"{operation} timed out after {timeout_s:g}s", user_id)
        self.code = "PROFILE_FETCH_TIMEOUT"
        self.operation = operation
        self.timeout_s = timeout_s


class ProvisioningError(TechCareError):
    """Creating the profile rows for a new account failed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message, code="PROVISIONING_FAILED")
        self.original_error = original_error


class EmailAlreadyRegisteredError(ProvisioningError):
    """A profile with the requested e-mail already exists."""

    def __init__(self, email: str) -> None:
        super().__init__("An account with this email already exists")
        self.code = "EMAIL_ALREADY_EXISTS"
        self.details = {"email": email}


_TRANSIENT_MARKERS: tuple[str, ...] = ("refresh token", "refresh_token")


def classify_provider_error(exc: BaseException) -> AuthProviderError:
    """Wrap a raw auth-client exception in an ``AuthProviderError``.

    Status 400 responses and refresh-token failures are transient: a stale
    refresh token on startup is expected and the caller should continue
    with cached or absent state.
    """
    if isinstance(exc, AuthProviderError):
        return exc

    status: Optional[int] = getattr(exc, "status", None)
    if not isinstance(status, int):
        status = None
    message = str(exc) or exc.__class__.__name__
    lowered = message.lower()
    is_transient = status == 400 or any(m in lowered for m in _TRANSIENT_MARKERS)
    code: Optional[str] = getattr(exc, "code", None)
    return AuthProviderError(
        message,
        status=status,
        is_transient=is_transient,
        code=code if isinstance(code, str) else None,
    )
