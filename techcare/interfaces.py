"""
Collaborator interfaces for the session layer.

``SessionManager`` depends on these protocols, not on the Supabase-backed
implementations, so hosts can swap providers and tests can use fakes.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, runtime_checkable

from techcare.models.auth_models import SessionLookup, SignUpOutcome
from techcare.models.enums import UserRole
from techcare.models.user import (
    AuthSession,
    CustomerProfile,
    Profile,
    TechnicianProfile,
)

AuthEventHandler = Callable[[str, Optional[AuthSession]], None]


@runtime_checkable
class IIdentityProvider(Protocol):
    """Issues sessions and emits auth lifecycle events."""

    async def get_session(self) -> SessionLookup:
        """Return the current session, or the provider error that prevented it."""
        ...

    async def sign_in(self, email: str, password: str) -> AuthSession:
        """Password sign-in.

        Raises:
            AuthProviderError: On invalid credentials or provider failure.
        """
        ...

    async def sign_up(
        self,
        email: str,
        password: str,
        name: str,
        role: UserRole,
    ) -> SignUpOutcome:
        ...

    async def sign_out(self) -> None:
        ...

    async def request_password_reset(self, email: str, redirect_to: str) -> None:
        ...

    async def update_password(self, new_password: str) -> None:
        ...

    def on_auth_state_change(self, handler: AuthEventHandler) -> Callable[[], None]:
        """Register *handler*; the returned callable unsubscribes it."""
        ...


@runtime_checkable
class IProfileStore(Protocol):
    """Keyed store of base and role-specific profiles.

    Reads return ``None`` for "not found"; any other problem raises.
    """

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        ...

    async def get_customer_profile(self, user_id: str) -> Optional[CustomerProfile]:
        ...

    async def get_technician_profile(self, user_id: str) -> Optional[TechnicianProfile]:
        ...

    async def update_profile(self, user_id: str, updates: dict[str, Any]) -> Profile:
        ...


@runtime_checkable
class IRealtime(Protocol):
    """Live subscription registry notified on sign-out and token refresh."""

    async def unsubscribe_all(self) -> None:
        ...

    async def refresh_all_connections(self, access_token: Optional[str] = None) -> None:
        ...


@runtime_checkable
class INavigator(Protocol):
    """Host hook for route changes and full client resets."""

    def navigate(self, path: str) -> None:
        ...

    def reload(self, path: str) -> None:
        """Discard all client state and restart at *path*."""
        ...
