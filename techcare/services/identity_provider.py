"""
Supabase Identity Provider.

Adapts the async Supabase auth client to :class:`IIdentityProvider`:

- provider ``Session``/``User`` objects are converted into the frozen
  ``AuthSession``/``Identity`` models at this boundary;
- every raw client exception leaves as an ``AuthProviderError``
  (classified transient or fatal) or a ``ProvisioningError``;
- auth tokens persist in the encrypted local store through
  :class:`PersistentAuthStorage`, so a restart can restore the session.
"""

from __future__ import annotations

from typing import Callable, Optional

from supabase_auth import AsyncSupportedStorage

from techcare.config import AppConfig
from techcare.database import DatabaseManager
from techcare.exceptions import (
    AuthProviderError,
    OfflineModeError,
    ProvisioningError,
    classify_provider_error,
)
from techcare.interfaces import AuthEventHandler
from techcare.logger import StructuredLogger
from techcare.models.auth_models import SessionLookup, SignUpOutcome
from techcare.models.enums import Destination, UserRole
from techcare.models.user import AuthSession, Identity
from techcare.services.base_service import BaseService
from techcare.services.local_store import EncryptedKeyValueStore
from techcare.services.provisioning import ProvisioningService
from techcare.utils.validation import normalize_email


class PersistentAuthStorage(AsyncSupportedStorage):
    """Auth-client storage backed by the encrypted local store.

    The auth client names its keys ``sb-<project>-auth-token``, which is
    what ``AUTH_STORAGE_PREFIX`` matches on logout.
    """

    def __init__(self, store: EncryptedKeyValueStore) -> None:
        self._store = store

    async def get_item(self, key: str) -> Optional[str]:
        return self._store.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._store.set(key, value)

    async def remove_item(self, key: str) -> None:
        self._store.remove(key)


def _offline_error() -> AuthProviderError:
    return AuthProviderError(
        "Cannot reach the server. Check your internet connection.",
        code="OFFLINE",
    )


class SupabaseIdentityProvider(BaseService):
    """``IIdentityProvider`` over ``supabase.AsyncClient.auth``."""

    def __init__(
        self,
        db: DatabaseManager,
        provisioning: ProvisioningService,
        config: AppConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._db = db
        self._provisioning = provisioning
        self._config = config

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def get_session(self) -> SessionLookup:
        """Return the persisted session, refreshing it if expired.

        Never raises: errors are reported in ``SessionLookup.error``.
        """
        try:
            session = await self._db.supabase.auth.get_session()
        except OfflineModeError:
            self._logger.info("Offline: no session can be restored.")
            return SessionLookup()
        except Exception as exc:
            return SessionLookup(error=classify_provider_error(exc))
        if session is None:
            return SessionLookup()
        return SessionLookup(session=AuthSession.from_provider_session(session))

    async def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            response = await self._db.supabase.auth.sign_in_with_password(
                {"email": normalize_email(email), "password": password}
            )
        except OfflineModeError as exc:
            raise _offline_error() from exc
        except Exception as exc:
            raise classify_provider_error(exc) from exc
        if response.session is None:
            raise AuthProviderError("Sign-in returned no session.")
        return AuthSession.from_provider_session(response.session)

    async def sign_up(
        self,
        email: str,
        password: str,
        name: str,
        role: UserRole,
    ) -> SignUpOutcome:
        """Create the identity, then provision its profile rows.

        Raises:
            EmailAlreadyRegisteredError: A profile already uses *email*.
            ProvisioningError: Profile rows could not be written.
            AuthProviderError: The provider rejected the sign-up.
        """
        email = normalize_email(email)
        try:
            await self._provisioning.assert_email_available(email)
            response = await self._db.supabase.auth.sign_up(
                {
                    "email": email,
                    "password": password,
                    "options": {
                        "data": {"name": name, "role": str(role)},
                        "email_redirect_to": self._config.dashboard_url(
                            Destination.for_role(role)
                        ),
                    },
                }
            )
        except ProvisioningError:
            raise
        except OfflineModeError as exc:
            raise _offline_error() from exc
        except Exception as exc:
            raise classify_provider_error(exc) from exc

        if response.user is None:
            raise AuthProviderError("Sign-up returned no user.")

        identity = Identity.from_auth_user(response.user)
        await self._provisioning.ensure_provisioned(identity.id, email, name, role)

        session = (
            AuthSession.from_provider_session(response.session)
            if response.session is not None
            else None
        )
        return SignUpOutcome(user=identity, session=session)

    async def sign_out(self) -> None:
        try:
            await self._db.supabase.auth.sign_out()
        except OfflineModeError as exc:
            raise _offline_error() from exc
        except Exception as exc:
            raise classify_provider_error(exc) from exc

    # ------------------------------------------------------------------
    # Password recovery
    # ------------------------------------------------------------------

    async def request_password_reset(self, email: str, redirect_to: str) -> None:
        try:
            await self._db.supabase.auth.reset_password_for_email(
                normalize_email(email), {"redirect_to": redirect_to},
            )
        except OfflineModeError as exc:
            raise _offline_error() from exc
        except Exception as exc:
            raise classify_provider_error(exc) from exc

    async def update_password(self, new_password: str) -> None:
        try:
            await self._db.supabase.auth.update_user({"password": new_password})
        except OfflineModeError as exc:
            raise _offline_error() from exc
        except Exception as exc:
            raise classify_provider_error(exc) from exc

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_auth_state_change(self, handler: AuthEventHandler) -> Callable[[], None]:
        """Forward provider events to *handler* with converted sessions."""
        if not self._db.is_online:
            self._logger.info("Offline: auth events will not be delivered.")
            return lambda: None

        def _forward(event: str, session: object) -> None:
            converted = (
                AuthSession.from_provider_session(session) if session is not None else None
            )
            handler(str(event), converted)

        subscription = self._db.supabase.auth.on_auth_state_change(_forward)
        return subscription.unsubscribe
