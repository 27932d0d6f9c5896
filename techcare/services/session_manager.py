"""
Session Manager.

Owns the client's authoritative view of the signed-in user.  It merges
the provider identity with the base and role-specific profile rows,
paints instantly from the local profile cache, and keeps everything in
step with the identity provider's event stream.

Concurrency model
-----------------
Everything runs on one asyncio event loop.  Provider and Profile Store
calls are the only suspension points, so plain attributes are enough to
coordinate work:

- **Freshness guard**: a fetch for the same id within
  ``PROFILE_FRESHNESS_WINDOW_S`` of the last one is skipped unless forced.
- **Mutual exclusion**: at most one profile fetch is in flight; others are
  skipped, not queued.  Forced refetches (profile updates, ``USER_UPDATED``)
  wait for the running fetch to finish and then run.  The last-fetch marker is recorded *before* the
  first await so two near-simultaneous callers cannot both proceed.
- **Epoch**: sign-out, teardown and a switch to another identity bump
  ``_epoch``.  A fetch started under
  an older epoch never applies its result and never clears the in-flight
  flag of a newer fetch.
- **Liveness**: after :meth:`SessionManager.teardown` no state is written.

Background work (profile fetches triggered by events, realtime
notifications) is tracked so hosts and tests can :meth:`settle` it.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Coroutine, Iterable, Optional, TypeVar, Union

from techcare.auth import AuthState, ChangeListener
from techcare.config import AppConfig
from techcare.exceptions import (
    AuthProviderError,
    EmailAlreadyRegisteredError,
    ProfileFetchTimeout,
    ProvisioningError,
)
from techcare.interfaces import IIdentityProvider, INavigator, IProfileStore, IRealtime
from techcare.logger import StructuredLogger
from techcare.models.auth_models import SUPABASE_ERROR_MAP, AuthErrorCode, AuthResult
from techcare.models.enums import AuthEvent, Destination, LifecycleState, UserRole
from techcare.models.user import (
    AuthSession,
    CustomerProfile,
    FullUserView,
    Identity,
    MinimalUserView,
    Profile,
    TechnicianProfile,
    UserView,
)
from techcare.services.base_service import BaseService
from techcare.services.profile_cache import ProfileCacheService
from techcare.utils.audit import AuditAction, log_audit_event
from techcare.utils.validation import (
    normalize_email,
    validate_email,
    validate_name,
    validate_password,
    validate_password_confirmation,
)

T = TypeVar("T")

LOGIN_FAILED_MESSAGE: str = "Login failed. Please try again."
REGISTRATION_FAILED_MESSAGE: str = "Registration failed. Please try again."
REGISTERED_CONFIRM_MESSAGE: str = (
    "Registration successful! Please check your email to confirm your "
    "account, then log in with your credentials."
)
REGISTERED_SIGNED_IN_MESSAGE: str = "Registration successful! You are now signed in."
PASSWORD_RESET_SENT_MESSAGE: str = (
    "If an account exists for this email, a password reset link has been sent."
)

RoleQuery = Union[UserRole, str, Iterable[Union[UserRole, str]]]


def _map_provider_error(
    exc: BaseException,
    default_message: str,
) -> tuple[AuthErrorCode, str]:
    """Pick the error code and user-facing message for a failed action."""
    text = str(exc)
    lowered = text.lower()
    for key, (code, message) in SUPABASE_ERROR_MAP.items():
        if key in lowered:
            return code, message
    if isinstance(exc, AuthProviderError) and exc.code == "OFFLINE":
        return AuthErrorCode.NETWORK_ERROR, text
    if isinstance(exc, AuthProviderError) and exc.is_transient:
        return AuthErrorCode.TRANSIENT_PROVIDER_ERROR, text or default_message
    return AuthErrorCode.UNKNOWN_ERROR, text or default_message


class SessionManager(BaseService):
    """Keeps exactly one ``UserView`` (or none) consistent with the
    identity provider.

    Parameters
    ----------
    identity:
        Identity provider (sessions, sign-in/up/out, lifecycle events).
    profiles:
        Profile Store for base and role-specific profile rows.
    cache:
        Durable per-user profile cache used for instant paint and as the
        fallback when a fetch fails.
    realtime:
        Realtime registry told to drop subscriptions on sign-out and to
        reconnect on token refresh.
    config:
        Timeouts, freshness window and redirect URLs.
    logger:
        Structured logger.
    navigator:
        Optional host hook for route changes and full client resets.
    clock:
        Monotonic clock in seconds, injectable for tests.
    """

    def __init__(
        self,
        identity: IIdentityProvider,
        profiles: IProfileStore,
        cache: ProfileCacheService,
        realtime: IRealtime,
        config: AppConfig,
        logger: StructuredLogger,
        navigator: Optional[INavigator] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(logger)
        self._identity = identity
        self._profiles = profiles
        self._cache = cache
        self._realtime = realtime
        self._config = config
        self._navigator = navigator
        self._clock = clock

        self._state = AuthState(logger)
        self._lifecycle: LifecycleState = LifecycleState.UNINITIALIZED
        self._init_complete: bool = False

        self._fetch_in_flight: bool = False
        self._fetch_user_id: Optional[str] = None
        self._fetch_idle: asyncio.Event = asyncio.Event()
        self._fetch_idle.set()
        self._last_fetch: Optional[tuple[str, float]] = None
        self._epoch: int = 0

        self._alive: bool = True
        self._tasks: set[asyncio.Task[Any]] = set()
        self._unsubscribe_provider: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Exposed state
    # ------------------------------------------------------------------

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def lifecycle(self) -> LifecycleState:
        return self._lifecycle

    @property
    def user(self) -> Optional[UserView]:
        return self._state.user

    @property
    def profile(self) -> Optional[Profile]:
        return self._state.profile

    @property
    def session(self) -> Optional[AuthSession]:
        return self._state.session

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def is_password_recovery(self) -> bool:
        return self._state.is_password_recovery

    @property
    def last_fetched_id(self) -> Optional[str]:
        return self._last_fetch[0] if self._last_fetch is not None else None

    @property
    def is_fetching(self) -> bool:
        return self._fetch_in_flight

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Subscribe to state changes; returns the unsubscribe callable."""
        return self._state.on_change(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach(self) -> None:
        """Start receiving identity-provider events.  Idempotent."""
        if self._unsubscribe_provider is None and self._alive:
            self._unsubscribe_provider = self._identity.on_auth_state_change(
                self.handle_auth_event
            )

    async def initialize(self) -> None:
        """Restore the session once per manager lifetime.

        Always ends in ``READY``.  A found session is painted from the
        profile cache (or as a minimal view) before this returns; the
        fresh profile fetch continues in the background.
        """
        if self._lifecycle is not LifecycleState.UNINITIALIZED:
            return
        self._lifecycle = LifecycleState.INITIALIZING
        self._state.set_loading(True)

        deadline = asyncio.get_running_loop().call_later(
            self._config.INIT_SOFT_DEADLINE_S, self._warn_slow_init,
        )
        try:
            lookup = await self._identity.get_session()
            if lookup.error is not None:
                if lookup.error.is_transient:
                    self._logger.warning(
                        "Transient session error during startup; continuing: %s",
                        lookup.error.message,
                        extra={"event": "SESSION_TRANSIENT_ERROR"},
                    )
                else:
                    self._logger.error(
                        "Session lookup failed: %s",
                        lookup.error.message,
                        extra={"event": "SESSION_ERROR", "code": lookup.error.code},
                    )
                    return

            session = lookup.session
            if session is not None and self._alive:
                self._state.set_session(session)
                self._paint_from_cache(session.user)
                self._spawn(self.fetch_profile(session.user, source="init"))
        except Exception as exc:
            self._logger.error(
                "Session initialisation failed: %s", exc, exc_info=True,
                extra={"event": "SESSION_ERROR"},
            )
        finally:
            deadline.cancel()
            self._lifecycle = LifecycleState.READY
            self._init_complete = True
            if self._alive:
                self._state.set_loading(False)

    def teardown(self) -> None:
        """Stop applying updates and cancel background work."""
        if not self._alive:
            return
        self._alive = False
        self._invalidate_fetch()
        if self._unsubscribe_provider is not None:
            try:
                self._unsubscribe_provider()
            except Exception as exc:
                self._logger.warning("Provider unsubscribe failed: %s", exc)
            self._unsubscribe_provider = None
        for task in list(self._tasks):
            task.cancel()

    async def settle(self) -> None:
        """Wait until all background work scheduled so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Profile reconciliation
    # ------------------------------------------------------------------

    async def fetch_profile(
        self,
        identity: Identity,
        force_refresh: bool = False,
        source: str = "manual",
    ) -> bool:
        """Fetch and apply the profile for *identity*.

        Never raises: failures fall back to the cached entry, then to a
        minimal view.

        Returns
        -------
        bool
            ``True`` if a fetch was issued, ``False`` if the freshness
            guard or an in-flight fetch caused it to be skipped.
        """
        now = self._clock()
        if not force_refresh and self._last_fetch is not None:
            last_id, fetched_at = self._last_fetch
            if last_id == identity.id and now - fetched_at < self._config.PROFILE_FRESHNESS_WINDOW_S:
                self._logger.debug(
                    "Skipping profile fetch for %s (%s): fetched %.1fs ago.",
                    identity.id, source, now - fetched_at,
                )
                return False
        if self._fetch_in_flight:
            self._logger.debug(
                "Skipping profile fetch for %s (%s): another fetch is in flight.",
                identity.id, source,
            )
            return False

        self._fetch_in_flight = True
        self._fetch_idle.clear()
        self._fetch_user_id = identity.id
        self._last_fetch = (identity.id, now)
        epoch = self._epoch
        try:
            results = await asyncio.gather(
                self._with_timeout(
                    "get_profile", identity.id, self._profiles.get_profile(identity.id),
                ),
                self._fetch_extended(identity),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
            profile, extended = results

            final_profile = profile if profile is not None else Profile.minimal_for(identity)
            if not self._is_current(epoch):
                self._logger.debug("Discarding stale profile fetch for %s.", identity.id)
                return True
            self._state.set_user(FullUserView.compose(identity, final_profile, extended))
            self._cache.save(identity.id, final_profile, extended)
            self._logger.info(
                "Profile loaded for %s (%s).", identity.id, source,
                extra={"event": "PROFILE_LOADED"},
            )
        except ProfileFetchTimeout as exc:
            self._logger.info(
                "%s for %s; using fallback.", exc.message, identity.id,
                extra={"event": "PROFILE_FETCH_TIMEOUT"},
            )
            self._apply_fallback(identity, epoch)
        except Exception as exc:
            self._logger.error(
                "Profile fetch failed for %s: %s", identity.id, exc,
                extra={"event": "PROFILE_FETCH_FAILED"},
            )
            self._apply_fallback(identity, epoch)
        finally:
            if epoch == self._epoch:
                self._fetch_in_flight = False
                self._fetch_user_id = None
                self._fetch_idle.set()
        return True

    async def _fetch_extended(
        self, identity: Identity,
    ) -> Optional[Union[CustomerProfile, TechnicianProfile]]:
        if identity.role == UserRole.TECHNICIAN:
            return await self._with_timeout(
                "get_technician_profile",
                identity.id,
                self._profiles.get_technician_profile(identity.id),
            )
        if identity.role == UserRole.CUSTOMER:
            return await self._with_timeout(
                "get_customer_profile",
                identity.id,
                self._profiles.get_customer_profile(identity.id),
            )
        return None

    async def _with_timeout(self, operation: str, user_id: str, call: Awaitable[T]) -> T:
        timeout = self._config.PROFILE_FETCH_TIMEOUT_S
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as exc:
            raise ProfileFetchTimeout(operation, user_id, timeout) from exc

    def _apply_fallback(self, identity: Identity, epoch: int) -> None:
        """Adopt the cached entry, else keep a loaded view, else go minimal."""
        if not self._is_current(epoch):
            return
        entry = self._cache.load(identity.id)
        if entry is not None:
            self._state.set_user(
                FullUserView.compose(identity, entry.profile, entry.extended_profile)
            )
            self._logger.info("Using cached profile for %s.", identity.id)
            return
        current = self._state.user
        # A failed refresh never downgrades a full view of the same user.
        if current is not None and current.id == identity.id and current.is_fully_loaded:
            return
        self._state.set_user(MinimalUserView.from_identity(identity))

    def _paint_from_cache(self, identity: Identity) -> None:
        entry = self._cache.load(identity.id)
        if entry is not None:
            self._state.set_user(
                FullUserView.compose(identity, entry.profile, entry.extended_profile)
            )
        else:
            self._state.set_user(MinimalUserView.from_identity(identity))

    # ------------------------------------------------------------------
    # Provider events
    # ------------------------------------------------------------------

    def handle_auth_event(self, event: str, session: Optional[AuthSession]) -> None:
        """Reconcile state with one provider event, in arrival order.

        Synchronous: any follow-up I/O is scheduled as background work.
        """
        if not self._alive:
            return
        self._state.set_session(session)

        try:
            kind = AuthEvent(event)
        except ValueError:
            self._logger.debug("Ignoring unknown auth event %s.", event)
            return

        self._logger.debug("Auth event: %s", kind)

        if kind is AuthEvent.SIGNED_IN:
            if session is None:
                return
            identity = session.user
            if self._init_complete and self.last_fetched_id == identity.id:
                self._logger.debug("Redundant SIGNED_IN for %s ignored.", identity.id)
                return
            current = self._state.user
            if current is None or current.id != identity.id:
                self._state.set_user(MinimalUserView.from_identity(identity))
            self._drop_fetch_for_other_identity(identity)
            self._spawn(self.fetch_profile(identity, force_refresh=False, source="event"))

        elif kind is AuthEvent.SIGNED_OUT:
            self._clear_local_state()
            self._spawn(self._realtime.unsubscribe_all())

        elif kind is AuthEvent.TOKEN_REFRESHED:
            token = session.access_token if session is not None else None
            self._spawn(self._realtime.refresh_all_connections(token))

        elif kind is AuthEvent.USER_UPDATED:
            if session is not None:
                self._spawn(self._refetch_when_idle(session.user, source="user_updated"))

        elif kind is AuthEvent.PASSWORD_RECOVERY:
            self._state.set_password_recovery(True)

    def _clear_local_state(self) -> None:
        """Forget the signed-in user and invalidate any running fetch."""
        signed_out_id = self._state.user.id if self._state.user is not None else None
        self._invalidate_fetch()
        self._last_fetch = None
        self._state.clear()
        self._cache.clear_legacy()
        if signed_out_id is not None:
            self._cache.remove(signed_out_id)

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> AuthResult:
        """Sign in and return immediately; the full profile loads in the background."""
        email_check = validate_email(email)
        if not email_check.is_valid:
            return AuthResult(
                success=False,
                error=email_check.error_message,
                error_code=AuthErrorCode.VALIDATION_ERROR,
            )
        if not password:
            return AuthResult(
                success=False,
                error="Password is required.",
                error_code=AuthErrorCode.VALIDATION_ERROR,
            )

        self._state.set_loading(True)
        try:
            session = await self._identity.sign_in(normalize_email(email), password)
        except Exception as exc:
            self._state.set_loading(False)
            code, message = _map_provider_error(exc, LOGIN_FAILED_MESSAGE)
            if code is AuthErrorCode.TRANSIENT_PROVIDER_ERROR:
                self._logger.warning(
                    "Transient provider error during login: %s", exc,
                    extra={"event": "LOGIN_FAILED", "error_code": str(code)},
                )
            else:
                self._logger.warning(
                    "Login failed: %s", exc,
                    extra={"event": "LOGIN_FAILED", "error_code": str(code)},
                )
            return AuthResult(success=False, error=message, error_code=code)

        identity = session.user
        view = MinimalUserView.from_identity(identity)
        self._state.set_session(session)
        if self._state.user is None or self._state.user.id != identity.id:
            self._state.set_user(view)
        self._drop_fetch_for_other_identity(identity)
        self._spawn(self._load_after_login(identity))

        destination = Destination.for_role(view.role)
        log_audit_event(
            logger=self._logger,
            action=AuditAction.LOGIN,
            subject_type="Session",
            subject_id=identity.id,
            actor_id=identity.id,
            details={"email": identity.email, "role": str(view.role)},
        )
        if self._navigator is not None:
            self._navigator.navigate(destination)
        return AuthResult(
            success=True,
            destination=destination,
            user_id=identity.id,
            role=view.role,
        )

    async def _load_after_login(self, identity: Identity) -> None:
        try:
            await self.fetch_profile(identity, force_refresh=False, source="login")
            await self._fetch_idle.wait()
        finally:
            if self._alive:
                self._state.set_loading(False)

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        role: Union[UserRole, str] = UserRole.CUSTOMER,
    ) -> AuthResult:
        """Create an account; the message says whether e-mail confirmation is pending."""
        resolved_role = UserRole.normalize(role)
        if resolved_role is None or resolved_role is UserRole.ADMIN:
            return AuthResult(
                success=False,
                error="Please choose a customer or technician account.",
                error_code=AuthErrorCode.VALIDATION_ERROR,
            )
        for check in (
            validate_name(name),
            validate_email(email),
            validate_password(password, self._config.MIN_PASSWORD_LENGTH),
        ):
            if not check.is_valid:
                return AuthResult(
                    success=False,
                    error=check.error_message,
                    error_code=AuthErrorCode.VALIDATION_ERROR,
                )

        try:
            outcome = await self._identity.sign_up(
                normalize_email(email), password, name.strip(), resolved_role,
            )
        except EmailAlreadyRegisteredError as exc:
            self._logger.info("Registration refused: %s", exc.message)
            return AuthResult(
                success=False,
                error=exc.message,
                error_code=AuthErrorCode.EMAIL_ALREADY_EXISTS,
            )
        except ProvisioningError as exc:
            self._logger.error(
                "Registration provisioning failed: %s", exc.message,
                extra={"event": "REGISTER_FAILED"},
            )
            return AuthResult(
                success=False,
                error=REGISTRATION_FAILED_MESSAGE,
                error_code=AuthErrorCode.UNKNOWN_ERROR,
            )
        except Exception as exc:
            code, message = _map_provider_error(exc, REGISTRATION_FAILED_MESSAGE)
            self._logger.warning(
                "Registration failed: %s", exc,
                extra={"event": "REGISTER_FAILED", "error_code": str(code)},
            )
            return AuthResult(success=False, error=message, error_code=code)

        log_audit_event(
            logger=self._logger,
            action=AuditAction.REGISTER,
            subject_type="Profile",
            subject_id=outcome.user.id,
            actor_id=outcome.user.id,
            details={"role": str(resolved_role), "confirmed": outcome.session is not None},
        )
        if outcome.session is not None:
            destination = Destination.for_role(resolved_role)
            message = REGISTERED_SIGNED_IN_MESSAGE
        else:
            destination = Destination.LOGIN
            message = REGISTERED_CONFIRM_MESSAGE
        if self._navigator is not None:
            self._navigator.navigate(destination)
        return AuthResult(
            success=True,
            message=message,
            destination=destination,
            user_id=outcome.user.id,
            role=resolved_role,
        )

    async def logout(self) -> AuthResult:
        """Sign out and reset the client, even when the provider call fails."""
        user_id = self._state.user.id if self._state.user is not None else "unknown"
        try:
            await self._identity.sign_out()
        except Exception as exc:
            self._logger.warning(
                "Server-side sign-out failed for %s: %s", user_id, exc,
            )

        self._clear_local_state()
        self._cache.clear_auth_storage()
        try:
            await self._realtime.unsubscribe_all()
        except Exception as exc:
            self._logger.warning("Realtime teardown failed during logout: %s", exc)

        self._logger.info(
            "User logged out: %s", user_id,
            extra={"event": "LOGOUT", "user_id": user_id},
        )
        if self._navigator is not None:
            self._navigator.reload(Destination.HOME)
        return AuthResult(success=True, destination=Destination.HOME)

    async def refresh_user(self) -> None:
        """Re-read the session and refetch the profile.  No-op without a session."""
        try:
            lookup = await self._identity.get_session()
        except Exception as exc:
            self._logger.warning("refresh_user: session lookup failed: %s", exc)
            return
        if lookup.session is None or not self._alive:
            return
        self._state.set_session(lookup.session)
        await self.fetch_profile(lookup.session.user, force_refresh=False, source="refresh")

    async def request_password_reset(self, email: str) -> AuthResult:
        """Send a reset link; the reply does not reveal whether the account exists."""
        check = validate_email(email)
        if not check.is_valid:
            return AuthResult(
                success=False,
                error=check.error_message,
                error_code=AuthErrorCode.VALIDATION_ERROR,
            )
        try:
            await self._identity.request_password_reset(
                normalize_email(email), self._config.password_reset_url,
            )
        except Exception as exc:
            code, message = _map_provider_error(
                exc, "Could not send the reset link. Please try again.",
            )
            self._logger.warning("Password reset request failed: %s", exc)
            return AuthResult(success=False, error=message, error_code=code)

        self._logger.info(
            "Password reset requested.", extra={"event": "PASSWORD_RESET_REQUESTED"},
        )
        return AuthResult(success=True, message=PASSWORD_RESET_SENT_MESSAGE)

    async def update_password(self, new_password: str, confirm_password: str) -> AuthResult:
        check = validate_password_confirmation(
            new_password, confirm_password, self._config.MIN_PASSWORD_LENGTH,
        )
        if not check.is_valid:
            return AuthResult(
                success=False,
                error=check.error_message,
                error_code=AuthErrorCode.VALIDATION_ERROR,
            )
        try:
            await self._identity.update_password(new_password)
        except Exception as exc:
            code, message = _map_provider_error(
                exc, "Failed to update password. Please try again.",
            )
            self._logger.warning("Password update failed: %s", exc)
            return AuthResult(success=False, error=message, error_code=code)

        self._state.set_password_recovery(False)
        self._logger.info("Password updated.", extra={"event": "PASSWORD_UPDATED"})
        return AuthResult(success=True, message="Password updated successfully.")

    async def update_profile(self, updates: dict[str, Any]) -> AuthResult:
        """Write base-profile fields, then force a refetch of the view."""
        session = self._state.session
        if session is None:
            return AuthResult(
                success=False,
                error="You must be signed in to update your profile.",
                error_code=AuthErrorCode.NOT_AUTHENTICATED,
            )
        identity = session.user
        try:
            await self._profiles.update_profile(identity.id, updates)
        except Exception as exc:
            self._logger.error("Profile update failed for %s: %s", identity.id, exc)
            return AuthResult(
                success=False,
                error="Failed to update profile. Please try again.",
                error_code=AuthErrorCode.UNKNOWN_ERROR,
            )
        await self._refetch_when_idle(identity, source="profile_update")
        return AuthResult(success=True, message="Profile updated.", user_id=identity.id)

    # ------------------------------------------------------------------
    # Role accessors
    # ------------------------------------------------------------------

    def has_role(self, required: RoleQuery) -> bool:
        """Exact match for one role, membership for several.

        ``"user"`` and ``"customer"`` both mean ``UserRole.CUSTOMER``.
        """
        user = self._state.user
        if user is None or user.role is None:
            return False
        candidates: Iterable[object] = (
            (required,) if isinstance(required, str) else required
        )
        wanted = {UserRole.normalize(c) for c in candidates} - {None}
        return user.role in wanted

    def is_admin(self) -> bool:
        return self.has_role(UserRole.ADMIN)

    def is_technician(self) -> bool:
        return self.has_role(UserRole.TECHNICIAN)

    def is_customer(self) -> bool:
        return self.has_role(UserRole.CUSTOMER)

    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _is_current(self, epoch: int) -> bool:
        return self._alive and epoch == self._epoch

    def _invalidate_fetch(self) -> None:
        self._epoch += 1
        self._fetch_in_flight = False
        self._fetch_user_id = None
        self._fetch_idle.set()

    def _drop_fetch_for_other_identity(self, identity: Identity) -> None:
        """Discard a running fetch that belongs to a different user."""
        if self._fetch_in_flight and self._fetch_user_id != identity.id:
            self._logger.info(
                "Signed-in user changed to %s; discarding fetch for %s.",
                identity.id, self._fetch_user_id,
            )
            self._invalidate_fetch()

    async def _refetch_when_idle(self, identity: Identity, source: str) -> bool:
        """Force a fetch once any running fetch has finished."""
        while self._fetch_in_flight:
            await self._fetch_idle.wait()
        session = self._state.session
        if not self._alive or session is None or session.user.id != identity.id:
            return False
        return await self.fetch_profile(identity, force_refresh=True, source=source)

    def _warn_slow_init(self) -> None:
        if self._lifecycle is LifecycleState.INITIALIZING:
            self._logger.warning(
                "Session initialisation still running after %.1fs.",
                self._config.INIT_SOFT_DEADLINE_S,
                extra={"event": "INIT_SLOW"},
            )

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> Optional[asyncio.Task[Any]]:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            self._logger.error("No running event loop; background work dropped.")
            return None
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error(
                "Background session task failed: %s", exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
