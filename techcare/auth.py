"""
Authentication & Session State.

Provides an injectable ``AuthState`` that holds what the rest of the
client reads about the signed-in user: the live ``AuthSession``, the
current ``UserView`` and the ``loading`` / password-recovery flags.

Only ``SessionManager`` writes to it.  Consumers read the properties and
subscribe with :meth:`AuthState.on_change`::

    state = manager.state
    unsubscribe = state.on_change(lambda s: render(s.user))
    ...
    unsubscribe()
"""

from __future__ import annotations

from typing import Callable, Optional

from techcare.logger import StructuredLogger
from techcare.models.user import AuthSession, FullUserView, Profile, UserView

ChangeListener = Callable[["AuthState"], None]


class AuthState:
    """Holder for the current session, user view and flags.

    ``user`` is referentially stable: :meth:`set_user` keeps the existing
    object when the new view is equal to it, so consumers comparing by
    identity do not recompute.
    """

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger = logger
        self._session: Optional[AuthSession] = None
        self._user: Optional[UserView] = None
        self._loading: bool = False
        self._is_password_recovery: bool = False
        self._listeners: list[ChangeListener] = []

    # -- Reads ------------------------------------------------------------

    @property
    def session(self) -> Optional[AuthSession]:
        return self._session

    @property
    def user(self) -> Optional[UserView]:
        return self._user

    @property
    def profile(self) -> Optional[Profile]:
        """Base profile of the current user, once fully loaded."""
        if isinstance(self._user, FullUserView):
            return self._user.profile
        return None

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def is_password_recovery(self) -> bool:
        return self._is_password_recovery

    @property
    def is_authenticated(self) -> bool:
        """``True`` when a user view is present."""
        return self._user is not None

    # -- Writes -----------------------------------------------------------

    def set_session(self, session: Optional[AuthSession]) -> None:
        if session == self._session:
            return
        self._session = session
        self._notify()

    def set_user(self, user: Optional[UserView]) -> bool:
        """Replace the user view unless it is equal to the current one.

        Returns:
            ``True`` if the held object changed.
        """
        if user == self._user:
            return False
        self._user = user
        self._notify()
        return True

    def set_loading(self, loading: bool) -> None:
        if loading == self._loading:
            return
        self._loading = loading
        self._notify()

    def set_password_recovery(self, active: bool) -> None:
        if active == self._is_password_recovery:
            return
        self._is_password_recovery = active
        self._notify()

    def clear(self) -> None:
        """Remove the session and user, ending the signed-in state."""
        changed = (
            self._session is not None
            or self._user is not None
            or self._is_password_recovery
        )
        self._session = None
        self._user = None
        self._is_password_recovery = False
        if changed:
            self._notify()

    # -- Subscription -----------------------------------------------------

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Register *listener*; the returned callable unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as exc:
                self._logger.error(
                    "AuthState listener %r failed: %s", listener, exc, exc_info=True,
                )
