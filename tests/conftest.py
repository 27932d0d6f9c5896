"""
Shared test fixtures and fakes.

The identity provider and Profile Store fakes record every call so tests
can assert how many network requests the session layer issued.  The
local store runs on an in-memory SQLite database with a fixed key.
"""

import asyncio
import uuid
from pathlib import Path
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from techcare.config import AppConfig
from techcare.database import DatabaseManager
from techcare.exceptions import AuthProviderError
from techcare.logger import StructuredLogger
from techcare.models.auth_models import SessionLookup, SignUpOutcome
from techcare.models.enums import UserRole
from techcare.models.user import (
    AuthSession,
    CustomerProfile,
    Identity,
    Profile,
    TechnicianProfile,
)
from techcare.schema import initialize_schema
from techcare.services.local_store import EncryptedKeyValueStore
from techcare.services.profile_cache import ProfileCacheService
from techcare.services.session_manager import SessionManager

TEST_STORE_KEY = b"0123456789abcdef0123456789abcdef"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_identity(
    user_id: str = "u1",
    role: Optional[str] = "technician",
    email: str = "t@x.com",
    name: Optional[str] = "Tess Tech",
) -> Identity:
    metadata: dict[str, Any] = {}
    if role is not None:
        metadata["role"] = role
    if name is not None:
        metadata["name"] = name
    return Identity.from_auth_user({"id": user_id, "email": email, "user_metadata": metadata})


def make_session(identity: Identity, token: str = "access-1") -> AuthSession:
    return AuthSession(access_token=token, refresh_token="refresh-1", user=identity)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------

class FakeIdentityProvider:
    """In-process identity provider."""

    def __init__(self) -> None:
        self.session: Optional[AuthSession] = None
        self.session_error: Optional[AuthProviderError] = None
        self.session_delay: float = 0.0
        self.sign_in_result: Optional[AuthSession] = None
        self.sign_in_error: Optional[BaseException] = None
        self.sign_up_result: Optional[SignUpOutcome] = None
        self.sign_up_error: Optional[BaseException] = None
        self.sign_out_error: Optional[BaseException] = None
        self.reset_requests: list[tuple[str, str]] = []
        self.password_updates: list[str] = []
        self.handlers: list[Callable[[str, Optional[AuthSession]], None]] = []
        self.get_session_calls = 0
        self.sign_out_calls = 0

    async def get_session(self) -> SessionLookup:
        self.get_session_calls += 1
        if self.session_delay:
            await asyncio.sleep(self.session_delay)
        return SessionLookup(session=self.session, error=self.session_error)

    async def sign_in(self, email: str, password: str) -> AuthSession:
        if self.sign_in_error is not None:
            raise self.sign_in_error
        assert self.sign_in_result is not None
        return self.sign_in_result

    async def sign_up(self, email: str, password: str, name: str, role: UserRole) -> SignUpOutcome:
        if self.sign_up_error is not None:
            raise self.sign_up_error
        assert self.sign_up_result is not None
        return self.sign_up_result

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        if self.sign_out_error is not None:
            raise self.sign_out_error

    async def request_password_reset(self, email: str, redirect_to: str) -> None:
        self.reset_requests.append((email, redirect_to))

    async def update_password(self, new_password: str) -> None:
        self.password_updates.append(new_password)

    def on_auth_state_change(self, handler):
        self.handlers.append(handler)

        def _unsubscribe() -> None:
            self.handlers.remove(handler)

        return _unsubscribe

    def emit(self, event: str, session: Optional[AuthSession]) -> None:
        for handler in list(self.handlers):
            handler(event, session)


class FakeProfileStore:
    """Profile Store with per-call counters, delays and failures."""

    def __init__(self) -> None:
        self.profiles: dict[str, Profile] = {}
        self.customers: dict[str, CustomerProfile] = {}
        self.technicians: dict[str, TechnicianProfile] = {}
        self.delay: float = 0.0
        self.error: Optional[BaseException] = None
        self.calls: dict[str, int] = {
            "get_profile": 0,
            "get_customer_profile": 0,
            "get_technician_profile": 0,
            "update_profile": 0,
        }

    async def _respond(self, name: str, value: Any) -> Any:
        self.calls[name] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return value

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        return await self._respond("get_profile", self.profiles.get(user_id))

    async def get_customer_profile(self, user_id: str) -> Optional[CustomerProfile]:
        return await self._respond("get_customer_profile", self.customers.get(user_id))

    async def get_technician_profile(self, user_id: str) -> Optional[TechnicianProfile]:
        return await self._respond("get_technician_profile", self.technicians.get(user_id))

    async def update_profile(self, user_id: str, updates: dict[str, Any]) -> Profile:
        self.calls["update_profile"] += 1
        current = self.profiles[user_id]
        updated = current.model_copy(update=updates)
        self.profiles[user_id] = updated
        return updated


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    """Configuration with short timeouts and no Supabase credentials."""
    return AppConfig(
        SUPABASE_URL="",
        LOG_FILE=str(tmp_path / "techcare-test.log"),
        PROFILE_FETCH_TIMEOUT_S=0.2,
        PROFILE_FRESHNESS_WINDOW_S=10.0,
        INIT_SOFT_DEADLINE_S=5.0,
    )


@pytest.fixture
def logger(tmp_path: Path) -> StructuredLogger:
    """Logger with a unique name so handlers are not shared across tests."""
    return StructuredLogger(
        name=f"techcare.test.{uuid.uuid4().hex[:8]}",
        log_file=str(tmp_path / "techcare-test.log"),
    )


@pytest.fixture
def db(logger: StructuredLogger):
    """Offline DatabaseManager over an in-memory SQLite database."""
    manager = DatabaseManager(
        supabase_url="",
        supabase_key="",
        sqlite_path=Path(":memory:"),
        logger=logger,
    )
    initialize_schema(manager.sqlite, logger)
    yield manager
    manager.close()


@pytest.fixture
def store(db: DatabaseManager, logger: StructuredLogger) -> EncryptedKeyValueStore:
    return EncryptedKeyValueStore(db=db, logger=logger, key=TEST_STORE_KEY)


@pytest.fixture
def cache(store: EncryptedKeyValueStore, config: AppConfig, logger: StructuredLogger) -> ProfileCacheService:
    return ProfileCacheService(store=store, config=config, logger=logger)


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def profile_store() -> FakeProfileStore:
    return FakeProfileStore()


@pytest.fixture
def realtime() -> MagicMock:
    mock = MagicMock()
    mock.unsubscribe_all = AsyncMock()
    mock.refresh_all_connections = AsyncMock()
    return mock


@pytest.fixture
def navigator() -> MagicMock:
    return MagicMock()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def manager(
    provider: FakeIdentityProvider,
    profile_store: FakeProfileStore,
    cache: ProfileCacheService,
    realtime: MagicMock,
    config: AppConfig,
    logger: StructuredLogger,
    navigator: MagicMock,
    clock: FakeClock,
) -> SessionManager:
    """SessionManager wired to the fakes and attached to provider events."""
    session_manager = SessionManager(
        identity=provider,
        profiles=profile_store,
        cache=cache,
        realtime=realtime,
        config=config,
        logger=logger,
        navigator=navigator,
        clock=clock,
    )
    session_manager.attach()
    return session_manager
