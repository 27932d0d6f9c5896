"""
Profile Cache Service.

Typed, versioned cache of the last successfully fetched profile for each
user, stored in the encrypted local store under ``user_profile_{id}``.

The cache is written only after a successful Profile Store fetch and is
read in two places: to paint the UI instantly while a fresh fetch is
outstanding, and as the fallback when that fetch fails.  Loaded entries
are immutable snapshots.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from pydantic import ValidationError

from techcare.config import AppConfig
from techcare.logger import StructuredLogger
from techcare.models.auth_models import PROFILE_CACHE_VERSION, CachedProfile
from techcare.models.user import CustomerProfile, Profile, TechnicianProfile
from techcare.services.base_service import BaseService
from techcare.services.local_store import EncryptedKeyValueStore

PROFILE_KEY_PREFIX: str = "user_profile_"


def profile_cache_key(user_id: str) -> str:
    return f"{PROFILE_KEY_PREFIX}{user_id}"


class ProfileCacheService(BaseService):
    """Reads and writes ``CachedProfile`` entries.

    Entries whose ``version`` differs from :data:`PROFILE_CACHE_VERSION`,
    that fail validation, or that are older than
    ``PROFILE_CACHE_MAX_AGE_DAYS`` are treated as absent and deleted.
    """

    def __init__(
        self,
        store: EncryptedKeyValueStore,
        config: AppConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._store: EncryptedKeyValueStore = store
        self._config: AppConfig = config

    def load(self, user_id: str) -> Optional[CachedProfile]:
        """Return the cached entry for *user_id*, or ``None``."""
        key = profile_cache_key(user_id)
        raw = self._store.get(key)
        if raw is None:
            return None

        try:
            entry = CachedProfile.model_validate_json(raw)
        except ValidationError as exc:
            self._logger.warning(
                "Cached profile for %s is malformed; discarding: %s", user_id, exc,
            )
            self._store.remove(key)
            return None

        if entry.version != PROFILE_CACHE_VERSION:
            self._logger.info(
                "Cached profile for %s has layout version %d (expected %d); discarding.",
                user_id,
                entry.version,
                PROFILE_CACHE_VERSION,
            )
            self._store.remove(key)
            return None

        max_age = timedelta(days=self._config.PROFILE_CACHE_MAX_AGE_DAYS)
        if datetime.now(tz=timezone.utc) - entry.timestamp > max_age:
            self._logger.info(
                "Cached profile for %s expired (cached at %s).",
                user_id,
                entry.timestamp.isoformat(),
            )
            self._store.remove(key)
            return None

        return entry

    def save(
        self,
        user_id: str,
        profile: Profile,
        extended_profile: Optional[Union[CustomerProfile, TechnicianProfile]],
    ) -> bool:
        """Persist a freshly fetched profile.  Last writer wins per key."""
        entry = CachedProfile(
            profile=profile,
            extended_profile=extended_profile,
            timestamp=datetime.now(tz=timezone.utc),
        )
        written = self._store.set(profile_cache_key(user_id), entry.model_dump_json())
        if not written:
            self._logger.warning(
                "Profile cache write failed for %s; instant paint will "
                "be unavailable on next start.",
                user_id,
            )
        return written

    def remove(self, user_id: str) -> None:
        self._store.remove(profile_cache_key(user_id))

    def clear_legacy(self) -> None:
        """Best-effort removal of the pre-versioned global cache keys."""
        for key in self._config.LEGACY_CACHE_KEYS:
            self._store.remove(key)

    def clear_auth_storage(self) -> int:
        """Remove persisted auth-token entries; return how many were removed."""
        removed = self._store.remove_prefix(self._config.AUTH_STORAGE_PREFIX)
        if removed:
            self._logger.info("Cleared %d persisted auth storage key(s).", removed)
        return removed
