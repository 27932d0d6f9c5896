"""
Profile Repository.

Data access for the three profile tables the session layer reads:

- ``profiles``     base application record, keyed by ``id``
- ``customers``    customer-specific record, keyed by ``user_id``
- ``technicians``  technician-specific record, keyed by ``user_id``

Reads return ``None`` for "not found" and raise on anything else, so the
session layer can tell an absent row from an unreachable store.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from techcare.database import DatabaseManager
from techcare.logger import StructuredLogger
from techcare.models.enums import UserRole
from techcare.models.user import CustomerProfile, Profile, TechnicianProfile
from techcare.repositories.base_repository import BaseRepository

PROFILES_TABLE: str = "profiles"
CUSTOMERS_TABLE: str = "customers"
TECHNICIANS_TABLE: str = "technicians"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def role_table(role: UserRole) -> Optional[str]:
    """Table holding the role-specific record for *role*, if any."""
    if role == UserRole.TECHNICIAN:
        return TECHNICIANS_TABLE
    if role == UserRole.CUSTOMER:
        return CUSTOMERS_TABLE
    return None


class ProfileRepository(BaseRepository):
    """Supabase-backed Profile Store."""

    TABLE = PROFILES_TABLE

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        row = await self._select_one(PROFILES_TABLE, "id", user_id)
        return Profile.model_validate(row) if row else None

    async def get_customer_profile(self, user_id: str) -> Optional[CustomerProfile]:
        row = await self._select_one(CUSTOMERS_TABLE, "user_id", user_id)
        return CustomerProfile.model_validate(row) if row else None

    async def get_technician_profile(self, user_id: str) -> Optional[TechnicianProfile]:
        row = await self._select_one(TECHNICIANS_TABLE, "user_id", user_id)
        return TechnicianProfile.model_validate(row) if row else None

    async def email_exists(self, email: str) -> bool:
        """``True`` when a ``profiles`` row already uses *email*."""
        row = await self._select_one(
            PROFILES_TABLE, "email", email.strip().lower(), columns="id, email",
        )
        return row is not None

    async def role_record_exists(self, role: UserRole, user_id: str) -> bool:
        table = role_table(role)
        if table is None:
            return False
        row = await self._select_one(table, "user_id", user_id, columns="id")
        return row is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def update_profile(self, user_id: str, updates: dict[str, Any]) -> Profile:
        """Update the base profile, stamping ``updated_at``."""
        row = await self._update_one(
            PROFILES_TABLE, "id", user_id, {**updates, "updated_at": _now_iso()},
        )
        self._logger.info("Profile updated: %s (%s)", user_id, ", ".join(sorted(updates)))
        return Profile.model_validate(row)

    async def update_customer_profile(
        self, user_id: str, updates: dict[str, Any],
    ) -> CustomerProfile:
        row = await self._update_one(
            CUSTOMERS_TABLE, "user_id", user_id, {**updates, "updated_at": _now_iso()},
        )
        return CustomerProfile.model_validate(row)

    async def update_technician_profile(
        self, user_id: str, updates: dict[str, Any],
    ) -> TechnicianProfile:
        row = await self._update_one(
            TECHNICIANS_TABLE, "user_id", user_id, {**updates, "updated_at": _now_iso()},
        )
        return TechnicianProfile.model_validate(row)

    async def upsert_profile(
        self,
        user_id: str,
        email: str,
        name: str,
        role: UserRole,
    ) -> None:
        """Insert or refresh the ``profiles`` row for a new account."""
        await (
            self.supabase.table(PROFILES_TABLE)
            .upsert(
                {
                    "id": user_id,
                    "email": email.strip().lower(),
                    "name": name,
                    "role": str(role),
                    "created_at": _now_iso(),
                },
                on_conflict="id",
            )
            .execute()
        )

    async def upsert_role_record(
        self,
        role: UserRole,
        user_id: str,
        email: str,
        name: str,
    ) -> None:
        """Create the ``customers`` or ``technicians`` row for a new account."""
        table = role_table(role)
        if table is None:
            return
        row: dict[str, Any] = {
            "user_id": user_id,
            "name": name,
            "email": email.strip().lower(),
            "created_at": _now_iso(),
        }
        if table == TECHNICIANS_TABLE:
            row["phone"] = "Not provided"
        await self.supabase.table(table).upsert(row, on_conflict="user_id").execute()
