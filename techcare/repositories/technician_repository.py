"""
Technician Repository.

Bulk reads and deletes on the ``technicians`` table used by the
duplicate-record maintenance task.  Requires a client created with a key
that may read every row (service role).
"""

from __future__ import annotations

from typing import Any, Sequence

from techcare.database import DatabaseManager
from techcare.logger import StructuredLogger
from techcare.repositories.base_repository import BaseRepository
from techcare.repositories.profile_repository import TECHNICIANS_TABLE


class TechnicianRepository(BaseRepository):
    """Data access layer for technician rows."""

    TABLE = TECHNICIANS_TABLE

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    async def list_identity_columns(self) -> list[dict[str, Any]]:
        """Return ``id, user_id, name, email`` for every row, ordered by id."""
        response = await (
            self.supabase.table(self.TABLE)
            .select("id, user_id, name, email")
            .order("id")
            .execute()
        )
        return list(response.data or [])

    async def delete_ids(self, ids: Sequence[Any]) -> int:
        """Delete rows by primary key; return the number requested."""
        if not ids:
            return 0
        await self.supabase.table(self.TABLE).delete().in_("id", list(ids)).execute()
        return len(ids)
