"""
Base Repository.

Provides shared infrastructure for all repositories:
- DatabaseManager reference (async Supabase client)
- Logger reference
- Single-row and update helpers that normalise PostgREST's
  "no rows" answer to ``None``
"""

from __future__ import annotations

from typing import Any, Optional

from postgrest.exceptions import APIError
from supabase import AsyncClient

from techcare.database import DatabaseManager
from techcare.logger import StructuredLogger

# PostgREST code for "JSON object requested, multiple (or no) rows returned".
NOT_FOUND_CODE: str = "PGRST116"


def is_not_found(exc: APIError) -> bool:
    return getattr(exc, "code", None) == NOT_FOUND_CODE


def is_duplicate_key(exc: BaseException) -> bool:
    """``True`` when *exc* is a unique-constraint violation."""
    return "duplicate key" in str(getattr(exc, "message", None) or exc).lower()


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    TABLE: str = ""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def supabase(self) -> AsyncClient:
        """Returns the Supabase client for cloud operations.

        Raises ``OfflineModeError`` when the client is not configured.
        """
        return self._db.supabase

    async def _select_one(
        self,
        table: str,
        column: str,
        value: str,
        columns: str = "*",
    ) -> Optional[dict[str, Any]]:
        """Fetch at most one row where ``column == value``.

        Returns ``None`` for "not found"; every other failure propagates.
        """
        try:
            response = await (
                self.supabase.table(table)
                .select(columns)
                .eq(column, value)
                .maybe_single()
                .execute()
            )
        except APIError as exc:
            if is_not_found(exc):
                return None
            raise
        if response is None or not response.data:
            return None
        return response.data

    async def _update_one(
        self,
        table: str,
        column: str,
        value: str,
        updates: dict[str, Any],
    ) -> dict[str, Any]:
        """Apply *updates* to the row matching ``column == value``.

        Raises
        ------
        LookupError
            If no row matched.
        """
        response = await (
            self.supabase.table(table)
            .update(updates)
            .eq(column, value)
            .execute()
        )
        if not response.data:
            raise LookupError(f"No {table} row with {column}={value}")
        return response.data[0]
