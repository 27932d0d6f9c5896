"""
Database Abstraction Layer.

Owns the two stores the session layer talks to:

- **SQLite (local)**: the durable key-value store behind the profile
  cache and persisted auth tokens.  Always available, survives restarts.

- **Supabase (cloud)**: the async client used for auth, PostgREST table
  reads/writes and realtime channels.  Optional; without credentials the
  client runs in offline mode and only cached state is available.

This module only manages the raw *connections*; it contains no query
logic.

Usage (dependency injection at startup)::

    from techcare.database import DatabaseManager
    from techcare.logger import StructuredLogger

    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        sqlite_path=Path(config.LOCAL_DB_PATH),
        logger=StructuredLogger(name="database"),
    )
    await db.open(auth_storage)
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

from supabase import AsyncClient, AsyncClientOptions, acreate_client
from supabase_auth import AsyncSupportedStorage

from techcare.exceptions import OfflineModeError
from techcare.logger import StructuredLogger


class DatabaseManager:
    """Manages the local SQLite connection and the async Supabase client.

    The SQLite connection is opened at construction time.  The Supabase
    client is created by :meth:`open`, because the async factory must run
    inside the event loop.

    Parameters
    ----------
    supabase_url:
        The Supabase project URL (e.g. ``https://xyz.supabase.co``).
        May be empty to run in offline mode.
    supabase_key:
        The Supabase anonymous key.  May be empty to run in offline mode.
    sqlite_path:
        Filesystem path for the local SQLite database file, or
        ``":memory:"``.
    logger:
        A ``StructuredLogger`` instance for structured JSON log output.
    """

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        sqlite_path: Path,
        logger: StructuredLogger,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._supabase_url: str = supabase_url
        self._supabase_key: str = supabase_key
        self._supabase: Optional[AsyncClient] = None
        self._closed: bool = False

        # --- SQLite (always required) ---
        self._sqlite_conn: sqlite3.Connection = self._connect_sqlite(sqlite_path)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self, auth_storage: Optional[AsyncSupportedStorage] = None) -> None:
        """Create the async Supabase client.

        Credential or network problems are logged and leave the manager in
        offline mode; they never propagate to the caller.

        Parameters
        ----------
        auth_storage:
            Storage the auth client persists its session into.  When
            ``None`` the client keeps tokens in memory only.
        """
        if self._supabase is not None:
            return

        if not (self._supabase_url and self._supabase_key):
            self._logger.warning(
                "Supabase credentials not configured; running in offline mode."
            )
            return

        try:
            options = (
                AsyncClientOptions(storage=auth_storage)
                if auth_storage is not None
                else AsyncClientOptions()
            )
            self._supabase = await acreate_client(
                self._supabase_url, self._supabase_key, options=options,
            )
            self._logger.info("Supabase client initialized.")
        except (ValueError, TypeError) as exc:
            self._logger.warning(
                "Supabase credential format error: %s. Running in offline mode.",
                exc,
            )
        except Exception as exc:
            self._logger.error(
                "Unexpected Supabase initialization failure: %s. "
                "Running in offline mode.",
                exc,
                exc_info=True,
            )

    def close(self) -> None:
        """Close the SQLite connection.  Idempotent."""
        if not self._closed:
            self._closed = True
            self._sqlite_conn.close()
            self._logger.info("Local database closed.")

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def supabase(self) -> AsyncClient:
        """Return the initialised Supabase client.

        Raises
        ------
        OfflineModeError
            If no client is available (missing credentials or
            :meth:`open` not yet called).
        """
        if self._supabase is None:
            raise OfflineModeError(
                "Supabase client is not initialised. "
                "The client is running in offline mode."
            )
        return self._supabase

    @property
    def is_online(self) -> bool:
        """``True`` when the Supabase client is available."""
        return self._supabase is not None

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Return the SQLite connection."""
        return self._sqlite_conn

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _connect_sqlite(self, path: Path) -> sqlite3.Connection:
        """Open the local database, creating the file on first run.

        ``sqlite3.Row`` rows and WAL journaling are enabled.  An unusable
        path (read-only directory, file locked by another process) raises
        ``sqlite3.OperationalError`` after being logged.
        """
        try:
            conn = sqlite3.connect(str(path))
            conn.execute("PRAGMA journal_mode=WAL;")
        except sqlite3.OperationalError as exc:
            self._logger.error(
                "Local database %s could not be opened: %s", path, exc,
                extra={"event": "LOCAL_DB_UNAVAILABLE"},
            )
            raise
        conn.row_factory = sqlite3.Row
        self._logger.info("Local database ready at %s", path)
        return conn
