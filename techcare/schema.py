"""
Local SQLite schema.

The client keeps one table of its own, ``local_store``, holding the
encrypted key-value pairs behind the profile cache and the persisted
auth session.  :func:`initialize_schema` brings a database file up to
:data:`CURRENT_SCHEMA_VERSION` and is safe to call on every start.

Layout changes are added as numbered steps in :data:`_MIGRATIONS`; a
database at version N runs the steps above N in order, all inside one
transaction.  A fresh database skips the steps and is created directly
from :data:`_TABLES`.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable

from techcare.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "initialize_schema"]

CURRENT_SCHEMA_VERSION: int = 1

_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    id         INTEGER PRIMARY KEY CHECK (id = 1),
    version    INTEGER NOT NULL,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

_TABLES: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS local_store (
        key               TEXT PRIMARY KEY,
        encrypted_payload BLOB NOT NULL,
        nonce             BLOB NOT NULL,
        tag               BLOB NOT NULL,
        updated_at        TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
)

Migration = Callable[[sqlite3.Connection, StructuredLogger], None]

# target version -> step that upgrades from the version below it
_MIGRATIONS: dict[int, Migration] = {}


def _read_version(conn: sqlite3.Connection) -> int:
    conn.execute(_VERSION_TABLE)
    conn.commit()
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return int(row[0]) if row else 0


def _write_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(
        "INSERT INTO schema_version (id, version) VALUES (1, ?) "
        "ON CONFLICT(id) DO UPDATE SET version = excluded.version, "
        "applied_at = CURRENT_TIMESTAMP",
        (version,),
    )


def _upgrade(conn: sqlite3.Connection, logger: StructuredLogger, current: int) -> None:
    if current == 0:
        for ddl in _TABLES:
            conn.execute(ddl)
        logger.info("Created %d local table(s).", len(_TABLES))
        return

    steps = sorted(v for v in _MIGRATIONS if current < v <= CURRENT_SCHEMA_VERSION)
    for version in steps:
        logger.info("Applying local schema migration %d.", version)
        _MIGRATIONS[version](conn, logger)


def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Create or upgrade the local tables.

    Raises:
        sqlite3.Error: A migration failed; the database is rolled back to
            its previous version and the next start retries.
    """
    current = _read_version(conn)
    if current >= CURRENT_SCHEMA_VERSION:
        logger.debug("Local schema at version %d.", current)
        return

    try:
        _upgrade(conn, logger, current)
        _write_version(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()
    except Exception:
        conn.rollback()
        logger.error(
            "Local schema upgrade from version %d failed; rolled back.", current,
            extra={"event": "SCHEMA_MIGRATION_FAILED"},
        )
        raise

    logger.info(
        "Local schema upgraded from version %d to %d.", current, CURRENT_SCHEMA_VERSION,
    )
