import sqlite3

import pytest

from techcare import schema
from techcare.schema import CURRENT_SCHEMA_VERSION, initialize_schema


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    yield connection
    connection.close()


def _tables(conn):
    return {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}


class TestInitializeSchema:
    def test_fresh_database(self, conn, logger):
        """Should create every table and record the current version."""
        initialize_schema(conn, logger)
        assert {"schema_version", "local_store"} <= _tables(conn)
        version = conn.execute("SELECT version FROM schema_version").fetchone()[0]
        assert version == CURRENT_SCHEMA_VERSION

    def test_idempotent(self, conn, logger):
        """Should leave an up-to-date database alone."""
        initialize_schema(conn, logger)
        conn.execute(
            "INSERT INTO local_store (key, encrypted_payload, nonce, tag) VALUES ('k', x'00', x'00', x'00')"
        )
        conn.commit()
        initialize_schema(conn, logger)
        assert conn.execute("SELECT COUNT(*) FROM local_store").fetchone()[0] == 1

    def test_failed_migration_rolls_back(self, conn, logger, monkeypatch):
        """Should roll back and re-raise when a migration fails."""
        conn.execute(
            "CREATE TABLE schema_version (id INTEGER PRIMARY KEY CHECK (id = 1), "
            "version INTEGER NOT NULL, applied_at TIMESTAMP)"
        )
        conn.execute("INSERT INTO schema_version (id, version) VALUES (1, 1)")
        conn.commit()

        def _broken(connection, log):
            connection.execute("CREATE TABLE half_done (id INTEGER)")
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(schema, "CURRENT_SCHEMA_VERSION", 2)
        monkeypatch.setitem(schema._MIGRATIONS, 2, _broken)

        with pytest.raises(sqlite3.OperationalError):
            initialize_schema(conn, logger)
        assert conn.execute("SELECT version FROM schema_version").fetchone()[0] == 1
