"""
Encrypted Local Key-Value Store.

Durable string key-value storage backed by the SQLite ``local_store``
table.  It plays the role browser ``localStorage`` plays for a web
client: the profile cache and the persisted Supabase auth session both
live here, so a restart can paint the last known user instantly.

Security model
--------------
- Values are encrypted with AES-256-GCM (confidentiality + integrity).
  Profile rows contain addresses and phone numbers; auth entries contain
  refresh tokens.
- Unless a key is injected, the encryption key is derived at runtime from
  machine identity (hostname + OS username) via PBKDF2-HMAC-SHA256 with a
  per-machine random salt stored in ``~/.techcare_store_salt``.  The key
  is never persisted.
- A value that fails authentication (tampered row, different machine)
  reads as missing.

Storage layout::

    local_store
    ├── key               TEXT PRIMARY KEY
    ├── encrypted_payload BLOB
    ├── nonce             BLOB
    ├── tag               BLOB
    └── updated_at        TIMESTAMP
"""

from __future__ import annotations

import getpass
import os
import socket
import stat
from pathlib import Path
from typing import Optional

from Crypto.Cipher import AES
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2

from techcare.database import DatabaseManager
from techcare.logger import StructuredLogger
from techcare.services.base_service import BaseService


class EncryptedKeyValueStore(BaseService):
    """``get`` / ``set`` / ``remove`` over encrypted SQLite rows.

    All methods are best-effort: failures are logged and reported through
    return values, never raised, because every caller treats the local
    store as an optimisation.

    Parameters
    ----------
    db:
        Initialised ``DatabaseManager`` whose SQLite schema has been
        created by :func:`techcare.schema.initialize_schema`.
    logger:
        Structured logger.
    key:
        Optional 32-byte AES key.  When omitted the key is derived from
        machine identity on first use.
    salt_path:
        Location of the per-machine salt file used for key derivation.
    """

    _PBKDF2_ITERATIONS: int = 600_000
    _KEY_LENGTH: int = 32  # 256 bits

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        key: Optional[bytes] = None,
        salt_path: Optional[Path] = None,
    ) -> None:
        super().__init__(logger)
        if key is not None and len(key) != self._KEY_LENGTH:
            raise ValueError(f"Store key must be {self._KEY_LENGTH} bytes, got {len(key)}.")
        self._db: DatabaseManager = db
        self._key: Optional[bytes] = key
        self._salt_path: Path = salt_path or Path.home() / ".techcare_store_salt"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[str]:
        """Return the decrypted value stored under *key*, or ``None``."""
        try:
            row = self._db.sqlite.execute(
                "SELECT encrypted_payload, nonce, tag FROM local_store WHERE key = ?",
                (key,),
            ).fetchone()
        except Exception as exc:
            self._logger.warning("Failed to read local store key %s: %s", key, exc)
            return None

        if row is None:
            return None

        try:
            cipher = AES.new(self._get_key(), AES.MODE_GCM, nonce=row["nonce"])
            plaintext: bytes = cipher.decrypt_and_verify(row["encrypted_payload"], row["tag"])
        except (ValueError, KeyError) as exc:
            self._logger.warning(
                "Local store value for %s failed authentication "
                "(corrupted data or machine identity changed): %s",
                key,
                exc,
            )
            return None
        except OSError as exc:
            self._logger.warning("Local store key unavailable: %s", exc)
            return None

        return plaintext.decode("utf-8")

    def set(self, key: str, value: str) -> bool:
        """Encrypt and upsert *value* under *key*.

        Returns
        -------
        bool
            ``True`` when the row was written.
        """
        try:
            cipher = AES.new(self._get_key(), AES.MODE_GCM)
            ciphertext, tag = cipher.encrypt_and_digest(value.encode("utf-8"))
            nonce: bytes = cipher.nonce
        except Exception as exc:
            self._logger.warning("Failed to encrypt local store value for %s: %s", key, exc)
            return False

        try:
            self._db.sqlite.execute(
                """
                INSERT INTO local_store (key, encrypted_payload, nonce, tag)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    encrypted_payload = excluded.encrypted_payload,
                    nonce             = excluded.nonce,
                    tag               = excluded.tag,
                    updated_at        = CURRENT_TIMESTAMP
                """,
                (key, ciphertext, nonce, tag),
            )
            self._db.sqlite.commit()
            return True
        except Exception as exc:
            self._logger.warning("Failed to write local store key %s: %s", key, exc)
            return False

    def remove(self, key: str) -> None:
        """Delete *key*.  Safe to call for keys that do not exist."""
        try:
            self._db.sqlite.execute("DELETE FROM local_store WHERE key = ?", (key,))
            self._db.sqlite.commit()
        except Exception as exc:
            self._logger.warning("Failed to remove local store key %s: %s", key, exc)

    def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with *prefix*."""
        try:
            rows = self._db.sqlite.execute(
                "SELECT key FROM local_store WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        except Exception as exc:
            self._logger.warning("Failed to list local store keys: %s", exc)
            return []
        return [row["key"] for row in rows]

    def remove_prefix(self, prefix: str) -> int:
        """Delete every key starting with *prefix*; return how many went."""
        doomed = self.keys(prefix)
        for key in doomed:
            self.remove(key)
        return len(doomed)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _get_key(self) -> bytes:
        """Return the AES key, deriving it once from machine identity.

        Raises
        ------
        OSError
            If the per-machine salt file cannot be created or read.
        """
        if self._key is None:
            password: str = f"{socket.gethostname()}:{getpass.getuser()}"
            self._key = PBKDF2(
                password=password,
                salt=self._get_or_create_salt(),
                dkLen=self._KEY_LENGTH,
                count=self._PBKDF2_ITERATIONS,
                hmac_hash_module=SHA256,
            )
        return self._key

    def _get_or_create_salt(self) -> bytes:
        """Return the per-machine random salt, creating it on first run."""
        if self._salt_path.exists():
            data: bytes = self._salt_path.read_bytes()
            if len(data) == 32:
                return data
            self._logger.warning(
                "Salt file has unexpected length (%d); regenerating.", len(data),
            )
        salt: bytes = os.urandom(32)
        self._salt_path.write_bytes(salt)
        self._salt_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0o600
        self._logger.info("Per-machine store salt created at %s.", self._salt_path)
        return salt
