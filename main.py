"""
TechCare Client Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the local SQLite schema, restores the persisted session and reports the
signed-in user.  A UI shell embeds the same wiring; this headless entry
point is what operators use to check a machine's session state and to run
the technician de-duplication task.

Usage::

    python main.py                     # restore session, print user view
    python main.py dedup-check         # list duplicate technician rows
    python main.py dedup-fix [--dry-run]
"""

from __future__ import annotations

import argparse
import asyncio
import atexit
import json
import sys
from pathlib import Path
from typing import Optional, Sequence

from techcare.config import get_config
from techcare.database import DatabaseManager
from techcare.logger import StructuredLogger, get_logger
from techcare.schema import initialize_schema
from techcare.services import create_services
from techcare.services.identity_provider import PersistentAuthStorage
from techcare.services.local_store import EncryptedKeyValueStore


class ConsoleNavigator:
    """Navigator for headless runs: routes are logged, never rendered."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger = logger

    def navigate(self, path: str) -> None:
        self._logger.info("Navigate to %s", path)

    def reload(self, path: str) -> None:
        self._logger.info("Client reset requested; restart at %s", path)


async def run(command: str, dry_run: bool) -> int:
    """Wire dependencies and execute *command*; return the exit status."""
    logger: StructuredLogger = get_logger("main")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Database Manager (SQLite always, Supabase when configured)
    # ------------------------------------------------------------------
    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        sqlite_path=Path(config.LOCAL_DB_PATH),
        logger=StructuredLogger(name="database"),
    )
    atexit.register(db.close)

    # ------------------------------------------------------------------
    # 3. SQLite schema + encrypted local store
    # ------------------------------------------------------------------
    initialize_schema(db.sqlite, StructuredLogger(name="schema"))
    store = EncryptedKeyValueStore(db=db, logger=StructuredLogger(name="local_store"))

    # ------------------------------------------------------------------
    # 4. Supabase client, persisting auth tokens in the local store
    # ------------------------------------------------------------------
    await db.open(PersistentAuthStorage(store))

    # ------------------------------------------------------------------
    # 5. Service container
    # ------------------------------------------------------------------
    services = create_services(
        db=db,
        config=config,
        store=store,
        navigator=ConsoleNavigator(get_logger("navigator")),
    )

    try:
        if command == "dedup-check":
            groups = await services["technician_dedup_service"].check_duplicates()
            print(json.dumps(groups, indent=2, default=str))
            return 0

        if command == "dedup-fix":
            plan = await services["technician_dedup_service"].fix_duplicates(dry_run=dry_run)
            print(json.dumps(plan._asdict(), indent=2, default=str))
            return 0

        manager = services["session_manager"]
        manager.attach()
        await manager.initialize()
        await manager.settle()
        user = manager.user
        print(json.dumps(user.as_dict() if user else None, indent=2, default=str))
        manager.teardown()
        return 0
    finally:
        db.close()
        logger.info("TechCare client shut down.")


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="techcare")
    parser.add_argument(
        "command",
        nargs="?",
        default="status",
        choices=("status", "dedup-check", "dedup-fix"),
    )
    parser.add_argument("--dry-run", action="store_true")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    return asyncio.run(run(args.command, args.dry_run))


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        pass
