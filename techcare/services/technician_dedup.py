"""
Technician De-duplication Service.

Maintenance task for the ``technicians`` table.  Concurrent sign-ups
used to create more than one technician row per identity; this service
reports such groups and removes the extras, keeping the oldest row
(lowest ``id``) for each ``user_id``.
"""

from __future__ import annotations

from typing import Any

from techcare.logger import StructuredLogger
from techcare.repositories.technician_repository import TechnicianRepository
from techcare.services.base_service import BaseService
from techcare.utils.audit import AuditAction, log_audit_event
from techcare.utils.dedup import DedupPlan, batched, find_duplicate_keys, plan_user_id_dedup

DELETE_BATCH_SIZE: int = 100


class TechnicianDedupService(BaseService):
    """Find and fix duplicate technician rows."""

    def __init__(self, repo: TechnicianRepository, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._repo = repo

    async def check_duplicates(self) -> dict[str, list[dict[str, Any]]]:
        """Return duplicate groups keyed by ``user_id``, ``email`` or ``name``."""
        rows = await self._repo.list_identity_columns()
        groups = find_duplicate_keys(rows)
        if groups:
            self._logger.info(
                "Found %d duplicate technician group(s): %s",
                len(groups), ", ".join(groups),
            )
        else:
            self._logger.info("No duplicate technicians found.")
        return {key: [dict(row) for row in members] for key, members in groups.items()}

    async def fix_duplicates(self, dry_run: bool = False) -> DedupPlan:
        """Delete every technician row but the oldest per ``user_id``.

        Deletes run in batches of :data:`DELETE_BATCH_SIZE`; a failing batch
        stops the run and the error propagates with earlier batches
        already applied.

        Args:
            dry_run: Compute and log the plan without deleting anything.

        Returns:
            The plan that was (or would have been) applied.
        """
        rows = await self._repo.list_identity_columns()
        plan = plan_user_id_dedup(rows)
        self._logger.info(
            "Technicians: %d total, %d unique, %d duplicate(s) to delete.",
            plan.total, plan.unique, len(plan.delete),
        )
        if dry_run or not plan.delete:
            return plan

        for number, batch in enumerate(batched(plan.delete, DELETE_BATCH_SIZE), start=1):
            self._logger.info("Deleting duplicate batch %d (%d rows).", number, len(batch))
            await self._repo.delete_ids(batch)

        log_audit_event(
            logger=self._logger,
            action=AuditAction.DEDUP_DELETE,
            subject_type="Technician",
            subject_id="*",
            actor_id="maintenance",
            details={"deleted": len(plan.delete), "kept": plan.unique},
        )
        return plan
