"""
Audit trail for account and maintenance actions.

Each call produces one ``AUDIT: {...}`` log line whose payload is a
validated :class:`AuditEvent`, tagged ``event=AUDIT_<ACTION>``.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import StrEnum
from typing import Optional, Union

from pydantic import BaseModel, Field

from techcare.logger import StructuredLogger

__all__ = ["AuditAction", "AuditEvent", "log_audit_event"]

Scalar = Union[str, int, float, bool, None]


class AuditAction(StrEnum):
    LOGIN = "LOGIN"
    REGISTER = "REGISTER"
    PROVISION = "PROVISION"
    DEDUP_DELETE = "DEDUP_DELETE"


class AuditEvent(BaseModel):
    """One audit entry: who did what to which record."""

    action: AuditAction
    subject_type: str
    subject_id: str
    actor_id: str
    details: dict[str, Scalar] = Field(default_factory=dict)
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def log_audit_event(
    logger: StructuredLogger,
    action: AuditAction,
    subject_type: str,
    subject_id: str,
    actor_id: str,
    details: Optional[dict[str, Scalar]] = None,
) -> AuditEvent:
    """Validate and log an audit entry; return it.

    Args:
        logger: Destination logger.
        action: What happened.
        subject_type: Kind of record affected (``"Session"``, ``"Profile"``,
            ``"Technician"``).
        subject_id: Key of the affected record, ``"*"`` for bulk actions.
        actor_id: Identity that performed the action, or a job name.
        details: Flat extra context.
    """
    event = AuditEvent(
        action=action,
        subject_type=subject_type,
        subject_id=subject_id,
        actor_id=actor_id,
        details=details or {},
    )
    logger.info(
        "AUDIT: %s",
        json.dumps(event.model_dump(mode="json"), sort_keys=True),
        extra={"event": f"AUDIT_{event.action.value}"},
    )
    return event
