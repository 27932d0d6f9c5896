"""Shared utility functions for the TechCare client.

Convenience re-exports so consumers can import directly from
``techcare.utils`` while full absolute imports remain supported.
"""

from techcare.utils.audit import AuditAction, AuditEvent, log_audit_event
from techcare.utils.dedup import DedupPlan, find_duplicate_keys, plan_user_id_dedup
from techcare.utils.validation import (
    normalize_email,
    validate_email,
    validate_name,
    validate_password,
    validate_password_confirmation,
)

__all__ = [
    "AuditAction",
    "AuditEvent",
    "DedupPlan",
    "find_duplicate_keys",
    "log_audit_event",
    "normalize_email",
    "plan_user_id_dedup",
    "validate_email",
    "validate_name",
    "validate_password",
    "validate_password_confirmation",
]
