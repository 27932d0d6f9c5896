"""
Sign-up Provisioning Service.

Creates the application records that go with a new identity: the base
``profiles`` row and the role-specific ``customers`` or ``technicians``
row.

Provisioning strategy:
    - Refuse an e-mail that already has a ``profiles`` row before the
      identity is created.
    - Upsert on the natural key so concurrent registrations converge.
    - A duplicate-key error means another request won the race; it is
      logged and ignored.
    - Admin accounts get no role-specific row.
"""

from __future__ import annotations

from techcare.exceptions import EmailAlreadyRegisteredError, ProvisioningError
from techcare.logger import StructuredLogger
from techcare.models.enums import UserRole
from techcare.repositories.base_repository import is_duplicate_key
from techcare.repositories.profile_repository import ProfileRepository
from techcare.services.base_service import BaseService
from techcare.utils.audit import AuditAction, log_audit_event


class ProvisioningService(BaseService):
    """Writes the profile rows a freshly signed-up identity needs."""

    def __init__(
        self,
        repo: ProfileRepository,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._repo = repo

    async def assert_email_available(self, email: str) -> None:
        """Raise if a ``profiles`` row already uses *email*.

        Raises:
            EmailAlreadyRegisteredError: The e-mail is taken.
            ProvisioningError: The lookup itself failed.
        """
        try:
            taken = await self._repo.email_exists(email)
        except Exception as exc:
            raise ProvisioningError(
                f"Could not check whether {email} is registered: {exc}",
                original_error=exc,
            ) from exc
        if taken:
            raise EmailAlreadyRegisteredError(email)

    async def ensure_provisioned(
        self,
        user_id: str,
        email: str,
        name: str,
        role: UserRole,
    ) -> None:
        """Create or refresh the profile rows for *user_id*.

        Args:
            user_id: Identity id returned by sign-up.
            email: Registration e-mail (stored lowercased).
            name: Display name.
            role: Canonical role chosen at registration.

        Raises:
            ProvisioningError: A write failed for a reason other than a
                duplicate key.
        """
        try:
            await self._repo.upsert_profile(user_id, email, name, role)
        except Exception as exc:
            if not is_duplicate_key(exc):
                raise ProvisioningError(
                    f"Failed to create profile for {email}: {exc}",
                    original_error=exc,
                ) from exc
            self._logger.info("Profile row for %s already exists.", user_id)

        if role in (UserRole.TECHNICIAN, UserRole.CUSTOMER):
            await self._ensure_role_record(user_id, email, name, role)

        log_audit_event(
            logger=self._logger,
            action=AuditAction.PROVISION,
            subject_type="Profile",
            subject_id=user_id,
            actor_id=user_id,
            details={"email": email, "role": str(role)},
        )

    # ------------------------------------------------------------------
    # Private implementation
    # ------------------------------------------------------------------

    async def _ensure_role_record(
        self,
        user_id: str,
        email: str,
        name: str,
        role: UserRole,
    ) -> None:
        try:
            if await self._repo.role_record_exists(role, user_id):
                return
            await self._repo.upsert_role_record(role, user_id, email, name)
        except Exception as exc:
            if is_duplicate_key(exc):
                self._logger.info(
                    "Provisioning: %s record for %s created concurrently.", role, user_id,
                )
                return
            raise ProvisioningError(
                f"Failed to create {role} record for {email}: {exc}",
                original_error=exc,
            ) from exc
