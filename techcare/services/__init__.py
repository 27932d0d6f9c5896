"""
Business Logic Services Package.

Services depend on the Repository layer for data access and on the
interfaces in :mod:`techcare.interfaces` for their collaborators.

The ``create_services()`` factory wires every repository and service
together, returning a typed dict the host application consumes without
knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from techcare.config import AppConfig
from techcare.database import DatabaseManager
from techcare.interfaces import INavigator
from techcare.logger import get_logger
from techcare.repositories.profile_repository import ProfileRepository
from techcare.repositories.technician_repository import TechnicianRepository
from techcare.services.identity_provider import SupabaseIdentityProvider
from techcare.services.local_store import EncryptedKeyValueStore
from techcare.services.profile_cache import ProfileCacheService
from techcare.services.provisioning import ProvisioningService
from techcare.services.realtime import RealtimeService
from techcare.services.session_manager import SessionManager
from techcare.services.technician_dedup import TechnicianDedupService


class ServiceContainer(TypedDict):
    """Typed container for all client services."""

    profile_repository: ProfileRepository
    profile_cache: ProfileCacheService
    provisioning_service: ProvisioningService
    identity_provider: SupabaseIdentityProvider
    realtime_service: RealtimeService
    session_manager: SessionManager
    technician_dedup_service: TechnicianDedupService


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    store: EncryptedKeyValueStore,
    navigator: Optional[INavigator] = None,
) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the service layer.  The
    entry-point calls it once, after :meth:`DatabaseManager.open`, and
    then runs ``session_manager.attach()`` and ``initialize()``.

    Args:
        db: DatabaseManager with SQLite ready and the Supabase client opened
            (or offline).
        config: Application configuration.
        store: Encrypted local store shared with the auth client's storage.
        navigator: Optional host hook for route changes.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("techcare.services")
    session_logger = get_logger("techcare.session")

    # ------------------------------------------------------------------
    # 1. Repositories (data-access layer)
    # ------------------------------------------------------------------
    profile_repo = ProfileRepository(db=db, logger=logger)
    technician_repo = TechnicianRepository(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 2. Leaf services
    # ------------------------------------------------------------------
    profile_cache = ProfileCacheService(store=store, config=config, logger=logger)
    provisioning_service = ProvisioningService(repo=profile_repo, logger=logger)
    realtime_service = RealtimeService(db=db, logger=logger)
    technician_dedup_service = TechnicianDedupService(repo=technician_repo, logger=logger)

    identity_provider = SupabaseIdentityProvider(
        db=db,
        provisioning=provisioning_service,
        config=config,
        logger=logger,
    )

    # ------------------------------------------------------------------
    # 3. Session orchestration
    # ------------------------------------------------------------------
    session_manager = SessionManager(
        identity=identity_provider,
        profiles=profile_repo,
        cache=profile_cache,
        realtime=realtime_service,
        config=config,
        logger=session_logger,
        navigator=navigator,
    )

    return ServiceContainer(
        profile_repository=profile_repo,
        profile_cache=profile_cache,
        provisioning_service=provisioning_service,
        identity_provider=identity_provider,
        realtime_service=realtime_service,
        session_manager=session_manager,
        technician_dedup_service=technician_dedup_service,
    )
