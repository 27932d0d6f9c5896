"""
Repository Layer Package.

Provides data-access abstractions over the Supabase tables the client
reads and writes.  Services never build PostgREST queries themselves.

Usage:
    from techcare.repositories.profile_repository import ProfileRepository
    from techcare.repositories.technician_repository import TechnicianRepository
"""

from techcare.repositories.base_repository import BaseRepository
from techcare.repositories.profile_repository import ProfileRepository
from techcare.repositories.technician_repository import TechnicianRepository

__all__ = [
    "BaseRepository",
    "ProfileRepository",
    "TechnicianRepository",
]
