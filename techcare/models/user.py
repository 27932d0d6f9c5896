"""
User Models.

Pydantic models for everything the session layer knows about the person
signed in: the provider-owned ``Identity`` and ``AuthSession``, the
application ``Profile`` rows, and the composite ``UserView`` the rest of
the client reads.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, field_validator

from techcare.models.enums import UserRole


def _read(source: object, key: str, default: Any = None) -> Any:
    """Attribute-or-key access so provider objects and plain dicts both work."""
    if isinstance(source, Mapping):
        return source.get(key, default)
    return getattr(source, key, default)


class Identity(BaseModel):
    """Minimal authenticated-user record owned by the identity provider."""

    id: str
    email: str = ""
    name: Optional[str] = None
    role: Optional[UserRole] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: object) -> Optional[UserRole]:
        return UserRole.normalize(value)

    @classmethod
    def from_auth_user(cls, user: object) -> "Identity":
        """Build an ``Identity`` from a Supabase ``User`` (or its dict form).

        ``role`` and ``name`` live in ``user_metadata``; older accounts
        stored the display name as ``full_name``.
        """
        metadata: dict[str, Any] = dict(_read(user, "user_metadata") or {})
        return cls(
            id=str(_read(user, "id")),
            email=_read(user, "email") or "",
            name=metadata.get("name") or metadata.get("full_name"),
            role=metadata.get("role"),
            metadata=metadata,
        )

    @property
    def display_name(self) -> str:
        return self.name or self.email


class AuthSession(BaseModel):
    """Live token bundle issued by the identity provider."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    user: Identity

    model_config = {"frozen": True}

    @property
    def subject(self) -> str:
        """Subject identifier (the authenticated user's id)."""
        return self.user.id

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) >= self.expires_at

    @classmethod
    def from_provider_session(cls, session: object) -> "AuthSession":
        """Convert a Supabase ``Session`` into an ``AuthSession``."""
        expires_at_raw = _read(session, "expires_at")
        expires_at: Optional[datetime] = None
        if isinstance(expires_at_raw, (int, float)):
            expires_at = datetime.fromtimestamp(expires_at_raw, tz=timezone.utc)
        elif isinstance(expires_at_raw, datetime):
            expires_at = expires_at_raw
        return cls(
            access_token=_read(session, "access_token"),
            refresh_token=_read(session, "refresh_token"),
            expires_at=expires_at,
            user=Identity.from_auth_user(_read(session, "user")),
        )


class Profile(BaseModel):
    """Row of the ``profiles`` table, keyed by identity id.

    Unknown columns are preserved so consumers can read fields this
    package does not model.
    """

    id: str
    role: Optional[UserRole] = None
    name: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"extra": "allow", "frozen": True}

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: object) -> Optional[UserRole]:
        return UserRole.normalize(value)

    @classmethod
    def minimal_for(cls, identity: Identity) -> "Profile":
        """Synthesise a profile when the store has no row for *identity*."""
        return cls(
            id=identity.id,
            role=identity.role or UserRole.CUSTOMER,
            name=identity.name or identity.email,
            email=identity.email or None,
        )


class CustomerProfile(BaseModel):
    """Row of the ``customers`` table."""

    kind: Literal["customer"] = "customer"
    id: Optional[Union[str, int]] = None
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    favorites: list[Any] = Field(default_factory=list)

    model_config = {"extra": "allow", "frozen": True}

    @field_validator("favorites", mode="before")
    @classmethod
    def _null_as_empty(cls, value: object) -> object:
        return [] if value is None else value


class TechnicianProfile(BaseModel):
    """Row of the ``technicians`` table."""

    kind: Literal["technician"] = "technician"
    id: Optional[Union[str, int]] = None
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    services: list[Any] = Field(default_factory=list)
    rating: Optional[float] = None
    availability: Optional[Any] = None

    model_config = {"extra": "allow", "frozen": True}

    @field_validator("services", mode="before")
    @classmethod
    def _null_as_empty(cls, value: object) -> object:
        return [] if value is None else value


ExtendedProfile = Annotated[
    Union[CustomerProfile, TechnicianProfile],
    Field(discriminator="kind"),
]


class MinimalUserView(BaseModel):
    """User view built from the identity alone (profile not loaded yet)."""

    id: str
    email: str = ""
    name: Optional[str] = None
    role: Optional[UserRole] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def is_fully_loaded(self) -> bool:
        return False

    @classmethod
    def from_identity(
        cls,
        identity: Identity,
        role: Optional[UserRole] = None,
    ) -> "MinimalUserView":
        return cls(
            id=identity.id,
            email=identity.email,
            name=identity.display_name,
            role=role or identity.role or UserRole.CUSTOMER,
            metadata=identity.metadata,
        )

    def as_dict(self) -> dict[str, Any]:
        """Flat mapping with the ``_id`` alias consumers index by."""
        data = self.model_dump(mode="json")
        data["_id"] = self.id
        return data


class FullUserView(MinimalUserView):
    """Identity merged with the base profile and role-specific profile."""

    profile: Profile
    extended_profile: Optional[ExtendedProfile] = None

    @property
    def is_fully_loaded(self) -> bool:
        return True

    @classmethod
    def compose(
        cls,
        identity: Identity,
        profile: Profile,
        extended_profile: Optional[Union[CustomerProfile, TechnicianProfile]],
    ) -> "FullUserView":
        return cls(
            id=identity.id,
            email=identity.email or profile.email or "",
            name=profile.name or identity.display_name,
            role=profile.role or identity.role or UserRole.CUSTOMER,
            metadata=identity.metadata,
            profile=profile,
            extended_profile=extended_profile,
        )

    def as_dict(self) -> dict[str, Any]:
        data = self.profile.model_dump(mode="json")
        data.update(
            id=self.id,
            email=self.email,
            name=self.name,
            role=self.role.value if self.role else None,
            metadata=self.metadata,
            extendedProfile=(
                self.extended_profile.model_dump(mode="json")
                if self.extended_profile is not None
                else None
            ),
        )
        data["_id"] = self.id
        return data


UserView = Union[MinimalUserView, FullUserView]
