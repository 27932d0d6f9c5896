from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from techcare.models.enums import Destination, UserRole
from techcare.models.user import (
    AuthSession,
    CustomerProfile,
    FullUserView,
    Identity,
    MinimalUserView,
    Profile,
    TechnicianProfile,
)


class TestUserRole:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("user", UserRole.CUSTOMER),
            ("customer", UserRole.CUSTOMER),
            (" Technician ", UserRole.TECHNICIAN),
            ("admin", UserRole.ADMIN),
            (UserRole.ADMIN, UserRole.ADMIN),
            ("superuser", None),
            ("", None),
            (None, None),
            (3, None),
        ],
    )
    def test_normalize(self, raw, expected):
        """Should collapse the customer aliases and reject unknown roles."""
        assert UserRole.normalize(raw) is expected

    def test_compares_as_string(self):
        """Should compare equal to its raw value."""
        assert UserRole.TECHNICIAN == "technician"


class TestDestination:
    def test_for_role(self):
        """Should route each role to its landing page."""
        assert Destination.for_role(UserRole.ADMIN) is Destination.ADMIN_DASHBOARD
        assert Destination.for_role(UserRole.TECHNICIAN) is Destination.TECHNICIAN_DASHBOARD
        assert Destination.for_role(UserRole.CUSTOMER) is Destination.CUSTOMER_DASHBOARD
        assert Destination.for_role(None) is Destination.CUSTOMER_DASHBOARD


class TestIdentity:
    def test_from_provider_object(self):
        """Should read id, email and metadata from a provider user object."""
        user = SimpleNamespace(
            id="u1", email="t@x.com", user_metadata={"role": "user", "full_name": "Old Name"},
        )
        identity = Identity.from_auth_user(user)
        assert identity.id == "u1"
        assert identity.role is UserRole.CUSTOMER
        assert identity.name == "Old Name"

    def test_display_name_falls_back_to_email(self):
        """Should display the email when there is no name."""
        identity = Identity.from_auth_user({"id": "u1", "email": "a@b.com"})
        assert identity.display_name == "a@b.com"
        assert identity.role is None

    def test_frozen(self):
        """Should reject mutation."""
        identity = Identity(id="u1")
        with pytest.raises(ValidationError):
            identity.email = "x@y.com"


class TestAuthSession:
    def test_from_provider_session(self):
        """Should convert epoch expiry and the nested user."""
        raw = SimpleNamespace(
            access_token="a",
            refresh_token="r",
            expires_at=1_700_000_000,
            user={"id": "u1", "email": "t@x.com", "user_metadata": {"role": "technician"}},
        )
        session = AuthSession.from_provider_session(raw)
        assert session.subject == "u1"
        assert session.expires_at == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
        assert session.is_expired is True

    def test_without_expiry_never_expires(self):
        """Should treat a missing expiry as live."""
        session = AuthSession(access_token="a", user=Identity(id="u1"))
        assert session.is_expired is False


class TestProfiles:
    def test_profile_keeps_unknown_columns(self):
        """Should preserve columns the model does not declare."""
        profile = Profile.model_validate({"id": "u1", "role": "user", "avatar_url": "a.png"})
        assert profile.role is UserRole.CUSTOMER
        assert profile.model_extra == {"avatar_url": "a.png"}

    def test_null_lists_become_empty(self):
        """Should read SQL NULL list columns as empty lists."""
        customer = CustomerProfile.model_validate({"user_id": "u2", "favorites": None})
        technician = TechnicianProfile.model_validate({"user_id": "u1", "services": None})
        assert customer.favorites == []
        assert technician.services == []

    def test_minimal_for(self):
        """Should default to the customer role and the email as name."""
        profile = Profile.minimal_for(Identity(id="u1", email="a@b.com"))
        assert profile.role is UserRole.CUSTOMER
        assert profile.name == "a@b.com"


class TestUserViews:
    def test_minimal_view(self):
        """Should build an unloaded view from the identity."""
        view = MinimalUserView.from_identity(Identity(id="u1", email="a@b.com", role="technician"))
        assert view.is_fully_loaded is False
        assert view.role is UserRole.TECHNICIAN
        assert view.as_dict()["_id"] == "u1"

    def test_full_view_prefers_profile_fields(self):
        """Should take name and role from the profile row."""
        identity = Identity(id="u1", email="a@b.com", name="Id Name", role="user")
        profile = Profile(id="u1", role="technician", name="Profile Name")
        extended = TechnicianProfile(user_id="u1", services=["screen"])

        view = FullUserView.compose(identity, profile, extended)

        assert view.is_fully_loaded is True
        assert view.name == "Profile Name"
        assert view.role is UserRole.TECHNICIAN
        data = view.as_dict()
        assert data["_id"] == data["id"] == "u1"
        assert data["role"] == "technician"
        assert data["extendedProfile"]["services"] == ["screen"]

    def test_equal_views_compare_equal(self):
        """Should compare by value so unchanged reloads are detectable."""
        identity = Identity(id="u1", role="user")
        profile = Profile(id="u1", role="user", name="Cam")
        first = FullUserView.compose(identity, profile, CustomerProfile(user_id="u1"))
        second = FullUserView.compose(identity, profile, CustomerProfile(user_id="u1"))
        assert first == second
        assert first != MinimalUserView.from_identity(identity)
