from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from postgrest.exceptions import APIError

from techcare.models.enums import UserRole
from techcare.models.user import CustomerProfile, Profile, TechnicianProfile
from techcare.repositories import ProfileRepository, TechnicianRepository


def _query(data=None, error=None):
    query = MagicMock()
    for method in ("select", "eq", "maybe_single", "update", "upsert", "order", "delete", "in_"):
        getattr(query, method).return_value = query
    query.execute = AsyncMock(
        side_effect=error, return_value=SimpleNamespace(data=data) if error is None else None,
    )
    return query


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def db(client):
    manager = MagicMock()
    manager.supabase = client
    return manager


@pytest.fixture
def repo(db, logger):
    return ProfileRepository(db=db, logger=logger)


class TestProfileReads:
    @pytest.mark.asyncio
    async def test_get_profile(self, repo, client):
        """Should validate the row into a Profile."""
        client.table.return_value = _query({"id": "u1", "role": "user", "name": "Cam"})
        profile = await repo.get_profile("u1")
        assert profile == Profile(id="u1", role=UserRole.CUSTOMER, name="Cam")
        client.table.assert_called_once_with("profiles")
        client.table.return_value.eq.assert_called_once_with("id", "u1")

    @pytest.mark.asyncio
    async def test_not_found_code_is_none(self, repo, client):
        """Should map PGRST116 to None."""
        client.table.return_value = _query(error=APIError({"code": "PGRST116", "message": "0 rows"}))
        assert await repo.get_customer_profile("u2") is None

    @pytest.mark.asyncio
    async def test_empty_response_is_none(self, repo, client):
        """Should map an empty maybe_single response to None."""
        query = _query()
        query.execute = AsyncMock(return_value=None)
        client.table.return_value = query
        assert await repo.get_technician_profile("u1") is None

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, repo, client):
        """Should raise anything that is not 'not found'."""
        client.table.return_value = _query(error=APIError({"code": "42501", "message": "denied"}))
        with pytest.raises(APIError):
            await repo.get_profile("u1")

    @pytest.mark.asyncio
    async def test_role_specific_rows(self, repo, client):
        """Should read role rows by user_id."""
        client.table.return_value = _query({"id": 3, "user_id": "u2", "favorites": None})
        customer = await repo.get_customer_profile("u2")
        assert isinstance(customer, CustomerProfile) and customer.favorites == []
        client.table.return_value.eq.assert_called_once_with("user_id", "u2")

        client.table.return_value = _query({"id": 7, "user_id": "u1", "services": ["screen"]})
        technician = await repo.get_technician_profile("u1")
        assert isinstance(technician, TechnicianProfile)

    @pytest.mark.asyncio
    async def test_email_exists(self, repo, client):
        """Should look up the lowercased email."""
        client.table.return_value = _query({"id": "u1", "email": "a@b.com"})
        assert await repo.email_exists(" A@B.com ") is True
        client.table.return_value.eq.assert_called_once_with("email", "a@b.com")

    @pytest.mark.asyncio
    async def test_admin_has_no_role_record(self, repo, client):
        """Should not query for admin role records."""
        assert await repo.role_record_exists(UserRole.ADMIN, "a1") is False
        client.table.assert_not_called()


class TestProfileWrites:
    @pytest.mark.asyncio
    async def test_update_profile_stamps_updated_at(self, repo, client):
        """Should add updated_at to the written fields."""
        client.table.return_value = _query([{"id": "u1", "name": "New"}])
        profile = await repo.update_profile("u1", {"name": "New"})
        written = client.table.return_value.update.call_args.args[0]
        assert written["name"] == "New" and "updated_at" in written
        assert profile.name == "New"

    @pytest.mark.asyncio
    async def test_update_missing_row(self, repo, client):
        """Should raise LookupError when nothing matched."""
        client.table.return_value = _query([])
        with pytest.raises(LookupError):
            await repo.update_customer_profile("u2", {"address": "x"})

    @pytest.mark.asyncio
    async def test_upsert_technician_record(self, repo, client):
        """Should default the technician phone and upsert on user_id."""
        client.table.return_value = _query([])
        await repo.upsert_role_record(UserRole.TECHNICIAN, "u1", "T@X.com", "Tess")
        client.table.assert_called_once_with("technicians")
        row = client.table.return_value.upsert.call_args.args[0]
        assert row["phone"] == "Not provided"
        assert row["email"] == "t@x.com"
        assert client.table.return_value.upsert.call_args.kwargs == {"on_conflict": "user_id"}


class TestTechnicianRepository:
    @pytest.mark.asyncio
    async def test_list_and_delete(self, db, client, logger):
        """Should list identity columns and delete by id."""
        repo = TechnicianRepository(db=db, logger=logger)
        client.table.return_value = _query([{"id": 1, "user_id": "a"}])
        assert await repo.list_identity_columns() == [{"id": 1, "user_id": "a"}]
        client.table.return_value.order.assert_called_once_with("id")

        assert await repo.delete_ids([2, 3]) == 2
        client.table.return_value.in_.assert_called_once_with("id", [2, 3])
        assert await repo.delete_ids([]) == 0
