from unittest.mock import AsyncMock, MagicMock

import pytest

from techcare.services import technician_dedup
from techcare.services.technician_dedup import TechnicianDedupService


def _rows():
    rows = [{"id": 1, "user_id": "a", "name": "Ann", "email": "ann@x.com"}]
    rows += [{"id": i, "user_id": "a", "name": "Ann", "email": "ann@x.com"} for i in range(2, 6)]
    rows.append({"id": 9, "user_id": "b", "name": "Bob", "email": "bob@x.com"})
    return rows


@pytest.fixture
def repo():
    mock = MagicMock()
    mock.list_identity_columns = AsyncMock(return_value=_rows())
    mock.delete_ids = AsyncMock(side_effect=lambda ids: len(ids))
    return mock


@pytest.fixture
def service(repo, logger):
    return TechnicianDedupService(repo=repo, logger=logger)


class TestTechnicianDedupService:
    @pytest.mark.asyncio
    async def test_check_duplicates(self, service):
        """Should report the duplicated user_id group."""
        groups = await service.check_duplicates()
        assert list(groups) == ["a"]
        assert len(groups["a"]) == 5

    @pytest.mark.asyncio
    async def test_dry_run_deletes_nothing(self, service, repo):
        """Should compute the plan without deleting."""
        plan = await service.fix_duplicates(dry_run=True)
        assert plan.delete == [2, 3, 4, 5]
        repo.delete_ids.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fix_deletes_in_batches(self, service, repo, monkeypatch):
        """Should delete every extra row in fixed-size batches."""
        monkeypatch.setattr(technician_dedup, "DELETE_BATCH_SIZE", 3)
        plan = await service.fix_duplicates()
        assert plan.keep == [1, 9]
        assert [call.args[0] for call in repo.delete_ids.await_args_list] == [[2, 3, 4], [5]]

    @pytest.mark.asyncio
    async def test_nothing_to_fix(self, service, repo):
        """Should not call delete when there are no duplicates."""
        repo.list_identity_columns.return_value = _rows()[-1:]
        plan = await service.fix_duplicates()
        assert plan.delete == []
        repo.delete_ids.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_batch_propagates(self, service, repo):
        """Should stop and raise when a delete fails."""
        repo.delete_ids.side_effect = RuntimeError("permission denied")
        with pytest.raises(RuntimeError):
            await service.fix_duplicates()
