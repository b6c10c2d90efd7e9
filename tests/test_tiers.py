from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from form_persistence.errors import StorageUnavailableError
from form_persistence.storage.tiers import InMemoryTier, SQLTier


@pytest.fixture(params=["memory", "sql"])
def tier(request, tmp_path):
    if request.param == "memory":
        return InMemoryTier()
    return SQLTier(f"sqlite:///{tmp_path / 'tiers.db'}")


class TestKeyValueTier:
    @pytest.mark.asyncio
    async def test_set_get_remove(self, tier):
        assert await tier.get_item("a") is None
        await tier.set_item("a", "1")
        await tier.set_item("a", "2")
        assert await tier.get_item("a") == "2"

        await tier.remove_item("a")
        assert await tier.get_item("a") is None
        # Removing twice is fine
        await tier.remove_item("a")

    @pytest.mark.asyncio
    async def test_keys_by_prefix(self, tier):
        await tier.set_item("form_b", "x")
        await tier.set_item("form_a", "x")
        await tier.set_item("other", "x")
        await tier.set_item("form%_literal", "x")
        assert await tier.keys("form_") == ["form_a", "form_b"]
        assert await tier.keys("form%") == ["form%_literal"]
        assert len(await tier.keys()) == 4


class TestSQLTier:
    @pytest.mark.asyncio
    async def test_values_survive_a_new_instance(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'durable.db'}"
        await SQLTier(url).set_item("k", '{"a": 1}')
        assert await SQLTier(url).get_item("k") == '{"a": 1}'

    @pytest.mark.asyncio
    async def test_in_memory_database(self):
        tier = SQLTier("sqlite:///:memory:")
        await tier.set_item("k", "v")
        assert await tier.get_item("k") == "v"

    @pytest.mark.asyncio
    async def test_database_errors_mean_unavailable(self):
        tier = SQLTier("sqlite:///:memory:")
        with patch.object(
            tier, "SessionLocal", side_effect=OperationalError("SELECT", {}, Exception("locked"))
        ):
            with pytest.raises(StorageUnavailableError):
                await tier.get_item("k")
