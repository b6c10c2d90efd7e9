from unittest.mock import AsyncMock

import pytest

from form_persistence.lifecycle import LifecycleMonitor, StorageKeys
from form_persistence.models.enums import StartupKind
from form_persistence.storage.tiers import InMemoryTier


@pytest.fixture
def keys():
    return StorageKeys("signup")


@pytest.fixture
def tiers():
    return InMemoryTier(), InMemoryTier()


class TestStorageKeys:
    def test_key_layout(self):
        keys = StorageKeys("signup", "app_")
        assert keys.data == "app_signup"
        assert keys.session == "app_signup_session"
        assert keys.marker == "app_signup_normal_close"

    def test_default_prefix(self):
        assert StorageKeys("f1").data == "form_persistence_f1"


class TestLifecycleMonitor:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "session_present, marker_set, durable_present, expected",
        [
            (True, False, True, StartupKind.REFRESH),
            (True, True, True, StartupKind.REFRESH),
            (True, False, False, StartupKind.REFRESH),
            (False, False, True, StartupKind.CRASH_RECOVERY),
            (False, True, True, StartupKind.NORMAL_RESTART),
            (False, True, False, StartupKind.NORMAL_RESTART),
            (False, False, False, StartupKind.FRESH),
        ],
    )
    async def test_classification(
        self, keys, tiers, session_present, marker_set, durable_present, expected
    ):
        session, durable = tiers
        if session_present:
            await session.set_item(keys.session, "{}")
        if marker_set:
            await durable.set_item(keys.marker, "true")
        if durable_present:
            await durable.set_item(keys.data, "{}")

        monitor = LifecycleMonitor(keys, session, durable)
        assert await monitor.classify() is expected

    @pytest.mark.asyncio
    async def test_only_the_exact_marker_value_counts(self, keys, tiers):
        session, durable = tiers
        await durable.set_item(keys.data, "{}")
        await durable.set_item(keys.marker, "false")
        monitor = LifecycleMonitor(keys, session, durable)
        assert await monitor.classify() is StartupKind.CRASH_RECOVERY

    @pytest.mark.asyncio
    async def test_mark_closing_writes_session_then_durable(self, keys):
        order = []
        session = AsyncMock()
        durable = AsyncMock()
        session.set_item.side_effect = lambda k, v: order.append(("session", k, v))
        durable.set_item.side_effect = lambda k, v: order.append(("durable", k, v))

        await LifecycleMonitor(keys, session, durable).mark_closing()
        assert order == [
            ("session", keys.marker, "true"),
            ("durable", keys.marker, "true"),
        ]

    @pytest.mark.asyncio
    async def test_interrupted_close_is_a_crash(self, keys, tiers):
        session, durable = tiers
        await durable.set_item(keys.data, "{}")
        failing = AsyncMock()
        failing.set_item.side_effect = OSError("disk gone")

        with pytest.raises(OSError):
            await LifecycleMonitor(keys, session, failing).mark_closing()

        restarted = LifecycleMonitor(keys, InMemoryTier(), durable)
        assert await restarted.classify() is StartupKind.CRASH_RECOVERY

    @pytest.mark.asyncio
    async def test_acknowledge_clears_both_tiers(self, keys, tiers):
        session, durable = tiers
        monitor = LifecycleMonitor(keys, session, durable)
        await monitor.mark_closing()
        assert await monitor.close_marker_set()

        await monitor.acknowledge_restart()
        assert not await monitor.close_marker_set()
        assert await session.get_item(keys.marker) is None
