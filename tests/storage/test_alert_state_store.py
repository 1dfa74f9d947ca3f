"""Tests for the alert throttle state store."""

from pathlib import Path

import pytest

from balance_watcher.monitor.models import AlertState
from balance_watcher.storage.alert_states import AlertStateStore


@pytest.fixture
def path(tmp_path: Path) -> Path:
    return tmp_path / "alert_states.json"


class TestAlertStateStore:
    """Tests for AlertStateStore."""

    @pytest.mark.asyncio
    async def test_get_or_create_initializes_idle_state(self, path) -> None:
        store = AlertStateStore(path)

        assert await store.get("mainnet", "treasury") is None
        assert await store.get_or_create("mainnet", "treasury") == AlertState()
        assert await store.get("mainnet", "treasury") == AlertState()

    @pytest.mark.asyncio
    async def test_set_and_persist_round_trip(self, path) -> None:
        store = AlertStateStore(path)
        await store.set("mainnet", "treasury", AlertState(last_sent=1000.5, alert_count=2))
        await store.set("base", "hot", AlertState())

        assert await store.persist()

        reloaded = AlertStateStore.load(path)
        assert await reloaded.all() == {
            "mainnet:treasury": AlertState(last_sent=1000.5, alert_count=2),
            "base:hot": AlertState(),
        }

    def test_load_missing_starts_empty(self, path) -> None:
        assert AlertStateStore.load(path).path == path

    @pytest.mark.asyncio
    async def test_load_corrupted_starts_empty(self, path) -> None:
        """Losing throttle history is tolerated."""
        path.write_text("{broken", encoding="utf-8")

        store = AlertStateStore.load(path)

        assert await store.all() == {}

    @pytest.mark.asyncio
    async def test_load_wrong_shape_starts_empty(self, path) -> None:
        path.write_text('{"something_else": []}', encoding="utf-8")

        assert await AlertStateStore.load(path).all() == {}
