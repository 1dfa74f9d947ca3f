"""Tests for the recipient registry."""

import json
from pathlib import Path

import pytest

from balance_watcher.alerter.access import AccessPolicy
from balance_watcher.storage.recipients import Recipient, RecipientRegistry

ALICE = Recipient(chat_id=1, user_id=11, username="alice")
BOB = Recipient(chat_id=2, user_id=22, username="bob")
ANON = Recipient(chat_id=3, user_id=33, username="")


@pytest.fixture
def path(tmp_path: Path) -> Path:
    return tmp_path / "telegram_chats.json"


class TestRecipientRegistry:
    """Tests for RecipientRegistry."""

    @pytest.mark.asyncio
    async def test_register_persists_immediately(self, path) -> None:
        registry = RecipientRegistry(path)

        assert await registry.register(ALICE)

        document = json.loads(path.read_text(encoding="utf-8"))
        assert document == {
            "registrations": [{"chat_id": 1, "user_id": 11, "username": "alice"}]
        }

    @pytest.mark.asyncio
    async def test_register_twice(self, path) -> None:
        registry = RecipientRegistry(path)
        await registry.register(ALICE)

        assert not await registry.register(ALICE)
        assert await registry.count() == 1

    @pytest.mark.asyncio
    async def test_unregister(self, path) -> None:
        registry = RecipientRegistry(path, [ALICE])

        assert await registry.unregister(1)
        assert not await registry.unregister(1)
        assert not await registry.is_registered(1)
        assert await RecipientRegistry.load(path).count() == 0

    @pytest.mark.asyncio
    async def test_round_trip(self, path) -> None:
        registry = RecipientRegistry(path)
        await registry.register(BOB)
        await registry.register(ALICE)

        reloaded = RecipientRegistry.load(path)

        assert sorted(await reloaded.recipients(), key=lambda r: r.chat_id) == [ALICE, BOB]

    @pytest.mark.asyncio
    async def test_load_prunes_unauthorized_in_private_mode(self, path) -> None:
        """bob was removed from the allow list while the bot was down."""
        await RecipientRegistry(path, [ALICE, BOB, ANON]).persist()

        registry = RecipientRegistry.load(path, AccessPolicy.private(["alice"]))

        assert await registry.recipients() == [ALICE]
        on_disk = RecipientRegistry.parse_document(json.loads(path.read_text(encoding="utf-8")))
        assert on_disk == [ALICE]

    @pytest.mark.asyncio
    async def test_load_keeps_everyone_in_public_mode(self, path) -> None:
        await RecipientRegistry(path, [ALICE, ANON]).persist()

        registry = RecipientRegistry.load(path, AccessPolicy.public())

        assert await registry.count() == 2

    @pytest.mark.asyncio
    async def test_load_corrupted_starts_empty(self, path) -> None:
        path.write_text("[1, 2", encoding="utf-8")

        assert await RecipientRegistry.load(path).count() == 0

    @pytest.mark.asyncio
    async def test_remove_unauthorized(self, path) -> None:
        registry = RecipientRegistry(path, [ALICE, BOB])

        removed = await registry.remove_unauthorized(AccessPolicy.private(["@Alice"]))

        assert removed == [BOB]
        assert await registry.recipients() == [ALICE]
        assert path.exists()

    @pytest.mark.asyncio
    async def test_remove_unauthorized_public_is_noop(self, path) -> None:
        registry = RecipientRegistry(path, [ANON])

        assert await registry.remove_unauthorized(AccessPolicy.public()) == []
        assert not path.exists()
