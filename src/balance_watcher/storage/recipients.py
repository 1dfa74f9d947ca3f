"""Durable registry of notification recipients."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from balance_watcher.storage.files import StoreError, read_json, write_json_atomic
from balance_watcher.storage.locks import ReadWriteLock

if TYPE_CHECKING:
    from collections.abc import Iterable

    from balance_watcher.alerter.access import AccessPolicy

logger = logging.getLogger(__name__)

CHATS_FILE = "telegram_chats.json"


@dataclass(frozen=True)
class Recipient:
    """A chat registered for alerts.

    Attributes:
        chat_id: Chat to deliver messages to.
        user_id: Id of the user who registered the chat.
        username: Identity checked against the access policy.
    """

    chat_id: int
    user_id: int
    username: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for storage."""
        return {"chat_id": self.chat_id, "user_id": self.user_id, "username": self.username}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Recipient:
        """Deserialize from dictionary."""
        return cls(
            chat_id=int(data["chat_id"]),
            user_id=int(data["user_id"]),
            username=str(data.get("username") or ""),
        )


class RecipientRegistry:
    """Set of chats that receive alerts, keyed by chat id.

    Every registration and removal is written to disk immediately. An
    unreadable document falls back to an empty registry; users opt in
    again with ``/start``.
    """

    def __init__(self, path: Path, recipients: Iterable[Recipient] = ()) -> None:
        """Initialize the registry.

        Args:
            path: Location of the registry document.
            recipients: Initial recipients.
        """
        self._path = path
        self._recipients: dict[int, Recipient] = {r.chat_id: r for r in recipients}
        self._lock = ReadWriteLock()
        self._persist_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        """Location of the registry document."""
        return self._path

    @staticmethod
    def parse_document(document: Any) -> list[Recipient]:
        """Parse a registry document into recipients.

        Raises:
            KeyError, TypeError, ValueError: If the document is malformed.
        """
        return [Recipient.from_dict(item) for item in document["registrations"]]

    @classmethod
    def load(cls, path: Path, policy: AccessPolicy | None = None) -> RecipientRegistry:
        """Load the registry from disk.

        Args:
            path: Location of the registry document.
            policy: When given, recipients it no longer allows are dropped
                and the cleaned registry is written back.

        Returns:
            The loaded registry, empty if the file is missing or unreadable.
        """
        try:
            document = read_json(path)
            recipients = [] if document is None else cls.parse_document(document)
        except (StoreError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("Ignoring unreadable recipient file %s: %s", path, e)
            recipients = []

        if policy is not None and not policy.is_public:
            kept = [r for r in recipients if policy.allows(r.username)]
            dropped = len(recipients) - len(kept)
            if dropped:
                logger.info("Dropped %d recipient(s) no longer authorized", dropped)
                registry = cls(path, kept)
                try:
                    write_json_atomic(path, registry.to_document())
                except OSError as e:
                    logger.error("Failed to save recipients to %s: %s", path, e)
                return registry
            recipients = kept

        if recipients:
            logger.info("Loaded %d recipient(s) from %s", len(recipients), path)
        return cls(path, recipients)

    def to_document(self) -> dict[str, Any]:
        """Serialize the current content. Callers must hold the read lock."""
        return {
            "registrations": [
                recipient.to_dict()
                for _, recipient in sorted(self._recipients.items())
            ]
        }

    async def register(self, recipient: Recipient) -> bool:
        """Add or update a recipient and persist.

        Returns:
            True if the chat was not registered before.
        """
        async with self._lock.write():
            existing = self._recipients.get(recipient.chat_id)
            self._recipients[recipient.chat_id] = recipient

        if existing != recipient:
            await self.persist()
        return existing is None

    async def unregister(self, chat_id: int) -> bool:
        """Remove a recipient and persist.

        Returns:
            True if the chat was registered.
        """
        async with self._lock.write():
            removed = self._recipients.pop(chat_id, None)

        if removed is None:
            return False
        await self.persist()
        return True

    async def remove_unauthorized(self, policy: AccessPolicy) -> list[Recipient]:
        """Drop every recipient the policy no longer allows and persist.

        Returns:
            The removed recipients.
        """
        if policy.is_public:
            return []

        async with self._lock.write():
            removed = [r for r in self._recipients.values() if not policy.allows(r.username)]
            for recipient in removed:
                del self._recipients[recipient.chat_id]

        if removed:
            await self.persist()
        return removed

    async def is_registered(self, chat_id: int) -> bool:
        """Check if a chat is registered."""
        async with self._lock.read():
            return chat_id in self._recipients

    async def recipients(self) -> list[Recipient]:
        """Get a copy of every recipient."""
        async with self._lock.read():
            return list(self._recipients.values())

    async def count(self) -> int:
        """Number of registered recipients."""
        async with self._lock.read():
            return len(self._recipients)

    async def persist(self) -> bool:
        """Write the whole registry to disk.

        Returns:
            True if the document was written.
        """
        async with self._persist_lock:
            async with self._lock.read():
                document = self.to_document()
            try:
                await asyncio.to_thread(write_json_atomic, self._path, document)
            except OSError as e:
                logger.error("Failed to save recipients to %s: %s", self._path, e)
                return False
        return True
