"""Durable store of the latest balance snapshot per (network, alias)."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from balance_watcher.monitor.models import BalanceSnapshot, make_key
from balance_watcher.storage.files import StoreCorruptedError, read_json, write_json_atomic
from balance_watcher.storage.locks import ReadWriteLock

logger = logging.getLogger(__name__)

BALANCES_FILE = "balances.json"


class SnapshotStore:
    """Latest observed snapshot for every monitored address.

    Shared by every network poller, the daily reporter, and the command
    handlers. The mapping is only reachable through this object; every
    access goes through its reader/writer lock and file I/O happens after
    the lock is released.

    Unlike the other stores, a corrupted document is fatal at load time:
    restarting balance history from nothing would silently turn the next
    observation into a new baseline.
    """

    def __init__(
        self,
        path: Path,
        snapshots: dict[str, BalanceSnapshot] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            path: Location of the balances document.
            snapshots: Initial content keyed by ``"{network}:{alias}"``.
        """
        self._path = path
        self._snapshots: dict[str, BalanceSnapshot] = dict(snapshots or {})
        self._lock = ReadWriteLock()
        self._persist_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        """Location of the balances document."""
        return self._path

    @staticmethod
    def make_key(network: str, alias: str) -> str:
        """Build the store key for a (network, alias) pair."""
        return make_key(network, alias)

    @classmethod
    def from_document(cls, path: Path, document: Any) -> SnapshotStore:
        """Build a store from a parsed balances document.

        Raises:
            StoreCorruptedError: If the document does not have the expected shape.
        """
        try:
            raw = document["balances"]
            snapshots = {key: BalanceSnapshot.from_dict(value) for key, value in raw.items()}
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StoreCorruptedError(f"Invalid balances document {path}: {e!r}") from e
        return cls(path, snapshots)

    @classmethod
    def load(cls, path: Path) -> SnapshotStore:
        """Load the store from disk.

        A missing file starts an empty store.

        Raises:
            StoreCorruptedError: If the file exists but cannot be parsed.
        """
        document = read_json(path)
        if document is None:
            logger.info("No balance history at %s, starting fresh", path)
            return cls(path)

        store = cls.from_document(path, document)
        logger.info("Loaded %d balance snapshot(s) from %s", len(store._snapshots), path)
        return store

    def to_document(self) -> dict[str, Any]:
        """Serialize the current content. Callers must hold the read lock."""
        return {
            "balances": {
                key: snapshot.to_dict() for key, snapshot in sorted(self._snapshots.items())
            }
        }

    async def get(self, network: str, alias: str) -> BalanceSnapshot | None:
        """Get the latest snapshot for an address, if any."""
        async with self._lock.read():
            return self._snapshots.get(make_key(network, alias))

    async def put(self, snapshot: BalanceSnapshot) -> None:
        """Insert or replace the snapshot for its (network, alias)."""
        async with self._lock.write():
            self._snapshots[snapshot.key] = snapshot

    async def all(self) -> dict[str, BalanceSnapshot]:
        """Get a copy of every snapshot keyed by store key."""
        async with self._lock.read():
            return dict(self._snapshots)

    async def count(self) -> int:
        """Number of stored snapshots."""
        async with self._lock.read():
            return len(self._snapshots)

    async def persist(self) -> bool:
        """Write the whole store to disk.

        Failures are logged; the in-memory content stays authoritative and
        the next call retries.

        Returns:
            True if the document was written.
        """
        async with self._persist_lock:
            async with self._lock.read():
                document = self.to_document()
            try:
                await asyncio.to_thread(write_json_atomic, self._path, document)
            except OSError as e:
                logger.error("Failed to save balances to %s: %s", self._path, e)
                return False
        logger.debug("Saved %d balance snapshot(s)", len(document["balances"]))
        return True
