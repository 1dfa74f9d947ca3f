"""Durable low-balance alert throttle state per (network, alias)."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from balance_watcher.monitor.models import AlertState, make_key
from balance_watcher.storage.files import StoreError, read_json, write_json_atomic
from balance_watcher.storage.locks import ReadWriteLock

logger = logging.getLogger(__name__)

ALERT_STATES_FILE = "alert_states.json"


class AlertStateStore:
    """Alert throttle history, keyed by ``"{network}:{alias}"``.

    Losing this history only means the next low balance alerts again
    immediately, so an unreadable document falls back to an empty store.
    """

    def __init__(self, path: Path, states: dict[str, AlertState] | None = None) -> None:
        """Initialize the store.

        Args:
            path: Location of the alert state document.
            states: Initial content keyed by store key.
        """
        self._path = path
        self._states: dict[str, AlertState] = dict(states or {})
        self._lock = ReadWriteLock()
        self._persist_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        """Location of the alert state document."""
        return self._path

    @classmethod
    def load(cls, path: Path) -> AlertStateStore:
        """Load the store from disk, starting empty if missing or unreadable."""
        try:
            document = read_json(path)
            if document is None:
                return cls(path)
            states = {
                key: AlertState.from_dict(value)
                for key, value in document["alert_states"].items()
            }
        except (StoreError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("Ignoring unreadable alert state file %s: %s", path, e)
            return cls(path)

        logger.info("Loaded %d alert state(s) from %s", len(states), path)
        return cls(path, states)

    def to_document(self) -> dict[str, Any]:
        """Serialize the current content. Callers must hold the read lock."""
        return {
            "alert_states": {
                key: state.to_dict() for key, state in sorted(self._states.items())
            }
        }

    async def get(self, network: str, alias: str) -> AlertState | None:
        """Get the state of an address, if any."""
        async with self._lock.read():
            return self._states.get(make_key(network, alias))

    async def get_or_create(self, network: str, alias: str) -> AlertState:
        """Get the state of an address, creating an idle state on first use."""
        key = make_key(network, alias)
        async with self._lock.write():
            state = self._states.get(key)
            if state is None:
                state = AlertState()
                self._states[key] = state
            return state

    async def set(self, network: str, alias: str, state: AlertState) -> None:
        """Replace the state of an address."""
        async with self._lock.write():
            self._states[make_key(network, alias)] = state

    async def all(self) -> dict[str, AlertState]:
        """Get a copy of every state keyed by store key."""
        async with self._lock.read():
            return dict(self._states)

    async def persist(self) -> bool:
        """Write the whole store to disk.

        Returns:
            True if the document was written.
        """
        async with self._persist_lock:
            async with self._lock.read():
                document = self.to_document()
            try:
                await asyncio.to_thread(write_json_atomic, self._path, document)
            except OSError as e:
                logger.error("Failed to save alert states to %s: %s", self._path, e)
                return False
        return True
