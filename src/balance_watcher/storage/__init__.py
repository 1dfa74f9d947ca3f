"""Persistence layer - durable stores shared by the monitor tasks."""

from balance_watcher.storage.alert_states import ALERT_STATES_FILE, AlertStateStore
from balance_watcher.storage.files import StoreCorruptedError, StoreError
from balance_watcher.storage.locks import ReadWriteLock
from balance_watcher.storage.recipients import CHATS_FILE, Recipient, RecipientRegistry
from balance_watcher.storage.snapshots import BALANCES_FILE, SnapshotStore

__all__ = [
    "ALERT_STATES_FILE",
    "BALANCES_FILE",
    "CHATS_FILE",
    "AlertStateStore",
    "ReadWriteLock",
    "Recipient",
    "RecipientRegistry",
    "SnapshotStore",
    "StoreCorruptedError",
    "StoreError",
]
