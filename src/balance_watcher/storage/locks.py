"""Async reader/writer lock for the shared stores."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class ReadWriteLock:
    """Reader/writer lock for asyncio tasks.

    Any number of readers may hold the lock together; a writer holds it
    alone. Waiting writers block new readers so writers are not starved.

    Example:
        ```python
        lock = ReadWriteLock()

        async with lock.read():
            value = data.get(key)

        async with lock.write():
            data[key] = value
        ```
    """

    def __init__(self) -> None:
        self._condition = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @property
    def readers(self) -> int:
        """Number of tasks currently holding the read lock."""
        return self._readers

    @property
    def write_locked(self) -> bool:
        """Return True while a writer holds the lock."""
        return self._writer

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        """Hold the lock for reading."""
        async with self._condition:
            await self._condition.wait_for(
                lambda: not self._writer and self._writers_waiting == 0
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        """Hold the lock exclusively."""
        async with self._condition:
            self._writers_waiting += 1
            try:
                await self._condition.wait_for(lambda: not self._writer and self._readers == 0)
            except BaseException:
                # Readers held back by this writer must be released
                self._writers_waiting -= 1
                self._condition.notify_all()
                raise
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._condition:
                self._writer = False
                self._condition.notify_all()
