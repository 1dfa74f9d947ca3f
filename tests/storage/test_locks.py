"""Tests for the async reader/writer lock."""

import asyncio

import pytest

from balance_watcher.storage.locks import ReadWriteLock


class TestReadWriteLock:
    """Tests for ReadWriteLock."""

    @pytest.mark.asyncio
    async def test_readers_share(self) -> None:
        lock = ReadWriteLock()

        async with lock.read(), lock.read():
            assert lock.readers == 2

        assert lock.readers == 0

    @pytest.mark.asyncio
    async def test_writer_excludes_readers(self) -> None:
        lock = ReadWriteLock()
        events: list[str] = []

        async def reader() -> None:
            async with lock.read():
                events.append("read")

        async with lock.write():
            assert lock.write_locked
            task = asyncio.create_task(reader())
            await asyncio.sleep(0)
            events.append("write-done")

        await task
        assert events == ["write-done", "read"]

    @pytest.mark.asyncio
    async def test_waiting_writer_blocks_new_readers(self) -> None:
        lock = ReadWriteLock()
        events: list[str] = []

        async def writer() -> None:
            async with lock.write():
                events.append("write")

        async def late_reader() -> None:
            async with lock.read():
                events.append("late-read")

        async with lock.read():
            writer_task = asyncio.create_task(writer())
            await asyncio.sleep(0)
            reader_task = asyncio.create_task(late_reader())
            await asyncio.sleep(0)
            assert events == []

        await asyncio.gather(writer_task, reader_task)
        assert events == ["write", "late-read"]

    @pytest.mark.asyncio
    async def test_cancelled_writer_releases_readers(self) -> None:
        lock = ReadWriteLock()

        async def writer() -> None:
            async with lock.write():
                pass

        async with lock.read():
            writer_task = asyncio.create_task(writer())
            await asyncio.sleep(0)
            writer_task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await writer_task

            async with lock.read():
                assert lock.readers == 2
