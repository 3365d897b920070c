"""Tests for the serialized store access layer."""

import asyncio
import os
import tempfile
from pathlib import Path

import pytest

from kvlog.core.io.stream import BufferStream
from kvlog.core.store import Entry, KVStore
from kvlog.service import (
    InvalidMimeError,
    KeyNotFoundError,
    KVService,
    NotAcceptableError,
)


class SlowStream(BufferStream):
    """Buffer stream that yields to the event loop on every call."""

    def __init__(self):
        super().__init__()
        self.active_writers = 0
        self.max_active_writers = 0

    async def write(self, data: bytes) -> int:
        self.active_writers += 1
        self.max_active_writers = max(self.max_active_writers, self.active_writers)
        await asyncio.sleep(0)
        try:
            return await super().write(data)
        finally:
            self.active_writers -= 1

    async def seek(self, position: int) -> int:
        await asyncio.sleep(0)
        return await super().seek(position)

    async def tell(self) -> int:
        await asyncio.sleep(0)
        return await super().tell()


class TestKVService:
    """Test KVService."""

    @pytest.mark.asyncio
    async def test_set_and_get_value(self):
        """Test storing and fetching through the service."""
        service = KVService(await KVStore.open(BufferStream()))

        await service.set_value("greeting", b"hello", "text/plain")
        entry = await service.get_value("greeting")

        assert entry == Entry(value=b"hello", mime="text/plain")

    @pytest.mark.asyncio
    async def test_missing_key(self):
        """Test that fetching an absent key raises KeyNotFoundError."""
        service = KVService(await KVStore.open(BufferStream()))

        with pytest.raises(KeyNotFoundError) as exc_info:
            await service.get_value("missing")

        assert exc_info.value.key == "missing"

    @pytest.mark.asyncio
    async def test_accept_header_checked(self):
        """Test MIME negotiation on fetch."""
        service = KVService(await KVStore.open(BufferStream()))
        await service.set_value("doc", b"{}", "application/json")

        assert (await service.get_value("doc", accept="application/*")).value == b"{}"
        assert (await service.get_value("doc", accept="*/*")).value == b"{}"

        with pytest.raises(NotAcceptableError, match="Mismatched MIME type"):
            await service.get_value("doc", accept="text/html")

    @pytest.mark.asyncio
    async def test_generic_mime_rejected(self):
        """Test that values cannot be stored under a MIME range."""
        stream = BufferStream()
        service = KVService(await KVStore.open(stream))

        with pytest.raises(InvalidMimeError):
            await service.set_value("k", b"v", "*/*")

        assert len(stream) == 0

    @pytest.mark.asyncio
    async def test_concurrent_sets_do_not_interleave(self):
        """Test that concurrent writers are serialized by the service lock."""
        stream = SlowStream()
        service = KVService(await KVStore.open(stream))
        values = {f"key-{i}": os.urandom(2048 if i % 2 else 16) for i in range(10)}

        await asyncio.gather(*(
            service.set_value(key, value, "application/octet-stream")
            for key, value in values.items()
        ))

        assert stream.max_active_writers == 1

        reopened = await KVStore.open(BufferStream(stream.getvalue()))
        for key, value in values.items():
            assert reopened.get(key).value == value

    @pytest.mark.asyncio
    async def test_keys_and_stats(self):
        """Test listing keys and reading counters."""
        service = KVService(await KVStore.open(BufferStream()))
        await service.set_value("b", b"2", "text/plain")
        await service.set_value("a", b"1", "text/plain")
        await service.get_value("a")

        assert await service.keys() == ["a", "b"]

        stats = service.get_stats()
        assert stats["sets"] == 2
        assert stats["gets"] == 1
        assert stats["errors"] == 0
        assert stats["store"]["keys"] == 2

    @pytest.mark.asyncio
    async def test_store_error_counted_and_raised(self):
        """Test that a failed write is counted and re-raised."""
        service = KVService(await KVStore.open(BufferStream()))

        with pytest.raises(ValueError):
            await service.set_value("k" * 70000, b"v", "text/plain")

        assert service.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_open_file_backed(self):
        """Test opening a service over a file and reopening it."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "service.db"

            async with await KVService.open(path) as service:
                await service.set_value("k", b"v" * 3000, "text/plain")

            async with await KVService.open(path) as service:
                entry = await service.get_value("k", accept="text/plain")

            assert entry.value == b"v" * 3000
