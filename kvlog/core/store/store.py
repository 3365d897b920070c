"""
Log-backed key-value store.

The store keeps every current entry in an in-memory index and appends each
write to a backing stream. On open the index is rebuilt by replaying the
whole log; when a key appears more than once the later record wins.
"""

from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

from kvlog.core.errors import EndOfStreamError
from kvlog.core.io.stream import BackingStream, FileStream, MemoryNoOpStream
from kvlog.core.store.compression import should_compress
from kvlog.core.store.format import Entry, decode, encode_compressed, encode_raw
from kvlog.utils.logging import get_logger

logger = get_logger(__name__)


class StoreState(Enum):
    """Lifecycle of a store."""

    LOADING = "loading"
    READY = "ready"


class KVStore:
    """
    Key-value store over an append-only log.

    The store does no locking of its own. Callers must not run two ``set``
    calls on the same store concurrently: a compressed write seeks back to
    patch its frame length, and an interleaved write would land in the
    wrong place.

    Attributes:
        stream: Backing stream owned by the store
        state: Current lifecycle state
    """

    def __init__(self, stream: BackingStream):
        """
        Initialize an empty store in the loading state.

        Use ``open`` to build a store from an existing log.

        Args:
            stream: Backing stream holding the log
        """
        self.stream = stream
        self.state = StoreState.LOADING

        self._entries: Dict[str, Entry] = {}
        self._end_offset = 0

        self._records_replayed = 0
        self._records_appended = 0
        self._compressed_appends = 0

    @classmethod
    async def open(cls, stream: BackingStream) -> "KVStore":
        """
        Build a store by replaying the log in ``stream``.

        Replay stops when the stream ends exactly at a record boundary.

        Args:
            stream: Backing stream holding the log

        Returns:
            Ready store, positioned at the end of the log

        Raises:
            CorruptRecordError: If a record is truncated or cannot be decoded
            OSError: If the stream fails
        """
        store = cls(stream)
        await store._replay()
        return store

    @classmethod
    async def file_backed(
        cls,
        path: Union[str, Path],
        fsync_on_flush: bool = False,
    ) -> "KVStore":
        """
        Open a store persisted in a file, creating the file if needed.

        Args:
            path: Path to the log file
            fsync_on_flush: Whether ``flush`` also fsyncs the file

        Returns:
            Ready store
        """
        stream = await FileStream.open(path, fsync_on_flush=fsync_on_flush)
        try:
            return await cls.open(stream)
        except BaseException:
            await stream.close()
            raise

    @classmethod
    async def in_memory(cls) -> "KVStore":
        """Open a store that persists nothing."""
        return await cls.open(MemoryNoOpStream())

    async def _replay(self) -> None:
        await self.stream.seek(0)

        while True:
            try:
                record = await decode(self.stream)
            except EndOfStreamError:
                logger.debug("Reached end of log", records=self._records_replayed)
                break

            self._entries[record.key] = record.entry
            self._records_replayed += 1

        self._end_offset = await self.stream.tell()
        self.state = StoreState.READY

        logger.info(
            "Loaded store",
            stream=repr(self.stream),
            records=self._records_replayed,
            keys=len(self._entries),
            end_offset=self._end_offset,
        )

    def _require_ready(self) -> None:
        if self.state is not StoreState.READY:
            raise RuntimeError(f"Store is not ready (state: {self.state.value})")

    def get(self, key: str) -> Optional[Entry]:
        """
        Get the current entry for a key.

        Args:
            key: Key to look up

        Returns:
            Entry if the key is present, None otherwise
        """
        self._require_ready()
        return self._entries.get(key)

    async def set(self, key: str, entry: Entry) -> None:
        """
        Store an entry under a key, replacing any previous one.

        The record is appended to the log first; the index only changes once
        the append succeeded. Values over 1024 bytes are written compressed.

        Args:
            key: Key to store under
            entry: Entry to store

        Raises:
            ValueError: If the key, value or MIME type is too long
            OSError: If the append fails; the log may then end in a partial
                record, which makes the next ``open`` fail
        """
        self._require_ready()

        compressed = should_compress(entry.value)
        logger.debug(
            "Setting entry",
            key=key,
            value_length=len(entry.value),
            mime=entry.mime,
            compressed=compressed,
        )

        if compressed:
            written = await encode_compressed(self.stream, key, entry.value, entry.mime)
            self._compressed_appends += 1
        else:
            written = await encode_raw(self.stream, key, entry.value, entry.mime)

        self._entries[key] = entry
        self._end_offset = await self.stream.tell()
        self._records_appended += 1

        logger.debug("Entry set", key=key, record_size=written)

    async def flush(self) -> None:
        """Flush the backing stream."""
        await self.stream.flush()

    async def close(self) -> None:
        """Flush and close the backing stream."""
        await self.stream.flush()
        await self.stream.close()

    def keys(self) -> Iterator[str]:
        """Iterate over the stored keys."""
        return iter(list(self._entries))

    def stats(self) -> Dict[str, int]:
        """
        Get store statistics.

        Returns:
            Dictionary with key count, record counters and the log end offset.
            The end offset is the stream position, which a no-op stream
            always reports as 0.
        """
        return {
            "keys": len(self._entries),
            "records_replayed": self._records_replayed,
            "records_appended": self._records_appended,
            "compressed_appends": self._compressed_appends,
            "end_offset": self._end_offset,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    async def __aenter__(self) -> "KVStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return (
            f"KVStore(stream={self.stream!r}, "
            f"state={self.state.value}, "
            f"keys={len(self._entries)})"
        )
