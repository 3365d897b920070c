"""
Access layer in front of a KVStore.

The store itself does no locking. ``KVService`` owns the store and holds a
single asyncio lock around every operation, so at most one ``get`` or
``set`` runs at a time and appends never interleave.
"""

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from kvlog.core.errors import CorruptRecordError
from kvlog.core.store import Entry, KVStore
from kvlog.service.mime import accept_header_matches, is_generic_mime
from kvlog.utils.logging import get_logger

logger = get_logger(__name__)


class ServiceError(Exception):
    """Base class for request-level errors."""
    pass


class KeyNotFoundError(ServiceError, KeyError):
    """Raised when a key is not in the store."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Key not found: {self.key!r}"


class NotAcceptableError(ServiceError):
    """Raised when a stored MIME type does not match the Accept header."""

    def __init__(self, key: str, mime: str, accept: str):
        super().__init__(
            f"Mismatched MIME type for {key!r}: stored {mime!r}, accepted {accept!r}"
        )
        self.key = key
        self.mime = mime
        self.accept = accept


class InvalidMimeError(ServiceError):
    """Raised when a value is submitted with a generic MIME type."""
    pass


class KVService:
    """
    Serialized access to a key-value store.

    Attributes:
        store: The wrapped store
    """

    def __init__(self, store: KVStore):
        """
        Initialize the service.

        Args:
            store: Ready store; the service takes ownership of it
        """
        self.store = store
        self._lock = asyncio.Lock()

        self._gets = 0
        self._sets = 0
        self._errors = 0

    @classmethod
    async def open(
        cls,
        path: Union[str, Path],
        fsync_on_flush: bool = False,
    ) -> "KVService":
        """
        Open a service over a file-backed store.

        Args:
            path: Path to the log file
            fsync_on_flush: Whether flushes also fsync the file

        Returns:
            Service ready to take requests
        """
        store = await KVStore.file_backed(path, fsync_on_flush=fsync_on_flush)
        return cls(store)

    async def get_value(self, key: str, accept: Optional[str] = None) -> Entry:
        """
        Fetch the entry for a key.

        Args:
            key: Key to fetch
            accept: Optional Accept header the entry's MIME type must match

        Returns:
            Stored entry

        Raises:
            KeyNotFoundError: If the key is absent
            NotAcceptableError: If the MIME type does not match ``accept``
        """
        async with self._lock:
            self._gets += 1
            entry = self.store.get(key)

        if entry is None:
            raise KeyNotFoundError(key)

        if accept and not accept_header_matches(accept, entry.mime):
            raise NotAcceptableError(key, entry.mime, accept)

        return entry

    async def set_value(self, key: str, value: bytes, mime: str) -> None:
        """
        Store a value with its MIME type.

        Args:
            key: Key to store under
            value: Value bytes
            mime: MIME type of the value

        Raises:
            InvalidMimeError: If ``mime`` is empty or a wildcard
            CorruptRecordError, OSError, ValueError: If the store rejects
                or fails the write
        """
        if is_generic_mime(mime):
            raise InvalidMimeError(f"Generic MIME type not allowed: {mime!r}")

        entry = Entry(value=value, mime=mime)

        async with self._lock:
            try:
                await self.store.set(key, entry)
            except (CorruptRecordError, OSError, ValueError) as e:
                self._errors += 1
                logger.error("Error setting value", key=key, error=str(e))
                raise
            self._sets += 1

    async def keys(self) -> List[str]:
        """Return the stored keys, sorted."""
        async with self._lock:
            return sorted(self.store.keys())

    async def close(self) -> None:
        """Flush and close the underlying store."""
        async with self._lock:
            await self.store.close()

    def get_stats(self) -> Dict[str, Any]:
        """
        Get service and store statistics.

        Returns:
            Dictionary of counters
        """
        return {
            "gets": self._gets,
            "sets": self._sets,
            "errors": self._errors,
            "store": self.store.stats(),
        }

    async def __aenter__(self) -> "KVService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
