"""
Backing streams for the key-value log.

The store only needs sequential reads, sequential writes and absolute seeks.
Every operation is a coroutine so that file I/O can be moved off the event
loop; disk I/O is inherently blocking, so ``FileStream`` runs it on a
thread pool.
"""

import asyncio
import io
import os
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar, Union

from kvlog.core.errors import EndOfStreamError
from kvlog.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class BackingStream(ABC):
    """
    Seekable byte source and sink.

    ``read`` returns fewer bytes than requested only at the end of the
    stream, and ``b""`` once the end has been reached. Any other failure is
    raised as ``OSError``.
    """

    @abstractmethod
    async def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes from the current position."""

    @abstractmethod
    async def write(self, data: bytes) -> int:
        """Write all of ``data`` at the current position."""

    @abstractmethod
    async def seek(self, position: int) -> int:
        """Move to an absolute byte offset and return it."""

    @abstractmethod
    async def tell(self) -> int:
        """Return the current byte offset."""

    async def flush(self) -> None:
        """Push buffered writes to the underlying medium."""

    async def close(self) -> None:
        """Release the underlying resources."""

    async def __aenter__(self) -> "BackingStream":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


async def read_exact(stream: BackingStream, size: int) -> bytes:
    """
    Read exactly ``size`` bytes.

    Args:
        stream: Stream to read from
        size: Number of bytes wanted

    Returns:
        The bytes read

    Raises:
        EndOfStreamError: If the stream ends first
    """
    if size == 0:
        return b""

    chunks = []
    remaining = size
    while remaining > 0:
        chunk = await stream.read(remaining)
        if not chunk:
            raise EndOfStreamError(expected=size, got=size - remaining)
        chunks.append(chunk)
        remaining -= len(chunk)

    return b"".join(chunks)


class FileStream(BackingStream):
    """
    Durable stream over a file on disk.

    The file is created if missing and never truncated. Blocking calls run
    on a thread pool executor; the pool is shut down on ``close`` when the
    stream created it.

    Attributes:
        path: Path to the backing file
        fsync_on_flush: Whether ``flush`` also fsyncs the file
    """

    def __init__(
        self,
        path: Union[str, Path],
        executor: Optional[ThreadPoolExecutor] = None,
        fsync_on_flush: bool = False,
    ):
        """
        Initialize a file stream. Call ``open`` before any I/O.

        Args:
            path: Path to the backing file
            executor: Thread pool for blocking calls (one thread if omitted)
            fsync_on_flush: Whether ``flush`` also fsyncs the file
        """
        self.path = Path(path)
        self.fsync_on_flush = fsync_on_flush

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="kvlog-io",
        )
        self._file: Optional[io.BufferedRandom] = None

    @classmethod
    async def open(
        cls,
        path: Union[str, Path],
        executor: Optional[ThreadPoolExecutor] = None,
        fsync_on_flush: bool = False,
    ) -> "FileStream":
        """
        Open (creating if needed) a file for reading and writing.

        Args:
            path: Path to the backing file
            executor: Thread pool for blocking calls
            fsync_on_flush: Whether ``flush`` also fsyncs the file

        Returns:
            Open stream positioned at offset 0
        """
        stream = cls(path, executor=executor, fsync_on_flush=fsync_on_flush)
        await stream._run(stream._open)
        return stream

    def _open(self) -> None:
        if self._file is not None:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        self._file = os.fdopen(fd, "r+b")

        logger.debug(
            "Opened backing file",
            path=str(self.path),
            size=os.fstat(fd).st_size,
        )

    def _require_file(self) -> io.BufferedRandom:
        if self._file is None:
            raise ValueError(f"File stream is not open: {self.path}")
        return self._file

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    async def read(self, size: int) -> bytes:
        return await self._run(self._require_file().read, size)

    async def write(self, data: bytes) -> int:
        f = self._require_file()

        def _write() -> int:
            view = memoryview(data)
            written = 0
            while written < len(view):
                written += f.write(view[written:])
            return written

        return await self._run(_write)

    async def seek(self, position: int) -> int:
        return await self._run(self._require_file().seek, position, os.SEEK_SET)

    async def tell(self) -> int:
        return await self._run(self._require_file().tell)

    async def flush(self) -> None:
        f = self._require_file()

        def _flush() -> None:
            f.flush()
            if self.fsync_on_flush:
                os.fsync(f.fileno())

        await self._run(_flush)

    async def close(self) -> None:
        if self._file is not None:
            f = self._file
            self._file = None

            def _close() -> None:
                f.flush()
                f.close()

            await self._run(_close)
            logger.debug("Closed backing file", path=str(self.path))

        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def __repr__(self) -> str:
        state = "open" if self._file is not None else "closed"
        return f"FileStream(path={str(self.path)!r}, {state})"


class MemoryNoOpStream(BackingStream):
    """
    Stream that stores nothing.

    Writes are accepted and dropped, reads always report the end of the
    stream, and seeks are no-ops. A store on top of it keeps its data only in
    its in-memory index.
    """

    async def read(self, size: int) -> bytes:
        return b""

    async def write(self, data: bytes) -> int:
        return len(data)

    async def seek(self, position: int) -> int:
        return 0

    async def tell(self) -> int:
        return 0

    def __repr__(self) -> str:
        return "MemoryNoOpStream()"


class BufferStream(BackingStream):
    """
    Stream over an in-memory buffer.

    Unlike ``MemoryNoOpStream`` the written bytes can be read back, so a log
    kept in a buffer can be replayed by a new store.
    """

    def __init__(self, initial: bytes = b""):
        """
        Initialize a buffer stream positioned at offset 0.

        Args:
            initial: Bytes the buffer starts with
        """
        self._buffer = io.BytesIO(initial)

    async def read(self, size: int) -> bytes:
        return self._buffer.read(size)

    async def write(self, data: bytes) -> int:
        return self._buffer.write(data)

    async def seek(self, position: int) -> int:
        return self._buffer.seek(position)

    async def tell(self) -> int:
        return self._buffer.tell()

    def getvalue(self) -> bytes:
        """Return the whole buffer content."""
        return self._buffer.getvalue()

    def __len__(self) -> int:
        return len(self._buffer.getbuffer())

    def __repr__(self) -> str:
        return f"BufferStream(size={len(self)}, position={self._buffer.tell()})"
