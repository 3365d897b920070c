"""
Zstandard framing for compressed records.

Compression is streamed straight into the backing stream so the size of a
frame is only known once it has been finalized; decompression works on a
whole frame read into memory.
"""

from typing import Optional

import zstandard as zstd

from kvlog.core.errors import DecompressionError
from kvlog.core.io.stream import BackingStream
from kvlog.utils.logging import get_logger

logger = get_logger(__name__)

COMPRESSION_THRESHOLD = 1024
COMPRESSION_LEVEL = 3


def should_compress(value: bytes) -> bool:
    """
    Decide whether a value is stored compressed.

    Values up to ``COMPRESSION_THRESHOLD`` bytes are written raw.
    """
    return len(value) > COMPRESSION_THRESHOLD


class ZstdFrameWriter:
    """
    Writes one zstd frame into a backing stream.

    Data passed to ``write`` is compressed incrementally and the compressed
    chunks go to the stream as soon as the compressor emits them. ``finish``
    flushes the compressor and writes the frame trailer.

    Attributes:
        bytes_in: Uncompressed bytes accepted so far
        bytes_out: Compressed bytes written to the stream so far
    """

    def __init__(
        self,
        stream: BackingStream,
        level: int = COMPRESSION_LEVEL,
        size: int = -1,
    ):
        """
        Initialize a frame writer.

        Args:
            stream: Stream receiving the compressed frame
            level: zstd compression level
            size: Total uncompressed size if known, stored in the frame header
        """
        self._stream = stream
        self._compressor = zstd.ZstdCompressor(level=level).compressobj(size=size)
        self._finished = False

        self.bytes_in = 0
        self.bytes_out = 0

    async def _emit(self, chunk: bytes) -> None:
        if chunk:
            await self._stream.write(chunk)
            self.bytes_out += len(chunk)

    async def write(self, data: bytes) -> None:
        """
        Compress ``data`` into the frame.

        Raises:
            ValueError: If the frame was already finished
        """
        if self._finished:
            raise ValueError("Cannot write to a finished zstd frame")

        self.bytes_in += len(data)
        await self._emit(self._compressor.compress(data))

    async def finish(self) -> int:
        """
        Finalize the frame.

        Returns:
            Total compressed size of the frame in bytes
        """
        if not self._finished:
            self._finished = True
            await self._emit(self._compressor.flush())

            logger.debug(
                "Finished zstd frame",
                uncompressed_size=self.bytes_in,
                compressed_size=self.bytes_out,
            )

        return self.bytes_out

    async def __aenter__(self) -> "ZstdFrameWriter":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is None:
            await self.finish()


def decompress_frame(frame: bytes, position: Optional[int] = None) -> bytes:
    """
    Decompress a complete zstd frame.

    Args:
        frame: Compressed frame
        position: Offset of the owning record, used in error messages

    Returns:
        Decompressed bytes

    Raises:
        DecompressionError: If the data is not exactly one complete zstd frame
    """
    decompressor = zstd.ZstdDecompressor().decompressobj()
    try:
        data = decompressor.decompress(frame)
    except zstd.ZstdError as e:
        raise DecompressionError(f"Invalid zstd frame: {e}", position) from e

    if not decompressor.eof:
        raise DecompressionError("Incomplete zstd frame", position)
    if decompressor.unused_data:
        raise DecompressionError(
            f"{len(decompressor.unused_data)} bytes follow the zstd frame",
            position,
        )

    return data
