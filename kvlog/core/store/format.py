"""
Record format for the key-value log.

Each record holds one key and its entry. Records are written back to back
and are self-delimiting; there is no offset index.

Record layout (all integers little-endian):
    Flags (1 byte) - bit 7 set when the body is zstd compressed
    Frame length (4 bytes) - compressed records only
    Body, stored inline or as the content of the zstd frame:
        Key length (2 bytes)
        Key (variable, UTF-8)
        Value length (4 bytes)
        Value (variable)
        MIME length (2 bytes)
        MIME type (variable, UTF-8)
"""

import struct
from dataclasses import dataclass
from enum import IntFlag

from kvlog.core.errors import (
    CorruptRecordError,
    EndOfStreamError,
    InvalidEncodingError,
    InvalidFlagsError,
    TruncatedRecordError,
)
from kvlog.core.io.stream import BackingStream, BufferStream, read_exact
from kvlog.core.store.compression import ZstdFrameWriter, decompress_frame

KEY_LENGTH = struct.Struct("<H")
VALUE_LENGTH = struct.Struct("<I")
MIME_LENGTH = struct.Struct("<H")
FRAME_LENGTH = struct.Struct("<I")

MAX_KEY_LENGTH = 0xFFFF
MAX_VALUE_LENGTH = 0xFFFFFFFF
MAX_MIME_LENGTH = 0xFFFF


class Flags(IntFlag):
    """Per-record flags stored in the first byte."""

    NONE = 0
    ZSTD_COMPRESSED = 0b10000000


RESERVED_FLAGS = 0x7F


@dataclass(frozen=True)
class Entry:
    """
    A value and its MIME type.

    Entries carry no key; they are identified by the key they are stored
    under.
    """

    value: bytes
    mime: str

    def __post_init__(self) -> None:
        """Validate entry fields."""
        if not isinstance(self.value, bytes):
            raise TypeError(f"Value must be bytes, got {type(self.value)}")
        if not isinstance(self.mime, str):
            raise TypeError(f"MIME type must be str, got {type(self.mime)}")


@dataclass(frozen=True)
class Record:
    """
    A key and its entry as stored in the log.

    Attributes:
        key: Record key
        value: Value bytes
        mime: MIME type of the value
        flags: Flags the record was read with
    """

    key: str
    value: bytes
    mime: str
    flags: Flags = Flags.NONE

    @property
    def compressed(self) -> bool:
        return bool(self.flags & Flags.ZSTD_COMPRESSED)

    @property
    def entry(self) -> Entry:
        return Entry(value=self.value, mime=self.mime)


def pack_body(key: str, value: bytes, mime: str) -> bytes:
    """
    Serialize the body shared by raw and compressed records.

    Args:
        key: Record key
        value: Value bytes
        mime: MIME type

    Returns:
        Serialized body

    Raises:
        ValueError: If a field does not fit its length prefix
    """
    key_bytes = key.encode("utf-8")
    mime_bytes = mime.encode("utf-8")

    if len(key_bytes) > MAX_KEY_LENGTH:
        raise ValueError(
            f"Key too long: {len(key_bytes)} bytes, maximum is {MAX_KEY_LENGTH}"
        )
    if len(value) > MAX_VALUE_LENGTH:
        raise ValueError(
            f"Value too long: {len(value)} bytes, maximum is {MAX_VALUE_LENGTH}"
        )
    if len(mime_bytes) > MAX_MIME_LENGTH:
        raise ValueError(
            f"MIME type too long: {len(mime_bytes)} bytes, maximum is {MAX_MIME_LENGTH}"
        )

    return b"".join((
        KEY_LENGTH.pack(len(key_bytes)),
        key_bytes,
        VALUE_LENGTH.pack(len(value)),
        value,
        MIME_LENGTH.pack(len(mime_bytes)),
        mime_bytes,
    ))


async def encode_raw(stream: BackingStream, key: str, value: bytes, mime: str) -> int:
    """
    Append an uncompressed record at the current stream position.

    Returns:
        Number of bytes written
    """
    body = pack_body(key, value, mime)
    await stream.write(bytes([Flags.NONE]) + body)
    return 1 + len(body)


async def encode_compressed(stream: BackingStream, key: str, value: bytes, mime: str) -> int:
    """
    Append a zstd compressed record at the current stream position.

    The frame length is not known until the frame is finalized, so a zero
    placeholder is written first and patched once the frame is complete.
    The stream is left positioned at the end of the frame.

    Returns:
        Number of bytes written
    """
    body = pack_body(key, value, mime)

    await stream.write(bytes([Flags.ZSTD_COMPRESSED]))
    length_position = await stream.tell()
    await stream.write(FRAME_LENGTH.pack(0))
    frame_start = await stream.tell()

    async with ZstdFrameWriter(stream, size=len(body)) as frame:
        await frame.write(body)

    frame_end = await stream.tell()
    await stream.seek(length_position)
    await stream.write(FRAME_LENGTH.pack(frame_end - frame_start))
    await stream.seek(frame_end)

    return 1 + FRAME_LENGTH.size + frame.bytes_out


def _decode_text(data: bytes, field: str, position: int) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidEncodingError(f"Invalid UTF-8 in {field}", position) from e


async def _read_body(stream: BackingStream, position: int) -> tuple[str, bytes, str]:
    (key_length,) = KEY_LENGTH.unpack(await read_exact(stream, KEY_LENGTH.size))
    key = await read_exact(stream, key_length)

    (value_length,) = VALUE_LENGTH.unpack(await read_exact(stream, VALUE_LENGTH.size))
    value = await read_exact(stream, value_length)

    (mime_length,) = MIME_LENGTH.unpack(await read_exact(stream, MIME_LENGTH.size))
    mime = await read_exact(stream, mime_length)

    return (
        _decode_text(key, "key", position),
        value,
        _decode_text(mime, "MIME type", position),
    )


async def decode(stream: BackingStream) -> Record:
    """
    Read the record starting at the current stream position.

    Args:
        stream: Stream positioned at a record boundary

    Returns:
        Decoded record

    Raises:
        EndOfStreamError: If the stream ends before the flags byte
        TruncatedRecordError: If the stream ends inside the record
        CorruptRecordError: If the record cannot be decoded
    """
    position = await stream.tell()
    flags = (await read_exact(stream, 1))[0]

    if flags & RESERVED_FLAGS:
        raise InvalidFlagsError(f"Reserved flag bits set: {flags:#04x}", position)

    try:
        if not flags & Flags.ZSTD_COMPRESSED:
            key, value, mime = await _read_body(stream, position)
            return Record(key=key, value=value, mime=mime, flags=Flags(flags))

        (frame_length,) = FRAME_LENGTH.unpack(await read_exact(stream, FRAME_LENGTH.size))
        frame = await read_exact(stream, frame_length)
    except EndOfStreamError as e:
        raise TruncatedRecordError(f"Record cut short: {e}", position) from e

    body = BufferStream(decompress_frame(frame, position))
    try:
        key, value, mime = await _read_body(body, position)
    except EndOfStreamError as e:
        raise TruncatedRecordError(f"Compressed body cut short: {e}", position) from e

    trailing = len(body) - await body.tell()
    if trailing:
        raise CorruptRecordError(
            f"Compressed body has {trailing} trailing bytes",
            position,
        )

    return Record(key=key, value=value, mime=mime, flags=Flags(flags))
