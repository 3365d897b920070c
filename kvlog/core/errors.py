"""
Errors raised by the backing streams, the entry codec and the store.

I/O failures of a backing stream are not wrapped: they surface as the
``OSError`` the stream raised.
"""

from typing import Optional


class KVError(Exception):
    """Base class for store data errors."""
    pass


class EndOfStreamError(KVError, EOFError):
    """
    The backing stream ended before a read could be satisfied.

    Attributes:
        expected: Number of bytes requested
        got: Number of bytes available before the end
    """

    def __init__(self, expected: int, got: int):
        super().__init__(f"End of stream: expected {expected} bytes, got {got}")
        self.expected = expected
        self.got = got


class CorruptRecordError(KVError):
    """
    A record in the log cannot be decoded.

    Attributes:
        position: Byte offset where the record starts, if known
    """

    def __init__(self, message: str, position: Optional[int] = None):
        if position is not None:
            message = f"{message} (record at offset {position})"
        super().__init__(message)
        self.position = position


class TruncatedRecordError(CorruptRecordError):
    """The stream ended in the middle of a record."""
    pass


class InvalidEncodingError(CorruptRecordError):
    """A key or MIME type is not valid UTF-8."""
    pass


class InvalidFlagsError(CorruptRecordError):
    """The flags byte has reserved bits set."""
    pass


class DecompressionError(CorruptRecordError):
    """A compressed frame could not be decompressed."""
    pass
