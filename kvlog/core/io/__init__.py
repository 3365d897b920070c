"""Backing streams the store reads its log from and appends to."""

from kvlog.core.io.stream import (
    BackingStream,
    BufferStream,
    FileStream,
    MemoryNoOpStream,
    read_exact,
)

__all__ = [
    "BackingStream",
    "BufferStream",
    "FileStream",
    "MemoryNoOpStream",
    "read_exact",
]
