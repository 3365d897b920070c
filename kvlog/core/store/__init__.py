"""
Key-value store over an append-only log.

This package provides:
- Binary record format with optional zstd compression
- Log replay to rebuild the in-memory index
- Append-only writes with last-write-wins semantics
"""

from kvlog.core.store.format import Entry, Flags, Record, decode, encode_compressed, encode_raw
from kvlog.core.store.store import KVStore, StoreState

__all__ = [
    "Entry",
    "Flags",
    "KVStore",
    "Record",
    "StoreState",
    "decode",
    "encode_compressed",
    "encode_raw",
]
