"""
kvlog - a persistent key-value store backed by a single append-only log.

Each value is stored with its MIME type. Writes are appended to a binary log
(large values zstd compressed) and the in-memory index is rebuilt by
replaying the log on startup.
"""

__version__ = "0.1.0"

from kvlog.core.store import Entry, KVStore, StoreState

__all__ = ["Entry", "KVStore", "StoreState"]
