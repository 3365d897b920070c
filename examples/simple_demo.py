#!/usr/bin/env python3
"""
Simple demo of a kvlog store.

Writes a few values (one large enough to be compressed), reopens the log
and reads them back.
"""

import argparse
import asyncio
import json
import os

from kvlog import Entry, KVStore
from kvlog.utils.logging import configure_logging


async def demo(path: str) -> None:
    print("=" * 60)
    print("kvlog - Simple Store Demo")
    print("=" * 60)

    print(f"\n[1] Opening store at {path}...")
    async with await KVStore.file_backed(path) as store:
        print(f"  Loaded {len(store)} keys")

        print("\n[2] Writing values...")
        await store.set("greeting", Entry(value=b"Hello from kvlog!", mime="text/plain"))
        await store.set(
            "config",
            Entry(value=json.dumps({"retries": 3}).encode("utf-8"), mime="application/json"),
        )
        await store.set("blob", Entry(value=os.urandom(4096), mime="application/octet-stream"))
        print(f"  Stats: {store.stats()}")

    print("\n[3] Reopening and reading back...")
    async with await KVStore.file_backed(path) as store:
        for key in sorted(store.keys()):
            entry = store.get(key)
            print(f"  {key}: {len(entry.value)} bytes, {entry.mime}")

        print(f"  Replayed {store.stats()['records_replayed']} records")


def main():
    parser = argparse.ArgumentParser(description="kvlog store demo")
    parser.add_argument("--data-file", default="./demo.db", help="Log file to use")
    args = parser.parse_args()

    configure_logging(log_level="WARNING", log_format="console")
    asyncio.run(demo(args.data_file))


if __name__ == "__main__":
    main()
