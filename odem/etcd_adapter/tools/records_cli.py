"""
Records CLI tool for the ODEM etcd adapter.

This tool inspects and modifies records through a RecordAdapter:
- keys: Stream keys, optionally truncated to a depth
- read/write/create/remove: Single record operations
- purge: Drop every record in the adapter's scope
- watch: Print remote changes as they happen

Usage:
    odem-etcd keys --prefix user --max-depth 1
    odem-etcd write user/42 '{"name": "x"}'
    odem-etcd watch --count 10

Invariants:
    - Record values are read and printed as JSON
    - Output of keys/read/watch is line-oriented for piping
"""

from __future__ import annotations

import json
import logging
from typing import Any, TextIO

from ..adapter.base import RecordAdapter

logger = logging.getLogger(__name__)


class RecordsCLI:
    """Command implementations of the records tool.

    Each command prints to the configured output and returns an exit code.

    Example:
        >>> cli = RecordsCLI(adapter, out=sys.stdout)
        >>> await cli.keys(prefix="user", max_depth=1)
        0
    """

    def __init__(self, adapter: RecordAdapter, out: TextIO) -> None:
        self.adapter = adapter
        self.out = out

    def _print(self, text: str) -> None:
        print(text, file=self.out)

    async def keys(self, prefix: str = "", max_depth: int | None = None) -> int:
        """Print keys below prefix, one per line."""
        count = 0
        async with self.adapter.key_stream(prefix=prefix, max_depth=max_depth) as stream:
            async for key in stream:
                self._print(key)
                count += 1
        logger.debug(f"listed {count} key(s)")
        return 0

    async def read(self, key: str) -> int:
        """Print the record at key; exit code 1 if missing."""
        missing = object()
        value = await self.adapter.read(key, if_missing=missing)
        if value is missing:
            self._print(f"no record at {key}")
            return 1
        self._print(json.dumps(value, indent=2, sort_keys=True))
        return 0

    async def write(self, key: str, data: str) -> int:
        await self.adapter.write(key, _parse(data))
        self._print(key)
        return 0

    async def create(self, key_template: str, data: str) -> int:
        key = await self.adapter.create(key_template, _parse(data))
        self._print(key)
        return 0

    async def remove(self, key: str) -> int:
        await self.adapter.remove(key)
        self._print(key)
        return 0

    async def purge(self, confirmed: bool) -> int:
        """Drop all records; refuses to run without confirmation."""
        if not confirmed:
            self._print("refusing to purge without --yes")
            return 1
        await self.adapter.purge()
        self._print("purged")
        return 0

    async def watch(self, count: int | None = None) -> int:
        """Print remote changes as JSON lines.

        Args:
            count: Stop after this many changes (None to run until cancelled)
        """
        seen = 0
        changes = self.adapter.changes()
        try:
            async for change in changes:
                self._print(json.dumps(_describe(change.kind, change.key, change.value)))
                seen += 1
                if count is not None and seen >= count:
                    break
        finally:
            await changes.aclose()
        return 0


def _parse(data: str) -> Any:
    try:
        return json.loads(data)
    except ValueError as e:
        raise ValueError(f"record data is not valid JSON: {e}") from e


def _describe(kind: str, key: str, value: Any) -> dict[str, Any]:
    if kind == "delete":
        return {"event": kind, "key": key}
    return {"event": kind, "key": key, "value": value}
