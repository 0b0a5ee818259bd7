"""
In-memory key-value client implementation for testing.

This module provides a simple in-memory key-value backend for:
- Unit tests
- Integration tests of code built on record adapters
- Local development without an etcd cluster

Invariants:
    - All data is lost on close() or process exit
    - Watchers see every PUT/DELETE made after they subscribed, in order
    - Named locks exclude each other across all users of this client

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with KeyValueClient protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from .base import (
    KvConnectionError,
    KvEvent,
    KvEventKind,
)

logger = logging.getLogger(__name__)


class InMemoryWatch:
    """Watch over a key prefix of an InMemoryKeyValueClient."""

    def __init__(self, client: InMemoryKeyValueClient, prefix: str) -> None:
        self.prefix = prefix
        self._client = client
        self._queue: asyncio.Queue[KvEvent | None] = asyncio.Queue()
        self._cancelled = False

    def matches(self, key: str) -> bool:
        return not self._cancelled and key.startswith(self.prefix)

    def deliver(self, event: KvEvent | None) -> None:
        self._queue.put_nowait(event)

    def __aiter__(self) -> AsyncIterator[KvEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[KvEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def cancel(self) -> None:
        """Stop the watch; pending iteration ends."""
        if self._cancelled:
            return
        self._cancelled = True
        self._client._watches.discard(self)
        self.deliver(None)


class InMemoryKeyValueClient:
    """In-memory implementation of KeyValueClient for testing.

    Stores raw bytes in a dictionary keyed by full key. Useful for:
    - Unit tests that need store behavior without external dependencies
    - Exercising watch notifications deterministically
    - Simulating store failures via inject_failure()

    Thread safety:
        Intended for use from a single event loop. Named locks are
        asyncio locks, so they serialize coroutines, not threads.

    Example:
        >>> client = InMemoryKeyValueClient()
        >>> await client.connect()
        >>> await client.put("a/1", b"1")
        >>> await client.get_keys("a/")
        ['a/1']
    """

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._watches: set[InMemoryWatch] = set()
        self._revision = 0
        self._connected = False
        self._failure: BaseException | None = None
        self._failure_sticky = False

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryKeyValueClient connected")

    async def close(self) -> None:
        """Close, cancel watches and clear all data."""
        for watch in list(self._watches):
            await watch.cancel()
        self._connected = False
        self._data.clear()
        logger.debug("InMemoryKeyValueClient closed")

    def describe(self) -> dict[str, Any]:
        return {"backend": "memory"}

    async def get(self, key: str) -> bytes | None:
        self._check()
        return self._data.get(key)

    async def put(self, key: str, value: bytes) -> None:
        self._check()
        self._data[key] = bytes(value)
        self._notify(KvEventKind.PUT, key, bytes(value))

    async def delete(self, key: str) -> int:
        self._check()
        if key not in self._data:
            return 0
        del self._data[key]
        self._notify(KvEventKind.DELETE, key)
        return 1

    async def delete_prefix(self, prefix: str) -> int:
        self._check()
        doomed = [key for key in self._data if key.startswith(prefix)]
        for key in doomed:
            del self._data[key]
            self._notify(KvEventKind.DELETE, key)
        return len(doomed)

    async def get_keys(self, prefix: str) -> list[str]:
        self._check()
        return sorted(key for key in self._data if key.startswith(prefix))

    @asynccontextmanager
    async def lock(self, name: str) -> AsyncIterator[None]:
        """Hold the named lock for the duration of the block."""
        self._check()
        async with self._locks[name]:
            yield

    async def watch_prefix(self, prefix: str) -> InMemoryWatch:
        self._check()
        watch = InMemoryWatch(self, prefix)
        self._watches.add(watch)
        return watch

    def _notify(self, kind: KvEventKind, key: str, value: bytes | None = None) -> None:
        self._revision += 1
        event = KvEvent(kind=kind, key=key, value=value, revision=self._revision)
        for watch in list(self._watches):
            if watch.matches(key):
                watch.deliver(event)

    def _check(self) -> None:
        if not self._connected:
            raise KvConnectionError("Not connected")
        if self._failure is not None:
            failure = self._failure
            if not self._failure_sticky:
                self._failure = None
            raise failure

    # Testing helpers

    def inject_failure(self, exception: BaseException, sticky: bool = False) -> None:
        """Make the next operation raise exception.

        Args:
            exception: Exception to raise
            sticky: Keep raising until clear_failure() is called
        """
        self._failure = exception
        self._failure_sticky = sticky

    def clear_failure(self) -> None:
        """Stop raising an injected failure."""
        self._failure = None
        self._failure_sticky = False

    def inject_raw(self, key: str, value: bytes) -> None:
        """Store value bypassing failure injection (testing helper).

        Watchers are notified as for a regular put.
        """
        self._data[key] = value
        self._notify(KvEventKind.PUT, key, value)

    def get_key_count(self, prefix: str = "") -> int:
        """Count stored keys starting with prefix (testing helper)."""
        return sum(1 for key in self._data if key.startswith(prefix))

    def dump(self) -> dict[str, bytes]:
        """Copy of all stored data (testing helper)."""
        return dict(self._data)

    @property
    def watch_count(self) -> int:
        """Number of active watches (testing helper)."""
        return len(self._watches)
