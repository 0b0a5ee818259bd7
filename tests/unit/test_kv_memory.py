"""
Unit tests for in-memory key-value client implementation.

Tests cover:
- Connection lifecycle
- Basic get/put/delete operations
- Prefix listing and deletion
- Named locks
- Watch notifications
- Testing helpers
"""

import asyncio

import pytest

from odem.etcd_adapter.kv.base import KvConnectionError, KvError, KvEventKind
from odem.etcd_adapter.kv.memory import InMemoryKeyValueClient


class TestInMemoryKeyValueClient:
    """Tests for InMemoryKeyValueClient."""

    @pytest.fixture
    def client(self):
        """Create a fresh client."""
        return InMemoryKeyValueClient()

    @pytest.mark.asyncio
    async def test_connect_disconnect(self, client):
        """Test connection lifecycle."""
        assert not client.is_connected

        await client.connect()
        assert client.is_connected

        await client.close()
        assert not client.is_connected

    @pytest.mark.asyncio
    async def test_operations_require_connection(self, client):
        """Operations fail if not connected."""
        with pytest.raises(KvConnectionError):
            await client.get("a")
        with pytest.raises(KvConnectionError):
            await client.put("a", b"1")

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, client):
        """Absent keys read as None."""
        await client.connect()

        assert await client.get("missing") is None

    @pytest.mark.asyncio
    async def test_put_then_get(self, client):
        """Put stores raw bytes."""
        await client.connect()

        await client.put("a", b"value")

        assert await client.get("a") == b"value"

    @pytest.mark.asyncio
    async def test_delete_counts(self, client):
        """Delete reports how many keys it removed."""
        await client.connect()
        await client.put("a", b"1")

        assert await client.delete("a") == 1
        assert await client.delete("a") == 0
        assert await client.get("a") is None

    @pytest.mark.asyncio
    async def test_get_keys_is_sorted_and_prefixed(self, client):
        """Key listing returns sorted keys below prefix only."""
        await client.connect()
        for key in ("p/b", "p/a", "q/a"):
            await client.put(key, b"x")

        assert await client.get_keys("p/") == ["p/a", "p/b"]
        assert await client.get_keys("") == ["p/a", "p/b", "q/a"]

    @pytest.mark.asyncio
    async def test_delete_prefix(self, client):
        """Prefix deletion spares keys outside the prefix."""
        await client.connect()
        for key in ("p/a", "p/b/c", "q/a"):
            await client.put(key, b"x")

        assert await client.delete_prefix("p/") == 2
        assert await client.get_keys("") == ["q/a"]

    @pytest.mark.asyncio
    async def test_lock_excludes_same_name(self, client):
        """Two holders of the same lock never overlap."""
        await client.connect()
        active = 0
        overlaps = 0

        async def hold():
            nonlocal active, overlaps
            async with client.lock("tpl"):
                active += 1
                if active > 1:
                    overlaps += 1
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.gather(*(hold() for _ in range(5)))

        assert overlaps == 0

    @pytest.mark.asyncio
    async def test_watch_receives_put_and_delete(self, client):
        """Watch yields PUT and DELETE events below its prefix."""
        await client.connect()
        watch = await client.watch_prefix("p/")

        await client.put("p/a", b"1")
        await client.put("other", b"2")
        await client.delete("p/a")

        events = []
        async for event in watch:
            events.append(event)
            if len(events) == 2:
                break

        assert [e.kind for e in events] == [KvEventKind.PUT, KvEventKind.DELETE]
        assert events[0].key == "p/a"
        assert events[0].value == b"1"
        assert events[1].value is None
        assert events[1].revision > events[0].revision

    @pytest.mark.asyncio
    async def test_cancel_ends_watch(self, client):
        """Cancelled watch stops iterating."""
        await client.connect()
        watch = await client.watch_prefix("")

        await watch.cancel()

        events = [event async for event in watch]
        assert events == []
        assert client.watch_count == 0

    @pytest.mark.asyncio
    async def test_close_cancels_watches_and_clears(self, client):
        """Close drops data and ends watches."""
        await client.connect()
        await client.watch_prefix("")
        await client.put("a", b"1")

        await client.close()
        await client.connect()

        assert client.watch_count == 0
        assert client.get_key_count() == 0

    @pytest.mark.asyncio
    async def test_inject_failure_once(self, client):
        """Injected failure is raised by the next operation only."""
        await client.connect()
        client.inject_failure(KvError("boom"))

        with pytest.raises(KvError):
            await client.get("a")

        assert await client.get("a") is None

    @pytest.mark.asyncio
    async def test_inject_failure_sticky(self, client):
        """Sticky failure persists until cleared."""
        await client.connect()
        client.inject_failure(KvConnectionError("down"), sticky=True)

        for _ in range(2):
            with pytest.raises(KvConnectionError):
                await client.get_keys("")

        client.clear_failure()
        assert await client.get_keys("") == []

    @pytest.mark.asyncio
    async def test_helpers(self, client):
        """Testing helpers count and dump data."""
        await client.connect()
        await client.put("p/a", b"1")
        client.inject_raw("p/b", b"raw")

        assert client.get_key_count("p/") == 2
        assert client.dump() == {"p/a": b"1", "p/b": b"raw"}
