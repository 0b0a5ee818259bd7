"""
etcd key-value client implementation.

This module provides the production key-value backend, talking to an
etcd v3 cluster through the asyncio client of the aetcd library.

Invariants:
    - Keys and values cross the wire as UTF-8 / raw bytes
    - aetcd exceptions never leak: they are translated to KvError types
    - Locks are etcd leases, so a crashed holder releases after lock_ttl
    - Operations before connect() raise KvConnectionError

How to change safely:
    - Test with an actual etcd cluster before deploying
    - Keep error translation in _translate_errors()
    - Watch cancellation must stay idempotent, close() relies on it
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncIterator, Iterator

import aetcd
from aetcd.exceptions import (
    ClientError,
    ConnectionFailedError,
    ConnectionTimeoutError,
)
from aetcd.rtypes import EventKind

from .base import (
    KvConnectionError,
    KvError,
    KvEvent,
    KvEventKind,
    KvTimeoutError,
)

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    """Map aetcd exceptions raised inside the block onto KvError types."""
    try:
        yield
    except ConnectionTimeoutError as e:
        raise KvTimeoutError(f"etcd {action} timed out: {e}") from e
    except ConnectionFailedError as e:
        raise KvConnectionError(f"etcd connection lost during {action}: {e}") from e
    except ClientError as e:
        raise KvError(f"etcd {action} failed: {e}") from e


class EtcdWatch:
    """Adapts an aetcd watch to the KvWatch protocol."""

    def __init__(self, watch: Any, prefix: str) -> None:
        self.prefix = prefix
        self._watch = watch
        self._cancelled = False

    def __aiter__(self) -> AsyncIterator[KvEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[KvEvent]:
        with _translate_errors("watch"):
            async for event in self._watch:
                if event.kind == EventKind.PUT:
                    kind = KvEventKind.PUT
                    value = event.kv.value
                elif event.kind == EventKind.DELETE:
                    kind = KvEventKind.DELETE
                    value = None
                else:
                    continue

                try:
                    key = event.kv.key.decode("utf-8")
                except UnicodeDecodeError as e:
                    logger.error(f"Skipping watch event with undecodable key {event.kv.key!r}: {e}")
                    continue

                yield KvEvent(
                    kind=kind,
                    key=key,
                    value=value,
                    revision=event.kv.mod_revision,
                )

    async def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        with _translate_errors("watch cancel"):
            await self._watch.cancel()


class EtcdKeyValueClient:
    """etcd implementation of KeyValueClient protocol.

    Uses aetcd for async access to the etcd v3 gRPC API.

    Attributes:
        config: EtcdConfig with connection settings

    Example:
        >>> config = EtcdConfig(host="localhost", port=2379)
        >>> client = EtcdKeyValueClient(config)
        >>> await client.connect()
        >>> await client.put("hitchy-odem/user/1", b"{}")
    """

    def __init__(self, config: Any) -> None:
        """Initialize etcd client.

        Args:
            config: EtcdConfig instance with connection settings
        """
        self.config = config
        self._client: aetcd.Client | None = None
        self._watches: set[EtcdWatch] = set()

    @property
    def is_connected(self) -> bool:
        """Whether connected to etcd."""
        return self._client is not None

    def describe(self) -> dict[str, Any]:
        return self.config.redacted()

    async def connect(self) -> None:
        """Connect to the etcd cluster.

        Raises:
            KvConnectionError: If connection fails
        """
        if self._client is not None:
            return

        client = aetcd.Client(
            host=self.config.host,
            port=self.config.port,
            username=self.config.username,
            password=self.config.password,
            timeout=self.config.timeout,
        )

        try:
            await client.connect()
        except ClientError as e:
            raise KvConnectionError(
                f"Failed to connect to etcd at {self.config.endpoint}: {e}"
            ) from e

        self._client = client
        logger.info(
            "Connected to etcd",
            extra={"endpoint": self.config.endpoint, "username": self.config.username},
        )

    async def close(self) -> None:
        """Cancel open watches and close the connection."""
        for watch in list(self._watches):
            try:
                await watch.cancel()
            except KvError as e:
                logger.warning(f"Error cancelling watch on {watch.prefix!r}: {e}")
        self._watches.clear()

        if self._client is not None:
            try:
                await self._client.close()
            except ClientError as e:
                logger.warning(f"Error closing etcd client: {e}")
            self._client = None

        logger.info("etcd connection closed")

    async def get(self, key: str) -> bytes | None:
        client = self._require_client()
        with _translate_errors("get"):
            result = await client.get(key.encode("utf-8"))
        return None if result is None else result.value

    async def put(self, key: str, value: bytes) -> None:
        client = self._require_client()
        with _translate_errors("put"):
            await client.put(key.encode("utf-8"), value)

    async def delete(self, key: str) -> int:
        client = self._require_client()
        with _translate_errors("delete"):
            result = await client.delete(key.encode("utf-8"))
        return 0 if result is None else result.deleted

    async def delete_prefix(self, prefix: str) -> int:
        client = self._require_client()
        with _translate_errors("delete_prefix"):
            if prefix:
                result = await client.delete_prefix(prefix.encode("utf-8"))
            else:
                # "\0" as both key and range end selects every key in the cluster
                result = await client.delete_range(b"\0", b"\0")
        return result.deleted

    async def get_keys(self, prefix: str) -> list[str]:
        client = self._require_client()
        with _translate_errors("get_keys"):
            if prefix:
                result = await client.get_prefix(prefix.encode("utf-8"), keys_only=True)
            else:
                result = await client.get_all(keys_only=True)
        return [kv.key.decode("utf-8") for kv in result]

    @asynccontextmanager
    async def lock(self, name: str) -> AsyncIterator[None]:
        """Hold an etcd lock on name for the duration of the block."""
        client = self._require_client()
        lock = client.lock(name.encode("utf-8"), ttl=self.config.lock_ttl)

        with _translate_errors("lock acquire"):
            acquired = await lock.acquire(timeout=self.config.lock_timeout)
        if not acquired:
            raise KvTimeoutError(
                f"Could not acquire etcd lock {name!r} within {self.config.lock_timeout}s"
            )

        logger.debug("Acquired etcd lock", extra={"lock": name})
        try:
            yield
        finally:
            try:
                await lock.release()
            except ClientError as e:
                # the lease expires after lock_ttl anyway
                logger.warning(f"Failed to release etcd lock {name!r}: {e}")
            else:
                logger.debug("Released etcd lock", extra={"lock": name})

    async def watch_prefix(self, prefix: str) -> EtcdWatch:
        client = self._require_client()
        with _translate_errors("watch"):
            if prefix:
                raw = await client.watch_prefix(prefix.encode("utf-8"))
            else:
                # "\0" as both key and range end selects every key in the cluster
                raw = await client.watch(b"\0", range_end=b"\0")

        watch = EtcdWatch(raw, prefix)
        self._watches.add(watch)
        return watch

    def _require_client(self) -> aetcd.Client:
        if self._client is None:
            raise KvConnectionError("Not connected to etcd")
        return self._client
