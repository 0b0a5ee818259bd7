"""
Record adapter persisting ODEM records in an etcd cluster.

Records are stored as JSON text at their key, qualified by the adapter's
prefix. New records get keys allocated from a template under a
cluster-wide lock, and remote changes on the adapter's scope are re-emitted
as local "change"/"delete" events.

Invariants:
    - create() never overwrites an existing key
    - remove() also removes every key nested below the removed one
    - Malformed payloads on the change feed never stop the watch
    - A failing watch setup is logged but leaves the adapter usable

How to change safely:
    - Keep scope handling in _qualify()/_dequalify()
    - Test create() concurrency against a real cluster before deploying
    - Never let a watch error propagate into connect()
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from dataclasses import asdict
from typing import Any, AsyncIterator, Mapping

from ..config import DEFAULT_OPTIONS, AdapterConfig, EtcdConfig
from ..ids import create_uuid, fill_key_template
from ..kv.base import KeyValueClient, KvError, KvEvent, KvEventKind, KvWatch
from .base import (
    CHANGE_EVENT,
    DELETE_EVENT,
    KeyAllocationError,
    RecordAdapter,
    RecordSerializationError,
    TransactionsNotSupportedError,
    normalize_prefix,
)
from .stream import KeyStream

logger = logging.getLogger(__name__)


class EtcdRecordAdapter(RecordAdapter):
    """Stores ODEM records in an etcd cluster.

    Initialization order:
        1. __init__ sets config, client, normalized prefix, an empty
           listener registry and empty slots for the watch and the
           options snapshot
        2. connect() opens the client and sets up the watch once
        3. close() cancels the watch and closes the client

    Attributes:
        client: Key-value client shared by all operations
        config: Adapter configuration
        prefix: Normalized scope prefix ("" when unscoped)

    Example:
        >>> adapter = EtcdRecordAdapter.from_options({"host": "etcd"})
        >>> await adapter.connect()
        >>> key = await adapter.create("user/%u", {"name": "x"})
        >>> await adapter.read(key)
        {'name': 'x'}
    """

    supports_binary = False

    def __init__(self, client: KeyValueClient, config: AdapterConfig | None = None) -> None:
        """Initialize the adapter.

        Args:
            client: Key-value client to use, connected or not
            config: Adapter configuration (defaults apply if omitted)
        """
        super().__init__()
        self.config = config or AdapterConfig()
        self.client = client
        self.prefix = normalize_prefix(self.config.prefix, self.config.separator)
        self._watch: KvWatch | None = None
        self._watch_task: asyncio.Task | None = None
        self._options: dict[str, Any] | None = None

    @classmethod
    def from_options(cls, options: Mapping[str, Any] | None = None) -> EtcdRecordAdapter:
        """Create an adapter for an etcd cluster from plain options.

        Options are merged over DEFAULT_OPTIONS. Adapter options (prefix,
        separator, ...) and connection options (host, port, username,
        password, credentials, ...) may be mixed freely.
        """
        from ..kv.etcd import EtcdKeyValueClient

        merged = {**DEFAULT_OPTIONS, **(options or {})}
        return cls(
            EtcdKeyValueClient(EtcdConfig.from_options(merged)),
            AdapterConfig.from_options(merged),
        )

    @property
    def options(self) -> dict[str, Any]:
        """Snapshot of options in use with secrets hidden.

        Computed on first access and cached afterwards.
        """
        if self._options is None:
            snapshot = asdict(self.config)
            snapshot["prefix"] = self.prefix
            snapshot.update(self.client.describe())
            self._options = snapshot
        return dict(self._options)

    @property
    def is_watching(self) -> bool:
        return self._watch_task is not None and not self._watch_task.done()

    # Lifecycle

    async def connect(self) -> None:
        """Connect the client and start watching for remote changes.

        Raises:
            KvConnectionError: If the client cannot connect
        """
        await self.client.connect()

        if self.config.watch and self._watch is None:
            await self._start_watch()

    async def close(self) -> None:
        """Stop watching and close the client."""
        watch, self._watch = self._watch, None
        if watch is not None:
            try:
                await watch.cancel()
            except KvError as e:
                logger.warning(f"Error cancelling watch: {e}")

        task, self._watch_task = self._watch_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self.client.close()

    async def __aenter__(self) -> EtcdRecordAdapter:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # Storage contract

    async def purge(self) -> None:
        deleted = await self.client.delete_prefix(self.prefix)
        logger.debug("Purged records", extra={"prefix": self.prefix, "deleted": deleted})

    async def create(self, key_template: str, data: Any) -> str:
        """Put data in storage at a new unique key.

        Args:
            key_template: Key containing "%u" to be replaced with a UUID
            data: Record to be written

        Returns:
            Unique key of the new record

        Raises:
            RecordSerializationError: If data is not JSON-serializable
            KeyAllocationError: If no free key was found within budget
        """
        payload = self._encode(data)
        attempts = self.config.create_attempts

        async with self.client.lock(self._qualify(key_template)):
            for _ in range(attempts):
                key = fill_key_template(key_template, create_uuid())
                qualified = self._qualify(key)

                if await self.client.get(qualified) is None:
                    logger.debug(f"creating entry at {key} containing {payload!r}")
                    await self.client.put(qualified, payload)
                    return key

                logger.debug(f"key {key} already taken, retrying")

        raise KeyAllocationError(key_template, attempts)

    async def has(self, key: str) -> bool:
        """Check if a record exists at key.

        Raises:
            KvError: If the store could not be asked
        """
        return await self.client.get(self._qualify(key)) is not None

    async def read(self, key: str, *, if_missing: Any = None) -> Any:
        logger.debug(f"fetching entry at {key}")

        raw = await self.client.get(self._qualify(key))
        if raw is None:
            return if_missing

        return self._decode(raw, key)

    async def write(self, key: str, data: Any) -> Any:
        """Write data to key, creating the record if it didn't exist."""
        payload = self._encode(data)
        logger.debug(f"updating entry at {key} with {payload!r}")

        await self.client.put(self._qualify(key), payload)
        return data

    async def remove(self, key: str) -> str:
        """Remove the record at key and all records nested below it."""
        logger.debug(f"removing entry at {key}")

        qualified = self._qualify(key)
        separator = self.config.separator
        await self.client.delete(qualified)
        await self.client.delete_prefix(qualified.rstrip(separator) + separator)
        return key

    def key_stream(
        self,
        *,
        prefix: str | None = "",
        max_depth: int | None = None,
        separator: str | None = "/",
    ) -> KeyStream:
        """Stream unique keys below prefix.

        Args:
            prefix: Stream keys below this prefix only
            max_depth: Truncate keys to this many segments relative to
                prefix (None for unlimited)
            separator: Separator of key segments, None disables depth
                processing

        Returns:
            KeyStream yielding keys as "<prefix>/<relative key>"
        """
        sub = normalize_prefix(prefix, self.config.separator)
        base = self.prefix + sub
        head = sub or self.config.separator
        truncate = separator and max_depth is not None and max_depth < math.inf

        logger.debug(f"streaming keys from {sub or '<root>'}")

        async def produce() -> AsyncIterator[str]:
            raw_keys = await self.client.get_keys(base)
            logger.debug(f"got {len(raw_keys)} raw etcd-side key(s)")

            children: dict[str, None] = {}
            for raw in raw_keys:
                key = raw[len(base):]
                if truncate:
                    key = separator.join(key.split(separator)[: int(max_depth)])
                children[head + key] = None

            logger.debug(f"got {len(children)} unique odem-side key(s)")

            for key in children:
                yield key

        return KeyStream(produce, high_water_mark=self.config.stream_high_water_mark)

    async def begin(self) -> None:
        raise TransactionsNotSupportedError(type(self).__name__, "begin")

    async def roll_back(self) -> None:
        raise TransactionsNotSupportedError(type(self).__name__, "roll_back")

    async def commit(self) -> None:
        raise TransactionsNotSupportedError(type(self).__name__, "commit")

    # Watch

    async def _start_watch(self) -> None:
        try:
            self._watch = await self.client.watch_prefix(self.prefix)
        except KvError as e:
            logger.error(
                f"FATAL: setting up watcher for cluster-side changes of data failed: {e}",
                exc_info=True,
            )
            return

        logger.debug(
            "setting up watcher for remote changes",
            extra={"prefix": self.prefix, "connection": self.client.describe()},
        )
        self._watch_task = asyncio.create_task(self._consume_watch(self._watch))

    async def _consume_watch(self, watch: KvWatch) -> None:
        try:
            async for event in watch:
                self._dispatch(event)
        except KvError as e:
            logger.error(f"etcd error: {e}")
            return
        except Exception as e:
            logger.error(f"watcher for remote changes failed: {e}", exc_info=True)
            return

        logger.debug("watcher for remote changes ended")

    def _dispatch(self, event: KvEvent) -> None:
        key = self._dequalify(event.key)
        if key is None:
            return

        if event.kind == KvEventKind.PUT:
            value = None
            try:
                value = json.loads((event.value or b"").decode("utf-8"))
            except ValueError as e:
                logger.error(f"got change notification with invalid data: {e}")

            logger.debug(f"got remote change notification on {key}")
            self.emit(CHANGE_EVENT, key, value)

        elif event.kind == KvEventKind.DELETE:
            logger.debug(f"got remote removal notification on {key}")
            self.emit(DELETE_EVENT, key)

    # Helpers

    def _qualify(self, key: str) -> str:
        return self.prefix + key

    def _dequalify(self, key: str) -> str | None:
        if not key.startswith(self.prefix):
            return None
        return key[len(self.prefix):]

    @staticmethod
    def _encode(data: Any) -> bytes:
        try:
            return json.dumps(data).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise RecordSerializationError(f"record is not JSON-serializable: {e}") from e

    @staticmethod
    def _decode(raw: bytes, key: str) -> Any:
        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise RecordSerializationError(f"record at {key} is not valid JSON: {e}") from e
