"""
Base contract and shared types for record adapters.

A record adapter translates the storage contract expected by the ODEM
mapping layer (create/read/write/remove records, enumerate keys, observe
remote changes) into calls against one specific backing store.

Invariants:
    - Every key handed to a store is scope-qualified, every key handed
      back is de-qualified
    - Listeners may be attached at any time; the adapter is never frozen
    - A failing listener never stops delivery to other listeners

How to change safely:
    - Contract changes require updating all adapters
    - Keep prefix normalization in normalize_prefix() only
    - Add new events to ADAPTER_EVENTS before emitting them
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable

if TYPE_CHECKING:
    from .stream import KeyStream

logger = logging.getLogger(__name__)

CHANGE_EVENT = "change"
DELETE_EVENT = "delete"
ADAPTER_EVENTS = (CHANGE_EVENT, DELETE_EVENT)


class AdapterError(Exception):
    """Base exception for record adapter operations."""
    pass


class KeyAllocationError(AdapterError):
    """No free key could be allocated for a new record."""

    def __init__(self, key_template: str, attempts: int) -> None:
        super().__init__(
            f"could not find available UUID for {key_template!r} "
            f"after {attempts} attempts"
        )
        self.key_template = key_template
        self.attempts = attempts


class TransactionsNotSupportedError(AdapterError):
    """The adapter's backend does not support transactions."""

    def __init__(self, adapter: str, operation: str) -> None:
        super().__init__(f"{adapter} does not support transactions ({operation})")
        self.adapter = adapter
        self.operation = operation


class RecordSerializationError(AdapterError):
    """Record data could not be converted to or from JSON."""
    pass


@dataclass(frozen=True)
class ChangeEvent:
    """A remote change observed on the adapter's scope.

    Attributes:
        kind: "change" for upserts, "delete" for removals
        key: De-scoped record key
        value: Parsed new value for upserts (None if unparsable or deleted)
    """
    kind: str
    key: str
    value: Any = None


def normalize_prefix(prefix: str | None, separator: str = "/") -> str:
    """Normalize a key prefix.

    Blank prefixes disable scoping. Others lose surrounding whitespace and
    trailing separators and gain exactly one trailing separator.

    >>> normalize_prefix("hitchy-odem//")
    'hitchy-odem/'
    >>> normalize_prefix(None)
    ''
    """
    if prefix is None:
        return ""
    stripped = str(prefix).strip().rstrip(separator)
    return stripped + separator if stripped else ""


Listener = Callable[..., Any]


def _check_event(event: str) -> None:
    if event not in ADAPTER_EVENTS:
        raise ValueError(f"unknown adapter event {event!r}, expected one of {ADAPTER_EVENTS}")


class RecordAdapter(ABC):
    """Abstract record adapter.

    Subclasses implement the storage contract; this class provides the
    event listener registry used to publish remote changes.

    Events:
        "change": listener(key, value) on remote upserts
        "delete": listener(key) on remote removals
    """

    supports_binary: bool = False

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    # Events

    def on(self, event: str, listener: Listener) -> Listener:
        """Register listener for event; returns listener for later off().

        Raises:
            ValueError: If event is not one of ADAPTER_EVENTS
        """
        _check_event(event)
        self._listeners[event].append(listener)
        return listener

    def off(self, event: str, listener: Listener) -> None:
        """Unregister listener; unknown listeners are ignored."""
        try:
            self._listeners[event].remove(listener)
        except ValueError:
            pass

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> int:
        """Call listeners of event in registration order.

        Returns:
            Number of listeners called
        """
        _check_event(event)
        listeners = list(self._listeners.get(event, ()))
        for listener in listeners:
            try:
                listener(*args)
            except Exception as e:
                logger.error(f"Listener for {event!r} failed: {e}", exc_info=True)
        return len(listeners)

    async def changes(self) -> AsyncIterator[ChangeEvent]:
        """Iterate over remote changes as ChangeEvent objects.

        Listeners are registered when iteration starts and removed when
        the iterator is closed.

        Example:
            >>> async for change in adapter.changes():
            ...     print(change.kind, change.key)
        """
        queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()

        def on_change(key: str, value: Any = None) -> None:
            queue.put_nowait(ChangeEvent(CHANGE_EVENT, key, value))

        def on_delete(key: str) -> None:
            queue.put_nowait(ChangeEvent(DELETE_EVENT, key))

        self.on(CHANGE_EVENT, on_change)
        self.on(DELETE_EVENT, on_delete)
        try:
            while True:
                yield await queue.get()
        finally:
            self.off(CHANGE_EVENT, on_change)
            self.off(DELETE_EVENT, on_delete)

    # Storage contract

    @abstractmethod
    async def purge(self) -> None:
        """Drop all data available via this adapter.

        Meant for tests and similar reset situations.
        """

    @abstractmethod
    async def create(self, key_template: str, data: Any) -> str:
        """Store data under a new unique key derived from key_template.

        Args:
            key_template: Key containing "%u" to be replaced by a UUID
            data: Record to be written

        Returns:
            The allocated key
        """

    @abstractmethod
    async def has(self, key: str) -> bool:
        """Check whether a record exists at key."""

    @abstractmethod
    async def read(self, key: str, *, if_missing: Any = None) -> Any:
        """Read the record at key, returning if_missing when absent."""

    @abstractmethod
    async def write(self, key: str, data: Any) -> Any:
        """Write data at key, creating the record if necessary.

        Returns:
            The written data
        """

    @abstractmethod
    async def remove(self, key: str) -> str:
        """Remove the record at key including all subordinated keys.

        Returns:
            The removed key
        """

    @abstractmethod
    def key_stream(
        self,
        *,
        prefix: str | None = "",
        max_depth: int | None = None,
        separator: str | None = "/",
    ) -> KeyStream:
        """Stream keys below prefix, truncated to max_depth segments."""

    @abstractmethod
    async def begin(self) -> None:
        """Start a transaction."""

    @abstractmethod
    async def roll_back(self) -> None:
        """Revert the current transaction."""

    @abstractmethod
    async def commit(self) -> None:
        """Commit the current transaction."""

    @staticmethod
    def key_to_path(key: str) -> str:
        """Map a key to the relative path addressing it in the backend.

        File-based backends may split long IDs into several segments here.
        """
        return key

    @staticmethod
    def path_to_key(path: str) -> str:
        """Reverse key_to_path()."""
        return path
