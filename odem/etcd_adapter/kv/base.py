"""
Base protocol and types for the key-value client abstraction.

This module defines the KeyValueClient protocol that record adapters use
to reach a distributed key-value store, along with the change-feed event
type and the error taxonomy shared by all client implementations.

Invariants:
    - Keys are plain strings, values are raw bytes
    - get() returns None for absent keys, never raises for them
    - Transport failures raise KvConnectionError, never look like absence
    - lock() provides mutual exclusion across all clients of the same store

How to change safely:
    - Protocol changes require updating all implementations
    - Keep error translation at the client boundary
    - Add new methods as optional with default implementations
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    AsyncContextManager,
    AsyncIterator,
    Protocol,
    runtime_checkable,
    TYPE_CHECKING,
)
import logging

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)


class KvError(Exception):
    """Base exception for key-value client operations."""
    pass


class KvConnectionError(KvError):
    """Connection to the key-value store failed or is missing."""
    pass


class KvTimeoutError(KvError):
    """Key-value operation timed out."""
    pass


class KvEventKind(Enum):
    """Kinds of notifications delivered by a watch."""

    PUT = "put"
    DELETE = "delete"


@dataclass(frozen=True)
class KvEvent:
    """A single notification from the store's change feed.

    Attributes:
        kind: Whether the key was written or removed
        key: Full store-side key (including any scope prefix)
        value: New raw value for PUT events, None for DELETE events
        revision: Store revision of the change (0 if unknown)
    """
    kind: KvEventKind
    key: str
    value: bytes | None = None
    revision: int = 0

    def __str__(self) -> str:
        return f"KvEvent({self.kind.value} {self.key}@{self.revision})"


@runtime_checkable
class KvWatch(Protocol):
    """Live subscription on a key prefix.

    Iterating yields KvEvent objects until the watch is cancelled or the
    connection is closed.
    """

    def __aiter__(self) -> AsyncIterator[KvEvent]:
        ...

    async def cancel(self) -> None:
        """Stop delivering events and release server-side resources."""
        ...


@runtime_checkable
class KeyValueClient(Protocol):
    """Protocol for distributed key-value store clients.

    Concurrency contract:
        - A single client is shared by all in-flight operations
        - Only lock() serializes callers; everything else interleaves freely

    Example:
        >>> client = EtcdKeyValueClient(config)
        >>> await client.connect()
        >>> await client.put("hitchy-odem/user/1", b'{"name": "x"}')
        >>> await client.get("hitchy-odem/user/1")
        b'{"name": "x"}'
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the store.

        Raises:
            KvConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection, cancelling any open watches."""
        ...

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Fetch the raw value at key, or None if the key is absent."""
        ...

    @abstractmethod
    async def put(self, key: str, value: bytes) -> None:
        """Write value at key, replacing any existing value."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> int:
        """Delete a single key.

        Returns:
            Number of keys deleted (0 or 1)
        """
        ...

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix.

        An empty prefix addresses the whole keyspace.

        Returns:
            Number of keys deleted
        """
        ...

    @abstractmethod
    async def get_keys(self, prefix: str) -> list[str]:
        """List every key starting with prefix, sorted ascending."""
        ...

    @abstractmethod
    def lock(self, name: str) -> AsyncContextManager[Any]:
        """Return an async context manager holding a store-wide lock on name."""
        ...

    @abstractmethod
    async def watch_prefix(self, prefix: str) -> KvWatch:
        """Subscribe to changes of all keys starting with prefix.

        Raises:
            KvConnectionError: If the subscription cannot be established
        """
        ...

    @abstractmethod
    def describe(self) -> dict[str, Any]:
        """Describe connection options with secrets redacted."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the store."""
        ...


def create_kv_client(settings: "Settings") -> KeyValueClient:
    """Factory function to create a key-value client from configuration.

    Args:
        settings: Complete configuration

    Returns:
        Appropriate KeyValueClient implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import KvBackend
    from .etcd import EtcdKeyValueClient
    from .memory import InMemoryKeyValueClient

    if settings.kv_backend == KvBackend.ETCD:
        return EtcdKeyValueClient(settings.etcd)
    elif settings.kv_backend == KvBackend.MEMORY:
        return InMemoryKeyValueClient()
    else:
        raise ValueError(f"Unsupported key-value backend: {settings.kv_backend}")
