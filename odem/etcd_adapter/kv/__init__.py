"""
Key-value client abstraction for record adapters.

This module provides a pluggable client interface supporting:
- etcd v3 (production, via aetcd)
- In-memory (for testing and local development)

Invariants:
    - Absent keys read as None, failures raise KvError
    - lock() excludes all holders of the same name across the cluster
    - Watches deliver changes of one key in store order

How to change safely:
    - New backends must implement the KeyValueClient protocol
    - Translate backend exceptions into the KvError hierarchy
"""

from .base import (
    KeyValueClient,
    KvConnectionError,
    KvError,
    KvEvent,
    KvEventKind,
    KvTimeoutError,
    KvWatch,
    create_kv_client,
)
from .etcd import EtcdKeyValueClient
from .memory import InMemoryKeyValueClient

__all__ = [
    # Protocol and types
    "KeyValueClient",
    "KvWatch",
    "KvEvent",
    "KvEventKind",
    "KvError",
    "KvConnectionError",
    "KvTimeoutError",
    # Factory
    "create_kv_client",
    # Implementations
    "EtcdKeyValueClient",
    "InMemoryKeyValueClient",
]
