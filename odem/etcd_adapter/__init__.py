"""
ODEM etcd adapter.

Persists, reads, enumerates and watches JSON records of the ODEM
object-document mapping layer in an etcd cluster.

Components:
    - adapter: RecordAdapter contract and the etcd-backed implementation
    - kv: key-value client protocol with etcd and in-memory backends
    - config: environment-driven configuration
    - tools: operator CLI
"""

from .adapter import (
    AdapterError,
    ChangeEvent,
    EtcdRecordAdapter,
    KeyAllocationError,
    KeyStream,
    RecordAdapter,
    RecordSerializationError,
    TransactionsNotSupportedError,
    create_adapter,
)
from .config import AdapterConfig, EtcdConfig, KvBackend, Settings
from .kv import InMemoryKeyValueClient, KvConnectionError, KvError

__version__ = "0.1.0"

__all__ = [
    "RecordAdapter",
    "EtcdRecordAdapter",
    "KeyStream",
    "ChangeEvent",
    "create_adapter",
    "AdapterError",
    "KeyAllocationError",
    "TransactionsNotSupportedError",
    "RecordSerializationError",
    "AdapterConfig",
    "EtcdConfig",
    "KvBackend",
    "Settings",
    "InMemoryKeyValueClient",
    "KvError",
    "KvConnectionError",
]
