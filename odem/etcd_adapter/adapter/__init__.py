"""
Record adapters for the ODEM mapping layer.

An adapter exposes the record storage contract (create, read, write,
remove, has, purge, key streaming, change events) on top of a
KeyValueClient.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import (
    CHANGE_EVENT,
    DELETE_EVENT,
    AdapterError,
    ChangeEvent,
    KeyAllocationError,
    RecordAdapter,
    RecordSerializationError,
    TransactionsNotSupportedError,
    normalize_prefix,
)
from .etcd import EtcdRecordAdapter
from .stream import KeyStream

if TYPE_CHECKING:
    from ..config import Settings


def create_adapter(settings: "Settings") -> EtcdRecordAdapter:
    """Create an unconnected adapter from configuration.

    Args:
        settings: Complete configuration

    Returns:
        EtcdRecordAdapter using the configured key-value backend
    """
    from ..kv import create_kv_client

    return EtcdRecordAdapter(create_kv_client(settings), settings.adapter)


__all__ = [
    "RecordAdapter",
    "EtcdRecordAdapter",
    "KeyStream",
    "ChangeEvent",
    "CHANGE_EVENT",
    "DELETE_EVENT",
    "AdapterError",
    "KeyAllocationError",
    "TransactionsNotSupportedError",
    "RecordSerializationError",
    "normalize_prefix",
    "create_adapter",
]
