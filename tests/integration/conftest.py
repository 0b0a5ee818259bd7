"""
Integration test fixtures for the etcd backend.

These tests require a reachable etcd cluster (ETCD_HOST/ETCD_PORT,
defaulting to localhost:2379), e.g.:

    docker run -d -p 2379:2379 quay.io/coreos/etcd:v3.5.9 \
        etcd --advertise-client-urls http://0.0.0.0:2379 \
             --listen-client-urls http://0.0.0.0:2379
"""

import uuid

import pytest
import pytest_asyncio

from odem.etcd_adapter.adapter.etcd import EtcdRecordAdapter
from odem.etcd_adapter.config import AdapterConfig, EtcdConfig
from odem.etcd_adapter.kv.etcd import EtcdKeyValueClient

@pytest.fixture
def scope() -> str:
    """Unique key prefix isolating one test from others."""
    return f"odem-test-{uuid.uuid4().hex[:12]}"


@pytest_asyncio.fixture
async def etcd_client():
    """Connected etcd client."""
    client = EtcdKeyValueClient(EtcdConfig.from_env())
    await client.connect()
    yield client
    await client.close()


@pytest_asyncio.fixture
async def etcd_adapter(scope):
    """Connected, watching adapter scoped to a unique prefix.

    Purges its scope on teardown.
    """
    adapter = EtcdRecordAdapter(
        EtcdKeyValueClient(EtcdConfig.from_env()),
        AdapterConfig(prefix=scope),
    )
    await adapter.connect()
    yield adapter
    await adapter.purge()
    await adapter.close()
