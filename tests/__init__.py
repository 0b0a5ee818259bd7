"""
ODEM etcd adapter test suite.

This package contains:
- unit/: Unit tests (in-memory key-value backend, fake aetcd client)
- integration/: Integration tests (live etcd cluster, ODEM_ETCD_TESTS=1)
"""
