"""
Unit tests for configuration loading.

Tests cover:
- Defaults and environment parsing
- Option mappings merged over defaults
- Validation errors
- Secret redaction
"""

import logging

import pytest

from odem.etcd_adapter.config import (
    DEFAULT_OPTIONS,
    HIDDEN,
    AdapterConfig,
    EtcdConfig,
    KvBackend,
    ObservabilityConfig,
    Settings,
)


class TestEtcdConfig:
    """Tests for EtcdConfig."""

    def test_defaults(self):
        """Defaults target a local etcd."""
        config = EtcdConfig()

        assert config.endpoint == "localhost:2379"
        assert config.password is None
        assert config.lock_ttl == 60

    def test_from_env(self, monkeypatch):
        """Environment variables override defaults."""
        monkeypatch.setenv("ETCD_HOST", "etcd.internal")
        monkeypatch.setenv("ETCD_PORT", "12379")
        monkeypatch.setenv("ETCD_USERNAME", "odem")
        monkeypatch.setenv("ETCD_PASSWORD", "s3cret")
        monkeypatch.setenv("ETCD_TIMEOUT", "2.5")

        config = EtcdConfig.from_env()

        assert config.endpoint == "etcd.internal:12379"
        assert config.username == "odem"
        assert config.password == "s3cret"
        assert config.timeout == 2.5

    def test_from_options_warns_on_unknown(self, caplog):
        """Unsupported options are reported, adapter options are not."""
        with caplog.at_level(logging.WARNING, logger="odem.etcd_adapter.config"):
            config = EtcdConfig.from_options({"host": "h", "prefix": "x", "grpc_options": {}})

        assert config.host == "h"
        assert "grpc_options" in caplog.text
        assert "prefix" not in caplog.text

    @pytest.mark.parametrize(
        "hosts, host, port",
        [
            ("etcd1:12379", "etcd1", 12379),
            ("etcd1", "etcd1", 2379),
            (["http://etcd1:2380", "etcd2:2379"], "etcd1", 2380),
            (("10.0.0.1:2379",), "10.0.0.1", 2379),
        ],
    )
    def test_from_options_hosts(self, hosts, host, port):
        """The first hosts entry selects the endpoint."""
        config = EtcdConfig.from_options({"hosts": hosts})

        assert (config.host, config.port) == (host, port)
        assert config.redacted()["hosts"] == [f"{host}:{port}"]

    def test_explicit_host_wins_over_hosts(self):
        """Flat host/port options take precedence over hosts."""
        config = EtcdConfig.from_options({"hosts": "etcd1:1", "host": "etcd2"})

        assert config.endpoint == "etcd2:1"

    @pytest.mark.parametrize("hosts", ["", [], "etcd1:port"])
    def test_from_options_invalid_hosts(self, hosts):
        """Unusable hosts options are rejected."""
        with pytest.raises(ValueError):
            EtcdConfig.from_options({"hosts": hosts})

    def test_redacted_hides_credentials_without_password(self):
        """Any supplied credentials option is reported as hidden."""
        config = EtcdConfig.from_options({"credentials": {"user": "u"}})

        redacted = config.redacted()

        assert redacted["credentials"] == HIDDEN
        assert redacted["password"] is None
        assert "has_credentials" not in redacted

    def test_from_options_credentials_mapping(self):
        """Nested credentials provide username and password."""
        config = EtcdConfig.from_options({"credentials": {"user": "u", "password": "p"}})

        assert config.username == "u"
        assert config.password == "p"

    def test_redacted_hides_password(self):
        """Redacted options never contain the password."""
        redacted = EtcdConfig(username="u", password="p").redacted()

        assert redacted["password"] == HIDDEN
        assert redacted["credentials"] == HIDDEN
        assert redacted["username"] == "u"

    def test_redacted_without_password(self):
        """Missing secrets are reported as None."""
        redacted = EtcdConfig().redacted()

        assert redacted["password"] is None
        assert redacted["credentials"] is None


class TestAdapterConfig:
    """Tests for AdapterConfig."""

    def test_default_prefix(self):
        """Default scope is hitchy-odem."""
        assert AdapterConfig().prefix == "hitchy-odem"
        assert DEFAULT_OPTIONS["prefix"] == "hitchy-odem"

    def test_from_options_merges_defaults(self):
        """Options override defaults key by key."""
        config = AdapterConfig.from_options({"create_attempts": 3, "host": "ignored"})

        assert config.prefix == "hitchy-odem"
        assert config.create_attempts == 3

    def test_from_env(self, monkeypatch):
        """Environment variables override defaults."""
        monkeypatch.setenv("ODEM_PREFIX", "app")
        monkeypatch.setenv("ODEM_WATCH", "false")
        monkeypatch.setenv("ODEM_CREATE_ATTEMPTS", "7")

        config = AdapterConfig.from_env()

        assert config.prefix == "app"
        assert config.watch is False
        assert config.create_attempts == 7

    @pytest.mark.parametrize(
        "overrides",
        [{"separator": ""}, {"create_attempts": 0}, {"stream_high_water_mark": 0}],
    )
    def test_validate_rejects(self, overrides):
        """Out-of-range settings are rejected."""
        with pytest.raises(ValueError):
            AdapterConfig(**overrides).validate()


class TestSettings:
    """Tests for Settings."""

    def test_from_env_defaults(self, monkeypatch):
        """Without environment the etcd backend is used."""
        for name in ("KV_BACKEND", "ETCD_HOST", "ETCD_PASSWORD", "ETCD_USERNAME", "LOG_FORMAT"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()

        assert settings.kv_backend == KvBackend.ETCD
        assert settings.observability.log_format == "json"

    def test_memory_backend(self, monkeypatch):
        """KV_BACKEND selects the backend."""
        monkeypatch.setenv("KV_BACKEND", "MEMORY")

        assert Settings.from_env().kv_backend == KvBackend.MEMORY

    def test_invalid_backend(self, monkeypatch):
        """Unknown backends are rejected."""
        monkeypatch.setenv("KV_BACKEND", "zookeeper")

        with pytest.raises(ValueError, match="KV_BACKEND"):
            Settings.from_env()

    def test_password_requires_username(self):
        """A password alone is a configuration error."""
        settings = Settings(etcd=EtcdConfig(password="p"))

        with pytest.raises(ValueError, match="ETCD_USERNAME"):
            settings.validate()

    def test_invalid_log_format(self):
        """Only json and text log formats exist."""
        settings = Settings(
            kv_backend=KvBackend.MEMORY,
            observability=ObservabilityConfig(log_format="xml"),
        )

        with pytest.raises(ValueError, match="LOG_FORMAT"):
            settings.validate()

    def test_log_config_redacts(self, caplog):
        """Logged configuration never includes secrets."""
        settings = Settings(etcd=EtcdConfig(username="u", password="s3cret"))

        with caplog.at_level(logging.INFO, logger="odem.etcd_adapter.config"):
            settings.log_config()

        record = caplog.records[-1]
        assert record.etcd["password"] == HIDDEN
        assert "s3cret" not in repr(record.__dict__)
