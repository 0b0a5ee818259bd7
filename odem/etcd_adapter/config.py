"""
Configuration management for the ODEM etcd adapter.

Configuration is done via environment variables or, for embedding code,
via plain option mappings merged over defaults. This module provides typed
configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Secrets are never logged or exposed in option snapshots
    - The default key prefix is "hitchy-odem"

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep from_env() and from_options() in sync for every field
    - Never add a secret without adding it to redacted()
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Mapping

logger = logging.getLogger(__name__)

HIDDEN = "provided, but hidden"

DEFAULT_OPTIONS: dict[str, Any] = {
    "prefix": "hitchy-odem",
}


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _pick(cls: type, options: Mapping[str, Any]) -> dict[str, Any]:
    """Select the entries of options naming fields of dataclass cls."""
    names = {f.name for f in fields(cls)}
    return {name: value for name, value in options.items() if name in names}


def _parse_endpoint(hosts: Any) -> tuple[str, int | None]:
    """Split the first entry of a hosts option into host and port.

    Accepts "host", "host:port" or "http://host:port", alone or in a list.
    aetcd talks to a single endpoint, so further entries are ignored.
    """
    entries = [hosts] if isinstance(hosts, str) else list(hosts or ())
    if not entries or not str(entries[0]).strip():
        raise ValueError("hosts option must name at least one etcd endpoint")
    if len(entries) > 1:
        logger.warning(f"aetcd connects to a single endpoint, using {entries[0]!r} of {entries!r}")

    endpoint = str(entries[0]).strip()
    if "//" in endpoint:
        endpoint = endpoint.split("//", 1)[1]
    endpoint = endpoint.rstrip("/")

    host, sep, port = endpoint.rpartition(":")
    if not sep:
        return endpoint, None
    if not port.isdigit():
        raise ValueError(f"invalid port in etcd endpoint {entries[0]!r}")
    return host, int(port)


class KvBackend(Enum):
    """Supported key-value backends."""

    ETCD = "etcd"
    MEMORY = "memory"


@dataclass(frozen=True)
class EtcdConfig:
    """etcd cluster connection configuration.

    Attributes:
        host: etcd host name or address
        port: etcd client port
        username: User for etcd authentication (optional)
        password: Password for etcd authentication (optional)
        timeout: Per-request timeout in seconds (None uses client default)
        lock_ttl: Lease TTL of distributed locks in seconds
        lock_timeout: Maximum seconds to wait for a distributed lock
        has_credentials: Whether a credentials option was supplied
    """

    host: str = "localhost"
    port: int = 2379
    username: str | None = None
    password: str | None = None
    timeout: float | None = None
    lock_ttl: int = 60
    lock_timeout: float = 10.0
    has_credentials: bool = False

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> EtcdConfig:
        """Load configuration from environment variables."""
        timeout = os.getenv("ETCD_TIMEOUT")
        return cls(
            host=os.getenv("ETCD_HOST", "localhost"),
            port=int(os.getenv("ETCD_PORT", "2379")),
            username=os.getenv("ETCD_USERNAME"),
            password=os.getenv("ETCD_PASSWORD"),
            timeout=float(timeout) if timeout else None,
            lock_ttl=int(os.getenv("ETCD_LOCK_TTL", "60")),
            lock_timeout=float(os.getenv("ETCD_LOCK_TIMEOUT", "10")),
        )

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> EtcdConfig:
        """Build configuration from an option mapping.

        A ``hosts`` entry ("host:port" or a list of them) sets host and port
        unless those are given explicitly. A ``credentials`` mapping with
        ``user``/``username`` and ``password`` entries is accepted as an
        alternative to the flat options. Options known to neither this
        class nor AdapterConfig are logged as warnings and not used.

        Raises:
            ValueError: If hosts names no usable endpoint.
        """
        picked = _pick(cls, options)
        picked.pop("has_credentials", None)

        hosts = options.get("hosts")
        if hosts is not None:
            host, port = _parse_endpoint(hosts)
            picked.setdefault("host", host)
            if port is not None:
                picked.setdefault("port", port)

        credentials = options.get("credentials")
        if credentials is not None:
            picked["has_credentials"] = True
        if isinstance(credentials, Mapping):
            picked.setdefault("username", credentials.get("username", credentials.get("user")))
            picked.setdefault("password", credentials.get("password"))

        known = {f.name for f in fields(cls)} | {f.name for f in fields(AdapterConfig)}
        unknown = sorted(set(options) - known - {"hosts", "credentials", "has_credentials"})
        if unknown:
            logger.warning(f"Ignoring unsupported connection option(s): {', '.join(unknown)}")

        return cls(**picked)

    def redacted(self) -> dict[str, Any]:
        """Connection options safe for logging and introspection."""
        options = asdict(self)
        has_credentials = options.pop("has_credentials")
        options["hosts"] = [self.endpoint]
        options["password"] = HIDDEN if self.password else None
        options["credentials"] = HIDDEN if self.password or has_credentials else None
        return options


@dataclass(frozen=True)
class AdapterConfig:
    """Record adapter configuration.

    Attributes:
        prefix: Key prefix scoping all records of the adapter
        separator: Separator of hierarchical key segments
        create_attempts: Maximum UUIDs tried by create() before giving up
        stream_high_water_mark: Keys buffered by a key stream before pausing
        watch: Whether to subscribe to remote changes on connect
    """

    prefix: str | None = "hitchy-odem"
    separator: str = "/"
    create_attempts: int = 100
    stream_high_water_mark: int = 16
    watch: bool = True

    @classmethod
    def from_env(cls) -> AdapterConfig:
        """Load configuration from environment variables."""
        return cls(
            prefix=os.getenv("ODEM_PREFIX", "hitchy-odem"),
            separator=os.getenv("ODEM_SEPARATOR", "/"),
            create_attempts=int(os.getenv("ODEM_CREATE_ATTEMPTS", "100")),
            stream_high_water_mark=int(os.getenv("ODEM_STREAM_HIGH_WATER_MARK", "16")),
            watch=_env_bool("ODEM_WATCH", "true"),
        )

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> AdapterConfig:
        """Build configuration from options merged over DEFAULT_OPTIONS."""
        merged = {**DEFAULT_OPTIONS, **options}
        return cls(**_pick(cls, merged))

    def validate(self) -> None:
        """Validate adapter settings.

        Raises:
            ValueError: If a setting is out of range.
        """
        if not self.separator:
            raise ValueError("ODEM_SEPARATOR must not be empty")
        if self.create_attempts < 1:
            raise ValueError("ODEM_CREATE_ATTEMPTS must be at least 1")
        if self.stream_high_water_mark < 1:
            raise ValueError("ODEM_STREAM_HIGH_WATER_MARK must be at least 1")


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class Settings:
    """Complete configuration.

    Attributes:
        kv_backend: Which key-value backend to use
        etcd: etcd connection configuration (if kv_backend is ETCD)
        adapter: Record adapter configuration
        observability: Logging configuration
    """

    kv_backend: KvBackend = KvBackend.ETCD
    etcd: EtcdConfig = field(default_factory=EtcdConfig)
    adapter: AdapterConfig = field(default_factory=AdapterConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Settings:
        """Load complete configuration from environment variables.

        Returns:
            Settings with all sections populated from environment.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        backend_str = os.getenv("KV_BACKEND", "etcd").lower()
        try:
            kv_backend = KvBackend(backend_str)
        except ValueError:
            raise ValueError(f"Invalid KV_BACKEND '{backend_str}'. Must be one of: etcd, memory")

        settings = cls(
            kv_backend=kv_backend,
            etcd=EtcdConfig.from_env(),
            adapter=AdapterConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        settings.validate()
        return settings

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.kv_backend == KvBackend.ETCD:
            if not self.etcd.host:
                raise ValueError("ETCD_HOST is required when KV_BACKEND=etcd")
            if not 0 < self.etcd.port < 65536:
                raise ValueError(f"ETCD_PORT out of range: {self.etcd.port}")
            if self.etcd.password and not self.etcd.username:
                raise ValueError("ETCD_USERNAME is required when ETCD_PASSWORD is set")

        self.adapter.validate()

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Adapter configuration loaded",
            extra={
                "kv_backend": self.kv_backend.value,
                "etcd": self.etcd.redacted() if self.kv_backend == KvBackend.ETCD else None,
                "prefix": self.adapter.prefix,
                "separator": self.adapter.separator,
                "create_attempts": self.adapter.create_attempts,
                "watch": self.adapter.watch,
                "log_level": self.observability.log_level,
            },
        )
