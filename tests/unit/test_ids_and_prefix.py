"""
Unit tests for UUID helpers and prefix normalization.
"""

import uuid

import pytest

from odem.etcd_adapter.adapter.base import normalize_prefix
from odem.etcd_adapter.ids import create_uuid, fill_key_template, format_uuid


class TestNormalizePrefix:
    """Tests for normalize_prefix()."""

    @pytest.mark.parametrize(
        "prefix, expected",
        [
            (None, ""),
            ("", ""),
            ("   ", ""),
            ("/", ""),
            ("hitchy-odem", "hitchy-odem/"),
            ("hitchy-odem///", "hitchy-odem/"),
            ("  app/users/ ", "app/users/"),
        ],
    )
    def test_normalize(self, prefix, expected):
        """Trailing separators collapse into exactly one."""
        assert normalize_prefix(prefix) == expected

    def test_custom_separator(self):
        """Separator other than slash is honoured."""
        assert normalize_prefix("app::", ":") == "app:"


class TestIds:
    """Tests for UUID helpers."""

    def test_create_uuid_is_random(self):
        """Every call yields a new version 4 UUID."""
        first, second = create_uuid(), create_uuid()

        assert first != second
        assert first.version == 4

    def test_format_accepts_bytes_and_strings(self):
        """UUIDs format identically from any representation."""
        value = uuid.UUID("12345678-1234-4234-8234-123456789abc")

        assert format_uuid(value) == "12345678-1234-4234-8234-123456789abc"
        assert format_uuid(value.bytes) == "12345678-1234-4234-8234-123456789abc"
        assert format_uuid("12345678123442348234123456789ABC") == str(value)

    def test_format_rejects_garbage(self):
        """Non-UUID input is rejected."""
        with pytest.raises(ValueError):
            format_uuid("not-a-uuid")

    def test_fill_key_template(self):
        """Every placeholder is replaced."""
        value = uuid.UUID(int=1)

        assert fill_key_template("user/%u/%u", value) == f"user/{value}/{value}"
        assert fill_key_template("fixed", value) == "fixed"
