"""
UUID helpers used when allocating keys for new records.

Pure functions with no I/O.
"""

from __future__ import annotations

import uuid

KEY_PLACEHOLDER = "%u"


def create_uuid() -> uuid.UUID:
    """Generate a random (version 4) UUID."""
    return uuid.uuid4()


def format_uuid(value: uuid.UUID | bytes | str) -> str:
    """Render a UUID in canonical lowercase 8-4-4-4-12 form.

    Args:
        value: UUID instance, 16 raw bytes or any string uuid.UUID accepts.

    Returns:
        Canonical string representation.

    Raises:
        ValueError: If value does not describe a UUID.
    """
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return str(uuid.UUID(bytes=bytes(value)))
    return str(uuid.UUID(str(value)))


def fill_key_template(template: str, value: uuid.UUID) -> str:
    """Replace every placeholder in template by the formatted UUID."""
    return template.replace(KEY_PLACEHOLDER, format_uuid(value))
