"""
CLI tools for operating ODEM record storage.

This module provides command-line tools for:
- records: Inspect and modify records, stream keys, follow changes

Invariants:
    - Tools use the same adapter and configuration as applications
    - Destructive operations require explicit confirmation flags
"""

from .records_cli import RecordsCLI

__all__ = ["RecordsCLI"]
