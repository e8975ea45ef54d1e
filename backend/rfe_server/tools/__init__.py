"""
CLI tools for RFE backend administration.

This module provides command-line tools for:
- snapshot: Export, import and inspect a tenant's full snapshot as JSON

Invariants:
    - Tools work offline against the data directory (no running server required)
    - Imports go through the same sync path as clients
"""

from .snapshot_cli import SnapshotCLI

__all__ = ["SnapshotCLI"]
