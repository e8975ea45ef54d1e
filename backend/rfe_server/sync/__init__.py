"""
Sync module for the RFE backend - full-state snapshot exchange.

This module handles:
- Encoding a tenant's records into one snapshot document
- Decoding a client snapshot into a per-family write plan
- Applying the plan with destructive replace semantics

Invariants:
    - Corrupt stored rows are dropped from snapshots, never fatal
    - Malformed snapshots are rejected before any write
"""

from .codec import (
    DEFAULT_LIFETIME_USAGE,
    DEFAULT_WAREHOUSE_COUNTS,
    LIFETIME_USAGE_KEY,
    SETTINGS_KEYS,
    WAREHOUSE_COUNTS_KEY,
    Snapshot,
    SnapshotCodec,
    SyncPlan,
)
from .engine import SyncEngine, SyncResult

__all__ = [
    "DEFAULT_LIFETIME_USAGE",
    "DEFAULT_WAREHOUSE_COUNTS",
    "LIFETIME_USAGE_KEY",
    "SETTINGS_KEYS",
    "WAREHOUSE_COUNTS_KEY",
    "Snapshot",
    "SnapshotCodec",
    "SyncEngine",
    "SyncPlan",
    "SyncResult",
]
