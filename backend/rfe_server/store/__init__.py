"""
Store module for the RFE backend - per-tenant persistence.

This module handles:
- Per-tenant SQLite databases for the six record families
- Structured columns next to verbatim JSON documents
- Immediate transactions for per-estimate read-modify-write

Invariants:
    - Every row carries exactly one tenant_id
    - replace_all is atomic within a family
    - Material log rows are append-only
"""

from .tenant_store import FAMILY_SPECS, Family, FamilySpec, TenantStore, TenantTransaction

__all__ = [
    "FAMILY_SPECS",
    "Family",
    "FamilySpec",
    "TenantStore",
    "TenantTransaction",
]
