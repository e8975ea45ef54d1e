"""
RFE Backend - multi-tenant sync and job lifecycle server for spray-foam estimating.

This package implements:
- A per-tenant SQLite store for customers, estimates, inventory, equipment,
  material logs and settings
- Full-state snapshot sync (sync_down / sync_up, last write wins)
- A job lifecycle engine that reconciles stock exactly once per completion
  and computes job financials when an estimate is paid
- S3-compatible object storage for photos and PDFs

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Client    │────▶│  HTTP API   │────▶│   RfeServicer   │
    │  (web app)  │     │  (FastAPI)  │     │                 │
    └─────────────┘     └─────────────┘     └────────┬────────┘
                                                     │
                   ┌─────────────────────────────────┼──────────────────┐
                   │                                 │                  │
                   ▼                                 ▼                  ▼
              ┌─────────┐                       ┌─────────┐        ┌─────────┐
              │  Sync   │                       │   Job   │        │ Object  │
              │ Engine  │                       │Lifecycle│        │  Store  │
              └────┬────┘                       └────┬────┘        └────┬────┘
                   │                                 │                  │
                   ▼                                 ▼                  ▼
              ┌──────────────────────────────────────────┐         ┌─────────┐
              │ Tenant Store (one SQLite file per tenant)│         │   S3    │
              └──────────────────────────────────────────┘         └─────────┘

Invariants:
    - Every operation is scoped to exactly one tenant
    - A job completion deducts inventory at most once
    - Stored documents round-trip verbatim, unknown fields included

How to change safely:
    - Never rename JSON keys of stored documents
    - Keep the sync_up write order
"""

from ._version import __version__

__all__ = ["__version__"]
