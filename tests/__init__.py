"""
RFE Backend Test Suite.

This package contains:
- unit/: Unit tests (models, codec, config, object storage helpers)
- integration/: Integration tests (SQLite tenant store, HTTP API, CLI)
"""
