"""
API module for the RFE backend.

This module provides the external interfaces:
- RfeServicer: transport-agnostic operations returning tagged results
- create_app: FastAPI HTTP surface (REST routes + legacy action endpoint)
- Tenant resolution from trusted proxy headers

Invariants:
    - All operations run on behalf of a resolved tenant
    - Error results carry a stable error_code

How to change safely:
    - Add new routes without modifying existing ones
    - HTTP routes should match servicer semantics
"""

from .auth import HeaderTenantResolver, RequestContext, TenantResolver
from .http_app import create_app
from .service import RfeServicer
from .settings import ApiSettings

__all__ = [
    "ApiSettings",
    "HeaderTenantResolver",
    "RequestContext",
    "RfeServicer",
    "TenantResolver",
    "create_app",
]
