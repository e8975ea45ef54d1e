"""
Tenant resolution for incoming requests.

Authentication happens upstream (an auth proxy or API gateway). By the time
a request reaches this server, the caller's tenant and operator identity
are carried in trusted headers. This module only turns those headers into
a RequestContext.

Invariants:
    - Every store call made on behalf of a request uses ctx.tenant_id
    - A request without a tenant never reaches the service layer
    - Tenant ids never contain path separators
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Protocol

from ..errors import UnauthorizedError
from ..objects import is_key_safe_tenant

TENANT_HEADER = "X-Tenant-ID"
ACTOR_HEADER = "X-Actor"
ANONYMOUS_ACTOR = "api:anonymous"


@dataclass(frozen=True)
class RequestContext:
    """Resolved caller identity."""

    tenant_id: str
    actor: str = ANONYMOUS_ACTOR


class TenantResolver(Protocol):
    """Maps request headers to a RequestContext."""

    def resolve(self, headers: Mapping[str, str]) -> RequestContext:
        """Resolve the caller.

        Raises:
            UnauthorizedError: If no tenant can be determined
        """
        ...


class HeaderTenantResolver:
    """Reads tenant and actor from trusted proxy headers.

    Example:
        >>> resolver = HeaderTenantResolver()
        >>> resolver.resolve({"X-Tenant-ID": "acme", "X-Actor": "crew:joe"})
        RequestContext(tenant_id='acme', actor='crew:joe')
    """

    def __init__(
        self,
        tenant_header: str = TENANT_HEADER,
        actor_header: str = ACTOR_HEADER,
    ) -> None:
        self.tenant_header = tenant_header
        self.actor_header = actor_header

    def resolve(self, headers: Mapping[str, str]) -> RequestContext:
        tenant_id = (headers.get(self.tenant_header) or "").strip()
        if not tenant_id:
            raise UnauthorizedError("Unauthorized")
        if not is_key_safe_tenant(tenant_id):
            raise UnauthorizedError("Invalid tenant id")
        actor = (headers.get(self.actor_header) or "").strip() or ANONYMOUS_ACTOR
        return RequestContext(tenant_id=tenant_id, actor=actor)
