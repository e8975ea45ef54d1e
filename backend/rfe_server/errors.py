"""
Error types for the RFE backend.

Every failure raised by the store, the sync engine or the job engine is an
RfeError subclass. The service layer maps each kind onto a tagged error
result (and the HTTP layer onto a status code):

- NotFoundError: missing estimate or record
- UnauthorizedError: tenant resolution failed
- InvalidError: malformed payload or record
- ConflictError: concurrent write lost the race, or an illegal transition
- InternalError: store failure

Invariants:
    - All errors inherit from RfeError
    - code is stable and safe to hand to clients
    - Messages never contain stored document contents
"""

from __future__ import annotations

from typing import Any


class RfeError(Exception):
    """Base exception for all backend errors.

    Attributes:
        message: Human-readable error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    code = "INTERNAL"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.code
        self.details = details or {}


class NotFoundError(RfeError):
    """Requested record does not exist for this tenant."""

    code = "NOT_FOUND"

    def __init__(self, family: str, record_id: str) -> None:
        super().__init__(
            f"{family.rstrip('s').capitalize()} not found: {record_id}",
            details={"family": family, "id": record_id},
        )
        self.family = family
        self.record_id = record_id


class UnauthorizedError(RfeError):
    """Caller could not be resolved to a tenant."""

    code = "UNAUTHORIZED"


class InvalidError(RfeError):
    """Payload or stored record is malformed.

    Raised when:
    - A write payload is not the expected JSON shape
    - A collection item has no id
    - A stored document needed by an operation cannot be parsed
    """

    code = "INVALID"

    def __init__(self, message: str, field_name: str | None = None) -> None:
        super().__init__(message, details={"field": field_name} if field_name else None)
        self.field_name = field_name


class ConflictError(RfeError):
    """Write could not be applied because of a concurrent writer."""

    code = "CONFLICT"


class JobStateError(ConflictError):
    """Estimate is not in a state that allows the requested transition."""

    def __init__(self, estimate_id: str, status: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} estimate {estimate_id} in status '{status}'",
            details={"id": estimate_id, "status": status, "action": action},
        )
        self.estimate_id = estimate_id
        self.status = status
        self.action = action


class InternalError(RfeError):
    """Persistence or collaborator failure."""

    code = "INTERNAL"
