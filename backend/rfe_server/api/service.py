"""
Transport-agnostic RPC surface for the RFE backend.

Every operation takes a resolved RequestContext and returns a tagged
result dictionary:

    {"status": "success", "data": {...}}
    {"status": "error", "message": "...", "error_code": "NOT_FOUND"}

The HTTP layer (and the legacy action dispatcher) are thin adapters over
this class.

Invariants:
    - Operations never raise RfeError or Exception; failures become error results
    - Cancellation propagates (it is not an Exception)
    - Error messages never include stored document contents

How to change safely:
    - Add new operations without changing existing result shapes
    - Keep error_code values stable; clients branch on them
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable

from .._version import __version__
from ..errors import InvalidError, RfeError
from ..jobs import JobLifecycleEngine
from ..objects import ObjectStore, decode_base64_payload, tenant_object_key
from ..sync import SyncEngine
from .auth import RequestContext

logger = logging.getLogger(__name__)

IMAGE_CONTENT_TYPE = "image/jpeg"
PDF_CONTENT_TYPE = "application/pdf"


def _success(data: Any) -> dict[str, Any]:
    return {"status": "success", "data": data}


def error_result(error: RfeError) -> dict[str, Any]:
    """Tagged error result for an RfeError."""
    return {"status": "error", "message": error.message, "error_code": error.code}


def _require_estimate_id(estimate_id: Any) -> str:
    if estimate_id is None or estimate_id == "":
        raise InvalidError("estimateId is required", field_name="estimateId")
    return str(estimate_id)


class RfeServicer:
    """Service implementation shared by all transports.

    Attributes:
        sync_engine: Snapshot pull/push
        lifecycle: Job state machine
        object_store: Photo and PDF storage

    Example:
        >>> servicer = RfeServicer(SyncEngine(store), JobLifecycleEngine(store), objects)
        >>> await servicer.start_job(RequestContext("acme"), "est-1")
        {'status': 'success', 'data': {...}}
    """

    def __init__(
        self,
        sync_engine: SyncEngine,
        lifecycle: JobLifecycleEngine,
        object_store: ObjectStore,
    ) -> None:
        self.sync_engine = sync_engine
        self.lifecycle = lifecycle
        self.object_store = object_store

    async def _handle(
        self, operation: str, ctx: RequestContext, work: Awaitable[Any]
    ) -> dict[str, Any]:
        try:
            data = await work
        except RfeError as e:
            logger.warning(
                f"{operation} failed: {e.message}",
                extra={"tenant_id": ctx.tenant_id, "error_code": e.code},
            )
            return error_result(e)
        except Exception as e:
            logger.error(
                f"{operation} failed: {e}",
                exc_info=True,
                extra={"tenant_id": ctx.tenant_id},
            )
            return {"status": "error", "message": "Internal error", "error_code": "INTERNAL"}
        return _success(data)

    # --- Sync ---

    async def sync_down(self, ctx: RequestContext) -> dict[str, Any]:
        """Return the tenant's full snapshot."""
        return await self._handle("sync_down", ctx, self.sync_engine.sync_down(ctx.tenant_id))

    async def sync_up(self, ctx: RequestContext, state: Any) -> dict[str, Any]:
        """Replace the tenant's state with a client snapshot."""
        return await self._handle("sync_up", ctx, self._sync_up(ctx, state))

    async def _sync_up(self, ctx: RequestContext, state: Any) -> dict[str, Any]:
        result = await self.sync_engine.sync_up(ctx.tenant_id, state)
        return result.to_dict()

    # --- Jobs ---

    async def start_job(self, ctx: RequestContext, estimate_id: Any) -> dict[str, Any]:
        return await self._handle("start_job", ctx, self._start_job(ctx, estimate_id))

    async def _start_job(self, ctx: RequestContext, estimate_id: Any) -> dict[str, Any]:
        estimate = await self.lifecycle.start(ctx.tenant_id, _require_estimate_id(estimate_id))
        return {"status": estimate.status, "estimate": estimate.to_dict()}

    async def complete_job(
        self, ctx: RequestContext, estimate_id: Any, actuals: Any
    ) -> dict[str, Any]:
        """Complete a job. Repeated calls report "Already completed"."""
        return await self._handle(
            "complete_job", ctx, self._complete_job(ctx, estimate_id, actuals)
        )

    async def _complete_job(
        self, ctx: RequestContext, estimate_id: Any, actuals: Any
    ) -> dict[str, Any]:
        result = await self.lifecycle.complete(
            ctx.tenant_id, _require_estimate_id(estimate_id), actuals, actor=ctx.actor
        )
        return result.to_dict()

    async def mark_job_paid(self, ctx: RequestContext, estimate_id: Any) -> dict[str, Any]:
        return await self._handle("mark_job_paid", ctx, self._mark_job_paid(ctx, estimate_id))

    async def _mark_job_paid(self, ctx: RequestContext, estimate_id: Any) -> dict[str, Any]:
        estimate = await self.lifecycle.mark_paid(ctx.tenant_id, _require_estimate_id(estimate_id))
        return {"estimate": estimate.to_dict()}

    async def delete_estimate(self, ctx: RequestContext, estimate_id: Any) -> dict[str, Any]:
        return await self._handle(
            "delete_estimate", ctx, self._delete_estimate(ctx, estimate_id)
        )

    async def _delete_estimate(self, ctx: RequestContext, estimate_id: Any) -> dict[str, Any]:
        deleted = await self.lifecycle.delete(ctx.tenant_id, _require_estimate_id(estimate_id))
        return {"message": "Deleted", "deleted": deleted}

    # --- Files ---

    async def upload_image(
        self, ctx: RequestContext, base64_data: Any, file_name: str | None = None
    ) -> dict[str, Any]:
        """Store a photo; returns its key and /files/ reference."""
        return await self._handle(
            "upload_image", ctx, self._upload_image(ctx, base64_data, file_name)
        )

    async def _upload_image(
        self, ctx: RequestContext, base64_data: Any, file_name: str | None
    ) -> dict[str, Any]:
        data = decode_base64_payload(base64_data)
        key = tenant_object_key(ctx.tenant_id, "photos", file_name, "jpg")
        url = await self.object_store.put(key, data, IMAGE_CONTENT_TYPE)
        logger.info(
            "Image uploaded", extra={"tenant_id": ctx.tenant_id, "key": key, "size": len(data)}
        )
        return {"key": key, "url": url}

    async def save_pdf(
        self,
        ctx: RequestContext,
        base64_data: Any,
        file_name: str | None = None,
        estimate_id: Any = None,
    ) -> dict[str, Any]:
        """Store a PDF and, if the estimate exists, record it as its pdfLink."""
        return await self._handle(
            "save_pdf", ctx, self._save_pdf(ctx, base64_data, file_name, estimate_id)
        )

    async def _save_pdf(
        self,
        ctx: RequestContext,
        base64_data: Any,
        file_name: str | None,
        estimate_id: Any,
    ) -> dict[str, Any]:
        data = decode_base64_payload(base64_data)
        key = tenant_object_key(ctx.tenant_id, "pdfs", file_name, "pdf")
        url = await self.object_store.put(key, data, PDF_CONTENT_TYPE)

        attached = False
        if estimate_id:
            estimate = await self.lifecycle.attach_document(ctx.tenant_id, str(estimate_id), url)
            attached = estimate is not None

        logger.info(
            "PDF saved",
            extra={"tenant_id": ctx.tenant_id, "key": key, "attached": attached},
        )
        return {"key": key, "url": url, "attached": attached}

    # --- Health ---

    async def health(self) -> dict[str, Any]:
        return _success({"status": "healthy", "service": "rfe-backend", "version": __version__})
