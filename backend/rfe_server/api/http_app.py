"""
FastAPI application factory for the RFE backend.

This module creates the HTTP app with:
- CORS configuration for the web client
- Object store lifecycle management
- Sync and job routes over the RfeServicer
- The legacy single-endpoint action dispatcher (POST /)
- File serving for stored photos and PDFs

Every JSON response is a tagged result. Error codes map onto HTTP status:
INVALID 400, UNAUTHORIZED 401, NOT_FOUND 404, CONFLICT 409, INTERNAL 500.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, Field

from .._version import __version__
from ..config import ServerConfig
from ..errors import InvalidError, NotFoundError, RfeError
from ..jobs import JobLifecycleEngine
from ..objects import ObjectStore, create_object_store, key_belongs_to
from ..store import TenantStore
from ..sync import SyncEngine
from .auth import HeaderTenantResolver, RequestContext, TenantResolver
from .service import RfeServicer, error_result
from .settings import ApiSettings

logger = logging.getLogger(__name__)

STATUS_FOR_CODE = {
    "INVALID": 400,
    "UNAUTHORIZED": 401,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "INTERNAL": 500,
}


# --- Request Models ---


class SyncUpRequest(BaseModel):
    """Request to replace the tenant state."""

    state: Any = Field(None, description="Full client snapshot")


class EstimateRequest(BaseModel):
    """Request addressing one estimate."""

    estimate_id: str | int | None = Field(None, alias="estimateId")


class CompleteJobRequest(EstimateRequest):
    """Request to complete a job with its actuals."""

    actuals: Any = Field(None, description="Materials and labor actually used")


class UploadImageRequest(BaseModel):
    """Request to store a base64-encoded photo."""

    base64_data: str | None = Field(None, alias="base64Data")
    file_name: str | None = Field(None, alias="fileName")


class SavePdfRequest(UploadImageRequest):
    """Request to store a base64-encoded PDF, optionally linking it to an estimate."""

    estimate_id: str | int | None = Field(None, alias="estimateId")


class LegacyActionRequest(BaseModel):
    """Single-endpoint request used by older clients."""

    action: str | None = None
    payload: dict[str, Any] | None = None


# --- Helpers ---


def to_response(result: dict[str, Any]) -> JSONResponse:
    """Render a tagged result with the matching HTTP status."""
    if result.get("status") == "success":
        return JSONResponse(result)
    return JSONResponse(result, status_code=STATUS_FOR_CODE.get(result.get("error_code"), 500))


def get_servicer(request: Request) -> RfeServicer:
    """Get servicer from app state."""
    return request.app.state.servicer


def get_context(request: Request) -> RequestContext:
    """Resolve the caller's tenant from request headers."""
    return request.app.state.resolver.resolve(request.headers)


LegacyHandler = Callable[[RfeServicer, RequestContext, dict[str, Any]], Awaitable[dict[str, Any]]]

LEGACY_ACTIONS: dict[str, LegacyHandler] = {
    "SYNC_DOWN": lambda s, ctx, p: s.sync_down(ctx),
    "SYNC_UP": lambda s, ctx, p: s.sync_up(ctx, p.get("state")),
    "START_JOB": lambda s, ctx, p: s.start_job(ctx, p.get("estimateId")),
    "COMPLETE_JOB": lambda s, ctx, p: s.complete_job(ctx, p.get("estimateId"), p.get("actuals")),
    "MARK_JOB_PAID": lambda s, ctx, p: s.mark_job_paid(ctx, p.get("estimateId")),
    "DELETE_ESTIMATE": lambda s, ctx, p: s.delete_estimate(ctx, p.get("estimateId")),
    "UPLOAD_IMAGE": lambda s, ctx, p: s.upload_image(ctx, p.get("base64Data"), p.get("fileName")),
    "SAVE_PDF": lambda s, ctx, p: s.save_pdf(
        ctx, p.get("base64Data"), p.get("fileName"), p.get("estimateId")
    ),
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage object store lifecycle."""
    object_store: ObjectStore = app.state.object_store
    await object_store.connect()
    logger.info("RFE API ready", extra={"version": __version__})

    yield

    await object_store.close()


def create_app(
    config: ServerConfig | None = None,
    settings: ApiSettings | None = None,
    object_store: ObjectStore | None = None,
    resolver: TenantResolver | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Server configuration (loaded from env if not provided)
        settings: HTTP settings (loaded from env if not provided)
        object_store: Object store override (built from config if not provided)
        resolver: Tenant resolver (trusted headers by default)
    """
    config = config or ServerConfig.from_env()
    settings = settings or ApiSettings()

    store = TenantStore(
        data_dir=config.storage.data_dir,
        wal_mode=config.storage.wal_mode,
        busy_timeout_ms=config.storage.busy_timeout_ms,
        cache_size_pages=config.storage.cache_size_pages,
    )
    object_store = object_store or create_object_store(config.object_store)

    app = FastAPI(
        title="RFE Backend",
        description="Multi-tenant sync and job lifecycle API for spray-foam estimating.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store
    app.state.object_store = object_store
    app.state.resolver = resolver or HeaderTenantResolver()
    app.state.servicer = RfeServicer(
        sync_engine=SyncEngine(store),
        lifecycle=JobLifecycleEngine(store, config.jobs),
        object_store=object_store,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(RfeError)
    async def handle_rfe_error(request: Request, exc: RfeError) -> JSONResponse:
        return to_response(error_result(exc))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return to_response(error_result(InvalidError("Malformed request body")))

    # --- Health ---

    @app.get("/health")
    async def health(servicer: RfeServicer = Depends(get_servicer)):
        return to_response(await servicer.health())

    @app.get("/", response_class=PlainTextResponse)
    async def root_health():
        """Plain-text liveness check kept for older monitors."""
        return "RFE Backend Worker Running"

    # --- Sync Routes ---

    @app.post("/sync/down")
    async def sync_down(
        servicer: RfeServicer = Depends(get_servicer),
        ctx: RequestContext = Depends(get_context),
    ):
        """Return the tenant's full snapshot."""
        return to_response(await servicer.sync_down(ctx))

    @app.post("/sync/up")
    async def sync_up(
        body: SyncUpRequest,
        servicer: RfeServicer = Depends(get_servicer),
        ctx: RequestContext = Depends(get_context),
    ):
        """Replace the tenant's state with the posted snapshot."""
        return to_response(await servicer.sync_up(ctx, body.state))

    # --- Job Routes ---

    @app.post("/jobs/start")
    async def start_job(
        body: EstimateRequest,
        servicer: RfeServicer = Depends(get_servicer),
        ctx: RequestContext = Depends(get_context),
    ):
        return to_response(await servicer.start_job(ctx, body.estimate_id))

    @app.post("/jobs/complete")
    async def complete_job(
        body: CompleteJobRequest,
        servicer: RfeServicer = Depends(get_servicer),
        ctx: RequestContext = Depends(get_context),
    ):
        return to_response(await servicer.complete_job(ctx, body.estimate_id, body.actuals))

    @app.post("/jobs/paid")
    async def mark_job_paid(
        body: EstimateRequest,
        servicer: RfeServicer = Depends(get_servicer),
        ctx: RequestContext = Depends(get_context),
    ):
        return to_response(await servicer.mark_job_paid(ctx, body.estimate_id))

    @app.post("/jobs/delete")
    async def delete_estimate(
        body: EstimateRequest,
        servicer: RfeServicer = Depends(get_servicer),
        ctx: RequestContext = Depends(get_context),
    ):
        return to_response(await servicer.delete_estimate(ctx, body.estimate_id))

    @app.post("/jobs/upload-image")
    async def upload_image(
        body: UploadImageRequest,
        servicer: RfeServicer = Depends(get_servicer),
        ctx: RequestContext = Depends(get_context),
    ):
        return to_response(await servicer.upload_image(ctx, body.base64_data, body.file_name))

    @app.post("/jobs/save-pdf")
    async def save_pdf(
        body: SavePdfRequest,
        servicer: RfeServicer = Depends(get_servicer),
        ctx: RequestContext = Depends(get_context),
    ):
        return to_response(
            await servicer.save_pdf(ctx, body.base64_data, body.file_name, body.estimate_id)
        )

    # --- Files ---

    @app.get("/files/{key:path}")
    async def get_file(
        key: str,
        request: Request,
        ctx: RequestContext = Depends(get_context),
    ):
        """Serve a stored photo or PDF owned by the caller's tenant."""
        stored = None
        if key_belongs_to(ctx.tenant_id, key):
            stored = await request.app.state.object_store.get(key)
        if stored is None:
            raise NotFoundError("files", key)

        headers = {"etag": stored.etag} if stored.etag else None
        return Response(content=stored.data, media_type=stored.content_type, headers=headers)

    # --- Legacy ---

    @app.post("/")
    async def legacy_dispatch(
        body: LegacyActionRequest,
        request: Request,
        servicer: RfeServicer = Depends(get_servicer),
    ):
        """Route {"action": ..., "payload": {...}} requests from older clients."""
        if not body.action:
            return to_response(error_result(InvalidError("No action provided", "action")))

        handler = LEGACY_ACTIONS.get(body.action)
        if handler is None:
            error = InvalidError(f"Unknown Action: {body.action}", "action")
            return to_response(error_result(error))

        ctx = get_context(request)
        return to_response(await handler(servicer, ctx, body.payload or {}))

    return app
