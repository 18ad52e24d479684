from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from casebundle_api.api.routes import build_compositions_router
from casebundle_api.errors import ApiError
from casebundle_api.schemas import ErrorEnvelope
from casebundle_api.services import (
    InMemoryEntryPersistence,
    InMemoryFileCatalog,
    RedisEntryPersistence,
    build_entry_persistence,
)
from casebundle_api.services.composition_registry import CompositionRegistry
from casebundle_api.settings import is_hardened_environment, load_settings
from casebundle_api.telemetry import CompositionMetrics, generate_trace_id

LOGGER = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = load_settings()

    persistence = build_entry_persistence(
        redis_url=settings.redis_url,
        ttl_seconds=settings.entry_store_ttl_seconds,
    )
    if isinstance(persistence, RedisEntryPersistence):
        persistence_backend = "redis"
    elif isinstance(persistence, InMemoryEntryPersistence):
        persistence_backend = "in_memory"
    else:
        persistence_backend = "unknown"

    file_catalog = InMemoryFileCatalog()
    composition_metrics = CompositionMetrics()
    registry = CompositionRegistry(
        persistence=persistence,
        file_catalog=file_catalog,
        mode=settings.composition_mode,
        exhibit_style=settings.exhibit_label_style,
        exhibit_prefix=settings.exhibit_label_prefix,
        undo_window_seconds=settings.undo_window_seconds,
        tracked_row_types=settings.reorder_tracked_row_types,
        strict_invariants=settings.strict_invariants,
        max_notices=settings.max_notices,
        metrics=composition_metrics,
    )

    app = FastAPI(title=settings.app_name, version="0.1.0")

    @app.middleware("http")
    async def trace_middleware(request: Request, call_next):
        request.state.trace_id = generate_trace_id()
        response = await call_next(request)
        response.headers["x-trace-id"] = request.state.trace_id
        return response

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        trace_id = getattr(request.state, "trace_id", generate_trace_id())
        payload = ErrorEnvelope(
            error={
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "trace_id": trace_id,
            }
        )
        return JSONResponse(
            status_code=422,
            content=payload.model_dump(),
            headers={"x-trace-id": trace_id},
        )

    @app.exception_handler(ApiError)
    async def api_exception_handler(request: Request, exc: ApiError):
        trace_id = getattr(request.state, "trace_id", generate_trace_id())
        payload = ErrorEnvelope(
            error={"code": exc.code, "message": exc.message, "trace_id": trace_id}
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=payload.model_dump(),
            headers={"x-trace-id": trace_id},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        trace_id = getattr(request.state, "trace_id", generate_trace_id())
        LOGGER.exception("Unhandled API exception", exc_info=exc)
        message = "Unexpected server error"
        if not is_hardened_environment(settings.environment):
            message = str(exc) or message
        payload = ErrorEnvelope(
            error={
                "code": "INTERNAL_ERROR",
                "message": message,
                "trace_id": trace_id,
            }
        )
        return JSONResponse(
            status_code=500,
            content=payload.model_dump(),
            headers={"x-trace-id": trace_id},
        )

    app.include_router(
        build_compositions_router(registry=registry, file_catalog=file_catalog)
    )

    @app.get("/healthz", tags=["health"])
    async def healthz() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/ops/metrics", tags=["ops"])
    async def ops_metrics() -> dict[str, object]:
        return {
            "composition_metrics": composition_metrics.snapshot(),
            "entry_persistence": {"backend": persistence_backend},
            "compositions_loaded": len(registry.container_ids()),
        }

    return app


app = create_app()
