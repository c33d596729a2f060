"""
crossproof - cross-backend proof validation service.

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Dict

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from crossproof.api.middleware.request_id import RequestIdMiddleware
from crossproof.api.v1 import router as api_v1_router
from crossproof.config import get_settings
from crossproof.engines.backends.base import BackendRegistry
from crossproof.engines.cache import ResultCache
from crossproof.engines.weighting import BackendPerformanceTracker, weights_from_settings
from crossproof.errors import FatalValidationError, InputValidationError
from crossproof.logging_config import configure_logging, get_logger
from crossproof.orchestration.orchestrator import ValidationOrchestrator
from crossproof.schemas.common import ErrorResponse, HealthResponse

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Builds the orchestrator, restores the result cache snapshot on startup
    and writes it back on shutdown.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )
    logger.info("Starting %s v%s", settings.project_name, settings.version)

    cache = ResultCache(ttl_seconds=settings.cache_ttl_seconds, max_entries=settings.cache_max_entries)
    snapshot = Path(settings.cache_snapshot_path) if settings.cache_snapshot_path else None
    if snapshot is not None and snapshot.exists():
        # A corrupt snapshot aborts startup
        cache.load(snapshot)

    registry = BackendRegistry.from_settings(settings)
    tracker = BackendPerformanceTracker()
    app.state.orchestrator = ValidationOrchestrator(
        registry,
        cache,
        weights=weights_from_settings(settings, tracker),
        tracker=tracker,
    )
    logger.info("Backends registered: %s", ", ".join(k.value for k in registry.kinds()))
    for kind, available in registry.health().items():
        if not available:
            logger.warning("%s verifier not found; its submissions will fail", kind.value)

    yield

    logger.info("Shutting down...")
    await app.state.orchestrator.shutdown()
    if snapshot is not None:
        cache.save(snapshot)


app = FastAPI(
    title=settings.project_name,
    description="""
    Cross-backend proof validation.

    Formal statements are verified by a primary proof assistant, cross-checked
    by fallback assistants, and analysed for cross-backend agreement and
    cross-statement contradictions.
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(RequestIdMiddleware)


def _headers(request: Request) -> Dict[str, str]:
    req_id = getattr(request.state, "request_id", None)
    return {"X-Request-ID": req_id} if req_id else {}


@app.exception_handler(InputValidationError)
async def input_validation_exception_handler(request: Request, exc: InputValidationError):
    """Malformed statement sets: 422 with every issue found."""
    body = ErrorResponse(detail=exc.message, code="invalid_input", issues=exc.issues)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=body.model_dump(mode="json"),
        headers=_headers(request),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request schema errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation error", "errors": errors},
        headers=_headers(request),
    )


@app.exception_handler(FatalValidationError)
async def fatal_exception_handler(request: Request, exc: FatalValidationError):
    """Unrecoverable engine failures."""
    logger.error("Fatal validation error: %s", exc)
    content = {"detail": exc.message, "code": "fatal"}
    if settings.debug:
        content["details"] = exc.details
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers=_headers(request),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception("Unhandled exception: %s", exc)
    req_id = getattr(request.state, "request_id", None)
    if settings.debug:
        content = {"detail": str(exc), "type": type(exc).__name__, "request_id": req_id}
    else:
        content = {"detail": "Internal server error", "request_id": req_id}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers=_headers(request),
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Check application health and which backends can take submissions."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    health = orchestrator.registry.health() if orchestrator else {}
    return HealthResponse(
        status="ok" if all(health.values()) else "degraded",
        version=settings.version,
        backends={kind.value: available for kind, available in health.items()},
    )


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.project_name,
        "version": settings.version,
        "docs": "/docs" if settings.debug else "disabled",
        "api": {
            "v1": settings.api_v1_prefix,
        },
    }


app.include_router(api_v1_router, prefix=settings.api_v1_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "crossproof.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
