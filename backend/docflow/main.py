"""
FastAPI Application — Entry Point

Document-management backend: PDF operations delegated to the external PDF
service through docflow.gateway, with in-process fallbacks.

Architecture:
  - PDF operation routes live under /api/documents (JWT required)
  - /api/integrations/pdf-service/health probes both service surfaces
  - /uploads serves stored files from the upload directory
  - Structured JSON error responses on all 4xx/5xx

Middleware stack (innermost → outermost):
  1. CORS — allowlist from CORS_ORIGINS
  2. Request ID + access log (REQUEST_LOGGING=off disables the log line)
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from docflow.api.v1.documents import router as documents_router
from docflow.api.v1.integrations import router as integrations_router
from docflow.core.config import settings
from docflow.gateway.credentials import SurfaceKind
from docflow.gateway.errors import AuthError, CompositeFailure, RemoteOperationError
from docflow.schemas.documents import ErrorDetail, ErrorResponse, OperationErrors

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


# ---------------------------------------------------------------------------
# Application lifespan: startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log a config summary (hosts and which credentials are set, never values)."""
    docgen = settings.credentials(SurfaceKind.DOCGEN).is_configured
    pdf    = settings.credentials(SurfaceKind.PDF).is_configured
    logger.info("Starting docflow | env=%s", settings.app_env)
    logger.info(
        "PDF service | docgen=%s pdf=%s pdf_api=%s docgen_credentials=%s pdf_credentials=%s",
        settings.docgen_base_url, settings.pdf_base_url, settings.pdf_api_base, docgen, pdf,
    )
    if not (docgen and pdf):
        logger.warning("PDF service credentials incomplete; operations will use local fallbacks")

    yield

    logger.info("Shutting down docflow")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID")


def _error(status_code: int, body: ErrorResponse, request: Request) -> JSONResponse:
    body.request_id = _request_id(request)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def create_app() -> FastAPI:
    app = FastAPI(
        title="docflow",
        description=(
            "Document management API. PDF operations (optimize, extract-text, split, "
            "merge, protect, convert, sign) are delegated to a cloud PDF service "
            "with local fallbacks where one exists."
        ),
        version="1.0.0",
        docs_url="/api/docs" if not settings.is_production else None,
        redoc_url="/api/redoc" if not settings.is_production else None,
        openapi_url="/api/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # ----------------------------------------------------------------
    # Middleware (applied in reverse order: last added = outermost)
    # ----------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    @app.middleware("http")
    async def request_id_and_logging(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        if settings.request_logging != "off":
            logger.info(
                "HTTP %s %s %d %.1fms",
                request.method, request.url.path, response.status_code,
                (time.perf_counter() - start) * 1000,
            )
        return response

    # ----------------------------------------------------------------
    # Exception handlers: uniform structured error responses
    # ----------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Convert Pydantic/FastAPI validation errors to structured ErrorResponse."""
        details = [
            ErrorDetail(
                field=" → ".join(str(loc) for loc in err["loc"]),
                message=err["msg"],
                code="VALIDATION_ERROR",
            )
            for err in exc.errors()
        ]
        body = ErrorResponse(
            error_code="VALIDATION_ERROR",
            message="Request validation failed.",
            details=details,
        )
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, body, request)

    @app.exception_handler(CompositeFailure)
    async def composite_failure_handler(request: Request, exc: CompositeFailure):
        body = OperationErrors.operation_failed(exc.operation, str(exc.remote_error), str(exc.local_error))
        return _error(status.HTTP_502_BAD_GATEWAY, body, request)

    @app.exception_handler(RemoteOperationError)
    async def remote_error_handler(request: Request, exc: RemoteOperationError):
        if isinstance(exc.__cause__, AuthError):
            body = OperationErrors.upstream_auth_failed()
        else:
            body = OperationErrors.remote_failed(exc.operation, str(exc))
        return _error(status.HTTP_502_BAD_GATEWAY, body, request)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch-all for unhandled exceptions — never expose stack traces."""
        request_id = _request_id(request) or str(uuid.uuid4())
        logger.exception(
            "Unhandled exception | path=%s request_id=%s",
            request.url.path, request_id,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=OperationErrors.internal_error(request_id).model_dump(mode="json"),
            headers={"X-Request-ID": request_id},
        )

    # ----------------------------------------------------------------
    # Routers
    # ----------------------------------------------------------------

    app.include_router(documents_router,    prefix="/api")
    app.include_router(integrations_router, prefix="/api")

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=upload_dir), name="uploads")

    # ----------------------------------------------------------------
    # Liveness (no auth: used by load balancer)
    # ----------------------------------------------------------------

    @app.get(
        "/health",
        tags=["Operations"],
        summary="Liveness probe",
        description="Returns 200 if the process is alive. No external checks.",
    )
    async def health() -> dict:
        return {"status": "ok", "message": "Server is running"}

    return app


# ---------------------------------------------------------------------------
# Application instance (imported by uvicorn)
# ---------------------------------------------------------------------------

app = create_app()


# ---------------------------------------------------------------------------
# Local development entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "docflow.main:app",
        host="0.0.0.0",
        port=5001,
        reload=settings.app_env == "development",
        log_level="debug" if settings.debug else "info",
        access_log=False,
    )
