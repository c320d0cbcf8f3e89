"""
FastAPI Application: eKYC Document Service.

Architecture:
  - MinIO / S3 for document objects
  - PostgreSQL (prod) / SQLite (dev) for document records
  - Verification cascade: external provider → basic checks → mock
  - Background verification on a bounded worker pool
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ekyc_documents.api.container import Container, build_container
from ekyc_documents.api.routes.documents import router as documents_router
from ekyc_documents.api.schemas.responses import fail
from ekyc_documents.config.settings import Settings, get_settings
from ekyc_documents.core.exceptions import DocumentServiceError, StorageFailure
from ekyc_documents.infrastructure.db.database import init_db

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATABASE_NAMES = {"postgresql": "PostgreSQL", "sqlite": "SQLite"}


def create_app(
    settings: Settings | None = None,
    storage=None,
    verification_transport: httpx.BaseTransport | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)

    container = build_container(settings, storage=storage, verification_transport=verification_transport)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(container.engine)
        if not container.storage_injected:
            try:
                container.storage.ensure_bucket()
            except StorageFailure as e:
                logger.error(f"Storage not ready at startup: {e.message}")
        logger.info("eKYC Document Service started")
        yield
        container.close()
        logger.info("eKYC Document Service stopped")

    app = FastAPI(
        title="eKYC Document Service",
        description="Document upload, validation, processing and verification for KYC onboarding.",
        version=VERSION,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(documents_router, prefix="/documents", tags=["Documents"])

    # ── Health ──
    @app.get("/health")
    async def health():
        c: Container = app.state.container
        dialect = c.engine.dialect.name
        return {
            "status": "ok",
            "version": VERSION,
            "database": DATABASE_NAMES.get(dialect, dialect),
            "verificationEnabled": c.settings.enable_document_verification,
            "verificationMode": c.verifier.mode,
            "inFlightVerifications": c.pool.in_flight(),
        }

    return app


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(DocumentServiceError)
    async def service_error_handler(request: Request, exc: DocumentServiceError):
        if exc.http_status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.http_status, content=fail(exc.message, exc.code))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        problems = [
            f"{'.'.join(str(p) for p in err.get('loc', ())[1:]) or 'body'}: {err.get('msg')}"
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=fail("Validation failed: " + "; ".join(problems), "VALIDATION_ERROR"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
        return JSONResponse(status_code=exc.status_code, content=fail(str(exc.detail), code))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content=fail("Internal server error", "INTERNAL_ERROR"))


app = create_app()
