#!/usr/bin/env python3
"""
Main FastAPI Application

Core FastAPI application with middleware, exception handlers,
and route registration for the DocVerify API.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from prometheus_client import Counter, Histogram
from prometheus_fastapi_instrumentator import Instrumentator

from .. import __version__
from ..config import Config, get_config, setup_logging
from .dependencies import ServiceContainer
from .routes import admin, auth, documents, health, verification

logger = logging.getLogger(__name__)

# Custom metrics
documents_verified_total = Counter(
    "docverify_documents_verified_total",
    "Total number of uploaded documents verified",
    ["status"]
)

ai_verification_calls_total = Counter(
    "docverify_ai_verification_calls_total",
    "Total number of AI verification requests",
    ["mock"]
)

request_duration = Histogram(
    "docverify_request_duration_seconds",
    "Time spent handling API requests",
    ["method"]
)

def _error_response(status_code: int, message: Any, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": status_code,
                "message": message,
                "type": error_type,
                "timestamp": time.time()
            }
        }
    )

def create_app(config: Optional[Config] = None, services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Configuration, defaults to the global configuration
        services: Prebuilt service container; built at startup when omitted

    Returns:
        FastAPI: Configured application
    """
    config = config or (services.config if services else get_config())
    setup_logging(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        # Startup
        logger.info("Starting DocVerify API...")
        container = services or ServiceContainer.build(config)
        try:
            await container.database.init_database()
            logger.info("Database initialized")
        except Exception as e:
            logger.error(f"Failed to start application: {e}")
            raise

        app.state.services = container
        logger.info("DocVerify API started successfully")

        yield

        # Shutdown
        logger.info("Shutting down DocVerify API...")
        if services is None:
            await container.close()
        logger.info("DocVerify API shut down successfully")

    app = FastAPI(
        title="DocVerify API",
        description="Document authenticity verification API",
        version=__version__,
        docs_url="/docs" if config.api.enable_docs else None,
        redoc_url="/redoc" if config.api.enable_docs else None,
        openapi_url="/openapi.json" if config.api.enable_docs else None,
        lifespan=lifespan
    )
    app.state.config = config
    app.state.metrics = {
        "documents_verified_total": documents_verified_total,
        "ai_verification_calls_total": ai_verification_calls_total,
        "request_duration": request_duration,
    }

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    # Trusted host middleware
    if config.api.trusted_hosts:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=config.api.trusted_hosts
        )

    # Request timing middleware
    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add processing time to response headers."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        request_duration.labels(method=request.method).observe(process_time)
        return response

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming requests."""
        start_time = time.time()

        logger.info(
            f"Request: {request.method} {request.url.path} "
            f"from {request.client.host if request.client else 'unknown'}"
        )

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(f"Response: {response.status_code} ({process_time:.3f}s)")

        return response

    # Exception handlers

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        response = _error_response(exc.status_code, exc.detail, "http_error")
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        errors = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        ]
        logger.warning(f"Validation error in {request.url.path}: {errors}")
        return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, "; ".join(errors), "validation_error")

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        """Handle value errors."""
        logger.error(f"ValueError in {request.url.path}: {exc}")
        return _error_response(status.HTTP_400_BAD_REQUEST, str(exc), "validation_error")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions."""
        logger.error(f"Unhandled exception in {request.url.path}: {exc}", exc_info=True)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "internal_error")

    # Include routers
    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
    app.include_router(verification.router, prefix="/api", tags=["Verification"])
    app.include_router(documents.router, prefix="/api/documents", tags=["Documents"])
    app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])

    # Root endpoint
    @app.get("/", tags=["Root"])
    async def root() -> Dict[str, Any]:
        """API root endpoint with basic information."""
        return {
            "service": "DocVerify API",
            "version": __version__,
            "status": "operational",
            "docs_url": "/docs" if config.api.enable_docs else None,
            "health_check": "/health",
            "supported_documents": [
                "Images (JPEG, PNG, WebP, ...)",
                "PDF",
                "Word (DOC, DOCX)"
            ],
            "features": [
                "OCR Text Extraction",
                "Image Feature Extraction",
                "Document Structure Heuristics",
                "AI Authenticity Review"
            ]
        }

    # Metrics endpoint (Prometheus)
    if config.monitoring.enable_metrics:
        Instrumentator(
            should_group_status_codes=False,
            should_ignore_untemplated=True,
            excluded_handlers=[config.monitoring.metrics_endpoint],
        ).instrument(app).expose(app, endpoint=config.monitoring.metrics_endpoint)

    return app

app = create_app()

def run():
    """Run the API server."""
    import uvicorn

    config = get_config()
    uvicorn.run(
        "docverify.api.main:app",
        host=config.api.host,
        port=config.api.port,
        reload=config.api.reload,
        log_level=config.logging.level.value.lower()
    )

if __name__ == "__main__":
    run()
