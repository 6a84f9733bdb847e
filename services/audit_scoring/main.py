"""
Audit Scoring Service - Main Application
========================================

FastAPI application for scoring audits: control evaluations, section
weights and the hierarchical score aggregate.

Version: 0.1.0
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.config import settings
from shared.database.postgres import PostgresClient
from shared.logging import get_logger, setup_logging
from shared.models.common import ErrorResponse, HealthResponse

from services.audit_scoring.errors import (
    AuditScoringError,
    ConcurrencyConflictError,
    NotFoundError,
    ValidationError,
)
from services.audit_scoring.routes import audits, evaluations, weights

# Setup logging
setup_logging(
    log_level=settings.log_level.value,
    json_logs=settings.is_production,
    service_name="audit-scoring",
)

logger = get_logger(__name__)


ERROR_STATUS_CODES: dict[type[AuditScoringError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ValidationError: status.HTTP_400_BAD_REQUEST,
    ConcurrencyConflictError: status.HTTP_409_CONFLICT,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    """Application lifespan manager."""
    logger.info(
        "audit_scoring_starting",
        environment=settings.environment.value,
        port=settings.port,
    )

    # Startup
    try:
        PostgresClient.get_engine()
        logger.info("postgres_connected")
    except Exception as e:
        logger.error("startup_failed", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("audit_scoring_shutting_down")
    await PostgresClient.close()


# Create FastAPI application
app = FastAPI(
    title="Audit Scoring Service",
    description="Hierarchical scoring of control framework audits",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins_list,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Health Check Endpoints
# ============================================================================


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """
    Service health check.

    Returns health status of the service and its database.
    """
    components: dict[str, dict[str, Any]] = {
        "postgres": await PostgresClient.health_check(),
    }

    all_healthy = all(c.get("status") == "healthy" for c in components.values())

    return HealthResponse(
        status="healthy" if all_healthy else "degraded",
        service="audit-scoring",
        version="0.1.0",
        components=components,
    )


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": "Audit Scoring Service",
        "version": "0.1.0",
        "docs": "/docs",
    }


# ============================================================================
# Include Routers
# ============================================================================

app.include_router(
    audits.router,
    prefix="/api/v1/audits",
    tags=["Audits"],
)

app.include_router(
    evaluations.router,
    prefix="/api/v1/audits",
    tags=["Evaluations"],
)

app.include_router(
    weights.router,
    prefix="/api/v1/audits",
    tags=["Section Weights"],
)


# ============================================================================
# Error Handlers
# ============================================================================


@app.exception_handler(AuditScoringError)
async def audit_scoring_exception_handler(request: Request, exc: AuditScoringError) -> JSONResponse:
    """Map scoring errors to 400/404/409 responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)

    logger.warning(
        "audit_scoring_error",
        status_code=status_code,
        error_code=exc.error_code,
        error=exc.message,
        path=request.url.path,
    )

    body = ErrorResponse(
        error=exc.message,
        error_code=exc.error_code,
        retryable=exc.retryable,
        details=exc.to_details(),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions."""
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
    )
    body = ErrorResponse(error=str(exc.detail), error_code="http_error")
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )
    body = ErrorResponse(error="Internal server error", error_code="internal_error")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body.model_dump(mode="json"),
    )


# ============================================================================
# Run with Uvicorn
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.audit_scoring.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.value.lower(),
    )
