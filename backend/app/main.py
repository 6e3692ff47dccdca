"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.router import api_router
from app.config import settings
from app.core.exceptions import (
    AuditChainIntegrityError,
    EvaluationCoreError,
    EvaluationFailed,
    ImmutableProgramVersionError,
    InvalidScenarioAnswer,
    RateLimitExceeded,
    ScenarioNotFound,
)

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# Create FastAPI application
app = FastAPI(
    title="Lender Evaluation Core API",
    description="API for ranking lender programs against loan scenarios",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router with v1 prefix
app.include_router(api_router, prefix="/api/v1")


# Domain error -> HTTP status
ERROR_STATUS = {
    RateLimitExceeded: status.HTTP_429_TOO_MANY_REQUESTS,
    ScenarioNotFound: status.HTTP_404_NOT_FOUND,
    InvalidScenarioAnswer: 422,
    ImmutableProgramVersionError: status.HTTP_409_CONFLICT,
    AuditChainIntegrityError: status.HTTP_503_SERVICE_UNAVAILABLE,
    EvaluationFailed: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: EvaluationCoreError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(EvaluationCoreError)
async def evaluation_error_handler(request: Request, exc: EvaluationCoreError) -> JSONResponse:
    """Render domain errors with their code and correlation id."""
    headers = {}
    if isinstance(exc, RateLimitExceeded):
        headers["Retry-After"] = str(settings.RATE_LIMIT_WINDOW_SECONDS)
    return JSONResponse(
        status_code=status_for(exc),
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "correlation_id": str(exc.correlation_id) if exc.correlation_id else None,
        },
        headers=headers,
    )


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {
        "message": "Lender Evaluation Core API",
        "version": "1.0.0",
        "docs": "/api/docs",
    }
