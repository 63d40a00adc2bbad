"""FastAPI application factory"""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from installment_gateway.api.dependencies import get_request_id
from installment_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from installment_gateway.api.v1 import admin, payments
from installment_gateway.api.v1.schemas import ErrorResponse
from installment_gateway.domain.exceptions import (
    ConcurrentModificationError,
    DomainException,
    DuplicateSubmissionError,
    IllegalTransitionError,
    NotFoundError,
    ReconciliationError,
    SequenceError,
    ValidationError,
)
from installment_gateway.infrastructure.observability.logging import setup_logging
from installment_gateway.infrastructure.observability.metrics import domain_error_counter
from installment_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)

# Most specific class first
ERROR_STATUS_CODES = [
    (NotFoundError, 404),
    (ValidationError, 422),
    (IllegalTransitionError, 409),
    (SequenceError, 409),
    (DuplicateSubmissionError, 409),
    (ConcurrentModificationError, 409),
    (ReconciliationError, 500),
]


# Documented on every v1 route
ERROR_RESPONSES = {
    code: {"model": ErrorResponse} for code in sorted({code for _, code in ERROR_STATUS_CODES})
}


def status_code_for(exc: DomainException) -> int:
    for exc_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 400


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Translate refused operations into a stable error body"""
    status_code = status_code_for(exc)
    domain_error_counter.labels(code=exc.code).inc()

    log = logging.error if status_code >= 500 else logging.warning
    log(
        f"Operation refused: {exc.message}",
        extra={"request_id": get_request_id(request), "error": exc.code, "entity_id": exc.entity_id},
    )
    body = ErrorResponse(error=exc.code, entity_id=exc.entity_id, detail=exc.message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Installment Gateway",
        description="Payment and installment reconciliation service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(payments.router, prefix="/v1", tags=["payments"], responses=ERROR_RESPONSES)
    app.include_router(admin.router, prefix="/v1", tags=["admin"], responses=ERROR_RESPONSES)

    return app


app = create_app()
