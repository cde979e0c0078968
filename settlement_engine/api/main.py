"""FastAPI application factory"""

import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from settlement_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from settlement_engine.api.v1 import bank_accounts, customers, installments, orders, payments
from settlement_engine.domain.exceptions import DomainException, ValidationError
from settlement_engine.infrastructure.observability.logging import setup_logging
from settlement_engine.config import settings

# Setup structured logging
setup_logging(settings.log_level)


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Map domain errors to {error, details} with the status code of the error class"""
    request_id = getattr(request.state, "request_id", None)
    extra = {"request_id": request_id, "path": request.url.path, "error_type": exc.__class__.__name__}
    if exc.status_code >= 500:
        logging.error(f"{exc.__class__.__name__}: {exc.message}", extra=extra)
    else:
        logging.warning(f"{exc.__class__.__name__}: {exc.message}", extra=extra)

    body = {"error": exc.message}
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are validation errors with the same {error, details} body"""
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    logging.warning(
        "Request body rejected",
        extra={"request_id": getattr(request.state, "request_id", None), "path": request.url.path},
    )
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"error": "Invalid request body", "details": "; ".join(problems)},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logging.error(
        f"Unexpected error: {exc}",
        extra={"request_id": getattr(request.state, "request_id", None), "path": request.url.path},
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Order Settlement & Ledger Engine",
        description="Order settlement, deferred payments and bank ledger service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(orders.router, prefix="/v1", tags=["orders"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(installments.router, prefix="/v1", tags=["installments"])
    app.include_router(bank_accounts.router, prefix="/v1", tags=["bank-accounts"])
    app.include_router(customers.router, prefix="/v1", tags=["customers"])

    return app


app = create_app()
