"""Main FastAPI application for the Guroute ledger API."""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from guroute import __version__
from guroute.api.rate_limit import limiter
from guroute.api.v1.admin import router as admin_router
from guroute.api.v1.credits import router as credits_router
from guroute.api.v1.referral import router as referral_router
from guroute.api.v1.store import router as store_router
from guroute.credits.exceptions import (
    InvalidAmountError,
    LedgerError,
    LedgerNotFoundError,
    RefundNotAllowedError,
    StoreTransactionConflictError,
    UnknownProductError,
)
from guroute.logging_config import bind_request_context, clear_request_context, configure_logging, get_logger
from guroute.settings import settings
from guroute.storage.db import Database, db

logger = get_logger(__name__)

# Domain error -> HTTP status
ERROR_STATUS = {
    LedgerNotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidAmountError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    UnknownProductError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    RefundNotAllowedError: status.HTTP_409_CONFLICT,
    StoreTransactionConflictError: status.HTTP_409_CONFLICT,
}


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id to the log context and echo it in the response."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        clear_request_context()
        bind_request_context(request_id=request_id, path=request.url.path)

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("app_starting", env=settings.env)

    app.state.db.create_tables()

    yield

    logger.info("app_shutting_down")


def create_app(database: Database | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        database: Database to serve from (defaults to the global instance)

    Returns:
        Configured FastAPI app
    """
    is_production = settings.env == "production"

    app = FastAPI(
        title="Guroute Ledger API",
        description="Trip-generation credits, referrals and store events",
        version=__version__,
        docs_url=None if is_production else "/api/docs",
        redoc_url=None if is_production else "/api/redoc",
        openapi_url=None if is_production else "/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.db = database or db

    app.add_middleware(RequestContextMiddleware)

    # CORS middleware - SECURITY: Never allow wildcard in production
    allowed_origins = [
        origin.strip()
        for origin in settings.allowed_origins.split(",")
        if origin.strip()
    ]

    if is_production and "*" in allowed_origins:
        logger.error("cors_wildcard_blocked", message="Wildcard CORS not allowed in production")
        allowed_origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
        max_age=3600,
    )

    # Rate limiting (shared instance from rate_limit module)
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"detail": "Too many requests. Please try again later."},
        )

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
        logger.info(
            "ledger_request_rejected",
            path=request.url.path,
            error=type(exc).__name__,
            detail=str(exc),
        )
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    # Include v1 API routers
    app.include_router(credits_router, prefix="/api/v1")
    app.include_router(store_router, prefix="/api/v1")
    app.include_router(referral_router, prefix="/api/v1")
    app.include_router(admin_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "env": settings.env,
        }

    return app


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    configure_logging()
    uvicorn.run("guroute.api.main:app", host="0.0.0.0", port=8000)


# Create app instance
app = create_app()
