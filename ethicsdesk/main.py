"""
Main FastAPI Application

Entry point for the EthicsDesk API.
Configures middleware, routes, error handlers, and startup/shutdown events.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import time
import uuid
from contextlib import asynccontextmanager

from ethicsdesk import __version__
from ethicsdesk.config import get_settings
from ethicsdesk.database import engine, init_db
from ethicsdesk.middleware.tenant import TenantMiddleware
from ethicsdesk.middleware.rate_limit import RateLimitMiddleware
from ethicsdesk.utils.logging import build_log_context, get_logger, setup_logging
from ethicsdesk.core.exceptions import (
    AuthenticationError,
    TenantIsolationError,
    RateLimitExceeded
)

from ethicsdesk.api.endpoints import auth, users, cases, activity, attachments
from ethicsdesk.api.endpoints.portals import router as portals

settings = get_settings()

setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=(settings.ENVIRONMENT == "production")
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting application in {settings.ENVIRONMENT} mode")

    # Alembic owns the schema everywhere except local development
    if settings.ENVIRONMENT == "development":
        logger.warning("Initializing database tables (dev mode)")
        init_db()

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")
    engine.dispose()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="EthicsDesk",
    description="Multi-tenant ethics and compliance case management API",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# ============================================================================
# MIDDLEWARE CONFIGURATION
# ============================================================================

# Middleware added last runs first. Request order:
# CORS -> request_context -> TenantMiddleware -> RateLimitMiddleware -> route
app.add_middleware(RateLimitMiddleware)
app.add_middleware(TenantMiddleware)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """
    Tag every request with an id and log its outcome.

    A client-supplied X-Request-ID is kept so calls can be traced across
    services. Runs outside the tenant middleware, so the organization is
    known by the time the response comes back.
    """
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id
    start_time = time.perf_counter()

    response = await call_next(request)

    duration = time.perf_counter() - start_time
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = f"{duration:.4f}"
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code}",
        extra={
            **build_log_context(
                organization_id=getattr(request.state, "organization_id", None),
                request_id=request_id,
                route=request.url.path,
                method=request.method,
            ),
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 1),
        }
    )
    return response


allowed_origins = [
    "http://localhost:3000",
    "http://localhost:8000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins if settings.ENVIRONMENT != "development" else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Process-Time", "Retry-After"],
)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(TenantIsolationError)
async def tenant_isolation_error_handler(request: Request, exc: TenantIsolationError):
    """
    Handle tenant isolation violations.

    These are security incidents and are logged at error level.
    """
    logger.error(
        f"TENANT ISOLATION VIOLATION: {exc.detail}",
        extra={
            "organization_id": getattr(request.state, "organization_id", None),
            "event_type": "tenant_isolation_violation",
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "type": "tenant_isolation_error"}
    )


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "type": "authentication_error"},
        headers=exc.headers or {}
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_error_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(
        f"Rate limit exceeded: {request.url.path}",
        extra={"organization_id": getattr(request.state, "organization_id", None)}
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "type": "rate_limit_exceeded"},
        headers=exc.headers or {}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all exception handler.

    Full details go to the log; clients only see them in DEBUG.
    """
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {type(exc).__name__}: {exc}",
        exc_info=True,
        extra={"organization_id": getattr(request.state, "organization_id", None)}
    )

    if settings.DEBUG:
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "type": type(exc).__name__}
        )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"}
    )


# ============================================================================
# ROUTES
# ============================================================================

@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint for load balancers."""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": __version__
    }


@app.get("/", tags=["root"])
async def root():
    return {
        "message": "EthicsDesk API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


app.include_router(auth.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(cases.router, prefix="/api/v1")
app.include_router(activity.router, prefix="/api/v1")
app.include_router(attachments.router, prefix="/api/v1")
app.include_router(portals.router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.DEBUG}")

    uvicorn.run(
        "ethicsdesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
