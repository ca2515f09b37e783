"""
FastAPI Application - JWT Auth API
Access tokens and rotating refresh tokens for a user store
"""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.responses import JSONResponse

from jwt_auth.config import settings
from jwt_auth.core.auth import get_resolver
from jwt_auth.core.errors import AuthError, AuthFailure, ConfigError, RotationError, StoreError
from jwt_auth.core.logging import bind_context, clear_context, configure_logging, get_logger
from jwt_auth.services.token_config import TokenConfigResolver

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup and shutdown events"""
    # Startup
    configure_logging()
    logger.info(
        "api_starting",
        environment=settings.ENVIRONMENT,
        database=settings.DATABASE_URL.split("@")[1] if "@" in settings.DATABASE_URL else "configured",
        secret_override=settings.JWT_SECRET is not None,
    )
    yield
    # Shutdown
    logger.info("api_shutdown")


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="JWT access tokens with rotating refresh tokens",
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


@app.middleware("http")
async def request_context_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag every log line of a request with its request id."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    clear_context()
    bind_context(request_id=request_id)
    try:
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        clear_context()


def _unauthorized(detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": detail},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _not_configured() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Authentication is not configured"},
    )


@app.exception_handler(RotationError)
async def rotation_error_handler(request: Request, exc: RotationError) -> JSONResponse:
    # Clients get one message for every kind; the kind goes to the log only
    logger.info("refresh_rejected", reason=exc.kind.value, path=request.url.path)
    return _unauthorized("Invalid refresh token")


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    if exc.reason == AuthFailure.NOT_CONFIGURED:
        logger.error("bearer_auth_not_configured", path=request.url.path)
        return _not_configured()
    logger.info("bearer_rejected", reason=exc.reason.value, path=request.url.path)
    return _unauthorized("Invalid or expired token")


@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError) -> JSONResponse:
    logger.error("token_config_error", reason=exc.reason, path=request.url.path)
    return _not_configured()


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("token_store_error", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable"},
    )


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint - API information"""
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
async def health(
    resolver: Annotated[TokenConfigResolver, Depends(get_resolver)],
) -> dict[str, str]:
    """Health check endpoint; reports whether a signing secret still has to be set up"""
    return {
        "status": "healthy",
        "auth": "configured" if resolver.is_configured() else "setup_required",
    }


# Import and include routers
from jwt_auth.api.v1 import router as api_v1_router  # noqa: E402

app.include_router(api_v1_router, prefix=settings.API_V1_STR)
