"""
FastAPI Main Application

found-money REST API: search, email connection, claim forms, records,
profile and subscription webhooks.
"""
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from found_money import __version__
from found_money.api.dependencies import get_settings
from found_money.api.routers import email, forms, profile, records, search, webhooks
from found_money.api.schemas import HealthCheck
from found_money.config import Settings
from found_money.config import get_settings as load_settings
from found_money.errors import (
    EmailNotConnectedError,
    FoundMoneyError,
    JurisdictionNotSupportedError,
    RequestValidationError,
    StatusTransitionError,
    UpstreamError,
)
from found_money.ratelimit import InMemoryBucketStore, RateLimiter, RedisBucketStore, client_key
from found_money.store import ProfileStore

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}

# Probes are never rate limited
RATE_LIMIT_EXEMPT = {"/health"}

ERROR_STATUS = {
    RequestValidationError: status.HTTP_400_BAD_REQUEST,
    EmailNotConnectedError: status.HTTP_400_BAD_REQUEST,
    JurisdictionNotSupportedError: status.HTTP_400_BAD_REQUEST,
    StatusTransitionError: status.HTTP_409_CONFLICT,
    UpstreamError: status.HTTP_502_BAD_GATEWAY,
}


def build_rate_limiter(settings: Settings) -> RateLimiter:
    """Shared Redis buckets when redis_url is set, process-local otherwise."""
    store = RedisBucketStore.from_url(settings.redis_url) if settings.redis_url else InMemoryBucketStore()
    return RateLimiter(store, capacity=settings.rate_limit_requests, window_seconds=settings.rate_limit_window_seconds)


def create_app(settings: Optional[Settings] = None, rate_limiter: Optional[RateLimiter] = None) -> FastAPI:
    """Build the application. Every request sees the given settings."""
    settings = settings or load_settings()
    limiter = rate_limiter or build_rate_limiter(settings)
    max_body_bytes = settings.max_body_kb * 1024

    app = FastAPI(
        title="found-money API",
        description="Finds unclaimed money for a user and prepares the claim paperwork",
        version=__version__,
    )
    app.dependency_overrides[get_settings] = lambda: settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.app_web_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        length = request.headers.get("content-length")
        if length and length.isdigit() and int(length) > max_body_bytes:
            return JSONResponse(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                content={"detail": f"Request body too large (max: {settings.max_body_kb}KB)"},
            )
        return await call_next(request)

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        if request.url.path not in RATE_LIMIT_EXEMPT:
            key = client_key(request.headers, request.client.host if request.client else None)
            decision = limiter.check(key)
            if not decision.allowed:
                logger.info("Rate limited %s", key)
                return JSONResponse(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    content={"detail": "Too many requests. Please try again later."},
                    headers={"Retry-After": str(decision.retry_after)},
                )
        return await call_next(request)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    @app.exception_handler(FoundMoneyError)
    async def domain_error_handler(request: Request, exc: FoundMoneyError):
        code = next(
            (c for cls, c in ERROR_STATUS.items() if isinstance(exc, cls)),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        if code >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        return JSONResponse(status_code=code, content={"detail": str(exc)})

    app.include_router(search.router)
    app.include_router(email.router)
    app.include_router(forms.router)
    app.include_router(webhooks.router)
    app.include_router(profile.router)
    app.include_router(records.router)

    @app.get("/health", response_model=HealthCheck, tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            200 when the database answers and configuration is complete, 503 otherwise
        """
        try:
            ProfileStore(settings.database_path).ping()
            database_status = "connected"
        except sqlite3.Error as e:
            database_status = f"error: {e}"

        missing = settings.missing_configuration()
        configuration = {
            name: name not in missing
            for name in ("openai_api_key", "gmail_client_id", "gmail_client_secret", "gmail_redirect_uri", "webhook_secret")
        }
        healthy = database_status == "connected" and not missing
        body = HealthCheck(
            status="healthy" if healthy else "unhealthy",
            version=__version__,
            database=database_status,
            configuration=configuration,
            timestamp=datetime.now(timezone.utc),
        )
        return JSONResponse(
            status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
            content=body.model_dump(mode="json"),
        )

    return app
