"""
api/main.py -- FastAPI application entry point for the content gateway.

The gateway authenticates application users and proxies their content
requests to Strapi under a small pool of role-scoped upstream credentials.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost; Starlette wraps the last added
outermost):
  1. log_requests          -- method, path, status and latency per request
  2. CORSMiddleware        -- adds CORS headers, also on 429 responses
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every long-lived collaborator onto app.state (stores, the
shared requests.Session, credential cache, forwarder, resolver, session
registry, identity resolver) and starts the session sweep task. Shutdown
cancels the task and closes everything symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import requests
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.content import content_types_router
from api.routes.content import router as content_router
from auth.platform import PlatformHeaderStrategy
from auth.sessions import SessionRegistry
from auth.store import UserStore
from auth.strategies import IdentityResolver, SessionTokenStrategy
from cache.store import MemoryStore
from content.audit import AuditStore
from content.service import ContentService
from core.config import get_settings
from core.errors import AppError
from proxy.authenticator import ProxyIdentity, UpstreamAuthenticator
from proxy.content_types import ContentTypeResolver
from proxy.credentials import CredentialCache
from proxy.forwarder import RequestForwarder

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("contentgateway.api")

# ---------------------------------------------------------------------------
# Background sweep task
# ---------------------------------------------------------------------------


async def _sweep_loop(app: FastAPI, interval_seconds: float) -> None:
    """Drop idle sessions and expired cache entries every interval_seconds.

    A failing pass is logged and the loop keeps running. CancelledError from
    task.cancel() during shutdown propagates out of asyncio.sleep and unwinds
    the coroutine.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = app.state.sessions.sweep_expired()
            app.state.token_store.sweep()
            app.state.content_type_cache.sweep()
        except Exception:
            logger.exception("Sweep pass failed")
            continue
        if removed:
            logger.info("Session sweep removed %d idle sessions", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the collaborator graph on startup, tear it down on shutdown.

    Startup order follows the dependency graph, leaf first:
      1. Stores (users, audit) -- no dependencies.
      2. Upstream side: HTTP session -> authenticator -> credential cache ->
         forwarder -> content-type resolver -> content service.
      3. Auth side: session registry -> strategies -> identity resolver.
      4. Sweep task last -- references the registry and the caches.
    """
    settings = get_settings()
    logger.info("Content gateway starting up (upstream %s)", settings.strapi_url)

    app.state.user_store = UserStore(settings.database_url)
    app.state.audit_store = AuditStore(settings.database_url)

    app.state.http = requests.Session()
    authenticator = UpstreamAuthenticator(settings.strapi_url, app.state.http, settings.strapi_timeout_seconds)
    identities = {
        role: ProxyIdentity(role=role, email=email, password=password)
        for role, (email, password) in settings.proxy_credentials().items()
    }
    app.state.token_store = MemoryStore()
    app.state.credentials = CredentialCache(
        authenticator, identities, settings.proxy_token_cache_seconds, store=app.state.token_store
    )
    app.state.forwarder = RequestForwarder(
        settings.strapi_url,
        app.state.http,
        app.state.credentials,
        settings.api_tokens(),
        settings.strapi_timeout_seconds,
    )
    app.state.content_type_cache = MemoryStore()
    app.state.content_type_resolver = ContentTypeResolver(app.state.forwarder, app.state.content_type_cache)
    app.state.content_service = ContentService(app.state.forwarder, app.state.content_type_resolver)
    logger.info(
        "Upstream initialized (%d proxy identities, %d API tokens)",
        len(identities),
        sum(1 for token in settings.api_tokens().values() if token),
    )

    app.state.sessions = SessionRegistry(app.state.user_store, idle_seconds=settings.session_idle_seconds)
    # Platform header first: a request carrying both credentials is
    # authenticated by the platform.
    app.state.identity_resolver = IdentityResolver(
        [
            PlatformHeaderStrategy(app.state.user_store, settings.platform_identity_header),
            SessionTokenStrategy(app.state.user_store),
        ],
        app.state.sessions,
    )
    logger.info("Auth initialized (platform header %s)", settings.platform_identity_header)

    app.state.sweep_task = asyncio.create_task(_sweep_loop(app, settings.session_sweep_interval_seconds))

    yield

    # Shutdown
    app.state.sweep_task.cancel()
    app.state.http.close()
    app.state.audit_store.close()
    app.state.user_store.close()
    logger.info("Content gateway shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Content Gateway API",
    description="Authenticating proxy in front of the Strapi content API.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization", get_settings().platform_identity_header],
    max_age=3600,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
#
# Order matters: /api/{contentType} is a catch-all, so every fixed /api/...
# router is included before it.
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(content_types_router, prefix="/api", tags=["Content Types"])
app.include_router(content_router, prefix="/api", tags=["Content"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render any core.errors exception with its own status and code."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is logged only, never written to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Outside /api so load balancers never hit the auth or content routers.
# No rate limit.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return liveness and current version."""
    return HealthResponse(version=VERSION)
