"""
api/main.py -- FastAPI application factory for CommitStreams.

Run with:      uvicorn asgi:app --reload
               python main.py serve

create_app(settings) builds a fully wired app. Nothing here reads the
environment directly: settings come from the caller, or from get_settings()
when the caller passes none. Tests build their own Settings and get an
isolated app with isolated stores.

Middleware stack (registration order):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- CORS headers for the frontend, credentials allowed
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. SessionMiddleware     -- signed cookie holding OAuth state between
                              redirect and callback (authlib needs it)
  5. log_requests          -- one log line per request
  6. assign_request_id     -- X-Request-ID in, ContextVar, X-Request-ID out

Lifespan handles startup (stores, auth context, session purge task) and
shutdown (cancel purge task, dispose engines) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse, UptimeResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.repositories import router as repositories_router
from api.routes.v1.roles import router as roles_router
from api.routes.v1.users import router as users_router
from auth.context import AuthContext
from auth.dependencies import get_current_user
from auth.models import User
from core.config import Settings, get_settings
from core.errors import AppError
from core.logs import configure_logging, request_id_var
from domains.store import RepositoryStore

API_VERSION = "0.1.0"

logger = logging.getLogger("commitstreams.api")

# Incoming X-Request-ID values longer than this are replaced, not trusted.
_MAX_REQUEST_ID_LEN = 128


# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: int) -> None:
    """Delete expired sessions every `interval` seconds.

    Expired sessions already resolve to None; purging only keeps the table
    small. A failed pass is logged and the loop carries on. CancelledError
    from task.cancel() during shutdown propagates out of asyncio.sleep.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            purged = await run_in_threadpool(app.state.auth.sessions.purge_expired)
        except SQLAlchemyError:
            logger.exception("Session purge failed")
            continue
        if purged:
            logger.info("Purged %d expired sessions", purged)


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


def _register_exception_handlers(app: FastAPI) -> None:
    """All handlers return the same ErrorResponse envelope so API clients can
    parse errors uniformly without inspecting status codes to choose a schema.
    """

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        """Map a domain error to its status code.

        5xx kinds are logged with the traceback and answered with the generic
        public message only; their own message may carry driver or provider
        internals.
        """
        if exc.status_code >= 500:
            logger.error(
                "%s on %s %s: %s",
                type(exc).__name__,
                request.method,
                request.url.path,
                exc.message,
                exc_info=exc,
            )
        return _error_response(exc.status_code, exc.code, exc.client_message)

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Return 429 with a structured error when a rate limit is exceeded."""
        retry_after = int(getattr(exc, "retry_after", 60))
        response = _error_response(429, "rate_limited", "Too many requests.", detail=str(exc.detail))
        response.headers["Retry-After"] = str(retry_after)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Return 422 with structured error when request body or query params fail validation."""
        return _error_response(422, "validation_error", "Request validation failed.", detail=str(exc.errors()))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Structured error for framework HTTP exceptions, unknown routes included."""
        if exc.status_code == 404:
            return _error_response(404, "not_found", f"Route {request.method} {request.url.path} not found.")
        return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all handler for unexpected server errors.

        The raw exception is written to the log only, never to the response
        body. The client receives only a generic message.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Build the per-app stores and auth context; tear them down on shutdown.

        Startup order matters: the purge task references app.state.auth, so
        the auth context must exist before the task starts.
        """
        logger.info("CommitStreams API starting up")
        app.state.auth = AuthContext.from_settings(settings)
        app.state.repositories = RepositoryStore(settings.database_url)
        app.state.started_at = time.monotonic()
        logger.info("Auth initialized (github_oauth=%s)", settings.github_enabled)
        app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.session_purge_interval_seconds))

        yield

        app.state.purge_task.cancel()
        app.state.repositories.close()
        app.state.auth.close()
        logger.info("CommitStreams API shutdown complete")

    app = FastAPI(
        title="CommitStreams API",
        description="Users, roles and cached GitHub repositories behind session authentication.",
        version=API_VERSION,
        lifespan=lifespan,
        # Built-in /docs and /redoc are replaced below by auth-protected equivalents.
        docs_url=None,
        redoc_url=None,
    )
    app.state.settings = settings

    # -----------------------------------------------------------------------
    # Middleware stack
    # -----------------------------------------------------------------------

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "X-Request-ID"],
        max_age=3600,
    )
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        session_cookie="cs_oauth_state",
        same_site="lax",
        https_only=settings.secure_cookies,
    )

    # SlowAPI looks for app.state.limiter by convention.
    limiter.enabled = settings.rate_limit_enabled
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

    # Registered after log_requests, so it wraps it and the request log line
    # already carries the id.
    @app.middleware("http")
    async def assign_request_id(request: Request, call_next):
        incoming = request.headers.get("X-Request-ID", "")
        request_id = incoming if 0 < len(incoming) <= _MAX_REQUEST_ID_LEN else str(uuid.uuid4())
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------

    app.include_router(auth_router, prefix="/api", tags=["Auth"])
    app.include_router(users_router, prefix="/api/v1", tags=["Users"])
    app.include_router(roles_router, prefix="/api/v1", tags=["Roles"])
    app.include_router(repositories_router, prefix="/api/v1", tags=["Repositories"])

    _register_exception_handlers(app)

    # -----------------------------------------------------------------------
    # Auth-protected API documentation
    # -----------------------------------------------------------------------

    @app.get("/docs", include_in_schema=False)
    async def docs(user: User = Depends(get_current_user)):
        """Swagger UI -- requires a session."""
        return get_swagger_ui_html(openapi_url="/openapi.json", title="CommitStreams API")

    @app.get("/redoc", include_in_schema=False)
    async def redoc(user: User = Depends(get_current_user)):
        """ReDoc UI -- requires a session."""
        return get_redoc_html(openapi_url="/openapi.json", title="CommitStreams API")

    # -----------------------------------------------------------------------
    # Health endpoints
    #
    # Defined directly on the app (not in a router) so they are reachable
    # regardless of router registration. No rate limit applied -- checks from
    # load balancers and monitoring systems must not be throttled.
    # -----------------------------------------------------------------------

    @app.get("/health", tags=["Health"])
    async def uptime(request: Request) -> UptimeResponse:
        """Liveness check: process uptime in seconds and the current epoch time."""
        return UptimeResponse(uptime=time.monotonic() - request.app.state.started_at, timestamp=time.time())

    @app.get("/api/v1/health", tags=["Health"])
    async def health() -> HealthResponse:
        """Return API liveness and current version."""
        return HealthResponse(version=API_VERSION)

    return app
