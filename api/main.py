"""
api/main.py -- FastAPI application entry point for TeamDesk.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. log_requests          -- method, path, status and latency per request
  5. admin_path_guard      -- coarse 401/403 before any handler (api/guards.py)

Lifespan opens the user, tracker and audit stores, builds the access resolver
on top of them, and closes the stores on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from access.resolver import AccessResolver
from api.guards import admin_path_guard
from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.channels import router as channels_router
from api.routes.v1.projects import router as projects_router
from api.routes.v1.teams import router as teams_router
from api.routes.v1.tickets import router as tickets_router
from api.routes.v1.users import router as users_router
from audit.store import AuditStore
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from core.config import get_settings
from core.errors import TeamDeskError
from tracker.store import TrackerStore

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("teamdesk.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open stores on startup and close them on shutdown.

    The resolver holds references to the user and tracker stores, so both
    must exist before it is built.
    """
    logger.info("TeamDesk API starting up")
    app.state.user_store = UserStore()
    app.state.tracker = TrackerStore()
    app.state.audit = AuditStore()
    app.state.resolver = AccessResolver(app.state.user_store, app.state.tracker)
    app.state.setup_required = not app.state.user_store.has_users()
    logger.info(
        "Stores initialized (setup_required=%s, audit_failure_mode=%s)",
        app.state.setup_required,
        app.state.audit.failure_mode,
    )

    yield

    app.state.audit.close()
    app.state.tracker.close()
    app.state.user_store.close()
    logger.info("TeamDesk API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TeamDesk API",
    description="Team messaging and issue tracking with role and membership based access control.",
    version=API_VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced by auth-protected routes below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() and @app.middleware both wrap the current stack, so the
# last one registered is the outermost. Registered innermost first.
# ---------------------------------------------------------------------------

app.middleware("http")(admin_path_guard)


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


app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(projects_router, prefix="/api/v1", tags=["Projects"])
app.include_router(teams_router, prefix="/api/v1", tags=["Teams"])
app.include_router(channels_router, prefix="/api/v1", tags=["Channels"])
app.include_router(tickets_router, prefix="/api/v1", tags=["Tickets"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(admin_router, prefix="/api/v1/admin", tags=["Admin"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(user: User = Depends(get_current_user)):
    """Swagger UI -- requires authentication."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="TeamDesk API")


@app.get("/redoc", include_in_schema=False)
async def redoc(user: User = Depends(get_current_user)):
    """ReDoc UI -- requires authentication."""
    return get_redoc_html(openapi_url="/openapi.json", title="TeamDesk API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(TeamDeskError)
async def domain_error_handler(request: Request, exc: TeamDeskError) -> JSONResponse:
    """Render NotFound/Forbidden/Conflict/AuditWrite errors raised below the route layer."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=exc.code, message=exc.message, detail=exc.detail),
        ).model_dump(),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error and Retry-After when a rate limit is exceeded."""
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
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a dict detail. A dict is used as
    the error field directly; anything else is wrapped.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
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
    """Catch-all for unexpected server errors. The traceback goes to the log only."""
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
# Defined directly in main.py so it is reachable regardless of router state.
# Public and not rate limited.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    db_ok = request.app.state.tracker.ping()
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=API_VERSION,
        components={"database": "ok" if db_ok else "unavailable"},
    )
