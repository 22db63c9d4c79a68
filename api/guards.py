"""
api/guards.py -- Coarse, path-based route guard.

Runs as HTTP middleware before any router or dependency. It looks only at the
request path and the verified session claims; it never touches the database.

  1. Public paths pass straight through.
  2. Any other /api/ path without a valid session -> 401 unauthorized.
  3. A path under one of Settings.admin_path_prefixes with a non-ADMIN
     session -> 403 forbidden.

The role checked here is the role claim the session was issued with. Finer
decisions (membership, assignee, existence) belong to the access resolver and
are made inside handlers, which reload the user from the store.

Layer rule: api/ may import from any layer.
"""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse
from auth.dependencies import read_session_claims
from auth.roles import is_admin, parse_role
from core.config import get_settings

logger = logging.getLogger("teamdesk.guards")

PUBLIC_PATHS: frozenset[str] = frozenset(
    {
        "/api/v1/health",
        "/api/v1/auth/login",
        "/api/v1/auth/logout",
        "/api/v1/auth/signup",
        "/api/v1/auth/forgot-password",
        "/api/v1/auth/reset-password",
    }
)


def _deny(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump(),
    )


def is_admin_path(path: str, prefixes: list[str]) -> bool:
    """True if path equals a prefix or sits below it (segment boundary)."""
    for prefix in prefixes:
        stripped = prefix.rstrip("/")
        if path == stripped or path.startswith(stripped + "/"):
            return True
    return False


async def admin_path_guard(request: Request, call_next):
    path = request.url.path.rstrip("/") or "/"
    if path in PUBLIC_PATHS or not path.startswith("/api/"):
        return await call_next(request)

    claims = read_session_claims(request)
    if claims is None:
        return _deny(401, "unauthorized", "Authentication required.")

    if is_admin_path(path, get_settings().admin_path_prefixes) and not is_admin(parse_role(claims["role"])):
        logger.info("Admin path %s denied to user %s", path, claims["user_id"])
        return _deny(403, "forbidden", "Admin access required.")

    return await call_next(request)
