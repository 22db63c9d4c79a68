"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two credential sources are checked in priority order:
  1. JWT cookie ("access_token") -- set by the login endpoint.
  2. Authorization: Bearer <token> header -- API clients.

read_session_claims() returns the verified token payload without touching
the database. The coarse admin-path guard uses it: the session's
{user_id, role} pair is trusted as issued.

try_get_current_user() is the soft variant (returns None on failure) and
reloads the user so deactivated accounts lose access immediately.
get_current_user() wraps it and raises UnauthorizedError (401) if unauthenticated.
require_admin() / require_role() add HTTP 403 on insufficient role.

Layer rule: no imports from access/, audit/, or tracker/. core/errors is allowed.
  auth/dependencies.py may import from fastapi (for Depends/HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import HTTPException, Request

from auth.models import User
from auth.roles import Role, has_permission, is_admin
from auth.tokens import decode_access_token
from core.errors import UnauthorizedError


def _extract_token(request: Request) -> str | None:
    token: str | None = request.cookies.get("access_token")
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def read_session_claims(request: Request) -> dict | None:
    """Return the decoded session payload, or None if there is no valid session."""
    token = _extract_token(request)
    if not token:
        return None
    return decode_access_token(token)


def try_get_current_user(request: Request) -> User | None:
    """Attempt to authenticate the request via cookie or Bearer token.

    Returns the authenticated User on success, None on any failure.
    Never raises -- callers that need a hard 401 should use get_current_user().
    """
    payload = read_session_claims(request)
    if payload is None:
        return None
    user_store = request.app.state.user_store
    user = user_store.get_by_id(payload["user_id"])
    if user and user.is_active:
        return user
    return None


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise UnauthorizedError("Authentication required.")
    return user


def require_admin(request: Request) -> User:
    """Require admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    user = get_current_user(request)
    if not is_admin(user.role):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return user


def require_role(minimum: Role) -> Callable[[Request], User]:
    """Build a dependency that admits users ranked at or above `minimum`.

        @router.post("/tickets")
        def route(user: User = Depends(require_role(Role.MEMBER))): ...
    """

    def dependency(request: Request) -> User:
        user = get_current_user(request)
        if not has_permission(user.role, minimum):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"{minimum.value.title()} role or higher required."},
            )
        return user

    return dependency
