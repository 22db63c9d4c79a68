"""
api/routes/v1/auth.py -- Authentication and account recovery endpoints.

Routes:
  POST /api/v1/auth/login              -- email/password login; sets JWT cookie
  POST /api/v1/auth/logout             -- clears cookie; 200
  POST /api/v1/auth/signup             -- self-service MEMBER account
  POST /api/v1/auth/forgot-password    -- issue a one-time reset code
  POST /api/v1/auth/reset-password     -- redeem the code, set a new password
  GET  /api/v1/auth/me                 -- current user info (requires auth)
  GET  /api/v1/auth/role               -- current user's role (requires auth)

Security:
  POST /login, /forgot-password and /reset-password are rate-limited per IP
  (Settings.login_rate_limit).
  authenticate_user() provides timing equalization and lockout -- use it, never inline.
  Cache-Control: no-store on responses that carry a token or a reset code.
  /forgot-password answers identically whether or not the email is registered.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.context import user_store as get_user_store
from api.limiter import limiter
from api.models import (
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    ResetPasswordRequest,
    RoleResponse,
    SignupRequest,
    UserResponse,
)
from auth.dependencies import get_current_user
from auth.models import User
from auth.roles import Role, role_display_name
from auth.store import UserStore
from auth.tokens import (
    authenticate_user,
    create_access_token,
    generate_otp,
    hash_password,
    otp_expired,
    otp_matches,
    set_auth_cookie,
)
from core.config import get_settings

_settings = get_settings()

_RESET_MESSAGE = "If that email is registered, a reset code has been issued."

# Auth policy:
# - POST /api/v1/auth/login:            public
# - POST /api/v1/auth/logout:           public -- clearing a cookie needs no prior auth
# - POST /api/v1/auth/signup:           public
# - POST /api/v1/auth/forgot-password:  public
# - POST /api/v1/auth/reset-password:   public
# - GET  /api/v1/auth/me:               requires auth (get_current_user)
# - GET  /api/v1/auth/role:             requires auth (get_current_user)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set JWT cookie.

    Returns the same generic error for unknown email, wrong password, locked
    and deactivated accounts ("bad_credentials").
    """
    store: UserStore = get_user_store(request)
    user = authenticate_user(store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = create_access_token(user.id, user.email, user.role)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.token_expire_seconds,
            user_id=user.id,
            email=user.email,
            role=user.role,
        ).model_dump(mode="json"),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie("access_token")
    return resp


@router.post("/auth/signup", response_model=UserResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> UserResponse:
    """Create a MEMBER account. The role is never taken from the request."""
    store: UserStore = get_user_store(request)
    new_user = User(
        email=body.email.lower(),
        name=body.name,
        role=Role.MEMBER,
        hashed_password=hash_password(body.password),
    )
    if store.get_by_email(new_user.email) is not None:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "An account with that email already exists."},
        )
    try:
        user_id = store.create_user(new_user)
    except IntegrityError as exc:
        # Lost a race with a concurrent signup for the same email.
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "An account with that email already exists."},
        ) from exc
    return UserResponse.from_user(store.get_by_id(user_id))


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/forgot-password", response_model=ForgotPasswordResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> JSONResponse:
    """Store a short-lived reset code for the account, if it exists.

    No mail transport is wired in; with DEBUG=true the code is echoed in the
    response so the flow can be exercised locally.
    """
    store: UserStore = get_user_store(request)
    user = store.get_by_email(body.email)
    otp_code = None
    if user is not None and user.is_active:
        otp_code, expires_at = generate_otp()
        store.set_otp(user.id, otp_code, expires_at)

    resp = JSONResponse(
        content=ForgotPasswordResponse(
            message=_RESET_MESSAGE,
            otp_code=otp_code if _settings.debug else None,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """Redeem a reset code. Clears the code and any login lockout on success."""
    store: UserStore = get_user_store(request)
    user = store.get_by_email(body.email)
    if user is None or not user.otp_code:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_reset_request", "message": "No password reset was requested for this account."},
        )
    if otp_expired(user):
        raise HTTPException(
            status_code=400,
            detail={"code": "otp_expired", "message": "The reset code has expired. Request a new one."},
        )
    if not otp_matches(user, body.otp_code):
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_otp", "message": "The reset code is not valid."},
        )
    store.complete_password_reset(user.id, hash_password(body.new_password))
    return MessageResponse(message="Password has been reset.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(
        user_id=current_user.id,
        email=current_user.email,
        name=current_user.name,
        role=current_user.role,
        role_display_name=role_display_name(current_user.role),
    )


@router.get("/auth/role", response_model=RoleResponse)
def role(current_user: User = Depends(get_current_user)) -> RoleResponse:
    """Return the caller's current role as stored, not as issued in the token."""
    return RoleResponse(role=current_user.role)
