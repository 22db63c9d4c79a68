"""
auth/tokens.py -- JWT sessions, password hashing, lockout-aware login and OTP codes.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       user_id, email (as sub), role, and expiry. Verification returns None on
       any failure -- the route layer turns that into a 401.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered.

  Lockout: each failed password check on a real account increments a counter
       in the store; reaching MAX_LOGIN_ATTEMPTS locks the account for
       LOCKOUT_MINUTES. A locked account is refused even with the right
       password, and the refusal looks identical to a bad password.

  OTP: 3 random bytes rendered as 6 upper-case hex characters, short enough
       to type from a message. Short-lived (OTP_EXPIRE_MINUTES).

Layer rule: no imports from api/, access/, audit/, or tracker/. Import from
core/ is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.roles import Role, parse_role
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("teamdesk.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates input beyond 72 bytes; the API layer caps passwords at
    128 characters via the Pydantic field.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("teamdesk_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user_id: str, email: str, role: Role, expire_seconds: int = 0) -> str:
    """Encode a signed JWT with user identity and configurable expiry.

    Args:
        user_id:        Opaque user id from the store.
        email:          Stored as the JWT subject claim.
        role:           Role at issue time. The coarse admin-path guard trusts
                        this claim; handlers reload the user for anything finer.
        expire_seconds: Session duration. 0 means Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": email,
        "user_id": user_id,
        "role": role.value,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "user_id" not in payload or "role" not in payload:
        return None
    try:
        parse_role(payload["role"])
    except ValueError:
        return None
    return payload


# ---------------------------------------------------------------------------
# User authentication (constant-time, lockout-aware)
# ---------------------------------------------------------------------------


def _is_locked(user: User, now: datetime) -> bool:
    if not user.locked_until:
        return False
    try:
        locked_until = datetime.fromisoformat(user.locked_until)
    except ValueError:
        return False
    if locked_until.tzinfo is None:
        locked_until = locked_until.replace(tzinfo=timezone.utc)
    return now < locked_until


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Locked account: bcrypt runs against _DUMMY_HASH, the attempt is refused
    - Wrong password: bcrypt runs against the real hash, failure is counted

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if _is_locked(user, datetime.now(timezone.utc)):
        verify_password(password, _DUMMY_HASH)
        logger.warning("Login refused for locked account %s", user.id)
        return None
    if not verify_password(password, user.hashed_password):
        attempts = store.record_failed_login(
            user.id,
            max_attempts=_settings.max_login_attempts,
            lockout_minutes=_settings.lockout_minutes,
        )
        if attempts >= _settings.max_login_attempts:
            logger.warning("Account %s locked after %d failed logins", user.id, attempts)
        return None
    if not user.is_active:
        return None
    store.record_successful_login(user.id)
    return user


# ---------------------------------------------------------------------------
# Password reset codes
# ---------------------------------------------------------------------------


def generate_otp() -> tuple[str, str]:
    """Return (code, expires_at_iso) for a new password reset request."""
    code = secrets.token_hex(3).upper()
    expires = datetime.now(timezone.utc) + timedelta(minutes=_settings.otp_expire_minutes)
    return code, expires.isoformat()


def otp_matches(user: User, code: str) -> bool:
    """Constant-time comparison of a submitted code against the stored one."""
    if not user.otp_code:
        return False
    # Bytes, so non-ASCII input is a mismatch rather than a TypeError.
    return secrets.compare_digest(user.otp_code.encode(), code.strip().upper().encode())


def otp_expired(user: User) -> bool:
    if not user.otp_expires:
        return True
    expires = datetime.fromisoformat(user.otp_expires)
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires < datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the JWT access token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for most cases.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the JWT expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        "access_token",
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )
