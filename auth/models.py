"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in tracker/models.py and audit/models.py -- dataclasses own domain shape;
stores and routes do the work.

Layer rule: no imports from api/, access/, audit/, or tracker/.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.roles import Role


@dataclass
class User:
    """Represents an identity in TeamDesk.

    email is the login name and is unique. id is an opaque string assigned
    by the store on insert.

    login_attempts / locked_until implement failed-login lockout: the counter
    resets on success, and locked_until (ISO 8601) blocks every attempt until
    it passes, correct password or not.

    otp_code / otp_expires hold a pending password reset. Both are cleared
    once the reset completes.
    """

    email: str
    name: str
    role: Role = Role.MEMBER
    id: str | None = None
    hashed_password: str | None = None
    is_active: bool = True
    status: str = "OFFLINE"  # "ONLINE" | "AWAY" | "BUSY" | "OFFLINE"
    created_at: str | None = None
    last_login: str | None = None
    last_active: str | None = None
    login_attempts: int = 0
    locked_until: str | None = None
    otp_code: str | None = None
    otp_expires: str | None = None
