"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper (same as tracker/store.py).
UserStore is the repository; _row_to_user is the mapper.
Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  email is UNIQUE at the schema level. Signup does not pre-check for an
  existing row -- create_user() lets the IntegrityError surface so two
  concurrent signups for the same address cannot both succeed.

Layer rule: no imports from api/, access/, audit/, or tracker/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, or_, select
from sqlalchemy.engine import Engine

from auth.models import User
from auth.roles import Role, parse_role
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("hashed_password", Text),
    Column("role", String(10), nullable=False, server_default=Role.MEMBER.value),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("status", String(10), nullable=False, server_default="OFFLINE"),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
    Column("last_active", String(32)),
    Column("login_attempts", Integer, nullable=False, server_default="0"),
    Column("locked_until", String(32)),
    Column("otp_code", String(12)),
    Column("otp_expires", String(32)),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        uid = store.create_user(User(email="a@example.com", name="A", role=Role.ADMIN,
                                     hashed_password=hash_password("secret")))
        user = store.get_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> str:
        """Insert a new user and return its assigned id.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers (signup, admin create) translate that into a 409 conflict.
        """
        user_id = user.id or _new_id()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=user.email,
                    name=user.name,
                    hashed_password=user.hashed_password,
                    role=user.role.value,
                    is_active=1 if user.is_active else 0,
                    status=user.status,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return user_id

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email. Comparison is case-insensitive."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(func.lower(_users.c.email) == email.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        search: str = "",
        role: Role | None = None,
    ) -> tuple[list[User], int]:
        """Return one page of users (newest first) plus the total match count.

        search matches name or email, case-insensitive substring.
        """
        clauses = []
        if search:
            pattern = f"%{search.lower()}%"
            clauses.append(or_(func.lower(_users.c.name).like(pattern), func.lower(_users.c.email).like(pattern)))
        if role is not None:
            clauses.append(_users.c.role == role.value)

        query = _users.select().where(*clauses).order_by(_users.c.created_at.desc())
        count_query = select(func.count()).select_from(_users).where(*clauses)
        offset = max(page - 1, 0) * limit
        with self.engine.connect() as conn:
            rows = conn.execute(query.offset(offset).limit(limit)).fetchall()
            total = conn.execute(count_query).scalar() or 0
        return [_row_to_user(r) for r in rows], total

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: name, role, is_active, status, hashed_password.
        role may be passed as Role; is_active as bool.

        Returns True if a row was updated, False if user_id was not found.
        """
        if "role" in fields:
            fields["role"] = parse_role(fields["role"]).value
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def update_presence(self, user_id: str, status: str) -> bool:
        """Set the presence status and stamp last_active."""
        return self.update_user(user_id, status=status, last_active=_now_iso())

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        Membership rows and ticket assignments live in the tracker store; the
        caller clears those. Self-deletion is blocked at the route layer.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Login state
    # ------------------------------------------------------------------

    def record_failed_login(self, user_id: str, max_attempts: int, lockout_minutes: int) -> int:
        """Increment the failure counter; lock the account once it reaches max_attempts.

        The increment is a single UPDATE ... SET login_attempts = login_attempts + 1
        so concurrent failures are all counted. Returns the new attempt count.
        """
        with self.engine.connect() as conn:
            conn.execute(
                _users.update().where(_users.c.id == user_id).values(login_attempts=_users.c.login_attempts + 1)
            )
            attempts = conn.execute(select(_users.c.login_attempts).where(_users.c.id == user_id)).scalar() or 0
            if attempts >= max_attempts:
                locked_until = datetime.now(timezone.utc) + timedelta(minutes=lockout_minutes)
                conn.execute(
                    _users.update().where(_users.c.id == user_id).values(locked_until=locked_until.isoformat())
                )
            conn.commit()
        return attempts

    def record_successful_login(self, user_id: str) -> None:
        """Reset lockout state and stamp last_login."""
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(login_attempts=0, locked_until=None, last_login=now, last_active=now)
            )
            conn.commit()

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def set_otp(self, user_id: str, otp_code: str, expires_at: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(otp_code=otp_code, otp_expires=expires_at))
            conn.commit()

    def complete_password_reset(self, user_id: str, hashed_password: str) -> None:
        """Store the new hash, clear the OTP and any lockout in one UPDATE."""
        with self.engine.connect() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(
                    hashed_password=hashed_password,
                    otp_code=None,
                    otp_expires=None,
                    login_attempts=0,
                    locked_until=None,
                )
            )
            conn.commit()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        role=parse_role(row.role),
        is_active=bool(row.is_active),
        status=row.status,
        created_at=row.created_at,
        last_login=row.last_login,
        last_active=row.last_active,
        login_attempts=row.login_attempts or 0,
        locked_until=row.locked_until,
        otp_code=row.otp_code,
        otp_expires=row.otp_expires,
    )
