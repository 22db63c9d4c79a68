"""
audit/store.py -- Append-only persistence for admin audit records.

Pattern: Repository + Data Mapper, like tracker/store.py, minus every
mutating method other than insert. There is deliberately no update or delete.

Failure policy:
  log_admin_action() runs in one of two modes, chosen by AUDIT_FAILURE_MODE:

  "raise" (default): a database error becomes AuditWriteError, which the API
      renders as a 500 -- the privileged action is not reported as a success
      when its audit record is missing. The action itself has already been
      committed and is not rolled back, so a client retrying a membership add
      after such a 500 gets 409.

  "log": the error is written with logger.exception, failed_writes is
      incremented so the gap is observable, and the call returns None.

Ordering:
  get_admin_audit_trail() orders by created_at DESC, then id DESC. ISO 8601
  UTC timestamps sort lexically; the autoincrement id breaks same-instant ties
  in insertion order.
"""

import logging
from datetime import datetime, timezone
from typing import Literal, Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from audit.models import AdminAction
from core.config import get_settings
from core.errors import AuditWriteError

logger = logging.getLogger("teamdesk.audit")

# Membership removals record "<entity_id>:<user_id>", two 32-char ids plus a colon.
TARGET_ID_MAX_LENGTH = 128

_metadata = MetaData()

_admin_actions = Table(
    "admin_actions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("admin_id", String(32), nullable=False, index=True),
    Column("action", String(64), nullable=False),
    Column("target_type", String(32), nullable=False),
    Column("target_id", String(TARGET_ID_MAX_LENGTH), nullable=False),
    Column("details", Text, nullable=False, server_default=""),
    Column("ip_address", String(64)),
    Column("user_agent", Text),
    Column("created_at", String(32), nullable=False, index=True),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


class AuditStore:
    """Repository for AdminAction records.

    Usage:
        audit = AuditStore()
        audit.log_admin_action(admin.id, "TEAM_MEMBER_ADDED", "TEAM_MEMBER", member.id,
                               "Admin added user to team", ip_address="10.0.0.1")
        recent = audit.get_admin_audit_trail(limit=20)
    """

    def __init__(
        self,
        db_url: Optional[str] = None,
        failure_mode: Optional[Literal["raise", "log"]] = None,
    ) -> None:
        settings = get_settings()
        db_url = db_url or settings.database_url
        self.failure_mode = failure_mode or settings.audit_failure_mode
        self.failed_writes = 0
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def log_admin_action(
        self,
        admin_id: str,
        action: str,
        target_type: str,
        target_id: str,
        details: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[AdminAction]:
        """Append one audit record and return it.

        Raises AuditWriteError on a database error in "raise" mode; returns
        None in "log" mode.
        """
        created_at = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _admin_actions.insert().values(
                        admin_id=admin_id,
                        action=action,
                        target_type=target_type,
                        target_id=target_id,
                        details=details,
                        ip_address=ip_address,
                        user_agent=user_agent,
                        created_at=created_at,
                    )
                )
                conn.commit()
                record_id = result.inserted_primary_key[0]
        except SQLAlchemyError as exc:
            self.failed_writes += 1
            if self.failure_mode == "raise":
                raise AuditWriteError("Audit record could not be written.", detail=action) from exc
            logger.exception("Audit write failed for %s on %s %s by %s", action, target_type, target_id, admin_id)
            return None

        logger.info("%s %s %s by %s", action, target_type, target_id, admin_id)
        return AdminAction(
            id=record_id,
            admin_id=admin_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=created_at,
        )

    def get_admin_audit_trail(self, limit: int = 50) -> list[AdminAction]:
        """Return at most `limit` records, newest first. limit <= 0 returns []."""
        if limit <= 0:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(
                _admin_actions.select()
                .order_by(_admin_actions.c.created_at.desc(), _admin_actions.c.id.desc())
                .limit(limit)
            ).fetchall()
        return [_row_to_action(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


def _row_to_action(row) -> AdminAction:
    return AdminAction(
        id=row.id,
        admin_id=row.admin_id,
        action=row.action,
        target_type=row.target_type,
        target_id=row.target_id,
        details=row.details,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        created_at=row.created_at,
    )
