"""
core/errors.py -- Domain exception taxonomy for TeamDesk.

Stores and the access resolver raise these; api/main.py renders every one of
them through the same ErrorResponse envelope used for HTTPException, so API
clients parse a single error shape regardless of where the failure started.

  NotFoundError      -> 404  referenced user/project/team/ticket does not exist
  UnauthorizedError  -> 401  no valid session
  ForbiddenError     -> 403  valid session, insufficient role or membership
  ConflictError      -> 409  duplicate membership or unique field
  AuditWriteError    -> 500  audit record could not be persisted

Layer rule: core/ is the kernel. No imports from api/, auth/, access/,
audit/, or tracker/.
"""

from __future__ import annotations


class TeamDeskError(Exception):
    """Base class. Subclasses pin the HTTP status and machine-readable code."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class NotFoundError(TeamDeskError):
    status_code = 404
    code = "not_found"


class UnauthorizedError(TeamDeskError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(TeamDeskError):
    status_code = 403
    code = "forbidden"


class ConflictError(TeamDeskError):
    status_code = 409
    code = "conflict"


class AuditWriteError(TeamDeskError):
    """The audit trail write failed; the privileged action must not report success."""

    status_code = 500
    code = "audit_write_failed"
