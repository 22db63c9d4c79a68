"""
audit/models.py -- The admin audit record.

Immutable once written: the store exposes append and read, nothing else.
Records are for after-the-fact inspection only; no authorization decision
ever reads them.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AdminAction:
    admin_id: str
    action: str  # free-form tag, e.g. "TEAM_MEMBER_ADDED"
    target_type: str  # "PROJECT" | "TEAM" | "PROJECT_MEMBER" | "TEAM_MEMBER" | "TASK" | "USER"
    target_id: str
    details: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    id: Optional[int] = None
