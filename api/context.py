"""
api/context.py -- Request-scoped helpers shared by the v1 routers.

Store accessors keep handlers from reaching into app.state by attribute name
in a dozen places. record_admin_action() stamps the caller's address and
user agent onto every audit record.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from access.resolver import AccessResolver
from audit.models import AdminAction
from audit.store import AuditStore
from auth.models import User
from auth.store import UserStore
from tracker.store import TrackerStore


def user_store(request: Request) -> UserStore:
    return request.app.state.user_store


def tracker(request: Request) -> TrackerStore:
    return request.app.state.tracker


def resolver(request: Request) -> AccessResolver:
    return request.app.state.resolver


def client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def record_admin_action(
    request: Request,
    admin: User,
    action: str,
    target_type: str,
    target_id: str,
    details: str,
) -> Optional[AdminAction]:
    """Append an audit record for a completed admin mutation.

    AuditWriteError propagates in "raise" mode and becomes a 500.
    """
    audit: AuditStore = request.app.state.audit
    return audit.log_admin_action(
        admin_id=admin.id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        details=details,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
