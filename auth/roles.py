"""
auth/roles.py -- Role policy: pure predicates over a single Role value.

Roles form a total order (GUEST < MEMBER < ADMIN). Every function here is a
fixed function of its role argument -- no request context, no clock, no
database. Route guards and the access resolver build on these.

Role is a closed str-valued Enum rather than a free-form string so a new or
misspelled role cannot silently fall through a permission check: parse_role()
rejects anything outside the enum at the persistence/token boundary.

Layer rule: no imports from api/, access/, audit/, or tracker/.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    GUEST = "GUEST"


_RANK: dict[Role, int] = {
    Role.GUEST: 0,
    Role.MEMBER: 1,
    Role.ADMIN: 2,
}

_DISPLAY_NAMES: dict[Role, str] = {
    Role.ADMIN: "Administrator",
    Role.MEMBER: "Member",
    Role.GUEST: "Guest",
}


def parse_role(value: str | Role) -> Role:
    """Convert a stored or decoded role string into a Role.

    Raises ValueError for anything outside the enum. Callers at trust
    boundaries (token decode, row mapping) decide how to surface that.
    """
    if isinstance(value, Role):
        return value
    return Role(value)


def rank(role: Role) -> int:
    return _RANK[role]


def is_admin(role: Role) -> bool:
    return role is Role.ADMIN


def is_member(role: Role) -> bool:
    return role in (Role.ADMIN, Role.MEMBER)


def is_guest(role: Role) -> bool:
    return role is Role.GUEST


def has_permission(user_role: Role, required_role: Role) -> bool:
    """True iff user_role ranks at or above required_role."""
    return _RANK[user_role] >= _RANK[required_role]


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


def can_access_admin_features(role: Role) -> bool:
    return is_admin(role)


def can_create_projects(role: Role) -> bool:
    return is_member(role)


def can_manage_users(role: Role) -> bool:
    return is_admin(role)


def can_manage_projects(role: Role) -> bool:
    return is_admin(role)


def can_manage_teams(role: Role) -> bool:
    return is_admin(role)


def can_view_all_tickets(role: Role) -> bool:
    return is_member(role)


def can_edit_tickets(role: Role) -> bool:
    return is_member(role)


def can_delete_tickets(role: Role) -> bool:
    return is_admin(role)


def role_display_name(role: Role) -> str:
    return _DISPLAY_NAMES[role]
