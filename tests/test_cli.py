"""
tests/test_cli.py -- Operator commands in main.py.

Covers:
  - create_admin() stores an active ADMIN with a normalised email and a bcrypt hash
  - a second create_admin() for the same email raises IntegrityError
  - print_audit_trail() prints newest-first and handles an empty trail
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from audit.store import AuditStore
from auth.roles import Role
from auth.store import UserStore
from auth.tokens import verify_password
from main import create_admin, print_audit_trail


@pytest.fixture
def user_store():
    store = UserStore(db_url="sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def audit():
    store = AuditStore(db_url="sqlite:///:memory:")
    yield store
    store.close()


def test_create_admin(user_store):
    uid = create_admin(user_store, "  Ops@Example.com ", " Ops ", "s3cret-pass")
    user = user_store.get_by_id(uid)
    assert user.role is Role.ADMIN
    assert user.email == "ops@example.com"
    assert user.name == "Ops"
    assert user.is_active
    assert verify_password("s3cret-pass", user.hashed_password)


def test_create_admin_duplicate_email(user_store):
    create_admin(user_store, "ops@example.com", "Ops", "s3cret-pass")
    with pytest.raises(IntegrityError):
        create_admin(user_store, "OPS@example.com", "Other", "s3cret-pass")


def test_print_audit_trail_empty(audit, capsys):
    assert print_audit_trail(audit, 10) == 0
    assert "No admin actions recorded" in capsys.readouterr().out


def test_print_audit_trail(audit, capsys):
    audit.log_admin_action("admin-1", "PROJECT_CREATED", "PROJECT", "p1", "Admin created project Apollo")
    audit.log_admin_action("admin-1", "USER_DELETED", "USER", "u9", "Admin deleted user x@example.com")
    assert print_audit_trail(audit, 1) == 1
    out = capsys.readouterr().out
    assert "USER_DELETED" in out
    assert "PROJECT_CREATED" not in out
