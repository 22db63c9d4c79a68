"""Unit tests for audit/store.py -- append-only admin audit trail.

Covers:
- target_id holds a composite "<entity>:<user>" membership id
- log_admin_action() returns the stored record with id and timestamp
- get_admin_audit_trail() is newest first, bounded by limit, ties by insertion order
- "raise" mode turns a database failure into AuditWriteError
- "log" mode returns None, logs, and counts the failure
"""

import logging

import pytest
from sqlalchemy import create_engine

from audit.store import TARGET_ID_MAX_LENGTH, AuditStore, _admin_actions
from core.errors import AuditWriteError

# A path under a directory that does not exist: every connect fails.
_BROKEN_URL = "sqlite:////nonexistent-teamdesk-dir/audit.db"


@pytest.fixture
def audit():
    s = AuditStore("sqlite:///:memory:", failure_mode="raise")
    yield s
    s.close()


def test_log_returns_record(audit):
    record = audit.log_admin_action(
        "admin1", "TEAM_MEMBER_ADDED", "TEAM_MEMBER", "m1", "Admin added u to team", "10.0.0.1", "pytest"
    )
    assert record.id is not None
    assert record.created_at
    assert record.ip_address == "10.0.0.1"
    assert audit.get_admin_audit_trail() == [record]


def test_trail_is_newest_first_and_bounded(audit):
    for i in range(5):
        audit.log_admin_action("admin1", "PROJECT_CREATED", "PROJECT", f"p{i}", f"created p{i}")

    trail = audit.get_admin_audit_trail(limit=3)
    assert [r.target_id for r in trail] == ["p4", "p3", "p2"]
    stamps = [r.created_at for r in audit.get_admin_audit_trail()]
    assert stamps == sorted(stamps, reverse=True)


def test_trail_ties_break_by_insertion_order(audit, monkeypatch):
    monkeypatch.setattr("audit.store._now_iso", lambda: "2026-01-01T00:00:00+00:00")
    audit.log_admin_action("admin1", "A", "PROJECT", "first", "")
    audit.log_admin_action("admin1", "B", "PROJECT", "second", "")
    assert [r.target_id for r in audit.get_admin_audit_trail()] == ["second", "first"]


def test_non_positive_limit_returns_empty(audit):
    audit.log_admin_action("admin1", "A", "PROJECT", "p", "")
    assert audit.get_admin_audit_trail(limit=0) == []
    assert audit.get_admin_audit_trail(limit=-1) == []


def test_store_has_no_update_or_delete():
    assert not any(name.startswith(("update", "delete", "remove")) for name in dir(AuditStore))


def test_raise_mode_surfaces_write_failure(audit):
    audit.engine = create_engine(_BROKEN_URL)
    with pytest.raises(AuditWriteError):
        audit.log_admin_action("admin1", "USER_DELETED", "USER", "u1", "deleted")
    assert audit.failed_writes == 1


def test_log_mode_records_failure_and_continues(caplog):
    store = AuditStore("sqlite:///:memory:", failure_mode="log")
    store.engine = create_engine(_BROKEN_URL)
    with caplog.at_level(logging.ERROR, logger="teamdesk.audit"):
        result = store.log_admin_action("admin1", "USER_DELETED", "USER", "u1", "deleted")
    assert result is None
    assert store.failed_writes == 1
    assert "Audit write failed" in caplog.text


def test_target_id_column_fits_composite_membership_ids(audit):
    entity_id, user_id = "a" * 32, "b" * 32
    target = f"{entity_id}:{user_id}"
    assert len(target) <= TARGET_ID_MAX_LENGTH
    assert _admin_actions.c.target_id.type.length == TARGET_ID_MAX_LENGTH
    audit.log_admin_action("admin-1", "TEAM_MEMBER_REMOVED", "TEAM_MEMBER", target, "removed")
    assert audit.get_admin_audit_trail(1)[0].target_id == target
