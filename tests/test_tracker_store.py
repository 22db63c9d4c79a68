"""Unit tests for tracker/store.py -- projects, teams, channels, memberships, tickets.

Covers:
- duplicate memberships raise ConflictError and leave one row
- two threads racing to add the same team member produce one row and one conflict
- delete_project cascades to teams and memberships and detaches tickets
- list_tickets visibility disjunction and ANDed filters
- counts() and ticket_status_counts()
- purge_user() clears memberships and assignments
- channels: unique slug, unique membership, public/member listing, delete cascade
"""

import threading

import pytest

from core.errors import ConflictError
from tracker.models import Channel, Project, Team, Ticket
from tracker.store import TrackerStore


@pytest.fixture
def store():
    s = TrackerStore("sqlite:///:memory:")
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Memberships
# ---------------------------------------------------------------------------


def test_duplicate_project_member_conflicts(store):
    pid = store.create_project(Project(name="Apollo"))
    store.add_project_member(pid, "user1")
    with pytest.raises(ConflictError):
        store.add_project_member(pid, "user1")
    assert len(store.list_project_members(pid)) == 1


def test_duplicate_team_member_conflicts(store):
    pid = store.create_project(Project(name="Apollo"))
    tid = store.create_team(Team(project_id=pid, name="Core"))
    member = store.add_team_member(tid, "user1", role="LEAD")
    assert member.role == "LEAD"
    with pytest.raises(ConflictError):
        store.add_team_member(tid, "user1")
    assert store.count_team_memberships(tid, "user1") == 1


def test_remove_membership_reports_missing(store):
    pid = store.create_project(Project(name="Apollo"))
    store.add_project_member(pid, "user1")
    assert store.remove_project_member(pid, "user1") is True
    assert store.remove_project_member(pid, "user1") is False
    assert store.project_ids_for_user("user1") == frozenset()


def test_concurrent_team_member_insert(tmp_path):
    """Both threads pass any application-level check; the constraint admits one."""
    store = TrackerStore(f"sqlite:///{tmp_path / 'race.db'}")
    pid = store.create_project(Project(name="Apollo"))
    tid = store.create_team(Team(project_id=pid, name="Core"))

    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    lock = threading.Lock()

    def add():
        barrier.wait()
        try:
            store.add_team_member(tid, "user1")
            result = "ok"
        except ConflictError:
            result = "conflict"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=add) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["conflict", "ok"]
    assert store.count_team_memberships(tid, "user1") == 1
    store.close()


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


def test_update_project(store):
    pid = store.create_project(Project(name="Apollo"))
    assert store.update_project(pid, status="ON_HOLD") is True
    assert store.get_project(pid).status == "ON_HOLD"
    assert store.update_project("missing", name="x") is False
    with pytest.raises(ValueError):
        store.update_project(pid, created_at="2020-01-01")


def test_delete_project_cascades(store):
    pid = store.create_project(Project(name="Apollo"))
    other = store.create_project(Project(name="Gemini"))
    tid = store.create_team(Team(project_id=pid, name="Core"))
    keep_tid = store.create_team(Team(project_id=other, name="Other"))
    store.add_project_member(pid, "user1")
    store.add_team_member(tid, "user1")
    store.add_team_member(keep_tid, "user1")
    ticket_id = store.create_ticket(Ticket(title="Fix", project_id=pid, team_id=tid, assignee_id="user1"))

    assert store.delete_project(pid) is True

    assert store.get_project(pid) is None
    assert store.get_team(tid) is None
    assert store.project_ids_for_user("user1") == frozenset()
    assert store.team_ids_for_user("user1") == frozenset({keep_tid})
    ticket = store.get_ticket(ticket_id)
    assert ticket.project_id is None
    assert ticket.team_id is None
    assert ticket.assignee_id == "user1"
    assert store.delete_project(pid) is False


def test_list_projects_by_ids(store):
    a = store.create_project(Project(name="A"))
    store.create_project(Project(name="B"))
    assert [p.id for p in store.list_projects(ids=[a])] == [a]
    assert store.list_projects(ids=[]) == []
    assert len(store.list_projects()) == 2


# ---------------------------------------------------------------------------
# Tickets
# ---------------------------------------------------------------------------


def test_list_tickets_visibility_and_filters(store):
    p1 = store.create_project(Project(name="P1"))
    p2 = store.create_project(Project(name="P2"))
    t2 = store.create_team(Team(project_id=p2, name="T2"))
    mine = store.create_ticket(Ticket(title="mine", project_id=p2, assignee_id="u"))
    in_p1 = store.create_ticket(Ticket(title="p1", project_id=p1, status="DONE"))
    in_t2 = store.create_ticket(Ticket(title="t2", team_id=t2, priority="URGENT"))
    store.create_ticket(Ticket(title="hidden", project_id=p2))

    visible = store.list_tickets(visible_to="u", project_ids=[p1], team_ids=[t2])
    assert {t.id for t in visible} == {mine, in_p1, in_t2}

    done = store.list_tickets(visible_to="u", project_ids=[p1], team_ids=[t2], status="DONE")
    assert [t.id for t in done] == [in_p1]

    # No memberships: only the assigned ticket.
    assert [t.id for t in store.list_tickets(visible_to="u")] == [mine]

    assert len(store.list_tickets()) == 4


def test_update_ticket_stamps_updated_at(store):
    tid = store.create_ticket(Ticket(title="Fix"))
    before = store.get_ticket(tid)
    assert store.update_ticket(tid, status="IN_PROGRESS") is True
    after = store.get_ticket(tid)
    assert after.status == "IN_PROGRESS"
    assert after.updated_at >= before.updated_at
    with pytest.raises(ValueError):
        store.update_ticket(tid, created_by="someone")


def test_delete_ticket(store):
    tid = store.create_ticket(Ticket(title="Fix"))
    assert store.delete_ticket(tid) is True
    assert store.get_ticket(tid) is None
    assert store.delete_ticket(tid) is False


# ---------------------------------------------------------------------------
# Aggregates and user purge
# ---------------------------------------------------------------------------


def test_counts(store):
    pid = store.create_project(Project(name="A"))
    store.create_project(Project(name="B", status="ARCHIVED"))
    store.create_team(Team(project_id=pid, name="T"))
    store.create_ticket(Ticket(title="1"))
    store.create_ticket(Ticket(title="2", status="DONE"))
    store.create_ticket(Ticket(title="3", status="DONE"))

    store.create_channel(Channel(name="General", slug="general"))

    assert store.counts() == {"projects": 2, "teams": 1, "channels": 1, "tickets": 3, "active_projects": 1}
    assert store.ticket_status_counts() == {"TODO": 1, "DONE": 2}


def test_purge_user(store):
    pid = store.create_project(Project(name="A"))
    tid = store.create_team(Team(project_id=pid, name="T"))
    store.add_project_member(pid, "gone")
    store.add_team_member(tid, "gone")
    cid = store.create_channel(Channel(name="Private", slug="private", type="PRIVATE"))
    store.add_channel_member(cid, "gone")
    ticket_id = store.create_ticket(Ticket(title="x", assignee_id="gone"))

    store.purge_user("gone")

    assert store.project_ids_for_user("gone") == frozenset()
    assert store.team_ids_for_user("gone") == frozenset()
    assert store.channel_ids_for_user("gone") == frozenset()
    assert store.get_ticket(ticket_id).assignee_id is None


def test_ping(store):
    assert store.ping() is True


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


def test_channel_slug_is_unique(store):
    store.create_channel(Channel(name="General", slug="general"))
    with pytest.raises(ConflictError):
        store.create_channel(Channel(name="General again", slug="general"))


def test_duplicate_channel_member_conflicts(store):
    cid = store.create_channel(Channel(name="Ops", slug="ops", type="PRIVATE"))
    store.add_channel_member(cid, "user1")
    with pytest.raises(ConflictError):
        store.add_channel_member(cid, "user1")
    assert [m.user_id for m in store.list_channel_members(cid)] == ["user1"]
    assert store.channel_ids_for_user("user1") == frozenset({cid})


def test_list_channels_public_plus_membership(store):
    general = store.create_channel(Channel(name="General", slug="general", is_main=True))
    random = store.create_channel(Channel(name="Random", slug="random"))
    ops = store.create_channel(Channel(name="Ops", slug="ops", type="PRIVATE"))
    hr = store.create_channel(Channel(name="HR", slug="hr", type="PRIVATE"))
    store.add_channel_member(ops, "user1")

    assert [c.id for c in store.list_channels()] == [general, hr, ops, random]
    assert [c.id for c in store.list_channels(member_of=frozenset())] == [general, random]
    assert [c.id for c in store.list_channels(member_of={ops})] == [general, ops, random]
    assert store.get_channel(general).is_main is True


def test_delete_channel_drops_memberships(store):
    cid = store.create_channel(Channel(name="Ops", slug="ops", type="PRIVATE"))
    store.add_channel_member(cid, "user1")
    assert store.delete_channel(cid) is True
    assert store.get_channel(cid) is None
    assert store.channel_ids_for_user("user1") == frozenset()
    assert store.delete_channel(cid) is False
