"""Unit tests for access/resolver.py -- scope resolution and entity checks.

Fixture layout:
  - projects P1, P2; teams T1 (in P1), T2 (in P2)
  - U: MEMBER of P1 only
  - ticket A: P1, unassigned        -> visible to U via project
  - ticket B: P2 / T2, assigned to U -> visible to U via assignee
  - ticket C: P2 / T2, unassigned   -> not visible to U
  - ticket D: T2 only               -> visible to U once U joins T2

Covers:
- admin scope is AllScope and existence-checked
- member scope is exactly their membership rows
- ticket visibility disjunction and filters that only narrow
- unknown users raise NotFoundError
- authorize_* raise NotFound before Forbidden
- channels: PUBLIC for everyone, PRIVATE for members and admins only
"""

import pytest

from access.resolver import AccessResolver, AllScope, SubsetScope, TicketFilters
from auth.models import User
from auth.roles import Role
from auth.store import UserStore
from core.errors import ForbiddenError, NotFoundError
from tracker.models import Channel, Project, Team, Ticket
from tracker.store import TrackerStore


@pytest.fixture
def world():
    users = UserStore("sqlite:///:memory:")
    tracker = TrackerStore("sqlite:///:memory:")

    admin = users.create_user(User(email="root@example.com", name="Root", role=Role.ADMIN))
    u = users.create_user(User(email="u@example.com", name="U", role=Role.MEMBER))
    guest = users.create_user(User(email="g@example.com", name="G", role=Role.GUEST))

    p1 = tracker.create_project(Project(name="P1"))
    p2 = tracker.create_project(Project(name="P2"))
    t1 = tracker.create_team(Team(project_id=p1, name="T1"))
    t2 = tracker.create_team(Team(project_id=p2, name="T2"))
    tracker.add_project_member(p1, u)

    a = tracker.create_ticket(Ticket(title="A", project_id=p1, status="TODO", priority="HIGH"))
    b = tracker.create_ticket(Ticket(title="B", project_id=p2, team_id=t2, assignee_id=u, status="DONE"))
    c = tracker.create_ticket(Ticket(title="C", project_id=p2, team_id=t2))
    d = tracker.create_ticket(Ticket(title="D", team_id=t2))

    resolver = AccessResolver(users, tracker)
    yield {
        "resolver": resolver,
        "tracker": tracker,
        "admin": admin,
        "u": u,
        "guest": guest,
        "p1": p1,
        "p2": p2,
        "t1": t1,
        "t2": t2,
        "a": a,
        "b": b,
        "c": c,
        "d": d,
    }
    users.close()
    tracker.close()


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------


def test_admin_scope_is_all(world):
    access = world["resolver"].get_user_access(world["admin"])
    assert isinstance(access.projects, AllScope)
    assert isinstance(access.teams, AllScope)
    assert access.can_view_all


def test_member_scope_is_membership_rows(world):
    access = world["resolver"].get_user_access(world["u"])
    assert access.projects == SubsetScope(frozenset({world["p1"]}))
    assert access.teams == SubsetScope(frozenset())
    assert not access.can_view_all


def test_guest_without_memberships_has_empty_scope(world):
    access = world["resolver"].get_user_access(world["guest"])
    assert access.project_ids == frozenset()
    assert access.team_ids == frozenset()
    assert world["resolver"].get_user_tickets(world["guest"]) == []


def test_unknown_user_raises_not_found(world):
    with pytest.raises(NotFoundError):
        world["resolver"].get_user_access("does-not-exist")


def test_resolution_is_idempotent(world):
    r = world["resolver"]
    assert r.get_user_access(world["u"]) == r.get_user_access(world["u"])


# ---------------------------------------------------------------------------
# Point checks
# ---------------------------------------------------------------------------


def test_admin_project_access_requires_existence(world):
    r = world["resolver"]
    assert r.can_access_project(world["admin"], world["p2"])
    assert not r.can_access_project(world["admin"], "missing")
    assert not r.can_access_team(world["admin"], "missing")


def test_member_project_and_team_access(world):
    r = world["resolver"]
    assert r.can_access_project(world["u"], world["p1"])
    assert not r.can_access_project(world["u"], world["p2"])
    assert not r.can_access_team(world["u"], world["t1"])


def test_ticket_visibility_disjunction(world):
    r = world["resolver"]
    assert r.can_access_ticket(world["u"], world["a"])  # project member
    assert r.can_access_ticket(world["u"], world["b"])  # assignee
    assert not r.can_access_ticket(world["u"], world["c"])
    assert not r.can_access_ticket(world["u"], world["d"])


def test_missing_ticket_is_not_accessible(world):
    assert not world["resolver"].can_access_ticket(world["admin"], "missing")


def test_membership_change_is_seen_immediately(world):
    r = world["resolver"]
    world["tracker"].add_team_member(world["t2"], world["u"])
    assert r.can_access_team(world["u"], world["t2"])
    assert r.can_access_ticket(world["u"], world["d"])
    world["tracker"].remove_team_member(world["t2"], world["u"])
    assert not r.can_access_ticket(world["u"], world["d"])


def test_edit_and_delete_require_admin_or_assignee(world):
    r = world["resolver"]
    assert r.can_edit_ticket(world["admin"], world["c"])
    assert r.can_edit_ticket(world["u"], world["b"])
    # Visible through the project, but not assigned to U.
    assert not r.can_edit_ticket(world["u"], world["a"])
    assert not r.can_delete_ticket(world["u"], world["a"])
    assert not r.can_edit_ticket(world["u"], "missing")


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


def test_user_projects_and_teams(world):
    r = world["resolver"]
    assert [p.id for p in r.get_user_projects(world["u"])] == [world["p1"]]
    assert {p.id for p in r.get_user_projects(world["admin"])} == {world["p1"], world["p2"]}
    assert r.get_user_teams(world["u"]) == []
    assert {t.id for t in r.get_user_teams(world["admin"])} == {world["t1"], world["t2"]}


def test_user_tickets_is_exactly_the_visible_set(world):
    r = world["resolver"]
    assert {t.id for t in r.get_user_tickets(world["u"])} == {world["a"], world["b"]}
    assert len(r.get_user_tickets(world["admin"])) == 4


def test_filters_only_narrow(world):
    r = world["resolver"]
    unfiltered = {t.id for t in r.get_user_tickets(world["u"])}
    for filters in (
        TicketFilters(status="DONE"),
        TicketFilters(priority="HIGH"),
        TicketFilters(project_id=world["p2"]),
        TicketFilters(team_id=world["t2"]),
    ):
        narrowed = {t.id for t in r.get_user_tickets(world["u"], filters)}
        assert narrowed <= unfiltered

    # P2 is outside U's project scope; only the ticket assigned to U survives.
    assert [t.id for t in r.get_user_tickets(world["u"], TicketFilters(project_id=world["p2"]))] == [world["b"]]
    assert [t.id for t in r.get_user_tickets(world["u"], TicketFilters(status="DONE"))] == [world["b"]]


def test_resolver_never_mutates(world):
    r = world["resolver"]
    before = world["tracker"].project_ids_for_user(world["u"])
    r.get_user_tickets(world["u"])
    r.can_access_project(world["u"], world["p2"])
    assert world["tracker"].project_ids_for_user(world["u"]) == before


# ---------------------------------------------------------------------------
# Raising variants
# ---------------------------------------------------------------------------


def test_authorize_raises_not_found_for_missing_entities(world):
    r = world["resolver"]
    with pytest.raises(NotFoundError):
        r.authorize_project(world["u"], "missing")
    with pytest.raises(NotFoundError):
        r.authorize_team(world["u"], "missing")
    with pytest.raises(NotFoundError):
        r.authorize_ticket(world["u"], "missing")


def test_authorize_raises_forbidden_outside_scope(world):
    r = world["resolver"]
    with pytest.raises(ForbiddenError):
        r.authorize_project(world["u"], world["p2"])
    with pytest.raises(ForbiddenError):
        r.authorize_team(world["u"], world["t1"])
    with pytest.raises(ForbiddenError):
        r.authorize_ticket(world["u"], world["c"])
    assert r.authorize_ticket(world["u"], world["b"]).title == "B"


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


@pytest.fixture
def channels(world):
    tracker = world["tracker"]
    general = tracker.create_channel(Channel(name="General", slug="general", is_main=True))
    ops = tracker.create_channel(Channel(name="Ops", slug="ops", type="PRIVATE"))
    hr = tracker.create_channel(Channel(name="HR", slug="hr", type="PRIVATE"))
    tracker.add_channel_member(ops, world["u"])
    return {"general": general, "ops": ops, "hr": hr}


def test_channel_scope(world, channels):
    r = world["resolver"]
    assert isinstance(r.get_user_access(world["admin"]).channels, AllScope)
    assert r.get_user_access(world["u"]).channel_ids == frozenset({channels["ops"]})
    assert r.get_user_access(world["guest"]).channels == SubsetScope(frozenset())


def test_channel_access(world, channels):
    r = world["resolver"]
    # Public: everyone.
    assert r.can_access_channel(world["guest"], channels["general"])
    # Private: members and admins.
    assert r.can_access_channel(world["u"], channels["ops"])
    assert not r.can_access_channel(world["u"], channels["hr"])
    assert not r.can_access_channel(world["guest"], channels["ops"])
    assert r.can_access_channel(world["admin"], channels["hr"])
    # Missing: nobody, not even an admin.
    assert not r.can_access_channel(world["admin"], "missing")


def test_user_channels(world, channels):
    r = world["resolver"]
    assert [c.id for c in r.get_user_channels(world["u"])] == [channels["general"], channels["ops"]]
    assert [c.id for c in r.get_user_channels(world["guest"])] == [channels["general"]]
    assert len(r.get_user_channels(world["admin"])) == 3


def test_authorize_channel(world, channels):
    r = world["resolver"]
    with pytest.raises(NotFoundError):
        r.authorize_channel(world["u"], "missing")
    with pytest.raises(ForbiddenError):
        r.authorize_channel(world["u"], channels["hr"])
    assert r.authorize_channel(world["u"], channels["ops"]).name == "Ops"
