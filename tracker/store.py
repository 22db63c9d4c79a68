"""
tracker/store.py -- SQLAlchemy-backed persistence for projects, teams, channels, memberships and tickets.

Uses SQLAlchemy Core (not ORM) so the dataclasses in tracker/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. TrackerStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

Membership uniqueness:
  UNIQUE(project_id, user_id), UNIQUE(team_id, user_id) and
  UNIQUE(channel_id, user_id) are enforced by the database. The add_*_member()
  methods do not check first and then insert -- they insert and translate IntegrityError into ConflictError.
  Two concurrent requests adding the same membership therefore produce exactly
  one row and one ConflictError, with no transaction wrapping needed.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = TrackerStore()                               # settings.database_url
    store = TrackerStore("postgresql://user:pw@host/db") # PostgreSQL
    pid = store.create_project(Project(name="Apollo"))
    store.add_project_member(pid, user_id)
    store.close()
"""

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.config import get_settings
from core.errors import ConflictError
from tracker.models import Channel, ChannelMember, Project, ProjectMember, Team, TeamMember, Ticket

logger = logging.getLogger("teamdesk.tracker")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_projects = Table(
    "projects",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("status", String(20), nullable=False, server_default="ACTIVE"),
    Column("created_at", String(32), nullable=False),
)

_project_members = Table(
    "project_members",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("project_id", String(32), nullable=False, index=True),
    Column("user_id", String(32), nullable=False, index=True),
    Column("role", String(20), nullable=False, server_default="MEMBER"),
    Column("joined_at", String(32), nullable=False),
    UniqueConstraint("project_id", "user_id", name="uq_project_user"),
)

_teams = Table(
    "teams",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("project_id", String(32), nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("type", String(30), nullable=False, server_default="GENERAL"),
    Column("created_at", String(32), nullable=False),
)

_team_members = Table(
    "team_members",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("team_id", String(32), nullable=False, index=True),
    Column("user_id", String(32), nullable=False, index=True),
    Column("role", String(20), nullable=False, server_default="MEMBER"),
    Column("joined_at", String(32), nullable=False),
    UniqueConstraint("team_id", "user_id", name="uq_team_user"),
)

_channels = Table(
    "channels",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(100), nullable=False),
    Column("slug", String(100), nullable=False, unique=True),
    Column("description", Text),
    Column("type", String(10), nullable=False, server_default="PUBLIC"),
    Column("is_main", Boolean, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_channel_members = Table(
    "channel_members",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("channel_id", String(32), nullable=False, index=True),
    Column("user_id", String(32), nullable=False, index=True),
    Column("role", String(20), nullable=False, server_default="MEMBER"),
    Column("joined_at", String(32), nullable=False),
    UniqueConstraint("channel_id", "user_id", name="uq_channel_user"),
)

_tickets = Table(
    "tickets",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("title", String(255), nullable=False),
    Column("description", Text),
    Column("status", String(20), nullable=False, server_default="TODO"),
    Column("priority", String(10), nullable=False, server_default="MEDIUM"),
    Column("project_id", String(32), index=True),
    Column("team_id", String(32), index=True),
    Column("assignee_id", String(32), index=True),
    Column("created_by", String(32)),
    Column("due_date", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_TICKET_FIELDS = {"title", "description", "status", "priority", "project_id", "team_id", "assignee_id", "due_date"}
_PROJECT_FIELDS = {"name", "description", "status"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TrackerStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # The same engine is used from FastAPI's threadpool workers.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(self, project: Project) -> str:
        project_id = project.id or _new_id()
        with self.engine.connect() as conn:
            conn.execute(
                _projects.insert().values(
                    id=project_id,
                    name=project.name,
                    description=project.description,
                    status=project.status,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return project_id

    def get_project(self, project_id: str) -> Optional[Project]:
        with self.engine.connect() as conn:
            row = conn.execute(_projects.select().where(_projects.c.id == project_id)).fetchone()
        return _row_to_project(row) if row is not None else None

    def list_projects(self, ids: Optional[Iterable[str]] = None) -> list[Project]:
        """Return projects newest first. ids=None means every project; an empty ids means none."""
        query = _projects.select().order_by(_projects.c.created_at.desc())
        if ids is not None:
            query = query.where(_projects.c.id.in_(list(ids)))
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_project(r) for r in rows]

    def update_project(self, project_id: str, **fields) -> bool:
        """Update name, description or status. Returns False if the project does not exist."""
        unknown = set(fields) - _PROJECT_FIELDS
        if unknown:
            raise ValueError(f"Unknown project fields: {unknown!r}")
        if not fields:
            return self.get_project(project_id) is not None
        with self.engine.connect() as conn:
            result = conn.execute(_projects.update().where(_projects.c.id == project_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_project(self, project_id: str) -> bool:
        """Delete a project with its teams and all memberships.

        Tickets survive: their project link, and the team link for teams of
        this project, are cleared so the ticket stays visible to its assignee.
        """
        with self.engine.begin() as conn:
            team_ids = [r.id for r in conn.execute(select(_teams.c.id).where(_teams.c.project_id == project_id))]
            if team_ids:
                conn.execute(_team_members.delete().where(_team_members.c.team_id.in_(team_ids)))
                conn.execute(_tickets.update().where(_tickets.c.team_id.in_(team_ids)).values(team_id=None))
                conn.execute(_teams.delete().where(_teams.c.id.in_(team_ids)))
            conn.execute(_project_members.delete().where(_project_members.c.project_id == project_id))
            conn.execute(_tickets.update().where(_tickets.c.project_id == project_id).values(project_id=None))
            result = conn.execute(_projects.delete().where(_projects.c.id == project_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    def create_team(self, team: Team) -> str:
        team_id = team.id or _new_id()
        with self.engine.connect() as conn:
            conn.execute(
                _teams.insert().values(
                    id=team_id,
                    project_id=team.project_id,
                    name=team.name,
                    description=team.description,
                    type=team.type,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return team_id

    def get_team(self, team_id: str) -> Optional[Team]:
        with self.engine.connect() as conn:
            row = conn.execute(_teams.select().where(_teams.c.id == team_id)).fetchone()
        return _row_to_team(row) if row is not None else None

    def list_teams(self, ids: Optional[Iterable[str]] = None, project_id: Optional[str] = None) -> list[Team]:
        """Return teams ordered by name. ids=None means every team."""
        query = _teams.select().order_by(_teams.c.name)
        if ids is not None:
            query = query.where(_teams.c.id.in_(list(ids)))
        if project_id is not None:
            query = query.where(_teams.c.project_id == project_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_team(r) for r in rows]

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    def add_project_member(self, project_id: str, user_id: str, role: str = "MEMBER") -> ProjectMember:
        """Insert a membership row. Raises ConflictError if (project, user) already exists."""
        member = ProjectMember(project_id=project_id, user_id=user_id, role=role, id=_new_id(), joined_at=_now_iso())
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _project_members.insert().values(
                        id=member.id,
                        project_id=project_id,
                        user_id=user_id,
                        role=role,
                        joined_at=member.joined_at,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ConflictError("User is already a member of this project.") from exc
        return member

    def remove_project_member(self, project_id: str, user_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _project_members.delete().where(
                    (_project_members.c.project_id == project_id) & (_project_members.c.user_id == user_id)
                )
            )
            conn.commit()
        return result.rowcount > 0

    def list_project_members(self, project_id: str) -> list[ProjectMember]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _project_members.select()
                .where(_project_members.c.project_id == project_id)
                .order_by(_project_members.c.joined_at)
            ).fetchall()
        return [_row_to_project_member(r) for r in rows]

    def project_ids_for_user(self, user_id: str) -> frozenset[str]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_project_members.c.project_id).where(_project_members.c.user_id == user_id)
            ).fetchall()
        return frozenset(r.project_id for r in rows)

    def add_team_member(self, team_id: str, user_id: str, role: str = "MEMBER") -> TeamMember:
        """Insert a membership row. Raises ConflictError if (team, user) already exists."""
        member = TeamMember(team_id=team_id, user_id=user_id, role=role, id=_new_id(), joined_at=_now_iso())
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _team_members.insert().values(
                        id=member.id,
                        team_id=team_id,
                        user_id=user_id,
                        role=role,
                        joined_at=member.joined_at,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ConflictError("User is already a member of this team.") from exc
        return member

    def remove_team_member(self, team_id: str, user_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _team_members.delete().where((_team_members.c.team_id == team_id) & (_team_members.c.user_id == user_id))
            )
            conn.commit()
        return result.rowcount > 0

    def list_team_members(self, team_id: str) -> list[TeamMember]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _team_members.select().where(_team_members.c.team_id == team_id).order_by(_team_members.c.joined_at)
            ).fetchall()
        return [_row_to_team_member(r) for r in rows]

    def team_ids_for_user(self, user_id: str) -> frozenset[str]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(_team_members.c.team_id).where(_team_members.c.user_id == user_id)).fetchall()
        return frozenset(r.team_id for r in rows)

    def count_team_memberships(self, team_id: str, user_id: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_team_members)
                .where((_team_members.c.team_id == team_id) & (_team_members.c.user_id == user_id))
            ).scalar()
        return result or 0

    def purge_user(self, user_id: str) -> None:
        """Drop every membership of a deleted user and unassign their tickets."""
        with self.engine.begin() as conn:
            conn.execute(_project_members.delete().where(_project_members.c.user_id == user_id))
            conn.execute(_team_members.delete().where(_team_members.c.user_id == user_id))
            conn.execute(_channel_members.delete().where(_channel_members.c.user_id == user_id))
            conn.execute(_tickets.update().where(_tickets.c.assignee_id == user_id).values(assignee_id=None))

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def create_channel(self, channel: Channel) -> str:
        """Insert a channel. Raises ConflictError if the slug is taken."""
        channel_id = channel.id or _new_id()
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _channels.insert().values(
                        id=channel_id,
                        name=channel.name,
                        slug=channel.slug,
                        description=channel.description,
                        type=channel.type,
                        is_main=channel.is_main,
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ConflictError("A channel with this slug already exists.", detail=channel.slug) from exc
        return channel_id

    def get_channel(self, channel_id: str) -> Optional[Channel]:
        with self.engine.connect() as conn:
            row = conn.execute(_channels.select().where(_channels.c.id == channel_id)).fetchone()
        return _row_to_channel(row) if row is not None else None

    def list_channels(self, member_of: Optional[Iterable[str]] = None) -> list[Channel]:
        """Return channels, main channel first, then by name.

        member_of=None means every channel. Otherwise the result is every
        PUBLIC channel plus the PRIVATE channels whose id is in member_of.
        """
        query = _channels.select().order_by(_channels.c.is_main.desc(), _channels.c.name)
        if member_of is not None:
            query = query.where(or_(_channels.c.type == "PUBLIC", _channels.c.id.in_(list(member_of))))
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_channel(r) for r in rows]

    def delete_channel(self, channel_id: str) -> bool:
        """Delete a channel and its memberships."""
        with self.engine.begin() as conn:
            conn.execute(_channel_members.delete().where(_channel_members.c.channel_id == channel_id))
            result = conn.execute(_channels.delete().where(_channels.c.id == channel_id))
        return result.rowcount > 0

    def add_channel_member(self, channel_id: str, user_id: str, role: str = "MEMBER") -> ChannelMember:
        """Insert a membership row. Raises ConflictError if (channel, user) already exists."""
        member = ChannelMember(channel_id=channel_id, user_id=user_id, role=role, id=_new_id(), joined_at=_now_iso())
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _channel_members.insert().values(
                        id=member.id,
                        channel_id=channel_id,
                        user_id=user_id,
                        role=role,
                        joined_at=member.joined_at,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ConflictError("User is already a member of this channel.") from exc
        return member

    def remove_channel_member(self, channel_id: str, user_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _channel_members.delete().where(
                    (_channel_members.c.channel_id == channel_id) & (_channel_members.c.user_id == user_id)
                )
            )
            conn.commit()
        return result.rowcount > 0

    def list_channel_members(self, channel_id: str) -> list[ChannelMember]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _channel_members.select()
                .where(_channel_members.c.channel_id == channel_id)
                .order_by(_channel_members.c.joined_at)
            ).fetchall()
        return [_row_to_channel_member(r) for r in rows]

    def channel_ids_for_user(self, user_id: str) -> frozenset[str]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_channel_members.c.channel_id).where(_channel_members.c.user_id == user_id)
            ).fetchall()
        return frozenset(r.channel_id for r in rows)

    # ------------------------------------------------------------------
    # Tickets
    # ------------------------------------------------------------------

    def create_ticket(self, ticket: Ticket) -> str:
        ticket_id = ticket.id or _new_id()
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _tickets.insert().values(
                    id=ticket_id,
                    title=ticket.title,
                    description=ticket.description,
                    status=ticket.status,
                    priority=ticket.priority,
                    project_id=ticket.project_id,
                    team_id=ticket.team_id,
                    assignee_id=ticket.assignee_id,
                    created_by=ticket.created_by,
                    due_date=ticket.due_date,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return ticket_id

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        with self.engine.connect() as conn:
            row = conn.execute(_tickets.select().where(_tickets.c.id == ticket_id)).fetchone()
        return _row_to_ticket(row) if row is not None else None

    def update_ticket(self, ticket_id: str, **fields) -> bool:
        """Update ticket fields and stamp updated_at. Returns False if the ticket does not exist."""
        unknown = set(fields) - _TICKET_FIELDS
        if unknown:
            raise ValueError(f"Unknown ticket fields: {unknown!r}")
        with self.engine.connect() as conn:
            result = conn.execute(
                _tickets.update().where(_tickets.c.id == ticket_id).values(updated_at=_now_iso(), **fields)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_ticket(self, ticket_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_tickets.delete().where(_tickets.c.id == ticket_id))
            conn.commit()
        return result.rowcount > 0

    def list_tickets(
        self,
        *,
        visible_to: Optional[str] = None,
        project_ids: Iterable[str] = (),
        team_ids: Iterable[str] = (),
        project_id: Optional[str] = None,
        team_id: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
    ) -> list[Ticket]:
        """Return tickets newest first.

        visible_to=None applies no visibility restriction. Otherwise a ticket
        is included when it is assigned to visible_to, OR its project is in
        project_ids, OR its team is in team_ids. The remaining keyword filters
        are ANDed on top, so they can only narrow the result.
        """
        query = _tickets.select()
        if visible_to is not None:
            query = query.where(
                or_(
                    _tickets.c.assignee_id == visible_to,
                    _tickets.c.project_id.in_(list(project_ids)),
                    _tickets.c.team_id.in_(list(team_ids)),
                )
            )
        if project_id:
            query = query.where(_tickets.c.project_id == project_id)
        if team_id:
            query = query.where(_tickets.c.team_id == team_id)
        if status:
            query = query.where(_tickets.c.status == status)
        if priority:
            query = query.where(_tickets.c.priority == priority)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_tickets.c.created_at.desc())).fetchall()
        return [_row_to_ticket(r) for r in rows]

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def counts(self) -> dict[str, int]:
        """Return {"projects": N, "teams": N, "channels": N, "tickets": N, "active_projects": N}."""
        with self.engine.connect() as conn:
            projects = conn.execute(select(func.count()).select_from(_projects)).scalar() or 0
            active = (
                conn.execute(select(func.count()).select_from(_projects).where(_projects.c.status == "ACTIVE")).scalar()
                or 0
            )
            teams = conn.execute(select(func.count()).select_from(_teams)).scalar() or 0
            channels = conn.execute(select(func.count()).select_from(_channels)).scalar() or 0
            tickets = conn.execute(select(func.count()).select_from(_tickets)).scalar() or 0
        return {
            "projects": projects,
            "teams": teams,
            "channels": channels,
            "tickets": tickets,
            "active_projects": active,
        }

    def ticket_status_counts(self) -> dict[str, int]:
        """Group tickets by status. Statuses with no tickets are absent."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_tickets.c.status, func.count().label("n")).group_by(_tickets.c.status)
            ).fetchall()
        return {r.status: r.n for r in rows}

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_project(row) -> Project:
    return Project(
        id=row.id,
        name=row.name,
        description=row.description,
        status=row.status,
        created_at=row.created_at,
    )


def _row_to_project_member(row) -> ProjectMember:
    return ProjectMember(
        id=row.id,
        project_id=row.project_id,
        user_id=row.user_id,
        role=row.role,
        joined_at=row.joined_at,
    )


def _row_to_team(row) -> Team:
    return Team(
        id=row.id,
        project_id=row.project_id,
        name=row.name,
        description=row.description,
        type=row.type,
        created_at=row.created_at,
    )


def _row_to_team_member(row) -> TeamMember:
    return TeamMember(
        id=row.id,
        team_id=row.team_id,
        user_id=row.user_id,
        role=row.role,
        joined_at=row.joined_at,
    )


def _row_to_ticket(row) -> Ticket:
    return Ticket(
        id=row.id,
        title=row.title,
        description=row.description,
        status=row.status,
        priority=row.priority,
        project_id=row.project_id,
        team_id=row.team_id,
        assignee_id=row.assignee_id,
        created_by=row.created_by,
        due_date=row.due_date,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_channel(row) -> Channel:
    return Channel(
        id=row.id,
        name=row.name,
        slug=row.slug,
        description=row.description,
        type=row.type,
        is_main=bool(row.is_main),
        created_at=row.created_at,
    )


def _row_to_channel_member(row) -> ChannelMember:
    return ChannelMember(
        id=row.id,
        channel_id=row.channel_id,
        user_id=row.user_id,
        role=row.role,
        joined_at=row.joined_at,
    )
