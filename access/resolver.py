"""
access/resolver.py -- Per-user visibility scope and entity-level authorization.

The resolver answers one question per call: may this user see (or touch) this
project, team, channel or ticket? It combines the user's role (auth/roles.py) with
membership rows (tracker/store.py) and never writes to either store.

Scope:
  A user's reach over projects, teams and channels is a Scope -- either AllScope
  (ADMIN: every entity, with or without membership rows) or
  SubsetScope(ids) (everyone else: exactly the entities they hold a
  membership row for). An empty SubsetScope means "nothing"; "everything" is
  never encoded as an empty collection.

Ticket visibility for non-admins is a pure disjunction:
  assignee == user  OR  ticket.project in projects  OR  ticket.team in teams

Channel visibility for non-admins:
  channel.type == "PUBLIC"  OR  channel in channels

Query-shaped calls (can_access_*, get_user_*) answer with bool / a filtered
list. authorize_*() are the mutation-shaped variants: they raise
NotFoundError or ForbiddenError and never return a denial silently.

Layer rule: access/ imports from auth/, tracker/ and core/. It does not import
from api/ or audit/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from auth.models import User
from auth.roles import Role, is_admin
from auth.store import UserStore
from core.errors import ForbiddenError, NotFoundError
from tracker.models import Channel, Project, Team, Ticket
from tracker.store import TrackerStore

logger = logging.getLogger("teamdesk.access")


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AllScope:
    """Every entity of the kind, whether or not a membership row exists."""

    def contains(self, entity_id: Optional[str]) -> bool:
        return entity_id is not None


@dataclass(frozen=True)
class SubsetScope:
    """Exactly the listed entity ids."""

    ids: frozenset[str] = frozenset()

    def contains(self, entity_id: Optional[str]) -> bool:
        return entity_id is not None and entity_id in self.ids


Scope = Union[AllScope, SubsetScope]


@dataclass(frozen=True)
class UserAccess:
    user_id: str
    role: Role
    projects: Scope
    teams: Scope
    channels: Scope = SubsetScope()

    @property
    def can_view_all(self) -> bool:
        return isinstance(self.projects, AllScope) and isinstance(self.teams, AllScope)

    @property
    def project_ids(self) -> frozenset[str]:
        """Explicit membership ids. Empty for AllScope -- check can_view_all first."""
        return self.projects.ids if isinstance(self.projects, SubsetScope) else frozenset()

    @property
    def team_ids(self) -> frozenset[str]:
        return self.teams.ids if isinstance(self.teams, SubsetScope) else frozenset()

    @property
    def channel_ids(self) -> frozenset[str]:
        return self.channels.ids if isinstance(self.channels, SubsetScope) else frozenset()


@dataclass(frozen=True)
class TicketFilters:
    """Optional narrowing applied on top of the visibility scope."""

    project_id: Optional[str] = None
    team_id: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class AccessResolver:
    """Stateless facade over the user and tracker stores.

    Every call re-reads role and memberships, so a membership change is
    visible to the very next request.
    """

    def __init__(self, user_store: UserStore, tracker: TrackerStore) -> None:
        self.user_store = user_store
        self.tracker = tracker

    def _load_user(self, user_id: str) -> User:
        user = self.user_store.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found.", detail=user_id)
        return user

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------

    def get_user_access(self, user_id: str) -> UserAccess:
        """Resolve the user's project, team and channel scope. Raises NotFoundError for an unknown user."""
        user = self._load_user(user_id)
        if is_admin(user.role):
            return UserAccess(
                user_id=user.id, role=user.role, projects=AllScope(), teams=AllScope(), channels=AllScope()
            )
        return UserAccess(
            user_id=user.id,
            role=user.role,
            projects=SubsetScope(self.tracker.project_ids_for_user(user.id)),
            teams=SubsetScope(self.tracker.team_ids_for_user(user.id)),
            channels=SubsetScope(self.tracker.channel_ids_for_user(user.id)),
        )

    # ------------------------------------------------------------------
    # Point checks
    # ------------------------------------------------------------------

    def can_access_project(self, user_id: str, project_id: str) -> bool:
        access = self.get_user_access(user_id)
        if isinstance(access.projects, AllScope):
            return self.tracker.get_project(project_id) is not None
        return access.projects.contains(project_id)

    def can_access_team(self, user_id: str, team_id: str) -> bool:
        access = self.get_user_access(user_id)
        if isinstance(access.teams, AllScope):
            return self.tracker.get_team(team_id) is not None
        return access.teams.contains(team_id)

    def can_access_channel(self, user_id: str, channel_id: str) -> bool:
        """False for a missing channel; otherwise admin, any PUBLIC channel, or a member."""
        channel = self.tracker.get_channel(channel_id)
        if channel is None:
            return False
        return self._channel_visible(self.get_user_access(user_id), channel)

    @staticmethod
    def _channel_visible(access: UserAccess, channel: Channel) -> bool:
        return channel.type == "PUBLIC" or access.channels.contains(channel.id)

    def can_access_ticket(self, user_id: str, ticket_id: str) -> bool:
        """False for a missing ticket; otherwise admin, assignee, project member or team member."""
        ticket = self.tracker.get_ticket(ticket_id)
        if ticket is None:
            return False
        access = self.get_user_access(user_id)
        return self._ticket_visible(access, ticket)

    @staticmethod
    def _ticket_visible(access: UserAccess, ticket: Ticket) -> bool:
        if access.can_view_all:
            return True
        return (
            ticket.assignee_id == access.user_id
            or access.projects.contains(ticket.project_id)
            or access.teams.contains(ticket.team_id)
        )

    def can_edit_ticket(self, user_id: str, ticket_id: str) -> bool:
        """Admins edit any ticket; everyone else only tickets assigned to them."""
        ticket = self.tracker.get_ticket(ticket_id)
        if ticket is None:
            return False
        user = self._load_user(user_id)
        return is_admin(user.role) or ticket.assignee_id == user.id

    def can_delete_ticket(self, user_id: str, ticket_id: str) -> bool:
        return self.can_edit_ticket(user_id, ticket_id)

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def get_user_projects(self, user_id: str) -> list[Project]:
        access = self.get_user_access(user_id)
        if isinstance(access.projects, AllScope):
            return self.tracker.list_projects()
        return self.tracker.list_projects(ids=access.projects.ids)

    def get_user_teams(self, user_id: str) -> list[Team]:
        access = self.get_user_access(user_id)
        if isinstance(access.teams, AllScope):
            return self.tracker.list_teams()
        return self.tracker.list_teams(ids=access.teams.ids)

    def get_user_channels(self, user_id: str) -> list[Channel]:
        access = self.get_user_access(user_id)
        if isinstance(access.channels, AllScope):
            return self.tracker.list_channels()
        return self.tracker.list_channels(member_of=access.channels.ids)

    def get_user_tickets(self, user_id: str, filters: Optional[TicketFilters] = None) -> list[Ticket]:
        """Tickets in the user's scope, narrowed by filters. Newest first."""
        access = self.get_user_access(user_id)
        filters = filters or TicketFilters()
        narrowing = {
            "project_id": filters.project_id,
            "team_id": filters.team_id,
            "status": filters.status,
            "priority": filters.priority,
        }
        if access.can_view_all:
            return self.tracker.list_tickets(**narrowing)
        return self.tracker.list_tickets(
            visible_to=access.user_id,
            project_ids=access.project_ids,
            team_ids=access.team_ids,
            **narrowing,
        )

    # ------------------------------------------------------------------
    # Raising variants for handlers
    # ------------------------------------------------------------------

    def authorize_project(self, user_id: str, project_id: str) -> Project:
        project = self.tracker.get_project(project_id)
        if project is None:
            raise NotFoundError("Project not found.", detail=project_id)
        if not self.can_access_project(user_id, project_id):
            logger.info("Project %s denied to user %s", project_id, user_id)
            raise ForbiddenError("You do not have access to this project.")
        return project

    def authorize_team(self, user_id: str, team_id: str) -> Team:
        team = self.tracker.get_team(team_id)
        if team is None:
            raise NotFoundError("Team not found.", detail=team_id)
        if not self.can_access_team(user_id, team_id):
            logger.info("Team %s denied to user %s", team_id, user_id)
            raise ForbiddenError("You do not have access to this team.")
        return team

    def authorize_ticket(self, user_id: str, ticket_id: str) -> Ticket:
        ticket = self.tracker.get_ticket(ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket not found.", detail=ticket_id)
        if not self._ticket_visible(self.get_user_access(user_id), ticket):
            logger.info("Ticket %s denied to user %s", ticket_id, user_id)
            raise ForbiddenError("You do not have access to this ticket.")
        return ticket

    def authorize_channel(self, user_id: str, channel_id: str) -> Channel:
        channel = self.tracker.get_channel(channel_id)
        if channel is None:
            raise NotFoundError("Channel not found.", detail=channel_id)
        if not self._channel_visible(self.get_user_access(user_id), channel):
            logger.info("Channel %s denied to user %s", channel_id, user_id)
            raise ForbiddenError("You do not have access to this channel.")
        return channel
