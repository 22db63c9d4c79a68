"""
api/routes/v1/admin.py -- Admin console endpoints.

Mounted under /api/v1/admin. Two tiers guard every route here:
  - api/guards.py rejects non-admin sessions on the path prefix (coarse).
  - The router-level require_admin dependency reloads the user and checks
    the stored role, so a demoted admin holding an old token is refused.

Routes:
  GET    /overview                         -- counts + last 20 audit records
  GET    /audit?limit                      -- audit trail, newest first
  GET    /users?page&limit&search&role     -- paginated user list
  PATCH  /users/{id}                       -- role / is_active
  DELETE /users/{id}                       -- delete account
  POST   /projects                         -- create project
  PATCH  /projects/{id}                    -- edit project
  DELETE /projects/{id}                    -- delete project (cascades to teams and memberships)
  POST   /teams                            -- create team
  POST   /projects/{id}/members            -- add project member
  DELETE /projects/{id}/members/{user_id}  -- remove project member
  POST   /teams/{id}/members               -- add team member
  DELETE /teams/{id}/members/{user_id}     -- remove team member
  POST   /channels                         -- create channel (creator joins as channel ADMIN)
  DELETE /channels/{id}                    -- delete channel and its memberships
  POST   /channels/{id}/members            -- add channel member
  DELETE /channels/{id}/members/{user_id}  -- remove channel member
  POST   /tickets/{id}/assign              -- reassign user / team / project

Every mutation appends exactly one audit record after the change succeeds.

Self-protection:
  An admin cannot change their own role, deactivate or delete themselves
  (403). Since the caller is always an active admin, this also keeps at
  least one active admin in place.
"""

from __future__ import annotations

import math
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from api.context import record_admin_action, tracker, user_store
from api.models import (
    AuditRecordResponse,
    ChannelCreate,
    ChannelResponse,
    MemberAdd,
    MemberResponse,
    OverviewResponse,
    Pagination,
    ProjectCreate,
    ProjectPatch,
    ProjectResponse,
    TeamCreate,
    TeamResponse,
    TicketAssign,
    TicketResponse,
    UserListResponse,
    UserPatch,
    UserResponse,
)
from audit.store import AuditStore
from auth.dependencies import require_admin
from auth.models import User
from auth.roles import Role
from core.errors import ForbiddenError, NotFoundError
from tracker.models import Channel, Project, Team

router = APIRouter(dependencies=[Depends(require_admin)])

OVERVIEW_AUDIT_LIMIT = 20


# ---------------------------------------------------------------------------
# Overview and audit trail
# ---------------------------------------------------------------------------


@router.get("/overview", response_model=OverviewResponse)
def overview(request: Request) -> OverviewResponse:
    store = tracker(request)
    audit: AuditStore = request.app.state.audit
    counts = store.counts()
    return OverviewResponse(
        total_projects=counts["projects"],
        active_projects=counts["active_projects"],
        total_teams=counts["teams"],
        total_channels=counts["channels"],
        total_tickets=counts["tickets"],
        ticket_status_counts=store.ticket_status_counts(),
        audit_trail=[AuditRecordResponse.from_action(r) for r in audit.get_admin_audit_trail(OVERVIEW_AUDIT_LIMIT)],
    )


@router.get("/audit", response_model=list[AuditRecordResponse])
def audit_trail(request: Request, limit: int = Query(default=50, ge=1, le=500)) -> list[AuditRecordResponse]:
    audit: AuditStore = request.app.state.audit
    return [AuditRecordResponse.from_action(r) for r in audit.get_admin_audit_trail(limit)]


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str = Query(default="", max_length=255),
    role: Optional[Role] = None,
) -> UserListResponse:
    users, total = user_store(request).list_users(page=page, limit=limit, search=search.strip(), role=role)
    return UserListResponse(
        users=[UserResponse.from_user(u) for u in users],
        pagination=Pagination(total=total, page=page, limit=limit, pages=math.ceil(total / limit)),
    )


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: UserPatch,
    current_user: User = Depends(require_admin),
) -> UserResponse:
    store = user_store(request)
    target = store.get_by_id(user_id)
    if target is None:
        raise NotFoundError("User not found.", detail=user_id)

    updates: dict = {}
    if body.role is not None and body.role is not target.role:
        if target.id == current_user.id:
            raise ForbiddenError("You cannot change your own role.")
        updates["role"] = body.role
    if body.is_active is not None and body.is_active != target.is_active:
        if not body.is_active and target.id == current_user.id:
            raise ForbiddenError("You cannot deactivate your own account.")
        updates["is_active"] = body.is_active

    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )

    store.update_user(user_id, **updates)
    changes = ", ".join(f"{k}={v.value if isinstance(v, Role) else v}" for k, v in updates.items())
    record_admin_action(request, current_user, "USER_UPDATED", "USER", user_id, f"Admin updated {target.email}: {changes}")
    return UserResponse.from_user(store.get_by_id(user_id))


@router.delete("/users/{user_id}", status_code=204)
def delete_user(request: Request, user_id: str, current_user: User = Depends(require_admin)) -> Response:
    if user_id == current_user.id:
        raise ForbiddenError("You cannot delete your own account.")
    store = user_store(request)
    target = store.get_by_id(user_id)
    if target is None:
        raise NotFoundError("User not found.", detail=user_id)

    tracker(request).purge_user(user_id)
    store.delete_user(user_id)
    record_admin_action(request, current_user, "USER_DELETED", "USER", user_id, f"Admin deleted user {target.email}")
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Projects and teams
# ---------------------------------------------------------------------------


@router.post("/projects", response_model=ProjectResponse, status_code=201)
def create_project(request: Request, body: ProjectCreate, current_user: User = Depends(require_admin)) -> ProjectResponse:
    store = tracker(request)
    project_id = store.create_project(
        Project(name=body.name, description=body.description, status=body.status.value)
    )
    record_admin_action(
        request, current_user, "PROJECT_CREATED", "PROJECT", project_id, f"Admin created project {body.name}"
    )
    return ProjectResponse.from_project(store.get_project(project_id))


@router.patch("/projects/{project_id}", response_model=ProjectResponse)
def update_project(
    request: Request,
    project_id: str,
    body: ProjectPatch,
    current_user: User = Depends(require_admin),
) -> ProjectResponse:
    store = tracker(request)
    if store.get_project(project_id) is None:
        raise NotFoundError("Project not found.", detail=project_id)
    updates = body.model_dump(exclude_unset=True, mode="json")
    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )
    store.update_project(project_id, **updates)
    record_admin_action(
        request,
        current_user,
        "PROJECT_UPDATED",
        "PROJECT",
        project_id,
        f"Admin updated project fields: {', '.join(sorted(updates))}",
    )
    return ProjectResponse.from_project(store.get_project(project_id))


@router.delete("/projects/{project_id}", status_code=204)
def delete_project(request: Request, project_id: str, current_user: User = Depends(require_admin)) -> Response:
    store = tracker(request)
    project = store.get_project(project_id)
    if project is None:
        raise NotFoundError("Project not found.", detail=project_id)
    store.delete_project(project_id)
    record_admin_action(
        request, current_user, "PROJECT_DELETED", "PROJECT", project_id, f"Admin deleted project {project.name}"
    )
    return Response(status_code=204)


@router.post("/teams", response_model=TeamResponse, status_code=201)
def create_team(request: Request, body: TeamCreate, current_user: User = Depends(require_admin)) -> TeamResponse:
    store = tracker(request)
    if store.get_project(body.project_id) is None:
        raise NotFoundError("Project not found.", detail=body.project_id)
    team_id = store.create_team(
        Team(project_id=body.project_id, name=body.name, description=body.description, type=body.type)
    )
    record_admin_action(request, current_user, "TEAM_CREATED", "TEAM", team_id, f"Admin created team {body.name}")
    return TeamResponse.from_team(store.get_team(team_id))


# ---------------------------------------------------------------------------
# Memberships
# ---------------------------------------------------------------------------


@router.post("/projects/{project_id}/members", response_model=MemberResponse, status_code=201)
def add_project_member(
    request: Request,
    project_id: str,
    body: MemberAdd,
    current_user: User = Depends(require_admin),
) -> MemberResponse:
    store = tracker(request)
    project = store.get_project(project_id)
    if project is None:
        raise NotFoundError("Project not found.", detail=project_id)
    user = _require_user(request, body.user_id)
    member = store.add_project_member(project_id, user.id, body.role)
    record_admin_action(
        request,
        current_user,
        "PROJECT_MEMBER_ADDED",
        "PROJECT_MEMBER",
        member.id,
        f"Admin added {user.email} to project {project.name}",
    )
    return MemberResponse.from_member(member)


@router.delete("/projects/{project_id}/members/{user_id}", status_code=204)
def remove_project_member(
    request: Request,
    project_id: str,
    user_id: str,
    current_user: User = Depends(require_admin),
) -> Response:
    if not tracker(request).remove_project_member(project_id, user_id):
        raise NotFoundError("Project membership not found.", detail=f"{project_id}/{user_id}")
    record_admin_action(
        request,
        current_user,
        "PROJECT_MEMBER_REMOVED",
        "PROJECT_MEMBER",
        f"{project_id}:{user_id}",
        f"Admin removed user {user_id} from project {project_id}",
    )
    return Response(status_code=204)


@router.post("/teams/{team_id}/members", response_model=MemberResponse, status_code=201)
def add_team_member(
    request: Request,
    team_id: str,
    body: MemberAdd,
    current_user: User = Depends(require_admin),
) -> MemberResponse:
    store = tracker(request)
    team = store.get_team(team_id)
    if team is None:
        raise NotFoundError("Team not found.", detail=team_id)
    user = _require_user(request, body.user_id)
    member = store.add_team_member(team_id, user.id, body.role)
    record_admin_action(
        request,
        current_user,
        "TEAM_MEMBER_ADDED",
        "TEAM_MEMBER",
        member.id,
        f"Admin added {user.email} to team {team.name}",
    )
    return MemberResponse.from_member(member)


@router.delete("/teams/{team_id}/members/{user_id}", status_code=204)
def remove_team_member(
    request: Request,
    team_id: str,
    user_id: str,
    current_user: User = Depends(require_admin),
) -> Response:
    if not tracker(request).remove_team_member(team_id, user_id):
        raise NotFoundError("Team membership not found.", detail=f"{team_id}/{user_id}")
    record_admin_action(
        request,
        current_user,
        "TEAM_MEMBER_REMOVED",
        "TEAM_MEMBER",
        f"{team_id}:{user_id}",
        f"Admin removed user {user_id} from team {team_id}",
    )
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


@router.post("/channels", response_model=ChannelResponse, status_code=201)
def create_channel(request: Request, body: ChannelCreate, current_user: User = Depends(require_admin)) -> ChannelResponse:
    """Create a channel. A taken slug is 409; the creating admin joins as channel ADMIN."""
    slug = body.slug or _slugify(body.name)
    if not slug:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_slug", "message": "Channel name has no characters usable in a slug."},
        )
    store = tracker(request)
    channel_id = store.create_channel(
        Channel(name=body.name, slug=slug, description=body.description, type=body.type.value, is_main=body.is_main)
    )
    store.add_channel_member(channel_id, current_user.id, role="ADMIN")
    record_admin_action(
        request, current_user, "CHANNEL_CREATED", "CHANNEL", channel_id, f"Admin created channel {body.name}"
    )
    return ChannelResponse.from_channel(store.get_channel(channel_id))


@router.delete("/channels/{channel_id}", status_code=204)
def delete_channel(request: Request, channel_id: str, current_user: User = Depends(require_admin)) -> Response:
    store = tracker(request)
    channel = store.get_channel(channel_id)
    if channel is None:
        raise NotFoundError("Channel not found.", detail=channel_id)
    store.delete_channel(channel_id)
    record_admin_action(
        request, current_user, "CHANNEL_DELETED", "CHANNEL", channel_id, f"Admin deleted channel {channel.name}"
    )
    return Response(status_code=204)


@router.post("/channels/{channel_id}/members", response_model=MemberResponse, status_code=201)
def add_channel_member(
    request: Request,
    channel_id: str,
    body: MemberAdd,
    current_user: User = Depends(require_admin),
) -> MemberResponse:
    store = tracker(request)
    channel = store.get_channel(channel_id)
    if channel is None:
        raise NotFoundError("Channel not found.", detail=channel_id)
    user = _require_user(request, body.user_id)
    member = store.add_channel_member(channel_id, user.id, body.role)
    record_admin_action(
        request,
        current_user,
        "CHANNEL_MEMBER_ADDED",
        "CHANNEL_MEMBER",
        member.id,
        f"Admin added {user.email} to channel {channel.name}",
    )
    return MemberResponse.from_member(member)


@router.delete("/channels/{channel_id}/members/{user_id}", status_code=204)
def remove_channel_member(
    request: Request,
    channel_id: str,
    user_id: str,
    current_user: User = Depends(require_admin),
) -> Response:
    if not tracker(request).remove_channel_member(channel_id, user_id):
        raise NotFoundError("Channel membership not found.", detail=f"{channel_id}/{user_id}")
    record_admin_action(
        request,
        current_user,
        "CHANNEL_MEMBER_REMOVED",
        "CHANNEL_MEMBER",
        f"{channel_id}:{user_id}",
        f"Admin removed user {user_id} from channel {channel_id}",
    )
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Ticket assignment
# ---------------------------------------------------------------------------


@router.post("/tickets/{ticket_id}/assign", response_model=TicketResponse)
def assign_ticket(
    request: Request,
    ticket_id: str,
    body: TicketAssign,
    current_user: User = Depends(require_admin),
) -> TicketResponse:
    """Point a ticket at a user, team or project. The named entity must exist."""
    store = tracker(request)
    if store.get_ticket(ticket_id) is None:
        raise NotFoundError("Ticket not found.", detail=ticket_id)

    if body.action == "assign_user":
        user = _require_user(request, _required(body.user_id, "user_id"))
        store.update_ticket(ticket_id, assignee_id=user.id)
        details = f"Admin assigned ticket to user {user.name}"
    elif body.action == "assign_team":
        team = store.get_team(_required(body.team_id, "team_id"))
        if team is None:
            raise NotFoundError("Team not found.", detail=body.team_id)
        store.update_ticket(ticket_id, team_id=team.id)
        details = f"Admin assigned ticket to team {team.name}"
    else:
        project = store.get_project(_required(body.project_id, "project_id"))
        if project is None:
            raise NotFoundError("Project not found.", detail=body.project_id)
        store.update_ticket(ticket_id, project_id=project.id)
        details = f"Admin assigned ticket to project {project.name}"

    record_admin_action(request, current_user, f"TICKET_{body.action.upper()}", "TASK", ticket_id, details)
    return TicketResponse.from_ticket(store.get_ticket(ticket_id))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _required(value: Optional[str], field: str) -> str:
    if not value:
        raise HTTPException(
            status_code=400,
            detail={"code": "missing_field", "message": f"{field} is required for this action."},
        )
    return value


def _require_user(request: Request, user_id: str) -> User:
    user = user_store(request).get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found.", detail=user_id)
    return user


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower())[:100].strip("-")
