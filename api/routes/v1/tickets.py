"""
api/routes/v1/tickets.py -- Ticket endpoints.

Routes:
  GET    /api/v1/tickets               -- visible tickets, optional filters
  POST   /api/v1/tickets               -- create (MEMBER or ADMIN)
  GET    /api/v1/tickets/{id}          -- one ticket (404 missing, 403 not visible)
  PATCH  /api/v1/tickets/{id}          -- edit (admin or assignee)
  DELETE /api/v1/tickets/{id}          -- delete (admin or assignee)

Filters on the list endpoint are ANDed onto the visibility scope, so a
filter naming a project the caller cannot see returns an empty list rather
than that project's tickets.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from access.resolver import TicketFilters
from api.context import resolver, tracker, user_store
from api.models import PriorityEnum, TicketCreate, TicketPatch, TicketResponse, TicketStatusEnum
from auth.dependencies import get_current_user, require_role
from auth.models import User
from auth.roles import Role
from core.errors import ForbiddenError, NotFoundError
from tracker.models import Ticket

logger = logging.getLogger("teamdesk.api")

router = APIRouter()


@router.get("/tickets", response_model=list[TicketResponse])
def list_tickets(
    request: Request,
    status: Optional[TicketStatusEnum] = None,
    priority: Optional[PriorityEnum] = None,
    project_id: Optional[str] = Query(default=None, max_length=32),
    team_id: Optional[str] = Query(default=None, max_length=32),
    current_user: User = Depends(get_current_user),
) -> list[TicketResponse]:
    filters = TicketFilters(
        project_id=project_id,
        team_id=team_id,
        status=status.value if status else None,
        priority=priority.value if priority else None,
    )
    tickets = resolver(request).get_user_tickets(current_user.id, filters)
    return [TicketResponse.from_ticket(t) for t in tickets]


@router.post("/tickets", response_model=TicketResponse, status_code=201)
def create_ticket(
    request: Request,
    body: TicketCreate,
    current_user: User = Depends(require_role(Role.MEMBER)),
) -> TicketResponse:
    """Create a ticket. The caller must be able to see the project and team it is filed under."""
    access = resolver(request)
    if body.project_id:
        access.authorize_project(current_user.id, body.project_id)
    if body.team_id:
        team = access.authorize_team(current_user.id, body.team_id)
        if body.project_id and team.project_id != body.project_id:
            raise HTTPException(
                status_code=400,
                detail={"code": "team_project_mismatch", "message": "Team does not belong to that project."},
            )
    if body.assignee_id:
        _require_user(request, body.assignee_id)

    store = tracker(request)
    ticket_id = store.create_ticket(
        Ticket(
            title=body.title,
            description=body.description,
            status=body.status.value,
            priority=body.priority.value,
            project_id=body.project_id,
            team_id=body.team_id,
            assignee_id=body.assignee_id,
            created_by=current_user.id,
            due_date=body.due_date,
        )
    )
    logger.info("Ticket %s created by %s", ticket_id, current_user.id)
    return TicketResponse.from_ticket(store.get_ticket(ticket_id))


@router.get("/tickets/{ticket_id}", response_model=TicketResponse)
def get_ticket(
    request: Request,
    ticket_id: str,
    current_user: User = Depends(get_current_user),
) -> TicketResponse:
    ticket = resolver(request).authorize_ticket(current_user.id, ticket_id)
    return TicketResponse.from_ticket(ticket)


@router.patch("/tickets/{ticket_id}", response_model=TicketResponse)
def update_ticket(
    request: Request,
    ticket_id: str,
    body: TicketPatch,
    current_user: User = Depends(get_current_user),
) -> TicketResponse:
    _authorize_mutation(request, current_user, ticket_id)

    updates = body.model_dump(exclude_unset=True, mode="json")
    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )
    if updates.get("assignee_id"):
        _require_user(request, updates["assignee_id"])

    store = tracker(request)
    store.update_ticket(ticket_id, **updates)
    return TicketResponse.from_ticket(store.get_ticket(ticket_id))


@router.delete("/tickets/{ticket_id}", status_code=204)
def delete_ticket(
    request: Request,
    ticket_id: str,
    current_user: User = Depends(get_current_user),
) -> Response:
    _authorize_mutation(request, current_user, ticket_id, delete=True)
    tracker(request).delete_ticket(ticket_id)
    logger.info("Ticket %s deleted by %s", ticket_id, current_user.id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _authorize_mutation(request: Request, current_user: User, ticket_id: str, delete: bool = False) -> None:
    """404 for a missing ticket, 403 unless the caller is admin or the assignee."""
    if tracker(request).get_ticket(ticket_id) is None:
        raise NotFoundError("Ticket not found.", detail=ticket_id)
    check = resolver(request).can_delete_ticket if delete else resolver(request).can_edit_ticket
    if not check(current_user.id, ticket_id):
        raise ForbiddenError("Only an admin or the assignee can change this ticket.")


def _require_user(request: Request, user_id: str) -> User:
    user = user_store(request).get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found.", detail=user_id)
    return user
