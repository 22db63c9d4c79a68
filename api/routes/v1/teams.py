"""
api/routes/v1/teams.py -- Team read endpoints for signed-in users.

Routes:
  GET /api/v1/teams                    -- teams in the caller's scope
  GET /api/v1/teams/{id}/members       -- membership list (fine check)
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.context import resolver, tracker
from api.models import MemberResponse, TeamResponse
from auth.dependencies import get_current_user
from auth.models import User

router = APIRouter()


@router.get("/teams", response_model=list[TeamResponse])
def list_teams(
    request: Request,
    project_id: Optional[str] = Query(default=None, max_length=32),
    current_user: User = Depends(get_current_user),
) -> list[TeamResponse]:
    """Teams in scope, optionally restricted to one project."""
    teams = resolver(request).get_user_teams(current_user.id)
    if project_id:
        teams = [t for t in teams if t.project_id == project_id]
    return [TeamResponse.from_team(t) for t in teams]


@router.get("/teams/{team_id}/members", response_model=list[MemberResponse])
def list_team_members(
    request: Request,
    team_id: str,
    current_user: User = Depends(get_current_user),
) -> list[MemberResponse]:
    resolver(request).authorize_team(current_user.id, team_id)
    return [MemberResponse.from_member(m) for m in tracker(request).list_team_members(team_id)]
