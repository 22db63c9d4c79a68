"""
api/routes/v1/projects.py -- Project read endpoints for signed-in users.

Routes:
  GET /api/v1/projects                 -- projects in the caller's scope
  GET /api/v1/projects/{id}            -- one project (fine check)
  GET /api/v1/projects/{id}/members    -- membership list (fine check)

Creating, editing and deleting projects is an admin operation and lives in
api/routes/v1/admin.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.context import resolver, tracker
from api.models import MemberResponse, ProjectResponse
from auth.dependencies import get_current_user
from auth.models import User

router = APIRouter()


@router.get("/projects", response_model=list[ProjectResponse])
def list_projects(request: Request, current_user: User = Depends(get_current_user)) -> list[ProjectResponse]:
    """Admins see every project; everyone else sees the projects they belong to."""
    projects = resolver(request).get_user_projects(current_user.id)
    return [ProjectResponse.from_project(p) for p in projects]


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(
    request: Request,
    project_id: str,
    current_user: User = Depends(get_current_user),
) -> ProjectResponse:
    project = resolver(request).authorize_project(current_user.id, project_id)
    return ProjectResponse.from_project(project)


@router.get("/projects/{project_id}/members", response_model=list[MemberResponse])
def list_project_members(
    request: Request,
    project_id: str,
    current_user: User = Depends(get_current_user),
) -> list[MemberResponse]:
    resolver(request).authorize_project(current_user.id, project_id)
    return [MemberResponse.from_member(m) for m in tracker(request).list_project_members(project_id)]
