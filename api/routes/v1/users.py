"""
api/routes/v1/users.py -- Presence status endpoints.

Routes:
  GET /api/v1/users/{id}/status        -- any signed-in user may read
  PUT /api/v1/users/{id}/status        -- only the user themselves may write
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.context import user_store
from api.models import PresenceResponse, PresenceUpdate
from auth.dependencies import get_current_user
from auth.models import User
from core.errors import ForbiddenError, NotFoundError

router = APIRouter()


def _presence(user: User) -> PresenceResponse:
    return PresenceResponse(
        user_id=user.id,
        status=user.status,
        last_active=user.last_active,
        is_active=user.is_active,
    )


@router.get("/users/{user_id}/status", response_model=PresenceResponse)
def get_status(
    request: Request,
    user_id: str,
    current_user: User = Depends(get_current_user),
) -> PresenceResponse:
    user = user_store(request).get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found.", detail=user_id)
    return _presence(user)


@router.put("/users/{user_id}/status", response_model=PresenceResponse)
def set_status(
    request: Request,
    user_id: str,
    body: PresenceUpdate,
    current_user: User = Depends(get_current_user),
) -> PresenceResponse:
    if user_id != current_user.id:
        raise ForbiddenError("You can only update your own status.")
    store = user_store(request)
    store.update_presence(user_id, body.status.value)
    return _presence(store.get_by_id(user_id))
