"""
api/routes/v1/channels.py -- Channel read endpoints for signed-in users.

Routes:
  GET /api/v1/channels                 -- PUBLIC channels plus the caller's PRIVATE ones
  GET /api/v1/channels/{id}            -- one channel (fine check)
  GET /api/v1/channels/{id}/members    -- membership list (fine check)

Creating channels and managing their members lives in api/routes/v1/admin.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.context import resolver, tracker
from api.models import ChannelResponse, MemberResponse
from auth.dependencies import get_current_user
from auth.models import User

router = APIRouter()


@router.get("/channels", response_model=list[ChannelResponse])
def list_channels(request: Request, current_user: User = Depends(get_current_user)) -> list[ChannelResponse]:
    """Main channel first, then by name."""
    channels = resolver(request).get_user_channels(current_user.id)
    return [ChannelResponse.from_channel(c) for c in channels]


@router.get("/channels/{channel_id}", response_model=ChannelResponse)
def get_channel(request: Request, channel_id: str, current_user: User = Depends(get_current_user)) -> ChannelResponse:
    return ChannelResponse.from_channel(resolver(request).authorize_channel(current_user.id, channel_id))


@router.get("/channels/{channel_id}/members", response_model=list[MemberResponse])
def list_channel_members(
    request: Request,
    channel_id: str,
    current_user: User = Depends(get_current_user),
) -> list[MemberResponse]:
    resolver(request).authorize_channel(current_user.id, channel_id)
    return [MemberResponse.from_member(m) for m in tracker(request).list_channel_members(channel_id)]
