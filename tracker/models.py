"""
tracker/models.py -- Domain dataclasses for projects, teams, channels, memberships and tickets.

These are pure data containers with zero logic. Visibility rules live in
access/resolver.py; persistence lives in tracker/store.py.

A ticket belongs to zero or one project, zero or one team, and has zero or
one assignee. Membership rows are unique per (entity, user).

A channel is PUBLIC (readable by every signed-in user) or PRIVATE (members
only). Message delivery is not modelled; only who may see the channel.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Project:
    """A body of work that owns teams and tickets.

    id is None before the record is written to the database.
    """

    name: str
    description: Optional[str] = None
    status: str = "ACTIVE"  # "ACTIVE" | "ON_HOLD" | "COMPLETED" | "ARCHIVED"
    id: Optional[str] = None
    created_at: str = ""


@dataclass
class ProjectMember:
    project_id: str
    user_id: str
    role: str = "MEMBER"  # "OWNER" | "MEMBER"
    id: Optional[str] = None
    joined_at: str = ""


@dataclass
class Team:
    """A group of users inside one project."""

    project_id: str
    name: str
    description: Optional[str] = None
    type: str = "GENERAL"
    id: Optional[str] = None
    created_at: str = ""


@dataclass
class TeamMember:
    team_id: str
    user_id: str
    role: str = "MEMBER"  # "LEAD" | "MEMBER"
    id: Optional[str] = None
    joined_at: str = ""


@dataclass
class Ticket:
    """A unit of tracked work.

    project_id, team_id and assignee_id are each optional and independent.
    Any one of them can make the ticket visible to a non-admin user.
    """

    title: str
    description: Optional[str] = None
    status: str = "TODO"  # "TODO" | "IN_PROGRESS" | "REVIEW" | "DONE"
    priority: str = "MEDIUM"  # "LOW" | "MEDIUM" | "HIGH" | "URGENT"
    project_id: Optional[str] = None
    team_id: Optional[str] = None
    assignee_id: Optional[str] = None
    created_by: Optional[str] = None
    due_date: Optional[str] = None
    id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Channel:
    """A chat room. slug is unique and used in URLs."""

    name: str
    slug: str
    description: Optional[str] = None
    type: str = "PUBLIC"  # "PUBLIC" | "PRIVATE"
    is_main: bool = False
    id: Optional[str] = None
    created_at: str = ""


@dataclass
class ChannelMember:
    channel_id: str
    user_id: str
    role: str = "MEMBER"  # "ADMIN" | "MEMBER"
    id: Optional[str] = None
    joined_at: str = ""
