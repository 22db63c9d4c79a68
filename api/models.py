"""
API request and response models for TeamDesk REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py,
tracker/models.py and audit/models.py, which own the internal domain
representation. Route handlers map between the two.

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from audit.models import AdminAction
from auth.models import User
from auth.roles import Role
from tracker.models import Channel, ChannelMember, Project, ProjectMember, Team, TeamMember, Ticket

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TicketStatusEnum(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    DONE = "DONE"


class PriorityEnum(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class ProjectStatusEnum(str, Enum):
    ACTIVE = "ACTIVE"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class ChannelTypeEnum(str, Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


class PresenceEnum(str, Enum):
    ONLINE = "ONLINE"
    AWAY = "AWAY"
    BUSY = "BUSY"
    OFFLINE = "OFFLINE"


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=128)


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str
    expires_in: int
    user_id: str
    email: str
    role: Role


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup. New accounts are always MEMBER."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=128)


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)


class ForgotPasswordResponse(BaseModel):
    """otp_code is only populated when DEBUG=true (no mail transport in dev)."""

    model_config = ConfigDict(frozen=True)

    message: str
    otp_code: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    otp_code: str = Field(min_length=6, max_length=6)
    new_password: str = Field(min_length=6, max_length=128)


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str
    name: str
    role: Role
    role_display_name: str


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    role: Role
    is_active: bool
    status: str
    created_at: str
    last_login: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            is_active=user.is_active,
            status=user.status,
            created_at=user.created_at or "",
            last_login=user.last_login,
        )


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    page: int
    limit: int
    pages: int


class UserListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    users: list[UserResponse]
    pagination: Pagination


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/admin/users/{id}. At least one field is required."""

    role: Optional[Role] = None
    is_active: Optional[bool] = None


class PresenceUpdate(BaseModel):
    status: PresenceEnum


class PresenceResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    status: str
    last_active: Optional[str]
    is_active: bool


# ---------------------------------------------------------------------------
# Projects and teams
# ---------------------------------------------------------------------------


class ProjectCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: ProjectStatusEnum = ProjectStatusEnum.ACTIVE


class ProjectPatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: Optional[ProjectStatusEnum] = None


class ProjectResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: Optional[str]
    status: str
    created_at: str

    @classmethod
    def from_project(cls, project: Project) -> "ProjectResponse":
        return cls(
            id=project.id,
            name=project.name,
            description=project.description,
            status=project.status,
            created_at=project.created_at,
        )


class TeamCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    project_id: str = Field(min_length=1, max_length=32)
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    type: str = Field(default="GENERAL", max_length=30)


class TeamResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    project_id: str
    name: str
    description: Optional[str]
    type: str
    created_at: str

    @classmethod
    def from_team(cls, team: Team) -> "TeamResponse":
        return cls(
            id=team.id,
            project_id=team.project_id,
            name=team.name,
            description=team.description,
            type=team.type,
            created_at=team.created_at,
        )


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


class ChannelCreate(BaseModel):
    """slug defaults to one derived from name."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    slug: Optional[str] = Field(default=None, max_length=100, pattern=SLUG_PATTERN)
    description: Optional[str] = Field(default=None, max_length=5000)
    type: ChannelTypeEnum = ChannelTypeEnum.PUBLIC
    is_main: bool = False


class ChannelResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    slug: str
    description: Optional[str]
    type: str
    is_main: bool
    created_at: str

    @classmethod
    def from_channel(cls, channel: Channel) -> "ChannelResponse":
        return cls(
            id=channel.id,
            name=channel.name,
            slug=channel.slug,
            description=channel.description,
            type=channel.type,
            is_main=channel.is_main,
            created_at=channel.created_at,
        )


# ---------------------------------------------------------------------------
# Memberships
# ---------------------------------------------------------------------------


class MemberAdd(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(min_length=1, max_length=32)
    role: str = Field(default="MEMBER", max_length=20)


class MemberResponse(BaseModel):
    """One membership row; entity_id is the project, team or channel id."""

    model_config = ConfigDict(frozen=True)

    id: str
    entity_id: str
    user_id: str
    role: str
    joined_at: str

    @classmethod
    def from_member(cls, member: "ProjectMember | TeamMember | ChannelMember") -> "MemberResponse":
        if isinstance(member, ProjectMember):
            entity_id = member.project_id
        elif isinstance(member, TeamMember):
            entity_id = member.team_id
        else:
            entity_id = member.channel_id
        return cls(
            id=member.id,
            entity_id=entity_id,
            user_id=member.user_id,
            role=member.role,
            joined_at=member.joined_at,
        )


# ---------------------------------------------------------------------------
# Tickets
# ---------------------------------------------------------------------------


class TicketCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=10000)
    status: TicketStatusEnum = TicketStatusEnum.TODO
    priority: PriorityEnum = PriorityEnum.MEDIUM
    project_id: Optional[str] = Field(default=None, max_length=32)
    team_id: Optional[str] = Field(default=None, max_length=32)
    assignee_id: Optional[str] = Field(default=None, max_length=32)
    due_date: Optional[str] = Field(default=None, max_length=32)


class TicketPatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=10000)
    status: Optional[TicketStatusEnum] = None
    priority: Optional[PriorityEnum] = None
    assignee_id: Optional[str] = Field(default=None, max_length=32)
    due_date: Optional[str] = Field(default=None, max_length=32)


class TicketAssign(BaseModel):
    """Request body for POST /api/v1/admin/tickets/{id}/assign."""

    action: Literal["assign_user", "assign_team", "assign_project"]
    user_id: Optional[str] = Field(default=None, max_length=32)
    team_id: Optional[str] = Field(default=None, max_length=32)
    project_id: Optional[str] = Field(default=None, max_length=32)


class TicketResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: Optional[str]
    status: str
    priority: str
    project_id: Optional[str]
    team_id: Optional[str]
    assignee_id: Optional[str]
    created_by: Optional[str]
    due_date: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_ticket(cls, ticket: Ticket) -> "TicketResponse":
        return cls(
            id=ticket.id,
            title=ticket.title,
            description=ticket.description,
            status=ticket.status,
            priority=ticket.priority,
            project_id=ticket.project_id,
            team_id=ticket.team_id,
            assignee_id=ticket.assignee_id,
            created_by=ticket.created_by,
            due_date=ticket.due_date,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
        )


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class AuditRecordResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    admin_id: str
    action: str
    target_type: str
    target_id: str
    details: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: str

    @classmethod
    def from_action(cls, record: AdminAction) -> "AuditRecordResponse":
        return cls(
            id=record.id,
            admin_id=record.admin_id,
            action=record.action,
            target_type=record.target_type,
            target_id=record.target_id,
            details=record.details,
            ip_address=record.ip_address,
            user_agent=record.user_agent,
            created_at=record.created_at,
        )


class OverviewResponse(BaseModel):
    """Response for GET /api/v1/admin/overview."""

    model_config = ConfigDict(frozen=True)

    total_projects: int
    active_projects: int
    total_teams: int
    total_channels: int
    total_tickets: int
    ticket_status_counts: dict[str, int]
    audit_trail: list[AuditRecordResponse]
