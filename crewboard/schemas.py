"""
Request and response models for the JSON API.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from crewboard.models.invitation import InvitationStatus
from crewboard.models.membership import ProjectRole, TeamRole
from crewboard.models.project import ProjectStatus

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Accounts

class RegisterRequest(BaseModel):
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str
    display_name: str = Field(min_length=1, max_length=100)


class LoginRequest(BaseModel):
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str


class AccountOut(ORMModel):
    id: int
    email: str
    display_name: str
    avatar_url: str | None = None


class SessionOut(BaseModel):
    account: AccountOut
    session_token: str
    expires_at: datetime


# Teams

class TeamCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    avatar_url: str | None = None


class TeamUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    avatar_url: str | None = None


class TeamOut(ORMModel):
    id: int
    name: str
    description: str | None = None
    avatar_url: str | None = None
    created_at: datetime


class TeamWithRoleOut(TeamOut):
    role: TeamRole


# Projects

class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    status: ProjectStatus = ProjectStatus.PLANNING
    due_date: date | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")


class ProjectUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    status: ProjectStatus | None = None
    due_date: date | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")


class ProjectOut(ORMModel):
    id: int
    team_id: int
    name: str
    description: str | None = None
    status: ProjectStatus
    due_date: date | None = None
    color: str | None = None
    created_at: datetime


# Memberships

class MemberOut(BaseModel):
    account_id: int
    email: str | None = None
    display_name: str | None = None
    role: str
    joined_at: datetime
    version: int


class TeamMemberUpdate(BaseModel):
    role: TeamRole
    expected_version: int | None = None


class ProjectMemberAdd(BaseModel):
    account_id: int
    role: ProjectRole = ProjectRole.MEMBER


class ProjectMemberUpdate(BaseModel):
    role: ProjectRole
    expected_version: int | None = None


# Invitations

class InvitationCreate(BaseModel):
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    role: TeamRole = TeamRole.MEMBER


class InvitationOut(BaseModel):
    id: int
    team_id: int
    email: str
    role: TeamRole
    status: InvitationStatus
    expires_at: datetime
    created_at: datetime
    invite_url: str | None = None


class InvitationView(BaseModel):
    team_id: int
    team_name: str | None = None
    email: str
    role: TeamRole
    status: InvitationStatus
    expires_at: datetime


class InvitationResponse(BaseModel):
    token: str = Field(min_length=1)
