# Models package
from crewboard.db import Base
from crewboard.models.account import Account
from crewboard.models.account_session import AccountSession
from crewboard.models.external_identity import ExternalIdentity
from crewboard.models.team import Team
from crewboard.models.project import Project, ProjectStatus
from crewboard.models.membership import (
    ProjectMembership,
    ProjectRole,
    TeamMembership,
    TeamRole,
)
from crewboard.models.invitation import Invitation, InvitationStatus, INVITABLE_ROLES

__all__ = [
    "Base",
    "Account",
    "AccountSession",
    "ExternalIdentity",
    "Team",
    "Project",
    "ProjectStatus",
    "TeamMembership",
    "ProjectMembership",
    "TeamRole",
    "ProjectRole",
    "Invitation",
    "InvitationStatus",
    "INVITABLE_ROLES",
]
