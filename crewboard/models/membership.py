"""
Membership models for team and project memberships.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Enum as SAEnum, ForeignKey, Index, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crewboard.db import Base
from crewboard.models.base import TimestampMixin, UTCDateTime, utcnow


class TeamRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    GUEST = "guest"

    @property
    def rank(self) -> int:
        return TEAM_ROLE_RANK[self]


class ProjectRole(str, Enum):
    MANAGER = "manager"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"

    @property
    def rank(self) -> int:
        return PROJECT_ROLE_RANK[self]


# Member listings sort by rank, most privileged first
TEAM_ROLE_RANK = {
    TeamRole.OWNER: 0,
    TeamRole.ADMIN: 1,
    TeamRole.MEMBER: 2,
    TeamRole.GUEST: 3,
}

PROJECT_ROLE_RANK = {
    ProjectRole.MANAGER: 0,
    ProjectRole.ADMIN: 1,
    ProjectRole.MEMBER: 2,
    ProjectRole.VIEWER: 3,
}


def _role_column(enum_cls: type[Enum]) -> SAEnum:
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda e: [m.value for m in e],
    )


class TeamMembership(Base, TimestampMixin):
    """Team membership model."""

    __tablename__ = "team_memberships"
    __table_args__ = (
        UniqueConstraint("team_id", "account_id", name="uq_team_membership_team_account"),
        # At most one owner per team
        Index(
            "uq_team_membership_single_owner",
            "team_id",
            unique=True,
            postgresql_where=text("role = 'owner'"),
            sqlite_where=text("role = 'owner'"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[TeamRole] = mapped_column(_role_column(TeamRole), default=TeamRole.MEMBER, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    invited_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )

    # Optimistic lock: concurrent writers on the same row conflict
    version: Mapped[int] = mapped_column(nullable=False)
    __mapper_args__ = {"version_id_col": version}

    # Relationships
    team = relationship("Team", back_populates="memberships", lazy="noload")
    account = relationship("Account", back_populates="team_memberships", foreign_keys=[account_id], lazy="noload")

    def __repr__(self) -> str:
        return f"<TeamMembership account={self.account_id} team={self.team_id} role={self.role}>"


class ProjectMembership(Base, TimestampMixin):
    """Project membership model."""

    __tablename__ = "project_memberships"
    __table_args__ = (
        UniqueConstraint("project_id", "account_id", name="uq_project_membership_project_account"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[ProjectRole] = mapped_column(
        _role_column(ProjectRole), default=ProjectRole.MEMBER, nullable=False
    )
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    added_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )

    version: Mapped[int] = mapped_column(nullable=False)
    __mapper_args__ = {"version_id_col": version}

    project = relationship("Project", back_populates="memberships", lazy="noload")
    account = relationship("Account", foreign_keys=[account_id], lazy="noload")

    def __repr__(self) -> str:
        return f"<ProjectMembership account={self.account_id} project={self.project_id} role={self.role}>"
