"""
Project model, owned by a team.
"""

from datetime import date
from enum import Enum

from sqlalchemy import Date, Enum as SAEnum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crewboard.db import Base
from crewboard.models.base import TimestampMixin


class ProjectStatus(str, Enum):
    PLANNING = "planning"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"


class Project(Base, TimestampMixin):
    """Project within a team."""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(primary_key=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ProjectStatus] = mapped_column(
        SAEnum(ProjectStatus, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        default=ProjectStatus.PLANNING,
        nullable=False,
    )
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    color: Mapped[str | None] = mapped_column(String(7), nullable=True)  # e.g. "#3b82f6"

    # Relationships
    team = relationship("Team", back_populates="projects")
    memberships = relationship(
        "ProjectMembership", back_populates="project", lazy="noload", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Project {self.id} {self.name} team={self.team_id}>"
