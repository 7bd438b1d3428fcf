"""
Team model, the top level of the membership hierarchy.
"""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crewboard.db import Base
from crewboard.models.base import TimestampMixin


class Team(Base, TimestampMixin):
    """Team of collaborating accounts; owns projects."""

    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    memberships = relationship(
        "TeamMembership", back_populates="team", lazy="noload", passive_deletes=True
    )
    projects = relationship("Project", back_populates="team", lazy="noload", passive_deletes=True)
    invitations = relationship(
        "Invitation", back_populates="team", lazy="noload", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Team {self.id} {self.name}>"
