"""
Invitation model for team invitations.
"""

import secrets
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import Enum as SAEnum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crewboard.db import Base
from crewboard.models.base import TimestampMixin, UTCDateTime, utcnow
from crewboard.models.membership import TeamRole


def generate_invitation_token() -> str:
    """Generate an unguessable invitation token (256 bits)."""
    return secrets.token_urlsafe(32)


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"  # Derived from expires_at, never stored


# Roles an invitation may grant; ownership is never handed out by link
INVITABLE_ROLES = frozenset({TeamRole.ADMIN, TeamRole.MEMBER, TeamRole.GUEST})


class Invitation(Base, TimestampMixin):
    """Token-bound, time-limited offer of a team role to one email address."""

    __tablename__ = "invitations"

    id: Mapped[int] = mapped_column(primary_key=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)

    # Invitation details
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    token: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, default=generate_invitation_token
    )
    role: Mapped[TeamRole] = mapped_column(
        SAEnum(TeamRole, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        default=TeamRole.MEMBER,
        nullable=False,
    )

    # Status tracking
    status: Mapped[InvitationStatus] = mapped_column(
        SAEnum(InvitationStatus, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        default=InvitationStatus.PENDING,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Tracking
    invited_by_id: Mapped[int | None] = mapped_column(ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    accepted_by_id: Mapped[int | None] = mapped_column(ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)

    version: Mapped[int] = mapped_column(nullable=False)
    __mapper_args__ = {"version_id_col": version}

    # Relationships
    team = relationship("Team", back_populates="invitations", lazy="noload")

    @classmethod
    def create(
        cls,
        team_id: int,
        email: str,
        role: TeamRole = TeamRole.MEMBER,
        invited_by_id: int | None = None,
        expires_in_days: int = 7,
    ) -> "Invitation":
        """Create a new pending invitation."""
        return cls(
            team_id=team_id,
            email=email.lower().strip(),
            role=role,
            invited_by_id=invited_by_id,
            token=generate_invitation_token(),
            status=InvitationStatus.PENDING,
            expires_at=utcnow() + timedelta(days=expires_in_days),
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > self.expires_at

    @property
    def effective_status(self) -> InvitationStatus:
        """Stored status, with pending invitations past expiry read as expired."""
        if self.status == InvitationStatus.PENDING and self.is_expired():
            return InvitationStatus.EXPIRED
        return self.status

    def get_invite_url(self, base_url: str) -> str:
        """Get the full invitation URL."""
        return f"{base_url.rstrip('/')}/invitations/team?token={self.token}"

    def __repr__(self) -> str:
        return f"<Invitation {self.email} -> team={self.team_id} status={self.status}>"
