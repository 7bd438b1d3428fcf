"""
Account model for authentication and identity.
"""

from datetime import datetime

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crewboard.db import Base
from crewboard.models.base import TimestampMixin, UTCDateTime, utcnow


class Account(Base, TimestampMixin):
    """Local user account.

    External sign-in providers attach to an account through
    ExternalIdentity rows; an account may also carry a local password.
    """

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Local auth
    hashed_password: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Status
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    last_seen_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Relationships
    external_identities = relationship(
        "ExternalIdentity", back_populates="account", lazy="noload", passive_deletes=True
    )
    sessions = relationship(
        "AccountSession", back_populates="account", lazy="noload", passive_deletes=True
    )
    team_memberships = relationship(
        "TeamMembership", back_populates="account", foreign_keys="TeamMembership.account_id", lazy="noload"
    )

    def update_last_seen(self) -> None:
        """Update last seen timestamp."""
        self.last_seen_at = utcnow()

    def __repr__(self) -> str:
        return f"<Account {self.email}>"
