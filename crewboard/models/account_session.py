"""
Account session model for multi-device session management.

Each sign-in creates its own session row, so signing out on one device
leaves the others signed in.
"""

import secrets
from datetime import datetime, timedelta

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crewboard.db import Base
from crewboard.models.base import TimestampMixin, UTCDateTime, utcnow


class AccountSession(Base, TimestampMixin):
    """Individual signed-in session for one device."""

    __tablename__ = "account_sessions"

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Session token - unique per session
    session_token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    last_used_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Client information for the session list
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)  # IPv4 or IPv6

    account = relationship("Account", back_populates="sessions")

    @classmethod
    def create_session(
        cls,
        account_id: int,
        lifetime: timedelta,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> "AccountSession":
        """Create a new session (not yet added to the database)."""
        now = utcnow()
        return cls(
            account_id=account_id,
            session_token=secrets.token_hex(32),
            expires_at=now + lifetime,
            last_used_at=now,
            user_agent=user_agent,
            ip_address=ip_address,
        )

    def is_valid(self) -> bool:
        """Check if session is still valid (not expired)."""
        return utcnow() < self.expires_at

    def refresh(self, lifetime: timedelta) -> bool:
        """Mark the session used and slide its expiry.

        The expiry only moves once less than half the lifetime remains.
        Returns True when the expiry was extended.
        """
        now = utcnow()
        self.last_used_at = now
        if self.expires_at - now < lifetime / 2:
            self.expires_at = now + lifetime
            return True
        return False

    def __repr__(self) -> str:
        return f"<AccountSession {self.id} account={self.account_id}>"
