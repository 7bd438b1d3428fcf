"""
External identity model linking OAuth provider accounts to local accounts.
"""

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crewboard.db import Base
from crewboard.models.base import TimestampMixin


class ExternalIdentity(Base, TimestampMixin):
    """A provider-issued identity (provider + provider_user_id) bound to one account."""

    __tablename__ = "external_identities"
    __table_args__ = (
        UniqueConstraint("provider", "provider_user_id", name="uq_external_identity_provider_user"),
        UniqueConstraint("account_id", "provider", name="uq_external_identity_account_provider"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    provider_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Cached provider profile
    login: Mapped[str | None] = mapped_column(String(255), nullable=True)
    access_token: Mapped[str | None] = mapped_column(Text, nullable=True)

    account = relationship("Account", back_populates="external_identities")

    def __repr__(self) -> str:
        return f"<ExternalIdentity {self.provider}:{self.provider_user_id} account={self.account_id}>"
