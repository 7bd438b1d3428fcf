"""
Session and principal resolution.

A Principal is the authenticated actor of one request. It is resolved from
the session token on every call and handed explicitly to authorization
checks; nothing here caches it between calls.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from crewboard.models.account import Account
from crewboard.models.account_session import AccountSession
from crewboard.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """The authenticated account performing an action."""

    account_id: int
    email: str
    display_name: str

    @classmethod
    def from_account(cls, account: Account) -> "Principal":
        return cls(account_id=account.id, email=account.email, display_name=account.display_name)


class SessionProvider:
    """Issues, resolves and revokes account sessions."""

    def __init__(self, db: AsyncSession, lifetime: timedelta | None = None):
        self.db = db
        self.lifetime = lifetime or timedelta(hours=settings.session_expire_hours)

    async def create_session(
        self,
        account: Account,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> AccountSession:
        """Start a new session for the account and commit it."""
        session = AccountSession.create_session(
            account_id=account.id,
            lifetime=self.lifetime,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        self.db.add(session)
        account.update_last_seen()
        await self.db.commit()
        logger.info(f"Session started for account {account.id}")
        return session

    async def current_principal(self, token: str | None) -> Principal | None:
        """Resolve the principal behind a session token, or None.

        Hits the database on every call so a revoked or expired session can
        never authorize anything.
        """
        if not token:
            return None

        result = await self.db.execute(
            select(AccountSession)
            .where(AccountSession.session_token == token)
            .options(selectinload(AccountSession.account))
        )
        session = result.scalar_one_or_none()
        if not session or not session.account:
            return None

        if not session.is_valid() or not session.account.is_active:
            return None

        if session.refresh(self.lifetime):
            session.account.update_last_seen()
            await self.db.commit()

        return Principal.from_account(session.account)

    async def sign_out(self, token: str | None) -> None:
        """Revoke one session. The row is gone once this returns."""
        if not token:
            return
        await self.db.execute(delete(AccountSession).where(AccountSession.session_token == token))
        await self.db.commit()

    async def sign_out_everywhere(self, account_id: int) -> int:
        """Revoke every session of an account. Returns how many were removed."""
        result = await self.db.execute(delete(AccountSession).where(AccountSession.account_id == account_id))
        await self.db.commit()
        logger.info(f"Signed out account {account_id} from {result.rowcount} sessions")
        return result.rowcount
