"""
Identity resolution: turn an external OAuth profile into exactly one Account.

Lookup order:
1. an ExternalIdentity for (provider, provider_user_id) -> its account;
2. an account with the profile's email -> link it, if linking is enabled;
3. otherwise a new account plus identity.

The unique (provider, provider_user_id) constraint decides concurrent first
logins: the loser rolls back and finds the winner's identity on retry.
"""

import asyncio
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from crewboard.errors import IdentityLinkError
from crewboard.models.account import Account
from crewboard.models.external_identity import ExternalIdentity
from crewboard.services.auth_providers import ExternalProfile, OAuthProvider
from crewboard.settings import settings

logger = logging.getLogger(__name__)

MAX_LINK_ATTEMPTS = 3


def placeholder_email(profile: ExternalProfile) -> str:
    """Email for accounts whose provider did not share one."""
    login = profile.login or f"{profile.provider}-{profile.id}"
    return f"{login.lower()}@{profile.provider}.user"


class IdentityResolver:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def sign_in_with(self, provider: OAuthProvider, code: str, redirect_uri: str) -> Account:
        """Complete an OAuth callback.

        Provider I/O finishes before anything is written, so a provider
        failure leaves the database untouched.
        """
        exchange = await provider.exchange_code_for_token(code, redirect_uri)
        return await self.resolve(exchange.profile, exchange.access_token)

    async def resolve(self, profile: ExternalProfile, access_token: str | None = None) -> Account:
        """Return the account for a provider profile, creating or linking it as needed."""
        for attempt in range(MAX_LINK_ATTEMPTS):
            try:
                account = await self._resolve_once(profile, access_token)
                await self.db.commit()
                return account
            except IntegrityError:
                await self.db.rollback()
                logger.info(
                    f"Concurrent first login for {profile.provider}:{profile.id}, "
                    f"retrying ({attempt + 1}/{MAX_LINK_ATTEMPTS})"
                )
            except asyncio.CancelledError:
                await self.db.rollback()
                raise

        raise IdentityLinkError("Could not complete sign-in, please try again")

    async def _find_identity(self, provider: str, provider_user_id: str) -> ExternalIdentity | None:
        result = await self.db.execute(
            select(ExternalIdentity)
            .where(
                ExternalIdentity.provider == provider,
                ExternalIdentity.provider_user_id == provider_user_id,
            )
            .options(selectinload(ExternalIdentity.account))
        )
        return result.scalar_one_or_none()

    async def _find_account_by_email(self, email: str) -> Account | None:
        result = await self.db.execute(select(Account).where(func.lower(Account.email) == email.lower()))
        return result.scalar_one_or_none()

    async def _resolve_once(self, profile: ExternalProfile, access_token: str | None) -> Account:
        identity = await self._find_identity(profile.provider, profile.id)
        if identity:
            account = identity.account
            identity.login = profile.login or identity.login
            if access_token:
                identity.access_token = access_token
            if profile.avatar_url:
                account.avatar_url = profile.avatar_url
            if profile.full_name:
                account.display_name = profile.full_name
            await self.db.flush()
            return account

        if profile.email:
            email = profile.email.lower().strip()
            account = await self._find_account_by_email(email)
            if account:
                if not settings.oauth_link_existing_email:
                    logger.warning(
                        f"Refused {profile.provider} login for {email}: account {account.id} "
                        f"exists without a {profile.provider} identity"
                    )
                    raise IdentityLinkError(
                        "This email is already registered with another sign-in method"
                    )
                self._attach(account, profile, access_token)
                await self.db.flush()
                logger.info(f"Linked {profile.provider}:{profile.id} to existing account {account.id}")
                return account
        else:
            email = placeholder_email(profile)
            if await self._find_account_by_email(email):
                # Login was reused by a different provider account
                email = f"{profile.provider}-{profile.id}@{profile.provider}.user"

        account = Account(
            email=email,
            display_name=profile.full_name or profile.login or email.split("@")[0],
            avatar_url=profile.avatar_url,
        )
        self.db.add(account)
        await self.db.flush()
        self._attach(account, profile, access_token)
        await self.db.flush()

        logger.info(f"Created account {account.id} for {profile.provider}:{profile.id}")
        return account

    def _attach(self, account: Account, profile: ExternalProfile, access_token: str | None) -> ExternalIdentity:
        identity = ExternalIdentity(
            provider=profile.provider,
            provider_user_id=profile.id,
            account_id=account.id,
            login=profile.login,
            access_token=access_token,
        )
        self.db.add(identity)
        return identity
