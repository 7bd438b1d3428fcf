"""
Team invitation lifecycle: create, view, accept, decline.

An invitation is bound to one email address and consumed exactly once.
Acceptance adds the membership and closes the invitation in the caller's
transaction, so either both land or neither does.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from crewboard.errors import (
    AlreadyInvitedError,
    AlreadyMemberError,
    ConcurrentModification,
    EmailMismatch,
    InvalidRoleError,
    InvitationExpired,
    InvitationNotFound,
    NotAuthenticated,
    TeamNotFound,
)
from crewboard.models.account import Account
from crewboard.models.base import utcnow
from crewboard.models.invitation import INVITABLE_ROLES, Invitation, InvitationStatus
from crewboard.models.membership import TeamMembership, TeamRole
from crewboard.models.team import Team
from crewboard.services.authorization import Action, AuthorizationGate, Resource
from crewboard.services.membership import MembershipStore
from crewboard.services.sessions import Principal
from crewboard.settings import settings

logger = logging.getLogger(__name__)


class InvitationManager:
    def __init__(
        self,
        db: AsyncSession,
        store: MembershipStore | None = None,
        gate: AuthorizationGate | None = None,
    ):
        self.db = db
        self.store = store or MembershipStore(db)
        self.gate = gate or AuthorizationGate(db, self.store)

    async def create(
        self,
        team_id: int,
        email: str,
        role: TeamRole | str,
        principal: Principal | None,
    ) -> Invitation:
        """Invite an email address to a team."""
        if not await self.db.get(Team, team_id):
            raise TeamNotFound()

        await self.gate.require(principal, Action.INVITE, Resource.team(team_id))

        try:
            role = TeamRole(role)
        except ValueError:
            raise InvalidRoleError(f"Unknown role: {role}")
        if role not in INVITABLE_ROLES:
            raise InvalidRoleError("Invitations can only grant the admin, member or guest role")

        email = email.lower().strip()

        existing_member = await self.db.execute(
            select(TeamMembership.id)
            .join(Account, Account.id == TeamMembership.account_id)
            .where(TeamMembership.team_id == team_id, func.lower(Account.email) == email)
        )
        if existing_member.first():
            raise AlreadyMemberError(f"{email} is already a member of this team")

        pending = await self.db.execute(
            select(Invitation.id).where(
                Invitation.team_id == team_id,
                Invitation.email == email,
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at > utcnow(),
            )
        )
        if pending.first():
            raise AlreadyInvitedError(f"An invitation is already pending for {email}")

        invitation = Invitation.create(
            team_id=team_id,
            email=email,
            role=role,
            invited_by_id=principal.account_id,
            expires_in_days=settings.invitation_expire_days,
        )
        self.db.add(invitation)
        await self.db.flush()

        logger.info(f"Account {principal.account_id} invited {email} to team {team_id} as {role.value}")
        return invitation

    async def get_by_token(self, token: str) -> Invitation:
        """Invitation for the landing page; read ``effective_status`` for its state."""
        result = await self.db.execute(select(Invitation).where(Invitation.token == token))
        invitation = result.scalar_one_or_none()
        if not invitation:
            raise InvitationNotFound()
        return invitation

    async def list_for_team(self, team_id: int, principal: Principal | None) -> list[Invitation]:
        if not await self.db.get(Team, team_id):
            raise TeamNotFound()
        await self.gate.require(principal, Action.INVITE, Resource.team(team_id))

        result = await self.db.execute(
            select(Invitation)
            .where(Invitation.team_id == team_id)
            .order_by(Invitation.created_at.desc(), Invitation.id.desc())
        )
        return list(result.scalars().all())

    async def accept(self, token: str, principal: Principal | None) -> TeamMembership:
        if principal is None:
            raise NotAuthenticated()

        invitation = await self._load_usable(token, principal)

        membership = await self.store.add_team_member(
            invitation.team_id,
            principal.account_id,
            invitation.role,
            invited_by_id=invitation.invited_by_id,
        )
        self._close(invitation, InvitationStatus.ACCEPTED, principal)
        await self._flush_versioned()

        logger.info(f"Account {principal.account_id} accepted invitation {invitation.id} to team {invitation.team_id}")
        return membership

    async def decline(self, token: str, principal: Principal | None) -> Invitation:
        if principal is None:
            raise NotAuthenticated()

        invitation = await self._load_usable(token, principal)
        self._close(invitation, InvitationStatus.DECLINED, principal)
        await self._flush_versioned()

        logger.info(f"Account {principal.account_id} declined invitation {invitation.id}")
        return invitation

    async def _load_usable(self, token: str, principal: Principal) -> Invitation:
        """Lock the invitation row and check it can still be answered by this principal."""
        result = await self.db.execute(
            select(Invitation).where(Invitation.token == token).with_for_update()
        )
        invitation = result.scalar_one_or_none()
        if not invitation:
            raise InvitationNotFound()

        # Time wins over stored status
        if invitation.is_expired():
            raise InvitationExpired("expired")
        if invitation.status != InvitationStatus.PENDING:
            raise InvitationExpired(invitation.status.value)

        if principal.email.lower().strip() != invitation.email.lower():
            logger.warning(f"Account {principal.account_id} tried to use invitation {invitation.id} sent to another email")
            raise EmailMismatch()

        return invitation

    @staticmethod
    def _close(invitation: Invitation, status: InvitationStatus, principal: Principal) -> None:
        invitation.status = status
        invitation.responded_at = utcnow()
        if status == InvitationStatus.ACCEPTED:
            invitation.accepted_by_id = principal.account_id

    async def _flush_versioned(self) -> None:
        try:
            await self.db.flush()
        except StaleDataError as e:
            raise ConcurrentModification("This invitation was answered at the same time, please reload") from e
