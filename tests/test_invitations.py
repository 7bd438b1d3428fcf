"""Tests for the invitation lifecycle."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from crewboard.errors import (
    AlreadyInvitedError,
    AlreadyMemberError,
    EmailMismatch,
    InvalidRoleError,
    InvitationExpired,
    InvitationNotFound,
    NotAuthenticated,
    PermissionDenied,
)
from crewboard.models.base import utcnow
from crewboard.models.invitation import InvitationStatus
from crewboard.models.membership import TeamMembership, TeamRole
from crewboard.services.invitations import InvitationManager
from crewboard.services.membership import MembershipStore


async def _invite(db, team_id, inviter, email="e@x.com", role=TeamRole.MEMBER):
    invitation = await InvitationManager(db).create(team_id, email, role, inviter)
    await db.commit()
    return invitation


async def _membership_count(db, team_id, account_id):
    result = await db.execute(
        select(func.count(TeamMembership.id)).where(
            TeamMembership.team_id == team_id,
            TeamMembership.account_id == account_id,
        )
    )
    return result.scalar_one()


class TestCreate:
    async def test_creates_pending_invitation_with_link(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        team_id = await make_team(alice)

        invitation = await _invite(db, team_id, alice, email="  E@X.com ")

        assert invitation.email == "e@x.com"
        assert invitation.status == InvitationStatus.PENDING
        assert len(invitation.token) >= 43
        assert timedelta(days=6, hours=23) < invitation.expires_at - utcnow() <= timedelta(days=7)
        assert invitation.get_invite_url("https://app.example.com/") == (
            f"https://app.example.com/invitations/team?token={invitation.token}"
        )

    async def test_tokens_are_unique(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        team_id = await make_team(alice)

        first = await _invite(db, team_id, alice, email="one@x.com")
        second = await _invite(db, team_id, alice, email="two@x.com")
        assert first.token != second.token

    async def test_requires_invite_capability(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        bob = await make_account("bob@example.com")
        team_id = await make_team(alice)
        await MembershipStore(db).add_team_member(team_id, bob.account_id, TeamRole.MEMBER)
        await db.commit()

        with pytest.raises(PermissionDenied):
            await InvitationManager(db).create(team_id, "e@x.com", TeamRole.MEMBER, bob)

    @pytest.mark.parametrize("role", ["owner", "superuser"])
    async def test_rejects_roles_that_cannot_be_invited(self, db, make_account, make_team, role):
        alice = await make_account("alice@example.com")
        team_id = await make_team(alice)

        with pytest.raises(InvalidRoleError):
            await InvitationManager(db).create(team_id, "e@x.com", role, alice)

    async def test_rejects_existing_member(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        team_id = await make_team(alice)

        with pytest.raises(AlreadyMemberError):
            await InvitationManager(db).create(team_id, "Alice@Example.com", TeamRole.MEMBER, alice)

    async def test_rejects_duplicate_pending_invitation(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        team_id = await make_team(alice)
        await _invite(db, team_id, alice)

        with pytest.raises(AlreadyInvitedError):
            await InvitationManager(db).create(team_id, "e@x.com", TeamRole.GUEST, alice)

    async def test_expired_invitation_does_not_block_a_new_one(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        team_id = await make_team(alice)
        old = await _invite(db, team_id, alice)
        old.expires_at = utcnow() - timedelta(minutes=1)
        await db.commit()

        fresh = await _invite(db, team_id, alice)
        assert fresh.id != old.id


class TestAccept:
    async def test_accept_then_accept_again(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        bob = await make_account("e@x.com")
        team_id = await make_team(alice)
        invitation = await _invite(db, team_id, alice)

        membership = await InvitationManager(db).accept(invitation.token, bob)
        await db.commit()

        assert membership.role == TeamRole.MEMBER
        assert membership.invited_by_id == alice.account_id
        accepted = await InvitationManager(db).get_by_token(invitation.token)
        assert accepted.status == InvitationStatus.ACCEPTED
        assert accepted.accepted_by_id == bob.account_id
        assert accepted.responded_at is not None

        with pytest.raises(InvitationExpired) as exc_info:
            await InvitationManager(db).accept(invitation.token, bob)
        await db.rollback()

        assert exc_info.value.reason == "accepted"
        assert exc_info.value.message == "This invitation has already been used"
        assert await _membership_count(db, team_id, bob.account_id) == 1

    async def test_email_match_is_case_insensitive(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        bob = await make_account("E@X.COM")
        team_id = await make_team(alice)
        invitation = await _invite(db, team_id, alice)

        await InvitationManager(db).accept(invitation.token, bob)
        await db.commit()
        assert await MembershipStore(db).get_team_role(team_id, bob.account_id) == TeamRole.MEMBER

    async def test_expiry_wins_over_stored_status(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        bob = await make_account("e@x.com")
        team_id = await make_team(alice)
        invitation = await _invite(db, team_id, alice)
        invitation.expires_at = utcnow() - timedelta(seconds=1)
        await db.commit()

        assert invitation.status == InvitationStatus.PENDING
        assert invitation.effective_status == InvitationStatus.EXPIRED

        with pytest.raises(InvitationExpired) as exc_info:
            await InvitationManager(db).accept(invitation.token, bob)
        assert exc_info.value.reason == "expired"
        assert await _membership_count(db, team_id, bob.account_id) == 0

    async def test_email_mismatch(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        mallory = await make_account("mallory@example.com")
        team_id = await make_team(alice)
        invitation = await _invite(db, team_id, alice)

        with pytest.raises(EmailMismatch):
            await InvitationManager(db).accept(invitation.token, mallory)
        assert await _membership_count(db, team_id, mallory.account_id) == 0

    async def test_unknown_token_and_missing_principal(self, db, make_account):
        bob = await make_account("e@x.com")

        with pytest.raises(InvitationNotFound):
            await InvitationManager(db).accept("not-a-token", bob)
        with pytest.raises(NotAuthenticated):
            await InvitationManager(db).accept("not-a-token", None)

    async def test_guest_invitation_grants_guest(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        bob = await make_account("e@x.com")
        team_id = await make_team(alice)
        invitation = await _invite(db, team_id, alice, role=TeamRole.GUEST)

        membership = await InvitationManager(db).accept(invitation.token, bob)
        assert membership.role == TeamRole.GUEST


class TestDecline:
    async def test_decline_is_terminal(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        bob = await make_account("e@x.com")
        team_id = await make_team(alice)
        invitation = await _invite(db, team_id, alice)

        declined = await InvitationManager(db).decline(invitation.token, bob)
        await db.commit()
        assert declined.status == InvitationStatus.DECLINED
        assert await _membership_count(db, team_id, bob.account_id) == 0

        with pytest.raises(InvitationExpired) as exc_info:
            await InvitationManager(db).accept(invitation.token, bob)
        assert exc_info.value.reason == "declined"

    async def test_decline_checks_email(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        mallory = await make_account("mallory@example.com")
        team_id = await make_team(alice)
        invitation = await _invite(db, team_id, alice)

        with pytest.raises(EmailMismatch):
            await InvitationManager(db).decline(invitation.token, mallory)


class TestListing:
    async def test_list_requires_invite_capability(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        bob = await make_account("bob@example.com")
        team_id = await make_team(alice)
        await MembershipStore(db).add_team_member(team_id, bob.account_id, TeamRole.GUEST)
        await _invite(db, team_id, alice)

        assert len(await InvitationManager(db).list_for_team(team_id, alice)) == 1
        with pytest.raises(PermissionDenied):
            await InvitationManager(db).list_for_team(team_id, bob)
