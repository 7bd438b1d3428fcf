"""Tests for the consumer-facing operations and team administration."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from crewboard.errors import StoreUnavailable
from crewboard.models.invitation import Invitation
from crewboard.models.membership import ProjectMembership, ProjectRole, TeamMembership, TeamRole
from crewboard.models.project import Project, ProjectStatus
from crewboard.models.team import Team
from crewboard.services import operations
from crewboard.services.membership import MembershipStore
from crewboard.settings import settings


class TestInvitationScenario:
    async def test_invite_accept_and_replay(self, db, make_account):
        a = await make_account("a@example.com")
        b = await make_account("e@x.com")

        team_id = (await operations.create_team(db, a, "T")).value.id
        invited = await operations.invite_team_member(db, a, team_id, "e@x.com", "member")
        assert invited.ok
        token = invited.value.token

        accepted = await operations.accept_invitation(db, b, token)
        assert accepted.ok
        assert accepted.value.role == TeamRole.MEMBER

        replay = await operations.accept_invitation(db, b, token)
        assert not replay.ok
        assert replay.error.code == "invitation_expired"
        assert replay.error.message == "This invitation has already been used"

        count = await db.execute(
            select(func.count(TeamMembership.id)).where(
                TeamMembership.team_id == team_id, TeamMembership.account_id == b.account_id
            )
        )
        assert count.scalar_one() == 1

    async def test_failures_come_back_as_results(self, db, make_account):
        b = await make_account("e@x.com")

        missing = await operations.accept_invitation(db, b, "no-such-token")
        assert missing.error.code == "invitation_not_found"
        assert missing.error.status_code == 404

        anonymous = await operations.accept_invitation(db, None, "no-such-token")
        assert anonymous.error.code == "not_authenticated"

    async def test_failed_operation_rolls_back(self, db, make_account):
        a = await make_account("a@example.com")
        team_id = (await operations.create_team(db, a, "T")).value.id

        result = await operations.invite_team_member(db, a, team_id, "e@x.com", "owner")
        assert result.error.code == "invalid_role"

        invitations = await db.execute(select(func.count(Invitation.id)))
        assert invitations.scalar_one() == 0


class TestMemberManagement:
    async def _team_with_admin(self, db, make_account):
        owner = await make_account("owner@example.com")
        admin = await make_account("admin@example.com")
        team_id = (await operations.create_team(db, owner, "T")).value.id
        await MembershipStore(db).add_team_member(team_id, admin.account_id, TeamRole.ADMIN)
        await db.commit()
        return owner, admin, team_id

    async def test_admin_cannot_remove_owner(self, db, make_account):
        owner, admin, team_id = await self._team_with_admin(db, make_account)

        result = await operations.remove_member(db, admin, "team", team_id, owner.account_id)

        assert result.error.code == "permission_denied"
        assert await MembershipStore(db).count_team_owners(team_id) == 1

    async def test_cannot_change_own_role(self, db, make_account):
        owner, admin, team_id = await self._team_with_admin(db, make_account)

        result = await operations.update_member_role(db, admin, "team", team_id, admin.account_id, "member")

        assert result.error.code == "self_modification"
        assert result.error.message == "You cannot modify your own role or membership"

    async def test_owner_changes_and_removes_admin(self, db, make_account):
        owner, admin, team_id = await self._team_with_admin(db, make_account)

        changed = await operations.update_member_role(db, owner, "team", team_id, admin.account_id, "guest")
        assert changed.value.role == TeamRole.GUEST

        removed = await operations.remove_member(db, owner, "team", team_id, admin.account_id)
        assert removed.ok
        assert await MembershipStore(db).get_team_role(team_id, admin.account_id) is None

    async def test_unknown_role_and_kind(self, db, make_account):
        owner, admin, team_id = await self._team_with_admin(db, make_account)

        bad_role = await operations.update_member_role(db, owner, "team", team_id, admin.account_id, "boss")
        assert bad_role.error.code == "invalid_role"

        bad_kind = await operations.remove_member(db, owner, "workspace", team_id, admin.account_id)
        assert bad_kind.error.code == "permission_denied"

    async def test_project_members(self, db, make_account):
        owner, admin, team_id = await self._team_with_admin(db, make_account)
        viewer = await make_account("viewer@example.com")
        await MembershipStore(db).add_team_member(team_id, viewer.account_id, TeamRole.MEMBER)
        await db.commit()
        project_id = (await operations.create_project(db, owner, team_id, "Launch")).value.id

        added = await operations.invite_project_member(db, owner, project_id, viewer.account_id, "viewer")
        assert added.value.role == ProjectRole.VIEWER

        denied = await operations.remove_member(db, viewer, "project", project_id, owner.account_id)
        assert denied.error.code == "permission_denied"

        changed = await operations.update_member_role(db, owner, "project", project_id, viewer.account_id, "admin")
        assert changed.value.role == ProjectRole.ADMIN

        outsider = await make_account("outsider@example.com")
        not_in_team = await operations.invite_project_member(db, owner, project_id, outsider.account_id)
        assert not_in_team.error.code == "not_team_member"

        missing = await operations.invite_project_member(db, owner, project_id, 12345)
        assert missing.error.code == "account_not_found"


class TestTeamsAndProjects:
    async def test_project_lifecycle(self, db, make_account):
        owner = await make_account("owner@example.com")
        team = (await operations.create_team(db, owner, "T", description="Core team")).value
        assert team.description == "Core team"

        project = (await operations.create_project(db, owner, team.id, "Launch", color="#3b82f6")).value
        assert project.status == ProjectStatus.PLANNING
        assert await MembershipStore(db).get_project_role(project.id, owner.account_id) == ProjectRole.MANAGER

        updated = await operations.update_project(db, owner, project.id, status="in_progress", name="Launch v2")
        assert updated.value.status == ProjectStatus.IN_PROGRESS
        assert updated.value.name == "Launch v2"

        assert (await operations.delete_project(db, owner, project.id)).ok
        assert await db.get(Project, project.id) is None
        remaining = await db.execute(select(func.count(ProjectMembership.id)))
        assert remaining.scalar_one() == 0

    async def test_member_cannot_create_project(self, db, make_account):
        owner = await make_account("owner@example.com")
        member = await make_account("member@example.com")
        team = (await operations.create_team(db, owner, "T")).value
        await MembershipStore(db).add_team_member(team.id, member.account_id, TeamRole.MEMBER)
        await db.commit()

        result = await operations.create_project(db, member, team.id, "Side project")
        assert result.error.code == "permission_denied"

    async def test_only_owner_deletes_team(self, db, make_account):
        owner = await make_account("owner@example.com")
        admin = await make_account("admin@example.com")
        team_id = (await operations.create_team(db, owner, "T")).value.id
        await MembershipStore(db).add_team_member(team_id, admin.account_id, TeamRole.ADMIN)
        await db.commit()
        await operations.create_project(db, owner, team_id, "Launch")
        await operations.invite_team_member(db, owner, team_id, "e@x.com")

        denied = await operations.delete_team(db, admin, team_id)
        assert denied.error.code == "permission_denied"

        renamed = await operations.update_team(db, admin, team_id, name="Renamed")
        assert renamed.value.name == "Renamed"

        assert (await operations.delete_team(db, owner, team_id)).ok
        assert await db.get(Team, team_id) is None
        for model in (TeamMembership, Project, Invitation):
            assert (await db.execute(select(func.count(model.id)))).scalar_one() == 0

    async def test_missing_team(self, db, make_account):
        owner = await make_account("owner@example.com")
        result = await operations.update_team(db, owner, 999, name="Nope")
        assert result.error.code == "team_not_found"

    async def test_unknown_project_status(self, db, make_account):
        owner = await make_account("owner@example.com")
        team_id = (await operations.create_team(db, owner, "T")).value.id

        created = await operations.create_project(db, owner, team_id, "P", status="archived")
        assert created.error.code == "invalid_status"
        assert created.error.status_code == 422
        assert (await db.execute(select(func.count(Project.id)))).scalar_one() == 0

        project_id = (await operations.create_project(db, owner, team_id, "P")).value.id
        updated = await operations.update_project(db, owner, project_id, status="archived")
        assert updated.error.code == "invalid_status"
        assert (await db.get(Project, project_id)).status == ProjectStatus.PLANNING


class TestStoreFailures:
    async def test_transient_errors_are_retried(self, db, monkeypatch):
        monkeypatch.setattr(settings, "store_retry_delay_seconds", 0)
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 2:
                raise OperationalError("SELECT 1", {}, Exception("connection reset"))
            return "done"

        result = await operations.run_operation(db, "flaky", flaky)
        assert result.ok and result.value == "done"
        assert len(attempts) == 2

    async def test_persistent_outage_raises(self, db, monkeypatch):
        monkeypatch.setattr(settings, "store_retry_delay_seconds", 0)
        monkeypatch.setattr(settings, "store_retry_attempts", 3)
        attempts = []

        async def down():
            attempts.append(1)
            raise OperationalError("SELECT 1", {}, Exception("could not connect"))

        with pytest.raises(StoreUnavailable):
            await operations.run_operation(db, "down", down)
        assert len(attempts) == 3
