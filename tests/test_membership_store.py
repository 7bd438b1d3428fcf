"""Tests for the membership store."""

from datetime import timedelta

import pytest

from crewboard.errors import (
    AlreadyMemberError,
    ConcurrentModification,
    MembershipNotFound,
    NotTeamMemberError,
    OwnerInvariantError,
)
from crewboard.models.membership import ProjectRole, TeamRole
from crewboard.services.membership import MembershipStore
from crewboard.services.teams import TeamService
from crewboard.settings import settings


class TestTeamMembers:
    async def test_creator_is_sole_owner(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        team_id = await make_team(alice)

        store = MembershipStore(db)
        assert await store.get_team_role(team_id, alice.account_id) == TeamRole.OWNER
        assert await store.count_team_owners(team_id) == 1

    async def test_add_member_twice_is_rejected(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        bob = await make_account("bob@example.com")
        team_id = await make_team(alice)

        store = MembershipStore(db)
        await store.add_team_member(team_id, bob.account_id, TeamRole.MEMBER)
        await db.commit()

        with pytest.raises(AlreadyMemberError):
            await store.add_team_member(team_id, bob.account_id, TeamRole.ADMIN)
        await db.rollback()

        members = await store.list_team_members(team_id)
        assert [m.account_id for m in members].count(bob.account_id) == 1

    async def test_second_owner_is_rejected(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        bob = await make_account("bob@example.com")
        team_id = await make_team(alice)

        store = MembershipStore(db)
        with pytest.raises(OwnerInvariantError):
            await store.add_team_member(team_id, bob.account_id, TeamRole.OWNER)

    async def test_owner_cannot_be_removed_or_demoted(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        team_id = await make_team(alice)
        store = MembershipStore(db)

        with pytest.raises(OwnerInvariantError):
            await store.remove_team_member(team_id, alice.account_id)
        with pytest.raises(OwnerInvariantError):
            await store.update_team_member_role(team_id, alice.account_id, TeamRole.ADMIN)

        assert await store.count_team_owners(team_id) == 1

    async def test_promote_to_owner_is_rejected(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        bob = await make_account("bob@example.com")
        team_id = await make_team(alice)
        store = MembershipStore(db)
        await store.add_team_member(team_id, bob.account_id, TeamRole.ADMIN)
        await db.commit()

        with pytest.raises(OwnerInvariantError):
            await store.update_team_member_role(team_id, bob.account_id, TeamRole.OWNER)

    async def test_update_and_remove_missing_member(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        team_id = await make_team(alice)
        store = MembershipStore(db)

        with pytest.raises(MembershipNotFound):
            await store.update_team_member_role(team_id, 999, TeamRole.ADMIN)
        with pytest.raises(MembershipNotFound):
            await store.remove_team_member(team_id, 999)

    async def test_update_bumps_version(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        bob = await make_account("bob@example.com")
        team_id = await make_team(alice)
        store = MembershipStore(db)
        membership = await store.add_team_member(team_id, bob.account_id, TeamRole.MEMBER)
        await db.commit()
        version = membership.version

        updated = await store.update_team_member_role(team_id, bob.account_id, TeamRole.ADMIN)
        await db.commit()

        assert updated.role == TeamRole.ADMIN
        assert updated.version == version + 1

    async def test_listing_orders_by_rank_then_join_time(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        team_id = await make_team(alice)
        store = MembershipStore(db)

        guest = await make_account("guest@example.com")
        early = await make_account("early@example.com")
        admin = await make_account("admin@example.com")
        late = await make_account("late@example.com")

        await store.add_team_member(team_id, guest.account_id, TeamRole.GUEST)
        early_m = await store.add_team_member(team_id, early.account_id, TeamRole.MEMBER)
        await store.add_team_member(team_id, admin.account_id, TeamRole.ADMIN)
        late_m = await store.add_team_member(team_id, late.account_id, TeamRole.MEMBER)
        # Join times are the tie breaker within a rank
        late_m.joined_at = early_m.joined_at + timedelta(seconds=5)
        await db.commit()

        members = await store.list_team_members(team_id)
        assert [m.account_id for m in members] == [
            alice.account_id,
            admin.account_id,
            early.account_id,
            late.account_id,
            guest.account_id,
        ]


class TestProjectMembers:
    async def _project(self, db, owner, team_id):
        project = await TeamService(db).create_project(team_id, owner, "Launch")
        await db.commit()
        return project.id

    async def test_creator_is_manager(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        team_id = await make_team(alice)
        project_id = await self._project(db, alice, team_id)

        store = MembershipStore(db)
        assert await store.get_project_role(project_id, alice.account_id) == ProjectRole.MANAGER

    async def test_project_member_must_belong_to_team(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        outsider = await make_account("outsider@example.com")
        team_id = await make_team(alice)
        project_id = await self._project(db, alice, team_id)

        with pytest.raises(NotTeamMemberError):
            await MembershipStore(db).add_project_member(project_id, outsider.account_id, ProjectRole.MEMBER)

    async def test_team_membership_check_can_be_disabled(self, db, make_account, make_team, monkeypatch):
        monkeypatch.setattr(settings, "require_team_membership_for_projects", False)
        alice = await make_account("alice@example.com")
        outsider = await make_account("outsider@example.com")
        team_id = await make_team(alice)
        project_id = await self._project(db, alice, team_id)

        membership = await MembershipStore(db).add_project_member(
            project_id, outsider.account_id, ProjectRole.VIEWER
        )
        assert membership.role == ProjectRole.VIEWER

    async def test_removing_team_member_keeps_project_membership(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        bob = await make_account("bob@example.com")
        team_id = await make_team(alice)
        project_id = await self._project(db, alice, team_id)

        store = MembershipStore(db)
        await store.add_team_member(team_id, bob.account_id, TeamRole.MEMBER)
        await store.add_project_member(project_id, bob.account_id, ProjectRole.MEMBER)
        await db.commit()

        await store.remove_team_member(team_id, bob.account_id)
        await db.commit()

        assert await store.get_team_role(team_id, bob.account_id) is None
        assert await store.get_project_role(project_id, bob.account_id) == ProjectRole.MEMBER

    async def test_project_listing_orders_manager_first(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        team_id = await make_team(alice)
        project_id = await self._project(db, alice, team_id)
        store = MembershipStore(db)

        viewer = await make_account("viewer@example.com")
        admin = await make_account("admin@example.com")
        for principal in (viewer, admin):
            await store.add_team_member(team_id, principal.account_id, TeamRole.MEMBER)
        await store.add_project_member(project_id, viewer.account_id, ProjectRole.VIEWER)
        await store.add_project_member(project_id, admin.account_id, ProjectRole.ADMIN)
        await db.commit()

        members = await store.list_project_members(project_id)
        assert [m.role for m in members] == [ProjectRole.MANAGER, ProjectRole.ADMIN, ProjectRole.VIEWER]


class TestConcurrency:
    async def test_stale_writer_gets_concurrent_modification(self, session_factory, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        bob = await make_account("bob@example.com")
        team_id = await make_team(alice)
        await MembershipStore(db).add_team_member(team_id, bob.account_id, TeamRole.MEMBER)
        await db.commit()

        async with session_factory() as first, session_factory() as second:
            # Both writers read version 1
            held = await MembershipStore(second).get_team_membership(team_id, bob.account_id)
            assert held.version == 1

            await MembershipStore(first).update_team_member_role(team_id, bob.account_id, TeamRole.ADMIN)
            await first.commit()

            with pytest.raises(ConcurrentModification):
                await MembershipStore(second).update_team_member_role(team_id, bob.account_id, TeamRole.GUEST)
            await second.rollback()

        async with session_factory() as check:
            assert await MembershipStore(check).get_team_role(team_id, bob.account_id) == TeamRole.ADMIN

    async def test_expected_version_mismatch(self, db, make_account, make_team):
        alice = await make_account("alice@example.com")
        bob = await make_account("bob@example.com")
        team_id = await make_team(alice)
        store = MembershipStore(db)
        membership = await store.add_team_member(team_id, bob.account_id, TeamRole.MEMBER)
        await db.commit()

        with pytest.raises(ConcurrentModification):
            await store.update_team_member_role(
                team_id, bob.account_id, TeamRole.ADMIN, expected_version=membership.version + 1
            )
        with pytest.raises(ConcurrentModification):
            await store.remove_team_member(team_id, bob.account_id, expected_version=membership.version + 1)
