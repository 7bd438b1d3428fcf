"""
Membership store: the writer of record for team and project roles.

Invariants kept here, whoever the caller is:
- one row per (team, account) and per (project, account);
- exactly one owner per team, who can be neither removed nor demoted;
- member listings ordered by role rank, then join time.

Writes are flushed, not committed; the caller owns the transaction.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from crewboard.errors import (
    AlreadyMemberError,
    ConcurrentModification,
    MembershipNotFound,
    NotTeamMemberError,
    OwnerInvariantError,
    ProjectNotFound,
)
from crewboard.models.membership import ProjectMembership, ProjectRole, TeamMembership, TeamRole
from crewboard.models.project import Project
from crewboard.settings import settings

logger = logging.getLogger(__name__)


class MembershipStore:
    """Role assignments per (team, account) and (project, account)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # Team memberships

    async def get_team_membership(self, team_id: int, account_id: int) -> TeamMembership | None:
        result = await self.db.execute(
            select(TeamMembership).where(
                TeamMembership.team_id == team_id,
                TeamMembership.account_id == account_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_team_role(self, team_id: int, account_id: int) -> TeamRole | None:
        membership = await self.get_team_membership(team_id, account_id)
        return membership.role if membership else None

    async def list_team_members(self, team_id: int) -> list[TeamMembership]:
        """Members ordered by role rank, then join time."""
        result = await self.db.execute(select(TeamMembership).where(TeamMembership.team_id == team_id))
        return sorted(result.scalars().all(), key=lambda m: (m.role.rank, m.joined_at, m.id))

    async def count_team_owners(self, team_id: int) -> int:
        result = await self.db.execute(
            select(func.count(TeamMembership.id)).where(
                TeamMembership.team_id == team_id,
                TeamMembership.role == TeamRole.OWNER,
            )
        )
        return result.scalar_one()

    async def add_team_member(
        self,
        team_id: int,
        account_id: int,
        role: TeamRole,
        invited_by_id: int | None = None,
    ) -> TeamMembership:
        """Add an account to a team.

        The owner role is only accepted while the team has no owner, which is
        the case exactly once: when the team is created.
        """
        if await self.get_team_membership(team_id, account_id):
            raise AlreadyMemberError("This account is already a member of the team")

        if role == TeamRole.OWNER and await self.count_team_owners(team_id) > 0:
            raise OwnerInvariantError("This team already has an owner")

        membership = TeamMembership(
            team_id=team_id,
            account_id=account_id,
            role=role,
            invited_by_id=invited_by_id,
        )
        self.db.add(membership)
        try:
            await self.db.flush()
        except IntegrityError as e:
            # Lost a race against a concurrent insert of the same pair
            raise AlreadyMemberError("This account is already a member of the team") from e

        logger.info(f"Added account {account_id} to team {team_id} as {role.value}")
        return membership

    async def update_team_member_role(
        self,
        team_id: int,
        account_id: int,
        role: TeamRole,
        expected_version: int | None = None,
    ) -> TeamMembership:
        membership = await self.get_team_membership(team_id, account_id)
        if not membership:
            raise MembershipNotFound("This account is not a member of the team")

        if membership.role == TeamRole.OWNER:
            raise OwnerInvariantError("The team owner cannot be demoted")
        if role == TeamRole.OWNER:
            raise OwnerInvariantError("A team can only have one owner")
        if expected_version is not None and membership.version != expected_version:
            raise ConcurrentModification()

        previous = membership.role
        membership.role = role
        await self._flush_versioned()

        logger.info(f"Changed role of account {account_id} in team {team_id}: {previous.value} -> {role.value}")
        return membership

    async def remove_team_member(
        self,
        team_id: int,
        account_id: int,
        expected_version: int | None = None,
    ) -> None:
        membership = await self.get_team_membership(team_id, account_id)
        if not membership:
            raise MembershipNotFound("This account is not a member of the team")

        if membership.role == TeamRole.OWNER:
            raise OwnerInvariantError("The team owner cannot be removed")
        if expected_version is not None and membership.version != expected_version:
            raise ConcurrentModification()

        await self.db.delete(membership)
        await self._flush_versioned()
        logger.info(f"Removed account {account_id} from team {team_id}")

    # Project memberships

    async def get_project(self, project_id: int) -> Project:
        project = await self.db.get(Project, project_id)
        if not project:
            raise ProjectNotFound()
        return project

    async def get_project_membership(self, project_id: int, account_id: int) -> ProjectMembership | None:
        result = await self.db.execute(
            select(ProjectMembership).where(
                ProjectMembership.project_id == project_id,
                ProjectMembership.account_id == account_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_project_role(self, project_id: int, account_id: int) -> ProjectRole | None:
        membership = await self.get_project_membership(project_id, account_id)
        return membership.role if membership else None

    async def list_project_members(self, project_id: int) -> list[ProjectMembership]:
        """Members ordered by role rank, then join time."""
        result = await self.db.execute(
            select(ProjectMembership).where(ProjectMembership.project_id == project_id)
        )
        return sorted(result.scalars().all(), key=lambda m: (m.role.rank, m.joined_at, m.id))

    async def add_project_member(
        self,
        project_id: int,
        account_id: int,
        role: ProjectRole,
        added_by_id: int | None = None,
    ) -> ProjectMembership:
        project = await self.get_project(project_id)

        if await self.get_project_membership(project_id, account_id):
            raise AlreadyMemberError("This account is already a member of the project")

        if settings.require_team_membership_for_projects:
            if await self.get_team_membership(project.team_id, account_id) is None:
                raise NotTeamMemberError()

        membership = ProjectMembership(
            project_id=project_id,
            account_id=account_id,
            role=role,
            added_by_id=added_by_id,
        )
        self.db.add(membership)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise AlreadyMemberError("This account is already a member of the project") from e

        logger.info(f"Added account {account_id} to project {project_id} as {role.value}")
        return membership

    async def update_project_member_role(
        self,
        project_id: int,
        account_id: int,
        role: ProjectRole,
        expected_version: int | None = None,
    ) -> ProjectMembership:
        membership = await self.get_project_membership(project_id, account_id)
        if not membership:
            raise MembershipNotFound("This account is not a member of the project")
        if expected_version is not None and membership.version != expected_version:
            raise ConcurrentModification()

        previous = membership.role
        membership.role = role
        await self._flush_versioned()

        logger.info(
            f"Changed role of account {account_id} in project {project_id}: {previous.value} -> {role.value}"
        )
        return membership

    async def remove_project_member(
        self,
        project_id: int,
        account_id: int,
        expected_version: int | None = None,
    ) -> None:
        membership = await self.get_project_membership(project_id, account_id)
        if not membership:
            raise MembershipNotFound("This account is not a member of the project")
        if expected_version is not None and membership.version != expected_version:
            raise ConcurrentModification()

        await self.db.delete(membership)
        await self._flush_versioned()
        logger.info(f"Removed account {account_id} from project {project_id}")

    async def _flush_versioned(self) -> None:
        """Flush, turning a version-counter mismatch into ConcurrentModification."""
        try:
            await self.db.flush()
        except StaleDataError as e:
            logger.warning(f"Concurrent membership write detected: {e}")
            raise ConcurrentModification() from e
