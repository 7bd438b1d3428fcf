"""
Team and project administration.

Every method takes the acting principal and asks the authorization gate
before touching anything. Nothing here commits; see services.operations.
"""

import logging
from datetime import date

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from crewboard.errors import (
    AccountNotFound,
    InvalidRoleError,
    InvalidStatusError,
    NotAuthenticated,
    TeamNotFound,
)
from crewboard.models.account import Account
from crewboard.models.invitation import Invitation
from crewboard.models.membership import ProjectMembership, ProjectRole, TeamMembership, TeamRole
from crewboard.models.project import Project, ProjectStatus
from crewboard.models.team import Team
from crewboard.services.authorization import Action, AuthorizationGate, Resource
from crewboard.services.membership import MembershipStore
from crewboard.services.sessions import Principal

logger = logging.getLogger(__name__)

# Sentinel for "field not supplied" in partial updates
UNSET = object()


def _team_role(role: TeamRole | str) -> TeamRole:
    try:
        return TeamRole(role)
    except ValueError:
        raise InvalidRoleError(f"Unknown team role: {role}")


def _project_role(role: ProjectRole | str) -> ProjectRole:
    try:
        return ProjectRole(role)
    except ValueError:
        raise InvalidRoleError(f"Unknown project role: {role}")


def _project_status(status: ProjectStatus | str) -> ProjectStatus:
    try:
        return ProjectStatus(status)
    except ValueError:
        raise InvalidStatusError(f"Unknown project status: {status}")


class TeamService:
    def __init__(
        self,
        db: AsyncSession,
        store: MembershipStore | None = None,
        gate: AuthorizationGate | None = None,
    ):
        self.db = db
        self.store = store or MembershipStore(db)
        self.gate = gate or AuthorizationGate(db, self.store)

    # Teams

    async def _load_team(self, team_id: int) -> Team:
        team = await self.db.get(Team, team_id)
        if not team:
            raise TeamNotFound()
        return team

    async def create_team(
        self,
        principal: Principal | None,
        name: str,
        description: str | None = None,
        avatar_url: str | None = None,
    ) -> Team:
        """Create a team with the principal as its owner."""
        if principal is None:
            raise NotAuthenticated()

        team = Team(name=name.strip(), description=description, avatar_url=avatar_url)
        self.db.add(team)
        await self.db.flush()
        await self.store.add_team_member(team.id, principal.account_id, TeamRole.OWNER)

        logger.info(f"Account {principal.account_id} created team {team.id}")
        return team

    async def get_team(self, team_id: int, principal: Principal | None) -> Team:
        team = await self._load_team(team_id)
        await self.gate.require(principal, Action.VIEW, Resource.team(team_id))
        return team

    async def list_teams_for(self, principal: Principal | None) -> list[tuple[Team, TeamRole]]:
        """Teams the principal belongs to, with their role in each."""
        if principal is None:
            raise NotAuthenticated()

        result = await self.db.execute(
            select(Team, TeamMembership.role)
            .join(TeamMembership, TeamMembership.team_id == Team.id)
            .where(TeamMembership.account_id == principal.account_id)
            .order_by(Team.name, Team.id)
        )
        return [(team, role) for team, role in result.all()]

    async def update_team(
        self,
        team_id: int,
        principal: Principal | None,
        name=UNSET,
        description=UNSET,
        avatar_url=UNSET,
    ) -> Team:
        team = await self._load_team(team_id)
        await self.gate.require(principal, Action.UPDATE_SETTINGS, Resource.team(team_id))

        if name is not UNSET and name:
            team.name = name.strip()
        if description is not UNSET:
            team.description = description
        if avatar_url is not UNSET:
            team.avatar_url = avatar_url
        await self.db.flush()

        logger.info(f"Account {principal.account_id} updated team {team_id}")
        return team

    async def delete_team(self, team_id: int, principal: Principal | None) -> None:
        """Delete a team with its projects, memberships and invitations. Owner only."""
        team = await self._load_team(team_id)
        await self.gate.require(principal, Action.DELETE, Resource.team(team_id))

        project_ids = select(Project.id).where(Project.team_id == team_id).scalar_subquery()
        await self.db.execute(delete(ProjectMembership).where(ProjectMembership.project_id.in_(project_ids)))
        await self.db.execute(delete(Project).where(Project.team_id == team_id))
        await self.db.execute(delete(Invitation).where(Invitation.team_id == team_id))
        await self.db.execute(delete(TeamMembership).where(TeamMembership.team_id == team_id))
        await self.db.delete(team)
        await self.db.flush()

        logger.info(f"Account {principal.account_id} deleted team {team_id}")

    # Team members

    async def list_team_members(self, team_id: int, principal: Principal | None) -> list[TeamMembership]:
        await self._load_team(team_id)
        await self.gate.require(principal, Action.VIEW, Resource.team(team_id))
        return await self.store.list_team_members(team_id)

    async def change_team_member_role(
        self,
        team_id: int,
        account_id: int,
        role: TeamRole | str,
        principal: Principal | None,
        expected_version: int | None = None,
    ) -> TeamMembership:
        await self._load_team(team_id)
        await self.gate.require(principal, Action.CHANGE_ROLE, Resource.team(team_id, account_id))
        return await self.store.update_team_member_role(
            team_id, account_id, _team_role(role), expected_version=expected_version
        )

    async def remove_team_member(
        self,
        team_id: int,
        account_id: int,
        principal: Principal | None,
        expected_version: int | None = None,
    ) -> None:
        """Remove a team member. Their project memberships are left alone."""
        await self._load_team(team_id)
        await self.gate.require(principal, Action.REMOVE_MEMBER, Resource.team(team_id, account_id))
        await self.store.remove_team_member(team_id, account_id, expected_version=expected_version)

    # Projects

    async def create_project(
        self,
        team_id: int,
        principal: Principal | None,
        name: str,
        description: str | None = None,
        status: ProjectStatus | str = ProjectStatus.PLANNING,
        due_date: date | None = None,
        color: str | None = None,
    ) -> Project:
        """Create a project; the creator becomes its manager."""
        await self._load_team(team_id)
        await self.gate.require(principal, Action.CREATE_PROJECT, Resource.team(team_id))

        project = Project(
            team_id=team_id,
            name=name.strip(),
            description=description,
            status=_project_status(status),
            due_date=due_date,
            color=color,
        )
        self.db.add(project)
        await self.db.flush()
        await self.store.add_project_member(
            project.id, principal.account_id, ProjectRole.MANAGER, added_by_id=principal.account_id
        )

        logger.info(f"Account {principal.account_id} created project {project.id} in team {team_id}")
        return project

    async def get_project(self, project_id: int, principal: Principal | None) -> Project:
        project = await self.store.get_project(project_id)
        await self.gate.require(principal, Action.VIEW, Resource.project(project.id, project.team_id))
        return project

    async def list_projects(self, team_id: int, principal: Principal | None) -> list[Project]:
        """Projects of a team visible to the principal.

        Guests only see projects they were added to explicitly.
        """
        await self._load_team(team_id)
        await self.gate.require(principal, Action.VIEW, Resource.team(team_id))

        query = select(Project).where(Project.team_id == team_id).order_by(Project.created_at, Project.id)
        if await self.store.get_team_role(team_id, principal.account_id) == TeamRole.GUEST:
            query = query.join(ProjectMembership, ProjectMembership.project_id == Project.id).where(
                ProjectMembership.account_id == principal.account_id
            )

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_project(
        self,
        project_id: int,
        principal: Principal | None,
        name=UNSET,
        description=UNSET,
        status=UNSET,
        due_date=UNSET,
        color=UNSET,
    ) -> Project:
        project = await self.store.get_project(project_id)
        await self.gate.require(principal, Action.UPDATE_SETTINGS, Resource.project(project.id, project.team_id))

        if name is not UNSET and name:
            project.name = name.strip()
        if description is not UNSET:
            project.description = description
        if status is not UNSET and status is not None:
            project.status = _project_status(status)
        if due_date is not UNSET:
            project.due_date = due_date
        if color is not UNSET:
            project.color = color
        await self.db.flush()

        logger.info(f"Account {principal.account_id} updated project {project_id}")
        return project

    async def delete_project(self, project_id: int, principal: Principal | None) -> None:
        project = await self.store.get_project(project_id)
        await self.gate.require(principal, Action.DELETE, Resource.project(project.id, project.team_id))

        await self.db.execute(delete(ProjectMembership).where(ProjectMembership.project_id == project_id))
        await self.db.delete(project)
        await self.db.flush()

        logger.info(f"Account {principal.account_id} deleted project {project_id}")

    # Project members

    async def list_project_members(self, project_id: int, principal: Principal | None) -> list[ProjectMembership]:
        project = await self.store.get_project(project_id)
        await self.gate.require(principal, Action.VIEW, Resource.project(project.id, project.team_id))
        return await self.store.list_project_members(project_id)

    async def add_project_member(
        self,
        project_id: int,
        account_id: int,
        role: ProjectRole | str,
        principal: Principal | None,
    ) -> ProjectMembership:
        project = await self.store.get_project(project_id)
        await self.gate.require(principal, Action.INVITE, Resource.project(project.id, project.team_id))

        role = _project_role(role)
        if not await self.db.get(Account, account_id):
            raise AccountNotFound()

        return await self.store.add_project_member(
            project_id, account_id, role, added_by_id=principal.account_id
        )

    async def change_project_member_role(
        self,
        project_id: int,
        account_id: int,
        role: ProjectRole | str,
        principal: Principal | None,
        expected_version: int | None = None,
    ) -> ProjectMembership:
        project = await self.store.get_project(project_id)
        await self.gate.require(
            principal, Action.CHANGE_ROLE, Resource.project(project.id, project.team_id, account_id)
        )
        return await self.store.update_project_member_role(
            project_id, account_id, _project_role(role), expected_version=expected_version
        )

    async def remove_project_member(
        self,
        project_id: int,
        account_id: int,
        principal: Principal | None,
        expected_version: int | None = None,
    ) -> None:
        project = await self.store.get_project(project_id)
        await self.gate.require(
            principal, Action.REMOVE_MEMBER, Resource.project(project.id, project.team_id, account_id)
        )
        await self.store.remove_project_member(project_id, account_id, expected_version=expected_version)
