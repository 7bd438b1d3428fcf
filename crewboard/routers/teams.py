"""
Teams router: teams, their members, invitations and projects.
"""

from fastapi import APIRouter, Query, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crewboard.deps import CurrentPrincipal, DBSession
from crewboard.models.account import Account
from crewboard.models.invitation import Invitation
from crewboard.models.membership import ProjectMembership, TeamMembership
from crewboard.responses import unwrap
from crewboard.schemas import (
    InvitationCreate,
    InvitationOut,
    MemberOut,
    ProjectCreate,
    ProjectOut,
    TeamCreate,
    TeamOut,
    TeamUpdate,
    TeamWithRoleOut,
    TeamMemberUpdate,
)
from crewboard.services import operations
from crewboard.services.authorization import ResourceKind
from crewboard.services.invitations import InvitationManager
from crewboard.services.teams import TeamService
from crewboard.settings import settings

router = APIRouter(prefix="/teams", tags=["teams"])


async def serialize_members(
    db: AsyncSession,
    memberships: list[TeamMembership] | list[ProjectMembership],
) -> list[MemberOut]:
    """Member rows with account details, keeping the store's ordering."""
    account_ids = [m.account_id for m in memberships]
    accounts = {}
    if account_ids:
        result = await db.execute(select(Account).where(Account.id.in_(account_ids)))
        accounts = {a.id: a for a in result.scalars().all()}

    members = []
    for m in memberships:
        account = accounts.get(m.account_id)
        members.append(
            MemberOut(
                account_id=m.account_id,
                email=account.email if account else None,
                display_name=account.display_name if account else None,
                role=m.role.value,
                joined_at=m.joined_at,
                version=m.version,
            )
        )
    return members


def serialize_invitation(invitation: Invitation, include_url: bool = False) -> InvitationOut:
    return InvitationOut(
        id=invitation.id,
        team_id=invitation.team_id,
        email=invitation.email,
        role=invitation.role,
        status=invitation.effective_status,
        expires_at=invitation.expires_at,
        created_at=invitation.created_at,
        invite_url=invitation.get_invite_url(settings.base_url) if include_url else None,
    )


@router.get("", response_model=list[TeamWithRoleOut])
async def list_teams(db: DBSession, principal: CurrentPrincipal):
    """List teams the signed-in account belongs to."""
    teams = await TeamService(db).list_teams_for(principal)
    return [
        TeamWithRoleOut(**TeamOut.model_validate(team).model_dump(), role=role)
        for team, role in teams
    ]


@router.post("", response_model=TeamOut, status_code=status.HTTP_201_CREATED)
async def create_team(db: DBSession, principal: CurrentPrincipal, body: TeamCreate):
    """Create a team; the creator becomes its owner."""
    return unwrap(await operations.create_team(db, principal, **body.model_dump()))


@router.get("/{team_id}", response_model=TeamOut)
async def get_team(team_id: int, db: DBSession, principal: CurrentPrincipal):
    return await TeamService(db).get_team(team_id, principal)


@router.patch("/{team_id}", response_model=TeamOut)
async def update_team(team_id: int, db: DBSession, principal: CurrentPrincipal, body: TeamUpdate):
    return unwrap(await operations.update_team(db, principal, team_id, **body.model_dump(exclude_unset=True)))


@router.delete("/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_team(team_id: int, db: DBSession, principal: CurrentPrincipal):
    """Delete a team. Owner only."""
    unwrap(await operations.delete_team(db, principal, team_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Members

@router.get("/{team_id}/members", response_model=list[MemberOut])
async def list_members(team_id: int, db: DBSession, principal: CurrentPrincipal):
    """Members ordered by role (owner first), then join time."""
    memberships = await TeamService(db).list_team_members(team_id, principal)
    return await serialize_members(db, memberships)


@router.patch("/{team_id}/members/{account_id}", response_model=MemberOut)
async def update_member(
    team_id: int,
    account_id: int,
    db: DBSession,
    principal: CurrentPrincipal,
    body: TeamMemberUpdate,
):
    membership = unwrap(
        await operations.update_member_role(
            db, principal, ResourceKind.TEAM, team_id, account_id, body.role, body.expected_version
        )
    )
    return (await serialize_members(db, [membership]))[0]


@router.delete("/{team_id}/members/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    team_id: int,
    account_id: int,
    db: DBSession,
    principal: CurrentPrincipal,
    expected_version: int | None = Query(default=None),
):
    unwrap(await operations.remove_member(db, principal, ResourceKind.TEAM, team_id, account_id, expected_version))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Invitations

@router.post("/{team_id}/invitations", response_model=InvitationOut, status_code=status.HTTP_201_CREATED)
async def create_invitation(team_id: int, db: DBSession, principal: CurrentPrincipal, body: InvitationCreate):
    """Invite an email address. The response carries the invitation link."""
    invitation = unwrap(await operations.invite_team_member(db, principal, team_id, body.email, body.role))
    return serialize_invitation(invitation, include_url=True)


@router.get("/{team_id}/invitations", response_model=list[InvitationOut])
async def list_invitations(team_id: int, db: DBSession, principal: CurrentPrincipal):
    invitations = await InvitationManager(db).list_for_team(team_id, principal)
    return [serialize_invitation(i) for i in invitations]


# Projects

@router.post("/{team_id}/projects", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
async def create_project(team_id: int, db: DBSession, principal: CurrentPrincipal, body: ProjectCreate):
    """Create a project; the creator becomes its manager."""
    fields = body.model_dump()
    name = fields.pop("name")
    return unwrap(await operations.create_project(db, principal, team_id, name, **fields))


@router.get("/{team_id}/projects", response_model=list[ProjectOut])
async def list_projects(team_id: int, db: DBSession, principal: CurrentPrincipal):
    return await TeamService(db).list_projects(team_id, principal)
