"""
Projects router: a single project and its members.
"""

from fastapi import APIRouter, Query, Response, status

from crewboard.deps import CurrentPrincipal, DBSession
from crewboard.responses import unwrap
from crewboard.routers.teams import serialize_members
from crewboard.schemas import MemberOut, ProjectMemberAdd, ProjectMemberUpdate, ProjectOut, ProjectUpdate
from crewboard.services import operations
from crewboard.services.authorization import ResourceKind
from crewboard.services.teams import TeamService

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("/{project_id}", response_model=ProjectOut)
async def get_project(project_id: int, db: DBSession, principal: CurrentPrincipal):
    return await TeamService(db).get_project(project_id, principal)


@router.patch("/{project_id}", response_model=ProjectOut)
async def update_project(project_id: int, db: DBSession, principal: CurrentPrincipal, body: ProjectUpdate):
    return unwrap(
        await operations.update_project(db, principal, project_id, **body.model_dump(exclude_unset=True))
    )


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(project_id: int, db: DBSession, principal: CurrentPrincipal):
    unwrap(await operations.delete_project(db, principal, project_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Members

@router.get("/{project_id}/members", response_model=list[MemberOut])
async def list_members(project_id: int, db: DBSession, principal: CurrentPrincipal):
    """Members ordered by role (manager first), then join time."""
    memberships = await TeamService(db).list_project_members(project_id, principal)
    return await serialize_members(db, memberships)


@router.post("/{project_id}/members", response_model=MemberOut, status_code=status.HTTP_201_CREATED)
async def add_member(project_id: int, db: DBSession, principal: CurrentPrincipal, body: ProjectMemberAdd):
    """Add a member of the owning team to the project."""
    membership = unwrap(
        await operations.invite_project_member(db, principal, project_id, body.account_id, body.role)
    )
    return (await serialize_members(db, [membership]))[0]


@router.patch("/{project_id}/members/{account_id}", response_model=MemberOut)
async def update_member(
    project_id: int,
    account_id: int,
    db: DBSession,
    principal: CurrentPrincipal,
    body: ProjectMemberUpdate,
):
    membership = unwrap(
        await operations.update_member_role(
            db, principal, ResourceKind.PROJECT, project_id, account_id, body.role, body.expected_version
        )
    )
    return (await serialize_members(db, [membership]))[0]


@router.delete("/{project_id}/members/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    project_id: int,
    account_id: int,
    db: DBSession,
    principal: CurrentPrincipal,
    expected_version: int | None = Query(default=None),
):
    unwrap(
        await operations.remove_member(
            db, principal, ResourceKind.PROJECT, project_id, account_id, expected_version
        )
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
