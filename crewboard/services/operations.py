"""
Consumer-facing operations.

Each operation runs one unit of work in the caller's session and returns an
OperationResult instead of raising. Expected failures roll the transaction
back and come back as ``OperationError(code, message)``; transient store
errors are retried, and only a store that stays unreachable escapes as
StoreUnavailable.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from crewboard.errors import CrewboardError, PermissionDenied, StoreUnavailable
from crewboard.models.invitation import Invitation
from crewboard.models.membership import ProjectMembership, ProjectRole, TeamMembership, TeamRole
from crewboard.models.project import Project
from crewboard.models.team import Team
from crewboard.services.authorization import ResourceKind
from crewboard.services.invitations import InvitationManager
from crewboard.services.sessions import Principal
from crewboard.services.teams import TeamService
from crewboard.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


@dataclass(frozen=True)
class OperationError:
    code: str
    message: str
    status_code: int = 400

    @classmethod
    def from_exception(cls, error: CrewboardError) -> "OperationError":
        return cls(code=error.code, message=error.message, status_code=error.status_code)


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Value of a successful operation, or the error it failed with.

    A failed operation rolls the session back, which expires every ORM
    instance loaded in it, including values returned by earlier operations.
    Read what you need from them first.
    """

    value: T | None = None
    error: OperationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: CrewboardError) -> "OperationResult[T]":
        return cls(error=OperationError.from_exception(error))


async def _rollback(db: AsyncSession) -> None:
    try:
        await db.rollback()
    except SQLAlchemyError as e:
        # The connection may already be gone; the session is discarded either way
        logger.warning(f"Rollback failed: {e}")


async def run_operation(
    db: AsyncSession,
    name: str,
    work: Callable[[], Awaitable[T]],
) -> OperationResult[T]:
    """Run ``work`` as one transaction and commit it."""
    attempts = max(1, settings.store_retry_attempts)

    for attempt in range(1, attempts + 1):
        try:
            value = await work()
            await db.commit()
            return OperationResult.success(value)
        except CrewboardError as e:
            await _rollback(db)
            logger.info(f"{name} failed: {e.code}: {e.message}")
            return OperationResult.failure(e)
        except TRANSIENT_ERRORS as e:
            await _rollback(db)
            if attempt == attempts:
                logger.error(f"{name} failed, store unavailable after {attempts} attempts: {e}")
                raise StoreUnavailable() from e
            logger.warning(f"{name} hit a transient store error (attempt {attempt}/{attempts}): {e}")
            await asyncio.sleep(settings.store_retry_delay_seconds)

    raise StoreUnavailable()


# Invitations

async def accept_invitation(db: AsyncSession, principal: Principal | None, token: str) -> OperationResult[TeamMembership]:
    return await run_operation(db, "accept_invitation", lambda: InvitationManager(db).accept(token, principal))


async def decline_invitation(db: AsyncSession, principal: Principal | None, token: str) -> OperationResult[Invitation]:
    return await run_operation(db, "decline_invitation", lambda: InvitationManager(db).decline(token, principal))


async def invite_team_member(
    db: AsyncSession,
    principal: Principal | None,
    team_id: int,
    email: str,
    role: TeamRole | str = TeamRole.MEMBER,
) -> OperationResult[Invitation]:
    return await run_operation(
        db,
        "invite_team_member",
        lambda: InvitationManager(db).create(team_id, email, role, principal),
    )


async def invite_project_member(
    db: AsyncSession,
    principal: Principal | None,
    project_id: int,
    account_id: int,
    role: ProjectRole | str = ProjectRole.MEMBER,
) -> OperationResult[ProjectMembership]:
    """Add an existing team member to a project."""
    return await run_operation(
        db,
        "invite_project_member",
        lambda: TeamService(db).add_project_member(project_id, account_id, role, principal),
    )


# Membership management

async def update_member_role(
    db: AsyncSession,
    principal: Principal | None,
    kind: ResourceKind | str,
    entity_id: int,
    account_id: int,
    role: str,
    expected_version: int | None = None,
) -> OperationResult[TeamMembership | ProjectMembership]:
    try:
        kind = ResourceKind(kind)
    except ValueError:
        return OperationResult.failure(PermissionDenied(f"Unknown resource kind: {kind}"))

    service = TeamService(db)
    if kind == ResourceKind.TEAM:
        work = lambda: service.change_team_member_role(entity_id, account_id, role, principal, expected_version)
    else:
        work = lambda: service.change_project_member_role(entity_id, account_id, role, principal, expected_version)
    return await run_operation(db, "update_member_role", work)


async def remove_member(
    db: AsyncSession,
    principal: Principal | None,
    kind: ResourceKind | str,
    entity_id: int,
    account_id: int,
    expected_version: int | None = None,
) -> OperationResult[None]:
    try:
        kind = ResourceKind(kind)
    except ValueError:
        return OperationResult.failure(PermissionDenied(f"Unknown resource kind: {kind}"))

    service = TeamService(db)
    if kind == ResourceKind.TEAM:
        work = lambda: service.remove_team_member(entity_id, account_id, principal, expected_version)
    else:
        work = lambda: service.remove_project_member(entity_id, account_id, principal, expected_version)
    return await run_operation(db, "remove_member", work)


# Teams and projects

async def create_team(db: AsyncSession, principal: Principal | None, name: str, **fields) -> OperationResult[Team]:
    return await run_operation(db, "create_team", lambda: TeamService(db).create_team(principal, name, **fields))


async def update_team(db: AsyncSession, principal: Principal | None, team_id: int, **fields) -> OperationResult[Team]:
    return await run_operation(db, "update_team", lambda: TeamService(db).update_team(team_id, principal, **fields))


async def delete_team(db: AsyncSession, principal: Principal | None, team_id: int) -> OperationResult[None]:
    return await run_operation(db, "delete_team", lambda: TeamService(db).delete_team(team_id, principal))


async def create_project(
    db: AsyncSession,
    principal: Principal | None,
    team_id: int,
    name: str,
    **fields,
) -> OperationResult[Project]:
    return await run_operation(
        db,
        "create_project",
        lambda: TeamService(db).create_project(team_id, principal, name, **fields),
    )


async def update_project(
    db: AsyncSession,
    principal: Principal | None,
    project_id: int,
    **fields,
) -> OperationResult[Project]:
    return await run_operation(
        db,
        "update_project",
        lambda: TeamService(db).update_project(project_id, principal, **fields),
    )


async def delete_project(db: AsyncSession, principal: Principal | None, project_id: int) -> OperationResult[None]:
    return await run_operation(db, "delete_project", lambda: TeamService(db).delete_project(project_id, principal))
