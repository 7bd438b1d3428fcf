"""
Authorization gate.

Every privileged operation asks the gate first. Decisions come from a static
capability table keyed by role and resource kind; the gate only reads
memberships, it never writes them.

Anything the table does not name is denied: a missing principal, an unknown
action, an unknown resource kind, a role with no entry.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from crewboard.errors import (
    CrewboardError,
    NotAuthenticated,
    PermissionDenied,
    ProjectNotFound,
    SelfModificationError,
)
from crewboard.models.membership import ProjectRole, TeamRole
from crewboard.services.membership import MembershipStore
from crewboard.services.sessions import Principal

logger = logging.getLogger(__name__)


class Action(str, Enum):
    VIEW = "view"
    INVITE = "invite"
    REMOVE_MEMBER = "remove_member"
    CHANGE_ROLE = "change_role"
    CREATE_PROJECT = "create_project"
    UPDATE_SETTINGS = "update_settings"
    DELETE = "delete"


class ResourceKind(str, Enum):
    TEAM = "team"
    PROJECT = "project"


# Actions that target another account's membership row
MEMBER_ACTIONS = frozenset({Action.REMOVE_MEMBER, Action.CHANGE_ROLE})

_TEAM_MANAGE = frozenset({
    Action.VIEW,
    Action.INVITE,
    Action.REMOVE_MEMBER,
    Action.CHANGE_ROLE,
    Action.CREATE_PROJECT,
    Action.UPDATE_SETTINGS,
})

TEAM_CAPABILITIES: dict[TeamRole, frozenset[Action]] = {
    TeamRole.OWNER: _TEAM_MANAGE | {Action.DELETE},
    TeamRole.ADMIN: _TEAM_MANAGE,
    TeamRole.MEMBER: frozenset({Action.VIEW}),
    TeamRole.GUEST: frozenset({Action.VIEW}),
}

_PROJECT_MANAGE = frozenset({
    Action.VIEW,
    Action.INVITE,
    Action.REMOVE_MEMBER,
    Action.CHANGE_ROLE,
    Action.UPDATE_SETTINGS,
    Action.DELETE,
})

PROJECT_CAPABILITIES: dict[ProjectRole, frozenset[Action]] = {
    ProjectRole.MANAGER: _PROJECT_MANAGE,
    ProjectRole.ADMIN: _PROJECT_MANAGE,
    ProjectRole.MEMBER: frozenset({Action.VIEW}),
    ProjectRole.VIEWER: frozenset({Action.VIEW}),
}

# Project role a team member holds on projects they were never added to.
# Only consulted when there is no explicit project membership.
IMPLIED_PROJECT_ROLE: dict[TeamRole, ProjectRole | None] = {
    TeamRole.OWNER: ProjectRole.VIEWER,
    TeamRole.ADMIN: ProjectRole.VIEWER,
    TeamRole.MEMBER: ProjectRole.VIEWER,
    TeamRole.GUEST: None,
}


@dataclass(frozen=True)
class Resource:
    """What an action is aimed at.

    ``team_id`` is the owning team of a project. ``target_account_id`` is the
    account whose membership a member action would change.
    """

    kind: ResourceKind
    id: int
    team_id: int | None = None
    target_account_id: int | None = None

    @classmethod
    def team(cls, team_id: int, target_account_id: int | None = None) -> "Resource":
        return cls(ResourceKind.TEAM, team_id, team_id=team_id, target_account_id=target_account_id)

    @classmethod
    def project(
        cls,
        project_id: int,
        team_id: int | None = None,
        target_account_id: int | None = None,
    ) -> "Resource":
        return cls(ResourceKind.PROJECT, project_id, team_id=team_id, target_account_id=target_account_id)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str
    error: type[CrewboardError] | None = None

    @classmethod
    def allow(cls, reason: str = "allowed") -> "Decision":
        return cls(True, reason)

    @classmethod
    def deny(cls, reason: str, error: type[CrewboardError] = PermissionDenied) -> "Decision":
        return cls(False, reason, error)

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise self.error(self.reason)


def _coerce(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def decide(
    principal: Principal | None,
    action: Action | str,
    kind: ResourceKind | str,
    role: TeamRole | ProjectRole | None,
    target_account_id: int | None = None,
    target_is_owner: bool = False,
) -> Decision:
    """Pure capability check once roles are known.

    ``role`` is the principal's role on the resource (for projects, the
    explicit or implied project role).
    """
    if principal is None:
        return Decision.deny("You need to sign in first", NotAuthenticated)

    action = _coerce(Action, action)
    kind = _coerce(ResourceKind, kind)
    if action is None or kind is None:
        return Decision.deny("Unknown action or resource")

    if action in MEMBER_ACTIONS and target_account_id == principal.account_id:
        return Decision.deny("You cannot modify your own role or membership", SelfModificationError)

    if role is None:
        return Decision.deny(f"You are not a member of this {kind.value}")

    if kind == ResourceKind.TEAM:
        capabilities = TEAM_CAPABILITIES.get(role, frozenset()) if isinstance(role, TeamRole) else frozenset()
    else:
        capabilities = (
            PROJECT_CAPABILITIES.get(role, frozenset()) if isinstance(role, ProjectRole) else frozenset()
        )

    if action not in capabilities:
        return Decision.deny(f"Your {kind.value} role ({role.value}) does not allow {action.value}")

    if action in MEMBER_ACTIONS and target_is_owner:
        return Decision.deny("The team owner cannot be removed or have their role changed")

    return Decision.allow(f"{role.value} may {action.value}")


class AuthorizationGate:
    """Resolves roles from the membership store and applies the capability table."""

    def __init__(self, db: AsyncSession, store: MembershipStore | None = None):
        self.db = db
        self.store = store or MembershipStore(db)

    async def authorize(
        self,
        principal: Principal | None,
        action: Action | str,
        resource: Resource,
    ) -> Decision:
        if principal is None:
            return decide(None, action, resource.kind, None)

        kind = _coerce(ResourceKind, resource.kind)
        if kind is None or _coerce(Action, action) is None:
            decision = Decision.deny("Unknown action or resource")
        elif kind == ResourceKind.TEAM:
            decision = await self._authorize_team(principal, action, resource)
        else:
            decision = await self._authorize_project(principal, action, resource)

        if not decision.allowed:
            logger.warning(
                f"Denied {action} on {resource.kind} {resource.id} "
                f"for account {principal.account_id}: {decision.reason}"
            )
        return decision

    async def require(
        self,
        principal: Principal | None,
        action: Action | str,
        resource: Resource,
    ) -> Decision:
        """Like authorize, but raise the typed error on denial."""
        decision = await self.authorize(principal, action, resource)
        decision.raise_if_denied()
        return decision

    async def _authorize_team(self, principal: Principal, action, resource: Resource) -> Decision:
        role = await self.store.get_team_role(resource.id, principal.account_id)

        target_is_owner = False
        if resource.target_account_id is not None and resource.target_account_id != principal.account_id:
            target_role = await self.store.get_team_role(resource.id, resource.target_account_id)
            target_is_owner = target_role == TeamRole.OWNER

        return decide(
            principal,
            action,
            ResourceKind.TEAM,
            role,
            target_account_id=resource.target_account_id,
            target_is_owner=target_is_owner,
        )

    async def _authorize_project(self, principal: Principal, action, resource: Resource) -> Decision:
        role = await self.store.get_project_role(resource.id, principal.account_id)

        if role is None:
            team_id = resource.team_id
            if team_id is None:
                try:
                    team_id = (await self.store.get_project(resource.id)).team_id
                except ProjectNotFound as e:
                    return Decision.deny(e.message, ProjectNotFound)
            team_role = await self.store.get_team_role(team_id, principal.account_id)
            if team_role is not None:
                role = IMPLIED_PROJECT_ROLE.get(team_role)

        return decide(
            principal,
            action,
            ResourceKind.PROJECT,
            role,
            target_account_id=resource.target_account_id,
        )
