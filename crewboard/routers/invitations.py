"""
Invitation router.

Handles viewing, accepting and declining team invitations via token link.
"""

from fastapi import APIRouter, Query

from crewboard.deps import CurrentPrincipalOptional, DBSession
from crewboard.models.team import Team
from crewboard.responses import unwrap
from crewboard.routers.teams import serialize_invitation, serialize_members
from crewboard.schemas import InvitationOut, InvitationResponse, InvitationView, MemberOut
from crewboard.services import operations
from crewboard.services.invitations import InvitationManager

router = APIRouter(prefix="/invitations", tags=["invitations"])


@router.get("/team", response_model=InvitationView)
async def view_invitation(db: DBSession, token: str = Query(..., min_length=1)):
    """Landing page data for an invitation link. No sign-in required."""
    invitation = await InvitationManager(db).get_by_token(token)
    team = await db.get(Team, invitation.team_id)
    return InvitationView(
        team_id=invitation.team_id,
        team_name=team.name if team else None,
        email=invitation.email,
        role=invitation.role,
        status=invitation.effective_status,
        expires_at=invitation.expires_at,
    )


# The principal is optional here so a missing session comes back as a
# not_authenticated operation error like every other failure.
@router.post("/team/accept", response_model=MemberOut)
async def accept_invitation(db: DBSession, principal: CurrentPrincipalOptional, body: InvitationResponse):
    """Accept an invitation and join the team."""
    membership = unwrap(await operations.accept_invitation(db, principal, body.token))
    return (await serialize_members(db, [membership]))[0]


@router.post("/team/decline", response_model=InvitationOut)
async def decline_invitation(db: DBSession, principal: CurrentPrincipalOptional, body: InvitationResponse):
    invitation = unwrap(await operations.decline_invitation(db, principal, body.token))
    return serialize_invitation(invitation)
