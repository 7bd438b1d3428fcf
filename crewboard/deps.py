"""
FastAPI dependencies for authentication, database, and more.
"""

from typing import Annotated

from fastapi import Cookie, Depends, Request

from sqlalchemy.ext.asyncio import AsyncSession

from crewboard.db import get_db
from crewboard.errors import NotAuthenticated
from crewboard.services.sessions import Principal, SessionProvider

# Type alias for database dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]


def get_session_token(
    request: Request,
    session_token: str | None = Cookie(default=None),
) -> str | None:
    """Session token from the cookie, or from an ``Authorization: Bearer`` header."""
    if session_token:
        return session_token

    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


SessionToken = Annotated[str | None, Depends(get_session_token)]


async def get_current_principal_optional(
    request: Request,
    db: DBSession,
    token: SessionToken,
) -> Principal | None:
    """Resolve the principal for this request (None if not signed in).

    Resolved fresh on every request; a signed-out session stops working
    immediately.
    """
    principal = await SessionProvider(db).current_principal(token)
    request.state.principal = principal
    return principal


async def get_current_principal(
    principal: Annotated[Principal | None, Depends(get_current_principal_optional)],
) -> Principal:
    """Resolve the principal for this request (raises 401 if not signed in)."""
    if not principal:
        raise NotAuthenticated()
    return principal


# Type alias for authenticated principal dependency
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
CurrentPrincipalOptional = Annotated[Principal | None, Depends(get_current_principal_optional)]
