"""
Authentication router for local auth and OAuth.
"""

import logging
import secrets
from urllib.parse import urlencode

from fastapi import APIRouter, Query, Request, Response, status
from fastapi.responses import RedirectResponse

from crewboard.deps import CurrentPrincipal, DBSession, SessionToken
from crewboard.errors import AccountNotFound, CrewboardError, IdentityLinkError
from crewboard.models.account import Account
from crewboard.models.account_session import AccountSession
from crewboard.schemas import AccountOut, LoginRequest, RegisterRequest, SessionOut
from crewboard.services import local_auth
from crewboard.services.auth_providers import get_available_providers, get_oauth_provider
from crewboard.services.identity import IdentityResolver
from crewboard.services.sessions import SessionProvider
from crewboard.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def get_client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def _set_session_cookie(response: Response, session_token: str) -> None:
    response.set_cookie(
        key="session_token",
        value=session_token,
        httponly=True,
        secure=not settings.debug,
        samesite="lax",
        max_age=settings.session_expire_hours * 3600,
        path="/",
    )


async def _start_session(request: Request, db: DBSession, account: Account) -> AccountSession:
    return await SessionProvider(db).create_session(
        account,
        user_agent=request.headers.get("User-Agent"),
        ip_address=get_client_ip(request),
    )


def _session_out(account: Account, session: AccountSession) -> SessionOut:
    return SessionOut(
        account=AccountOut.model_validate(account),
        session_token=session.session_token,
        expires_at=session.expires_at,
    )


@router.post("/register", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
async def register(request: Request, response: Response, db: DBSession, body: RegisterRequest):
    """Create a local account and sign it in."""
    account = await local_auth.register(db, body.email, body.password, body.display_name)
    session = await _start_session(request, db, account)
    _set_session_cookie(response, session.session_token)
    return _session_out(account, session)


@router.post("/login", response_model=SessionOut)
async def login(request: Request, response: Response, db: DBSession, body: LoginRequest):
    """Handle local login."""
    account = await local_auth.authenticate(db, body.email, body.password)
    session = await _start_session(request, db, account)
    _set_session_cookie(response, session.session_token)
    return _session_out(account, session)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(db: DBSession, token: SessionToken):
    """Revoke the current session. The token is unusable once this returns."""
    await SessionProvider(db).sign_out(token)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie("session_token", path="/")
    return response


@router.post("/logout-everywhere", status_code=status.HTTP_204_NO_CONTENT)
async def logout_everywhere(db: DBSession, principal: CurrentPrincipal):
    """Revoke every session of the signed-in account."""
    await SessionProvider(db).sign_out_everywhere(principal.account_id)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie("session_token", path="/")
    return response


@router.get("/me", response_model=AccountOut)
async def me(db: DBSession, principal: CurrentPrincipal):
    account = await db.get(Account, principal.account_id)
    if not account:
        raise AccountNotFound()
    return account


@router.get("/providers")
async def providers():
    """OAuth providers configured on this server."""
    return {"providers": get_available_providers()}


# OAuth routes
@router.get("/oauth/{provider}")
async def oauth_start(request: Request, provider: str):
    """Start OAuth flow."""
    oauth_provider = get_oauth_provider(provider)
    if not oauth_provider:
        raise IdentityLinkError(f"Sign-in with '{provider}' is not available")

    # State is echoed back by the provider and checked against this cookie
    state = secrets.token_urlsafe(32)
    redirect_uri = str(request.url_for("oauth_callback", provider=provider))

    response = RedirectResponse(
        url=oauth_provider.authorization_url(redirect_uri, state),
        status_code=status.HTTP_302_FOUND,
    )
    response.set_cookie(
        key="oauth_state",
        value=state,
        httponly=True,
        secure=not settings.debug,
        samesite="lax",
        max_age=600,  # 10 minutes
    )
    return response


@router.get("/oauth/{provider}/callback", name="oauth_callback")
async def oauth_callback(
    request: Request,
    db: DBSession,
    provider: str,
    code: str = Query(...),
    state: str = Query(...),
):
    """Handle OAuth callback."""
    login_url = f"{settings.base_url.rstrip('/')}/login"

    oauth_provider = get_oauth_provider(provider)
    if not oauth_provider:
        raise IdentityLinkError(f"Sign-in with '{provider}' is not available")

    stored_state = request.cookies.get("oauth_state")
    if not stored_state or not secrets.compare_digest(stored_state, state):
        logger.warning(f"OAuth state mismatch for {provider} callback")
        return RedirectResponse(
            url=f"{login_url}?{urlencode({'error': 'invalid_oauth_state'})}",
            status_code=status.HTTP_302_FOUND,
        )

    redirect_uri = str(request.url_for("oauth_callback", provider=provider))
    try:
        account = await IdentityResolver(db).sign_in_with(oauth_provider, code, redirect_uri)
    except CrewboardError as e:
        logger.warning(f"{provider} sign-in failed: {e.code}: {e.message}")
        return RedirectResponse(
            url=f"{login_url}?{urlencode({'error': e.code})}",
            status_code=status.HTTP_302_FOUND,
        )

    session = await _start_session(request, db, account)

    response = RedirectResponse(url=settings.base_url, status_code=status.HTTP_302_FOUND)
    _set_session_cookie(response, session.session_token)
    response.delete_cookie("oauth_state")
    return response
