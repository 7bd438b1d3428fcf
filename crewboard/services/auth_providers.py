"""
OAuth authentication providers.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from crewboard.errors import IdentityLinkError, IdentityProviderUnavailable
from crewboard.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class ExternalProfile:
    """User profile returned from an OAuth provider."""

    provider: str
    id: str  # Subject ID from provider
    login: str | None = None
    email: str | None = None
    full_name: str | None = None
    avatar_url: str | None = None


@dataclass
class TokenExchange:
    access_token: str
    profile: ExternalProfile


class OAuthProvider(ABC):
    """Base class for OAuth providers.

    All network failures surface as IdentityLinkError, with timeouts and
    connection errors as IdentityProviderUnavailable.
    """

    name: str

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self.transport = transport
        self.timeout = settings.oauth_timeout_seconds

    @abstractmethod
    def get_authorization_params(self, redirect_uri: str, state: str) -> dict[str, str]:
        """Get authorization URL parameters."""

    @property
    @abstractmethod
    def authorize_endpoint(self) -> str:
        """Provider endpoint the browser is sent to."""

    @abstractmethod
    async def _request_token(self, client: httpx.AsyncClient, code: str, redirect_uri: str) -> dict[str, Any]:
        """Exchange an authorization code for the token payload."""

    @abstractmethod
    async def _request_profile(self, client: httpx.AsyncClient, access_token: str) -> ExternalProfile:
        """Fetch the signed-in user's profile."""

    def authorization_url(self, redirect_uri: str, state: str) -> str:
        return f"{self.authorize_endpoint}?{urlencode(self.get_authorization_params(redirect_uri, state))}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> TokenExchange:
        """Exchange the authorization code and fetch the profile in one go."""
        async with self._client() as client:
            try:
                token_data = await self._request_token(client, code, redirect_uri)
                access_token = token_data.get("access_token")
                if not access_token:
                    error = token_data.get("error_description") or token_data.get("error") or "no access token"
                    raise IdentityLinkError(f"{self.name} sign-in failed: {error}")
                profile = await self._request_profile(client, access_token)
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                logger.warning(f"{self.name} OAuth unreachable: {e}")
                raise IdentityProviderUnavailable() from e
            except httpx.HTTPError as e:
                logger.warning(f"{self.name} OAuth request failed: {e}")
                raise IdentityLinkError(f"{self.name} sign-in failed") from e

        return TokenExchange(access_token=access_token, profile=profile)

    async def fetch_profile(self, access_token: str) -> ExternalProfile:
        async with self._client() as client:
            try:
                return await self._request_profile(client, access_token)
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                raise IdentityProviderUnavailable() from e
            except httpx.HTTPError as e:
                raise IdentityLinkError(f"Could not load your {self.name} profile") from e


class GiteaOAuthProvider(OAuthProvider):
    """Self-hosted Gitea OAuth provider."""

    name = "gitea"

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(transport)
        self.base_url = (settings.gitea_url or "").rstrip("/")
        self.client_id = settings.gitea_client_id
        self.client_secret = settings.gitea_client_secret
        self.redirect_uri = settings.gitea_redirect_uri

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.base_url}/login/oauth/authorize"

    @property
    def token_url(self) -> str:
        return f"{self.base_url}/login/oauth/access_token"

    @property
    def userinfo_url(self) -> str:
        return f"{self.base_url}/api/v1/user"

    def get_authorization_params(self, redirect_uri: str, state: str) -> dict[str, str]:
        return {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri or redirect_uri,
            "response_type": "code",
            "scope": "read:user,user:email",
            "state": state,
        }

    async def _request_token(self, client: httpx.AsyncClient, code: str, redirect_uri: str) -> dict[str, Any]:
        response = await client.post(
            self.token_url,
            json={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri or redirect_uri,
            },
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        return response.json()

    async def _request_profile(self, client: httpx.AsyncClient, access_token: str) -> ExternalProfile:
        """Gitea /api/v1/user returns id, login, email, avatar_url, full_name."""
        response = await client.get(
            self.userinfo_url,
            headers={"Authorization": f"token {access_token}", "Accept": "application/json"},
        )
        response.raise_for_status()
        data = response.json()

        return ExternalProfile(
            provider=self.name,
            id=str(data["id"]),
            login=data.get("login") or None,
            email=data.get("email") or None,
            full_name=data.get("full_name") or None,
            avatar_url=data.get("avatar_url") or None,
        )


class GoogleOAuthProvider(OAuthProvider):
    """Google OAuth provider."""

    name = "google"
    authorize_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    userinfo_url = "https://www.googleapis.com/oauth2/v2/userinfo"

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(transport)
        self.client_id = settings.google_client_id
        self.client_secret = settings.google_client_secret
        self.redirect_uri = settings.google_redirect_uri

    def get_authorization_params(self, redirect_uri: str, state: str) -> dict[str, str]:
        return {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri or redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "prompt": "select_account",
        }

    async def _request_token(self, client: httpx.AsyncClient, code: str, redirect_uri: str) -> dict[str, Any]:
        response = await client.post(
            self.token_url,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri or redirect_uri,
            },
        )
        response.raise_for_status()
        return response.json()

    async def _request_profile(self, client: httpx.AsyncClient, access_token: str) -> ExternalProfile:
        response = await client.get(
            self.userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        response.raise_for_status()
        data = response.json()

        email = data.get("email")
        return ExternalProfile(
            provider=self.name,
            id=str(data["id"]),
            login=email.split("@")[0] if email else None,
            email=email,
            full_name=data.get("name"),
            avatar_url=data.get("picture"),
        )


def get_oauth_provider(provider_name: str) -> OAuthProvider | None:
    """Get OAuth provider by name."""
    providers = {
        "gitea": GiteaOAuthProvider if settings.gitea_oauth_enabled else None,
        "google": GoogleOAuthProvider if settings.google_oauth_enabled else None,
    }

    provider_class = providers.get(provider_name)
    if provider_class:
        return provider_class()
    return None


def get_available_providers() -> list[str]:
    """Get list of available OAuth providers."""
    providers = []
    if settings.gitea_oauth_enabled:
        providers.append("gitea")
    if settings.google_oauth_enabled:
        providers.append("google")
    return providers
