# =============================================================================
# Google OAuth 2.0 client
# =============================================================================
#
# Setup:
#   1. Go to https://console.cloud.google.com/apis/credentials
#   2. Create OAuth 2.0 Client ID (Web application)
#   3. Add authorized redirect URI: https://yourdomain.com/auth/google/callback
#   4. Enable the Google Calendar API for the project
#   5. Set env vars:
#      - GOOGLE_CLIENT_ID=...
#      - GOOGLE_CLIENT_SECRET=...
#      - GOOGLE_CALLBACK_URL=... (optional, defaults to BASE_URL + path)
#
# Without the two credentials the app runs in anonymous single-tenant mode
# and this client is never constructed.
#
# =============================================================================

import logging
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ValidationError

from luna.config import ProviderConfig
from luna.core.errors import AuthError

logger = logging.getLogger(__name__)


SCOPES = [
    "profile",
    "email",
    "https://www.googleapis.com/auth/calendar",
]

DEFAULT_TOKEN_LIFETIME = 3600


# =============================================================================
# Models
# =============================================================================


class OAuthTokens(BaseModel):
    """Token response from the provider."""
    access_token: str
    refresh_token: str | None = None  # not reissued on every consent
    expires_in: int = DEFAULT_TOKEN_LIFETIME


class OAuthUserInfo(BaseModel):
    """Profile claims retrieved from the provider."""
    provider_user_id: str
    email: str | None = None
    name: str = ""
    picture_url: str = ""


# =============================================================================
# Google OAuth
# =============================================================================


class GoogleOAuth:
    """Google OAuth 2.0 implementation."""

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

    def __init__(self, config: ProviderConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self._transport)

    def get_authorize_url(self, state: str) -> str:
        """
        Get URL to redirect user to for Google sign-in.

        `prompt=consent` with offline access makes Google issue a refresh
        token on every login, not only the first.
        """
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.callback_url,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> OAuthTokens:
        """
        Exchange authorization code for tokens.

        Raises:
            AuthError: rejected code, timeout or transport failure
        """
        data = await self._request(
            "POST",
            self.TOKEN_URL,
            "Token exchange",
            data={
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "code": code,
                "redirect_uri": self.config.callback_url,
                "grant_type": "authorization_code",
            },
        )
        if not data.get("access_token"):
            raise AuthError("Token exchange returned no access token")
        try:
            return OAuthTokens(
                access_token=data["access_token"],
                refresh_token=data.get("refresh_token") or None,
                expires_in=int(data.get("expires_in") or DEFAULT_TOKEN_LIFETIME),
            )
        except (TypeError, ValueError, ValidationError) as e:
            raise AuthError(f"Token exchange returned a malformed payload: {e}") from e

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        """
        Get profile claims from Google.

        Raises:
            AuthError: request failed or the profile has no id
        """
        data = await self._request(
            "GET",
            self.USERINFO_URL,
            "Profile fetch",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if not data.get("id"):
            raise AuthError("Profile response has no user id")
        try:
            return OAuthUserInfo(
                provider_user_id=str(data["id"]),
                email=data.get("email") or None,
                name=data.get("name") or "",
                picture_url=data.get("picture") or "",
            )
        except ValidationError as e:
            raise AuthError(f"Profile response is malformed: {e}") from e

    async def _request(self, method: str, url: str, what: str, **kwargs) -> dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"{what} timed out after {self.config.timeout_seconds}s")
            raise AuthError(f"{what} timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"{what} failed: {e}")
            raise AuthError(f"{what} failed: {e}") from e

        if response.status_code != 200:
            # Avoid logging token material; status is enough to diagnose.
            logger.error(f"{what} rejected (status={response.status_code})")
            raise AuthError(f"{what} failed: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise AuthError(f"{what} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise AuthError(f"{what} returned an unexpected payload")
        return data
