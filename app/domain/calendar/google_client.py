"""Google OAuth / Calendar HTTP client"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlencode

import httpx

from ...config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_REDIRECT_URI
from ...errors import ConfigurationError, OAuthExchangeFailed

logger = logging.getLogger(__name__)

# Google OAuth URLs
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]

REQUEST_TIMEOUT = 10.0


class RefreshTokenRevoked(Exception):
    """Google rejected the refresh token permanently (invalid_grant)"""


@dataclass
class OAuthTokens:
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def from_response(cls, payload: dict) -> "OAuthTokens":
        # expiry_date is epoch milliseconds; expires_in is seconds from now
        expires_at = None
        if payload.get("expiry_date"):
            expires_at = datetime.utcfromtimestamp(int(payload["expiry_date"]) / 1000)
        elif payload.get("expires_in"):
            expires_at = datetime.utcnow() + timedelta(seconds=int(payload["expires_in"]))
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=expires_at,
        )


class GoogleCalendarOAuthClient:
    """Single-request wrappers around Google's OAuth and Calendar endpoints"""

    def __init__(
        self,
        client_id: Optional[str] = GOOGLE_CLIENT_ID,
        client_secret: Optional[str] = GOOGLE_CLIENT_SECRET,
        redirect_uri: str = GOOGLE_REDIRECT_URI,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._transport = transport

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=self._transport)

    def _require_config(self):
        if not self.client_id or not self.client_secret:
            logger.error("❌ Google Calendar OAuth not configured")
            raise ConfigurationError("Google Calendar not configured")

    def authorization_url(self, state: str) -> str:
        """Consent URL; offline access + forced consent so a refresh token is always reissued"""
        self._require_config()
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> OAuthTokens:
        """Exchange an authorization code for tokens"""
        self._require_config()
        try:
            async with self._http() as client:
                response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "code": code,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "redirect_uri": self.redirect_uri,
                        "grant_type": "authorization_code",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Token exchange request failed: {e}")
            raise OAuthExchangeFailed() from e

        if response.status_code != 200:
            logger.error(f"❌ Token exchange failed: HTTP {response.status_code} {response.text}")
            raise OAuthExchangeFailed()

        payload = _json_body(response, "token exchange")
        if payload.get("error") or not payload.get("access_token"):
            logger.error(f"❌ Invalid token response: {payload.get('error', 'no access token')}")
            raise OAuthExchangeFailed()

        return OAuthTokens.from_response(payload)

    async def list_calendars(self, access_token: str) -> list[dict]:
        """Return the user's calendar list entries"""
        try:
            async with self._http() as client:
                response = await client.get(
                    f"{GOOGLE_CALENDAR_API}/users/me/calendarList",
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Calendar list request failed: {e}")
            raise OAuthExchangeFailed() from e

        if response.status_code != 200:
            logger.error(f"❌ Failed to list calendars: HTTP {response.status_code} {response.text}")
            raise OAuthExchangeFailed()

        return _json_body(response, "calendar list").get("items") or []

    async def refresh(self, refresh_token: str) -> OAuthTokens:
        """
        Run a refresh-token grant

        Raises:
            RefreshTokenRevoked: the grant was rejected permanently
            OAuthExchangeFailed: transient failure, the refresh token may still be good
        """
        self._require_config()
        try:
            async with self._http() as client:
                response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "refresh_token": refresh_token,
                        "grant_type": "refresh_token",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Token refresh request failed: {e}")
            raise OAuthExchangeFailed() from e

        if response.status_code != 200:
            error = _error_code(response)
            if error in ("invalid_grant", "unauthorized_client"):
                logger.warning(f"⚠️ Refresh token rejected by Google: {error}")
                raise RefreshTokenRevoked(error)
            logger.error(f"❌ Token refresh failed: HTTP {response.status_code} {response.text}")
            raise OAuthExchangeFailed()

        payload = _json_body(response, "token refresh")
        if not payload.get("access_token"):
            logger.error("❌ No access token in refresh response")
            raise OAuthExchangeFailed()

        return OAuthTokens.from_response(payload)

    async def revoke(self, token: str) -> bool:
        """Best-effort revocation; returns whether Google accepted it"""
        try:
            async with self._http() as client:
                response = await client.post(GOOGLE_REVOKE_URL, data={"token": token})
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"Failed to revoke Google token: {str(e)}")
            return False


def _json_body(response: httpx.Response, operation: str) -> dict:
    """Decode a JSON object body; anything else is a failed call"""
    try:
        payload = response.json()
    except ValueError as e:
        logger.error(f"❌ Unreadable {operation} response: {response.text[:200]}")
        raise OAuthExchangeFailed() from e
    if not isinstance(payload, dict):
        logger.error(f"❌ Unexpected {operation} response shape: {type(payload).__name__}")
        raise OAuthExchangeFailed()
    return payload


def _error_code(response: httpx.Response) -> Optional[str]:
    try:
        payload = response.json()
    except ValueError:
        return None
    return payload.get("error") if isinstance(payload, dict) else None


def get_google_client() -> GoogleCalendarOAuthClient:
    """Dependency injection for the Google client"""
    return GoogleCalendarOAuthClient()
