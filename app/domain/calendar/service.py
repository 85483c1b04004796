"""Calendar connection service - OAuth connect/callback/disconnect and token lifecycle"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import OAUTH_SIGN_STATE
from ...encryption import decrypt_token, encrypt_token
from ...errors import OAuthExchangeFailed, PersistenceFailed, StoreUnavailable, Unauthorized
from ...models import CalendarConnection, CalendarProvider
from ...security_utils import sign_oauth_state, verify_oauth_state
from .google_client import GoogleCalendarOAuthClient, RefreshTokenRevoked
from .repository import CredentialStore
from .schemas import (
    TERMINAL_OUTCOMES,
    CalendarStatusResponse,
    CallbackOutcome,
    ConnectionAttemptState,
    TokenCheck,
    TokenState,
)

logger = logging.getLogger(__name__)

# Refresh when the access token expires within this window
EXPIRY_MARGIN = timedelta(minutes=5)
DEFAULT_TOKEN_LIFETIME = timedelta(seconds=3600)


def select_calendar(calendars: list[dict]) -> Optional[dict]:
    """The calendar flagged primary, else the first one, else None"""
    for calendar in calendars:
        if calendar.get("primary"):
            return calendar
    return calendars[0] if calendars else None


class CalendarConnectionService:
    """Service for linking one Google calendar per user"""

    def __init__(self, db: Session, google: GoogleCalendarOAuthClient):
        self.db = db
        self.google = google
        self.repo = CredentialStore()

    # ------------------------------------------------------------------
    # Connect
    # ------------------------------------------------------------------

    def build_authorization_url(self, user_id: Optional[str]) -> str:
        """Consent URL whose state binds the eventual callback to user_id"""
        if not user_id:
            raise Unauthorized()

        state = sign_oauth_state(user_id) if OAUTH_SIGN_STATE else user_id
        logger.info(f"Google Calendar OAuth initiated for user: {user_id}")
        return self.google.authorization_url(state)

    def resolve_state(self, state: str) -> Optional[str]:
        """Map an OAuth state back to the internal user id"""
        if OAUTH_SIGN_STATE:
            return verify_oauth_state(state)
        return state

    async def exchange_code_for_tokens(self, code: str, user_id: str) -> CalendarConnection:
        """
        Exchange the authorization code, pick the authoritative calendar and
        upsert the connection for user_id.

        Raises:
            OAuthExchangeFailed: Google rejected the code or the calendar list failed
            PersistenceFailed: tokens were issued but could not be stored
        """
        tokens = await self.google.exchange_code(code)
        calendars = await self.google.list_calendars(tokens.access_token)
        calendar = select_calendar(calendars)
        calendar_id = calendar.get("id") if calendar else None

        values = {
            "user_id": user_id,
            "provider": CalendarProvider.GOOGLE.value,
            "access_token": encrypt_token(tokens.access_token),
            "refresh_token": encrypt_token(tokens.refresh_token) if tokens.refresh_token else None,
            "token_expires_at": tokens.expires_at,
            "calendar_id": calendar_id,
            "calendar_email": calendar_id or "",
            "sync_enabled": True,
            "connected_at": datetime.utcnow(),
        }

        try:
            connection = self.repo.upsert(self.db, values)
        except SQLAlchemyError as e:
            # The provider now holds a grant we have no record of; it expires unused
            logger.error(
                f"❌ STRANDED TOKEN: Google issued tokens for user {user_id} but saving the connection failed: {e}"
            )
            raise PersistenceFailed() from e

        logger.info(f"✅ Google Calendar connected for user: {user_id} (calendar={calendar_id})")
        return connection

    async def handle_callback(
        self, code: Optional[str], state: Optional[str], error: Optional[str]
    ) -> CallbackOutcome:
        """Run one connect attempt to a terminal state; never raises"""
        if error:
            logger.info(f"ℹ️ Google consent not granted: {error}")
            return TERMINAL_OUTCOMES[ConnectionAttemptState.CONSENT_DENIED]

        if not code or not state:
            logger.warning("⚠️ OAuth callback missing code or state")
            return CallbackOutcome.MISSING_PARAMS

        user_id = self.resolve_state(state)
        if not user_id:
            logger.warning("⚠️ OAuth callback state could not be verified")
            return CallbackOutcome.MISSING_PARAMS

        attempt = ConnectionAttemptState.EXCHANGING
        try:
            await self.exchange_code_for_tokens(code, user_id)
            attempt = ConnectionAttemptState.STORED
        except PersistenceFailed:
            attempt = ConnectionAttemptState.PERSIST_FAILED
        except OAuthExchangeFailed:
            attempt = ConnectionAttemptState.EXCHANGE_FAILED
        except Exception as e:
            logger.exception(f"❌ Google Calendar callback error for user {user_id}: {str(e)}")
            attempt = ConnectionAttemptState.EXCHANGE_FAILED

        logger.info(f"OAuth attempt for user {user_id} finished in state {attempt.value}")
        return TERMINAL_OUTCOMES[attempt]

    # ------------------------------------------------------------------
    # Disconnect
    # ------------------------------------------------------------------

    async def disconnect(self, user_id: Optional[str]) -> None:
        """Remove the user's connection; a user with no connection is a no-op"""
        if not user_id:
            raise Unauthorized()

        try:
            connection = self.repo.get(self.db, user_id)
            # Revoking the refresh token also invalidates its access tokens
            stored = (connection.refresh_token or connection.access_token) if connection else None
            self.repo.delete(self.db, user_id)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error disconnecting calendar for user {user_id}: {e}")
            raise StoreUnavailable() from e

        if not stored:
            logger.info(f"ℹ️ No calendar connection to remove for user {user_id}")
            return

        try:
            revoked = await self.google.revoke(decrypt_token(stored))
            if not revoked:
                logger.warning(f"⚠️ Google did not accept token revocation for user {user_id}")
        except ValueError as e:
            logger.warning(f"Failed to revoke Google tokens: {str(e)}")

        logger.info(f"✅ Google Calendar disconnected for user: {user_id}")

    # ------------------------------------------------------------------
    # Token lifecycle
    # ------------------------------------------------------------------

    async def ensure_valid_access_token(self, user_id: str) -> TokenCheck:
        """
        Call before every use of the access token.

        Returns VALID when the stored token is still good, REFRESHED after a
        successful refresh grant, NEEDS_RECONNECTION (connection removed) when the
        refresh token is missing or revoked, NOT_CONNECTED when there is no row.
        Transient refresh failures raise OAuthExchangeFailed and keep the row.
        """
        try:
            connection = self.repo.get(self.db, user_id)
        except SQLAlchemyError as e:
            raise StoreUnavailable() from e

        if not connection:
            return TokenCheck(state=TokenState.NOT_CONNECTED)

        now = datetime.utcnow()
        try:
            if connection.token_expires_at and connection.token_expires_at > now + EXPIRY_MARGIN:
                return TokenCheck(
                    state=TokenState.VALID,
                    access_token=decrypt_token(connection.access_token),
                    calendar_id=connection.calendar_id,
                )

            if not connection.refresh_token:
                return self._require_reconnection(user_id, "no refresh token stored")

            logger.info(f"🔄 Google Calendar token expired for user {user_id}, refreshing...")
            refresh_token = decrypt_token(connection.refresh_token)
        except ValueError:
            return self._require_reconnection(user_id, "stored tokens unreadable")

        try:
            tokens = await self.google.refresh(refresh_token)
        except RefreshTokenRevoked as e:
            return self._require_reconnection(user_id, f"refresh rejected ({e})")

        try:
            self.repo.update_tokens(
                self.db,
                user_id,
                access_token=encrypt_token(tokens.access_token),
                token_expires_at=tokens.expires_at or now + DEFAULT_TOKEN_LIFETIME,
                refresh_token=encrypt_token(tokens.refresh_token) if tokens.refresh_token else None,
            )
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to store refreshed token for user {user_id}: {e}")
            raise PersistenceFailed() from e

        logger.info(f"✅ Google Calendar token refreshed for user {user_id}")
        return TokenCheck(
            state=TokenState.REFRESHED,
            access_token=tokens.access_token,
            calendar_id=connection.calendar_id,
        )

    def _require_reconnection(self, user_id: str, reason: str) -> TokenCheck:
        logger.warning(f"⚠️ Calendar connection for user {user_id} needs reconnection: {reason}")
        try:
            self.repo.delete(self.db, user_id)
        except SQLAlchemyError as e:
            raise StoreUnavailable() from e
        return TokenCheck(state=TokenState.NEEDS_RECONNECTION)

    async def get_status(self, user_id: str) -> CalendarStatusResponse:
        """Connection summary for the UI; runs the token check so revocation surfaces here"""
        try:
            connection = self.repo.get(self.db, user_id)
        except SQLAlchemyError as e:
            raise StoreUnavailable() from e

        if not connection:
            return CalendarStatusResponse(connected=False, state=TokenState.NOT_CONNECTED)

        summary = {
            "provider": connection.provider,
            "calendar_email": connection.calendar_email,
            "connected_at": connection.connected_at,
        }
        check = await self.ensure_valid_access_token(user_id)
        return CalendarStatusResponse(connected=check.usable, state=check.state, **summary)
