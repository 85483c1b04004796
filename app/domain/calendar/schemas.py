"""Calendar domain schemas"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ConnectionAttemptState(str, enum.Enum):
    """Lifecycle of one connect attempt; there is no server-side retry state"""

    INITIATED = "initiated"
    CONSENT_GRANTED = "consent_granted"
    CONSENT_DENIED = "consent_denied"
    EXCHANGING = "exchanging"
    STORED = "stored"
    EXCHANGE_FAILED = "exchange_failed"
    PERSIST_FAILED = "persist_failed"


class CallbackOutcome(str, enum.Enum):
    """Query string appended to the calendar status page"""

    CONNECTED = "connected=true"
    ACCESS_DENIED = "error=access_denied"
    MISSING_PARAMS = "error=missing_params"
    CONNECTION_FAILED = "error=connection_failed"


# Terminal attempt states -> the single redirect each one produces
TERMINAL_OUTCOMES = {
    ConnectionAttemptState.STORED: CallbackOutcome.CONNECTED,
    ConnectionAttemptState.CONSENT_DENIED: CallbackOutcome.ACCESS_DENIED,
    ConnectionAttemptState.EXCHANGE_FAILED: CallbackOutcome.CONNECTION_FAILED,
    ConnectionAttemptState.PERSIST_FAILED: CallbackOutcome.CONNECTION_FAILED,
}


class TokenState(str, enum.Enum):
    VALID = "valid"
    REFRESHED = "refreshed"
    NEEDS_RECONNECTION = "needs_reconnection"
    NOT_CONNECTED = "not_connected"


@dataclass
class TokenCheck:
    """Result of ensure_valid_access_token; access_token is set only when usable"""

    state: TokenState
    access_token: Optional[str] = None
    calendar_id: Optional[str] = None

    @property
    def usable(self) -> bool:
        return self.state in (TokenState.VALID, TokenState.REFRESHED)


class CalendarStatusResponse(BaseModel):
    connected: bool
    provider: Optional[str] = None
    calendar_email: Optional[str] = None
    connected_at: Optional[datetime] = None
    state: TokenState
