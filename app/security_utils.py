"""
Security Utilities
OAuth state signing, security audit logging and secret masking
"""

import logging
from datetime import datetime
from typing import Any, Optional

# Token generation and validation
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .config import SECRET_KEY

logger = logging.getLogger(__name__)

OAUTH_STATE_SALT = "calendar-oauth-state"
OAUTH_STATE_MAX_AGE = 600  # 10 minutes to complete the consent screen


# ============================================================================
# OAUTH STATE
# ============================================================================


def sign_oauth_state(user_id: str) -> str:
    """Wrap a user id in a signed, time-limited token for use as OAuth state"""
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    return serializer.dumps(user_id, salt=OAUTH_STATE_SALT)


def verify_oauth_state(state: str, max_age: int = OAUTH_STATE_MAX_AGE) -> Optional[str]:
    """
    Verify a signed OAuth state

    Returns:
        The user id if the state is authentic and fresh, None otherwise
    """
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    try:
        return serializer.loads(state, salt=OAUTH_STATE_SALT, max_age=max_age)
    except SignatureExpired:
        logger.warning("OAuth state expired")
        return None
    except BadSignature:
        logger.warning("Invalid OAuth state signature")
        return None


# ============================================================================
# AUDIT LOGGING
# ============================================================================


def log_security_event(
    event_type: str,
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
):
    """
    Log security-related events for audit trail

    Args:
        event_type: Type of security event (invalid_webhook_signature, invalid_token, ...)
        user_id: User identifier
        ip_address: Client IP address
        details: Additional event details
    """
    log_entry = {
        "timestamp": datetime.utcnow().isoformat(),
        "event_type": event_type,
        "user_id": user_id,
        "ip_address": ip_address,
        "details": details or {},
    }

    logger.warning(f"SECURITY_EVENT: {log_entry}")


def mask_sensitive_data(data: Optional[str], visible_chars: int = 4) -> str:
    """
    Mask sensitive data for logging/display

    Args:
        data: Sensitive data to mask
        visible_chars: Number of characters to show at the end

    Returns:
        Masked string
    """
    if not data:
        return ""
    if len(data) <= visible_chars:
        return "*" * len(data)

    return "*" * (len(data) - visible_chars) + data[-visible_chars:]
