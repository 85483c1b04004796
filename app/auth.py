"""
Identity resolution

Access tokens are issued by Supabase Auth (HS256 JWTs signed with the project
JWT secret). Handlers never look up an ambient session: the dependencies below
resolve the caller once and pass an AuthenticatedUser into each operation.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError
from jose import jwt as jose_jwt

from .config import AUTH_COOKIE_NAME, SUPABASE_JWT_AUDIENCE, SUPABASE_JWT_SECRET
from .errors import ConfigurationError, Unauthorized

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: Optional[str] = None


def verify_access_token(token: str) -> AuthenticatedUser:
    """Verify a Supabase access token and return the identity it carries"""
    if not SUPABASE_JWT_SECRET:
        logger.error("❌ SUPABASE_JWT_SECRET not configured")
        raise ConfigurationError()

    if not token or token.count(".") != 2:
        logger.warning("⚠️ Malformed access token received")
        raise Unauthorized()

    try:
        claims = jose_jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=SUPABASE_JWT_AUDIENCE,
        )
    except ExpiredSignatureError as e:
        logger.info("ℹ️ Access token expired")
        raise Unauthorized() from e
    except JWTError as e:
        logger.warning(f"⚠️ Access token verification failed: {type(e).__name__}")
        raise Unauthorized() from e

    user_id = claims.get("sub")
    if not user_id:
        logger.warning(f"⚠️ Token missing sub claim. Available claims: {list(claims.keys())}")
        raise Unauthorized()

    return AuthenticatedUser(id=user_id, email=claims.get("email"))


def resolve_bearer(credentials: Optional[HTTPAuthorizationCredentials]) -> AuthenticatedUser:
    """Resolve an Authorization: Bearer header; used where only a bearer token is accepted"""
    if not credentials or not credentials.credentials:
        raise Unauthorized()
    return verify_access_token(credentials.credentials)


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthenticatedUser:
    """Session dependency: bearer header first, then the auth cookie set by the web app"""
    if credentials and credentials.credentials:
        return verify_access_token(credentials.credentials)

    cookie_token = request.cookies.get(AUTH_COOKIE_NAME)
    if cookie_token:
        return verify_access_token(cookie_token)

    logger.debug(f"No credentials on {request.url.path}")
    raise Unauthorized()
