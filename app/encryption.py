"""Encryption of OAuth credentials at rest"""

import base64
import hashlib
import logging
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from .config import SECRET_KEY, TOKEN_ENCRYPTION_KEY

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_cipher() -> Fernet:
    """Build the Fernet cipher from TOKEN_ENCRYPTION_KEY, or derive one from SECRET_KEY"""
    if TOKEN_ENCRYPTION_KEY:
        return Fernet(TOKEN_ENCRYPTION_KEY.encode())

    logger.warning("⚠️ TOKEN_ENCRYPTION_KEY not set; deriving token key from SECRET_KEY")
    derived = base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest())
    return Fernet(derived)


def encrypt_token(token: str) -> str:
    """Encrypt a token for storage"""
    return get_cipher().encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a stored token. Raises ValueError when the ciphertext is not ours."""
    try:
        return get_cipher().decrypt(encrypted_token.encode()).decode()
    except InvalidToken as e:
        raise ValueError("Stored token could not be decrypted") from e
