"""
Security utilities for provider credentials
OAuth tokens are stored Fernet-encrypted and never logged in clear text
"""

import base64
import hashlib
import logging
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from .config import PROVIDER_TOKEN_ENCRYPTION_KEY, SECRET_KEY

logger = logging.getLogger(__name__)


# ============================================================================
# TOKEN ENCRYPTION
# ============================================================================


@lru_cache(maxsize=1)
def get_token_cipher() -> Fernet:
    """Fernet cipher from PROVIDER_TOKEN_ENCRYPTION_KEY, or a key derived from SECRET_KEY"""
    if PROVIDER_TOKEN_ENCRYPTION_KEY:
        return Fernet(PROVIDER_TOKEN_ENCRYPTION_KEY.encode())
    derived = base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest())
    return Fernet(derived)


def encrypt_token(token: str) -> str:
    return get_token_cipher().encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """
    Decrypt a stored token

    Raises:
        ValueError: If the value was not encrypted with the current key
    """
    try:
        return get_token_cipher().decrypt(encrypted_token.encode()).decode()
    except InvalidToken as e:
        logger.error("❌ Stored provider token could not be decrypted (key rotated?)")
        raise ValueError("Stored token could not be decrypted") from e
