"""
Credential encryption.

Fernet symmetric encryption keyed from the configured master key through
PBKDF2-HMAC-SHA256, so secrets are never stored in plaintext.
"""

import base64
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from loguru import logger

from alertbridge.core.config import SecuritySettings, settings


KDF_ITERATIONS = 100_000


class CredentialCipher:
    """Encrypts and decrypts secret strings."""

    def __init__(self, security_settings: Optional[SecuritySettings] = None):
        security_settings = security_settings or settings.security
        if security_settings.master_key == SecuritySettings.model_fields["master_key"].default:
            logger.warning("SECURITY_MASTER_KEY not set, using the development encryption key")

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=security_settings.salt.encode("utf-8"),
            iterations=KDF_ITERATIONS,
        )
        key = base64.urlsafe_b64encode(kdf.derive(security_settings.master_key.encode("utf-8")))
        self._fernet = Fernet(key)

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, token: str) -> Optional[str]:
        """Return the plaintext, or None when ``token`` is not one of ours."""
        try:
            return self._fernet.decrypt(token.encode("utf-8")).decode("utf-8")
        except InvalidToken:
            return None
