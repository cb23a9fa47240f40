"""
Credential encryption for the provider catalog.

Provider API keys are stored Fernet-encrypted in ``ai_provider_global_configs``.
The Fernet key is derived with HKDF from AI_ENCRYPTION_KEY, falling back to
SESSION_SECRET.
"""

import base64
import os
from functools import lru_cache

import structlog
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives.hashes import SHA256
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

logger = structlog.get_logger()

DEVELOPMENT_FALLBACK_KEY = "ai-proxy-development-fallback-key-do-not-use-in-production"


@lru_cache(maxsize=1)
def _get_fernet() -> Fernet:
    """Build the Fernet instance once per process.

    In production/staging, refuses to start without a configured key.
    """
    key_source = os.environ.get("AI_ENCRYPTION_KEY") or os.environ.get("SESSION_SECRET")

    if not key_source:
        environment = os.environ.get("ENVIRONMENT", "development").lower()
        if environment in ("production", "staging"):
            logger.critical(
                "ai_encryption_no_key",
                msg="AI_ENCRYPTION_KEY or SESSION_SECRET must be set in production/staging.",
            )
            raise RuntimeError(
                "AI_ENCRYPTION_KEY or SESSION_SECRET must be set in production/staging environments."
            )

        logger.warning(
            "ai_encryption_no_key",
            msg="No AI_ENCRYPTION_KEY or SESSION_SECRET set. Using fallback key.",
        )
        key_source = DEVELOPMENT_FALLBACK_KEY

    hkdf = HKDF(
        algorithm=SHA256(),
        length=32,
        salt=None,
        info=b"ai-proxy-provider-credentials",
    )
    # Fernet wants a url-safe base64 32-byte key
    return Fernet(base64.urlsafe_b64encode(hkdf.derive(key_source.encode())))


def encrypt_secret(plaintext: str) -> str:
    """Encrypt a provider credential for storage."""
    if not plaintext:
        return ""
    return _get_fernet().encrypt(plaintext.encode()).decode()


def decrypt_secret(ciphertext: str | None) -> str | None:
    """Decrypt a stored credential.

    Returns None for empty values and for tokens that cannot be decrypted
    (e.g. the key was rotated), so resolution reports a missing credential
    instead of failing the whole catalog read.
    """
    if not ciphertext:
        return None

    try:
        return _get_fernet().decrypt(ciphertext.encode()).decode()
    except InvalidToken:
        logger.error("ai_credential_decrypt_failed")
        return None
