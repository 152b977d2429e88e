"""Fernet encryption for secrets stored at rest (MFA seeds). Key is injected; fail if missing."""

import base64
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from kindling.security.exceptions import EncryptionError

# Fernet needs a 32-byte urlsafe key; derive one from the configured secret.
DEFAULT_SALT = b"kindling_mfa_secret_v1"


def _derive_key(secret: str, salt: bytes = DEFAULT_SALT) -> bytes:
    """Derive a 32-byte key for Fernet from a variable-length secret."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=480000,
    )
    return base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8")))


class EncryptionService:
    """
    AES-based encryption (Fernet). No global state: the raw key comes from
    settings.mfa_encryption_key and is passed in by the composition root.
    """

    def __init__(self, key: Optional[str]) -> None:
        if not key or not key.strip():
            raise EncryptionError(
                "Encryption key is required. Set MFA_ENCRYPTION_KEY in environment."
            )
        self._fernet = Fernet(_derive_key(key.strip()))

    def encrypt(self, data: str) -> str:
        """Encrypt string; return Fernet token as text."""
        try:
            return self._fernet.encrypt(data.encode("utf-8")).decode("ascii")
        except Exception as e:
            raise EncryptionError(f"Encryption failed: {e}") from e

    def decrypt(self, data: str) -> str:
        """Decrypt a Fernet token. Raises EncryptionError if wrong key/corrupt."""
        try:
            return self._fernet.decrypt(data.encode("ascii")).decode("utf-8")
        except InvalidToken as e:
            raise EncryptionError("Decryption failed: invalid or wrong key") from e
        except Exception as e:
            raise EncryptionError(f"Decryption failed: {e}") from e
