"""
Cryptography utilities for secrets stored in config.json.

Mux API credentials, the webhook signing secret and the SerpApi key are
encrypted with a machine-derived Fernet key before they touch disk.
"""

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import base64
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

_SALT = b'bourbon-buddy-salt-v1'
_ITERATIONS = 100000


class CredentialManager:
    """Encrypts and decrypts stored credentials."""

    @staticmethod
    def derive_key(password: str, salt: bytes = _SALT) -> bytes:
        """
        Derive a Fernet key from a password using PBKDF2-SHA256.

        Args:
            password: Source password
            salt: Salt bytes for key derivation

        Returns:
            urlsafe base64 encoded 32 byte key
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=_ITERATIONS,
        )
        return base64.urlsafe_b64encode(kdf.derive(password.encode()))

    @staticmethod
    def machine_key() -> bytes:
        """
        Key derived from the machine id and current user.

        Config files copied to another machine will not decrypt, which
        is the point.
        """
        try:
            with open('/etc/machine-id', 'r') as f:
                machine_id = f.read().strip()
        except OSError:
            machine_id = os.getenv('HOSTNAME', 'default-machine')

        username = os.getenv('USER', 'default-user')
        return CredentialManager.derive_key(f"{machine_id}-{username}")

    @staticmethod
    def encrypt(data: str, key: Optional[bytes] = None) -> str:
        """Encrypt a string, returning a urlsafe base64 token."""
        if key is None:
            key = CredentialManager.machine_key()
        token = Fernet(key).encrypt(data.encode())
        return base64.urlsafe_b64encode(token).decode()

    @staticmethod
    def decrypt(encrypted_data: str, key: Optional[bytes] = None) -> Optional[str]:
        """
        Decrypt a value produced by `encrypt`.

        Returns:
            Decrypted string, or None if decryption fails
        """
        try:
            if key is None:
                key = CredentialManager.machine_key()
            raw = base64.urlsafe_b64decode(encrypted_data.encode())
            return Fernet(key).decrypt(raw).decode()
        except (InvalidToken, ValueError) as e:
            logger.warning(f"Credential decryption failed: {e}")
            return None


def mask_secret(value: Optional[str]) -> str:
    """Mask a secret for display: keeps the first and last four characters."""
    if not value:
        return ""
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}...{value[-4:]}****"
