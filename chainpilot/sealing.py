"""
Sealing of account secrets at rest.

Secrets are sealed with a libsodium secretbox under a 32-byte master key.
The engine only unseals a secret right before handing it to a chain
adapter for submission.
"""
import base64
import binascii
import logging
from typing import Optional

import nacl.exceptions
import nacl.secret
import nacl.utils

from .exceptions import SealingError

logger = logging.getLogger(__name__)


def generate_master_key() -> str:
    """
    Generate a new master key.

    Returns:
        Base64-encoded 32-byte key suitable for ``CHAINPILOT_MASTER_KEY``
    """
    return base64.b64encode(nacl.utils.random(nacl.secret.SecretBox.KEY_SIZE)).decode("ascii")


class SecretSealer:
    """Seals and unseals account secrets with a master key"""

    def __init__(self, master_key: Optional[str]):
        """
        Args:
            master_key: Base64-encoded 32-byte key

        Raises:
            SealingError: If the key is missing or malformed
        """
        if not master_key:
            raise SealingError("No master key configured; set CHAINPILOT_MASTER_KEY")
        try:
            key = base64.b64decode(master_key, validate=True)
        except (binascii.Error, ValueError) as e:
            raise SealingError(f"Master key is not valid base64: {e}")
        if len(key) != nacl.secret.SecretBox.KEY_SIZE:
            raise SealingError(
                f"Master key must be {nacl.secret.SecretBox.KEY_SIZE} bytes, got {len(key)}"
            )
        self._box = nacl.secret.SecretBox(key)

    def seal(self, secret: str) -> str:
        # box.encrypt prepends a fresh random nonce
        encrypted = self._box.encrypt(secret.encode("utf-8"))
        return base64.b64encode(encrypted).decode("ascii")

    def unseal(self, sealed: str) -> str:
        """
        Recover a sealed secret.

        Raises:
            SealingError: If the value was sealed under another key or is corrupt
        """
        try:
            return self._box.decrypt(base64.b64decode(sealed)).decode("utf-8")
        except (nacl.exceptions.CryptoError, binascii.Error, ValueError) as e:
            raise SealingError(f"Failed to unseal account secret: {e}")
