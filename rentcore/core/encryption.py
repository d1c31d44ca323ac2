"""AES-256-GCM encryption for bank account numbers."""

import os
from functools import lru_cache

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from rentcore.config import settings


class EncryptionService:
    """AES-256-GCM encryption service for payout bank details."""

    def __init__(self, key: bytes) -> None:
        """Initialize with 32-byte key for AES-256."""
        if len(key) != 32:
            raise ValueError("Encryption key must be 32 bytes for AES-256")
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str) -> bytes:
        """Encrypt a string; returns the 12-byte nonce followed by the ciphertext."""
        nonce = os.urandom(12)
        ciphertext = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return nonce + ciphertext

    def decrypt(self, ciphertext: bytes) -> str:
        """Decrypt nonce + ciphertext back to the original string."""
        if len(ciphertext) < 12:
            raise ValueError("Ciphertext too short")
        plaintext = self._aesgcm.decrypt(ciphertext[:12], ciphertext[12:], None)
        return plaintext.decode("utf-8")


@lru_cache
def get_encryption_service() -> EncryptionService:
    """Get cached encryption service instance."""
    key = settings.encryption_key.encode("utf-8")
    if len(key) < 32:
        key = key.ljust(32, b"\0")
    elif len(key) > 32:
        key = key[:32]
    return EncryptionService(key)


def encrypt_sensitive(plaintext: str) -> bytes:
    """Encrypt sensitive data."""
    return get_encryption_service().encrypt(plaintext)


def decrypt_sensitive(ciphertext: bytes) -> str:
    """Decrypt sensitive data."""
    return get_encryption_service().decrypt(ciphertext)


def mask_account_number(account_number: str) -> str:
    """Show only the last four digits."""
    return f"****{account_number[-4:]}"
