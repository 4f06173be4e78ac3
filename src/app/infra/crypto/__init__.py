"""Cifragem de tokens OAuth em repouso (AES-GCM)."""

from .constants import AES_KEY_SIZE, NONCE_SIZE, TAG_SIZE
from .token_cipher import AesGcmTokenCipher

__all__ = [
    "AES_KEY_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
    "AesGcmTokenCipher",
]
