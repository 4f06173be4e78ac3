"""Cifragem AES-GCM de tokens OAuth em repouso.

Formato: "v1:" + base64(nonce || ciphertext || tag). O nonce é aleatório
por cifragem; a chave vem de CALENDAR_TOKEN_ENCRYPTION_KEY.
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.infra.crypto.constants import AES_KEY_SIZE, CIPHERTEXT_PREFIX, NONCE_SIZE, TAG_SIZE
from app.protocols.crypto import TokenCipherProtocol, TokenDecryptionError


class AesGcmTokenCipher(TokenCipherProtocol):
    """Cifra/decifra tokens com AES-256-GCM."""

    __slots__ = ("_aesgcm",)

    def __init__(self, key: bytes) -> None:
        if len(key) != AES_KEY_SIZE:
            raise ValueError(f"Chave AES deve ter {AES_KEY_SIZE} bytes")
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        encrypted = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return CIPHERTEXT_PREFIX + base64.b64encode(nonce + encrypted).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        if not ciphertext.startswith(CIPHERTEXT_PREFIX):
            raise TokenDecryptionError("Formato de token cifrado desconhecido")
        try:
            raw = base64.b64decode(ciphertext[len(CIPHERTEXT_PREFIX) :], validate=True)
        except (ValueError, binascii.Error) as exc:
            raise TokenDecryptionError("Token cifrado não é base64 válido") from exc

        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise TokenDecryptionError("Token cifrado truncado")

        nonce, encrypted = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        try:
            return self._aesgcm.decrypt(nonce, encrypted, None).decode("utf-8")
        except (InvalidTag, UnicodeDecodeError) as exc:
            raise TokenDecryptionError("Falha de autenticação ao decifrar token") from exc
