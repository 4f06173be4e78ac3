"""Testes da cifragem AES-GCM de tokens OAuth."""

from __future__ import annotations

import base64
import os

import pytest

from app.infra.crypto import AES_KEY_SIZE, AesGcmTokenCipher
from app.protocols.crypto import TokenDecryptionError


def _cipher() -> AesGcmTokenCipher:
    return AesGcmTokenCipher(os.urandom(AES_KEY_SIZE))


def test_encrypt_then_decrypt_returns_plaintext() -> None:
    cipher = _cipher()

    encrypted = cipher.encrypt("ya29.token-de-acesso")

    assert encrypted.startswith("v1:")
    assert "ya29" not in encrypted
    assert cipher.decrypt(encrypted) == "ya29.token-de-acesso"


def test_each_encryption_uses_new_nonce() -> None:
    cipher = _cipher()

    assert cipher.encrypt("mesmo") != cipher.encrypt("mesmo")


def test_tampered_ciphertext_is_rejected() -> None:
    cipher = _cipher()
    raw = bytearray(base64.b64decode(cipher.encrypt("token")[3:]))
    raw[-1] ^= 0x01
    tampered = "v1:" + base64.b64encode(bytes(raw)).decode("ascii")

    with pytest.raises(TokenDecryptionError):
        cipher.decrypt(tampered)


def test_other_key_cannot_decrypt() -> None:
    encrypted = _cipher().encrypt("token")

    with pytest.raises(TokenDecryptionError):
        _cipher().decrypt(encrypted)


@pytest.mark.parametrize("value", ["token-em-claro", "v1:***", "v1:" + base64.b64encode(b"curto").decode()])
def test_malformed_values_are_rejected(value: str) -> None:
    with pytest.raises(TokenDecryptionError):
        _cipher().decrypt(value)


def test_key_must_have_32_bytes() -> None:
    with pytest.raises(ValueError, match="32 bytes"):
        AesGcmTokenCipher(b"curta")
