"""Protocolo de cifragem de tokens em repouso.

Coordenadores e serviços dependem desta interface, não da implementação
AES-GCM em app/infra/crypto.
"""

from __future__ import annotations

from typing import Protocol


class TokenDecryptionError(Exception):
    """Texto cifrado inválido, adulterado ou cifrado com outra chave."""


class TokenCipherProtocol(Protocol):
    def encrypt(self, plaintext: str) -> str: ...

    def decrypt(self, ciphertext: str) -> str:
        """Levanta TokenDecryptionError se a autenticação falhar."""
        ...
