"""Constantes criptográficas da cifragem de tokens OAuth."""

AES_KEY_SIZE = 32  # AES-256
NONCE_SIZE = 12  # 96 bits (recomendado para GCM)
TAG_SIZE = 16  # 128 bits
CIPHERTEXT_PREFIX = "v1:"
