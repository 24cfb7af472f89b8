from __future__ import annotations

import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

# Layout of an encrypted blob (hex): salt | iv | tag | ciphertext
SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
PBKDF2_ITERATIONS = 100_000

_HEADER_LENGTH = SALT_LENGTH + IV_LENGTH + TAG_LENGTH


class TokenCipher:
    """
    AES-256-GCM with a PBKDF2-SHA512 derived key.

    Each encryption draws a fresh salt, so no two records share a derived key.
    Blobs that were written with one process-wide salt still decrypt, because
    the salt is always read back out of the blob.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("Encryption secret must not be empty")
        self._secret = secret.encode("utf-8")
        self._derive = lru_cache(maxsize=256)(self._derive_key)

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA512(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=PBKDF2_ITERATIONS,
        )
        return kdf.derive(self._secret)

    def encrypt(self, text: str) -> str:
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        sealed = AESGCM(self._derive(salt)).encrypt(iv, text.encode("utf-8"), None)
        # AESGCM appends the tag to the ciphertext; store it up front instead.
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return (salt + iv + tag + ciphertext).hex()

    def decrypt(self, blob: str) -> str:
        try:
            data = bytes.fromhex(blob)
        except (TypeError, ValueError) as e:
            raise ValueError("Encrypted value is not valid hex") from e
        if len(data) < _HEADER_LENGTH:
            raise ValueError("Encrypted value is truncated")

        salt = data[:SALT_LENGTH]
        iv = data[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
        tag = data[SALT_LENGTH + IV_LENGTH:_HEADER_LENGTH]
        ciphertext = data[_HEADER_LENGTH:]
        try:
            plain = AESGCM(self._derive(salt)).decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise ValueError("Encrypted value failed authentication") from e
        return plain.decode("utf-8")
