"""
auth/crypto.py -- Symmetric encryption for stored OAuth access tokens.

Security design:
  AES-256-GCM (cryptography's AESGCM). GCM is authenticated: a wrong key, a
  wrong IV, or a single flipped ciphertext bit fails with InvalidTag instead
  of returning garbage, so decrypt() can report DecryptionError reliably.

  A fresh 96-bit IV comes from os.urandom() on every encrypt() call and is
  returned next to the ciphertext. The store keeps both. Reusing an IV
  under the same key breaks GCM's confidentiality and integrity guarantees,
  so there is deliberately no way to pass one in.

  The 32-byte key is SHA-256(secret). Settings.effective_token_key supplies
  the secret (TOKEN_ENCRYPTION_KEY, falling back to SECRET_KEY).

Both halves travel as lowercase hex so they fit TEXT columns unchanged.

Layer rule: no imports from api/ or domains/.
"""

from __future__ import annotations

import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.errors import DecryptionError

_IV_BYTES = 12


class TokenCodec:
    """Encrypt/decrypt access tokens with a per-encryption IV.

    Usage:
        codec = TokenCodec.from_secret(settings.effective_token_key)
        ciphertext, iv = codec.encrypt("gho_xxx")
        codec.decrypt(ciphertext, iv)  # -> "gho_xxx"
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != 32:
            raise ValueError("TokenCodec key must be 32 bytes")
        self._aead = AESGCM(key)

    @classmethod
    def from_secret(cls, secret: str) -> "TokenCodec":
        if not secret:
            raise ValueError("TokenCodec secret must not be empty")
        return cls(hashlib.sha256(secret.encode("utf-8")).digest())

    def encrypt(self, plaintext: str) -> tuple[str, str]:
        """Return (ciphertext_hex, iv_hex)."""
        iv = os.urandom(_IV_BYTES)
        ciphertext = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        return ciphertext.hex(), iv.hex()

    def decrypt(self, ciphertext: str | None, iv: str | None) -> str:
        """Return the plaintext token.

        Raises DecryptionError on missing or malformed input and on
        authentication failure. The message never contains key or token
        material.
        """
        if not ciphertext or not iv:
            raise DecryptionError("No stored token to decrypt")
        try:
            raw_iv = bytes.fromhex(iv)
            raw_ct = bytes.fromhex(ciphertext)
        except (ValueError, binascii.Error) as exc:
            raise DecryptionError("Stored token or IV is not valid hex") from exc
        if len(raw_iv) != _IV_BYTES:
            raise DecryptionError("Stored IV has the wrong length")
        try:
            plaintext = self._aead.decrypt(raw_iv, raw_ct, None)
        except InvalidTag as exc:
            raise DecryptionError("Stored token failed authentication") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("Stored token is not valid UTF-8") from exc
