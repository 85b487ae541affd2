"""
core/crypto.py -- Envelope encryption for the credential cookie.

Blob layout (base64 of the concatenation, fixed order):

    salt (32 bytes) || nonce (12 bytes) || AES-256-GCM ciphertext + 16-byte tag

Security design decisions:
  Key derivation: PBKDF2-HMAC-SHA256, 100 000 iterations, 32-byte output,
      keyed by the server's ENCRYPTION_SECRET and a fresh random salt per
      encryption. A per-blob salt means two encryptions of the same key never
      produce the same cookie, so blob equality leaks nothing.

  No key cache: decrypt() re-derives the key from the salt embedded in the
      blob on every call. The cost (~50ms) is paid once per chat message.

  Single failure mode: every decrypt problem (bad base64, short blob, wrong
      tag, bad UTF-8) raises DecryptionFailed with the same fixed message and
      no chained cause, so no caller can build a padding/format oracle.

Layer rule: no imports from api/, auth/, or relay/.
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from core.errors import DecryptionFailed

SALT_SIZE = 32
NONCE_SIZE = 12  # 96-bit nonce, recommended for AES-GCM
KEY_SIZE = 32  # AES-256
PBKDF2_ITERATIONS = 100_000
MIN_BLOB_SIZE = SALT_SIZE + NONCE_SIZE


class EnvelopeCipher:
    """Encrypt and decrypt credentials under a key derived per blob.

    Constructed once at startup with the master secret; holds no other state
    and is safe to share across concurrent requests.
    """

    def __init__(self, master_secret: str, iterations: int = PBKDF2_ITERATIONS) -> None:
        if not master_secret:
            raise ValueError("master_secret must not be empty")
        self._master = master_secret.encode("utf-8")
        self._iterations = iterations

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE,
            salt=salt,
            iterations=self._iterations,
        )
        return kdf.derive(self._master)

    def encrypt(self, credential: str) -> str:
        """Return the base64 blob for credential."""
        salt = os.urandom(SALT_SIZE)
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = AESGCM(self._derive_key(salt)).encrypt(nonce, credential.encode("utf-8"), None)
        return base64.b64encode(salt + nonce + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """Return the credential inside blob, or raise DecryptionFailed."""
        try:
            raw = base64.b64decode(blob, validate=True)
            if len(raw) < MIN_BLOB_SIZE:
                raise ValueError("blob too short")
            salt = raw[:SALT_SIZE]
            nonce = raw[SALT_SIZE:MIN_BLOB_SIZE]
            ciphertext = raw[MIN_BLOB_SIZE:]
            plaintext = AESGCM(self._derive_key(salt)).decrypt(nonce, ciphertext, None)
            return plaintext.decode("utf-8")
        except (InvalidTag, ValueError, TypeError, binascii.Error):
            # UnicodeDecodeError is a ValueError.
            raise DecryptionFailed() from None
