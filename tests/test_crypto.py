"""Unit tests for core/crypto.py -- EnvelopeCipher.

Covers:
  - round trip for legacy, modern and non-ASCII inputs
  - blob layout (salt || nonce || ciphertext+tag)
  - fresh salt per encryption
  - tamper detection on every byte position
  - one generic DecryptionFailed for every malformed input
  - key re-derivation from the embedded salt on every decrypt
"""

import base64
from unittest.mock import patch

import pytest

from core.crypto import MIN_BLOB_SIZE, NONCE_SIZE, SALT_SIZE, EnvelopeCipher
from core.errors import DecryptionFailed

_SECRET = "unit-test-master-secret-0123456789abcdef"
_LEGACY = "sk-" + "a" * 48
_MODERN = "sk-proj-" + "A" * 30 + "T3BlbkFJ" + "z" * 30


@pytest.fixture(scope="module")
def cipher() -> EnvelopeCipher:
    return EnvelopeCipher(_SECRET)


@pytest.fixture(scope="module")
def fast_cipher() -> EnvelopeCipher:
    # Fewer KDF rounds for the per-byte tamper sweep; the format is identical.
    return EnvelopeCipher(_SECRET, iterations=1000)


class TestRoundTrip:
    @pytest.mark.parametrize("credential", [_LEGACY, _MODERN, "x", "ключ-🔑"])
    def test_decrypt_inverts_encrypt(self, cipher, credential):
        assert cipher.decrypt(cipher.encrypt(credential)) == credential

    def test_blob_layout(self, cipher):
        raw = base64.b64decode(cipher.encrypt(_LEGACY))
        # 16-byte GCM tag follows the ciphertext, which is as long as the plaintext.
        assert len(raw) == SALT_SIZE + NONCE_SIZE + len(_LEGACY) + 16

    def test_same_input_gives_different_blobs(self, cipher):
        first = cipher.encrypt(_LEGACY)
        second = cipher.encrypt(_LEGACY)
        assert first != second
        assert base64.b64decode(first)[:SALT_SIZE] != base64.b64decode(second)[:SALT_SIZE]

    def test_blob_does_not_contain_plaintext(self, cipher):
        blob = cipher.encrypt(_LEGACY)
        assert _LEGACY not in blob
        assert _LEGACY.encode() not in base64.b64decode(blob)


class TestTamperDetection:
    def test_flipping_any_byte_raises(self, fast_cipher):
        raw = base64.b64decode(fast_cipher.encrypt(_LEGACY))
        for i in range(len(raw)):
            tampered = bytearray(raw)
            tampered[i] ^= 0x01
            with pytest.raises(DecryptionFailed):
                fast_cipher.decrypt(base64.b64encode(bytes(tampered)).decode())

    def test_truncated_tag_raises(self, cipher):
        raw = base64.b64decode(cipher.encrypt(_LEGACY))
        with pytest.raises(DecryptionFailed):
            cipher.decrypt(base64.b64encode(raw[:-1]).decode())

    def test_wrong_master_secret_raises(self, cipher):
        other = EnvelopeCipher("a-completely-different-master-secret-xyz")
        with pytest.raises(DecryptionFailed):
            other.decrypt(cipher.encrypt(_LEGACY))


class TestMalformedBlobs:
    @pytest.mark.parametrize(
        "blob",
        [
            "",
            "not base64 at all!",
            base64.b64encode(b"\x00" * (MIN_BLOB_SIZE - 1)).decode(),
            base64.b64encode(b"\x00" * MIN_BLOB_SIZE).decode(),
        ],
    )
    def test_malformed_input_raises_generic_error(self, cipher, blob):
        with pytest.raises(DecryptionFailed) as exc_info:
            cipher.decrypt(blob)
        assert str(exc_info.value) == "Failed to decrypt credential."

    def test_failure_does_not_chain_cause(self, cipher):
        with pytest.raises(DecryptionFailed) as exc_info:
            cipher.decrypt("AAAA")
        assert exc_info.value.__cause__ is None
        assert exc_info.value.__suppress_context__ is True


class TestKeyDerivation:
    def test_decrypt_derives_from_embedded_salt(self, cipher):
        blob = cipher.encrypt(_LEGACY)
        salt = base64.b64decode(blob)[:SALT_SIZE]
        with patch.object(EnvelopeCipher, "_derive_key", autospec=True, side_effect=EnvelopeCipher._derive_key) as spy:
            cipher.decrypt(blob)
            cipher.decrypt(blob)
        assert spy.call_count == 2
        assert all(call.args[1] == salt for call in spy.call_args_list)

    def test_empty_master_secret_rejected(self):
        with pytest.raises(ValueError):
            EnvelopeCipher("")
