"""
Symmetric envelope codec for the tunnel relay.

AES-CBC with PKCS#7 padding and a fresh 16-byte IV per message. The key is a
shared secret string whose UTF-8 bytes are used directly as the AES key.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
from typing import Any, Mapping, Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from greenhost.core.exceptions import ConfigurationError, DecryptionError
from greenhost.core.models import EncryptedEnvelope, RequestEnvelope

IV_SIZE = 16
BLOCK_BITS = 128
VALID_KEY_SIZES = (16, 24, 32)


def b64(b: bytes) -> str:
    """Encode bytes to a Base64 string."""
    return base64.b64encode(b).decode("ascii")


def b64d(s: str) -> bytes:
    """Decode a Base64 string, rejecting anything outside the alphabet."""
    return base64.b64decode(s.encode("ascii"), validate=True)


def canonical_json(obj: Any) -> str:
    """Compact JSON text, the form both ends of the relay agree on."""
    if isinstance(obj, RequestEnvelope):
        obj = obj.model_dump()
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def parse_key(key: Union[str, bytes]) -> bytes:
    """Turn the shared secret into raw AES key bytes."""
    raw = key.encode("utf-8") if isinstance(key, str) else bytes(key)
    if len(raw) not in VALID_KEY_SIZES:
        raise ConfigurationError(
            f"Relay encryption key must be 16, 24 or 32 bytes, got {len(raw)}",
            details={"key_length": len(raw)},
        )
    return raw


class EnvelopeCipher:
    """Encrypts request envelopes and decrypts relay responses."""

    def __init__(self, key: Union[str, bytes]):
        self._key = parse_key(key)

    def encrypt(self, plain: Any) -> EncryptedEnvelope:
        """
        Encrypt a request envelope (or any JSON-serialisable value).

        Args:
            plain: RequestEnvelope or plain JSON data

        Returns:
            EncryptedEnvelope with base64 ciphertext and IV
        """
        plaintext = canonical_json(plain).encode("utf-8")
        iv = os.urandom(IV_SIZE)

        padder = padding.PKCS7(BLOCK_BITS).padder()
        padded = padder.update(plaintext) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return EncryptedEnvelope(data=b64(ciphertext), iv=b64(iv))

    def decrypt(self, ciphertext: str, iv: str) -> Any:
        """
        Decrypt a base64 ciphertext/IV pair back into JSON data.

        Raises:
            DecryptionError: If the payload was not produced with our key
        """
        try:
            ct = b64d(ciphertext)
            iv_bytes = b64d(iv)
        except (binascii.Error, ValueError, AttributeError) as e:
            raise DecryptionError(f"Malformed base64 in envelope: {e}")

        if len(iv_bytes) != IV_SIZE:
            raise DecryptionError(
                f"IV must be {IV_SIZE} bytes, got {len(iv_bytes)}",
                details={"iv_length": len(iv_bytes)},
            )
        if not ct or len(ct) % (BLOCK_BITS // 8):
            raise DecryptionError(
                "Ciphertext length is not a multiple of the block size",
                details={"ciphertext_length": len(ct)},
            )

        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv_bytes)).decryptor()
        padded = decryptor.update(ct) + decryptor.finalize()

        unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
        try:
            plaintext = unpadder.update(padded) + unpadder.finalize()
        except ValueError:
            raise DecryptionError("Invalid padding")

        try:
            return json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecryptionError(f"Decrypted payload is not JSON: {e}")

    def decrypt_envelope(self, envelope: Mapping[str, Any]) -> Any:
        """Decrypt a wire dict shaped like ``{"data": ..., "iv": ...}``."""
        ciphertext = envelope.get("data")
        iv = envelope.get("iv")
        if not isinstance(ciphertext, str) or not isinstance(iv, str):
            raise DecryptionError("Envelope is missing data or iv")
        return self.decrypt(ciphertext, iv)
