"""WinZip AES (AE-1/AE-2) entry encryption backed by PyCryptodomex.

Each encrypted entry body is laid out as::

    salt | password verifier (2) | AES-CTR ciphertext | HMAC-SHA1 code (10)

Keys are derived with PBKDF2-HMAC-SHA1 (1000 iterations) into
``enc_key | auth_key | verifier``. The CTR counter is little endian and starts
at 1, and the authentication code covers the ciphertext only. This matches what
7-Zip, WinZip and WinRAR read and write for compression method 99.
"""

from __future__ import annotations

import hmac
from typing import Optional, Tuple

try:  # pragma: no cover - optional dependency at runtime
    from Cryptodome.Cipher import AES  # type: ignore
    from Cryptodome.Hash import HMAC, SHA1  # type: ignore
    from Cryptodome.Protocol.KDF import PBKDF2  # type: ignore
    from Cryptodome.Random import get_random_bytes  # type: ignore
    from Cryptodome.Util import Counter  # type: ignore
    _HAS_CRYPTODOME = True
except ImportError:  # pragma: no cover - fallback
    AES = HMAC = SHA1 = PBKDF2 = get_random_bytes = Counter = None  # type: ignore
    _HAS_CRYPTODOME = False

from .constants import (
    AES_AUTH_CODE_SIZE,
    AES_PBKDF2_ITERATIONS,
    AES_STRENGTHS,
    AES_VERIFIER_SIZE,
)


def _ensure_backend() -> None:
    if not _HAS_CRYPTODOME:
        raise RuntimeError("PyCryptodomex is required for AES archive support")


def _strength_sizes(strength: int) -> Tuple[int, int]:
    try:
        return AES_STRENGTHS[strength]
    except KeyError:
        raise ValueError(f"Unsupported AES strength code: {strength}") from None


def derive_keys(password: str, salt: bytes, strength: int) -> Tuple[bytes, bytes, bytes]:
    """Return (encryption key, authentication key, 2-byte verifier)."""
    _ensure_backend()
    key_len, salt_len = _strength_sizes(strength)
    if len(salt) != salt_len:
        raise ValueError(f"Salt must be {salt_len} bytes for AES strength {strength}")
    material = PBKDF2(
        password.encode("utf-8"),
        salt,
        dkLen=2 * key_len + AES_VERIFIER_SIZE,
        count=AES_PBKDF2_ITERATIONS,
        hmac_hash_module=SHA1,
    )
    return material[:key_len], material[key_len : 2 * key_len], material[2 * key_len :]


def _ctr(key: bytes):
    return AES.new(key, AES.MODE_CTR, counter=Counter.new(128, initial_value=1, little_endian=True))


def _auth_code(auth_key: bytes, ciphertext: bytes) -> bytes:
    mac = HMAC.new(auth_key, digestmod=SHA1)
    mac.update(ciphertext)
    return mac.digest()[:AES_AUTH_CODE_SIZE]


class WinZipAES:
    """Encrypts and decrypts single ZIP entry bodies for one password/strength."""

    def __init__(self, password: str, strength: int):
        _ensure_backend()
        _strength_sizes(strength)
        self.password = password
        self.strength = strength

    @property
    def salt_size(self) -> int:
        return AES_STRENGTHS[self.strength][1]

    def overhead(self) -> int:
        return self.salt_size + AES_VERIFIER_SIZE + AES_AUTH_CODE_SIZE

    def encrypt(self, plaintext: bytes, *, salt: Optional[bytes] = None) -> bytes:
        """Encrypt an (already compressed) entry body.

        ``salt`` is random unless given; a fixed salt is only useful for tests.
        """
        if salt is None:
            salt = get_random_bytes(self.salt_size)
        enc_key, auth_key, verifier = derive_keys(self.password, salt, self.strength)
        ciphertext = _ctr(enc_key).encrypt(plaintext)
        return salt + verifier + ciphertext + _auth_code(auth_key, ciphertext)

    def decrypt(self, payload: bytes) -> bytes:
        """Verify and decrypt an entry body.

        Raises ValueError("incorrect password") when the verifier does not match and
        ValueError("authentication failed") when the HMAC code does not.
        """
        salt_size = self.salt_size
        if len(payload) < self.overhead():
            raise ValueError("Encrypted entry too short")
        salt = payload[:salt_size]
        verifier = payload[salt_size : salt_size + AES_VERIFIER_SIZE]
        ciphertext = payload[salt_size + AES_VERIFIER_SIZE : -AES_AUTH_CODE_SIZE]
        code = payload[-AES_AUTH_CODE_SIZE:]
        enc_key, auth_key, expected_verifier = derive_keys(self.password, salt, self.strength)
        if not hmac.compare_digest(verifier, expected_verifier):
            raise ValueError("incorrect password")
        if not hmac.compare_digest(code, _auth_code(auth_key, ciphertext)):
            raise ValueError("authentication failed")
        return _ctr(enc_key).decrypt(ciphertext)


__all__ = [
    "WinZipAES",
    "derive_keys",
    "_HAS_CRYPTODOME",
]
