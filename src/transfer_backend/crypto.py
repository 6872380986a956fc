"""Passcode-derived encryption for share metadata.

Wire format of an encrypted blob (base64 text): ``nonce(12) || ciphertext || tag(16)``.

The salt is a fixed public constant, so identical passcodes always derive the same key.
This keeps the remote format free of any per-share salt, at the cost of resting key
strength entirely on passcode entropy plus the PBKDF2 work factor.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
import secrets
from collections.abc import Mapping

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from transfer_backend.errors import DecryptionError, KeyDerivationError

KDF_SALT = b"litek-transfer-salt-v1"
KDF_ITERATIONS = 100_000
KEY_LENGTH_BYTES = 32
NONCE_LENGTH_BYTES = 12
TAG_LENGTH_BYTES = 16

PASS_CODE_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
DEFAULT_PASS_CODE_LENGTH = 6
# 15 random bytes -> 20 URL-safe characters.
SHARE_ID_BYTES = 15


class DerivedKey:
    """AES-256-GCM key derived from a passcode; usable only through this module."""

    __slots__ = ("_aead",)

    def __init__(self, aead: AESGCM) -> None:
        self._aead = aead

    def __repr__(self) -> str:
        return "DerivedKey(<hidden>)"


def derive_key(pass_code: str) -> DerivedKey:
    if not pass_code:
        raise KeyDerivationError("passcode must not be empty")
    try:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH_BYTES,
            salt=KDF_SALT,
            iterations=KDF_ITERATIONS,
        )
        raw = kdf.derive(pass_code.encode("utf-8"))
        return DerivedKey(AESGCM(raw))
    except Exception as e:
        raise KeyDerivationError("key derivation failed") from e


def encrypt_data(data: str | Mapping[str, object], key: DerivedKey) -> str:
    """Encrypt a string (or a JSON-serializable mapping) and return base64 text."""

    text = data if isinstance(data, str) else json.dumps(dict(data))
    # Fresh CSPRNG nonce per call; never a counter.
    nonce = os.urandom(NONCE_LENGTH_BYTES)
    ct_with_tag = key._aead.encrypt(nonce, text.encode("utf-8"), None)
    return base64.b64encode(nonce + ct_with_tag).decode("ascii")


def decrypt_data(blob: str | bytes, key: DerivedKey) -> str:
    try:
        combined = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError("ciphertext is not valid base64") from e

    if len(combined) < NONCE_LENGTH_BYTES + TAG_LENGTH_BYTES:
        raise DecryptionError("ciphertext too short")

    nonce = combined[:NONCE_LENGTH_BYTES]
    ct_with_tag = combined[NONCE_LENGTH_BYTES:]
    try:
        raw = key._aead.decrypt(nonce, ct_with_tag, None)
    except InvalidTag as e:
        raise DecryptionError("authentication failed (wrong key or tampered data)") from e

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("plaintext is not valid UTF-8") from e


def generate_pass_code(length: int = DEFAULT_PASS_CODE_LENGTH) -> str:
    # 6 chars over 36 symbols is ~31 bits: short enough to read out loud.
    return "".join(secrets.choice(PASS_CODE_ALPHABET) for _ in range(length))


def generate_share_id() -> str:
    return secrets.token_urlsafe(SHARE_ID_BYTES)
