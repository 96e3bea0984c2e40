"""AES-256-GCM envelope encryption for credentials at rest.

The key is either a caller passphrase or the machine key from
:func:`~qwen_auth.security.crypto.generate_machine_key`. Each call draws a
fresh salt and IV, stretches the passphrase with scrypt, and returns an
:class:`~qwen_auth.models.EncryptedEnvelope` with base64 fields.

Every decryption failure raises :class:`DecryptionFailedError` with the same
message, whether the key was wrong or the data was altered.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
from typing import Any, Mapping, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from pydantic import ValidationError

from qwen_auth.constants import ENCRYPTION_VERSION
from qwen_auth.exceptions import DecryptionFailedError
from qwen_auth.models import EncryptedEnvelope
from qwen_auth.security.crypto import generate_machine_key

SALT_LENGTH = 32
IV_LENGTH = 16
AUTH_TAG_LENGTH = 16
KEY_LENGTH = 32

# scrypt cost parameters (N=2^14, r=8, p=1)
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1

_GENERIC_FAILURE = "Decryption failed: invalid key or corrupted data"
_ENVELOPE_FIELDS = {"data": str, "iv": str, "authTag": str, "salt": str, "version": int}

EnvelopeLike = Union[EncryptedEnvelope, Mapping[str, Any]]


def _derive_key(passphrase: str, salt: bytes) -> bytes:
    kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(passphrase.encode("utf-8"))


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _unb64(value: str) -> bytes:
    return base64.b64decode(value.encode("ascii"), validate=True)


def encrypt(plaintext: str, key: Optional[str] = None) -> EncryptedEnvelope:
    """Encrypt *plaintext* with a passphrase (machine key when *key* is None)."""
    passphrase = key or generate_machine_key()
    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(_derive_key(passphrase, salt)).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
    return EncryptedEnvelope(
        data=_b64(ciphertext),
        iv=_b64(iv),
        auth_tag=_b64(tag),
        salt=_b64(salt),
        version=ENCRYPTION_VERSION,
    )


def decrypt(envelope: EnvelopeLike, key: Optional[str] = None) -> str:
    """Decrypt an envelope produced by :func:`encrypt`.

    Args:
        envelope: An :class:`EncryptedEnvelope` or its JSON mapping.
        key: The passphrase used to encrypt; machine key when None.

    Returns:
        The plaintext string.

    Raises:
        DecryptionFailedError: On an unsupported version, a malformed
            envelope, a wrong key, or tampered data.
    """
    if not isinstance(envelope, EncryptedEnvelope):
        try:
            envelope = EncryptedEnvelope.model_validate(envelope)
        except ValidationError as exc:
            raise DecryptionFailedError(_GENERIC_FAILURE) from exc

    if envelope.version != ENCRYPTION_VERSION:
        raise DecryptionFailedError(f"Unsupported encryption version: {envelope.version}")

    passphrase = key or generate_machine_key()
    try:
        salt = _unb64(envelope.salt)
        iv = _unb64(envelope.iv)
        tag = _unb64(envelope.auth_tag)
        ciphertext = _unb64(envelope.data)
        if len(iv) != IV_LENGTH or len(tag) != AUTH_TAG_LENGTH:
            raise DecryptionFailedError(_GENERIC_FAILURE)
        plaintext = AESGCM(_derive_key(passphrase, salt)).decrypt(iv, ciphertext + tag, None)
        return plaintext.decode("utf-8")
    except (InvalidTag, binascii.Error, ValueError, UnicodeDecodeError) as exc:
        raise DecryptionFailedError(_GENERIC_FAILURE) from exc


def encrypt_object(obj: Any, key: Optional[str] = None) -> EncryptedEnvelope:
    """JSON-serialise *obj* and encrypt it."""
    return encrypt(json.dumps(obj, separators=(",", ":")), key)


def decrypt_object(envelope: EnvelopeLike, key: Optional[str] = None) -> Any:
    """Decrypt an envelope and parse the plaintext as JSON."""
    plaintext = decrypt(envelope, key)
    try:
        return json.loads(plaintext)
    except json.JSONDecodeError as exc:
        raise DecryptionFailedError(_GENERIC_FAILURE) from exc


def is_encrypted(value: Any) -> bool:
    """Return True if *value* has exactly the shape of an encrypted envelope."""
    if isinstance(value, EncryptedEnvelope):
        return True
    if not isinstance(value, Mapping):
        return False
    for field, kind in _ENVELOPE_FIELDS.items():
        item = value.get(field)
        if not isinstance(item, kind) or isinstance(item, bool):
            return False
    return True
