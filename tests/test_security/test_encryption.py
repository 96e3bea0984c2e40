"""Tests for AES-256-GCM envelopes."""

from __future__ import annotations

import base64

import pytest

from qwen_auth.exceptions import DecryptionFailedError
from qwen_auth.models import EncryptedEnvelope
from qwen_auth.security.encryption import (
    decrypt,
    decrypt_object,
    encrypt,
    encrypt_object,
    is_encrypted,
)

KEY = "correct horse battery staple"


def _flip_first_byte(value: str) -> str:
    raw = bytearray(base64.b64decode(value))
    raw[0] ^= 0x01
    return base64.b64encode(bytes(raw)).decode()


class TestEncrypt:
    def test_roundtrip_with_passphrase(self) -> None:
        envelope = encrypt("hello qwen", KEY)
        assert decrypt(envelope, KEY) == "hello qwen"

    def test_roundtrip_with_machine_key(self) -> None:
        assert decrypt(encrypt("machine bound")) == "machine bound"

    def test_envelope_shape(self) -> None:
        envelope = encrypt("x", KEY)
        assert envelope.version == 1
        assert len(base64.b64decode(envelope.iv)) == 16
        assert len(base64.b64decode(envelope.auth_tag)) == 16
        assert len(base64.b64decode(envelope.salt)) == 32

    def test_fresh_salt_and_iv_each_time(self) -> None:
        a = encrypt("same", KEY)
        b = encrypt("same", KEY)
        assert a.salt != b.salt
        assert a.iv != b.iv
        assert a.data != b.data

    def test_unicode_plaintext(self) -> None:
        assert decrypt(encrypt("通义千问 🔑", KEY), KEY) == "通义千问 🔑"

    def test_empty_plaintext(self) -> None:
        envelope = encrypt("", KEY)
        assert envelope.data == ""
        assert decrypt(envelope, KEY) == ""

    def test_large_plaintext(self) -> None:
        payload = "x" * 20_000
        envelope = encrypt(payload, KEY)
        assert len(base64.b64decode(envelope.data)) == 20_000
        assert decrypt(envelope, KEY) == payload

    def test_large_object(self) -> None:
        obj = {"tokens": ["t" * 64 for _ in range(200)]}
        assert decrypt_object(encrypt_object(obj, KEY), KEY) == obj

    def test_accepts_camelcase_mapping(self) -> None:
        mapping = encrypt("mapped", KEY).model_dump(by_alias=True)
        assert "authTag" in mapping
        assert decrypt(mapping, KEY) == "mapped"


class TestDecryptFailures:
    def test_wrong_key(self) -> None:
        envelope = encrypt("secret", KEY)
        with pytest.raises(DecryptionFailedError, match="invalid key or corrupted data"):
            decrypt(envelope, "wrong key")

    @pytest.mark.parametrize("field", ["data", "iv", "auth_tag", "salt"])
    def test_tampered_field(self, field: str) -> None:
        envelope = encrypt("secret payload", KEY)
        tampered = envelope.model_copy(update={field: _flip_first_byte(getattr(envelope, field))})
        with pytest.raises(DecryptionFailedError):
            decrypt(tampered, KEY)

    def test_unsupported_version(self) -> None:
        envelope = encrypt("secret", KEY).model_copy(update={"version": 2})
        with pytest.raises(DecryptionFailedError, match="Unsupported encryption version"):
            decrypt(envelope, KEY)

    def test_invalid_base64(self) -> None:
        envelope = encrypt("secret", KEY).model_copy(update={"iv": "not*base64!"})
        with pytest.raises(DecryptionFailedError):
            decrypt(envelope, KEY)

    def test_missing_fields(self) -> None:
        with pytest.raises(DecryptionFailedError):
            decrypt({"data": "abc"}, KEY)


class TestObjects:
    def test_roundtrip(self) -> None:
        obj = {"credential": {"type": "api_key", "key": "sk-1234567890abcdef"}, "version": 2}
        assert decrypt_object(encrypt_object(obj, KEY), KEY) == obj

    def test_non_json_plaintext_fails(self) -> None:
        with pytest.raises(DecryptionFailedError):
            decrypt_object(encrypt("not json {", KEY), KEY)


class TestIsEncrypted:
    def test_envelope_model(self) -> None:
        assert is_encrypted(encrypt("x", KEY))

    def test_serialized_envelope(self) -> None:
        assert is_encrypted(encrypt("x", KEY).model_dump(by_alias=True))

    @pytest.mark.parametrize(
        "value",
        [
            None,
            "string",
            {"credential": {"type": "api_key", "key": "k"}},
            {"data": "a", "iv": "b", "authTag": "c", "salt": "d"},
            {"data": "a", "iv": "b", "authTag": "c", "salt": "d", "version": "1"},
            {"data": "a", "iv": "b", "authTag": "c", "salt": "d", "version": True},
            {"data": "a", "iv": 1, "authTag": "c", "salt": "d", "version": 1},
        ],
    )
    def test_rejects_other_shapes(self, value: object) -> None:
        assert is_encrypted(value) is False

    def test_model_type(self) -> None:
        envelope = EncryptedEnvelope(data="a", iv="b", auth_tag="c", salt="d")
        assert is_encrypted(envelope)
