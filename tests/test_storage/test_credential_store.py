"""Tests for the credential store."""

from __future__ import annotations

import json
import os
import stat

import pytest

from qwen_auth.exceptions import DecryptionFailedError
from qwen_auth.models import ApiKeyCredential, JwtConfig, OAuthCredential, TokenInfo
from qwen_auth.storage.credential_store import (
    CredentialStore,
    api_key_to_stored_credentials,
    jwt_config_to_stored_credentials,
    migrate_credentials,
    token_info_to_stored_credentials,
)

KEY = "store-passphrase"


@pytest.fixture()
def store(tmp_path, clock) -> CredentialStore:
    return CredentialStore(tmp_path / "credentials.json", clock=clock)


def _oauth_creds():
    return token_info_to_stored_credentials(
        TokenInfo(
            token="access-abc",
            expires_at=1_700_003_600_000,
            refresh_token="refresh-abc",
            scopes=["openid", "model.completion"],
        ),
        resource_url="portal.qwen.ai",
    )


class TestHelpers:
    def test_token_info(self) -> None:
        creds = _oauth_creds()
        assert isinstance(creds.credential, OAuthCredential)
        assert creds.credential.refresh_token == "refresh-abc"
        assert creds.credential.resource_url == "portal.qwen.ai"

    def test_api_key(self) -> None:
        creds = api_key_to_stored_credentials("sk-abcdefghijklmnopqrst")
        assert creds.credential == ApiKeyCredential(key="sk-abcdefghijklmnopqrst")

    def test_jwt_config(self) -> None:
        config = JwtConfig(private_key="/keys/k.pem", key_id="kid-1", issuer="svc", audience="qwen")
        creds = jwt_config_to_stored_credentials(config)
        assert creds.credential.type == "jwt"
        assert creds.credential.key_id == "kid-1"
        assert creds.credential.audience == "qwen"


class TestSaveLoad:
    def test_missing_file(self, store: CredentialStore) -> None:
        assert store.has_credentials() is False
        assert store.load_credentials() is None

    def test_encrypted_roundtrip(self, store: CredentialStore, clock) -> None:
        store.save_credentials(_oauth_creds(), encrypt=True, key=KEY)
        loaded = store.load_credentials(KEY)
        assert loaded is not None
        assert loaded.credential.access_token == "access-abc"
        assert loaded.updated_at == clock.now
        assert loaded.version == 2

    def test_encrypted_file_hides_secrets(self, store: CredentialStore) -> None:
        store.save_credentials(_oauth_creds(), encrypt=True, key=KEY)
        raw = store.path.read_text()
        assert "access-abc" not in raw
        assert "refresh-abc" not in raw
        document = json.loads(raw)
        assert set(document["credentials"]) == {"data", "iv", "authTag", "salt", "version"}
        assert document["metadata"]["encrypted"] is True

    def test_plain_roundtrip(self, store: CredentialStore) -> None:
        store.save_credentials(api_key_to_stored_credentials("sk-abcdefghijklmnopqrst"), encrypt=False)
        document = json.loads(store.path.read_text())
        assert document["credentials"]["credential"] == {"type": "api_key", "key": "sk-abcdefghijklmnopqrst"}
        assert document["metadata"]["encrypted"] is False
        loaded = store.load_credentials()
        assert loaded is not None
        assert loaded.credential.key == "sk-abcdefghijklmnopqrst"

    def test_machine_key_default(self, store: CredentialStore) -> None:
        store.save_credentials(_oauth_creds())
        assert store.load_credentials() is not None

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_file_is_owner_only(self, store: CredentialStore) -> None:
        store.save_credentials(_oauth_creds(), key=KEY)
        assert stat.S_IMODE(store.path.stat().st_mode) == 0o600

    def test_created_at_preserved(self, store: CredentialStore, clock) -> None:
        store.save_credentials(_oauth_creds(), key=KEY)
        first = clock.now
        clock.advance(5_000)
        store.save_credentials(_oauth_creds(), key=KEY)
        metadata = json.loads(store.path.read_text())["metadata"]
        assert metadata["createdAt"] == first
        assert metadata["updatedAt"] == first + 5_000

    def test_wrong_key_raises(self, store: CredentialStore) -> None:
        store.save_credentials(_oauth_creds(), key=KEY)
        with pytest.raises(DecryptionFailedError):
            store.load_credentials("not the key")

    def test_corrupt_json_returns_none(self, store: CredentialStore) -> None:
        store.path.write_text("{not json")
        assert store.load_credentials() is None

    def test_non_utf8_file_returns_none(self, store: CredentialStore) -> None:
        store.path.write_bytes(b"\xff\xfe\x00garbage")
        assert store.load_credentials() is None

    def test_save_over_non_utf8_file(self, store: CredentialStore) -> None:
        store.path.write_bytes(b"\xff\xfe\x00garbage")
        store.save_credentials(api_key_to_stored_credentials("sk-0123456789abcdefghij"), encrypt=False)
        assert store.load_credentials().credential.key == "sk-0123456789abcdefghij"

    def test_invalid_payload_returns_none(self, store: CredentialStore) -> None:
        store.path.write_text(
            json.dumps({"credentials": {"credential": {"type": "carrier-pigeon"}, "version": 2}})
        )
        assert store.load_credentials() is None


class TestDelete:
    def test_delete_removes_file(self, store: CredentialStore) -> None:
        store.save_credentials(_oauth_creds(), key=KEY)
        store.delete_credentials()
        assert not store.path.exists()
        assert store.has_credentials() is False

    def test_delete_when_absent(self, store: CredentialStore) -> None:
        store.delete_credentials()
        assert not store.path.exists()


class TestMigration:
    def test_v1_oauth(self) -> None:
        legacy = {
            "oauth": {"accessToken": "a", "refreshToken": "r", "expiresAt": 123},
            "updatedAt": 99,
            "version": 1,
        }
        migrated = migrate_credentials(legacy)
        assert migrated["version"] == 2
        assert migrated["credential"]["type"] == "oauth"
        assert migrated["credential"]["accessToken"] == "a"
        assert migrated["updatedAt"] == 99

    def test_v1_api_key(self) -> None:
        migrated = migrate_credentials({"apiKey": "sk-legacy-key-000000000", "version": 1})
        assert migrated["credential"] == {"type": "api_key", "key": "sk-legacy-key-000000000"}

    def test_missing_version_means_v1(self) -> None:
        migrated = migrate_credentials({"apiKey": "sk-legacy-key-000000000"})
        assert migrated["version"] == 2

    def test_current_version_untouched(self) -> None:
        data = {"credential": {"type": "api_key", "key": "k"}, "version": 2}
        assert migrate_credentials(data) == data

    def test_empty_v1_rejected(self) -> None:
        with pytest.raises(ValueError):
            migrate_credentials({"version": 1})

    def test_legacy_plain_file_loads(self, store: CredentialStore) -> None:
        store.path.write_text(
            json.dumps(
                {
                    "credentials": {"apiKey": "sk-legacy-key-000000000", "version": 1},
                    "metadata": {"createdAt": 1, "updatedAt": 1, "encrypted": False},
                }
            )
        )
        loaded = store.load_credentials()
        assert loaded is not None
        assert loaded.credential.key == "sk-legacy-key-000000000"
