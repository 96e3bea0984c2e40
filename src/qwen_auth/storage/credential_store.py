"""Persistent, optionally encrypted credential file.

Stores exactly one credential in ``~/.local/share/qwen-auth/credentials.json``
(XDG) or the platform-equivalent directory. The file layout is::

    {
      "credentials": <StoredCredentials JSON | EncryptedEnvelope>,
      "metadata": {"createdAt": ..., "updatedAt": ..., "encrypted": true}
    }

Writes go through :func:`~qwen_auth.config.atomic_write` with ``0o600``
permissions. Payloads written by older releases (version 1, the flat
``apiKey``/``oauth``/``jwt`` layout) are migrated on load.

See Also:
    :class:`~qwen_auth.auth.manager.AuthManager` -- persists after login/refresh.
    :mod:`qwen_auth.security.encryption` -- the envelope format.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import ValidationError

from qwen_auth.clock import Clock, system_clock
from qwen_auth.config import atomic_write, get_data_dir
from qwen_auth.constants import CREDENTIALS_FILENAME, CREDENTIALS_VERSION
from qwen_auth.models import (
    ApiKeyCredential,
    JwtConfig,
    JwtCredential,
    OAuthCredential,
    StorageMetadata,
    StoredCredentials,
    TokenInfo,
)
from qwen_auth.security.encryption import decrypt_object, encrypt_object, is_encrypted

logger = logging.getLogger(__name__)

_TOMBSTONE = json.dumps({"deleted": True})


def _migrate_v1(data: dict[str, Any]) -> dict[str, Any]:
    """Flat ``{apiKey, oauth, jwt}`` payload -> tagged ``credential``."""
    if data.get("oauth"):
        credential = {"type": "oauth", **data["oauth"]}
    elif data.get("apiKey"):
        credential = {"type": "api_key", "key": data["apiKey"]}
    elif data.get("jwt"):
        credential = {"type": "jwt", **data["jwt"]}
    else:
        raise ValueError("Version 1 credentials contain no credential")
    return {"credential": credential, "updatedAt": data.get("updatedAt", 0), "version": 2}


_MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    1: _migrate_v1,
}


def migrate_credentials(data: dict[str, Any], target_version: int = CREDENTIALS_VERSION) -> dict[str, Any]:
    """Upgrade a raw credentials payload one version at a time.

    Args:
        data: Decoded (and decrypted) ``credentials`` payload.
        target_version: Version to stop at.

    Returns:
        A new dict at *target_version*.

    Raises:
        ValueError: If no migration exists for an intermediate version.
    """
    current = dict(data)
    version = int(current.get("version") or 1)
    while version < target_version:
        step = _MIGRATIONS.get(version)
        if step is None:
            raise ValueError(f"Cannot migrate credentials from version {version}")
        current = step(current)
        version = int(current["version"])
        logger.info("Migrated stored credentials to version %d", version)
    return current


def token_info_to_stored_credentials(
    token_info: TokenInfo, resource_url: Optional[str] = None
) -> StoredCredentials:
    return StoredCredentials(
        credential=OAuthCredential(
            access_token=token_info.token,
            refresh_token=token_info.refresh_token,
            expires_at=token_info.expires_at,
            scopes=token_info.scopes or [],
            resource_url=resource_url,
        )
    )


def api_key_to_stored_credentials(api_key: str) -> StoredCredentials:
    return StoredCredentials(credential=ApiKeyCredential(key=api_key))


def jwt_config_to_stored_credentials(config: JwtConfig) -> StoredCredentials:
    return StoredCredentials(
        credential=JwtCredential(
            private_key=config.private_key,
            key_id=config.key_id,
            issuer=config.issuer,
            audience=config.audience,
            algorithm=config.algorithm,
            expiration_seconds=config.expiration_seconds,
        )
    )


class CredentialStore:
    """Read/write the single credential file.

    Args:
        path: Override for the credential file location. Defaults to
            ``<data dir>/credentials.json``.
        clock: Millisecond clock used for timestamps.

    Example::

        store = CredentialStore()
        store.save_credentials(api_key_to_stored_credentials("sk-..."))
        creds = store.load_credentials()
    """

    def __init__(self, path: Optional[Path] = None, clock: Clock = system_clock) -> None:
        self._path = path if path is not None else get_data_dir() / CREDENTIALS_FILENAME
        self._clock = clock

    @property
    def path(self) -> Path:
        """The filesystem path to the credential file."""
        return self._path

    def _read_file(self) -> Optional[dict[str, Any]]:
        if not self._path.is_file():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (ValueError, OSError) as exc:
            # ValueError covers bad JSON and bytes that are not UTF-8.
            logger.warning("Ignoring unreadable credential file %s: %s", self._path, exc)
            return None
        return data if isinstance(data, dict) else None

    def save_credentials(
        self,
        credentials: StoredCredentials,
        encrypt: bool = True,
        key: Optional[str] = None,
    ) -> StoredCredentials:
        """Stamp, optionally encrypt, and atomically write *credentials*.

        ``createdAt`` is carried over from the existing file when there is one.

        Args:
            credentials: The credential to persist.
            encrypt: Wrap the payload in an AES-256-GCM envelope.
            key: Encryption passphrase; the machine key when None.

        Returns:
            The stamped credentials that were written.

        Raises:
            OSError: If the file cannot be written.
        """
        now = self._clock()
        stamped = credentials.model_copy(update={"updated_at": now, "version": CREDENTIALS_VERSION})
        payload: dict[str, Any] = stamped.model_dump(mode="json", by_alias=True)
        if encrypt:
            payload = encrypt_object(payload, key).model_dump(by_alias=True)

        created_at = now
        previous = self._read_file()
        if previous is not None:
            prev_meta = previous.get("metadata")
            if isinstance(prev_meta, dict) and isinstance(prev_meta.get("createdAt"), int):
                created_at = prev_meta["createdAt"]

        metadata = StorageMetadata(created_at=created_at, updated_at=now, encrypted=encrypt)
        document = {
            "credentials": payload,
            "metadata": metadata.model_dump(by_alias=True),
        }
        atomic_write(self._path, json.dumps(document, indent=2) + "\n")
        logger.debug("Saved %s credentials (encrypted=%s)", stamped.credential.type, encrypt)
        return stamped

    def load_credentials(self, key: Optional[str] = None) -> Optional[StoredCredentials]:
        """Load the stored credential.

        Returns:
            The credential, or ``None`` if the file is missing, unreadable,
            unparseable, or does not validate. A missing file is the normal
            "not logged in yet" state.

        Raises:
            DecryptionFailedError: If the payload is encrypted but cannot be
                decrypted with *key* (wrong key or tampered file).
        """
        document = self._read_file()
        if document is None:
            return None
        payload = document.get("credentials")
        if not isinstance(payload, dict):
            return None

        metadata = document.get("metadata")
        encrypted = isinstance(metadata, dict) and bool(metadata.get("encrypted"))
        if encrypted and is_encrypted(payload):
            payload = decrypt_object(payload, key)
            if not isinstance(payload, dict):
                return None

        try:
            payload = migrate_credentials(payload)
            return StoredCredentials.model_validate(payload)
        except (ValidationError, ValueError) as exc:
            logger.warning("Ignoring invalid credential file %s: %s", self._path, exc)
            return None

    def delete_credentials(self) -> None:
        """Overwrite the file with a tombstone, then remove it. No-op when absent."""
        if not self._path.exists():
            return
        # In place, not via rename: the old blocks must be overwritten.
        with open(self._path, "w", encoding="utf-8") as fh:
            fh.write(_TOMBSTONE)
            fh.flush()
            os.fsync(fh.fileno())
        self._path.unlink()
        logger.debug("Deleted credential file %s", self._path)

    def has_credentials(self) -> bool:
        return self._path.is_file()
