"""Static DashScope API key provider."""

from __future__ import annotations

import logging
import re
from typing import Optional

from qwen_auth.auth.base import AuthProvider
from qwen_auth.clock import Clock, system_clock
from qwen_auth.constants import MIN_API_KEY_LENGTH, NEVER_EXPIRES
from qwen_auth.exceptions import ConfigurationError
from qwen_auth.models import (
    ApiKeyConfig,
    ApiKeyCredential,
    AuthMethod,
    AuthResult,
    Credential,
    StoredCredentials,
    TokenInfo,
)
from qwen_auth.security.crypto import hash_sensitive_data
from qwen_auth.storage.credential_store import api_key_to_stored_credentials

logger = logging.getLogger(__name__)

_API_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]{20,}$")


def validate_api_key_format(api_key: str) -> bool:
    """Return True if *api_key* looks like a DashScope key (20+ of ``[A-Za-z0-9_-]``)."""
    return bool(_API_KEY_PATTERN.match(api_key))


def mask_api_key(api_key: str) -> str:
    """Show only the first and last four characters (``sk-a...wxyz``)."""
    if len(api_key) <= 8:
        return "****"
    return f"{api_key[:4]}...{api_key[-4:]}"


class ApiKeyAuthProvider(AuthProvider):
    """Bearer authentication with a long-lived API key.

    :meth:`authenticate` only checks the key's shape; the server is the
    judge of validity on the first real request. The key never expires, so
    :meth:`refresh` just reports the current state.
    """

    def __init__(
        self,
        config: ApiKeyConfig,
        use_international: bool = False,
        clock: Clock = system_clock,
    ) -> None:
        if not isinstance(config, ApiKeyConfig):
            raise ConfigurationError("API key authentication requires an 'api_key' configuration")
        super().__init__(use_international, clock)
        self._config = config
        self._authenticated = False

    @property
    def method(self) -> AuthMethod:
        return AuthMethod.API_KEY

    async def authenticate(self) -> AuthResult:
        key = self._config.api_key
        if not key or len(key) < MIN_API_KEY_LENGTH:
            return self._failure("Invalid API key format")
        if not validate_api_key_format(key):
            logger.debug("API key %s has an unusual format", hash_sensitive_data(key))
        self._authenticated = True
        return AuthResult(
            success=True, method=self.method, token=key, expires_at=NEVER_EXPIRES
        )

    async def get_token(self) -> Optional[str]:
        if not self._authenticated:
            result = await self.authenticate()
            if not result.success:
                return None
        return self._config.api_key

    def is_authenticated(self) -> bool:
        return self._authenticated

    async def refresh(self) -> bool:
        return self._authenticated

    async def revoke(self) -> None:
        self._authenticated = False

    def get_token_info(self) -> Optional[TokenInfo]:
        if not self._authenticated:
            return None
        return TokenInfo(token=self._config.api_key, expires_at=NEVER_EXPIRES)

    def _current_token(self) -> Optional[str]:
        # The key is usable before authenticate(); it is sent as configured.
        key = self._config.api_key
        return key if key and len(key) >= MIN_API_KEY_LENGTH else None

    @property
    def base_url(self) -> str:
        return self._config.base_url or super().base_url

    def to_stored_credentials(self) -> Optional[StoredCredentials]:
        return api_key_to_stored_credentials(self._config.api_key)

    def restore(self, credential: Credential) -> bool:
        # Only a stored copy of the configured key counts.
        if isinstance(credential, ApiKeyCredential) and credential.key == self._config.api_key:
            self._authenticated = len(credential.key) >= MIN_API_KEY_LENGTH
            return self._authenticated
        return False
