"""OAuth provider backed by the device authorization flow.

:meth:`OAuthAuthProvider.authenticate` runs start -> show instructions ->
wait. Tokens within :data:`~qwen_auth.constants.REFRESH_BUFFER_MS` of expiry
are stale and are refreshed before use. A failed refresh leaves the provider
unauthenticated instead of raising, so the caller can rerun the device flow.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from qwen_auth.auth.base import AuthProvider
from qwen_auth.clock import Clock, system_clock
from qwen_auth.constants import REFRESH_BUFFER_MS
from qwen_auth.exceptions import ConfigurationError, QwenAuthError
from qwen_auth.models import (
    AuthMethod,
    AuthResult,
    Credential,
    DeviceAuthorization,
    OAuthConfig,
    OAuthCredential,
    StoredCredentials,
    TokenInfo,
)
from qwen_auth.oauth.device_flow import QwenDeviceFlow
from qwen_auth.storage.credential_store import token_info_to_stored_credentials

logger = logging.getLogger(__name__)

InstructionsCallback = Callable[[DeviceAuthorization], None]


class OAuthAuthProvider(AuthProvider):
    """Bearer authentication with device-flow OAuth tokens.

    Args:
        config: Device-flow endpoints and client settings.
        use_international: Target the international DashScope endpoint.
        flow: Device flow engine; one is built from *config* when omitted.
        on_instructions: Called with the verification URI and user code
            once the device code has been issued.
        clock: Millisecond clock for staleness checks.
    """

    def __init__(
        self,
        config: Optional[OAuthConfig] = None,
        use_international: bool = False,
        flow: Optional[QwenDeviceFlow] = None,
        on_instructions: Optional[InstructionsCallback] = None,
        clock: Clock = system_clock,
    ) -> None:
        if config is not None and not isinstance(config, OAuthConfig):
            raise ConfigurationError("OAuth authentication requires an 'oauth' configuration")
        super().__init__(use_international, clock)
        self._config = config or OAuthConfig()
        self._flow = flow or QwenDeviceFlow(self._config, clock=clock)
        self._on_instructions = on_instructions
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._expires_at = 0
        self._scopes: list[str] = []
        self._resource_url: Optional[str] = None
        self._authenticated = False

    @property
    def method(self) -> AuthMethod:
        return AuthMethod.OAUTH

    @property
    def flow(self) -> QwenDeviceFlow:
        return self._flow

    def set_tokens(
        self,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: int,
        scopes: Optional[list[str]] = None,
    ) -> None:
        """Adopt tokens obtained elsewhere (e.g. loaded from disk)."""
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._expires_at = expires_at
        self._scopes = list(scopes) if scopes else self._config.scope.split()
        self._authenticated = True

    def is_stale(self) -> bool:
        """True when the token expires within the refresh buffer."""
        return self._expires_at <= self._clock() + REFRESH_BUFFER_MS

    async def authenticate(self) -> AuthResult:
        try:
            authorization = await self._flow.start_authorization()
            if self._on_instructions is not None:
                self._on_instructions(authorization)
            credentials = await self._flow.wait_for_authorization()
        except QwenAuthError as exc:
            logger.info("Device authorization failed: %s", exc)
            return self._failure(str(exc) or "Authentication failed")

        self.set_tokens(
            credentials.access_token,
            credentials.refresh_token,
            credentials.expires_at,
            credentials.scope.split() if credentials.scope else None,
        )
        self._resource_url = credentials.resource_url
        return AuthResult(
            success=True,
            method=self.method,
            token=credentials.access_token,
            expires_at=credentials.expires_at,
        )

    async def get_token(self) -> Optional[str]:
        if self._access_token is None:
            return None
        if self.is_stale():
            if not await self.refresh():
                return None
        return self._access_token

    def is_authenticated(self) -> bool:
        return self._authenticated and self._clock() < self._expires_at

    async def refresh(self) -> bool:
        if not self._refresh_token:
            self._authenticated = False
            return False
        try:
            credentials = await self._flow.refresh_access_token(self._refresh_token)
        except QwenAuthError as exc:
            logger.warning("Token refresh failed; re-authentication required: %s", exc)
            self._authenticated = False
            return False

        self._access_token = credentials.access_token
        if credentials.refresh_token:
            self._refresh_token = credentials.refresh_token
        self._expires_at = credentials.expires_at
        if credentials.scope:
            self._scopes = credentials.scope.split()
        if credentials.resource_url:
            self._resource_url = credentials.resource_url
        self._authenticated = True
        return True

    def cancel(self) -> None:
        """Abort an in-progress :meth:`authenticate`."""
        self._flow.cancel()

    async def revoke(self) -> None:
        if self._flow.in_progress:
            self._flow.cancel()
        self._access_token = None
        self._refresh_token = None
        self._expires_at = 0
        self._scopes = []
        self._resource_url = None
        self._authenticated = False

    def get_token_info(self) -> Optional[TokenInfo]:
        if self._access_token is None:
            return None
        return TokenInfo(
            token=self._access_token,
            expires_at=self._expires_at,
            refresh_token=self._refresh_token,
            scopes=self._scopes,
        )

    def to_stored_credentials(self) -> Optional[StoredCredentials]:
        info = self.get_token_info()
        if info is None:
            return None
        return token_info_to_stored_credentials(info, resource_url=self._resource_url)

    def restore(self, credential: Credential) -> bool:
        if not isinstance(credential, OAuthCredential):
            return False
        self.set_tokens(
            credential.access_token,
            credential.refresh_token,
            credential.expires_at,
            credential.scopes,
        )
        self._resource_url = credential.resource_url
        return True
