"""Auth manager -- orchestrates a provider, the rate limiter, and the credential store.

The :class:`AuthManager` is the entry point a host holds on to. It builds the
configured provider through :func:`create_provider`, rehydrates it from the
:class:`~qwen_auth.storage.credential_store.CredentialStore`, guards
:meth:`~AuthManager.authenticate` with a
:class:`~qwen_auth.security.rate_limiter.RateLimiter`, and persists
credentials after every successful login or refresh.

Lifecycle::

    UNINITIALIZED -> INITIALIZED -> AUTHENTICATED <-> REFRESHING
                                           |
                                        REVOKED  (re-initializes on next use)

There is no process-wide instance; the host constructs and owns one.

See Also:
    :class:`~qwen_auth.auth.base.AuthProvider` -- the provider interface.
    :class:`~qwen_auth.auth.host.HostCredentialBridge` -- the per-request
    counterpart used when the host owns credential storage.
"""

from __future__ import annotations

import enum
import logging
from typing import Optional

from qwen_auth.auth.api_key import ApiKeyAuthProvider
from qwen_auth.auth.base import AuthProvider
from qwen_auth.auth.jwt_auth import JwtAuthProvider
from qwen_auth.auth.oauth import InstructionsCallback, OAuthAuthProvider
from qwen_auth.clock import Clock, system_clock
from qwen_auth.constants import QWEN_API_INTERNATIONAL_URL, QWEN_API_PRIMARY_URL
from qwen_auth.exceptions import ConfigurationError, DecryptionFailedError
from qwen_auth.models import (
    AuthMethod,
    AuthResult,
    QwenAuthConfig,
    RequestConfig,
    TokenInfo,
)
from qwen_auth.security.crypto import hash_sensitive_data
from qwen_auth.security.rate_limiter import RateLimiter, format_duration
from qwen_auth.storage.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class AuthState(str, enum.Enum):
    """Where an :class:`AuthManager` is in its lifecycle."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    REVOKED = "revoked"


def create_provider(
    config: QwenAuthConfig,
    clock: Clock = system_clock,
    on_instructions: Optional[InstructionsCallback] = None,
) -> AuthProvider:
    """Build the provider selected by ``config.method``.

    Args:
        config: Validated configuration.
        clock: Millisecond clock handed to the provider.
        on_instructions: Device-flow instructions callback (OAuth only).

    Returns:
        A ready-to-use :class:`~qwen_auth.auth.base.AuthProvider`.

    Raises:
        ConfigurationError: If the block for the selected method is missing
            or invalid.
    """
    intl = config.use_international_endpoint
    if config.method == AuthMethod.API_KEY:
        if config.api_key is None:
            raise ConfigurationError("api_key configuration is required for method 'api_key'")
        return ApiKeyAuthProvider(config.api_key, use_international=intl, clock=clock)
    if config.method == AuthMethod.JWT:
        if config.jwt is None:
            raise ConfigurationError("jwt configuration is required for method 'jwt'")
        return JwtAuthProvider(config.jwt, use_international=intl, clock=clock)
    if config.method == AuthMethod.OAUTH:
        return OAuthAuthProvider(
            config.oauth,
            use_international=intl,
            on_instructions=on_instructions,
            clock=clock,
        )
    raise ConfigurationError(f"Unsupported authentication method: {config.method}")


class AuthManager:
    """Stateful front door for authentication.

    Args:
        config: Validated configuration.
        rate_limiter: Limiter for :meth:`authenticate`; built from
            ``config.security.rate_limit`` when omitted.
        store: Credential store; the default location is used when omitted.
        clock: Millisecond clock shared with the provider and limiter.
        on_instructions: Called with the device code during OAuth login.

    Example::

        manager = AuthManager(load_config())
        await manager.initialize()
        if not manager.is_authenticated():
            result = await manager.authenticate("cli")
        headers = manager.get_request_config().headers
    """

    def __init__(
        self,
        config: QwenAuthConfig,
        rate_limiter: Optional[RateLimiter] = None,
        store: Optional[CredentialStore] = None,
        clock: Clock = system_clock,
        on_instructions: Optional[InstructionsCallback] = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._rate_limiter = rate_limiter or RateLimiter(config.security.rate_limit, clock=clock)
        self._store = store
        self._on_instructions = on_instructions
        self._provider: Optional[AuthProvider] = None
        self._state = AuthState.UNINITIALIZED

    @property
    def config(self) -> QwenAuthConfig:
        return self._config

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def provider(self) -> Optional[AuthProvider]:
        return self._provider

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def store(self) -> CredentialStore:
        if self._store is None:
            self._store = CredentialStore(clock=self._clock)
        return self._store

    @property
    def _persistence_enabled(self) -> bool:
        return self._config.security.encrypt_credentials

    # -- lifecycle --

    async def initialize(self) -> AuthProvider:
        """Build the provider and rehydrate it from stored credentials.

        An undecryptable credential file is logged and ignored; the user
        simply has to log in again.

        Returns:
            The provider now in use.

        Raises:
            ConfigurationError: If the provider cannot be constructed.
        """
        provider = create_provider(self._config, self._clock, self._on_instructions)
        self._provider = provider
        self._state = AuthState.INITIALIZED

        if not self._persistence_enabled or not self.store.has_credentials():
            return provider
        try:
            stored = self.store.load_credentials(self._config.security.encryption_key)
        except DecryptionFailedError as exc:
            logger.warning("Stored credentials could not be decrypted; ignoring them: %s", exc)
            return provider
        if stored is not None and provider.restore(stored.credential):
            logger.debug("Restored %s credentials from %s", stored.credential.type, self.store.path)
            if provider.is_authenticated():
                self._state = AuthState.AUTHENTICATED
        return provider

    async def _ensure_initialized(self) -> AuthProvider:
        if self._provider is None or self._state in (AuthState.UNINITIALIZED, AuthState.REVOKED):
            return await self.initialize()
        return self._provider

    def _persist(self) -> None:
        if not self._persistence_enabled or self._provider is None:
            return
        credentials = self._provider.to_stored_credentials()
        if credentials is None:
            return
        try:
            self.store.save_credentials(
                credentials, encrypt=True, key=self._config.security.encryption_key
            )
        except OSError as exc:
            logger.warning("Failed to persist credentials to %s: %s", self.store.path, exc)

    def _audit(self, identifier: str, outcome: str) -> None:
        if self._config.security.audit_logging:
            logger.info(
                "auth attempt id=%s method=%s outcome=%s",
                hash_sensitive_data(identifier),
                self._config.method.value,
                outcome,
            )

    def _rate_limited(self, identifier: str) -> AuthResult:
        info = self._rate_limiter.get_info(identifier)
        retry_after = info.lockout_remaining_ms or info.window_remaining_ms
        self._audit(identifier, "rate_limited")
        return AuthResult(
            success=False,
            method=self._config.method,
            error=(
                "Too many authentication attempts. "
                f"Please try again in {format_duration(retry_after)}"
            ),
            retry_after_ms=retry_after,
        )

    async def authenticate(self, identifier: str = "default") -> AuthResult:
        """Run the provider's login, subject to rate limiting.

        Args:
            identifier: Rate-limit bucket (user, session, or profile name).

        Returns:
            The provider's :class:`~qwen_auth.models.AuthResult`; a
            rate-limited call returns ``success=False`` with
            ``retry_after_ms`` set and never reaches the provider.
        """
        provider = await self._ensure_initialized()

        if not self._rate_limiter.record_attempt(identifier):
            return self._rate_limited(identifier)

        result = await provider.authenticate()
        if result.success:
            self._rate_limiter.reset(identifier)
            self._state = AuthState.AUTHENTICATED
            self._persist()
            self._audit(identifier, "success")
        else:
            self._audit(identifier, "failure")
        return result

    async def get_token(self) -> Optional[str]:
        """Current token, refreshed (and re-persisted) first if stale."""
        provider = await self._ensure_initialized()
        before = provider.get_token_info()
        token = await provider.get_token()
        if token is None:
            if self._state == AuthState.AUTHENTICATED:
                self._state = AuthState.INITIALIZED
            return None
        if provider.method == AuthMethod.OAUTH and (before is None or before.token != token):
            self._persist()
        self._state = AuthState.AUTHENTICATED
        return token

    def is_authenticated(self) -> bool:
        return self._provider is not None and self._provider.is_authenticated()

    async def refresh(self) -> bool:
        """Force a provider refresh. Returns False when re-login is needed."""
        provider = await self._ensure_initialized()
        self._state = AuthState.REFRESHING
        ok = await provider.refresh()
        if ok:
            self._state = AuthState.AUTHENTICATED
            self._persist()
        else:
            self._state = AuthState.INITIALIZED
        return ok

    async def revoke(self) -> None:
        """Drop in-memory credentials. Stored credentials are left alone."""
        if self._provider is not None:
            await self._provider.revoke()
        self._state = AuthState.REVOKED

    def cancel(self) -> None:
        """Abort an in-progress OAuth device flow."""
        if isinstance(self._provider, OAuthAuthProvider):
            self._provider.cancel()

    async def aclose(self) -> None:
        if isinstance(self._provider, OAuthAuthProvider):
            await self._provider.flow.aclose()

    # -- outbound --

    def get_request_config(self) -> RequestConfig:
        if self._provider is None:
            base_url = (
                QWEN_API_INTERNATIONAL_URL
                if self._config.use_international_endpoint
                else QWEN_API_PRIMARY_URL
            )
            return RequestConfig(headers={"Content-Type": "application/json"}, base_url=base_url)
        return self._provider.get_request_config()

    def get_token_info(self) -> Optional[TokenInfo]:
        return self._provider.get_token_info() if self._provider is not None else None
