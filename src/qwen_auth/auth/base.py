"""Abstract base class for authentication providers.

Every provider exposes the same capability set so the
:class:`~qwen_auth.auth.manager.AuthManager` can drive any of them:

- :meth:`~AuthProvider.authenticate` -- obtain a credential.
- :meth:`~AuthProvider.get_token` -- current token, refreshed when stale.
- :meth:`~AuthProvider.refresh` / :meth:`~AuthProvider.revoke`.
- :meth:`~AuthProvider.get_token_info` / :meth:`~AuthProvider.get_request_config`.

Authentication failures are reported as ``AuthResult(success=False)``; only
misconfiguration detected at construction raises.

See Also:
    :mod:`qwen_auth.auth.manager` for provider construction and dispatch.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from qwen_auth.clock import Clock, system_clock
from qwen_auth.constants import QWEN_API_INTERNATIONAL_URL, QWEN_API_PRIMARY_URL
from qwen_auth.models import (
    AuthMethod,
    AuthResult,
    Credential,
    RequestConfig,
    StoredCredentials,
    TokenInfo,
)


class AuthProvider(ABC):
    """Abstract base class for authentication providers.

    Subclasses set :attr:`method` and implement the token lifecycle. The
    base class supplies endpoint selection and request-config assembly.

    Args:
        use_international: Target the international DashScope endpoint.
        clock: Millisecond clock for expiry decisions.
    """

    def __init__(self, use_international: bool = False, clock: Clock = system_clock) -> None:
        self._use_international = use_international
        self._clock = clock

    @property
    @abstractmethod
    def method(self) -> AuthMethod:
        """The :class:`~qwen_auth.models.AuthMethod` this provider implements."""
        ...

    @abstractmethod
    async def authenticate(self) -> AuthResult:
        """Obtain a credential.

        Returns:
            ``AuthResult(success=True, token=...)`` on success, otherwise
            ``AuthResult(success=False, error=...)``.
        """
        ...

    @abstractmethod
    async def get_token(self) -> Optional[str]:
        """Return a usable token, refreshing first if it is stale; ``None`` if unavailable."""
        ...

    @abstractmethod
    def is_authenticated(self) -> bool: ...

    @abstractmethod
    async def refresh(self) -> bool:
        """Renew the credential. Returns False (never raises) when renewal fails."""
        ...

    @abstractmethod
    async def revoke(self) -> None:
        """Forget all in-memory credential state."""
        ...

    @abstractmethod
    def get_token_info(self) -> Optional[TokenInfo]: ...

    def to_stored_credentials(self) -> Optional[StoredCredentials]:
        """Credential to persist after a successful login or refresh; ``None`` to skip."""
        return None

    def restore(self, credential: Credential) -> bool:
        """Rehydrate from a persisted credential.

        Returns:
            True if the credential was accepted. The default accepts nothing.
        """
        return False

    @property
    def base_url(self) -> str:
        return QWEN_API_INTERNATIONAL_URL if self._use_international else QWEN_API_PRIMARY_URL

    def _current_token(self) -> Optional[str]:
        info = self.get_token_info()
        return info.token if info is not None else None

    def get_request_config(self) -> RequestConfig:
        """Headers and base URL for outgoing API calls.

        ``Authorization`` is present only while a token is held.
        """
        headers = {"Content-Type": "application/json"}
        token = self._current_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return RequestConfig(headers=headers, base_url=self.base_url)

    def _failure(self, error: str) -> AuthResult:
        return AuthResult(success=False, method=self.method, error=error)
