"""Authentication providers and the manager that drives them.

This package supports three strategies against the Qwen / DashScope API:
static API keys, locally signed JWTs, and device-flow OAuth.

The main entry points are:

- :class:`AuthProvider` -- abstract base class every strategy implements.
- :class:`AuthManager` -- owns one provider plus the rate limiter and the
  credential store, and tracks the :class:`AuthState` lifecycle.
- :func:`create_provider` -- builds the provider selected by the config.
- :class:`HostCredentialBridge` / :class:`QwenBearerAuth` -- keep a
  host-owned credential fresh on every outgoing request.

Typical usage::

    from qwen_auth.auth import AuthManager

    manager = AuthManager(config)
    await manager.initialize()
    result = await manager.authenticate("cli")
    # manager.get_request_config().headers is ready to inject into requests.
"""

from qwen_auth.auth.api_key import ApiKeyAuthProvider, mask_api_key, validate_api_key_format
from qwen_auth.auth.base import AuthProvider
from qwen_auth.auth.host import HostCredentialBridge, QwenBearerAuth
from qwen_auth.auth.jwt_auth import JwtAuthProvider, validate_jwt_config
from qwen_auth.auth.manager import AuthManager, AuthState, create_provider
from qwen_auth.auth.oauth import OAuthAuthProvider

__all__ = [
    "ApiKeyAuthProvider",
    "AuthManager",
    "AuthProvider",
    "AuthState",
    "HostCredentialBridge",
    "JwtAuthProvider",
    "OAuthAuthProvider",
    "QwenBearerAuth",
    "create_provider",
    "mask_api_key",
    "validate_api_key_format",
    "validate_jwt_config",
]
