"""Canonical Pydantic models shared across all qwen-auth modules.

This is the single source of truth for data shapes in the project. The models
fall into three groups:

**Configuration models** -- loaded from the environment or a JSON file:
    :class:`ApiKeyConfig`, :class:`JwtConfig`, :class:`OAuthConfig`,
    :class:`RateLimitConfig`, :class:`SecurityConfig`, and
    :class:`QwenAuthConfig`.

**Credential models** -- persisted (optionally encrypted) by the credential
store. :data:`Credential` is a tagged union over :class:`ApiKeyCredential`,
:class:`JwtCredential`, and :class:`OAuthCredential`, discriminated by the
``type`` field:
    :class:`StoredCredentials`, :class:`EncryptedEnvelope`,
    :class:`StorageMetadata`.

**Result models** -- produced by providers and the device flow:
    :class:`AuthResult`, :class:`TokenInfo`, :class:`RequestConfig`,
    :class:`DeviceAuthorization`, :class:`DeviceTokenCredentials`,
    :class:`RateLimitInfo`.

Persisted and file-backed models serialise with camelCase keys
(``authTag``, ``expiresAt``) and accept either spelling on input.
"""

from __future__ import annotations

import enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from qwen_auth.constants import (
    CREDENTIALS_VERSION,
    DEFAULT_TOKEN_EXPIRATION_SECONDS,
    ENCRYPTION_VERSION,
    QWEN_MODELS,
    QWEN_OAUTH_CLIENT_ID,
    QWEN_OAUTH_DEVICE_CODE_ENDPOINT,
    QWEN_OAUTH_SCOPE,
    QWEN_OAUTH_TOKEN_ENDPOINT,
    RATE_LIMIT_LOCKOUT_MS,
    RATE_LIMIT_MAX_ATTEMPTS,
    RATE_LIMIT_WINDOW_MS,
)
from qwen_auth.exceptions import RateLimitedError


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuthMethod(str, enum.Enum):
    """Supported authentication methods."""

    API_KEY = "api_key"
    JWT = "jwt"
    OAUTH = "oauth"


# --- Configuration ---


class ApiKeyConfig(_CamelModel):
    """DashScope API key authentication settings."""

    api_key: str = Field(min_length=1, description="DashScope / Qwen API key")
    base_url: Optional[str] = Field(
        default=None, description="Override for the API base URL"
    )


class JwtConfig(_CamelModel):
    """Signing configuration for locally minted JWTs.

    ``private_key`` holds PEM or JWK text, or a filesystem path to either.
    """

    private_key: str = Field(min_length=1, description="PEM/JWK text or a path to it")
    key_id: str = Field(min_length=1, description="Value of the ``kid`` header")
    issuer: str = Field(min_length=1, description="Value of the ``iss`` claim")
    audience: Optional[str] = None
    expiration_seconds: int = Field(default=DEFAULT_TOKEN_EXPIRATION_SECONDS, gt=0)
    algorithm: Literal["RS256", "ES256"] = "RS256"


class OAuthConfig(_CamelModel):
    """Device-flow settings. Defaults target the public chat.qwen.ai client."""

    client_id: str = Field(default=QWEN_OAUTH_CLIENT_ID, min_length=1)
    scope: str = QWEN_OAUTH_SCOPE
    device_code_endpoint: str = QWEN_OAUTH_DEVICE_CODE_ENDPOINT
    token_endpoint: str = QWEN_OAUTH_TOKEN_ENDPOINT


class RateLimitConfig(_CamelModel):
    """Sliding-window limits applied to authentication attempts."""

    max_attempts: int = Field(default=RATE_LIMIT_MAX_ATTEMPTS, gt=0)
    window_ms: int = Field(default=RATE_LIMIT_WINDOW_MS, gt=0)
    lockout_ms: int = Field(default=RATE_LIMIT_LOCKOUT_MS, gt=0)
    enabled: bool = True


class SecurityConfig(_CamelModel):
    """Rate limiting and at-rest encryption settings."""

    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    encrypt_credentials: bool = True
    encryption_key: Optional[str] = Field(
        default=None,
        description="Passphrase for credential encryption; machine key when unset",
    )
    audit_logging: bool = False


class QwenAuthConfig(_CamelModel):
    """Top-level configuration consumed by :class:`~qwen_auth.auth.manager.AuthManager`.

    The block matching ``method`` must be present. The OAuth block always has
    usable defaults, so ``method="oauth"`` needs no further settings.

    Example::

        QwenAuthConfig(method="api_key", api_key=ApiKeyConfig(api_key="sk-..."))
    """

    method: AuthMethod = AuthMethod.OAUTH
    api_key: Optional[ApiKeyConfig] = None
    jwt: Optional[JwtConfig] = None
    oauth: OAuthConfig = Field(default_factory=OAuthConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    default_model: Optional[str] = None
    debug: bool = False
    use_international_endpoint: bool = False

    @field_validator("default_model")
    @classmethod
    def _known_model(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in QWEN_MODELS:
            raise ValueError(f"Unknown Qwen model '{value}'")
        return value

    @model_validator(mode="after")
    def _method_block_present(self) -> QwenAuthConfig:
        if self.method == AuthMethod.API_KEY and self.api_key is None:
            raise ValueError("api_key configuration is required for method 'api_key'")
        if self.method == AuthMethod.JWT and self.jwt is None:
            raise ValueError("jwt configuration is required for method 'jwt'")
        return self


# --- Credentials ---


class ApiKeyCredential(_CamelModel):
    """A static API key. Never expires."""

    type: Literal["api_key"] = "api_key"
    key: str


class JwtCredential(_CamelModel):
    """A JWT signing configuration; a fresh token is minted per use."""

    type: Literal["jwt"] = "jwt"
    private_key: str
    key_id: str
    issuer: str
    audience: Optional[str] = None
    algorithm: Literal["RS256", "ES256"] = "RS256"
    expiration_seconds: int = DEFAULT_TOKEN_EXPIRATION_SECONDS


class OAuthCredential(_CamelModel):
    """OAuth tokens with an absolute expiry in epoch milliseconds."""

    type: Literal["oauth"] = "oauth"
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: int
    scopes: list[str] = Field(default_factory=list)
    resource_url: Optional[str] = None


Credential = Annotated[
    Union[ApiKeyCredential, JwtCredential, OAuthCredential],
    Field(discriminator="type"),
]


class StoredCredentials(_CamelModel):
    """Plaintext payload of the credential file (encrypted at rest by default)."""

    credential: Credential
    updated_at: int = 0
    version: int = CREDENTIALS_VERSION


class EncryptedEnvelope(_CamelModel):
    """AES-256-GCM envelope. All byte fields are base64-encoded."""

    data: str
    iv: str
    auth_tag: str
    salt: str
    version: int = ENCRYPTION_VERSION


class StorageMetadata(_CamelModel):
    """Bookkeeping stored next to the credentials in the credential file."""

    created_at: int
    updated_at: int
    encrypted: bool


# --- Results ---


class TokenInfo(BaseModel):
    """Introspection view of the current token."""

    token: str
    token_type: str = "Bearer"
    expires_at: int
    refresh_token: Optional[str] = None
    scopes: Optional[list[str]] = None


class RequestConfig(BaseModel):
    """Headers and base URL the host attaches to outgoing API calls."""

    headers: dict[str, str] = Field(default_factory=dict)
    base_url: str


class AuthResult(BaseModel):
    """Structured outcome of an authentication attempt.

    Failures are reported with ``success=False`` and an ``error`` message
    instead of raising, so callers can render them uniformly.
    """

    success: bool
    method: AuthMethod
    token: Optional[str] = None
    expires_at: Optional[int] = None
    error: Optional[str] = None
    retry_after_ms: Optional[int] = None

    def raise_for_rate_limit(self) -> None:
        """Raise :class:`~qwen_auth.exceptions.RateLimitedError` if this attempt was locked out."""
        if self.retry_after_ms is not None:
            raise RateLimitedError(
                self.error or "Too many authentication attempts", retry_after_ms=self.retry_after_ms
            )


class DeviceAuthorization(BaseModel):
    """What the user needs to see to approve a device-flow request."""

    verification_uri: str
    verification_uri_complete: Optional[str] = None
    user_code: str
    expires_in: int


class DeviceTokenCredentials(BaseModel):
    """Tokens issued by the device flow or by a refresh."""

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_at: int
    resource_url: Optional[str] = None
    scope: Optional[str] = None


class RateLimitInfo(BaseModel):
    """Snapshot of one identifier's rate-limit state. Durations are milliseconds."""

    is_limited: bool
    remaining_attempts: int
    lockout_remaining_ms: int
    window_remaining_ms: int
