"""Self-signed JWT provider.

Holds a signing configuration rather than a token: every
:meth:`~JwtAuthProvider.authenticate` or :meth:`~JwtAuthProvider.refresh`
mints a new RS256/ES256 token with ``iss``, ``iat``, ``exp``, ``jti`` (and
``aud`` when configured) and a ``kid`` header.

The private key may be PEM or JWK text, or a path to a file containing
either. It is loaded once and cached for the provider's lifetime.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from pathlib import Path
from typing import Any, Optional

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from qwen_auth.auth.base import AuthProvider
from qwen_auth.clock import Clock, system_clock
from qwen_auth.constants import REFRESH_BUFFER_MS
from qwen_auth.exceptions import ConfigurationError, QwenAuthError
from qwen_auth.models import (
    AuthMethod,
    AuthResult,
    Credential,
    JwtConfig,
    JwtCredential,
    StoredCredentials,
    TokenInfo,
)
from qwen_auth.security.crypto import generate_secure_token
from qwen_auth.storage.credential_store import jwt_config_to_stored_credentials

logger = logging.getLogger(__name__)

_SUPPORTED_ALGORITHMS = ("RS256", "ES256")


def validate_jwt_config(config: JwtConfig) -> Optional[str]:
    """Return the first problem with *config*, or ``None`` if it is usable."""
    if not config.private_key:
        return "Private key is required"
    if not config.key_id:
        return "Key ID is required"
    if not config.issuer:
        return "Issuer is required"
    if config.algorithm not in _SUPPORTED_ALGORITHMS:
        return "Algorithm must be RS256 or ES256"
    return None


def _read_key_material(value: str) -> str:
    """Return key text, reading it from disk when *value* is a path."""
    stripped = value.strip()
    if stripped.startswith("-----BEGIN") or stripped.startswith("{"):
        return stripped
    try:
        path = Path(stripped).expanduser()
        if path.is_file():
            return path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise ConfigurationError(f"Failed to read private key file: {exc}") from exc
    return stripped


def _load_private_key(value: str, algorithm: str) -> Any:
    material = _read_key_material(value)

    if material.startswith("{"):
        try:
            jwk_data = json.loads(material)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Failed to load private key: invalid JWK ({exc})") from exc
        if jwk_data.get("kty") == "oct":
            raise ConfigurationError("Symmetric keys are not supported, use RSA or EC keys")
        try:
            return jwt.PyJWK(jwk_data, algorithm=algorithm).key
        except (
            jwt.exceptions.PyJWKError,
            jwt.exceptions.InvalidKeyError,
            KeyError,
            ValueError,
        ) as exc:
            raise ConfigurationError(f"Failed to load private key: {exc}") from exc

    try:
        return serialization.load_pem_private_key(material.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise ConfigurationError(f"Failed to load private key: {exc}") from exc


class JwtAuthProvider(AuthProvider):
    """Bearer authentication with locally minted JWTs.

    Args:
        config: Signing configuration.
        use_international: Target the international DashScope endpoint.
        clock: Millisecond clock; ``iat``/``exp`` are derived from it.

    Raises:
        ConfigurationError: If *config* is missing or incomplete.
    """

    def __init__(
        self,
        config: JwtConfig,
        use_international: bool = False,
        clock: Clock = system_clock,
    ) -> None:
        if not isinstance(config, JwtConfig):
            raise ConfigurationError("JWT authentication requires a 'jwt' configuration")
        problem = validate_jwt_config(config)
        if problem:
            raise ConfigurationError(problem)
        super().__init__(use_international, clock)
        self._config = config
        self._private_key: Any = None
        self._token: Optional[str] = None
        self._expires_at = 0
        self._authenticated = False

    @property
    def method(self) -> AuthMethod:
        return AuthMethod.JWT

    def _key(self) -> Any:
        if self._private_key is None:
            self._private_key = _load_private_key(self._config.private_key, self._config.algorithm)
        return self._private_key

    def _mint(self) -> str:
        now_s = self._clock() // 1000
        exp_s = now_s + self._config.expiration_seconds
        payload: dict[str, Any] = {
            "iss": self._config.issuer,
            "iat": now_s,
            "exp": exp_s,
            "jti": generate_secure_token(16),
        }
        if self._config.audience:
            payload["aud"] = self._config.audience
        token = jwt.encode(
            payload,
            self._key(),
            algorithm=self._config.algorithm,
            headers={"kid": self._config.key_id, "typ": "JWT"},
        )
        self._token = token
        self._expires_at = exp_s * 1000
        return token

    async def authenticate(self) -> AuthResult:
        try:
            token = self._mint()
        except (QwenAuthError, jwt.PyJWTError, ValueError, TypeError) as exc:
            logger.warning("JWT signing failed: %s", exc)
            return self._failure(str(exc) or "Authentication failed")
        self._authenticated = True
        return AuthResult(
            success=True, method=self.method, token=token, expires_at=self._expires_at
        )

    def _should_refresh(self) -> bool:
        return self._clock() >= self._expires_at - REFRESH_BUFFER_MS

    async def get_token(self) -> Optional[str]:
        if self._should_refresh():
            if not await self.refresh():
                return None
        return self._token

    def is_authenticated(self) -> bool:
        return self._authenticated and self._clock() < self._expires_at

    async def refresh(self) -> bool:
        try:
            self._mint()
        except (QwenAuthError, jwt.PyJWTError, ValueError, TypeError) as exc:
            logger.warning("JWT re-signing failed: %s", exc)
            self._authenticated = False
            return False
        self._authenticated = True
        return True

    async def revoke(self) -> None:
        self._token = None
        self._expires_at = 0
        self._authenticated = False

    def get_token_info(self) -> Optional[TokenInfo]:
        if self._token is None:
            return None
        return TokenInfo(token=self._token, expires_at=self._expires_at)

    def get_claims(self) -> Optional[dict[str, Any]]:
        """Decode the payload of the current token without verifying it.

        Safe because this provider signed the token itself.
        """
        if self._token is None:
            return None
        parts = self._token.split(".")
        if len(parts) != 3 or not parts[1]:
            return None
        segment = parts[1] + "=" * (-len(parts[1]) % 4)
        try:
            claims = json.loads(base64.urlsafe_b64decode(segment))
        except (binascii.Error, ValueError):
            return None
        return claims if isinstance(claims, dict) else None

    def to_stored_credentials(self) -> Optional[StoredCredentials]:
        return jwt_config_to_stored_credentials(self._config)

    def restore(self, credential: Credential) -> bool:
        # The signing key comes from config; a stored copy only counts when
        # it names the same key and issuer.
        if not isinstance(credential, JwtCredential):
            return False
        if (credential.key_id, credential.issuer) != (self._config.key_id, self._config.issuer):
            return False
        try:
            self._mint()
        except (QwenAuthError, jwt.PyJWTError, ValueError, TypeError) as exc:
            logger.warning("JWT signing failed while restoring: %s", exc)
            return False
        self._authenticated = True
        return True
