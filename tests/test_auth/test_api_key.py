"""Tests for the API key provider."""

from __future__ import annotations

import pytest

from qwen_auth.auth.api_key import ApiKeyAuthProvider, mask_api_key, validate_api_key_format
from qwen_auth.constants import NEVER_EXPIRES, QWEN_API_INTERNATIONAL_URL, QWEN_API_PRIMARY_URL
from qwen_auth.exceptions import ConfigurationError
from qwen_auth.models import ApiKeyConfig, ApiKeyCredential, AuthMethod, OAuthCredential

VALID_KEY = "sk-0123456789abcdefghij"


def _provider(key: str = VALID_KEY, **kwargs) -> ApiKeyAuthProvider:
    return ApiKeyAuthProvider(ApiKeyConfig(api_key=key), **kwargs)


class TestHelpers:
    @pytest.mark.parametrize(
        ("key", "expected"),
        [
            (VALID_KEY, True),
            ("a" * 20, True),
            ("a" * 19, False),
            ("sk-has spaces-0123456789", False),
            ("sk.dots.are.not.allowed.here", False),
        ],
    )
    def test_validate_format(self, key: str, expected: bool) -> None:
        assert validate_api_key_format(key) is expected

    def test_mask(self) -> None:
        assert mask_api_key(VALID_KEY) == "sk-0...ghij"
        assert mask_api_key("short") == "****"


class TestApiKeyAuthProvider:
    def test_requires_config(self) -> None:
        with pytest.raises(ConfigurationError):
            ApiKeyAuthProvider(None)  # type: ignore[arg-type]

    async def test_authenticate(self) -> None:
        provider = _provider()
        result = await provider.authenticate()
        assert result.success
        assert result.method == AuthMethod.API_KEY
        assert result.token == VALID_KEY
        assert result.expires_at == NEVER_EXPIRES
        assert provider.is_authenticated()

    async def test_too_short_key_fails(self) -> None:
        provider = _provider("sk-short")
        result = await provider.authenticate()
        assert not result.success
        assert result.error == "Invalid API key format"
        assert not provider.is_authenticated()
        assert await provider.get_token() is None

    async def test_unusual_format_still_accepted(self) -> None:
        result = await _provider("key.with.dots.123").authenticate()
        assert result.success

    async def test_get_token_authenticates_lazily(self) -> None:
        provider = _provider()
        assert await provider.get_token() == VALID_KEY
        assert provider.is_authenticated()

    async def test_refresh_reports_state(self) -> None:
        provider = _provider()
        assert await provider.refresh() is False
        await provider.authenticate()
        assert await provider.refresh() is True

    async def test_revoke(self) -> None:
        provider = _provider()
        await provider.authenticate()
        await provider.revoke()
        assert not provider.is_authenticated()
        assert provider.get_token_info() is None

    async def test_request_config(self) -> None:
        provider = _provider()
        await provider.authenticate()
        config = provider.get_request_config()
        assert config.headers == {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {VALID_KEY}",
        }
        assert config.base_url == QWEN_API_PRIMARY_URL

    def test_request_config_before_authenticate(self) -> None:
        headers = _provider().get_request_config().headers
        assert headers["Authorization"] == f"Bearer {VALID_KEY}"

    def test_request_config_short_key_has_no_bearer(self) -> None:
        provider = ApiKeyAuthProvider(ApiKeyConfig(api_key="short"))
        assert "Authorization" not in provider.get_request_config().headers

    def test_base_url(self) -> None:
        assert _provider(use_international=True).base_url == QWEN_API_INTERNATIONAL_URL
        custom = ApiKeyAuthProvider(ApiKeyConfig(api_key=VALID_KEY, base_url="https://proxy.local/v1"))
        assert custom.base_url == "https://proxy.local/v1"

    def test_stored_credentials(self) -> None:
        stored = _provider().to_stored_credentials()
        assert stored.credential == ApiKeyCredential(key=VALID_KEY)

    def test_restore_matching_key(self) -> None:
        provider = _provider()
        assert provider.restore(ApiKeyCredential(key=VALID_KEY)) is True
        assert provider.is_authenticated()

    def test_restore_rejects_other_credentials(self) -> None:
        provider = _provider()
        assert provider.restore(ApiKeyCredential(key="sk-some-other-key-000000")) is False
        assert provider.restore(OAuthCredential(access_token="a", expires_at=1)) is False
        assert not provider.is_authenticated()
