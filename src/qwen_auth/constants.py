"""Fixed endpoints, identifiers, and defaults for the Qwen API and its OAuth server."""

from __future__ import annotations

from typing import Final

# DashScope API base URLs
QWEN_API_PRIMARY_URL: Final = "https://dashscope.aliyuncs.com/api/v1"
QWEN_API_INTERNATIONAL_URL: Final = "https://dashscope-intl.aliyuncs.com/api/v1"

# chat.qwen.ai OAuth 2.0 device flow (public client, PKCE instead of a secret)
QWEN_OAUTH_BASE_URL: Final = "https://chat.qwen.ai"
QWEN_OAUTH_DEVICE_CODE_ENDPOINT: Final = f"{QWEN_OAUTH_BASE_URL}/api/v1/oauth2/device/code"
QWEN_OAUTH_TOKEN_ENDPOINT: Final = f"{QWEN_OAUTH_BASE_URL}/api/v1/oauth2/token"
QWEN_OAUTH_CLIENT_ID: Final = "f0304373b74a44d2b584a3fb70ca9e56"
QWEN_OAUTH_SCOPE: Final = "openid profile email model.completion"
DEVICE_CODE_GRANT_TYPE: Final = "urn:ietf:params:oauth:grant-type:device_code"
REFRESH_TOKEN_GRANT_TYPE: Final = "refresh_token"

# Device flow polling
DEFAULT_POLL_INTERVAL_MS: Final = 2000
DEFAULT_MAX_POLL_ATTEMPTS: Final = 150
SLOW_DOWN_MULTIPLIER: Final = 1.5
MAX_POLL_INTERVAL_MS: Final = 10_000
HTTP_TIMEOUT_SECONDS: Final = 30.0

# Tokens
DEFAULT_TOKEN_EXPIRATION_SECONDS: Final = 3600
REFRESH_BUFFER_MS: Final = 300_000
NEVER_EXPIRES: Final = 2**53 - 1
"""Expiry sentinel (epoch ms) for credentials that never expire."""

MIN_API_KEY_LENGTH: Final = 10

# Rate limiting
RATE_LIMIT_MAX_ATTEMPTS: Final = 5
RATE_LIMIT_WINDOW_MS: Final = 60_000
RATE_LIMIT_LOCKOUT_MS: Final = 300_000
RATE_LIMIT_SWEEP_INTERVAL_MS: Final = 60_000

# Persistence
CREDENTIALS_FILENAME: Final = "credentials.json"
CREDENTIALS_VERSION: Final = 2
"""Version 1 is the legacy flat layout (``apiKey``/``oauth``/``jwt`` keys)."""
ENCRYPTION_VERSION: Final = 1

QWEN_MODELS: Final = (
    "qwen-turbo",
    "qwen-plus",
    "qwen-max",
    "qwen-max-longcontext",
    "qwen-vl-plus",
    "qwen-vl-max",
    "qwen-audio-turbo",
    "qwen-coder-turbo",
    "qwen-coder-plus",
    "qwen2.5-coder-32b-instruct",
    "qwen2.5-72b-instruct",
    "qwq-32b-preview",
)
