"""OAuth 2.0 Device Authorization Grant (:rfc:`8628`) with PKCE (:rfc:`7636`).

For terminals and editors that cannot receive a redirect. The client is
public: PKCE replaces a client secret.

Flow:
    1. :meth:`QwenDeviceFlow.start_authorization` POSTs to the device-code
       endpoint with an S256 challenge and returns the code to show the user.
    2. :meth:`QwenDeviceFlow.wait_for_authorization` polls the token endpoint
       until the user approves, the code expires, or :meth:`cancel` is called.
    3. :meth:`QwenDeviceFlow.refresh_access_token` exchanges a refresh token.

All bodies are ``application/x-www-form-urlencoded``; all responses are JSON.
``authorization_pending`` and ``slow_down`` are the only errors retried.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from qwen_auth.clock import Clock, system_clock
from qwen_auth.constants import (
    DEFAULT_MAX_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_TOKEN_EXPIRATION_SECONDS,
    DEVICE_CODE_GRANT_TYPE,
    HTTP_TIMEOUT_SECONDS,
    MAX_POLL_INTERVAL_MS,
    REFRESH_TOKEN_GRANT_TYPE,
    SLOW_DOWN_MULTIPLIER,
)
from qwen_auth.exceptions import (
    AuthorizationCancelledError,
    AuthorizationDeniedError,
    AuthorizationPendingSignal,
    AuthorizationTimeoutError,
    DeviceAuthorizationError,
    DeviceCodeExpiredError,
    NotStartedError,
    ProtocolError,
    RefreshFailedError,
    SlowDownSignal,
)
from qwen_auth.models import DeviceAuthorization, DeviceTokenCredentials, OAuthConfig
from qwen_auth.security.crypto import generate_pkce_pair

logger = logging.getLogger(__name__)

_HEADERS = {"Accept": "application/json"}


@dataclass
class _DeviceSession:
    device_code: str
    code_verifier: str
    poll_interval_ms: int
    max_attempts: int


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class QwenDeviceFlow:
    """Device authorization against chat.qwen.ai (or any RFC 8628 server).

    Args:
        config: Endpoints, client id, and scope. Defaults to the public
            Qwen client.
        http_client: Async client to use. When omitted one is created on
            first use and closed by :meth:`aclose`.
        clock: Millisecond clock used to compute ``expires_at``.

    Example::

        async with QwenDeviceFlow() as flow:
            info = await flow.start_authorization()
            print(info.verification_uri_complete, info.user_code)
            creds = await flow.wait_for_authorization()
    """

    def __init__(
        self,
        config: Optional[OAuthConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Clock = system_clock,
    ) -> None:
        self._config = config or OAuthConfig()
        self._client = http_client
        self._owns_client = http_client is None
        self._clock = clock
        self._session: Optional[_DeviceSession] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._cancel_requested = False

    async def __aenter__(self) -> QwenDeviceFlow:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def config(self) -> OAuthConfig:
        return self._config

    @property
    def in_progress(self) -> bool:
        """True between a successful start and the end of polling."""
        return self._session is not None

    @property
    def poll_interval_ms(self) -> Optional[int]:
        return self._session.poll_interval_ms if self._session else None

    @property
    def max_attempts(self) -> Optional[int]:
        return self._session.max_attempts if self._session else None

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
        return self._client

    async def _post_form(self, url: str, data: dict[str, str]) -> httpx.Response:
        return await self._http().post(url, data=data, headers=_HEADERS)

    # -- device authorization --

    async def start_authorization(self) -> DeviceAuthorization:
        """Request a device code and user code.

        Returns:
            What the user must see: verification URI(s), user code, and
            lifetime in seconds.

        Raises:
            DeviceAuthorizationError: On a non-2xx status or a response
                missing ``device_code``, ``user_code``, or ``verification_uri``.
            ProtocolError: On a transport failure.
            AuthorizationCancelledError: If :meth:`cancel` was called before
                or during the request.
        """
        self._session = None
        self._raise_if_cancelled()
        pkce = generate_pkce_pair()
        body = {
            "client_id": self._config.client_id,
            "scope": self._config.scope,
            "code_challenge": pkce.code_challenge,
            "code_challenge_method": "S256",
        }
        try:
            response = await self._post_form(self._config.device_code_endpoint, body)
        except httpx.HTTPError as exc:
            raise ProtocolError(f"Device authorization request failed: {exc}") from exc

        if not response.is_success:
            raise DeviceAuthorizationError(
                f"Device authorization failed: {response.status_code} - {response.text}"
            )
        result = _json_body(response)
        if "error" in result:
            raise DeviceAuthorizationError(
                f"Device authorization failed: {result['error']} - "
                f"{result.get('error_description', 'Unknown error')}"
            )
        for field in ("device_code", "user_code", "verification_uri"):
            if not isinstance(result.get(field), str) or not result[field]:
                raise DeviceAuthorizationError(
                    f"Device authorization response missing '{field}'"
                )
        self._raise_if_cancelled()

        interval_ms = DEFAULT_POLL_INTERVAL_MS
        if isinstance(result.get("interval"), (int, float)) and result["interval"] > 0:
            interval_ms = int(result["interval"] * 1000)

        expires_in = result.get("expires_in")
        if isinstance(expires_in, (int, float)) and expires_in > 0:
            max_attempts = math.ceil(expires_in / (interval_ms / 1000))
        else:
            expires_in = int(DEFAULT_MAX_POLL_ATTEMPTS * interval_ms / 1000)
            max_attempts = DEFAULT_MAX_POLL_ATTEMPTS

        self._session = _DeviceSession(
            device_code=result["device_code"],
            code_verifier=pkce.code_verifier,
            poll_interval_ms=interval_ms,
            max_attempts=max_attempts,
        )
        self._wakeup = asyncio.Event()
        logger.debug(
            "Device authorization started (interval=%dms, attempts=%d)",
            interval_ms,
            max_attempts,
        )
        return DeviceAuthorization(
            verification_uri=result["verification_uri"],
            verification_uri_complete=result.get("verification_uri_complete"),
            user_code=result["user_code"],
            expires_in=int(expires_in),
        )

    # -- polling --

    def _credentials_from(
        self, data: dict[str, Any], fallback_refresh: Optional[str] = None
    ) -> DeviceTokenCredentials:
        expires_in = data.get("expires_in")
        if not isinstance(expires_in, (int, float)):
            expires_in = DEFAULT_TOKEN_EXPIRATION_SECONDS
        return DeviceTokenCredentials(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or fallback_refresh,
            token_type=data.get("token_type") or "Bearer",
            expires_at=self._clock() + int(expires_in * 1000),
            resource_url=data.get("resource_url"),
            scope=data.get("scope"),
        )

    async def _poll_once(self, session: _DeviceSession) -> DeviceTokenCredentials:
        """One token request. Raises a :class:`PollSignal` for retryable states."""
        body = {
            "grant_type": DEVICE_CODE_GRANT_TYPE,
            "client_id": self._config.client_id,
            "device_code": session.device_code,
            "code_verifier": session.code_verifier,
        }
        try:
            response = await self._post_form(self._config.token_endpoint, body)
        except httpx.HTTPError as exc:
            raise ProtocolError(f"Token polling failed: {exc}") from exc

        data = _json_body(response)
        if response.is_success and isinstance(data.get("access_token"), str):
            return self._credentials_from(data)

        error = data.get("error", "")
        if error == "authorization_pending":
            raise AuthorizationPendingSignal()
        if error == "slow_down":
            raise SlowDownSignal()
        if error == "access_denied":
            raise AuthorizationDeniedError("Authorization denied by user")
        if error == "expired_token":
            raise DeviceCodeExpiredError("Device code expired -- please try again")
        if error:
            desc = data.get("error_description", error)
            raise ProtocolError(f"Token poll failed: {error} - {desc}")
        if response.is_success:
            raise ProtocolError("Token response missing 'access_token'")
        raise ProtocolError(f"Token poll failed: {response.status_code} - {response.text}")

    async def _sleep(self, ms: int) -> None:
        """Wait *ms* milliseconds, returning early if :meth:`cancel` is called."""
        if self._wakeup is None:
            await asyncio.sleep(ms / 1000)
            return
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=ms / 1000)
        except asyncio.TimeoutError:
            pass

    async def wait_for_authorization(self) -> DeviceTokenCredentials:
        """Poll until the user approves the request.

        Returns:
            The issued tokens with an absolute ``expires_at`` (epoch ms).

        Raises:
            NotStartedError: If :meth:`start_authorization` has not succeeded.
            AuthorizationCancelledError: If :meth:`cancel` was called.
            AuthorizationDeniedError: If the user declined.
            DeviceCodeExpiredError: If the server reports the code expired.
            AuthorizationTimeoutError: If every attempt came back pending.
            ProtocolError: On any other server or transport error.
        """
        session = self._session
        if session is None:
            raise NotStartedError("Authorization not started. Call start_authorization() first.")

        try:
            for _attempt in range(session.max_attempts):
                self._raise_if_cancelled()
                try:
                    credentials = await self._poll_once(session)
                except AuthorizationPendingSignal:
                    logger.debug("Authorization pending; next poll in %dms", session.poll_interval_ms)
                except SlowDownSignal:
                    session.poll_interval_ms = min(
                        int(session.poll_interval_ms * SLOW_DOWN_MULTIPLIER),
                        MAX_POLL_INTERVAL_MS,
                    )
                    logger.debug("Server asked to slow down; interval now %dms", session.poll_interval_ms)
                else:
                    logger.info("Device authorization complete")
                    return credentials
                await self._sleep(session.poll_interval_ms)

            self._raise_if_cancelled()
            raise AuthorizationTimeoutError(
                "Authorization timeout - user did not complete authorization in time"
            )
        finally:
            self._session = None
            self._cancel_requested = False

    def _raise_if_cancelled(self) -> None:
        if self._cancel_requested:
            self._cancel_requested = False
            raise AuthorizationCancelledError("Authorization cancelled")

    def cancel(self) -> None:
        """Stop the current login at the next check.

        A cancel that arrives before or during :meth:`start_authorization`
        is kept, so that call (or the wait after it) raises
        :class:`~qwen_auth.exceptions.AuthorizationCancelledError`.
        """
        self._cancel_requested = True
        if self._wakeup is not None:
            self._wakeup.set()

    # -- refresh --

    async def refresh_access_token(self, refresh_token: str) -> DeviceTokenCredentials:
        """Exchange *refresh_token* for a new access token.

        The server may rotate the refresh token; when it returns none the
        current one is kept.

        Raises:
            RefreshFailedError: If the token is empty or rejected, or the
                request fails.
        """
        if not refresh_token:
            raise RefreshFailedError("No refresh token available")
        body = {
            "grant_type": REFRESH_TOKEN_GRANT_TYPE,
            "refresh_token": refresh_token,
            "client_id": self._config.client_id,
        }
        try:
            response = await self._post_form(self._config.token_endpoint, body)
        except httpx.HTTPError as exc:
            raise RefreshFailedError(f"Token refresh failed: {exc}") from exc

        if not response.is_success:
            raise RefreshFailedError(
                f"Token refresh failed: {response.status_code} - {response.text}"
            )
        data = _json_body(response)
        if not isinstance(data.get("access_token"), str):
            raise RefreshFailedError("Token refresh response missing 'access_token'")
        logger.debug("Access token refreshed")
        return self._credentials_from(data, fallback_refresh=refresh_token)
