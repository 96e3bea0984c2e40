"""Host-side credential bridge.

Some hosts keep the credential in their own storage and only ask this
package to keep it fresh. :class:`HostCredentialBridge` takes two callbacks:

- ``get_auth()`` returns the host's current credential (or ``None``).
- ``set_auth(credential)`` stores an updated OAuth credential.

Before each request the bridge refreshes a stale OAuth token, writes the
new one back through ``set_auth``, and hands out the ``Authorization``
header. :class:`QwenBearerAuth` plugs that into an :class:`httpx.AsyncClient`.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, AsyncGenerator, Awaitable, Callable, Generator, Optional, Union

import httpx

from qwen_auth.clock import Clock, system_clock
from qwen_auth.constants import REFRESH_BUFFER_MS
from qwen_auth.exceptions import QwenAuthError, RefreshFailedError
from qwen_auth.models import ApiKeyCredential, Credential, OAuthCredential
from qwen_auth.oauth.device_flow import QwenDeviceFlow

logger = logging.getLogger(__name__)

GetAuth = Callable[[], Union[Optional[Credential], Awaitable[Optional[Credential]]]]
SetAuth = Callable[[OAuthCredential], Union[None, Awaitable[None]]]


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class HostCredentialBridge:
    """Keep a host-owned credential fresh.

    Args:
        get_auth: Returns the current credential; may be sync or async.
        set_auth: Persists a refreshed OAuth credential; may be sync or async.
        flow: Device flow used for refresh requests.
        clock: Millisecond clock for staleness checks.
    """

    def __init__(
        self,
        get_auth: GetAuth,
        set_auth: SetAuth,
        flow: Optional[QwenDeviceFlow] = None,
        clock: Clock = system_clock,
    ) -> None:
        self._get_auth = get_auth
        self._set_auth = set_auth
        self._flow = flow or QwenDeviceFlow(clock=clock)
        self._clock = clock

    def is_stale(self, credential: OAuthCredential) -> bool:
        return credential.expires_at <= self._clock() + REFRESH_BUFFER_MS

    async def ensure_fresh(self) -> Optional[Credential]:
        """Return the host credential, refreshing it first if it is a stale OAuth token.

        A stale token without a refresh token is returned as is; the server
        will reject it and the host can prompt for a new login.

        Raises:
            RefreshFailedError: If the refresh request is rejected.
        """
        credential = await _resolve(self._get_auth())
        if not isinstance(credential, OAuthCredential) or not self.is_stale(credential):
            return credential
        if not credential.refresh_token:
            return credential

        try:
            tokens = await self._flow.refresh_access_token(credential.refresh_token)
        except QwenAuthError as exc:
            logger.error("Failed to refresh Qwen OAuth token: %s", exc)
            raise RefreshFailedError(
                "Qwen OAuth token refresh failed. Please re-authenticate."
            ) from exc

        updated = OAuthCredential(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token or credential.refresh_token,
            expires_at=tokens.expires_at,
            scopes=credential.scopes,
            resource_url=tokens.resource_url or credential.resource_url,
        )
        await _resolve(self._set_auth(updated))

        # The host may normalise what it stores; prefer its copy.
        current = await _resolve(self._get_auth())
        return current if isinstance(current, OAuthCredential) else updated

    async def authorization_headers(self) -> dict[str, str]:
        credential = await self.ensure_fresh()
        if isinstance(credential, OAuthCredential) and credential.access_token:
            return {"Authorization": f"Bearer {credential.access_token}"}
        if isinstance(credential, ApiKeyCredential) and credential.key:
            return {"Authorization": f"Bearer {credential.key}"}
        return {}


class QwenBearerAuth(httpx.Auth):
    """HTTPX auth handler that injects a fresh Qwen bearer token.

    Any ``Authorization`` header already on the request (for example a
    placeholder API key the host had to supply) is replaced.

    Example::

        auth = QwenBearerAuth(bridge)
        async with httpx.AsyncClient(auth=auth) as client:
            await client.post(url, json=payload)
    """

    requires_response_body = False

    def __init__(self, bridge: HostCredentialBridge) -> None:
        self._bridge = bridge

    def sync_auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        raise RuntimeError("QwenBearerAuth requires an httpx.AsyncClient")

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        """Strip any existing Authorization header and add the fresh one."""
        request.headers.pop("Authorization", None)
        request.headers.update(await self._bridge.authorization_headers())
        yield request
