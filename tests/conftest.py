"""Shared test fixtures for qwen-auth.

Provides a controllable millisecond clock, isolated config/data
directories, output state management, a scripted OAuth server built on
:class:`httpx.MockTransport`, and a CLI runner. These fixtures are
discovered by pytest and available to all test modules without imports.
"""

from __future__ import annotations

import json
from typing import Any, Optional
from urllib.parse import parse_qsl

import httpx
import pytest

from qwen_auth.models import OAuthConfig
from qwen_auth.oauth.device_flow import QwenDeviceFlow
from qwen_auth.output import OutputFormat, OutputManager, reset_output, set_output

START_MS = 1_700_000_000_000


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches sys.stdout/sys.stderr at creation time; once
    CliRunner restores the real streams those references go stale.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path, monkeypatch: pytest.MonkeyPatch):
    """Point XDG dirs into tmp_path and clear every env var qwen-auth reads.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("qwen_auth.config._is_xdg_platform", lambda: True)

    for var in [
        "QWEN_API_KEY",
        "DASHSCOPE_API_KEY",
        "QWEN_AUTH_DEBUG",
        "QWEN_USE_INTERNATIONAL",
        "QWEN_AUTH_METHOD",
        "QWEN_AUTH_ENCRYPTION_KEY",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Scripted OAuth server
# ---------------------------------------------------------------------------


DEVICE_CODE_RESPONSE: dict[str, Any] = {
    "device_code": "dev-123",
    "user_code": "ABCD-EFGH",
    "verification_uri": "https://chat.qwen.ai/authorize",
    "verification_uri_complete": "https://chat.qwen.ai/authorize?user_code=ABCD-EFGH",
    "expires_in": 600,
    "interval": 2,
}


def pending() -> tuple[int, dict[str, Any]]:
    return 400, {"error": "authorization_pending"}


def slow_down() -> tuple[int, dict[str, Any]]:
    return 400, {"error": "slow_down"}


def token(
    access: str = "access-1",
    refresh: Optional[str] = "refresh-1",
    expires_in: int = 3600,
    **extra: Any,
) -> tuple[int, dict[str, Any]]:
    body: dict[str, Any] = {"access_token": access, "token_type": "Bearer", "expires_in": expires_in}
    if refresh is not None:
        body["refresh_token"] = refresh
    body.update(extra)
    return 200, body


class FakeQwenServer:
    """Stand-in for the chat.qwen.ai device-code and token endpoints.

    ``poll_responses`` and ``refresh_responses`` are consumed in order; the
    last entry repeats once the list is exhausted.
    """

    def __init__(self) -> None:
        self.device_response: tuple[int, dict[str, Any]] = (200, dict(DEVICE_CODE_RESPONSE))
        self.poll_responses: list[tuple[int, dict[str, Any]]] = [token()]
        self.refresh_responses: list[tuple[int, dict[str, Any]]] = [
            token("access-2", "refresh-2")
        ]
        self.requests: list[tuple[str, dict[str, str]]] = []

    @staticmethod
    def _next(queue: list[tuple[int, dict[str, Any]]]) -> tuple[int, dict[str, Any]]:
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def handle(self, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode()))
        self.requests.append((request.url.path, form))
        if request.url.path.endswith("/device/code"):
            status, body = self.device_response
        elif form.get("grant_type") == "refresh_token":
            status, body = self._next(self.refresh_responses)
        else:
            status, body = self._next(self.poll_responses)
        return httpx.Response(status, content=json.dumps(body), headers={"Content-Type": "application/json"})

    def forms(self, suffix: str) -> list[dict[str, str]]:
        return [form for path, form in self.requests if path.endswith(suffix)]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


@pytest.fixture
def qwen_server() -> FakeQwenServer:
    return FakeQwenServer()


@pytest.fixture
def sleeps() -> list[int]:
    """Intervals passed to the device flow's sleep, in milliseconds."""
    return []


@pytest.fixture
def device_flow(qwen_server: FakeQwenServer, clock: FakeClock, sleeps: list[int], monkeypatch):
    """A QwenDeviceFlow wired to :class:`FakeQwenServer` whose sleeps are instant.

    Each sleep is recorded in ``sleeps`` and advances the fake clock.
    """
    flow = QwenDeviceFlow(
        OAuthConfig(),
        http_client=httpx.AsyncClient(transport=qwen_server.transport()),
        clock=clock,
    )

    async def _instant_sleep(ms: int) -> None:
        sleeps.append(ms)
        clock.advance(ms)

    monkeypatch.setattr(flow, "_sleep", _instant_sleep)
    return flow


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()
