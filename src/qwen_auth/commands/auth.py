"""Auth commands -- log in, inspect, refresh, and log out.

Provides the ``qwen-auth auth`` sub-command group. Every command builds an
:class:`~qwen_auth.auth.AuthManager` from the ``--config`` file and the
environment, rehydrates it from the credential store, and acts on it.

Typical workflow::

    qwen-auth auth login          # device flow (or validate the API key)
    qwen-auth auth status         # method, expiry, credential file
    qwen-auth auth token          # print a fresh bearer token for scripts
    qwen-auth auth logout --purge # forget and delete stored credentials
"""

from __future__ import annotations

import asyncio
import logging
import signal
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer

from qwen_auth.auth import AuthManager, mask_api_key
from qwen_auth.config import load_config
from qwen_auth.constants import NEVER_EXPIRES
from qwen_auth.exceptions import QwenAuthError
from qwen_auth.exit_codes import EXIT_AUTH_FAILURE, EXIT_CANCELLED
from qwen_auth.models import DeviceAuthorization
from qwen_auth.oauth import is_headless_environment, open_browser
from qwen_auth.output import error, get_output, info, success, suggest

auth_app = typer.Typer(no_args_is_help=True)

T = TypeVar("T")


def _config_path(ctx: typer.Context) -> Optional[Path]:
    obj = ctx.obj or {}
    return obj.get("config_path")


def _instructions_callback(launch_browser: bool) -> Callable[[DeviceAuthorization], None]:
    def _show(authorization: DeviceAuthorization) -> None:
        uri = authorization.verification_uri_complete or authorization.verification_uri
        get_output().instructions(uri, authorization.user_code)
        if launch_browser and not is_headless_environment():
            open_browser(uri)
        info(f"Waiting for approval (code expires in {authorization.expires_in}s)...")

    return _show


def _build_manager(ctx: typer.Context, launch_browser: bool = False) -> AuthManager:
    try:
        config = load_config(_config_path(ctx))
    except QwenAuthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    if config.debug:
        logging.getLogger("qwen_auth").setLevel(logging.DEBUG)
    return AuthManager(config, on_instructions=_instructions_callback(launch_browser))


def _run(manager: AuthManager, body: Callable[[], Awaitable[T]]) -> T:
    """Initialise *manager*, run *body*, and close the manager's HTTP client."""

    async def _main() -> T:
        try:
            await manager.initialize()
            return await body()
        finally:
            await manager.aclose()

    try:
        return asyncio.run(_main())
    except QwenAuthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _format_expiry(expires_at: Optional[int]) -> str:
    if expires_at is None:
        return "-"
    if expires_at >= NEVER_EXPIRES:
        return "never"
    return datetime.fromtimestamp(expires_at / 1000, tz=timezone.utc).isoformat(timespec="seconds")


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    identifier: str = typer.Option(
        "cli", "--identifier", "-i", help="Rate-limit bucket for this login."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Log in again even if already authenticated."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Only print the verification URL; do not open it."
    ),
) -> None:
    """Authenticate with the configured method and store the credential.

    For OAuth this runs the device flow: open the printed URL, enter the
    code, and the command finishes once the login is approved. Ctrl-C
    cancels the wait. The page opens in a browser unless --no-browser is
    given or the session looks headless (SSH, CI).

    Example::

        qwen-auth auth login
        qwen-auth --config qwen.yaml auth login --force
        qwen-auth auth login --no-browser
    """
    manager = _build_manager(ctx, launch_browser=not no_browser)
    cancelled = False

    def _on_sigint() -> None:
        nonlocal cancelled
        cancelled = True
        manager.cancel()

    async def _login() -> Any:
        if manager.is_authenticated() and not force:
            return None
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, _on_sigint)
        except (NotImplementedError, RuntimeError):
            pass  # Windows event loops have no signal handlers.
        try:
            result = await manager.authenticate(identifier)
            result.raise_for_rate_limit()
            return result
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except (NotImplementedError, RuntimeError):
                pass

    result = _run(manager, _login)

    if result is None:
        info(f"Already authenticated ({manager.config.method.value}).")
        suggest("Use --force to log in again.")
        return
    if result.success:
        success(f"Authenticated with {result.method.value}.")
        info(f"Token expires: {_format_expiry(result.expires_at)}")
        return

    error(result.error or "Authentication failed")
    if cancelled:
        raise typer.Exit(code=EXIT_CANCELLED)
    raise typer.Exit(code=EXIT_AUTH_FAILURE)


@auth_app.command("status")
def auth_status(ctx: typer.Context) -> None:
    """Show the active method, token expiry, and credential file.

    The token itself is masked; use ``qwen-auth auth token`` to print it.
    """
    manager = _build_manager(ctx)

    async def _noop() -> None:
        return None

    _run(manager, _noop)

    token_info = manager.get_token_info()
    token = mask_api_key(token_info.token) if token_info else None
    record: dict[str, Any] = {
        "method": manager.config.method.value,
        "state": manager.state.value,
        "authenticated": manager.is_authenticated(),
        "token": token,
        "expires": _format_expiry(token_info.expires_at) if token_info else None,
        "scopes": token_info.scopes if token_info else None,
        "base_url": manager.get_request_config().base_url,
        "credential_file": str(manager.store.path),
        "stored": manager.store.has_credentials(),
    }
    get_output().print_record(record, title="Qwen authentication")

    if not record["authenticated"]:
        suggest("Log in: qwen-auth auth login")


@auth_app.command("token")
def auth_token(ctx: typer.Context) -> None:
    """Print a usable bearer token to stdout, refreshing it first if needed.

    Example::

        curl -H "Authorization: Bearer $(qwen-auth auth token)" ...
    """
    manager = _build_manager(ctx)
    token = _run(manager, manager.get_token)
    if token is None:
        error("Not authenticated.")
        suggest("Log in: qwen-auth auth login")
        raise typer.Exit(code=EXIT_AUTH_FAILURE)
    get_output().print_data(token)


@auth_app.command("refresh")
def auth_refresh(ctx: typer.Context) -> None:
    """Renew the current credential without a full login."""
    manager = _build_manager(ctx)
    ok = _run(manager, manager.refresh)
    if not ok:
        error("Refresh failed; re-authentication required.")
        suggest("Log in: qwen-auth auth login")
        raise typer.Exit(code=EXIT_AUTH_FAILURE)
    token_info = manager.get_token_info()
    success("Credential refreshed.")
    if token_info is not None:
        info(f"Token expires: {_format_expiry(token_info.expires_at)}")


@auth_app.command("logout")
def auth_logout(
    ctx: typer.Context,
    purge: bool = typer.Option(
        False, "--purge", help="Also delete the stored credential file."
    ),
) -> None:
    """Forget the in-memory credential; with ``--purge`` delete it from disk too."""
    manager = _build_manager(ctx)
    _run(manager, manager.revoke)
    if purge:
        if manager.store.has_credentials():
            manager.store.delete_credentials()
            success(f"Deleted {manager.store.path}.")
        else:
            info("No stored credentials.")
    else:
        success("Logged out.")
        if manager.store.has_credentials():
            suggest("Stored credentials remain; use --purge to delete them.")
