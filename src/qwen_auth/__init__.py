"""qwen-auth -- credential lifecycle and authentication for the Qwen / DashScope API.

This package obtains, refreshes, persists, and rate-limits access to the
Qwen API on behalf of a host application. It supports three authentication
methods -- static DashScope API keys, locally signed JWTs, and the Qwen OAuth
2.0 Device Authorization Grant with PKCE -- behind a single
:class:`~qwen_auth.auth.manager.AuthManager` facade.

Typical usage::

    from qwen_auth.auth import AuthManager
    from qwen_auth.config import load_config

    manager = AuthManager(load_config())
    await manager.initialize()
    result = await manager.authenticate("cli")
    request_config = manager.get_request_config()

Modules:
    app: Typer application and console entry point.
    models: Pydantic models for configuration, credentials, and results.
    config: XDG paths, atomic writes, and configuration loading.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric process exit codes.
    output: stdout/stderr formatting with Rich support.
"""

__version__ = "0.3.0"
