"""Built-in CLI sub-commands for qwen-auth.

* :mod:`~qwen_auth.commands.auth` -- log in, show status, print or refresh
  the token, and log out.

Each module exports a :class:`typer.Typer` sub-application registered on
the root app in :mod:`qwen_auth.app`.
"""
