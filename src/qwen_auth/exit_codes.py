"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~qwen_auth.exceptions.QwenAuthError` subclass.
Shell wrappers can inspect the exit code to tell a rejected login from a
broken configuration without parsing stderr.

Example::

    $ qwen-auth auth login
    $ echo $?
    6   # EXIT_RATE_LIMITED -- too many attempts, locked out
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_CONFIG_ERROR = 2
"""The configuration is missing required fields or is malformed."""

EXIT_AUTH_FAILURE = 3
"""The authorization server rejected the request or returned garbage."""

EXIT_TIMEOUT = 4
"""The user did not complete device authorization before the code expired."""

EXIT_DECRYPTION_FAILURE = 5
"""Stored credentials could not be decrypted (wrong key or corrupted file)."""

EXIT_RATE_LIMITED = 6
"""Authentication attempts are temporarily locked out."""

EXIT_CANCELLED = 130
"""The operation was cancelled by the user (Ctrl-C)."""
