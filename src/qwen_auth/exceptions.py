"""Exception hierarchy for qwen-auth.

All errors inherit from :class:`QwenAuthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`qwen_auth.exit_codes`.
The console entry point in :func:`qwen_auth.app.main` catches
``QwenAuthError`` and exits with the appropriate code.

Subclass hierarchy::

    QwenAuthError                    (exit 1)
    +-- ConfigurationError           (exit 2)
    +-- ProtocolError                (exit 3)
    |   +-- DeviceAuthorizationError
    |   +-- AuthorizationDeniedError
    |   +-- DeviceCodeExpiredError
    +-- NotStartedError              (exit 1)
    +-- AuthorizationTimeoutError    (exit 4)
    +-- AuthorizationCancelledError  (exit 130)
    +-- RefreshFailedError           (exit 3)
    +-- DecryptionFailedError        (exit 5)
    +-- RateLimitedError             (exit 6)

:class:`PollSignal` and its subclasses are deliberately *not* part of this
tree: ``authorization_pending`` and ``slow_down`` are expected states of the
device-flow poll loop and never reach callers.
"""

from __future__ import annotations

from qwen_auth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONFIG_ERROR,
    EXIT_DECRYPTION_FAILURE,
    EXIT_GENERIC_FAILURE,
    EXIT_RATE_LIMITED,
    EXIT_TIMEOUT,
)


class QwenAuthError(Exception):
    """Base exception for all qwen-auth errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(QwenAuthError):
    """Raised at construction time when required configuration is missing or invalid."""

    exit_code = EXIT_CONFIG_ERROR


class ProtocolError(QwenAuthError):
    """Raised for malformed or unexpected responses from the authorization server."""

    exit_code = EXIT_AUTH_FAILURE


class DeviceAuthorizationError(ProtocolError):
    """Raised when the device-code request fails or returns an unusable payload."""


class AuthorizationDeniedError(ProtocolError):
    """Raised when the user declines the device authorization request."""


class DeviceCodeExpiredError(ProtocolError):
    """Raised when the server reports the device code as expired."""


class NotStartedError(QwenAuthError):
    """Raised when polling is attempted before ``start_authorization()``."""


class AuthorizationTimeoutError(QwenAuthError):
    """Raised when the poll loop exhausts its attempts without a token."""

    exit_code = EXIT_TIMEOUT


class AuthorizationCancelledError(QwenAuthError):
    """Raised when a device flow is cancelled while waiting for the user.

    Named to avoid confusion with :class:`asyncio.CancelledError`, which is a
    task-level signal rather than an authorization outcome.
    """

    exit_code = EXIT_CANCELLED


class RefreshFailedError(QwenAuthError):
    """Raised when a refresh token is absent or rejected.

    Callers should treat this as "needs full re-authentication".
    """

    exit_code = EXIT_AUTH_FAILURE


class DecryptionFailedError(QwenAuthError):
    """Raised when an encrypted envelope cannot be decrypted.

    The message never distinguishes a wrong key from corrupted ciphertext.
    """

    exit_code = EXIT_DECRYPTION_FAILURE


class RateLimitedError(QwenAuthError):
    """Raised when an identifier is locked out.

    :meth:`~qwen_auth.auth.AuthManager.authenticate` reports a lockout as an
    :class:`~qwen_auth.models.AuthResult`; call
    :meth:`~qwen_auth.models.AuthResult.raise_for_rate_limit` to turn it into
    this exception.

    Args:
        message: Human-readable error description.
        retry_after_ms: Remaining lockout time in milliseconds.
    """

    exit_code = EXIT_RATE_LIMITED

    def __init__(self, message: str, retry_after_ms: int = 0):
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class PollSignal(Exception):
    """Base for expected, non-terminal device-flow poll states."""


class AuthorizationPendingSignal(PollSignal):
    """The user has not approved the request yet; keep polling."""


class SlowDownSignal(PollSignal):
    """The server asked the client to poll less frequently."""
