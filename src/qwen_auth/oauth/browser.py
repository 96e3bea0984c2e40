"""Open the device-flow verification page in the user's browser."""

from __future__ import annotations

import logging
import os
import threading
import webbrowser

logger = logging.getLogger(__name__)

HEADLESS_ENV_VARS = ("SSH_CONNECTION", "SSH_CLIENT", "SSH_TTY", "QWEN_AUTH_HEADLESS", "CI")


def is_headless_environment() -> bool:
    """True inside an SSH session, on CI, or when ``QWEN_AUTH_HEADLESS`` is set."""
    return any(os.environ.get(name) for name in HEADLESS_ENV_VARS)


def open_browser(url: str) -> threading.Thread:
    """Open *url* with :mod:`webbrowser` on a daemon thread.

    The printed instructions remain the fallback, so a browser that cannot
    be launched is only logged.
    """

    def _open() -> None:
        if not webbrowser.open(url):
            logger.debug("No browser available to open %s", url)

    thread = threading.Thread(target=_open, name="qwen-auth-browser", daemon=True)
    thread.start()
    return thread
