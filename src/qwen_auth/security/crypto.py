"""Random material, PKCE, and hashing primitives.

Verifiers, tokens, and machine keys are secrets: nothing in this module logs
them. Use :func:`hash_sensitive_data` when a value must appear in a log line.
"""

from __future__ import annotations

import base64
import getpass
import hashlib
import logging
import platform
import secrets
import socket
import subprocess
from pathlib import Path
from typing import NamedTuple, Optional

logger = logging.getLogger(__name__)

_VERIFIER_BYTES = 32
_LINUX_MACHINE_ID_FILES = ("/etc/machine-id", "/var/lib/dbus/machine-id")


class PKCEPair(NamedTuple):
    """A code verifier and its S256 challenge."""

    code_verifier: str
    code_challenge: str


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def generate_code_verifier() -> str:
    """Return a 43-character URL-safe verifier built from 32 random bytes (RFC 7636 4.1)."""
    return _b64url(secrets.token_bytes(_VERIFIER_BYTES))


def generate_code_challenge(verifier: str) -> str:
    """Return ``BASE64URL(SHA256(verifier))`` without padding (RFC 7636 4.2)."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_pkce_pair() -> PKCEPair:
    """Generate a fresh verifier and the matching challenge."""
    verifier = generate_code_verifier()
    return PKCEPair(code_verifier=verifier, code_challenge=generate_code_challenge(verifier))


def generate_secure_token(length: int = 32) -> str:
    """Return a URL-safe token carrying *length* bytes of randomness."""
    return _b64url(secrets.token_bytes(length))


def hash_sensitive_data(data: str) -> str:
    """Return a short SHA-256 fingerprint of *data* suitable for logs."""
    return hashlib.sha256(data.encode("utf-8")).hexdigest()[:16]


def _read_machine_id() -> Optional[str]:
    """Best-effort OS machine identifier; ``None`` when unavailable."""
    system = platform.system()
    try:
        if system == "Linux":
            for candidate in _LINUX_MACHINE_ID_FILES:
                path = Path(candidate)
                if path.is_file():
                    value = path.read_text(encoding="utf-8").strip()
                    if value:
                        return value
            return None
        if system == "Darwin":
            out = subprocess.run(
                ["ioreg", "-rd1", "-c", "IOPlatformExpertDevice"],
                capture_output=True,
                text=True,
                timeout=5,
                check=False,
            ).stdout
            for line in out.splitlines():
                if "IOPlatformUUID" in line:
                    return line.split("=", 1)[-1].strip().strip('"') or None
            return None
        if system == "Windows":
            out = subprocess.run(
                ["wmic", "csproduct", "get", "UUID"],
                capture_output=True,
                text=True,
                timeout=5,
                check=False,
            ).stdout
            lines = [line.strip() for line in out.splitlines() if line.strip()]
            return lines[1] if len(lines) > 1 else None
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("Machine id unavailable: %s", exc)
    return None


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


def generate_machine_key() -> str:
    """Derive a deterministic per-machine passphrase.

    Hashes the hostname, OS user, architecture, platform, and (when it can be
    read) the OS machine id. The result is stable on one machine and account,
    which lets credentials encrypted there be decrypted without a separate
    secret. It resists casual disk inspection, not a local attacker.

    Returns:
        64 hex characters.
    """
    components = [
        socket.gethostname(),
        _current_user(),
        platform.machine(),
        platform.system().lower(),
    ]
    machine_id = _read_machine_id()
    if machine_id:
        components.append(machine_id)
    return hashlib.sha256(":".join(components).encode("utf-8")).hexdigest()
