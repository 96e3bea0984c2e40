"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles the ambient configuration for qwen-auth:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.qwen-auth/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Atomic writes** -- :func:`atomic_write` writes through a temp file and
  ``os.replace`` with restrictive permissions so secrets are never
  world-readable, even momentarily.
* **Precedence resolution** -- :func:`load_config` merges built-in defaults,
  an explicitly named JSON or YAML file, and environment variables into a validated
  :class:`~qwen_auth.models.QwenAuthConfig`.

The configuration file is never searched for on disk; the host (or the
``--config`` CLI flag) names it.
"""

from __future__ import annotations

import json
import logging
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError
from pydantic.alias_generators import to_snake

from qwen_auth.exceptions import ConfigurationError
from qwen_auth.models import QwenAuthConfig

logger = logging.getLogger(__name__)

_APP_NAME = "qwen-auth"

ENV_API_KEY = "QWEN_API_KEY"
ENV_DASHSCOPE_API_KEY = "DASHSCOPE_API_KEY"
ENV_DEBUG = "QWEN_AUTH_DEBUG"
ENV_USE_INTERNATIONAL = "QWEN_USE_INTERNATIONAL"
ENV_METHOD = "QWEN_AUTH_METHOD"
ENV_ENCRYPTION_KEY = "QWEN_AUTH_ENCRYPTION_KEY"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform follows the XDG Base Directory layout (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/qwen-auth/`` (default ``~/.config/qwen-auth/``).
    On macOS/Windows: ``~/.qwen-auth/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (credentials, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/qwen-auth/`` (default ``~/.local/share/qwen-auth/``).
    On macOS/Windows: ``~/.qwen-auth/data/``.

    The directory is created owner-only (``0o700``).

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(mode=0o700, parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: int = 0o600) -> None:
    """Write *data* to *path* atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. Permissions are set
    to *mode* before any content is written. On any failure the temp file is
    removed and the exception re-raised.

    Args:
        path: Destination file.
        data: Text content to write (UTF-8).
        mode: Permission bits applied to the file.

    Raises:
        OSError: If the file cannot be written (permissions, disk full, etc.).
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Loading ---


def _env_flag(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_from_environment() -> dict[str, Any]:
    """Collect configuration overrides from environment variables.

    Recognised variables:
        - ``QWEN_API_KEY`` / ``DASHSCOPE_API_KEY`` -- API key (selects ``api_key``
          unless ``QWEN_AUTH_METHOD`` says otherwise)
        - ``QWEN_AUTH_METHOD`` -- ``api_key``, ``jwt``, or ``oauth``
        - ``QWEN_AUTH_DEBUG`` -- debug logging toggle
        - ``QWEN_USE_INTERNATIONAL`` -- use the international endpoint
        - ``QWEN_AUTH_ENCRYPTION_KEY`` -- credential encryption passphrase

    Returns:
        A partial config dict (snake_case keys); empty when nothing is set.
    """
    overrides: dict[str, Any] = {}

    api_key = os.environ.get(ENV_API_KEY) or os.environ.get(ENV_DASHSCOPE_API_KEY)
    if api_key:
        overrides["api_key"] = {"api_key": api_key}
        overrides["method"] = "api_key"

    method = os.environ.get(ENV_METHOD)
    if method:
        overrides["method"] = method

    debug = _env_flag(ENV_DEBUG)
    if debug is not None:
        overrides["debug"] = debug

    use_international = _env_flag(ENV_USE_INTERNATIONAL)
    if use_international is not None:
        overrides["use_international_endpoint"] = use_international

    encryption_key = os.environ.get(ENV_ENCRYPTION_KEY)
    if encryption_key:
        overrides["security"] = {"encryption_key": encryption_key}

    return overrides


def _parse_content(content: str, hint: str = "") -> dict[str, Any]:
    """Parse config text as JSON or YAML.

    JSON is tried first unless *hint* is ``"yaml"``; an explicit ``"json"``
    hint disables the YAML fallback.

    Raises:
        ConfigurationError: If the content is neither, or is not a mapping.
    """
    json_error: Exception | None = None

    if hint != "yaml":
        try:
            result = json.loads(content)
        except json.JSONDecodeError as exc:
            if hint == "json":
                raise ConfigurationError(f"Invalid JSON: {exc}") from exc
            json_error = exc
        else:
            if not isinstance(result, dict):
                raise ConfigurationError(
                    f"Config must be a JSON/YAML object (got {type(result).__name__})"
                )
            return result

    try:
        result = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        msg = "Failed to parse config as JSON or YAML"
        if json_error:
            msg += f"\n  JSON error: {json_error}"
        msg += f"\n  YAML error: {exc}"
        raise ConfigurationError(msg) from exc
    if not isinstance(result, dict):
        raise ConfigurationError(
            "Config must be a JSON/YAML object (got "
            f"{type(result).__name__ if result is not None else 'empty document'})"
        )
    return result


def load_from_file(path: Path) -> dict[str, Any]:
    """Read a configuration file (``.json``, ``.yaml``, or ``.yml``).

    Accepts either a standalone qwen-auth config or an opencode-style file
    whose ``providers.qwen`` block holds the settings. A bare string
    ``apiKey`` in the provider block is expanded to an API key config.

    Args:
        path: Path to the file.

    Returns:
        The raw config dict.

    Raises:
        ConfigurationError: If the file is missing, unreadable, or unparseable.
    """
    if not path.is_file():
        raise ConfigurationError(f"Config file not found: {path}")
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Failed to read config file {path}: {exc}") from exc

    suffix = path.suffix.lower()
    hint = ""
    if suffix == ".json":
        hint = "json"
    elif suffix in (".yaml", ".yml"):
        hint = "yaml"
    data = _parse_content(content, hint=hint)

    provider = data.get("providers", {}).get("qwen") if isinstance(data.get("providers"), dict) else None
    if isinstance(provider, dict):
        data = dict(provider)
        if isinstance(data.get("apiKey"), str):
            data["apiKey"] = {"apiKey": data["apiKey"], "baseUrl": data.pop("baseUrl", None)}
            data.setdefault("method", "api_key")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Convert camelCase file keys to snake_case so they merge with env overrides."""
    normalized: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            value = _normalize_keys(value)
        normalized[to_snake(key)] = value
    return normalized


def load_config(config_path: Optional[Path] = None) -> QwenAuthConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. Environment variables (see :func:`load_from_environment`)
        2. The JSON or YAML file at *config_path*, when given
        3. Defaults (OAuth device flow against chat.qwen.ai)

    Args:
        config_path: Optional path to a JSON or YAML configuration file.

    Returns:
        The validated :class:`~qwen_auth.models.QwenAuthConfig`.

    Raises:
        ConfigurationError: If the file is unreadable or the merged
            configuration fails validation.
    """
    merged: dict[str, Any] = {}
    if config_path is not None:
        merged = _normalize_keys(load_from_file(config_path))
        logger.debug("Loaded config file %s", config_path)

    env = load_from_environment()
    if env:
        logger.debug("Applying environment overrides: %s", sorted(env))
    merged = _deep_merge(merged, env)

    try:
        return QwenAuthConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
