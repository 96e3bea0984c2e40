"""Tests for configuration loading, XDG paths, and atomic writes."""

from __future__ import annotations

import json
import os
import stat

import pytest

from qwen_auth.config import (
    atomic_write,
    get_config_dir,
    get_data_dir,
    load_config,
    load_from_environment,
    load_from_file,
)
from qwen_auth.exceptions import ConfigurationError
from qwen_auth.models import AuthMethod, QwenAuthConfig


class TestPaths:
    def test_xdg_dirs(self, isolated_config) -> None:
        assert get_config_dir() == isolated_config / "config" / "qwen-auth"
        assert get_data_dir() == isolated_config / "data" / "qwen-auth"
        assert get_data_dir().is_dir()

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_data_dir_owner_only(self, isolated_config) -> None:
        assert stat.S_IMODE(get_data_dir().stat().st_mode) == 0o700

    def test_fallback_dir(self, isolated_config, monkeypatch) -> None:
        monkeypatch.setattr("qwen_auth.config._is_xdg_platform", lambda: False)
        monkeypatch.setenv("HOME", str(isolated_config))
        monkeypatch.setenv("USERPROFILE", str(isolated_config))
        assert get_data_dir() == isolated_config / ".qwen-auth" / "data"


class TestAtomicWrite:
    def test_writes_content(self, tmp_path) -> None:
        target = tmp_path / "nested" / "file.json"
        atomic_write(target, '{"a": 1}')
        assert json.loads(target.read_text()) == {"a": 1}

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_mode(self, tmp_path) -> None:
        target = tmp_path / "secret"
        atomic_write(target, "x")
        assert stat.S_IMODE(target.stat().st_mode) == 0o600

    def test_replaces_and_leaves_no_temp_files(self, tmp_path) -> None:
        target = tmp_path / "file"
        atomic_write(target, "one")
        atomic_write(target, "two")
        assert target.read_text() == "two"
        assert [p.name for p in tmp_path.iterdir()] == ["file"]


class TestEnvironment:
    def test_empty(self, isolated_config) -> None:
        assert load_from_environment() == {}

    def test_api_key_selects_method(self, isolated_config, monkeypatch) -> None:
        monkeypatch.setenv("DASHSCOPE_API_KEY", "sk-env-0123456789abcdef")
        env = load_from_environment()
        assert env["method"] == "api_key"
        assert env["api_key"] == {"api_key": "sk-env-0123456789abcdef"}

    def test_qwen_key_wins(self, isolated_config, monkeypatch) -> None:
        monkeypatch.setenv("DASHSCOPE_API_KEY", "dashscope-key-0000000")
        monkeypatch.setenv("QWEN_API_KEY", "qwen-key-000000000000")
        assert load_from_environment()["api_key"]["api_key"] == "qwen-key-000000000000"

    def test_flags(self, isolated_config, monkeypatch) -> None:
        monkeypatch.setenv("QWEN_AUTH_DEBUG", "true")
        monkeypatch.setenv("QWEN_USE_INTERNATIONAL", "0")
        monkeypatch.setenv("QWEN_AUTH_ENCRYPTION_KEY", "pass")
        env = load_from_environment()
        assert env["debug"] is True
        assert env["use_international_endpoint"] is False
        assert env["security"] == {"encryption_key": "pass"}


class TestLoadFromFile:
    def test_missing(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_from_file(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{oops")
        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            load_from_file(path)

    def test_yaml(self, tmp_path) -> None:
        path = tmp_path / "qwen.yaml"
        path.write_text("method: oauth\nuseInternationalEndpoint: true\n")
        assert load_from_file(path) == {"method": "oauth", "useInternationalEndpoint": True}

    def test_non_mapping(self, tmp_path) -> None:
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="object"):
            load_from_file(path)

    def test_provider_block_with_string_key(self, tmp_path) -> None:
        path = tmp_path / "opencode.json"
        path.write_text(
            json.dumps(
                {
                    "providers": {
                        "qwen": {"apiKey": "sk-file-0123456789abcd", "baseUrl": "https://proxy/v1"}
                    }
                }
            )
        )
        data = load_from_file(path)
        assert data["method"] == "api_key"
        assert data["apiKey"] == {"apiKey": "sk-file-0123456789abcd", "baseUrl": "https://proxy/v1"}


class TestLoadConfig:
    def test_defaults(self, isolated_config) -> None:
        config = load_config()
        assert config == QwenAuthConfig()
        assert config.method == AuthMethod.OAUTH
        assert config.security.encrypt_credentials is True
        assert config.security.rate_limit.max_attempts == 5

    def test_camelcase_file(self, isolated_config) -> None:
        path = isolated_config / "qwen.json"
        path.write_text(
            json.dumps(
                {
                    "method": "api_key",
                    "apiKey": {"apiKey": "sk-file-0123456789abcd"},
                    "security": {"rateLimit": {"maxAttempts": 3}, "auditLogging": True},
                    "defaultModel": "qwen-max",
                }
            )
        )
        config = load_config(path)
        assert config.api_key.api_key == "sk-file-0123456789abcd"
        assert config.security.rate_limit.max_attempts == 3
        assert config.security.rate_limit.window_ms == 60_000
        assert config.security.audit_logging is True
        assert config.default_model == "qwen-max"

    def test_env_overrides_file(self, isolated_config, monkeypatch) -> None:
        path = isolated_config / "qwen.yaml"
        path.write_text("method: oauth\nsecurity:\n  auditLogging: true\n")
        monkeypatch.setenv("QWEN_API_KEY", "sk-env-0123456789abcdef")
        monkeypatch.setenv("QWEN_AUTH_ENCRYPTION_KEY", "pass")

        config = load_config(path)

        assert config.method == AuthMethod.API_KEY
        assert config.api_key.api_key == "sk-env-0123456789abcdef"
        assert config.security.encryption_key == "pass"
        assert config.security.audit_logging is True

    def test_method_block_required(self, isolated_config, monkeypatch) -> None:
        monkeypatch.setenv("QWEN_AUTH_METHOD", "jwt")
        with pytest.raises(ConfigurationError, match="jwt configuration is required"):
            load_config()

    def test_unknown_model(self, isolated_config) -> None:
        path = isolated_config / "qwen.json"
        path.write_text(json.dumps({"defaultModel": "gpt-4"}))
        with pytest.raises(ConfigurationError, match="Unknown Qwen model"):
            load_config(path)

    def test_rate_limit_must_be_positive(self, isolated_config) -> None:
        path = isolated_config / "qwen.json"
        path.write_text(json.dumps({"security": {"rateLimit": {"maxAttempts": 0}}}))
        with pytest.raises(ConfigurationError):
            load_config(path)
