"""Tests for bearerkit.config -- XDG paths, atomic writes, profiles, precedence."""

from __future__ import annotations

import json
import os
import stat
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from bearerkit.config import (
    atomic_write,
    delete_profile,
    get_config_dir,
    get_credentials_dir,
    get_data_dir,
    get_profiles_dir,
    list_profiles,
    load_global_config,
    load_profile,
    load_project_config,
    profile_exists,
    resolve_config,
    resolve_secret,
    save_global_config,
    save_profile,
)
from bearerkit.exceptions import ConfigError
from bearerkit.models import (
    AuthEndpoints,
    EndpointMeta,
    EndpointStatus,
    GlobalConfig,
    NotificationConfig,
    OutputConfig,
    Profile,
    RequestConfig,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def _make_profile(name: str = "test", base_url: str = "https://api.example.com") -> Profile:
    return Profile(name=name, base_url=base_url)


@pytest.fixture
def xdg_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setattr("bearerkit.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    return tmp_path


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestXDGPathsLinux:
    def test_config_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("bearerkit.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_config_dir()
        assert result == tmp_path / ".config" / "bearerkit"
        assert result.is_dir()

    def test_config_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        custom = tmp_path / "custom_config"
        monkeypatch.setattr("bearerkit.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(custom))

        assert get_config_dir() == custom / "bearerkit"

    def test_data_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("bearerkit.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_data_dir()
        assert result == tmp_path / ".local" / "share" / "bearerkit"
        assert result.is_dir()

    def test_credentials_dir_inside_data_dir(self, xdg_config: Path) -> None:
        result = get_credentials_dir()
        assert result == xdg_config / "data" / "bearerkit" / "credentials"
        assert result.is_dir()

    def test_profiles_dir_inside_config_dir(self, xdg_config: Path) -> None:
        assert get_profiles_dir() == xdg_config / "bearerkit" / "profiles"


class TestXDGPathsFallback:
    """Fallback paths on macOS and Windows."""

    def test_config_dir_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("bearerkit.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_config_dir() == tmp_path / ".bearerkit"

    def test_data_dir_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("bearerkit.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_data_dir()
        assert result == tmp_path / ".bearerkit" / "data"
        assert result.is_dir()


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    def test_creates_file_with_content(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        atomic_write(target, "hello world")
        assert target.read_text(encoding="utf-8") == "hello world"

    def test_overwrites_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        target.write_text("old content", encoding="utf-8")
        atomic_write(target, "new content")
        assert target.read_text(encoding="utf-8") == "new content"

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        target = tmp_path / "a" / "b" / "test.txt"
        atomic_write(target, "deep write")
        assert target.read_text(encoding="utf-8") == "deep write"

    def test_no_temp_files_left_on_success(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        atomic_write(target, "content")
        assert list(tmp_path.iterdir()) == [target]

    def test_no_temp_files_left_on_error(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        with patch("bearerkit.config.os.fsync", side_effect=OSError("disk error")):
            with pytest.raises(OSError, match="disk error"):
                atomic_write(target, "will fail")
        assert list(tmp_path.iterdir()) == []

    def test_mode_applied(self, tmp_path: Path) -> None:
        target = tmp_path / "secret.json"
        atomic_write(target, "{}", mode=0o600)
        assert stat.S_IMODE(os.stat(target).st_mode) == 0o600

    def test_unicode_content(self, tmp_path: Path) -> None:
        target = tmp_path / "unicode.txt"
        content = "Hello 世界 éàü"
        atomic_write(target, content)
        assert target.read_text(encoding="utf-8") == content


# ---------------------------------------------------------------------------
# Global config
# ---------------------------------------------------------------------------


class TestGlobalConfig:
    def test_load_returns_defaults_when_missing(self, xdg_config: Path) -> None:
        cfg = load_global_config()
        assert cfg == GlobalConfig()
        assert cfg.default_profile is None
        assert cfg.auto_select_single_profile is True
        assert cfg.output.format == "auto"

    def test_save_and_load_roundtrip(self, xdg_config: Path) -> None:
        original = GlobalConfig(
            default_profile="shop",
            auto_select_single_profile=False,
            output=OutputConfig(format="json"),
        )
        save_global_config(original)
        assert load_global_config() == original

    def test_load_invalid_json_raises_config_error(self, xdg_config: Path) -> None:
        config_dir = xdg_config / "bearerkit"
        config_dir.mkdir(parents=True)
        (config_dir / "config.json").write_text("{invalid json!!!", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid global config"):
            load_global_config()

    def test_load_invalid_schema_raises_config_error(self, xdg_config: Path) -> None:
        _write_json(xdg_config / "bearerkit" / "config.json", {"output": "not-a-dict"})
        with pytest.raises(ConfigError, match="Invalid global config"):
            load_global_config()

    def test_unknown_output_format_raises_config_error(self, xdg_config: Path) -> None:
        _write_json(xdg_config / "bearerkit" / "config.json", {"output": {"format": "yaml"}})
        with pytest.raises(ConfigError, match="Invalid global config"):
            load_global_config()


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class TestProfiles:
    def test_list_empty(self, xdg_config: Path) -> None:
        assert list_profiles() == []

    def test_save_and_list(self, xdg_config: Path) -> None:
        save_profile(_make_profile("beta"))
        save_profile(_make_profile("alpha"))
        assert list_profiles() == ["alpha", "beta"]

    def test_save_and_load_roundtrip(self, xdg_config: Path) -> None:
        original = Profile(
            name="shop",
            base_url="https://api.shop.test",
            auth=AuthEndpoints(refresh_path="/auth/token/renew", skip_paths=["/health"]),
            request=RequestConfig(timeout=10, max_retries=5, retry_base_delay=0.5),
            notifications=NotificationConfig(max_per_window=1, window_seconds=30),
            credential_store="memory",
            endpoints={
                "/api/v1/shops/:shop_id/score": EndpointMeta(
                    status=EndpointStatus.DEVELOPMENT, expected_release="2026-12-01"
                )
            },
        )
        save_profile(original)
        assert load_profile("shop") == original

    def test_load_nonexistent_raises_config_error(self, xdg_config: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_profile("nonexistent")

    def test_delete_profile(self, xdg_config: Path) -> None:
        save_profile(_make_profile("to-delete"))
        assert profile_exists("to-delete")
        delete_profile("to-delete")
        assert not profile_exists("to-delete")

    def test_delete_nonexistent_raises_config_error(self, xdg_config: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            delete_profile("ghost")

    def test_save_overwrites_existing(self, xdg_config: Path) -> None:
        save_profile(_make_profile("api", "https://old.test"))
        save_profile(_make_profile("api", "https://new.test"))
        assert load_profile("api").base_url == "https://new.test"

    def test_load_invalid_json_raises_config_error(self, xdg_config: Path) -> None:
        profiles_dir = xdg_config / "bearerkit" / "profiles"
        profiles_dir.mkdir(parents=True)
        (profiles_dir / "bad.json").write_text("not json!!!", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid profile"):
            load_profile("bad")

    def test_load_invalid_store_raises_config_error(self, xdg_config: Path) -> None:
        _write_json(
            xdg_config / "bearerkit" / "profiles" / "bad.json",
            {"name": "bad", "credential_store": "keyring"},
        )
        with pytest.raises(ConfigError, match="Invalid profile"):
            load_profile("bad")

    def test_list_profiles_ignores_non_json(self, xdg_config: Path) -> None:
        save_profile(_make_profile("valid"))
        (get_profiles_dir() / "readme.txt").write_text("not a profile", encoding="utf-8")
        assert list_profiles() == ["valid"]


# ---------------------------------------------------------------------------
# Project-local config
# ---------------------------------------------------------------------------


class TestProjectConfig:
    def test_load_returns_none_when_missing(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        assert load_project_config() is None

    def test_load_valid_project_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        _write_json(tmp_path / "bearerkit.json", {"default_profile": "local-api"})

        result = load_project_config()
        assert result == {"default_profile": "local-api"}

    def test_load_invalid_json_raises_config_error(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        (tmp_path / "bearerkit.json").write_text("broken{", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid project config"):
            load_project_config()


# ---------------------------------------------------------------------------
# Precedence resolution
# ---------------------------------------------------------------------------


class TestResolveConfig:
    """CLI > env > project > global > defaults."""

    @pytest.fixture(autouse=True)
    def _isolate(self, isolated_config: Path) -> None:
        self.tmp_path = isolated_config

    def test_defaults_no_profile(self) -> None:
        cfg, profile = resolve_config()
        assert isinstance(cfg, GlobalConfig)
        assert profile is None

    def test_global_default_profile(self) -> None:
        save_profile(_make_profile("global-api"))
        save_profile(_make_profile("other"))
        save_global_config(GlobalConfig(default_profile="global-api"))

        _, profile = resolve_config()
        assert profile is not None
        assert profile.name == "global-api"

    def test_project_overrides_global(self) -> None:
        save_profile(_make_profile("global-api"))
        save_profile(_make_profile("project-api"))
        save_global_config(GlobalConfig(default_profile="global-api"))
        _write_json(self.tmp_path / "bearerkit.json", {"default_profile": "project-api"})

        _, profile = resolve_config()
        assert profile is not None
        assert profile.name == "project-api"

    def test_env_overrides_project(self, monkeypatch: pytest.MonkeyPatch) -> None:
        save_profile(_make_profile("project-api"))
        save_profile(_make_profile("env-api"))
        _write_json(self.tmp_path / "bearerkit.json", {"default_profile": "project-api"})
        monkeypatch.setenv("BEARERKIT_PROFILE", "env-api")

        _, profile = resolve_config()
        assert profile is not None
        assert profile.name == "env-api"

    def test_cli_overrides_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        save_profile(_make_profile("env-api"))
        save_profile(_make_profile("cli-api"))
        monkeypatch.setenv("BEARERKIT_PROFILE", "env-api")

        _, profile = resolve_config(cli_profile="cli-api")
        assert profile is not None
        assert profile.name == "cli-api"

    def test_env_base_url_overrides_profile(self, monkeypatch: pytest.MonkeyPatch) -> None:
        save_profile(_make_profile("api", "https://original.test"))
        monkeypatch.setenv("BEARERKIT_BASE_URL", "https://env.test")

        _, profile = resolve_config()
        assert profile is not None
        assert profile.base_url == "https://env.test"

    def test_cli_base_url_beats_env_base_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        save_profile(_make_profile("api"))
        monkeypatch.setenv("BEARERKIT_BASE_URL", "https://env.test")

        _, profile = resolve_config(cli_base_url="https://cli.test")
        assert profile is not None
        assert profile.base_url == "https://cli.test"

    def test_auto_select_single_profile(self) -> None:
        save_profile(_make_profile("only-one"))

        _, profile = resolve_config()
        assert profile is not None
        assert profile.name == "only-one"

    def test_auto_select_disabled(self) -> None:
        save_profile(_make_profile("only-one"))
        save_global_config(GlobalConfig(auto_select_single_profile=False))

        _, profile = resolve_config()
        assert profile is None

    def test_auto_select_skipped_when_multiple(self) -> None:
        save_profile(_make_profile("alpha"))
        save_profile(_make_profile("beta"))

        _, profile = resolve_config()
        assert profile is None

    def test_nonexistent_profile_raises_config_error(self) -> None:
        with pytest.raises(ConfigError, match="not found"):
            resolve_config(cli_profile="does-not-exist")


# ---------------------------------------------------------------------------
# Secret resolution
# ---------------------------------------------------------------------------


class TestResolveSecret:
    def test_env_source(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SHOP_PASSWORD", "secret123")
        assert resolve_secret("env:SHOP_PASSWORD") == "secret123"

    def test_env_source_missing_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR", raising=False)
        with pytest.raises(ConfigError, match="not set"):
            resolve_secret("env:NONEXISTENT_VAR")

    def test_env_source_empty_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EMPTY_VAR", "")
        assert resolve_secret("env:EMPTY_VAR") == ""

    def test_file_source(self, tmp_path: Path) -> None:
        secret_file = tmp_path / "password.txt"
        secret_file.write_text("  hunter2  \n", encoding="utf-8")
        assert resolve_secret(f"file:{secret_file}") == "hunter2"

    def test_file_source_missing_raises(self) -> None:
        with pytest.raises(ConfigError, match="not found"):
            resolve_secret("file:/nonexistent/path/password.txt")

    def test_file_source_home_expansion(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HOME", str(tmp_path))
        (tmp_path / ".secret").write_text("expanded-secret", encoding="utf-8")

        assert resolve_secret("file:~/.secret") == "expanded-secret"

    def test_prompt_source_with_tty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.stdin.isatty", lambda: True)
        monkeypatch.setattr("getpass.getpass", lambda prompt: "typed-secret")

        assert resolve_secret("prompt") == "typed-secret"

    def test_prompt_source_non_tty_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.stdin.isatty", lambda: False)

        with pytest.raises(ConfigError, match="not a TTY"):
            resolve_secret("prompt")

    def test_unknown_source_raises(self) -> None:
        with pytest.raises(ConfigError, match="Unknown secret source"):
            resolve_secret("magic:wand")
