"""Tests for settings loading and store construction."""

from pathlib import Path

from codex_skill_manager.config import (
    Settings,
    build_remote_store,
    build_skill_store,
    default_app_support_dir,
    load_settings,
)
from codex_skill_manager.remote.client import DEFAULT_BASE_URL


def test_app_support_on_macos(tmp_path: Path):
    assert default_app_support_dir({}, home=tmp_path, platform="darwin") == (
        tmp_path / "Library" / "Application Support" / "CodexSkillManager"
    )


def test_app_support_elsewhere(tmp_path: Path):
    assert default_app_support_dir({}, home=tmp_path, platform="linux") == (
        tmp_path / ".local" / "share" / "CodexSkillManager"
    )
    assert default_app_support_dir({"XDG_DATA_HOME": str(tmp_path / "xdg")}, home=tmp_path, platform="linux") == (
        tmp_path / "xdg" / "CodexSkillManager"
    )


def test_environment_overrides(tmp_path: Path):
    env = {
        "CODEX_SKILL_MANAGER_HOME": str(tmp_path / "home"),
        "CODEX_SKILL_MANAGER_DATA_DIR": str(tmp_path / "data"),
        "CODEX_SKILL_MANAGER_REGISTRY_URL": "https://mirror.example",
    }
    settings = load_settings(env)

    assert settings.home == tmp_path / "home"
    assert settings.app_support_dir == tmp_path / "data"
    assert settings.registry_url == "https://mirror.example"
    assert settings.custom_paths_file == tmp_path / "data" / "custom-paths.json"
    assert settings.http_cache_dir == tmp_path / "data" / "http-cache"


def test_keyword_overrides_win_and_none_is_ignored(tmp_path: Path):
    env = {"CODEX_SKILL_MANAGER_HOME": str(tmp_path / "env-home")}
    settings = load_settings(env, home=tmp_path / "flag-home", registry_url=None, search_limit=5)

    assert settings.home == tmp_path / "flag-home"
    assert settings.registry_url == DEFAULT_BASE_URL
    assert settings.search_limit == 5


def test_defaults():
    settings = Settings(home=Path("/h"), app_support_dir=Path("/d"))
    assert settings.detail_cache_capacity == 50
    assert settings.latest_limit == 12
    assert settings.search_limit == 20
    assert settings.search_debounce == 0.3


def test_builders(tmp_path: Path):
    settings = Settings(home=tmp_path / "home", app_support_dir=tmp_path / "data", detail_cache_capacity=7)

    store = build_skill_store(settings)
    assert store.home == tmp_path / "home"
    assert store.custom_paths.config_path == settings.custom_paths_file

    remote = build_remote_store(settings)
    assert remote.detail_cache.capacity == 7
    assert remote.client.base_url == DEFAULT_BASE_URL
