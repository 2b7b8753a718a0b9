"""Runtime settings and store construction.

Settings come from keyword overrides, then environment variables, then
platform defaults:

    CODEX_SKILL_MANAGER_HOME          home directory the platform roots hang off
    CODEX_SKILL_MANAGER_DATA_DIR      application-support directory
    CODEX_SKILL_MANAGER_REGISTRY_URL  registry base URL
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .custom_paths import CONFIG_FILENAME, CustomPathStore
from .remote.cache import DEFAULT_CAPACITY, RemoteSkillDetailCache
from .remote.client import DEFAULT_BASE_URL, RemoteSkillClient
from .remote.http_cache import DEFAULT_DISK_CAPACITY, DEFAULT_MEMORY_CAPACITY, HTTPResponseCache
from .remote.store import (
    DEFAULT_LATEST_LIMIT,
    DEFAULT_SEARCH_DEBOUNCE,
    DEFAULT_SEARCH_LIMIT,
    RemoteSkillStore,
)
from .store import SkillStore

APP_FOLDER = "CodexSkillManager"

ENV_HOME = "CODEX_SKILL_MANAGER_HOME"
ENV_DATA_DIR = "CODEX_SKILL_MANAGER_DATA_DIR"
ENV_REGISTRY_URL = "CODEX_SKILL_MANAGER_REGISTRY_URL"


def default_app_support_dir(
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
    platform: str = sys.platform,
) -> Path:
    env = os.environ if env is None else env
    home = home or Path.home()
    if platform == "darwin":
        base = home / "Library" / "Application Support"
    else:
        xdg = env.get("XDG_DATA_HOME")
        base = Path(xdg) if xdg else home / ".local" / "share"
    return base / APP_FOLDER


@dataclass
class Settings:
    home: Path
    app_support_dir: Path
    registry_url: str = DEFAULT_BASE_URL
    http_cache_dir: Optional[Path] = None
    memory_cache_bytes: int = DEFAULT_MEMORY_CAPACITY
    disk_cache_bytes: int = DEFAULT_DISK_CAPACITY
    detail_cache_capacity: int = DEFAULT_CAPACITY
    latest_limit: int = DEFAULT_LATEST_LIMIT
    search_limit: int = DEFAULT_SEARCH_LIMIT
    search_debounce: float = DEFAULT_SEARCH_DEBOUNCE

    def __post_init__(self):
        self.home = Path(self.home)
        self.app_support_dir = Path(self.app_support_dir)
        if self.http_cache_dir is None:
            self.http_cache_dir = self.app_support_dir / "http-cache"

    @property
    def custom_paths_file(self) -> Path:
        return self.app_support_dir / CONFIG_FILENAME


def load_settings(env: Optional[Mapping[str, str]] = None, **overrides) -> Settings:
    """Build `Settings` from overrides, the environment and platform defaults.

    Overrides whose value is None are ignored, so CLI options can be passed
    straight through.
    """
    env = os.environ if env is None else env
    overrides = {k: v for k, v in overrides.items() if v is not None}

    home = Path(overrides.pop("home", None) or env.get(ENV_HOME) or Path.home()).expanduser()

    app_support_dir = overrides.pop("app_support_dir", None) or env.get(ENV_DATA_DIR)
    if app_support_dir:
        app_support_dir = Path(app_support_dir).expanduser()
    else:
        app_support_dir = default_app_support_dir(env)

    registry_url = overrides.pop("registry_url", None) or env.get(ENV_REGISTRY_URL) or DEFAULT_BASE_URL

    return Settings(
        home=home,
        app_support_dir=app_support_dir,
        registry_url=registry_url,
        **overrides,
    )


def build_skill_store(settings: Settings, **kwargs) -> SkillStore:
    return SkillStore(
        home=settings.home,
        custom_paths=CustomPathStore(settings.custom_paths_file),
        **kwargs,
    )


def build_remote_client(settings: Settings, **kwargs) -> RemoteSkillClient:
    cache = HTTPResponseCache(
        directory=settings.http_cache_dir,
        memory_capacity=settings.memory_cache_bytes,
        disk_capacity=settings.disk_cache_bytes,
    )
    kwargs.setdefault("cache", cache)
    return RemoteSkillClient(base_url=settings.registry_url, **kwargs)


def build_remote_store(settings: Settings, client: Optional[RemoteSkillClient] = None) -> RemoteSkillStore:
    return RemoteSkillStore(
        client or build_remote_client(settings),
        RemoteSkillDetailCache(settings.detail_cache_capacity),
    )
