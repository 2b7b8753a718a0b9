"""Supported skill platforms and where each keeps its skills."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional


class SkillPlatform(Enum):
    """A tool that loads skills from a fixed directory under the home folder.

    Declaration order is the stable display/scan order.
    """

    CODEX = ("codex", "Codex", ".codex/skills/public", "blue")
    CLAUDE = ("claude", "Claude Code", ".claude/skills", "orange")
    OPENCODE = ("opencode", "OpenCode", ".config/opencode/skill", "green")
    COPILOT = ("copilot", "GitHub Copilot", ".copilot/skills", "purple")

    def __init__(self, storage_key: str, title: str, relative_path: str, tint: str):
        self.storage_key = storage_key
        self.title = title
        self.relative_path = relative_path
        self.tint = tint

    def root(self, home: Optional[Path] = None) -> Path:
        """Absolute skills directory for this platform."""
        return self.root_in(home or Path.home())

    def root_in(self, base: Path) -> Path:
        """Skills directory for this platform relative to an arbitrary base."""
        return Path(base) / self.relative_path

    @classmethod
    def from_key(cls, key: str) -> "SkillPlatform":
        normalized = (key or "").strip().lower()
        for platform in cls:
            if platform.storage_key == normalized:
                return platform
        choices = ", ".join(p.storage_key for p in cls)
        raise ValueError(f"Unknown platform '{key}' (expected one of: {choices})")

    @classmethod
    def keys(cls):
        return [p.storage_key for p in cls]
