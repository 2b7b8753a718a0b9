"""Tests for the platform table."""

from pathlib import Path

import pytest

from codex_skill_manager.platforms import SkillPlatform


def test_declared_order():
    assert SkillPlatform.keys() == ["codex", "claude", "opencode", "copilot"]


@pytest.mark.parametrize(
    "platform, suffix",
    [
        (SkillPlatform.CODEX, ".codex/skills/public"),
        (SkillPlatform.CLAUDE, ".claude/skills"),
        (SkillPlatform.OPENCODE, ".config/opencode/skill"),
        (SkillPlatform.COPILOT, ".copilot/skills"),
    ],
)
def test_root_under_home(tmp_path: Path, platform, suffix):
    assert platform.root(tmp_path) == tmp_path / suffix
    assert platform.root_in(tmp_path / "custom") == tmp_path / "custom" / suffix


def test_root_defaults_to_user_home():
    assert SkillPlatform.CLAUDE.root() == Path.home() / ".claude/skills"


def test_from_key():
    assert SkillPlatform.from_key("Claude") is SkillPlatform.CLAUDE
    with pytest.raises(ValueError, match="Unknown platform"):
        SkillPlatform.from_key("vim")
