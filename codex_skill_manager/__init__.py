"""Codex Skill Manager.

Discover, preview, import and install agent skills across Codex, Claude Code,
OpenCode and GitHub Copilot, and browse the Clawdhub registry.
"""

__version__ = "1.0.0"

from .custom_paths import CustomPathStore
from .models import (
    CustomSkillPath,
    ImportCandidate,
    RemoteSkill,
    RemoteSkillOwner,
    ScanResult,
    Skill,
    SkillGroup,
    SkillReference,
    SkillStats,
)
from .multi_scanner import MultiSkillScanner
from .platforms import SkillPlatform
from .remote import RemoteSkillClient, RemoteSkillDetailCache, RemoteSkillStore
from .store import SkillStore

__all__ = [
    "SkillStore",
    "RemoteSkillStore",
    "RemoteSkillClient",
    "RemoteSkillDetailCache",
    "MultiSkillScanner",
    "CustomPathStore",
    "SkillPlatform",
    "Skill",
    "SkillGroup",
    "SkillReference",
    "SkillStats",
    "CustomSkillPath",
    "ImportCandidate",
    "RemoteSkill",
    "RemoteSkillOwner",
    "ScanResult",
]
