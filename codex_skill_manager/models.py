"""Data models for local and remote skills
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
from urllib.parse import unquote, urlparse

from .platforms import SkillPlatform

# Load states shared by both stores. A "failed" state carries its message in
# the owning store's matching `*_error` attribute.
IDLE = "idle"
LOADING = "loading"
LOADED = "loaded"
MISSING = "missing"
CACHED_REFRESHING = "cached_refreshing"
FAILED = "failed"

DEFAULT_DESCRIPTION = "No description available."


@dataclass(frozen=True)
class SkillStats:
    """Entry counts for a skill's optional subfolders"""

    references: int = 0
    assets: int = 0
    scripts: int = 0
    templates: int = 0

    @property
    def tag_labels(self) -> List[str]:
        labels = [
            _count_label(self.references, "reference"),
            _count_label(self.assets, "asset"),
            _count_label(self.scripts, "script"),
            _count_label(self.templates, "template"),
        ]
        return [label for label in labels if label]


def _count_label(count: int, singular: str) -> str:
    if count <= 0:
        return ""
    word = singular if count == 1 else f"{singular}s"
    return f"{count} {word}"


@dataclass(frozen=True)
class SkillReference:
    """A markdown file under a skill's `references/` folder"""

    id: str  # absolute file path
    name: str
    path: Path


@dataclass(frozen=True)
class CustomSkillPath:
    """An extra root directory the user asked us to scan"""

    path: Path
    display_name: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()).upper())

    def __post_init__(self):
        if not self.display_name:
            object.__setattr__(self, "display_name", Path(self.path).name or str(self.path))

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "url": Path(self.path).absolute().as_uri(),
            "displayName": self.display_name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomSkillPath":
        raw_url = str(data["url"])
        if raw_url.startswith("file://"):
            path = Path(unquote(urlparse(raw_url).path))
        else:
            path = Path(raw_url)
        return cls(
            path=path,
            display_name=str(data.get("displayName") or ""),
            id=str(data["id"]),
        )


@dataclass
class Skill:
    """A skill folder discovered on disk"""

    id: str
    name: str  # folder name, the cross-platform slug
    display_name: str
    description: str
    folder_path: Path
    skill_markdown_path: Path
    platform: Optional[SkillPlatform] = None
    custom_path: Optional[CustomSkillPath] = None
    references: List[SkillReference] = field(default_factory=list)
    stats: SkillStats = field(default_factory=SkillStats)

    # Frontmatter keys other than name/description (version, license, ...)
    frontmatter_extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def folder(self) -> str:
        return str(self.folder_path)

    @property
    def is_custom(self) -> bool:
        return self.custom_path is not None


@dataclass
class SkillGroup:
    """Copies of one slug shown as a single row"""

    slug: str
    skills: List[Skill]
    preferred: Skill
    installed_platforms: Set[SkillPlatform] = field(default_factory=set)
    custom_path: Optional[CustomSkillPath] = None
    is_mine: bool = True

    @property
    def delete_ids(self) -> List[str]:
        return [skill.id for skill in self.skills]

    @property
    def display_name(self) -> str:
        return self.preferred.display_name

    @property
    def description(self) -> str:
        return self.preferred.description


@dataclass
class ScanResult:
    """Result of scanning every platform root and custom path"""

    skills: List[Skill] = field(default_factory=list)
    scan_time: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.skills)


@dataclass(frozen=True)
class RemoteSkill:
    """A skill listed by the remote registry"""

    slug: str
    display_name: str
    summary: Optional[str] = None
    latest_version: Optional[str] = None
    updated_at: Optional[datetime] = None
    downloads: Optional[int] = None
    stars: Optional[int] = None

    @property
    def id(self) -> str:
        return self.slug


@dataclass(frozen=True)
class RemoteSkillOwner:
    handle: Optional[str] = None
    display_name: Optional[str] = None
    image_url: Optional[str] = None


@dataclass(frozen=True)
class CachedSkillDetail:
    markdown: str
    owner: Optional[RemoteSkillOwner] = None


@dataclass
class ImportCandidate:
    """A validated folder or archive waiting to be imported"""

    root: Path
    skill_file: Path
    skill_name: str
    markdown: str
    temporary_root: Optional[Path] = None
    source: Optional[Path] = None

    @property
    def is_temporary(self) -> bool:
        return self.temporary_root is not None

    @property
    def folder_name(self) -> str:
        """Folder name to install under; an archive with `SKILL.md` at its top uses its stem."""
        if self.source is not None and self.root == self.temporary_root:
            return self.source.stem
        return self.root.name
