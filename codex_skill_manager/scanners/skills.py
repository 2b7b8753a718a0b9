"""Skill scanner - builds `Skill` records from folders containing `SKILL.md`."""

from __future__ import annotations

import locale
import logging
from pathlib import Path
from typing import List, Optional

from ..errors import SkillRootNotFoundError
from ..models import DEFAULT_DESCRIPTION, CustomSkillPath, Skill, SkillReference, SkillStats
from ..platforms import SkillPlatform
from .metadata import format_title, parse_frontmatter_extra, parse_metadata

logger = logging.getLogger(__name__)

SKILL_FILENAME = "SKILL.md"


def sort_key(text: str):
    """Locale-aware, case-insensitive sort key."""
    folded = text.casefold()
    try:
        return locale.strxfrm(folded)
    except (ValueError, OSError):  # pragma: no cover - broken locale setup
        return folded


def skill_id(name: str, platform: Optional[SkillPlatform], custom_path: Optional[CustomSkillPath] = None) -> str:
    key = platform.storage_key if platform else "custom"
    if custom_path is not None:
        return f"custom-{custom_path.id}-{key}-{name}"
    return f"{key}-{name}"


class SkillScanner:
    """Scan one skills directory (a platform root) for skill folders."""

    def __init__(
        self,
        skills_dir: Path,
        platform: Optional[SkillPlatform] = None,
        custom_path: Optional[CustomSkillPath] = None,
    ):
        self.skills_dir = Path(skills_dir)
        self.platform = platform
        self.custom_path = custom_path
        self.errors: List[str] = []

    def scan(self) -> List[Skill]:
        """Scan all immediate subfolders that contain a `SKILL.md`."""
        skills: List[Skill] = []

        if not self.skills_dir.is_dir():
            return skills

        for skill_path in sorted(self.skills_dir.iterdir()):
            if skill_path.name.startswith("."):
                continue

            try:
                if not skill_path.is_dir():
                    continue
                skill = self._scan_skill(skill_path)
                if skill:
                    skills.append(skill)
            except OSError as e:
                # Skip the folder but keep scanning its siblings
                message = f"Error scanning {skill_path}: {e}"
                logger.warning(message)
                self.errors.append(message)

        logger.debug(f"Found {len(skills)} skills in {self.skills_dir}")
        return skills

    def _scan_skill(self, skill_path: Path) -> Optional[Skill]:
        """Scan a single skill directory."""
        skill_md = skill_path / SKILL_FILENAME

        # Must have SKILL.md to be a valid skill
        if not skill_md.is_file():
            return None

        content = read_text_lenient(skill_md)
        name, description = parse_metadata(content)

        references = self._reference_files(skill_path / "references")
        stats = SkillStats(
            references=len(references),
            assets=self._count_entries(skill_path / "assets"),
            scripts=self._count_entries(skill_path / "scripts"),
            templates=self._count_entries(skill_path / "templates"),
        )

        folder_name = skill_path.name
        return Skill(
            id=skill_id(folder_name, self.platform, self.custom_path),
            name=folder_name,
            display_name=format_title(name or folder_name),
            description=description or DEFAULT_DESCRIPTION,
            folder_path=skill_path,
            skill_markdown_path=skill_md,
            platform=self.platform,
            custom_path=self.custom_path,
            references=references,
            stats=stats,
            frontmatter_extra=parse_frontmatter_extra(content),
        )

    def _reference_files(self, references_dir: Path) -> List[SkillReference]:
        try:
            entries = list(references_dir.iterdir())
        except OSError:
            return []

        references: List[SkillReference] = []
        for file_path in entries:
            if file_path.name.startswith("."):
                continue
            if not file_path.is_file() or file_path.suffix.lower() != ".md":
                continue
            references.append(
                SkillReference(
                    id=str(file_path),
                    name=format_title(file_path.stem),
                    path=file_path,
                )
            )

        return sorted(references, key=lambda ref: sort_key(ref.name))

    def _count_entries(self, folder: Path) -> int:
        try:
            return sum(1 for entry in folder.iterdir() if not entry.name.startswith("."))
        except OSError:
            return 0


def read_text_lenient(path: Path) -> str:
    """Read UTF-8 text, treating unreadable or undecodable files as empty."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return ""


def find_skill_root(root: Path) -> Path:
    """Locate the skill folder inside an extracted archive or picked folder.

    A `SKILL.md` directly under `root` makes `root` the skill root; otherwise
    exactly one immediate subfolder must contain `SKILL.md`.

    Raises:
        SkillRootNotFoundError: No candidate, or more than one.
    """
    root = Path(root)
    if (root / SKILL_FILENAME).is_file():
        return root

    try:
        children = sorted(root.iterdir())
    except OSError as e:
        raise SkillRootNotFoundError(f"Unable to read {root}: {e}") from e

    candidates = [
        child
        for child in children
        if not child.name.startswith(".")
        and child.is_dir()
        and (child / SKILL_FILENAME).is_file()
    ]

    if len(candidates) == 1:
        return candidates[0]
    if not candidates:
        raise SkillRootNotFoundError(f"No {SKILL_FILENAME} found in {root}")
    raise SkillRootNotFoundError(
        f"Found {len(candidates)} folders with {SKILL_FILENAME} in {root}; expected exactly one"
    )
