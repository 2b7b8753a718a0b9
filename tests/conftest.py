"""Shared pytest fixtures for skill manager tests."""

import zipfile
from pathlib import Path
from typing import Dict, Iterable, Optional

import pytest

from codex_skill_manager.platforms import SkillPlatform


def write_skill(
    root: Path,
    name: str,
    description: Optional[str] = None,
    title: Optional[str] = None,
    body: str = "Use this skill.\n",
    references: Iterable[str] = (),
    assets: Iterable[str] = (),
) -> Path:
    """Create `<root>/<name>/SKILL.md` plus optional subfolder entries."""
    skill_dir = root / name
    skill_dir.mkdir(parents=True, exist_ok=True)

    lines = ["---", f"name: {title or name}"]
    if description is not None:
        lines.append(f"description: {description}")
    lines.append("---")
    (skill_dir / "SKILL.md").write_text("\n".join(lines) + "\n\n" + body)

    for ref in references:
        ref_dir = skill_dir / "references"
        ref_dir.mkdir(exist_ok=True)
        (ref_dir / ref).write_text(f"# {ref}\n")

    for asset in assets:
        asset_dir = skill_dir / "assets"
        asset_dir.mkdir(exist_ok=True)
        (asset_dir / asset).write_bytes(b"\x00")

    return skill_dir


def build_zip(path: Path, files: Dict[str, str]) -> Path:
    """Write a zip archive with the given `{archive name: text}` members."""
    with zipfile.ZipFile(path, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return path


async def zip_extractor(archive: Path, destination: Path) -> None:
    """In-process stand-in for the `unzip` child process."""
    with zipfile.ZipFile(archive) as zf:
        zf.extractall(destination)


@pytest.fixture
def mock_home(tmp_path: Path) -> Path:
    """Create a home directory with empty Codex and Claude skill roots."""
    home = tmp_path / "home"
    SkillPlatform.CODEX.root(home).mkdir(parents=True)
    SkillPlatform.CLAUDE.root(home).mkdir(parents=True)
    return home


@pytest.fixture
def make_skill():
    return write_skill


@pytest.fixture
def skill_zip(tmp_path: Path) -> Path:
    """A registry-style archive with one nested skill folder."""
    return build_zip(
        tmp_path / "pdf-tools.zip",
        {
            "pdf-tools/SKILL.md": "---\nname: pdf-tools\ndescription: Work with PDFs\n---\n\n# PDF Tools\n\nMerge and split.\n",
            "pdf-tools/references/api.md": "# API\n",
        },
    )


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def make_zip():
    return build_zip


@pytest.fixture
def extractor():
    return zip_extractor
