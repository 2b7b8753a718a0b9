"""Install/import/delete mutations for skill folders.

This module performs *real* filesystem changes: extracting archives into
temporary folders, copying or moving skill folders into platform roots and
removing them again. Nothing here is transactional; a failure halfway through
a multi-destination install leaves earlier destinations in place.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence

from .errors import ExtractionError, InvalidImportSourceError, NoDestinationError, SkillRootNotFoundError
from .models import ImportCandidate
from .platforms import SkillPlatform
from .scanners.metadata import format_title
from .scanners.skills import SKILL_FILENAME, find_skill_root

logger = logging.getLogger(__name__)

# async (archive, destination) -> None
Extractor = Callable[[Path, Path], Awaitable[None]]

UNZIP_BINARY = "unzip"


async def extract_archive(archive: Path, destination: Path) -> None:
    """Extract a zip archive with the external `unzip` tool.

    Raises:
        ExtractionError: `unzip` is missing or exits non-zero.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            UNZIP_BINARY,
            "-q",
            "-o",
            str(archive),
            "-d",
            str(destination),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise ExtractionError(f"'{UNZIP_BINARY}' not found; install it to extract skills") from e

    _, stderr = await process.communicate()
    if process.returncode != 0:
        detail = stderr.decode(errors="replace").strip() if stderr else "unknown error"
        raise ExtractionError(f"Unable to extract {archive.name}: {detail}")


def make_temp_dir(prefix: str = "skill-") -> Path:
    return Path(tempfile.mkdtemp(prefix=prefix))


def remove_path(path: Path) -> None:
    """Remove a file, symlink or directory tree."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def cleanup(*paths: Optional[Path]) -> None:
    """Best-effort removal of temporary files and folders."""
    for path in paths:
        if path is None:
            continue
        try:
            remove_path(Path(path))
        except OSError as e:
            logger.warning(f"Couldn't remove temporary path {path}: {e}")


def normalize_destinations(destinations: Iterable[SkillPlatform]) -> List[SkillPlatform]:
    """Deduplicate destinations, keeping the caller's order.

    Raises:
        NoDestinationError: No destination was given.
    """
    ordered: List[SkillPlatform] = []
    for platform in destinations:
        if platform not in ordered:
            ordered.append(platform)
    if not ordered:
        raise NoDestinationError()
    return ordered


def unique_destination(base: Path) -> Path:
    """`base`, or `base-1`, `base-2`, ... whichever doesn't exist yet."""
    if not base.exists() and not base.is_symlink():
        return base

    index = 1
    while True:
        candidate = base.parent / f"{base.name}-{index}"
        if not candidate.exists() and not candidate.is_symlink():
            return candidate
        index += 1


def place_skill(source: Path, destination: Path, *, move: bool = False) -> Path:
    """Copy (or move) a skill folder to `destination`, replacing what's there."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    if destination.exists() or destination.is_symlink():
        remove_path(destination)

    if move:
        try:
            source.rename(destination)
        except OSError:
            shutil.move(str(source), str(destination))
    else:
        shutil.copytree(source, destination, symlinks=True)
    return destination


def install_to_platforms(
    source: Path,
    folder_name: str,
    destinations: Sequence[SkillPlatform],
    *,
    home: Optional[Path] = None,
    move: bool = False,
    unique: bool = False,
) -> List[Path]:
    """Place `source` as `<platform root>/<folder_name>` for each destination.

    Args:
        source: Skill root to copy from.
        folder_name: Destination folder name (the slug).
        destinations: Target platforms, in order.
        home: Home directory the platform roots hang off.
        move: Move instead of copy; only valid for a single destination.
        unique: Pick `name-1`, `name-2`, ... instead of overwriting.

    Returns:
        The written destination paths, in destination order.
    """
    if move and len(destinations) != 1:
        raise ValueError("A skill can only be moved to a single destination")

    written: List[Path] = []
    for platform in destinations:
        platform_root = platform.root(home)
        platform_root.mkdir(parents=True, exist_ok=True)

        target = platform_root / folder_name
        if unique:
            target = unique_destination(target)

        place_skill(source, target, move=move)
        logger.info(f"Installed {folder_name} into {target}")
        written.append(target)
    return written


async def prepare_import(source: Path, extractor: Extractor = extract_archive) -> ImportCandidate:
    """Validate a picked folder or zip and describe what would be imported.

    Zip archives are extracted into a temporary folder which the candidate
    carries; the caller is responsible for discarding it.

    Raises:
        InvalidImportSourceError: Neither a folder nor a `.zip` file.
        SkillRootNotFoundError: No unambiguous `SKILL.md` folder inside.
        ExtractionError: The archive couldn't be extracted.
    """
    source = Path(source).expanduser().absolute()

    if source.is_dir():
        return await asyncio.to_thread(_build_candidate, source, None, source)

    if source.suffix.lower() != ".zip" or not source.is_file():
        raise InvalidImportSourceError("Select a folder or .zip file.")

    temp_root = make_temp_dir(prefix="skill-import-")
    try:
        await extractor(source, temp_root)
        return await asyncio.to_thread(_build_candidate, temp_root, temp_root, source)
    except BaseException:
        await asyncio.to_thread(cleanup, temp_root)
        raise


def _build_candidate(root: Path, temporary_root: Optional[Path], source: Path) -> ImportCandidate:
    skill_root = find_skill_root(root)
    skill_file = skill_root / SKILL_FILENAME
    try:
        markdown = skill_file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SkillRootNotFoundError(f"Unable to read {skill_file}: {e}") from e

    return ImportCandidate(
        root=skill_root,
        skill_file=skill_file,
        skill_name=format_title(skill_root.name if skill_root != temporary_root else source.stem),
        markdown=markdown,
        temporary_root=temporary_root,
        source=source,
    )


async def read_archive_markdown(archive: Path, extractor: Extractor = extract_archive) -> str:
    """Extract an archive to a scratch folder and return its raw `SKILL.md`."""
    temp_root = make_temp_dir(prefix="skill-preview-")
    try:
        await extractor(archive, temp_root)
        skill_root = await asyncio.to_thread(find_skill_root, temp_root)
        return await asyncio.to_thread(
            (skill_root / SKILL_FILENAME).read_text, encoding="utf-8"
        )
    finally:
        await asyncio.to_thread(cleanup, temp_root)
