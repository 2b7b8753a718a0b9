"""Local skill aggregator.

`SkillStore` owns the list of skills found under every platform root and
custom path, the current selection and its loaded markdown. Every public
operation is a coroutine; filesystem work runs in worker threads so the owning
event loop is never blocked. All state is mutated from that one loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Set, Union

from .custom_paths import CustomPathStore
from .installer import (
    Extractor,
    cleanup,
    extract_archive,
    install_to_platforms,
    make_temp_dir,
    normalize_destinations,
    prepare_import,
    remove_path,
)
from .models import (
    FAILED,
    IDLE,
    LOADED,
    LOADING,
    MISSING,
    CustomSkillPath,
    ImportCandidate,
    RemoteSkill,
    Skill,
    SkillGroup,
    SkillReference,
)
from .multi_scanner import MultiSkillScanner, discover_custom_path
from .platforms import SkillPlatform
from .scanners.metadata import strip_frontmatter
from .scanners.skills import find_skill_root, skill_id, sort_key

if TYPE_CHECKING:
    from .remote.client import RemoteSkillClient

logger = logging.getLogger(__name__)

# Decides whether a skill is user-authored ("mine") or came from a registry.
SkillClassifier = Callable[[Skill], bool]

# Copies from these platforms win when several platforms hold the same slug.
PREFERRED_PLATFORMS = (SkillPlatform.CODEX, SkillPlatform.CLAUDE)


def registry_classifier(remote_slugs: Iterable[str]) -> SkillClassifier:
    """Treat skills whose slug the registry knows about as not "mine"."""
    known = set(remote_slugs)

    def is_mine(skill: Skill) -> bool:
        return skill.name not in known

    return is_mine


def _everything_is_mine(skill: Skill) -> bool:
    return True


class SkillStore:
    """Scans, groups, selects and mutates locally installed skills."""

    def __init__(
        self,
        home: Optional[Path] = None,
        custom_paths: Optional[CustomPathStore] = None,
        extractor: Extractor = extract_archive,
        is_mine: Optional[SkillClassifier] = None,
        parallel: bool = True,
    ):
        self.home = Path(home) if home else Path.home()
        self.custom_paths = custom_paths
        self.is_mine: SkillClassifier = is_mine or _everything_is_mine
        self._extractor = extractor
        self._parallel = parallel

        self.skills: List[Skill] = []
        self.scan_errors: List[str] = []
        self.list_state = IDLE
        self.list_error: Optional[str] = None

        self.selected_skill_id: Optional[str] = None
        self.detail_state = IDLE
        self.detail_error: Optional[str] = None
        self.selected_markdown = ""

        self.selected_reference_id: Optional[str] = None
        self.reference_state = IDLE
        self.reference_error: Optional[str] = None
        self.selected_reference_markdown = ""

    # ------------------------------------------------------------------
    # Lookups

    @property
    def selected_skill(self) -> Optional[Skill]:
        return self.skill(self.selected_skill_id)

    @property
    def selected_reference(self) -> Optional[SkillReference]:
        skill = self.selected_skill
        if skill is None or self.selected_reference_id is None:
            return None
        return next((r for r in skill.references if r.id == self.selected_reference_id), None)

    def skill(self, skill_id: Optional[str]) -> Optional[Skill]:
        if skill_id is None:
            return None
        return next((s for s in self.skills if s.id == skill_id), None)

    def is_installed(self, slug: str, platform: Optional[SkillPlatform] = None) -> bool:
        return any(
            s.name == slug and not s.is_custom and (platform is None or s.platform == platform)
            for s in self.skills
        )

    def installed_platforms(self, slug: str) -> Set[SkillPlatform]:
        return {
            s.platform
            for s in self.skills
            if s.name == slug and s.platform is not None and not s.is_custom
        }

    def installed_platforms_by_slug(self) -> Dict[str, Set[SkillPlatform]]:
        """Install status of every slug, for joining against remote listings."""
        by_slug: Dict[str, Set[SkillPlatform]] = {}
        for s in self.skills:
            if s.platform is None or s.is_custom:
                continue
            by_slug.setdefault(s.name, set()).add(s.platform)
        return by_slug

    def install_status(self, remote_skills: Iterable[RemoteSkill]) -> Dict[str, Set[SkillPlatform]]:
        installed = self.installed_platforms_by_slug()
        return {r.slug: installed.get(r.slug, set()) for r in remote_skills}

    # ------------------------------------------------------------------
    # Grouping

    def grouped_local_skills(self) -> List[SkillGroup]:
        """Platform-root skills grouped by slug, sorted by display name."""
        buckets: "OrderedDict[str, List[Skill]]" = OrderedDict()
        for s in self.skills:
            if s.is_custom:
                continue
            buckets.setdefault(s.name, []).append(s)
        return self._sorted_groups(self._make_group(slug, members) for slug, members in buckets.items())

    def custom_path_groups(self) -> "OrderedDict[str, List[SkillGroup]]":
        """Custom-path skills grouped per custom path id, then by slug."""
        sections: "OrderedDict[str, OrderedDict[str, List[Skill]]]" = OrderedDict()
        if self.custom_paths is not None:
            for custom_path in self.custom_paths.paths:
                sections[custom_path.id] = OrderedDict()

        for s in self.skills:
            if not s.is_custom:
                continue
            section = sections.setdefault(s.custom_path.id, OrderedDict())
            section.setdefault(s.name, []).append(s)

        grouped: "OrderedDict[str, List[SkillGroup]]" = OrderedDict()
        for path_id, buckets in sections.items():
            grouped[path_id] = self._sorted_groups(
                self._make_group(slug, members) for slug, members in buckets.items()
            )
        return grouped

    def _make_group(self, slug: str, members: List[Skill]) -> SkillGroup:
        preferred = members[0]
        for platform in PREFERRED_PLATFORMS:
            match = next((s for s in members if s.platform == platform), None)
            if match is not None:
                preferred = match
                break

        return SkillGroup(
            slug=slug,
            skills=list(members),
            preferred=preferred,
            installed_platforms={s.platform for s in members if s.platform is not None},
            custom_path=preferred.custom_path,
            is_mine=self.is_mine(preferred),
        )

    @staticmethod
    def _sorted_groups(groups: Iterable[SkillGroup]) -> List[SkillGroup]:
        return sorted(groups, key=lambda g: (sort_key(g.display_name), g.slug))

    # ------------------------------------------------------------------
    # Loading

    async def refresh(self) -> None:
        """Rescan every root and rebuild the skill list from scratch."""
        self.list_state = LOADING
        self.list_error = None
        self.detail_state = IDLE
        self.reference_state = IDLE

        custom = self.custom_paths.paths if self.custom_paths is not None else []
        scanner = MultiSkillScanner(home=self.home, custom_paths=custom)
        try:
            result = await asyncio.to_thread(scanner.scan_all, self._parallel)
        except Exception as e:
            logger.error(f"Skill scan failed: {e}")
            self.list_state = FAILED
            self.list_error = str(e)
            return

        self.skills = sorted(result.skills, key=lambda s: (sort_key(s.display_name), s.id))
        self.scan_errors = result.errors
        self.list_state = LOADED

        if self.selected_skill_id is None or self.skill(self.selected_skill_id) is None:
            self.selected_skill_id = self.skills[0].id if self.skills else None

        await self.load_selected_skill()

    load_skills = refresh

    async def select_skill(self, skill_id: Optional[str]) -> None:
        self.selected_skill_id = skill_id
        await self.load_selected_skill()

    async def load_selected_skill(self) -> None:
        skill = self.selected_skill
        self.selected_reference_id = None
        self.selected_reference_markdown = ""
        self.reference_state = IDLE
        self.reference_error = None

        if skill is None:
            self.detail_state = IDLE
            self.detail_error = None
            self.selected_markdown = ""
            return

        self.detail_state = LOADING
        self.detail_error = None
        state, markdown, error = await self._read_markdown(skill.skill_markdown_path)

        # Selection changed while reading
        if self.selected_skill_id != skill.id:
            return
        self.detail_state, self.selected_markdown, self.detail_error = state, markdown, error

    async def select_reference(self, reference_id: Optional[str]) -> None:
        self.selected_reference_id = reference_id
        await self.load_selected_reference()

    async def load_selected_reference(self) -> None:
        reference = self.selected_reference
        if reference is None:
            self.reference_state = IDLE
            self.reference_error = None
            self.selected_reference_markdown = ""
            return

        self.reference_state = LOADING
        self.reference_error = None
        state, markdown, error = await self._read_markdown(reference.path)

        if self.selected_reference_id != reference.id:
            return
        self.reference_state, self.selected_reference_markdown, self.reference_error = (
            state,
            markdown,
            error,
        )

    @staticmethod
    async def _read_markdown(path: Path):
        """Returns (state, markdown, error message)."""
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return MISSING, "", None
        except (OSError, UnicodeDecodeError) as e:
            return FAILED, "", str(e)
        return LOADED, strip_frontmatter(raw), None

    # ------------------------------------------------------------------
    # Mutations

    async def delete_skills(self, ids: Iterable[str]) -> None:
        """Remove skill folders (best-effort per item), then rescan."""
        for skill_id_ in ids:
            skill = self.skill(skill_id_)
            if skill is None:
                continue
            try:
                await asyncio.to_thread(remove_path, skill.folder_path)
                logger.info(f"Deleted skill {skill.id} at {skill.folder_path}")
            except OSError as e:
                logger.warning(f"Couldn't delete {skill.folder_path}: {e}")
        await self.refresh()

    async def install_remote_skill(
        self,
        skill: RemoteSkill,
        client: "RemoteSkillClient",
        destinations: Iterable[SkillPlatform],
    ) -> None:
        """Download a registry skill and install it into each destination.

        An existing folder with the same slug is replaced. The temporary
        extraction folder and the downloaded archive are always removed.

        Raises:
            NoDestinationError: No destinations were chosen.
            SkillRootNotFoundError: The archive has no unambiguous skill root.
        """
        targets = normalize_destinations(destinations)

        archive = await client.download(skill.slug, skill.latest_version)
        temp_root = make_temp_dir(prefix="skill-install-")
        try:
            await self._extractor(archive, temp_root)
            skill_root = await asyncio.to_thread(find_skill_root, temp_root)
            await asyncio.to_thread(
                install_to_platforms, skill_root, skill.slug, targets, home=self.home
            )
        finally:
            await asyncio.to_thread(cleanup, temp_root, archive)

        await self.refresh()
        await self.select_skill(skill_id(skill.slug, targets[0]))

    async def prepare_import(self, source: Path) -> ImportCandidate:
        return await prepare_import(source, self._extractor)

    async def import_skill(
        self,
        candidate: ImportCandidate,
        destinations: Iterable[SkillPlatform],
    ) -> List[Path]:
        """Copy (or move) a validated candidate into each destination.

        A plain folder imported into exactly one destination is moved; archive
        contents or multi-destination imports are copied. Destination names
        are made unique with `-1`, `-2`, ... suffixes.
        """
        targets = normalize_destinations(destinations)
        move = not candidate.is_temporary and len(targets) == 1

        written = await asyncio.to_thread(
            install_to_platforms,
            candidate.root,
            candidate.folder_name,
            targets,
            home=self.home,
            move=move,
            unique=True,
        )
        await asyncio.to_thread(self.discard_import, candidate)
        await self.refresh()
        return written

    def discard_import(self, candidate: ImportCandidate) -> None:
        if candidate.temporary_root is not None:
            cleanup(candidate.temporary_root)

    # ------------------------------------------------------------------
    # Custom paths

    def preview_custom_path(self, path: Path) -> Dict[SkillPlatform, List[Skill]]:
        return discover_custom_path(Path(path).expanduser())

    async def add_custom_path(self, path: Path) -> CustomSkillPath:
        entry = self._require_custom_paths().add(path)
        await self.refresh()
        return entry

    async def remove_custom_path(self, target: Union[CustomSkillPath, Path, str]) -> None:
        self._require_custom_paths().remove(target)
        await self.refresh()

    def _require_custom_paths(self) -> CustomPathStore:
        if self.custom_paths is None:
            raise RuntimeError("This store was created without a custom path registry")
        return self.custom_paths
