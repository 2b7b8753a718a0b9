"""Multi-platform scanner - merges skills from every platform root and custom path."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .models import CustomSkillPath, ScanResult, Skill
from .platforms import SkillPlatform
from .scanners.skills import SkillScanner

logger = logging.getLogger(__name__)

# (skills dir, platform, custom path) for one SkillScanner run
ScanJob = Tuple[Path, SkillPlatform, Optional[CustomSkillPath]]


class MultiSkillScanner:
    """Scan all platform roots plus custom paths into a single ScanResult."""

    def __init__(
        self,
        home: Optional[Path] = None,
        custom_paths: Sequence[CustomSkillPath] = (),
        max_workers: int = 4,
    ):
        self._home = Path(home) if home else Path.home()
        self._custom_paths = list(custom_paths)
        self._max_workers = max_workers

    def scan_all(self, parallel: bool = True) -> ScanResult:
        """Scan every root.

        Args:
            parallel: If True, scan roots concurrently in a thread pool.

        Returns:
            ScanResult with skills in job order (platform roots first, then
            custom paths) and any per-root error messages.
        """
        errors: List[str] = []
        jobs = self.jobs()

        if parallel and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
                futures = [executor.submit(self._safe_scan, job, errors) for job in jobs]
                batches = [future.result() for future in futures]
        else:
            batches = [self._safe_scan(job, errors) for job in jobs]

        skills: List[Skill] = []
        for batch in batches:
            skills.extend(batch)

        return ScanResult(skills=skills, scan_time=datetime.now(), errors=errors)

    def jobs(self) -> List[ScanJob]:
        jobs: List[ScanJob] = [
            (platform.root(self._home), platform, None) for platform in SkillPlatform
        ]
        for custom_path in self._custom_paths:
            for platform in discover_platforms(custom_path.path):
                jobs.append((platform.root_in(custom_path.path), platform, custom_path))
        return jobs

    def _safe_scan(self, job: ScanJob, errors: List[str]) -> List[Skill]:
        """Wrapper to catch and record scanner errors"""
        skills_dir, platform, custom_path = job
        scanner = SkillScanner(skills_dir, platform=platform, custom_path=custom_path)
        try:
            skills = scanner.scan()
        except OSError as e:
            error_msg = f"[{platform.storage_key}] Error scanning {skills_dir}: {e}"
            logger.warning(error_msg)
            errors.append(error_msg)
            return []
        errors.extend(scanner.errors)
        return skills


def discover_platforms(base: Path) -> List[SkillPlatform]:
    """Platforms whose skills folder exists under `base`, in declared order."""
    return [platform for platform in SkillPlatform if platform.root_in(base).is_dir()]


def discover_custom_path(base: Path) -> Dict[SkillPlatform, List[Skill]]:
    """Preview the skills a custom path would contribute, per platform."""
    discovered: Dict[SkillPlatform, List[Skill]] = {}
    for platform in discover_platforms(base):
        try:
            skills = SkillScanner(platform.root_in(base), platform=platform).scan()
        except OSError as e:
            logger.warning(f"Error previewing {platform.root_in(base)}: {e}")
            continue
        if skills:
            discovered[platform] = skills
    return discovered
