"""Persisted registry of user-added skill roots."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Union

from .errors import CustomPathNotFoundError, DuplicateCustomPathError
from .models import CustomSkillPath

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "custom-paths.json"


class CustomPathStore:
    """Keeps the list of custom paths in a JSON file.

    Loading is best-effort: a missing or corrupt file yields an empty list.
    """

    def __init__(self, config_path: Path):
        self.config_path = Path(config_path)
        self._paths: List[CustomSkillPath] = self._load()

    @property
    def paths(self) -> List[CustomSkillPath]:
        return list(self._paths)

    def add(self, path: Path) -> CustomSkillPath:
        """Register a new root.

        Raises:
            CustomPathNotFoundError: The path doesn't exist.
            DuplicateCustomPathError: The same absolute path is already registered.
        """
        path = Path(path).expanduser().absolute()
        if not path.exists():
            raise CustomPathNotFoundError(path)
        if any(existing.path == path for existing in self._paths):
            raise DuplicateCustomPathError(path)

        entry = CustomSkillPath(path=path)
        self._paths.append(entry)
        self._save()
        logger.info(f"Added custom skill path {path}")
        return entry

    def remove(self, target: Union[CustomSkillPath, Path, str]) -> int:
        """Remove an entry (by identity) or every entry at a path.

        Returns:
            Number of entries removed.
        """
        before = len(self._paths)
        if isinstance(target, CustomSkillPath):
            self._paths = [p for p in self._paths if p.id != target.id]
        else:
            path = Path(target).expanduser().absolute()
            self._paths = [p for p in self._paths if p.path != path]

        removed = before - len(self._paths)
        self._save()
        return removed

    def _load(self) -> List[CustomSkillPath]:
        try:
            data = json.loads(self.config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return []

        if not isinstance(data, list):
            return []

        paths: List[CustomSkillPath] = []
        for item in data:
            try:
                paths.append(CustomSkillPath.from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Ignoring malformed custom path entry: {item!r}")
        return paths

    def _save(self) -> None:
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([p.to_dict() for p in self._paths], indent=2)

        fd, tmp_name = tempfile.mkstemp(
            dir=self.config_path.parent, prefix=".custom-paths-", suffix=".json"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload + "\n")
            os.replace(tmp_name, self.config_path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
