"""Bounded in-memory cache of remote skill details."""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Optional

from ..models import CachedSkillDetail

DEFAULT_CAPACITY = 50


class RemoteSkillDetailCache:
    """Markdown + owner per `(slug, version)`, evicting least recently used.

    Safe to share between threads; reads have no side effects beyond
    refreshing an entry's recency.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: "OrderedDict[str, CachedSkillDetail]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, slug: str, version: Optional[str] = None) -> Optional[CachedSkillDetail]:
        key = self.cache_key(slug, version)
        with self._lock:
            detail = self._entries.get(key)
            if detail is not None:
                self._entries.move_to_end(key)
            return detail

    def set(self, detail: CachedSkillDetail, slug: str, version: Optional[str] = None) -> None:
        key = self.cache_key(slug, version)
        with self._lock:
            self._entries[key] = detail
            self._entries.move_to_end(key)
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @staticmethod
    def cache_key(slug: str, version: Optional[str] = None) -> str:
        return f"{slug}:{version or 'latest'}"
