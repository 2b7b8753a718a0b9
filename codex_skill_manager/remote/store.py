"""Remote skill aggregator.

`RemoteSkillStore` keeps the registry's latest skills, the current search
results and the selected skill's detail. Superseded searches and detail loads
are not cancelled; their results are simply discarded when they come back
after a newer request or a selection change.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, List, Optional

from ..errors import SkillManagerError
from ..installer import Extractor, cleanup, extract_archive, read_archive_markdown
from ..models import (
    CACHED_REFRESHING,
    FAILED,
    IDLE,
    LOADED,
    LOADING,
    CachedSkillDetail,
    RemoteSkill,
    RemoteSkillOwner,
)
from ..scanners.metadata import strip_frontmatter
from .cache import RemoteSkillDetailCache

if TYPE_CHECKING:
    from .client import RemoteSkillClient

logger = logging.getLogger(__name__)

DEFAULT_LATEST_LIMIT = 12
DEFAULT_SEARCH_LIMIT = 20
DEFAULT_SEARCH_DEBOUNCE = 0.3


class RemoteSkillStore:
    """Latest list, search-as-you-type and stale-while-revalidate detail."""

    def __init__(
        self,
        client: "RemoteSkillClient",
        cache: Optional[RemoteSkillDetailCache] = None,
        extractor: Extractor = extract_archive,
    ):
        self.client = client
        self.detail_cache = cache if cache is not None else RemoteSkillDetailCache()
        self._extractor = extractor

        self.latest_skills: List[RemoteSkill] = []
        self.latest_state = IDLE
        self.latest_error: Optional[str] = None

        self.search_results: List[RemoteSkill] = []
        self.search_state = IDLE
        self.search_error: Optional[str] = None
        self._search_token = 0
        self._search_query = ""
        self._pending_search: Optional[asyncio.Task] = None

        self.selected_skill_id: Optional[str] = None
        self.detail_state = IDLE
        self.detail_error: Optional[str] = None
        self.detail_markdown = ""
        self.detail_owner: Optional[RemoteSkillOwner] = None
        self._detail_token = 0

    @property
    def selected_skill(self) -> Optional[RemoteSkill]:
        if self.selected_skill_id is None:
            return None
        for skill in self.search_results + self.latest_skills:
            if skill.id == self.selected_skill_id:
                return skill
        return None

    @property
    def active_query(self) -> str:
        return self._search_query

    async def load_latest(self, limit: int = DEFAULT_LATEST_LIMIT) -> None:
        self.latest_state = LOADING
        self.latest_error = None
        try:
            self.latest_skills = await self.client.fetch_latest(limit)
            self.latest_state = LOADED
        except SkillManagerError as e:
            self.latest_state = FAILED
            self.latest_error = str(e)

    async def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> None:
        """Search the registry, ignoring responses that a newer call superseded."""
        trimmed = query.strip()
        self._search_query = trimmed
        self._search_token += 1
        token = self._search_token

        if not trimmed:
            self.search_results = []
            self.search_state = IDLE
            self.search_error = None
            return

        self.search_state = LOADING
        self.search_error = None
        try:
            results = await self.client.search(trimmed, limit)
        except SkillManagerError as e:
            if token != self._search_token:
                return
            self.search_state = FAILED
            self.search_error = str(e)
            return

        if token != self._search_token or self._search_query != trimmed:
            logger.debug(f"Discarding superseded search results for {trimmed!r}")
            return
        self.search_results = results
        self.search_state = LOADED

    def search_debounced(
        self,
        query: str,
        delay: float = DEFAULT_SEARCH_DEBOUNCE,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> asyncio.Task:
        """Schedule a search after `delay` seconds, cancelling the previous one.

        Must be called from the event loop that owns this store.
        """
        self.cancel_pending_search()

        async def run() -> None:
            await asyncio.sleep(delay)
            await self.search(query, limit)

        self._pending_search = asyncio.ensure_future(run())
        return self._pending_search

    def cancel_pending_search(self) -> None:
        if self._pending_search is not None and not self._pending_search.done():
            self._pending_search.cancel()
        self._pending_search = None

    async def select_skill(self, skill_id: Optional[str]) -> None:
        self.selected_skill_id = skill_id
        await self.load_selected_skill()

    async def load_selected_skill(self) -> None:
        skill = self.selected_skill
        if skill is None:
            self.detail_state = IDLE
            self.detail_error = None
            self.detail_markdown = ""
            self.detail_owner = None
            return

        self._detail_token += 1
        token = self._detail_token

        cached = self.detail_cache.get(skill.slug, skill.latest_version)
        had_cache = cached is not None
        if had_cache:
            self.detail_markdown = cached.markdown
            self.detail_owner = cached.owner
            self.detail_state = CACHED_REFRESHING
        else:
            self.detail_state = LOADING
            self.detail_markdown = ""
            self.detail_owner = None
        self.detail_error = None

        try:
            owner = await self.client.fetch_detail(skill.slug)
            markdown = await self._fetch_markdown(skill)
        except (SkillManagerError, OSError, UnicodeDecodeError) as e:
            if token != self._detail_token or skill.id != self.selected_skill_id:
                return
            if had_cache:
                logger.debug(f"Refresh of {skill.slug} failed, keeping cached detail: {e}")
                self.detail_state = LOADED
            else:
                self.detail_state = FAILED
                self.detail_error = str(e)
                self.detail_markdown = ""
            return

        if token != self._detail_token or skill.id != self.selected_skill_id:
            logger.debug(f"Discarding superseded detail for {skill.slug}")
            return

        self.detail_cache.set(
            CachedSkillDetail(markdown=markdown, owner=owner),
            skill.slug,
            skill.latest_version,
        )
        self.detail_owner = owner
        self.detail_markdown = markdown
        self.detail_state = LOADED

    async def _fetch_markdown(self, skill: RemoteSkill) -> str:
        archive = await self.client.download(skill.slug, skill.latest_version)
        try:
            raw = await read_archive_markdown(archive, self._extractor)
        finally:
            await asyncio.to_thread(cleanup, archive)
        return strip_frontmatter(raw)
