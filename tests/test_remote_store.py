"""Tests for RemoteSkillStore search, detail loading and caching."""

import asyncio
import shutil
from pathlib import Path
from typing import Dict, List

import pytest

from codex_skill_manager.errors import BadResponseError
from codex_skill_manager.models import (
    CACHED_REFRESHING,
    FAILED,
    IDLE,
    LOADED,
    LOADING,
    CachedSkillDetail,
    RemoteSkill,
    RemoteSkillOwner,
)
from codex_skill_manager.remote.cache import RemoteSkillDetailCache
from codex_skill_manager.remote.store import RemoteSkillStore

PDF = RemoteSkill(slug="pdf-tools", display_name="PDF Tools", latest_version="1.0.0")
OTHER = RemoteSkill(slug="other", display_name="Other", latest_version="0.1.0")
OWNER = RemoteSkillOwner(handle="jane", display_name="Jane")


class FakeRegistry:
    """Registry double whose calls can be held open with events."""

    def __init__(self, archive: Path, tmp_dir: Path):
        self.archive = archive
        self.tmp_dir = tmp_dir
        self.latest: List[RemoteSkill] = [PDF, OTHER]
        self.results: Dict[str, List[RemoteSkill]] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.queries: List[str] = []
        self.fail_search = False
        self.fail_detail = False
        self.downloads: List[Path] = []

    async def fetch_latest(self, limit=12):
        return self.latest[:limit]

    async def search(self, query, limit=20):
        self.queries.append(query)
        gate = self.gates.get(query)
        if gate is not None:
            await gate.wait()
        if self.fail_search:
            raise BadResponseError("search is down", status_code=500)
        return self.results.get(query, [])

    async def fetch_detail(self, slug):
        gate = self.gates.get(f"detail:{slug}")
        if gate is not None:
            await gate.wait()
        if self.fail_detail:
            raise BadResponseError("detail is down")
        return OWNER

    async def download(self, slug, version=None):
        target = self.tmp_dir / f"{slug}-{len(self.downloads)}.zip"
        shutil.copy(self.archive, target)
        self.downloads.append(target)
        return target


@pytest.fixture
def registry(skill_zip: Path, tmp_path: Path) -> FakeRegistry:
    downloads = tmp_path / "downloads"
    downloads.mkdir()
    return FakeRegistry(skill_zip, downloads)


@pytest.fixture
def cache() -> RemoteSkillDetailCache:
    return RemoteSkillDetailCache(capacity=5)


@pytest.fixture
def store(registry: FakeRegistry, cache: RemoteSkillDetailCache, extractor) -> RemoteSkillStore:
    return RemoteSkillStore(registry, cache, extractor=extractor)


class TestLatest:
    @pytest.mark.asyncio
    async def test_load_latest(self, store: RemoteSkillStore):
        await store.load_latest(limit=1)
        assert store.latest_state == LOADED
        assert store.latest_skills == [PDF]

    @pytest.mark.asyncio
    async def test_load_latest_failure(self, store: RemoteSkillStore, registry: FakeRegistry):
        async def broken(limit=12):
            raise BadResponseError("offline")

        registry.fetch_latest = broken
        await store.load_latest()

        assert store.latest_state == FAILED
        assert store.latest_error == "offline"


class TestSearch:
    @pytest.mark.asyncio
    async def test_results_are_applied(self, store: RemoteSkillStore, registry: FakeRegistry):
        registry.results["pdf"] = [PDF]
        await store.search("  pdf  ")

        assert registry.queries == ["pdf"]
        assert store.search_state == LOADED
        assert store.search_results == [PDF]

    @pytest.mark.asyncio
    async def test_blank_query_clears(self, store: RemoteSkillStore, registry: FakeRegistry):
        registry.results["pdf"] = [PDF]
        await store.search("pdf")
        await store.search("   ")

        assert store.search_results == []
        assert store.search_state == IDLE
        assert registry.queries == ["pdf"]

    @pytest.mark.asyncio
    async def test_late_response_does_not_overwrite_newer_query(self, store: RemoteSkillStore, registry: FakeRegistry):
        registry.results = {"a": [OTHER], "ab": [PDF]}
        registry.gates["a"] = asyncio.Event()
        registry.gates["ab"] = asyncio.Event()

        first = asyncio.ensure_future(store.search("a"))
        second = asyncio.ensure_future(store.search("ab"))
        await asyncio.sleep(0)

        registry.gates["ab"].set()
        await second
        assert store.search_results == [PDF]

        registry.gates["a"].set()
        await first
        assert store.search_results == [PDF]
        assert store.search_state == LOADED

    @pytest.mark.asyncio
    async def test_stale_response_arriving_first_is_ignored(self, store: RemoteSkillStore, registry: FakeRegistry):
        registry.results = {"a": [OTHER], "ab": [PDF]}
        registry.gates["a"] = asyncio.Event()
        registry.gates["ab"] = asyncio.Event()

        first = asyncio.ensure_future(store.search("a"))
        second = asyncio.ensure_future(store.search("ab"))
        await asyncio.sleep(0)

        registry.gates["a"].set()
        await first
        assert store.search_results == []
        assert store.search_state == LOADING

        registry.gates["ab"].set()
        await second
        assert store.search_results == [PDF]

    @pytest.mark.asyncio
    async def test_failure_of_current_search(self, store: RemoteSkillStore, registry: FakeRegistry):
        registry.fail_search = True
        await store.search("pdf")

        assert store.search_state == FAILED
        assert store.search_error == "search is down"

    @pytest.mark.asyncio
    async def test_failure_of_superseded_search_is_ignored(self, store: RemoteSkillStore, registry: FakeRegistry):
        registry.gates["a"] = asyncio.Event()
        registry.results["ab"] = [PDF]
        first = asyncio.ensure_future(store.search("a"))
        await asyncio.sleep(0)
        await store.search("ab")

        registry.fail_search = True
        registry.gates["a"].set()
        await first

        assert store.search_state == LOADED
        assert store.search_results == [PDF]

    @pytest.mark.asyncio
    async def test_debounce_only_sends_last_query(self, store: RemoteSkillStore, registry: FakeRegistry):
        registry.results["pdf"] = [PDF]

        first = store.search_debounced("p", delay=0.05)
        store.search_debounced("pd", delay=0.05)
        last = store.search_debounced("pdf", delay=0.05)
        await last

        assert first.cancelled()
        assert registry.queries == ["pdf"]
        assert store.search_results == [PDF]

    @pytest.mark.asyncio
    async def test_cancel_pending_search(self, store: RemoteSkillStore, registry: FakeRegistry):
        task = store.search_debounced("pdf", delay=0.05)
        store.cancel_pending_search()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert registry.queries == []


class TestDetail:
    @pytest.mark.asyncio
    async def test_load_without_cache(self, store: RemoteSkillStore, cache: RemoteSkillDetailCache, registry: FakeRegistry):
        await store.load_latest()
        await store.select_skill("pdf-tools")

        assert store.detail_state == LOADED
        assert store.detail_owner == OWNER
        assert store.detail_markdown.strip().startswith("# PDF Tools")
        assert "description:" not in store.detail_markdown
        assert cache.get("pdf-tools", "1.0.0").markdown == store.detail_markdown
        assert all(not p.exists() for p in registry.downloads)

    @pytest.mark.asyncio
    async def test_cached_detail_shown_while_refreshing(self, store: RemoteSkillStore, cache: RemoteSkillDetailCache, registry: FakeRegistry):
        cache.set(CachedSkillDetail(markdown="cached", owner=None), "pdf-tools", "1.0.0")
        registry.gates["detail:pdf-tools"] = asyncio.Event()
        await store.load_latest()

        task = asyncio.ensure_future(store.select_skill("pdf-tools"))
        await asyncio.sleep(0)
        assert store.detail_state == CACHED_REFRESHING
        assert store.detail_markdown == "cached"

        registry.gates["detail:pdf-tools"].set()
        await task
        assert store.detail_state == LOADED
        assert store.detail_markdown != "cached"
        assert store.detail_owner == OWNER

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_cached_detail(self, store: RemoteSkillStore, cache: RemoteSkillDetailCache, registry: FakeRegistry):
        cache.set(CachedSkillDetail(markdown="cached", owner=OWNER), "pdf-tools", "1.0.0")
        registry.fail_detail = True
        await store.load_latest()

        await store.select_skill("pdf-tools")

        assert store.detail_state == LOADED
        assert store.detail_markdown == "cached"
        assert store.detail_error is None

    @pytest.mark.asyncio
    async def test_failure_without_cache(self, store: RemoteSkillStore, registry: FakeRegistry):
        registry.fail_detail = True
        await store.load_latest()

        await store.select_skill("pdf-tools")

        assert store.detail_state == FAILED
        assert store.detail_error == "detail is down"
        assert store.detail_markdown == ""

    @pytest.mark.asyncio
    async def test_selection_change_discards_result(self, store: RemoteSkillStore, cache: RemoteSkillDetailCache, registry: FakeRegistry):
        registry.gates["detail:pdf-tools"] = asyncio.Event()
        await store.load_latest()

        slow = asyncio.ensure_future(store.select_skill("pdf-tools"))
        await asyncio.sleep(0)
        await store.select_skill("other")
        assert store.detail_state == LOADED
        other_markdown = store.detail_markdown

        registry.gates["detail:pdf-tools"].set()
        await slow

        assert store.selected_skill_id == "other"
        assert store.detail_markdown == other_markdown
        assert cache.get("pdf-tools", "1.0.0") is None

    @pytest.mark.asyncio
    async def test_search_results_take_precedence(self, store: RemoteSkillStore, registry: FakeRegistry):
        newer = RemoteSkill(slug="pdf-tools", display_name="PDF Tools", latest_version="2.0.0")
        registry.results["pdf"] = [newer]
        await store.load_latest()
        await store.search("pdf")

        store.selected_skill_id = "pdf-tools"
        assert store.selected_skill == newer

    @pytest.mark.asyncio
    async def test_no_selection_is_idle(self, store: RemoteSkillStore):
        await store.select_skill("not-listed")
        assert store.detail_state == IDLE
        assert store.detail_markdown == ""

    @pytest.mark.asyncio
    async def test_overlapping_failed_refreshes_keep_cached_detail(self, store: RemoteSkillStore, cache: RemoteSkillDetailCache, registry: FakeRegistry):
        cache.set(CachedSkillDetail(markdown="cached", owner=OWNER), "pdf-tools", "1.0.0")
        await store.load_latest()
        gates = [asyncio.Event(), asyncio.Event()]
        pending = list(gates)

        async def failing_detail(slug):
            gate = pending.pop(0)
            await gate.wait()
            raise BadResponseError(f"refresh {len(pending)} failed")

        registry.fetch_detail = failing_detail

        first = asyncio.ensure_future(store.select_skill("pdf-tools"))
        await asyncio.sleep(0)
        second = asyncio.ensure_future(store.load_selected_skill())
        await asyncio.sleep(0)

        gates[1].set()
        await second
        assert store.detail_state == LOADED
        assert store.detail_markdown == "cached"

        gates[0].set()
        await first
        assert store.detail_state == LOADED
        assert store.detail_markdown == "cached"
        assert store.detail_error is None
