"""Transport-level HTTP cache for registry requests.

`CachingTransport` wraps another `httpx.AsyncBaseTransport` and keeps
successful GET responses in a two-tier `HTTPResponseCache`: a byte-bounded
LRU in memory and a byte-bounded directory on disk. Fresh entries are served
without touching the network; stale entries with validators are revalidated
with conditional requests.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, replace
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

DEFAULT_MEMORY_CAPACITY = 10 * 1024 * 1024
DEFAULT_DISK_CAPACITY = 50 * 1024 * 1024

# Entries bigger than this share of a tier's capacity skip that tier.
_MAX_ENTRY_FRACTION = 20

_MAX_AGE_RE = re.compile(r"max-age\s*=\s*(\d+)", re.I)

# Headers a 304 may update on the stored entry
_REVALIDATION_HEADERS = ("cache-control", "date", "etag", "expires", "last-modified")


def _parse_http_date(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError, IndexError):
        return None


@dataclass(frozen=True)
class CachedResponse:
    """A stored response body (raw, still content-encoded) plus its headers."""

    url: str
    status_code: int
    headers: List[Tuple[str, str]]
    content: bytes
    stored_at: float

    @property
    def size(self) -> int:
        return len(self.content)

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def freshness_lifetime(self) -> float:
        """Seconds the entry may be served without revalidation."""
        cache_control = (self.header("cache-control") or "").lower()
        if "no-cache" in cache_control:
            return 0.0

        match = _MAX_AGE_RE.search(cache_control)
        if match:
            return float(match.group(1))

        date = _parse_http_date(self.header("date")) or self.stored_at
        expires = _parse_http_date(self.header("expires"))
        if expires is not None:
            return max(0.0, expires - date)

        # Heuristic freshness: 10% of the time since the last modification
        last_modified = _parse_http_date(self.header("last-modified"))
        if last_modified is not None and date > last_modified:
            return (date - last_modified) / 10.0
        return 0.0

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.freshness_lifetime()

    def validators(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        etag = self.header("etag")
        if etag:
            headers["If-None-Match"] = etag
        last_modified = self.header("last-modified")
        if last_modified:
            headers["If-Modified-Since"] = last_modified
        return headers

    def revalidated(self, headers: httpx.Headers, stored_at: float) -> "CachedResponse":
        """Copy of this entry with the freshness headers of a 304 merged in."""
        updates = {
            key.lower(): value
            for key, value in headers.multi_items()
            if key.lower() in _REVALIDATION_HEADERS
        }
        merged = [(k, v) for k, v in self.headers if k.lower() not in updates]
        merged.extend(updates.items())
        return replace(self, headers=merged, stored_at=stored_at)

    def to_response(self, request: httpx.Request, from_cache: bool = True) -> httpx.Response:
        return httpx.Response(
            self.status_code,
            headers=self.headers,
            content=self.content,
            request=request,
            extensions={"from_cache": from_cache},
        )


class HTTPResponseCache:
    """Byte-bounded memory + disk store of `CachedResponse` objects."""

    def __init__(
        self,
        directory: Optional[Path] = None,
        memory_capacity: int = DEFAULT_MEMORY_CAPACITY,
        disk_capacity: int = DEFAULT_DISK_CAPACITY,
    ):
        self.directory = Path(directory) if directory else None
        self.memory_capacity = memory_capacity
        self.disk_capacity = disk_capacity

        self._memory: "OrderedDict[str, CachedResponse]" = OrderedDict()
        self._memory_bytes = 0
        self._lock = threading.Lock()

    @staticmethod
    def key_for(url: str) -> str:
        return hashlib.sha256(url.encode("utf-8")).hexdigest()

    def get(self, url: str) -> Optional[CachedResponse]:
        key = self.key_for(url)
        with self._lock:
            entry = self._memory.get(key)
            if entry is not None:
                self._memory.move_to_end(key)
                return entry

            entry = self._read_disk(key)
            if entry is not None:
                self._store_memory(key, entry)
            return entry

    def put(self, entry: CachedResponse) -> None:
        key = self.key_for(entry.url)
        with self._lock:
            self._store_memory(key, entry)
            self._write_disk(key, entry)

    def clear(self) -> None:
        with self._lock:
            self._memory.clear()
            self._memory_bytes = 0
            if self.directory is not None and self.directory.is_dir():
                for path in self.directory.iterdir():
                    if path.suffix in {".json", ".body"}:
                        path.unlink(missing_ok=True)

    @property
    def memory_bytes(self) -> int:
        return self._memory_bytes

    def disk_bytes(self) -> int:
        if self.directory is None or not self.directory.is_dir():
            return 0
        return sum(p.stat().st_size for p in self.directory.glob("*.body"))

    # -- memory tier -----------------------------------------------------

    def _store_memory(self, key: str, entry: CachedResponse) -> None:
        old = self._memory.pop(key, None)
        if old is not None:
            self._memory_bytes -= old.size

        if entry.size > self.memory_capacity // _MAX_ENTRY_FRACTION:
            return

        self._memory[key] = entry
        self._memory_bytes += entry.size
        while self._memory_bytes > self.memory_capacity and self._memory:
            _, evicted = self._memory.popitem(last=False)
            self._memory_bytes -= evicted.size

    # -- disk tier -------------------------------------------------------

    def _read_disk(self, key: str) -> Optional[CachedResponse]:
        if self.directory is None:
            return None
        meta_path = self.directory / f"{key}.json"
        body_path = self.directory / f"{key}.body"
        try:
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
            content = body_path.read_bytes()
            body_path.touch()
        except (OSError, ValueError):
            return None

        try:
            return CachedResponse(
                url=meta["url"],
                status_code=int(meta["status_code"]),
                headers=[(str(k), str(v)) for k, v in meta["headers"]],
                content=content,
                stored_at=float(meta["stored_at"]),
            )
        except (KeyError, TypeError, ValueError):
            return None

    def _write_disk(self, key: str, entry: CachedResponse) -> None:
        if self.directory is None:
            return
        if entry.size > self.disk_capacity // _MAX_ENTRY_FRACTION:
            return

        meta = {
            "url": entry.url,
            "status_code": entry.status_code,
            "headers": entry.headers,
            "stored_at": entry.stored_at,
        }
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            (self.directory / f"{key}.body").write_bytes(entry.content)
            (self.directory / f"{key}.json").write_text(json.dumps(meta), encoding="utf-8")
            self._trim_disk()
        except OSError as e:
            logger.warning(f"Couldn't write HTTP cache entry for {entry.url}: {e}")

    def _trim_disk(self) -> None:
        bodies = sorted(self.directory.glob("*.body"), key=lambda p: p.stat().st_mtime)
        total = sum(p.stat().st_size for p in bodies)
        for body in bodies:
            if total <= self.disk_capacity:
                break
            total -= body.stat().st_size
            body.unlink(missing_ok=True)
            body.with_suffix(".json").unlink(missing_ok=True)


class CachingTransport(httpx.AsyncBaseTransport):
    """Serve repeated GETs from an `HTTPResponseCache` when allowed."""

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport,
        cache: HTTPResponseCache,
        clock: Callable[[], float] = time.time,
    ):
        self._transport = transport
        self.cache = cache
        self._clock = clock

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if request.method != "GET" or "no-store" in request.headers.get("cache-control", ""):
            return await self._transport.handle_async_request(request)

        url = str(request.url)
        entry = await asyncio.to_thread(self.cache.get, url)
        now = self._clock()

        if entry is not None and entry.is_fresh(now):
            logger.debug(f"HTTP cache hit: {url}")
            return entry.to_response(request)

        if entry is not None:
            for name, value in entry.validators().items():
                request.headers[name] = value

        response = await self._transport.handle_async_request(request)

        if response.status_code == 304 and entry is not None:
            await response.aclose()
            logger.debug(f"HTTP cache revalidated: {url}")
            entry = entry.revalidated(response.headers, now)
            await asyncio.to_thread(self.cache.put, entry)
            return entry.to_response(request)

        if not 200 <= response.status_code < 300:
            return response
        if "no-store" in response.headers.get("cache-control", "").lower():
            return response

        chunks = []
        async for chunk in response.stream:
            chunks.append(chunk)
        await response.aclose()

        entry = CachedResponse(
            url=url,
            status_code=response.status_code,
            headers=list(response.headers.multi_items()),
            content=b"".join(chunks),
            stored_at=now,
        )
        await asyncio.to_thread(self.cache.put, entry)
        return entry.to_response(request, from_cache=False)

    async def aclose(self) -> None:
        await self._transport.aclose()
