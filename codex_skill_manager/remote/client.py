"""Clawdhub registry client.

This module provides `RemoteSkillClient`, a small typed facade over the
registry's REST API: latest skills, search, owner detail, latest version and
archive download. All requests share one `httpx.AsyncClient` whose transport
can be wrapped with the on-disk HTTP cache.

Example usage:
    ```python
    async with RemoteSkillClient() as client:
        for skill in await client.search("commit message"):
            print(f"{skill.slug}: {skill.summary}")
    ```
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from ..errors import BadResponseError, DecodeError
from ..models import RemoteSkill, RemoteSkillOwner
from .http_cache import CachingTransport, HTTPResponseCache

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://clawdhub.com"
DEFAULT_TIMEOUT = 30.0


def _from_millis(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError) as e:
        raise DecodeError(f"Invalid timestamp: {value!r}") from e


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _optional_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def decode_list_item(item: Dict[str, Any]) -> RemoteSkill:
    """Decode one `items[]` entry of `GET /api/v1/skills`."""
    try:
        slug = item["slug"]
        display_name = item["displayName"]
        updated_at = item["updatedAt"]
    except (KeyError, TypeError) as e:
        raise DecodeError(f"Skill list entry is missing a required field: {e}") from e
    if not isinstance(slug, str) or not isinstance(display_name, str):
        raise DecodeError("Skill list entry has a non-string slug or displayName")

    latest = item.get("latestVersion")
    stats = item.get("stats")
    latest = latest if isinstance(latest, dict) else {}
    stats = stats if isinstance(stats, dict) else {}

    return RemoteSkill(
        slug=slug,
        display_name=display_name,
        summary=_optional_str(item.get("summary")),
        latest_version=_optional_str(latest.get("version")),
        updated_at=_from_millis(updated_at),
        downloads=_optional_int(stats.get("downloads")),
        stars=_optional_int(stats.get("stars")),
    )


def decode_search_result(result: Dict[str, Any]) -> Optional[RemoteSkill]:
    """Decode one `results[]` entry of `GET /api/v1/search`; None if unusable."""
    if not isinstance(result, dict):
        return None
    slug = _optional_str(result.get("slug"))
    display_name = _optional_str(result.get("displayName"))
    if not slug or not display_name:
        return None
    return RemoteSkill(
        slug=slug,
        display_name=display_name,
        summary=_optional_str(result.get("summary")),
        latest_version=_optional_str(result.get("version")),
        updated_at=_from_millis(result.get("updatedAt")),
    )


def _write_archive(content: bytes, slug: str, directory: Optional[Path]) -> Path:
    handle = tempfile.NamedTemporaryFile(prefix=f"{slug}-", suffix=".zip", dir=directory, delete=False)
    with handle:
        handle.write(content)
    return Path(handle.name)


def decode_owner(data: Dict[str, Any]) -> Optional[RemoteSkillOwner]:
    owner = data.get("owner")
    if not isinstance(owner, dict):
        return None
    return RemoteSkillOwner(
        handle=_optional_str(owner.get("handle")),
        display_name=_optional_str(owner.get("displayName")),
        image_url=_optional_str(owner.get("image")),
    )


class RemoteSkillClient:
    """Typed access to the registry's HTTP API.

    Any transport failure or non-2xx status raises `BadResponseError`;
    malformed JSON raises `DecodeError`.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache: Optional[HTTPResponseCache] = None,
        timeout: float = DEFAULT_TIMEOUT,
        download_dir: Optional[Path] = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Registry base URL
            transport: Transport to send requests with (defaults to the network)
            cache: Optional HTTP response cache wrapped around the transport
            timeout: Per-request timeout in seconds
            download_dir: Where downloaded archives are written (system temp by default)
        """
        self.base_url = base_url.rstrip("/")
        self.download_dir = download_dir

        inner = transport or httpx.AsyncHTTPTransport()
        if cache is not None:
            inner = CachingTransport(inner, cache)

        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            transport=inner,
            timeout=timeout,
            follow_redirects=True,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "RemoteSkillClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            response = await self._http.get(endpoint, params=params)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            logger.error(f"Registry error {e.response.status_code} for {endpoint}")
            raise BadResponseError(
                f"Registry returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Registry request failed: {e}")
            raise BadResponseError(f"Registry request failed: {e}") from e

    async def _get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = await self._get(endpoint, params=params)
        try:
            data = response.json()
        except ValueError as e:
            raise DecodeError(f"Invalid JSON from {endpoint}: {e}") from e
        if not isinstance(data, dict):
            raise DecodeError(f"Expected a JSON object from {endpoint}")
        return data

    async def fetch_latest(self, limit: int = 12) -> List[RemoteSkill]:
        """Newest skills, in server order."""
        data = await self._get_json("/api/v1/skills", params={"limit": limit})
        items = data.get("items")
        if not isinstance(items, list):
            raise DecodeError("Skill list response has no 'items' array")
        return [decode_list_item(item) for item in items]

    async def search(self, query: str, limit: int = 20) -> List[RemoteSkill]:
        """Free-text search; results without a slug or display name are dropped."""
        data = await self._get_json("/api/v1/search", params={"q": query, "limit": limit})
        results = data.get("results")
        if not isinstance(results, list):
            raise DecodeError("Search response has no 'results' array")
        skills = [decode_search_result(result) for result in results]
        return [skill for skill in skills if skill is not None]

    async def download(self, slug: str, version: Optional[str] = None) -> Path:
        """Download a skill archive to a temporary `.zip` file and return its path.

        Without a version the registry's `latest` tag is requested.
        """
        params: Dict[str, Any] = {"slug": slug}
        if version:
            params["version"] = version
        else:
            params["tag"] = "latest"

        response = await self._get("/api/v1/download", params=params)

        path = await asyncio.to_thread(_write_archive, response.content, slug, self.download_dir)
        logger.debug(f"Downloaded {slug} ({len(response.content)} bytes) to {path}")
        return path

    async def fetch_detail(self, slug: str) -> Optional[RemoteSkillOwner]:
        """Owner info for a skill, or None when the registry has none."""
        data = await self._get_json("/api/skill", params={"slug": slug})
        return decode_owner(data)

    async def fetch_latest_version(self, slug: str) -> Optional[str]:
        data = await self._get_json(f"/api/v1/skills/{quote(slug, safe='')}")
        latest = data.get("latestVersion")
        if not isinstance(latest, dict):
            return None
        return _optional_str(latest.get("version"))
