"""Clawdhub registry access: HTTP client, response caches and the remote store."""

from .cache import RemoteSkillDetailCache
from .client import DEFAULT_BASE_URL, RemoteSkillClient
from .http_cache import CachingTransport, HTTPResponseCache
from .store import RemoteSkillStore

__all__ = [
    "DEFAULT_BASE_URL",
    "CachingTransport",
    "HTTPResponseCache",
    "RemoteSkillClient",
    "RemoteSkillDetailCache",
    "RemoteSkillStore",
]
