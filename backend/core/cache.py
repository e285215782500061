"""
In-process response cache for read-heavy GET routes.

One ``ResponseCache`` lives on ``app.state`` for the lifetime of the app.
Entries are keyed by the caller's credential hash plus path and query string,
so two users never share a cached body. Writes clear whole path prefixes.
"""
import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Pattern, Tuple

from core.config import (
    CACHE_TTL_ANALYTICS,
    CACHE_TTL_CATEGORIES,
    CACHE_TTL_ISSUE_DETAIL,
    CACHE_TTL_ISSUE_LIST,
)
from utils.timeutils import utcnow

logger = logging.getLogger(__name__)

# first match wins
ROUTE_TTLS: List[Tuple[Pattern, int]] = [
    (re.compile(r"^/api/issues/categories/?$"), CACHE_TTL_CATEGORIES),
    (re.compile(r"^/api/issues/analytics/?$"), CACHE_TTL_ANALYTICS),
    (re.compile(r"^/api/assignments/analytics/?$"), CACHE_TTL_ANALYTICS),
    (re.compile(r"^/api/issues/?$"), CACHE_TTL_ISSUE_LIST),
    (re.compile(r"^/api/issues/admin/all/?$"), CACHE_TTL_ISSUE_LIST),
    (re.compile(r"^/api/issues/[^/]+/?$"), CACHE_TTL_ISSUE_DETAIL),
]

# a write under any of these prefixes clears all of them
WRITE_PREFIXES = ("/api/issues", "/api/assignments", "/api/feedback")
INVALIDATED_PREFIXES = ("/api/issues", "/api/assignments", "/api/recurring-alerts", "/api/feedback")


def ttl_for(path: str) -> Optional[int]:
    for pattern, ttl in ROUTE_TTLS:
        if pattern.match(path):
            return ttl
    return None


def credential_scope(token: Optional[str]) -> str:
    if not token:
        return "anonymous"
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:32]


@dataclass
class CachedResponse:
    path: str
    body: bytes
    status_code: int
    media_type: Optional[str]
    expires_at: datetime


class ResponseCache:
    def __init__(self):
        self._entries: Dict[str, CachedResponse] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(scope: str, path: str, query: str) -> str:
        return f"{scope}:{path}?{query}"

    def get(self, key: str) -> Optional[CachedResponse]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if utcnow() >= entry.expires_at:
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return entry

    def set(self, key: str, path: str, body: bytes, status_code: int, media_type: Optional[str], ttl: int):
        now = utcnow()
        self.sweep(now)
        self._entries[key] = CachedResponse(
            path=path,
            body=body,
            status_code=status_code,
            media_type=media_type,
            expires_at=now + timedelta(seconds=ttl),
        )

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = now or utcnow()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def invalidate(self, *prefixes: str) -> int:
        stale = [key for key, entry in self._entries.items() if entry.path.startswith(prefixes)]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug("Invalidated %d cached responses under %s", len(stale), ", ".join(prefixes))
        return len(stale)

    def invalidate_for_write(self, path: str) -> int:
        if path.startswith(WRITE_PREFIXES):
            return self.invalidate(*INVALIDATED_PREFIXES)
        return 0

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
