"""
Dynamic text translation through the Google Translate v2 REST API.

Results are cached in process for 24 hours, keyed by a hash of the text and
the language pair. Any provider failure, or a missing API key, falls back to
the original text; translation never fails a request.
"""
import hashlib
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional, Tuple

import httpx

from core.config import (
    DEFAULT_LANGUAGE,
    GOOGLE_TRANSLATE_API_KEY,
    GOOGLE_TRANSLATE_URL,
    SUPPORTED_LANGUAGES,
    TRANSLATION_CACHE_TTL_SECONDS,
    TRANSLATION_TIMEOUT_SECONDS,
)
from utils.timeutils import utcnow

logger = logging.getLogger(__name__)

# string fields rewritten inside a response's ``data``
TRANSLATABLE_FIELDS = ("title", "description", "category", "status", "message", "name")


def is_supported(language: Optional[str]) -> bool:
    return language in SUPPORTED_LANGUAGES


class TranslationService:
    """Service for dynamic content translation."""

    def __init__(
        self,
        api_key: str = GOOGLE_TRANSLATE_API_KEY,
        base_url: str = GOOGLE_TRANSLATE_URL,
        timeout: float = TRANSLATION_TIMEOUT_SECONDS,
        cache_ttl_seconds: int = TRANSLATION_CACHE_TTL_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self._transport = transport
        self._cache: Dict[str, Tuple[str, datetime]] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    @staticmethod
    def _cache_key(text: str, target: str, source: str) -> str:
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
        return f"{source}:{target}:{digest}"

    def _cached(self, key: str) -> Optional[str]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if utcnow() >= expires_at:
            del self._cache[key]
            return None
        return value

    async def translate_text(self, text: str, target: str, source: str = DEFAULT_LANGUAGE) -> str:
        if not text or not isinstance(text, str) or target == source or not self.enabled:
            return text

        key = self._cache_key(text, target, source)
        cached = self._cached(key)
        if cached is not None:
            return cached

        try:
            async with self._client() as client:
                response = await client.post(
                    self.base_url,
                    params={"key": self.api_key},
                    json={"q": text, "target": target, "source": source, "format": "text"},
                )
                response.raise_for_status()
                translated = response.json()["data"]["translations"][0]["translatedText"]
        except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
            logger.warning("Translation to %s failed, returning original text: %s", target, e)
            return text

        self._cache[key] = (translated, utcnow() + self.cache_ttl)
        return translated

    async def translate_object(
        self,
        obj: Any,
        target: str,
        fields: Iterable[str] = TRANSLATABLE_FIELDS,
        source: str = DEFAULT_LANGUAGE,
    ) -> Any:
        """Translate the named string fields of a dict, recursing into lists and nested dicts."""
        fields = tuple(fields)
        if isinstance(obj, list):
            return [await self.translate_object(item, target, fields, source) for item in obj]
        if not isinstance(obj, dict):
            return obj

        translated = {}
        for key, value in obj.items():
            if key in fields and isinstance(value, str):
                translated[key] = await self.translate_text(value, target, source)
            elif isinstance(value, (dict, list)):
                translated[key] = await self.translate_object(value, target, fields, source)
            else:
                translated[key] = value
        return translated

    async def detect_language(self, text: str) -> Dict[str, Any]:
        fallback = {"language": DEFAULT_LANGUAGE, "confidence": 0.0}
        if not text or not self.enabled:
            return fallback
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/detect",
                    params={"key": self.api_key},
                    json={"q": text},
                )
                response.raise_for_status()
                detection = response.json()["data"]["detections"][0][0]
        except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
            logger.warning("Language detection failed: %s", e)
            return fallback
        return {"language": detection.get("language", DEFAULT_LANGUAGE), "confidence": detection.get("confidence", 0.0)}

    @staticmethod
    def supported_languages():
        return [{"code": code, "name": name} for code, name in SUPPORTED_LANGUAGES.items()]

    def cache_stats(self) -> Dict[str, Any]:
        now = utcnow()
        active = sum(1 for _, expires_at in self._cache.values() if expires_at > now)
        return {"entries": len(self._cache), "active": active, "ttlSeconds": int(self.cache_ttl.total_seconds())}

    def clear_cache(self) -> int:
        cleared = len(self._cache)
        self._cache.clear()
        logger.info("Cleared %d cached translations", cleared)
        return cleared
