"""
HTTP middleware stack.

Outermost to innermost: security headers, rate limit, request logging,
language detection, response translation, response cache. The cache sits
inside translation so cached bodies are always stored untranslated.
"""
import json
import logging
import time
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from core.cache import credential_scope, ttl_for
from core.config import DEFAULT_LANGUAGE, RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SECONDS
from core.errors import RateLimitError, error_body
from services.translation import is_supported
from utils.security import extract_token
from utils.timeutils import utcnow

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-site",
}


class RateLimiter:
    """Fixed-window request counter per client key."""

    def __init__(self, max_requests: int = RATE_LIMIT_MAX_REQUESTS, window_seconds: int = RATE_LIMIT_WINDOW_SECONDS):
        self.max_requests = max_requests
        self.window = timedelta(seconds=window_seconds)
        self._windows: Dict[str, Tuple[datetime, int]] = {}
        self._last_sweep: Optional[datetime] = None

    def hit(self, key: str, now: Optional[datetime] = None) -> Tuple[bool, int, int]:
        """Count one request; returns (allowed, remaining, seconds until reset)."""
        now = now or utcnow()
        self._sweep(now)
        started, count = self._windows.get(key, (now, 0))
        if now - started >= self.window:
            started, count = now, 0
        count += 1
        self._windows[key] = (started, count)

        reset_in = max(0, int((started + self.window - now).total_seconds()))
        return count <= self.max_requests, max(0, self.max_requests - count), reset_in

    def _sweep(self, now: datetime):
        # closed windows are dropped at most once per window length
        if self._last_sweep is not None and now - self._last_sweep < self.window:
            return
        self._last_sweep = now
        closed = [key for key, (started, _) in self._windows.items() if now - started >= self.window]
        for key in closed:
            del self._windows[key]

    def reset(self):
        self._windows.clear()
        self._last_sweep = None

    def __len__(self) -> int:
        return len(self._windows)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def _read_body(response) -> bytes:
    return b"".join([chunk async for chunk in response.body_iterator])


def _copy_headers(response, drop=("content-length",)) -> Dict[str, str]:
    return {key: value for key, value in response.headers.items() if key.lower() not in drop}


def _preferred_language(request: Request) -> str:
    language = request.query_params.get("lang")
    if not language:
        header = request.headers.get("accept-language", "")
        language = header.split(",")[0].split(";")[0].split("-")[0].strip().lower()
    return language if is_supported(language) else DEFAULT_LANGUAGE


def register_middleware(app: FastAPI):
    # registration order is innermost first

    @app.middleware("http")
    async def response_cache(request: Request, call_next):
        cache = request.app.state.cache
        path = request.url.path

        if request.method != "GET":
            response = await call_next(request)
            if response.status_code < 400:
                cache.invalidate_for_write(path)
            return response

        ttl = ttl_for(path)
        if ttl is None:
            return await call_next(request)

        key = cache.make_key(credential_scope(extract_token(request)), path, request.url.query)
        cached = cache.get(key)
        if cached is not None:
            return Response(
                content=cached.body,
                status_code=cached.status_code,
                media_type=cached.media_type,
                headers={"X-Cache": "HIT"},
            )

        response = await call_next(request)
        if response.status_code != 200:
            return response

        body = await _read_body(response)
        media_type = response.headers.get("content-type")
        cache.set(key, path, body, response.status_code, media_type, ttl)
        headers = _copy_headers(response, drop=("content-length", "content-type"))
        headers["X-Cache"] = "MISS"
        return Response(content=body, status_code=response.status_code, media_type=media_type, headers=headers)

    @app.middleware("http")
    async def translate_response(request: Request, call_next):
        response = await call_next(request)

        language = getattr(request.state, "language", DEFAULT_LANGUAGE)
        translator = request.app.state.translator
        if language == DEFAULT_LANGUAGE or not translator.enabled:
            return response
        if "application/json" not in response.headers.get("content-type", ""):
            return response

        body = await _read_body(response)
        headers = _copy_headers(response)
        try:
            payload = json.loads(body)
        except ValueError:
            return Response(content=body, status_code=response.status_code, headers=headers)

        if isinstance(payload, dict):
            for field in ("message", "error"):
                if isinstance(payload.get(field), str):
                    payload[field] = await translator.translate_text(payload[field], language)
            if "data" in payload:
                payload["data"] = await translator.translate_object(payload["data"], language)

        return JSONResponse(content=payload, status_code=response.status_code, headers=headers)

    @app.middleware("http")
    async def detect_language(request: Request, call_next):
        request.state.language = _preferred_language(request)
        response = await call_next(request)
        response.headers["Content-Language"] = request.state.language
        return response

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Process-Time"] = f"{elapsed_ms:.1f}ms"
        logger.info(
            "%s %s %s %s %.1fms",
            _client_ip(request),
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        if not request.url.path.startswith("/api/"):
            return await call_next(request)

        limiter = request.app.state.rate_limiter
        allowed, remaining, reset_in = limiter.hit(_client_ip(request))
        if not allowed:
            error = RateLimitError()
            logger.warning("Rate limit exceeded for %s on %s", _client_ip(request), request.url.path)
            return JSONResponse(
                status_code=error.status_code,
                content=error_body(error.message),
                headers={"Retry-After": str(reset_in)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limiter.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response
