from datetime import datetime, timedelta

from conftest import auth_headers
from core.cache import ResponseCache, credential_scope, ttl_for
from core.middleware import RateLimiter
from main import app


def test_ttl_table():
    assert ttl_for("/api/issues/categories") == 3600
    assert ttl_for("/api/issues/analytics") == 300
    assert ttl_for("/api/assignments/analytics") == 300
    assert ttl_for("/api/issues/") == 180
    assert ttl_for("/api/issues/admin/all") == 180
    assert ttl_for("/api/issues/123") == 300
    assert ttl_for("/api/issues/123/status") is None
    assert ttl_for("/api/feedback/technicians") is None


def test_cache_keys_are_scoped_by_credential():
    assert credential_scope(None) == "anonymous"
    assert credential_scope("a") != credential_scope("b")

    cache = ResponseCache()
    cache.set(cache.make_key(credential_scope("a"), "/api/issues/", ""), "/api/issues/", b"{}", 200, None, 60)
    assert cache.get(cache.make_key(credential_scope("b"), "/api/issues/", "")) is None
    assert cache.get(cache.make_key(credential_scope("a"), "/api/issues/", "")) is not None


def test_write_invalidates_related_prefixes():
    cache = ResponseCache()
    for path in ("/api/issues/", "/api/recurring-alerts/", "/api/translate/languages"):
        cache.set(cache.make_key("x", path, ""), path, b"{}", 200, None, 60)

    assert cache.invalidate_for_write("/api/user/me") == 0
    assert cache.invalidate_for_write("/api/feedback/") == 2
    assert len(cache) == 1


def test_get_is_cached_per_user(client, make_issue, resident, other_resident):
    make_issue(resident)
    headers = auth_headers(resident)

    first = client.get("/api/issues/", headers=headers)
    second = client.get("/api/issues/", headers=headers)
    assert first.headers["X-Cache"] == "MISS"
    assert second.headers["X-Cache"] == "HIT"
    assert first.json() == second.json()

    other = client.get("/api/issues/", headers=auth_headers(other_resident))
    assert other.headers["X-Cache"] == "MISS"
    assert other.json()["data"]["issues"] == []


def test_successful_write_clears_cached_lists(client, resident):
    headers = auth_headers(resident)
    assert client.get("/api/issues/", headers=headers).json()["data"]["pagination"]["total"] == 0

    created = client.post(
        "/api/issues/",
        data={"title": "Gate broken", "description": "Main gate does not close", "category": "security"},
        headers=headers,
    )
    assert created.status_code == 201

    after = client.get("/api/issues/", headers=headers)
    assert after.headers["X-Cache"] == "MISS"
    assert after.json()["data"]["pagination"]["total"] == 1


def test_errors_are_not_cached(client, technician):
    headers = auth_headers(technician)
    assert client.get("/api/issues/", headers=headers).status_code == 403
    assert "X-Cache" not in client.get("/api/issues/", headers=headers).headers


def test_rate_limiter_window():
    limiter = RateLimiter(max_requests=2, window_seconds=60)
    start = datetime(2026, 1, 1, 12, 0, 0)

    assert limiter.hit("1.2.3.4", start)[0] is True
    assert limiter.hit("1.2.3.4", start)[0] is True
    allowed, remaining, reset_in = limiter.hit("1.2.3.4", start)
    assert (allowed, remaining, reset_in) == (False, 0, 60)
    assert limiter.hit("5.6.7.8", start)[0] is True
    assert limiter.hit("1.2.3.4", datetime(2026, 1, 1, 12, 1, 0))[0] is True


def test_rate_limit_returns_429(client):
    original = app.state.rate_limiter
    app.state.rate_limiter = RateLimiter(max_requests=2, window_seconds=60)
    try:
        assert client.get("/api/issues/categories").status_code == 200
        assert client.get("/api/issues/categories").status_code == 200
        response = client.get("/api/issues/categories")
        assert response.status_code == 429
        assert response.json()["message"] == "Too many requests from this IP, please try again later."
        assert "Retry-After" in response.headers

        # non-API paths are never limited
        assert client.get("/health").status_code == 200
    finally:
        app.state.rate_limiter = original


def test_security_and_language_headers(client):
    response = client.get("/health")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["Content-Language"] == "en"

    response = client.get("/api/issues/categories?lang=hi")
    assert response.headers["Content-Language"] == "hi"
    assert response.headers["X-RateLimit-Limit"]


def test_expired_entries_are_swept_on_write():
    cache = ResponseCache()
    for token in ("old-token-1", "old-token-2"):
        cache.set(cache.make_key(credential_scope(token), "/api/issues/", ""), "/api/issues/", b"{}", 200, None, 0)
    assert len(cache) == 2

    cache.set(cache.make_key(credential_scope("fresh"), "/api/issues/", ""), "/api/issues/", b"{}", 200, None, 60)

    assert len(cache) == 1
    assert cache.get(cache.make_key(credential_scope("fresh"), "/api/issues/", "")) is not None


def test_rate_limiter_forgets_closed_windows():
    limiter = RateLimiter(max_requests=5, window_seconds=60)
    start = datetime(2026, 1, 1, 12, 0, 0)
    for octet in range(10):
        limiter.hit(f"10.0.0.{octet}", start)
    assert len(limiter) == 10

    limiter.hit("10.0.1.1", start + timedelta(seconds=61))

    assert len(limiter) == 1
