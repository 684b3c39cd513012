from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path
from unittest.mock import patch

from fastapi import HTTPException
from starlette.requests import Request

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import backend.main as main_module
from backend.app.models import SearchResult, ValidateRequest, ValidateVideoItem, VideoCandidate


def make_request(ip: str = "127.0.0.1") -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": [],
            "client": (ip, 8000),
            "query_string": b"",
            "server": ("test", 80),
            "scheme": "http",
            "http_version": "1.1",
        }
    )


def make_result(query: str, used_fallback: bool = False) -> SearchResult:
    return SearchResult(
        original_query=query,
        normalized_query=query,
        category="default",
        candidates=[VideoCandidate(external_id="dQw4w9WgXcQ", title="Smoke video", author_name="Smoke Channel")],
        used_fallback=used_fallback,
    )


def assert_true(condition: bool, message: str) -> None:
    if not condition:
        raise AssertionError(message)


def reset_state() -> None:
    main_module.CACHE.clear()
    main_module.API_RATE_LIMIT_BUCKETS.clear()


def test_health() -> None:
    payload = main_module.health()
    assert_true(payload.get("ok") is True, "/health should return ok=true")


def test_search_cache() -> None:
    reset_state()
    request = make_request()
    call_count = {"search_videos": 0}

    async def fake_search_videos(query, settings, exclude_ids=None):
        _ = (settings, exclude_ids)
        call_count["search_videos"] += 1
        return make_result(query)

    with patch.object(main_module, "search_videos", side_effect=fake_search_videos):
        payload_1 = asyncio.run(main_module.search_get(request, q="minecraft builds"))
        payload_2 = asyncio.run(main_module.search_get(request, q="Minecraft Builds"))

    assert_true(payload_1 == payload_2, "/youtube/search cached response should be identical")
    assert_true(call_count["search_videos"] == 1, "/youtube/search should hit sources once then cache")
    assert_true(payload_1.get("count") == 1, "/youtube/search should report candidate count")


def test_search_fallback_short_ttl() -> None:
    reset_state()

    async def fake_search_videos(query, settings, exclude_ids=None):
        _ = (settings, exclude_ids)
        return make_result(query, used_fallback=True)

    with patch.object(main_module, "search_videos", side_effect=fake_search_videos):
        payload = asyncio.run(main_module.search_get(make_request(), q="offline"))

    assert_true(payload.get("used_fallback") is True, "fallback flag should pass through")
    expires_at, _ = main_module.CACHE[main_module.search_cache_key("offline", [])]
    assert_true(
        expires_at - time.time() <= main_module.FALLBACK_CACHE_TTL_SECONDS,
        "fallback results should be cached briefly",
    )


def test_validate_shape() -> None:
    reset_state()
    payload = main_module.validate_videos(
        ValidateRequest(
            videos=[
                ValidateVideoItem(video_id="dQw4w9WgXcQ", title="Good"),
                ValidateVideoItem(video_id="bad id"),
            ]
        ),
        make_request(),
    )
    videos = payload.get("videos", [])
    assert_true(len(videos) == 1, "/youtube/validate should drop malformed ids")
    assert_true(videos[0]["thumbnail_url"].endswith("/dQw4w9WgXcQ/mqdefault.jpg"), "thumbnail should be derived")


def test_keywords_without_key() -> None:
    reset_state()
    settings = main_module.SETTINGS.model_copy(update={"openrouter_api_key": None})
    with patch.object(main_module, "SETTINGS", settings):
        payload = asyncio.run(
            main_module.ai_keywords(main_module.KeywordRequest(prompt="cooking pasta"), make_request())
        )
    assert_true(payload.get("fallback") is True, "/ai/keywords should fall back without an API key")
    assert_true(payload.get("search_terms") == ["cooking pasta"], "fallback should search the raw prompt")


def test_rate_limit() -> None:
    reset_state()
    request = make_request("10.0.0.9")
    for _ in range(main_module.API_RATE_LIMIT_MAX_REQUESTS):
        main_module.enforce_api_rate_limit(request, scope="smoke")
    try:
        main_module.enforce_api_rate_limit(request, scope="smoke")
    except HTTPException as exc:
        assert_true(exc.status_code == 429, "rate limit should answer 429")
        return
    raise AssertionError("rate limit should trip after the window is full")


def run() -> int:
    checks = [
        ("health", test_health),
        ("search cache", test_search_cache),
        ("search fallback short ttl", test_search_fallback_short_ttl),
        ("validate shape", test_validate_shape),
        ("keywords without key", test_keywords_without_key),
        ("rate limit", test_rate_limit),
    ]
    failures = []

    for check_name, check_fn in checks:
        try:
            check_fn()
            print(f"[PASS] {check_name}")
        except Exception as exc:  # pragma: no cover - smoke script output path
            failures.append((check_name, str(exc)))
            print(f"[FAIL] {check_name}: {exc}")

    if failures:
        print(f"\nSmoke checks failed: {len(failures)}")
        for check_name, message in failures:
            print(f"- {check_name}: {message}")
        return 1

    print("\nAll smoke checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(run())
