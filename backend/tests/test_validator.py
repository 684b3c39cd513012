import httpx
import pytest

from backend.app.models import VideoCandidate
from backend.app.services.validator import (
    is_valid_video_id,
    make_thumbnail_probe,
    probe_thumbnail,
    validate,
)


def make_candidate(video_id: str) -> VideoCandidate:
    return VideoCandidate(external_id=video_id, title=f"Video {video_id}")


def probe_from(valid_ids: set[str], calls: list[str] | None = None):
    async def probe(url: str) -> bool:
        if calls is not None:
            calls.append(url)
        return any(f"/{video_id}/" in url for video_id in valid_ids)

    return probe


@pytest.mark.asyncio
async def test_validate_drops_placeholder_thumbnails():
    candidates = [make_candidate("id1"), make_candidate("id2")]
    result = await validate(candidates, probe_from({"id1"}))
    assert [c.external_id for c in result] == ["id1"]


@pytest.mark.asyncio
async def test_validate_keeps_input_order():
    candidates = [make_candidate(f"vid{i:02d}") for i in range(10)]
    failing = {"vid01", "vid04", "vid05", "vid09"}
    valid = {c.external_id for c in candidates} - failing

    result = await validate(candidates, probe_from(valid))

    assert [c.external_id for c in result] == ["vid00", "vid02", "vid03", "vid06", "vid07", "vid08"]


@pytest.mark.asyncio
async def test_probe_exception_counts_as_invalid():
    async def flaky(url: str) -> bool:
        if "boom" in url:
            raise httpx.ConnectTimeout("timed out")
        return True

    result = await validate([make_candidate("boom"), make_candidate("fine")], flaky)
    assert [c.external_id for c in result] == ["fine"]


@pytest.mark.asyncio
async def test_excluded_ids_are_dropped_without_probing():
    calls: list[str] = []
    candidates = [make_candidate("keep"), make_candidate("gone")]
    result = await validate(candidates, probe_from({"keep", "gone"}, calls), exclude_ids={"gone"})
    assert [c.external_id for c in result] == ["keep"]
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_validate_empty_input():
    assert await validate([], probe_from(set())) == []


def head_client(status: int, content_length: str | None = None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "HEAD"
        headers = {"content-type": "image/jpeg"}
        if content_length is not None:
            headers["content-length"] = content_length
        return httpx.Response(status, headers=headers)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_probe_thumbnail_accepts_real_image():
    async with head_client(200, "14233") as client:
        assert await probe_thumbnail(client, "https://i.ytimg.com/vi/abc/mqdefault.jpg") is True


@pytest.mark.asyncio
async def test_probe_thumbnail_rejects_placeholder_size():
    async with head_client(200, "1097") as client:
        assert await probe_thumbnail(client, "https://i.ytimg.com/vi/abc/mqdefault.jpg") is False


@pytest.mark.asyncio
async def test_probe_thumbnail_threshold_is_configurable():
    async with head_client(200, "1097") as client:
        probe = make_thumbnail_probe(client, min_bytes=500, timeout=1.0)
        assert await probe("https://i.ytimg.com/vi/abc/mqdefault.jpg") is True


@pytest.mark.asyncio
async def test_probe_thumbnail_rejects_error_status():
    async with head_client(404, "20000") as client:
        assert await probe_thumbnail(client, "https://i.ytimg.com/vi/abc/mqdefault.jpg") is False


@pytest.mark.asyncio
async def test_probe_thumbnail_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        assert await probe_thumbnail(client, "https://i.ytimg.com/vi/abc/mqdefault.jpg") is False


def test_is_valid_video_id():
    assert is_valid_video_id("dQw4w9WgXcQ")
    assert is_valid_video_id("a_b-c_d-e_f")
    assert not is_valid_video_id("short")
    assert not is_valid_video_id("dQw4w9WgXcQ1")
    assert not is_valid_video_id("dQw4w9WgX!Q")
    assert not is_valid_video_id("")
    assert not is_valid_video_id(None)
