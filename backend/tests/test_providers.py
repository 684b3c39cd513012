import asyncio

import httpx
import pytest

from backend.app.services.providers import (
    build_provider_tiers,
    is_short_or_live,
    parse_invidious_results,
    parse_piped_results,
    search_invidious,
    search_piped,
)

INVIDIOUS_PAYLOAD = [
    {
        "type": "video",
        "title": "Homemade Pasta From Scratch",
        "videoId": "abcdefghijk",
        "author": "Pasta Grannies",
        "authorId": "UCabc",
        "authorThumbnails": [{"url": "//yt3.ggpht.com/small"}, {"url": "//yt3.ggpht.com/large"}],
        "videoThumbnails": [
            {"quality": "maxres", "url": "https://inv.example/vi/abcdefghijk/maxres.jpg"},
            {"quality": "medium", "url": "https://inv.example/vi/abcdefghijk/mqdefault.jpg"},
        ],
        "viewCount": 120000,
        "publishedText": "3 weeks ago",
        "lengthSeconds": 745,
    },
    {"type": "video", "title": "Pasta hack #shorts", "videoId": "shortsvideo", "lengthSeconds": 40},
    {"type": "video", "title": "24/7 pasta radio", "videoId": "livestreams", "liveNow": True},
    {"type": "channel", "author": "Pasta Channel"},
    {"type": "video", "title": "No id here"},
    {"type": "video", "videoId": "bareminimum", "videoThumbnails": [{"quality": "medium", "url": "/vi/relative.jpg"}]},
]

PIPED_PAYLOAD = {
    "items": [
        {
            "type": "stream",
            "url": "/watch?v=pipedvideo1",
            "title": "Knife Skills 101",
            "uploaderName": "Chef Academy",
            "uploaderUrl": "/channel/UCchef",
            "uploaderAvatar": "https://pipedproxy.example/avatar.jpg",
            "uploadedDate": "1 month ago",
            "views": 5400,
            "duration": 610,
            "isShort": False,
        },
        {"type": "stream", "url": "/watch?v=pipedshort1", "title": "quick tip", "duration": 30, "isShort": True},
        {"type": "stream", "url": "/watch?v=pipedlive01", "title": "live kitchen", "duration": -1},
        {"type": "channel", "url": "/channel/UCchef", "name": "Chef Academy"},
        {"type": "stream", "url": "/shorts/nope", "title": "no watch id"},
    ]
}


def json_client(payload=None, status: int = 200, content_type: str = "application/json", seen: list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request.url)
        if content_type == "application/json":
            return httpx.Response(status, json=payload)
        return httpx.Response(status, text="<html>maintenance</html>", headers={"content-type": content_type})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_is_short_or_live():
    assert is_short_or_live("anything", 45)
    assert is_short_or_live("My day #Shorts", 300)
    assert is_short_or_live("marathon", 4 * 60 * 60)
    assert is_short_or_live("flagged", 300, flagged_short=True)
    assert not is_short_or_live("normal upload", 600)
    assert not is_short_or_live("unknown length", 0)


def test_parse_invidious_results():
    candidates = parse_invidious_results(INVIDIOUS_PAYLOAD)
    assert [c.external_id for c in candidates] == ["abcdefghijk", "bareminimum"]

    first = candidates[0]
    assert first.title == "Homemade Pasta From Scratch"
    assert first.author_name == "Pasta Grannies"
    assert first.view_count == 120000
    assert first.published_label == "3 weeks ago"
    assert first.duration_seconds == 745
    assert first.thumbnail_url == "https://i.ytimg.com/vi/abcdefghijk/mqdefault.jpg"
    assert first.channel_id == "UCabc"
    assert first.channel_avatar_url == "https://yt3.ggpht.com/large"

    bare = candidates[1]
    assert bare.title == "Untitled"
    assert bare.author_name == "Unknown"
    assert bare.view_count == 0
    assert bare.published_label == "Recently"
    assert bare.thumbnail_url == "https://i.ytimg.com/vi/bareminimum/mqdefault.jpg"


def test_invidious_thumbnail_ignores_mirror_host():
    record = {
        "type": "video",
        "videoId": "dQw4w9WgXcQ",
        "lengthSeconds": 212,
        "videoThumbnails": [{"quality": "medium", "url": "https://inv.nadeko.net/vi/dQw4w9WgXcQ/mqdefault.jpg"}],
    }
    [candidate] = parse_invidious_results([record])
    assert candidate.thumbnail_url == "https://i.ytimg.com/vi/dQw4w9WgXcQ/mqdefault.jpg"


def test_parse_invidious_rejects_wrong_shape():
    assert parse_invidious_results({"error": "rate limited"}) is None
    assert parse_invidious_results([]) == []


def test_parse_piped_results():
    candidates = parse_piped_results(PIPED_PAYLOAD)
    assert [c.external_id for c in candidates] == ["pipedvideo1"]

    video = candidates[0]
    assert video.author_name == "Chef Academy"
    assert video.view_count == 5400
    assert video.channel_id == "UCchef"
    assert video.channel_avatar_url == "https://pipedproxy.example/avatar.jpg"
    assert video.thumbnail_url == "https://i.ytimg.com/vi/pipedvideo1/mqdefault.jpg"


def test_parse_piped_rejects_wrong_shape():
    assert parse_piped_results([]) is None
    assert parse_piped_results({"items": "nope"}) is None


@pytest.mark.asyncio
async def test_search_invidious_returns_candidates():
    seen: list = []
    async with json_client(INVIDIOUS_PAYLOAD, seen=seen) as client:
        result = await search_invidious(client, "https://inv.example/", "pasta", asyncio.Event())

    assert [c.external_id for c in result] == ["abcdefghijk", "bareminimum"]
    assert seen[0].path == "/api/v1/search"
    assert seen[0].params["q"] == "pasta"
    assert seen[0].params["type"] == "video"


@pytest.mark.asyncio
async def test_search_piped_returns_candidates():
    seen: list = []
    async with json_client(PIPED_PAYLOAD, seen=seen) as client:
        result = await search_piped(client, "https://piped.example", "knife", asyncio.Event())

    assert [c.external_id for c in result] == ["pipedvideo1"]
    assert seen[0].path == "/search"
    assert seen[0].params["filter"] == "videos"


@pytest.mark.asyncio
async def test_html_maintenance_page_is_unavailable():
    async with json_client(status=200, content_type="text/html") as client:
        assert await search_invidious(client, "https://inv.example", "pasta", asyncio.Event()) is None


@pytest.mark.asyncio
async def test_error_status_is_unavailable():
    async with json_client({"error": "down"}, status=503) as client:
        assert await search_piped(client, "https://piped.example", "pasta", asyncio.Event()) is None


@pytest.mark.asyncio
async def test_network_error_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("slow mirror", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        assert await search_invidious(client, "https://inv.example", "pasta", asyncio.Event()) is None


@pytest.mark.asyncio
async def test_signal_already_set_skips_request():
    seen: list = []
    signal = asyncio.Event()
    signal.set()
    async with json_client(INVIDIOUS_PAYLOAD, seen=seen) as client:
        assert await search_invidious(client, "https://inv.example", "pasta", signal) is None
        assert await search_piped(client, "https://piped.example", "pasta", signal) is None
    assert seen == []


@pytest.mark.asyncio
async def test_build_provider_tiers():
    async with json_client(INVIDIOUS_PAYLOAD) as client:
        tiers = build_provider_tiers(client, ["https://a", "https://b"], ["https://c"], timeout=1.0)
        assert [len(tier) for tier in tiers] == [2, 1]

        result = await tiers[0][0]("pasta", asyncio.Event())
        assert result[0].external_id == "abcdefghijk"

        assert len(build_provider_tiers(client, [], ["https://c"])) == 1
        assert build_provider_tiers(client, [], []) == []
