"""Search provider adapters for Invidious and Piped mirrors.

Each mirror is exposed as an async callable ``(query, signal)`` that yields a
list of ``VideoCandidate`` or ``None``. The parsers are pure so the quirks of
each API shape can be tested without a network.
"""

import asyncio
import re
from functools import partial
from typing import Any, Awaitable, Callable

import httpx

try:
    from backend.app.errors import SourceUnavailableError
    from backend.app.logging_config import get_logger
    from backend.app.models import VideoCandidate, thumbnail_url_for
except ModuleNotFoundError:
    from app.errors import SourceUnavailableError
    from app.logging_config import get_logger
    from app.models import VideoCandidate, thumbnail_url_for

logger = get_logger(__name__)

ProviderAdapter = Callable[[str, asyncio.Event], Awaitable[list[VideoCandidate] | None]]

PROVIDER_MAX_RESULTS = 25
SHORTS_MAX_SECONDS = 90
LIVE_STREAM_MIN_SECONDS = 3 * 60 * 60
PROVIDER_HEADERS = {
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
    "User-Agent": "Mozilla/5.0",
}
PIPED_WATCH_ID_RE = re.compile(r"[?&]v=([A-Za-z0-9_-]+)")


def _to_int(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def _to_text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _absolute_url(value: Any) -> str | None:
    if isinstance(value, str) and value.startswith(("http://", "https://")):
        return value
    return None


def is_short_or_live(title: str, duration_seconds: int, flagged_short: bool = False) -> bool:
    if flagged_short:
        return True
    lowered = title.lower()
    if "#shorts" in lowered or "#short " in lowered:
        return True
    if 0 < duration_seconds < SHORTS_MAX_SECONDS:
        return True
    return duration_seconds > LIVE_STREAM_MIN_SECONDS


def _pick_author_avatar(thumbs: Any) -> str | None:
    if not isinstance(thumbs, list) or not thumbs:
        return None
    last = thumbs[-1]
    if isinstance(last, dict):
        url = last.get("url")
        if isinstance(url, str) and url.startswith("//"):
            return f"https:{url}"
        return _absolute_url(url)
    return None


def parse_invidious_results(payload: Any) -> list[VideoCandidate] | None:
    """Map an Invidious ``/api/v1/search`` array to candidates.

    Returns ``None`` when the payload is not a list at all.
    """
    if not isinstance(payload, list):
        return None

    candidates: list[VideoCandidate] = []
    for record in payload:
        if not isinstance(record, dict):
            continue
        if record.get("type", "video") != "video":
            continue
        video_id = record.get("videoId")
        if not isinstance(video_id, str) or not video_id.strip():
            continue
        title = _to_text(record.get("title"), "Untitled")
        duration = _to_int(record.get("lengthSeconds"))
        if record.get("liveNow") or is_short_or_live(title, duration):
            continue

        candidates.append(
            VideoCandidate(
                title=title,
                author_name=_to_text(record.get("author"), "Unknown"),
                external_id=video_id,
                view_count=_to_int(record.get("viewCount")),
                published_label=_to_text(record.get("publishedText"), "Recently"),
                duration_seconds=duration,
                thumbnail_url=thumbnail_url_for(video_id.strip()),
                channel_id=record.get("authorId") or None,
                channel_avatar_url=_pick_author_avatar(record.get("authorThumbnails")),
            )
        )
        if len(candidates) >= PROVIDER_MAX_RESULTS:
            break
    return candidates


def parse_piped_results(payload: Any) -> list[VideoCandidate] | None:
    """Map a Piped ``/search`` object (``{"items": [...]}``) to candidates."""
    if not isinstance(payload, dict) or not isinstance(payload.get("items"), list):
        return None

    candidates: list[VideoCandidate] = []
    for record in payload["items"]:
        if not isinstance(record, dict):
            continue
        if record.get("type", "stream") != "stream":
            continue
        match = PIPED_WATCH_ID_RE.search(record.get("url") or "")
        if not match:
            continue
        video_id = match.group(1)
        title = _to_text(record.get("title"), "Untitled")
        raw_duration = record.get("duration")
        # Piped reports -1 for live streams.
        if isinstance(raw_duration, (int, float)) and raw_duration < 0:
            continue
        duration = _to_int(raw_duration)
        if is_short_or_live(title, duration, bool(record.get("isShort"))):
            continue

        uploader_url = record.get("uploaderUrl") or ""
        channel_id = uploader_url.rsplit("/", 1)[-1] if uploader_url.startswith("/channel/") else None

        candidates.append(
            VideoCandidate(
                title=title,
                author_name=_to_text(record.get("uploaderName"), "Unknown"),
                external_id=video_id,
                view_count=_to_int(record.get("views")),
                published_label=_to_text(record.get("uploadedDate"), "Recently"),
                duration_seconds=duration,
                thumbnail_url=thumbnail_url_for(video_id),
                channel_id=channel_id,
                channel_avatar_url=_absolute_url(record.get("uploaderAvatar")),
            )
        )
        if len(candidates) >= PROVIDER_MAX_RESULTS:
            break
    return candidates


async def fetch_json(client: httpx.AsyncClient, url: str, params: dict[str, Any], timeout: float) -> Any:
    try:
        response = await client.get(url, params=params, headers=PROVIDER_HEADERS, timeout=timeout)
    except httpx.HTTPError as exc:
        raise SourceUnavailableError(f"{url}: {exc.__class__.__name__}") from exc

    if response.status_code != 200:
        raise SourceUnavailableError(f"{url}: HTTP {response.status_code}")

    # Mirrors behind Cloudflare or in maintenance answer 200 with an HTML page.
    content_type = (response.headers.get("content-type") or "").lower()
    if "json" not in content_type:
        raise SourceUnavailableError(f"{url}: unexpected content-type {content_type or 'none'}")

    try:
        return response.json()
    except ValueError as exc:
        raise SourceUnavailableError(f"{url}: malformed JSON") from exc


async def search_invidious(
    client: httpx.AsyncClient,
    base_url: str,
    query: str,
    signal: asyncio.Event,
    timeout: float = 5.0,
) -> list[VideoCandidate] | None:
    if signal.is_set():
        return None
    try:
        payload = await fetch_json(
            client,
            f"{base_url.rstrip('/')}/api/v1/search",
            {"q": query, "type": "video", "sort_by": "relevance"},
            timeout,
        )
    except SourceUnavailableError as exc:
        logger.debug("source_unavailable", provider="invidious", base_url=base_url, reason=str(exc))
        return None
    return parse_invidious_results(payload)


async def search_piped(
    client: httpx.AsyncClient,
    base_url: str,
    query: str,
    signal: asyncio.Event,
    timeout: float = 5.0,
) -> list[VideoCandidate] | None:
    if signal.is_set():
        return None
    try:
        payload = await fetch_json(
            client,
            f"{base_url.rstrip('/')}/search",
            {"q": query, "filter": "videos"},
            timeout,
        )
    except SourceUnavailableError as exc:
        logger.debug("source_unavailable", provider="piped", base_url=base_url, reason=str(exc))
        return None
    return parse_piped_results(payload)


def build_provider_tiers(
    client: httpx.AsyncClient,
    invidious_instances: list[str],
    piped_instances: list[str],
    timeout: float = 5.0,
) -> list[list[ProviderAdapter]]:
    """Primary tier is every Invidious mirror, secondary every Piped mirror."""
    tiers: list[list[ProviderAdapter]] = []
    primary = [partial(search_invidious, client, base_url, timeout=timeout) for base_url in invidious_instances]
    secondary = [partial(search_piped, client, base_url, timeout=timeout) for base_url in piped_instances]
    for tier in (primary, secondary):
        if tier:
            tiers.append(tier)
    return tiers
