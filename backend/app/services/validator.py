import asyncio
import re
from typing import Awaitable, Callable, Iterable

import httpx

try:
    from backend.app.logging_config import get_logger
    from backend.app.models import VideoCandidate
except ModuleNotFoundError:
    from app.logging_config import get_logger
    from app.models import VideoCandidate

logger = get_logger(__name__)

ThumbnailProbe = Callable[[str], Awaitable[bool]]

DEFAULT_MIN_THUMBNAIL_BYTES = 1500
VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")


def is_valid_video_id(video_id: str | None) -> bool:
    return bool(video_id) and bool(VIDEO_ID_RE.match(video_id))


async def probe_thumbnail(
    client: httpx.AsyncClient,
    url: str,
    min_bytes: int = DEFAULT_MIN_THUMBNAIL_BYTES,
    timeout: float = 4.0,
) -> bool:
    """HEAD the thumbnail and compare its Content-Length to ``min_bytes``.

    YouTube answers 200 with a tiny grey placeholder for removed videos, so a
    successful status alone is not enough.
    """
    try:
        response = await client.head(url, timeout=timeout, follow_redirects=True)
    except httpx.HTTPError:
        return False
    if not response.is_success:
        return False
    try:
        content_length = int(response.headers.get("content-length") or 0)
    except ValueError:
        return False
    return content_length > min_bytes


def make_thumbnail_probe(client: httpx.AsyncClient, min_bytes: int, timeout: float) -> ThumbnailProbe:
    async def probe(url: str) -> bool:
        return await probe_thumbnail(client, url, min_bytes=min_bytes, timeout=timeout)

    return probe


async def _safe_probe(probe: ThumbnailProbe, url: str) -> bool:
    try:
        return bool(await probe(url))
    except Exception as exc:
        logger.debug("thumbnail_probe_failed", url=url, error=repr(exc))
        return False


async def validate(
    candidates: list[VideoCandidate],
    probe: ThumbnailProbe,
    exclude_ids: Iterable[str] | None = None,
) -> list[VideoCandidate]:
    excluded = set(exclude_ids or ())
    to_check = [c for c in candidates if c.external_id not in excluded]
    if not to_check:
        return []

    results = await asyncio.gather(*(_safe_probe(probe, c.thumbnail_url) for c in to_check))
    valid = [candidate for candidate, ok in zip(to_check, results) if ok]

    dropped = len(candidates) - len(valid)
    if dropped:
        logger.info("thumbnails_filtered", checked=len(to_check), dropped=dropped, kept=len(valid))
    return valid
