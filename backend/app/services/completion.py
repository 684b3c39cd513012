"""Diversity and completion policy for search results.

``complete`` tops up a short result set from a fixed list of broader queries
and then caps how many candidates a single channel may contribute.
"""

from typing import Awaitable, Callable, Iterable

try:
    from backend.app.logging_config import get_logger
    from backend.app.models import VideoCandidate
except ModuleNotFoundError:
    from app.logging_config import get_logger
    from app.models import VideoCandidate

logger = get_logger(__name__)

CandidateFetch = Callable[[str], Awaitable[list[VideoCandidate]]]

DEFAULT_MAX_PER_CHANNEL = 2

# Checked in order; first match wins.
CATEGORY_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("fitness", ("fitness", "workout", "gym", "exercise", "yoga", "hiit")),
    ("gaming", ("game", "gaming", "minecraft", "fortnite", "gta", "elden")),
    ("cooking", ("cook", "recipe", "food", "meal", "kitchen", "chef")),
    ("tech", ("tech", "phone", "iphone", "laptop", "computer", "review", "unbox")),
]

BROADER_SEARCH_TERMS: dict[str, list[str]] = {
    "tech": ["best tech gadgets 2024", "smartphone review", "tech unboxing", "laptop review"],
    "technology": ["technology review 2024", "gadgets review", "tech news"],
    "gaming": ["best games 2024", "gaming review", "gameplay walkthrough"],
    "cooking": ["easy recipes", "cooking tutorial", "chef recipes"],
    "food": ["food recipes", "cooking at home", "best recipes"],
    "fitness": ["workout routine", "home workout", "fitness training"],
    "travel": ["travel vlog", "best destinations", "travel guide"],
    "music": ["music video", "top songs", "music playlist"],
    "education": ["tutorial", "how to learn", "educational video"],
    "entertainment": ["entertainment news", "viral videos", "trending videos"],
    "lifestyle": ["lifestyle vlog", "daily routine", "life tips"],
    "business": ["business tips", "entrepreneur advice", "money tips"],
}
DEFAULT_BROADER_SEARCH_TERMS = ["trending videos", "popular videos 2024", "best of youtube"]


def detect_category(query: str) -> str:
    lowered = (query or "").lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "default"


def broader_search_terms(category: str, original_keywords: str) -> list[str]:
    searches = BROADER_SEARCH_TERMS.get((category or "").lower(), DEFAULT_BROADER_SEARCH_TERMS)
    original = (original_keywords or "").strip().lower()
    return [term for term in searches if term.lower() != original]


def merge_unique(
    existing: list[VideoCandidate],
    incoming: Iterable[VideoCandidate],
    limit: int | None = None,
) -> list[VideoCandidate]:
    merged = list(existing)
    seen = {candidate.external_id for candidate in merged}
    for candidate in incoming:
        if limit is not None and len(merged) >= limit:
            break
        if candidate.external_id in seen:
            continue
        seen.add(candidate.external_id)
        merged.append(candidate)
    return merged


def dedupe_by_id(candidates: Iterable[VideoCandidate]) -> list[VideoCandidate]:
    return merge_unique([], candidates)


def cap_per_channel(
    candidates: Iterable[VideoCandidate],
    max_per_channel: int = DEFAULT_MAX_PER_CHANNEL,
) -> list[VideoCandidate]:
    counts: dict[str, int] = {}
    kept: list[VideoCandidate] = []
    for candidate in candidates:
        channel = candidate.author_name.lower()
        count = counts.get(channel, 0)
        if count >= max_per_channel:
            continue
        counts[channel] = count + 1
        kept.append(candidate)
    return kept


async def complete(
    initial: list[VideoCandidate],
    category: str,
    min_count: int,
    broader_queries: list[str] | None,
    fetch: CandidateFetch,
    max_per_channel: int = DEFAULT_MAX_PER_CHANNEL,
) -> list[VideoCandidate]:
    """Top up ``initial`` to ``min_count`` using ``broader_queries`` in order.

    Each broader query goes through ``fetch`` (race then validate); only
    unseen ids are appended. Stops as soon as ``min_count`` is reached or the
    queries run out, so a short result is a valid outcome.
    """
    results = dedupe_by_id(initial)
    if broader_queries is None:
        broader_queries = broader_search_terms(category, "")

    if len(results) < min_count:
        logger.info("completion_need_more", have=len(results), want=min_count, queries=len(broader_queries))
        for query in broader_queries:
            if len(results) >= min_count:
                break
            try:
                additional = await fetch(query)
            except Exception as exc:
                logger.warning("broader_search_failed", query=query, error=repr(exc))
                continue
            results = merge_unique(results, additional or [], limit=min_count)
        if len(results) < min_count:
            logger.info("completion_exhausted", have=len(results), want=min_count)

    capped = cap_per_channel(results, max_per_channel)
    if len(capped) != len(results):
        logger.debug("channel_cap_applied", before=len(results), after=len(capped))
    return capped
