"""Escalation driver for preview video search.

Tiers are tried in order: primary providers, secondary providers, broader
queries, then the static fallback catalog. ``search_videos`` never raises;
the worst outcome is a fallback result, empty only if the catalog file is
unreadable.
"""

import asyncio
import random
from typing import Iterable

import httpx

try:
    from backend.app.config import SearchSettings
    from backend.app.errors import FallbackCatalogError
    from backend.app.logging_config import get_logger
    from backend.app.models import KeywordResult, SearchResult, VideoCandidate
    from backend.app.services.completion import (
        broader_search_terms,
        complete,
        dedupe_by_id,
        detect_category,
    )
    from backend.app.services.fallback_catalog import (
        FallbackCatalog,
        fallback_candidates,
        load_fallback_catalog,
    )
    from backend.app.services.providers import ProviderAdapter, build_provider_tiers
    from backend.app.services.query_normalizer import (
        fallback_keywords,
        fallback_metadata,
        generate_keywords,
        generate_video_metadata,
        normalize,
    )
    from backend.app.services.racer import race_tiers
    from backend.app.services.validator import ThumbnailProbe, make_thumbnail_probe, validate
except ModuleNotFoundError:
    from app.config import SearchSettings
    from app.errors import FallbackCatalogError
    from app.logging_config import get_logger
    from app.models import KeywordResult, SearchResult, VideoCandidate
    from app.services.completion import (
        broader_search_terms,
        complete,
        dedupe_by_id,
        detect_category,
    )
    from app.services.fallback_catalog import (
        FallbackCatalog,
        fallback_candidates,
        load_fallback_catalog,
    )
    from app.services.providers import ProviderAdapter, build_provider_tiers
    from app.services.query_normalizer import (
        fallback_keywords,
        fallback_metadata,
        generate_keywords,
        generate_video_metadata,
        normalize,
    )
    from app.services.racer import race_tiers
    from app.services.validator import ThumbnailProbe, make_thumbnail_probe, validate

logger = get_logger(__name__)

DEFAULT_QUERY = "trending viral videos 2025"
AUTO_GENERATED_PROMPT = "(auto-generated)"


def resolve_query(prompt: str | None) -> str:
    trimmed = (prompt or "").strip()
    if not trimmed or trimmed == AUTO_GENERATED_PROMPT:
        return DEFAULT_QUERY
    return trimmed


def resolve_category(keyword_result: KeywordResult, normalized_query: str) -> str:
    if not keyword_result.fallback and keyword_result.category not in ("", "general"):
        return keyword_result.category
    return detect_category(normalized_query)


def build_broader_queries(
    category: str,
    normalized_query: str,
    keyword_result: KeywordResult,
) -> list[str]:
    ai_terms = [] if keyword_result.fallback else keyword_result.search_terms
    queries: list[str] = []
    seen = {normalized_query.strip().lower()}
    for term in [*ai_terms, *broader_search_terms(category, normalized_query)]:
        key = term.strip().lower()
        if not key or key in seen:
            continue
        seen.add(key)
        queries.append(term.strip())
    return queries


async def fetch_validated(
    tiers: list[list[ProviderAdapter]],
    query: str,
    probe: ThumbnailProbe,
    settings: SearchSettings,
    exclude_ids: set[str],
) -> list[VideoCandidate]:
    async def accept(raw: list[VideoCandidate]) -> list[VideoCandidate]:
        capped = dedupe_by_id(raw)[: settings.validate_cap]
        return await validate(capped, probe, exclude_ids)

    return await race_tiers(tiers, query, settings.race_timeout_seconds, accept=accept) or []


async def _search_live(
    normalized_query: str,
    category: str,
    keyword_result: KeywordResult,
    client: httpx.AsyncClient,
    settings: SearchSettings,
    exclude_ids: set[str],
    tiers: list[list[ProviderAdapter]] | None,
    probe: ThumbnailProbe | None,
) -> list[VideoCandidate]:
    if tiers is None:
        tiers = build_provider_tiers(
            client,
            settings.invidious_instances,
            settings.piped_instances,
            timeout=settings.race_timeout_seconds,
        )
    if probe is None:
        probe = make_thumbnail_probe(client, settings.thumbnail_min_bytes, settings.probe_timeout_seconds)

    async def fetch(one_query: str) -> list[VideoCandidate]:
        return await fetch_validated(tiers, one_query, probe, settings, exclude_ids)

    initial = await fetch(normalized_query)
    logger.info("initial_search_done", query=normalized_query, count=len(initial))

    completed = await complete(
        initial,
        category,
        settings.min_results,
        build_broader_queries(category, normalized_query, keyword_result),
        fetch,
        max_per_channel=settings.max_per_channel,
    )
    return completed[: settings.max_results]


async def search_videos(
    prompt: str | None,
    settings: SearchSettings,
    *,
    exclude_ids: Iterable[str] | None = None,
    client: httpx.AsyncClient | None = None,
    tiers: list[list[ProviderAdapter]] | None = None,
    probe: ThumbnailProbe | None = None,
    catalog: FallbackCatalog | None = None,
    rng: random.Random | None = None,
) -> SearchResult:
    query = resolve_query(prompt)
    excluded = set(exclude_ids or ())

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(follow_redirects=True)
    try:
        try:
            keyword_result, metadata = await asyncio.gather(
                generate_keywords(query, client, settings),
                generate_video_metadata(query, client, settings),
            )
        except Exception:
            logger.exception("keyword_generation_crashed", query=query)
            keyword_result, metadata = fallback_keywords(query), fallback_metadata(query)
        normalized_query = keyword_result.keywords if not keyword_result.fallback else normalize(query)
        category = resolve_category(keyword_result, normalized_query)
        log = logger.bind(query=query, normalized_query=normalized_query, category=category)

        try:
            candidates = await _search_live(
                normalized_query,
                category,
                keyword_result,
                client,
                settings,
                excluded,
                tiers,
                probe,
            )
        except Exception:
            log.exception("live_search_failed")
            candidates = []
    finally:
        if owns_client:
            await client.aclose()

    used_fallback = not candidates
    if used_fallback:
        log.warning("all_sources_exhausted_using_fallback")
        try:
            if catalog is None:
                catalog = load_fallback_catalog(settings.fallback_catalog_file)
            candidates = fallback_candidates(catalog, category, rng, excluded)[: settings.max_results]
        except FallbackCatalogError:
            log.exception("fallback_catalog_unavailable")
            candidates = []

    log.info("search_complete", count=len(candidates), used_fallback=used_fallback)
    return SearchResult(
        original_query=query,
        normalized_query=normalized_query,
        category=category,
        candidates=candidates,
        used_fallback=used_fallback,
        ai_optimized=not keyword_result.fallback,
        generated_metadata=metadata,
    )
