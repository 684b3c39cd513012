"""First-success race over interchangeable search providers."""

import asyncio
from typing import Awaitable, Callable

try:
    from backend.app.logging_config import get_logger
    from backend.app.models import VideoCandidate
    from backend.app.services.providers import ProviderAdapter
except ModuleNotFoundError:
    from app.logging_config import get_logger
    from app.models import VideoCandidate
    from app.services.providers import ProviderAdapter

logger = get_logger(__name__)


async def _run_provider(
    provider: ProviderAdapter,
    query: str,
    signal: asyncio.Event,
) -> list[VideoCandidate] | None:
    try:
        result = await provider(query, signal)
    except Exception as exc:
        logger.debug("provider_failed", error=repr(exc))
        return None
    if not isinstance(result, list) or not result:
        return None
    return result


async def race(
    providers: list[ProviderAdapter],
    query: str,
    timeout_seconds: float,
    signal: asyncio.Event | None = None,
) -> list[VideoCandidate] | None:
    """Return the first non-empty provider result, or ``None``.

    All providers start together and share ``signal``. It is set, and every
    task still running is cancelled, once a winner is found or
    ``timeout_seconds`` elapses. A provider returning ``None`` or ``[]`` never
    ends the race early.
    """
    if not providers:
        return None
    if signal is None:
        signal = asyncio.Event()

    tasks = [asyncio.create_task(_run_provider(provider, query, signal)) for provider in providers]
    winner: list[VideoCandidate] | None = None
    try:
        for next_done in asyncio.as_completed(tasks, timeout=timeout_seconds):
            try:
                result = await next_done
            except asyncio.TimeoutError:
                logger.info("race_timeout", query=query, timeout_seconds=timeout_seconds, providers=len(tasks))
                break
            if result:
                winner = result
                break
    finally:
        signal.set()
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    if winner is None:
        logger.info("race_exhausted", query=query, providers=len(tasks))
    return winner


async def race_tiers(
    tiers: list[list[ProviderAdapter]],
    query: str,
    timeout_seconds: float,
    accept: Callable[[list[VideoCandidate]], Awaitable[list[VideoCandidate]]] | None = None,
) -> list[VideoCandidate] | None:
    """Race each tier in turn until one yields a usable result.

    ``accept`` post-processes a tier's winning result (e.g. thumbnail
    validation). An empty accepted result escalates to the next tier.
    """
    for index, providers in enumerate(tiers):
        result = await race(providers, query, timeout_seconds)
        if result is None:
            continue
        if accept is not None:
            result = await accept(result)
            if not result:
                logger.info("tier_rejected", query=query, tier=index)
                continue
        logger.debug("race_won", query=query, tier=index, count=len(result))
        return result
    return None
