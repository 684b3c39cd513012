import json
import random
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping

from pydantic import ValidationError

try:
    from backend.app.config import DEFAULT_CATALOG_FILE
    from backend.app.errors import FallbackCatalogError
    from backend.app.models import VideoCandidate
except ModuleNotFoundError:
    from app.config import DEFAULT_CATALOG_FILE
    from app.errors import FallbackCatalogError
    from app.models import VideoCandidate

FALLBACK_DEFAULT_CATEGORY = "default"

FallbackCatalog = Mapping[str, tuple[VideoCandidate, ...]]


def parse_catalog(raw: object) -> FallbackCatalog:
    if not isinstance(raw, dict) or not isinstance(raw.get("categories"), dict):
        raise FallbackCatalogError("fallback catalog must be an object with a 'categories' map")

    categories: dict[str, tuple[VideoCandidate, ...]] = {}
    for category, entries in raw["categories"].items():
        if not isinstance(category, str) or not isinstance(entries, list):
            raise FallbackCatalogError(f"fallback catalog category {category!r} must map to a list")
        try:
            categories[category.lower()] = tuple(VideoCandidate(**entry) for entry in entries)
        except (TypeError, ValidationError) as exc:
            raise FallbackCatalogError(f"invalid entry in fallback catalog category {category!r}") from exc

    if not categories.get(FALLBACK_DEFAULT_CATEGORY):
        raise FallbackCatalogError("fallback catalog needs a non-empty 'default' category")
    return MappingProxyType(categories)


@lru_cache(maxsize=None)
def load_fallback_catalog(path: Path = DEFAULT_CATALOG_FILE) -> FallbackCatalog:
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise FallbackCatalogError(f"could not read fallback catalog {path}") from exc
    return parse_catalog(raw)


def shuffle_candidates(candidates, rng: random.Random | None = None) -> list[VideoCandidate]:
    """Fisher-Yates shuffle over a copy."""
    rng = rng or random.Random()
    shuffled = list(candidates)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def fallback_candidates(
    catalog: FallbackCatalog,
    category: str,
    rng: random.Random | None = None,
    exclude_ids: Iterable[str] | None = None,
) -> list[VideoCandidate]:
    """Shuffled copies of a category's entries, minus ``exclude_ids``.

    Unknown categories, or ones the exclusions would empty, use ``default``.
    If even that would be empty the unfiltered ``default`` entries are
    returned, so the result is never empty.
    """
    excluded = set(exclude_ids or ())
    default_entries = catalog[FALLBACK_DEFAULT_CATEGORY]
    entries = [c for c in catalog.get((category or "").lower(), ()) if c.external_id not in excluded]
    if not entries:
        entries = [c for c in default_entries if c.external_id not in excluded] or list(default_entries)
    return [candidate.model_copy() for candidate in shuffle_candidates(entries, rng)]
