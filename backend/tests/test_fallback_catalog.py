import json
import random

import pytest

from backend.app.config import DEFAULT_CATALOG_FILE
from backend.app.errors import FallbackCatalogError
from backend.app.models import VideoCandidate
from backend.app.services.fallback_catalog import (
    fallback_candidates,
    load_fallback_catalog,
    parse_catalog,
    shuffle_candidates,
)


def test_bundled_catalog_has_expected_categories():
    catalog = load_fallback_catalog(DEFAULT_CATALOG_FILE)
    for category in ("fitness", "gaming", "cooking", "tech", "default"):
        assert len(catalog[category]) >= 1
    assert all(c.thumbnail_url.startswith("https://i.ytimg.com/vi/") for c in catalog["default"])


def test_catalog_is_read_only():
    catalog = load_fallback_catalog(DEFAULT_CATALOG_FILE)
    with pytest.raises(TypeError):
        catalog["fitness"] = ()


def test_fallback_same_set_different_order():
    catalog = load_fallback_catalog(DEFAULT_CATALOG_FILE)
    first = fallback_candidates(catalog, "fitness", random.Random(1))
    second = fallback_candidates(catalog, "fitness", random.Random(2))

    assert {c.external_id for c in first} == {c.external_id for c in catalog["fitness"]}
    assert {c.external_id for c in first} == {c.external_id for c in second}
    assert [c.external_id for c in first] != [c.external_id for c in second]


def test_fallback_order_varies_across_calls():
    catalog = load_fallback_catalog(DEFAULT_CATALOG_FILE)
    orders = {tuple(c.external_id for c in fallback_candidates(catalog, "gaming")) for _ in range(10)}
    assert len(orders) > 1


def test_unknown_category_uses_default():
    catalog = load_fallback_catalog(DEFAULT_CATALOG_FILE)
    result = fallback_candidates(catalog, "underwater basket weaving", random.Random(0))
    assert {c.external_id for c in result} == {c.external_id for c in catalog["default"]}


def test_fallback_returns_copies():
    catalog = load_fallback_catalog(DEFAULT_CATALOG_FILE)
    result = fallback_candidates(catalog, "tech", random.Random(0))
    result[0].title = "mutated"
    assert all(c.title != "mutated" for c in catalog["tech"])


def test_fallback_skips_excluded_ids_with_default_floor():
    catalog = parse_catalog(
        {
            "categories": {
                "gaming": [{"external_id": "game1"}, {"external_id": "game2"}],
                "default": [{"external_id": "def1"}],
            }
        }
    )
    assert [c.external_id for c in fallback_candidates(catalog, "gaming", exclude_ids={"game2"})] == ["game1"]
    assert [c.external_id for c in fallback_candidates(catalog, "gaming", exclude_ids={"game1", "game2"})] == ["def1"]
    assert [c.external_id for c in fallback_candidates(catalog, "gaming", exclude_ids={"game1", "game2", "def1"})] == ["def1"]


def test_shuffle_does_not_touch_input():
    items = [VideoCandidate(external_id=f"id{i}") for i in range(6)]
    snapshot = list(items)
    shuffled = shuffle_candidates(items, random.Random(3))
    assert items == snapshot
    assert sorted(c.external_id for c in shuffled) == sorted(c.external_id for c in items)


def test_parse_catalog_requires_default():
    raw = {"categories": {"fitness": [{"external_id": "oAPCPjnU1wA"}]}}
    with pytest.raises(FallbackCatalogError):
        parse_catalog(raw)


def test_parse_catalog_rejects_bad_entries():
    raw = {"categories": {"default": [{"title": "no id"}]}}
    with pytest.raises(FallbackCatalogError):
        parse_catalog(raw)


def test_load_catalog_from_custom_file(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(
        json.dumps({"categories": {"default": [{"external_id": "dQw4w9WgXcQ", "title": "Never Gonna"}]}}),
        encoding="utf-8",
    )
    catalog = load_fallback_catalog(path)
    assert catalog["default"][0].thumbnail_url == "https://i.ytimg.com/vi/dQw4w9WgXcQ/mqdefault.jpg"
    assert catalog["default"][0].author_name == "Unknown"


def test_load_catalog_missing_file(tmp_path):
    with pytest.raises(FallbackCatalogError):
        load_fallback_catalog(tmp_path / "missing.json")
