import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_INVIDIOUS_INSTANCES = [
    "https://inv.nadeko.net",
    "https://invidious.nerdvpn.de",
    "https://yewtu.be",
    "https://invidious.privacyredirect.com",
]
DEFAULT_PIPED_INSTANCES = [
    "https://pipedapi.kavin.rocks",
    "https://pipedapi.adminforge.de",
    "https://api.piped.private.coffee",
]
DEFAULT_CATALOG_FILE = Path(__file__).resolve().parents[1] / "data" / "fallback_catalog.json"


class SearchSettings(BaseModel):
    openrouter_api_key: str | None = None
    openrouter_model: str = "google/gemini-2.5-flash"
    openrouter_timeout_seconds: float = 10.0
    invidious_instances: list[str] = Field(default_factory=lambda: list(DEFAULT_INVIDIOUS_INSTANCES))
    piped_instances: list[str] = Field(default_factory=lambda: list(DEFAULT_PIPED_INSTANCES))
    race_timeout_seconds: float = 5.0
    probe_timeout_seconds: float = 4.0
    # YouTube serves a ~1KB grey placeholder for deleted/private videos.
    thumbnail_min_bytes: int = 1500
    min_results: int = 20
    max_results: int = 25
    validate_cap: int = 40
    max_per_channel: int = 2
    fallback_catalog_file: Path = DEFAULT_CATALOG_FILE


def parse_list_env(name: str, default: list[str]) -> list[str]:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return list(default)
    values = [value.strip().rstrip("/") for value in raw.split(",") if value.strip()]
    if not values:
        return list(default)
    return values


def _float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def load_settings() -> SearchSettings:
    load_dotenv()
    return SearchSettings(
        openrouter_api_key=(os.getenv("OPENROUTER_API_KEY") or "").strip() or None,
        openrouter_model=os.getenv("OPENROUTER_MODEL") or "google/gemini-2.5-flash",
        invidious_instances=parse_list_env("INVIDIOUS_INSTANCES", DEFAULT_INVIDIOUS_INSTANCES),
        piped_instances=parse_list_env("PIPED_INSTANCES", DEFAULT_PIPED_INSTANCES),
        race_timeout_seconds=_float_env("RACE_TIMEOUT_SECONDS", 5.0),
        probe_timeout_seconds=_float_env("PROBE_TIMEOUT_SECONDS", 4.0),
        thumbnail_min_bytes=_int_env("THUMBNAIL_MIN_BYTES", 1500),
        min_results=_int_env("SEARCH_MIN_RESULTS", 20),
        max_results=_int_env("SEARCH_MAX_RESULTS", 25),
        validate_cap=_int_env("SEARCH_VALIDATE_CAP", 40),
        max_per_channel=_int_env("MAX_PER_CHANNEL", 2),
        fallback_catalog_file=Path(os.getenv("FALLBACK_CATALOG_FILE") or DEFAULT_CATALOG_FILE),
    )
