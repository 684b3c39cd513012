from __future__ import annotations

import argparse
import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import requests

DEFAULT_CATALOG = Path(__file__).resolve().parents[1] / "data" / "fallback_catalog.json"
THUMBNAIL_URL = "https://i.ytimg.com/vi/{video_id}/mqdefault.jpg"
DEFAULT_MIN_BYTES = 1500
REQUIRED_CATEGORIES = ("default",)


def thumbnail_is_live(session: requests.Session, url: str, min_bytes: int, timeout: int = 10) -> bool:
    try:
        response = session.head(url, timeout=timeout, allow_redirects=True)
    except requests.RequestException:
        return False
    if response.status_code != 200:
        return False
    try:
        return int(response.headers.get("content-length") or 0) > min_bytes
    except ValueError:
        return False


def refresh_category(
    session: requests.Session,
    entries: list[dict[str, Any]],
    min_bytes: int,
) -> tuple[list[dict[str, Any]], list[str]]:
    kept: list[dict[str, Any]] = []
    dropped: list[str] = []
    for entry in entries:
        video_id = entry.get("external_id")
        if not isinstance(video_id, str) or not video_id:
            continue
        url = THUMBNAIL_URL.format(video_id=video_id)
        if thumbnail_is_live(session, url, min_bytes):
            kept.append({**entry, "thumbnail_url": url})
        else:
            dropped.append(video_id)
        time.sleep(0.05)
    return kept, dropped


def main() -> int:
    parser = argparse.ArgumentParser(description="Drop fallback catalog entries whose thumbnails are gone.")
    parser.add_argument("--catalog", type=Path, default=DEFAULT_CATALOG)
    parser.add_argument("--output", type=Path, default=None)
    parser.add_argument("--min-bytes", type=int, default=DEFAULT_MIN_BYTES)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    raw = json.loads(args.catalog.read_text(encoding="utf-8"))
    categories: dict[str, list[dict[str, Any]]] = raw.get("categories") or {}

    refreshed: dict[str, list[dict[str, Any]]] = {}
    with requests.Session() as session:
        session.headers.update({"User-Agent": "Mozilla/5.0"})
        for category, entries in categories.items():
            kept, dropped = refresh_category(session, entries, args.min_bytes)
            refreshed[category] = kept
            print(f"{category}: kept {len(kept)}, dropped {len(dropped)}")
            for video_id in dropped:
                print(f"  - {video_id}")

    for category in REQUIRED_CATEGORIES:
        if not refreshed.get(category):
            raise RuntimeError(f"Refusing to write a catalog with an empty '{category}' category.")

    if args.dry_run:
        return 0

    output_path = args.output or args.catalog
    output = {
        "updated_at": datetime.now(timezone.utc).isoformat(),
        "categories": refreshed,
    }
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(output, indent=2, ensure_ascii=False), encoding="utf-8")
    print(f"Wrote fallback catalog: {output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
