import os
import time
import uuid
from collections import deque
from typing import Any

import httpx
import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

try:
    from backend.app.config import load_settings, parse_list_env
    from backend.app.logging_config import get_logger, setup_logging
    from backend.app.models import KeywordRequest, SearchRequest, ValidateRequest, thumbnail_url_for
    from backend.app.services.aggregator import resolve_query, search_videos
    from backend.app.services.fallback_catalog import load_fallback_catalog
    from backend.app.services.query_normalizer import generate_keywords
    from backend.app.services.validator import is_valid_video_id
except ModuleNotFoundError:
    from app.config import load_settings, parse_list_env
    from app.logging_config import get_logger, setup_logging
    from app.models import KeywordRequest, SearchRequest, ValidateRequest, thumbnail_url_for
    from app.services.aggregator import resolve_query, search_videos
    from app.services.fallback_catalog import load_fallback_catalog
    from app.services.query_normalizer import generate_keywords
    from app.services.validator import is_valid_video_id


# ---------------------------
# Very simple in-memory cache
# ---------------------------

CACHE: dict[str, tuple[float, Any]] = {}
CACHE_TTL_SECONDS = 60 * 30  # 30 minutes
FALLBACK_CACHE_TTL_SECONDS = 60  # retry live sources soon after a fallback

API_RATE_LIMIT_BUCKETS: dict[str, deque] = {}
API_RATE_LIMIT_WINDOW_SECONDS = 60
API_RATE_LIMIT_MAX_REQUESTS = 30


def cache_get(key: str):
    hit = CACHE.get(key)
    if not hit:
        return None
    expires_at, value = hit
    if time.time() > expires_at:
        CACHE.pop(key, None)
        return None
    return value


def cache_set(key: str, value: Any):
    CACHE[key] = (time.time() + CACHE_TTL_SECONDS, value)


def cache_set_custom(key: str, value: Any, ttl: int):
    CACHE[key] = (time.time() + ttl, value)


def get_client_ip(request: Request) -> str:
    forwarded = (request.headers.get("x-forwarded-for") or "").strip()
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_api_rate_limit(request: Request, scope: str = "search") -> None:
    now_ts = time.time()
    key = f"{scope}:{get_client_ip(request)}"
    bucket = API_RATE_LIMIT_BUCKETS.get(key)
    if bucket is None:
        bucket = deque()
        API_RATE_LIMIT_BUCKETS[key] = bucket

    cutoff = now_ts - API_RATE_LIMIT_WINDOW_SECONDS
    while bucket and bucket[0] < cutoff:
        bucket.popleft()

    if len(bucket) >= API_RATE_LIMIT_MAX_REQUESTS:
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please wait a minute and try again.",
        )

    bucket.append(now_ts)


def search_cache_key(query: str, exclude_ids: list[str]) -> str:
    excluded = ",".join(sorted(set(exclude_ids)))
    return f"search:{query.lower()}:{excluded}"


# ---------------------------
# App setup
# ---------------------------

load_dotenv()
setup_logging()
logger = get_logger(__name__)

SETTINGS = load_settings()
if not SETTINGS.openrouter_api_key:
    logger.warning("openrouter_key_missing", detail="keyword generation will use naive extraction")


def parse_cors_origins() -> tuple[list[str], bool]:
    raw = (os.getenv("CORS_ALLOWED_ORIGINS") or "").strip()
    if raw == "*":
        return ["*"], False
    return parse_list_env("CORS_ALLOWED_ORIGINS", ["http://localhost:3000"]), True


app = FastAPI()

cors_origins, cors_credentials = parse_cors_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_request_context(request: Request, call_next):
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request.headers.get("x-request-id") or uuid.uuid4().hex[:12],
        path=request.url.path,
    )
    return await call_next(request)


@app.on_event("startup")
def on_startup_load_catalog():
    # A broken catalog file must stop the deploy, not the first fallback.
    catalog = load_fallback_catalog(SETTINGS.fallback_catalog_file)
    logger.info("fallback_catalog_loaded", categories=sorted(catalog.keys()))


# ---------------------------
# Endpoints
# ---------------------------

async def run_search(query: str, exclude_ids: list[str]) -> dict[str, Any]:
    resolved = resolve_query(query)
    cache_key = search_cache_key(resolved, exclude_ids)
    cached = cache_get(cache_key)
    if cached is not None:
        return cached

    result = await search_videos(resolved, SETTINGS, exclude_ids=exclude_ids)
    resp = result.model_dump()
    resp["count"] = len(result.candidates)
    if result.used_fallback:
        cache_set_custom(cache_key, resp, FALLBACK_CACHE_TTL_SECONDS)
    else:
        cache_set(cache_key, resp)
    return resp


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/youtube/search")
async def search_get(request: Request, q: str = ""):
    """
    Preview videos for a thumbnail prompt.
    Never fails on upstream outages; check used_fallback instead.
    """
    enforce_api_rate_limit(request, scope="search")
    return await run_search(q, [])


@app.post("/youtube/search")
async def search_post(payload: SearchRequest, request: Request):
    enforce_api_rate_limit(request, scope="search")
    exclude_ids = [video_id.strip() for video_id in payload.exclude_ids if video_id and video_id.strip()]
    return await run_search(payload.query, exclude_ids)


@app.post("/youtube/validate")
def validate_videos(payload: ValidateRequest, request: Request):
    if not payload.videos:
        raise HTTPException(status_code=400, detail="videos must contain at least one item")
    enforce_api_rate_limit(request, scope="validate")

    validated = [
        {
            "video_id": video.video_id,
            "title": video.title or "Untitled",
            "author": video.author or "Unknown",
            "view_count": int(video.view_count or 0),
            "published_text": video.published_text or "Recently",
            "length_seconds": int(video.length_seconds or 0),
            "thumbnail_url": thumbnail_url_for(video.video_id),
            "is_valid": True,
        }
        for video in payload.videos
        if is_valid_video_id(video.video_id)
    ]
    logger.info("videos_validated", valid=len(validated), total=len(payload.videos))
    return {"videos": validated}


@app.get("/youtube/validate")
def validate_video(video_id: str = ""):
    video_id = video_id.strip()
    if not video_id:
        raise HTTPException(status_code=400, detail="video_id is required")
    if not is_valid_video_id(video_id):
        raise HTTPException(status_code=400, detail="Invalid video ID format")
    return {
        "video_id": video_id,
        "title": "Unknown",
        "author": "Unknown",
        "thumbnail_url": thumbnail_url_for(video_id),
        "is_valid": True,
    }


@app.post("/ai/keywords")
async def ai_keywords(payload: KeywordRequest, request: Request):
    prompt = (payload.prompt or "").strip()
    if not prompt:
        raise HTTPException(status_code=400, detail="prompt is required")
    enforce_api_rate_limit(request, scope="keywords")

    async with httpx.AsyncClient() as client:
        result = await generate_keywords(prompt, client, SETTINGS)
    resp = result.model_dump()
    resp["original_prompt"] = prompt
    return resp
