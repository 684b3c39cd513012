import re

import httpx

try:
    from backend.app.config import SearchSettings
    from backend.app.errors import UpstreamMetadataError
    from backend.app.logging_config import get_logger
    from backend.app.models import GeneratedMetadata, KeywordResult
    from backend.app.services.openrouter import chat_completion_json
except ModuleNotFoundError:
    from app.config import SearchSettings
    from app.errors import UpstreamMetadataError
    from app.logging_config import get_logger
    from app.models import GeneratedMetadata, KeywordResult
    from app.services.openrouter import chat_completion_json

logger = get_logger(__name__)

MAX_KEYWORD_TOKENS = 5
MAX_SEARCH_TERMS = 20
PUNCTUATION_RE = re.compile(r"[^\w\s]")

STOP_WORDS = frozenset({
    "a", "an", "the", "with", "for", "and", "or", "but", "in", "on", "at", "to",
    "is", "are", "was", "were", "be", "been", "being", "have", "has", "had",
    "do", "does", "did", "will", "would", "could", "should", "may", "might",
    "must", "shall", "can", "need", "dare", "ought", "used", "i", "me", "my",
    "myself", "we", "our", "ours", "you", "your", "yours", "he", "him", "his",
    "she", "her", "hers", "it", "its", "they", "them", "their", "theirs",
    "create", "make", "generate", "show", "display", "want", "like", "please",
    "thumbnail", "thumbnails", "video", "videos", "youtube", "image", "picture",
    "about", "that", "this", "these", "those", "what", "which", "who", "whom",
    "how", "when", "where", "why", "all", "each", "every", "both", "few",
    "more", "most", "other", "some", "such", "no", "nor", "not", "only", "own",
    "same", "so", "than", "too", "very", "just", "also", "now", "here", "there",
    # style descriptors
    "3d", "pixar", "style", "character", "animated", "animation", "realistic",
    "anime", "cartoon", "illustration", "render", "rendered", "cgi",
    # hype words
    "viral", "clickbait", "eye-catching", "attention", "grabbing", "catchy",
    "attractive", "stunning", "amazing", "epic", "awesome", "best", "perfect",
})

KEYWORDS_SYSTEM_PROMPT = """You are a YouTube content niche detection expert. Identify the VIDEO CONTENT NICHE of a thumbnail request and generate search keywords for it.

Users are asking to CREATE thumbnails. Ignore all meta-language about thumbnail creation ("make a thumbnail", "YouTube thumbnail", "with this character"), style descriptors ("3D", "Pixar style", "anime style", "realistic") and hype words ("viral", "clickbait", "eye-catching").

Examples:
- "Make a YouTube thumbnail with this character in a cooking video" -> niche: cooking, keywords: "cooking recipes chef tutorial easy meals"
- "Create a thumbnail for my gaming video about Minecraft builds" -> niche: gaming/minecraft, keywords: "minecraft builds building tutorial survival"
- "Make a thumbnail for a tech unboxing video" -> niche: tech, keywords: "tech unboxing gadgets review smartphone"

Generate 2-20 searchTerms for that niche, including popular creators and trending terms.

Respond ONLY with JSON: {"niche": "detected_niche", "keywords": "search string", "category": "category_name", "searchTerms": ["term1", "term2"]}

Categories: tech, gaming, cooking, fitness, travel, music, education, entertainment, lifestyle, business, beauty, automotive, sports, finance"""

METADATA_SYSTEM_PROMPT = """You are a YouTube viral expert. Generate realistic, high-CTR metadata for a video about the user's topic.

RETURN JSON ONLY:
{
    "title": "A catchy, clickbaity viral title (max 60 chars)",
    "channel": "A realistic channel name",
    "views": "A realistic view count (e.g. '1.5M views', '890K views')",
    "published": "A realistic relative time (e.g. '2 days ago', '5 hours ago')"
}"""


def strip_punctuation(text: str) -> str:
    return PUNCTUATION_RE.sub("", text or "").strip()


def normalize(raw_prompt: str) -> str:
    """Reduce a free-form thumbnail prompt to a short search string.

    Keeps the first five tokens that are longer than two characters and not
    stop words. Falls back to the punctuation-stripped prompt when nothing
    survives, so non-blank input never yields an empty query.
    """
    tokens = [
        token
        for token in strip_punctuation(raw_prompt).lower().split()
        if len(token) > 2 and token not in STOP_WORDS
    ]
    keywords = " ".join(tokens[:MAX_KEYWORD_TOKENS])
    if keywords:
        return keywords
    stripped = strip_punctuation(raw_prompt)
    if stripped:
        return stripped
    return (raw_prompt or "").strip()


def fallback_keywords(prompt: str) -> KeywordResult:
    return KeywordResult(keywords=prompt, category="general", search_terms=[prompt], fallback=True)


def _clean_search_terms(raw_terms, keywords: str) -> list[str]:
    terms: list[str] = []
    seen: set[str] = set()
    if isinstance(raw_terms, list):
        for term in raw_terms:
            if not isinstance(term, str):
                continue
            cleaned = " ".join(term.split())
            key = cleaned.lower()
            if not cleaned or key in seen:
                continue
            seen.add(key)
            terms.append(cleaned)
            if len(terms) >= MAX_SEARCH_TERMS:
                break
    if not terms:
        terms = [keywords]
    return terms


async def generate_keywords(prompt: str, client: httpx.AsyncClient, settings: SearchSettings) -> KeywordResult:
    try:
        parsed = await chat_completion_json(
            client,
            api_key=settings.openrouter_api_key,
            model=settings.openrouter_model,
            system_prompt=KEYWORDS_SYSTEM_PROMPT,
            user_prompt=(
                "Extract the VIDEO CONTENT NICHE from this thumbnail request and "
                f'generate search keywords for that niche: "{prompt}"'
            ),
            temperature=0.3,
            max_tokens=500,
            timeout=settings.openrouter_timeout_seconds,
        )
    except UpstreamMetadataError as exc:
        logger.info("keyword_generation_fallback", reason=str(exc))
        return fallback_keywords(prompt)

    keywords = parsed.get("keywords")
    if not isinstance(keywords, str) or not keywords.strip():
        logger.info("keyword_generation_fallback", reason="missing keywords field")
        return fallback_keywords(prompt)
    keywords = " ".join(keywords.split())

    category = parsed.get("category")
    category = category.strip().lower() if isinstance(category, str) and category.strip() else "general"
    niche = parsed.get("niche") if isinstance(parsed.get("niche"), str) else None

    result = KeywordResult(
        keywords=keywords,
        category=category,
        search_terms=_clean_search_terms(parsed.get("searchTerms"), keywords),
        niche=niche,
        fallback=False,
    )
    logger.info("keywords_generated", prompt=prompt, keywords=result.keywords, category=result.category)
    return result


def fallback_metadata(prompt: str) -> GeneratedMetadata:
    return GeneratedMetadata(
        title=f"Insane {prompt} Transformation!",
        channel="Viral Creator",
        views="1.2M views",
        published="2 days ago",
    )


async def generate_video_metadata(prompt: str, client: httpx.AsyncClient, settings: SearchSettings) -> GeneratedMetadata:
    try:
        parsed = await chat_completion_json(
            client,
            api_key=settings.openrouter_api_key,
            model=settings.openrouter_model,
            system_prompt=METADATA_SYSTEM_PROMPT,
            user_prompt=f'Topic: "{prompt}"',
            temperature=0.7,
            max_tokens=200,
            timeout=settings.openrouter_timeout_seconds,
        )
    except UpstreamMetadataError as exc:
        logger.info("metadata_generation_fallback", reason=str(exc))
        return fallback_metadata(prompt)

    fallback = fallback_metadata(prompt)
    values = {}
    for field in ("title", "channel", "views", "published"):
        value = parsed.get(field)
        values[field] = value.strip() if isinstance(value, str) and value.strip() else getattr(fallback, field)
    return GeneratedMetadata(**values)
