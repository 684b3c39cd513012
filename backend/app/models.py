from pydantic import BaseModel, Field, field_validator

YTIMG_THUMBNAIL_URL = "https://i.ytimg.com/vi/{video_id}/mqdefault.jpg"


def thumbnail_url_for(video_id: str) -> str:
    return YTIMG_THUMBNAIL_URL.format(video_id=video_id)


class VideoCandidate(BaseModel):
    title: str = "Untitled"
    author_name: str = "Unknown"
    external_id: str
    view_count: int = 0
    published_label: str = "Recently"
    duration_seconds: int = 0
    thumbnail_url: str = ""
    channel_id: str | None = None
    channel_avatar_url: str | None = None

    @field_validator("external_id")
    @classmethod
    def _require_external_id(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("external_id must be non-empty")
        return value

    @field_validator("view_count", "duration_seconds")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        return max(0, value)

    def model_post_init(self, _context) -> None:
        if not self.thumbnail_url:
            self.thumbnail_url = thumbnail_url_for(self.external_id)


class KeywordResult(BaseModel):
    keywords: str
    category: str = "general"
    search_terms: list[str] = Field(default_factory=list)
    niche: str | None = None
    fallback: bool = False


class GeneratedMetadata(BaseModel):
    title: str
    channel: str
    views: str
    published: str


class SearchResult(BaseModel):
    original_query: str
    normalized_query: str
    category: str
    candidates: list[VideoCandidate] = Field(default_factory=list)
    used_fallback: bool = False
    ai_optimized: bool = False
    generated_metadata: GeneratedMetadata | None = None


class SearchRequest(BaseModel):
    query: str = ""
    exclude_ids: list[str] = Field(default_factory=list)


class KeywordRequest(BaseModel):
    prompt: str = ""


class ValidateVideoItem(BaseModel):
    video_id: str
    title: str | None = None
    author: str | None = None
    view_count: int | None = None
    published_text: str | None = None
    length_seconds: int | None = None


class ValidateRequest(BaseModel):
    videos: list[ValidateVideoItem] = Field(default_factory=list)
