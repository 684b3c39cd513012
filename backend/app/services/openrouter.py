import json
import re
from typing import Any

import httpx

try:
    from backend.app.errors import UpstreamMetadataError
except ModuleNotFoundError:
    from app.errors import UpstreamMetadataError

OPENROUTER_CHAT_URL = "https://openrouter.ai/api/v1/chat/completions"
OPENROUTER_REFERER = "https://thumbfeed.app"
OPENROUTER_TITLE = "thumbfeed"

CODE_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


def strip_code_fences(content: str) -> str:
    return CODE_FENCE_RE.sub("", content or "").strip()


async def chat_completion_json(
    client: httpx.AsyncClient,
    *,
    api_key: str | None,
    model: str,
    system_prompt: str,
    user_prompt: str,
    temperature: float = 0.3,
    max_tokens: int = 500,
    timeout: float = 10.0,
) -> dict[str, Any]:
    if not api_key:
        raise UpstreamMetadataError("OPENROUTER_API_KEY is not configured")

    try:
        response = await client.post(
            OPENROUTER_CHAT_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "HTTP-Referer": OPENROUTER_REFERER,
                "X-Title": OPENROUTER_TITLE,
            },
            json={
                "model": model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
            timeout=timeout,
        )
    except httpx.HTTPError as exc:
        raise UpstreamMetadataError(f"OpenRouter request failed: {exc}") from exc

    if response.status_code != 200:
        raise UpstreamMetadataError(f"OpenRouter returned HTTP {response.status_code}")

    try:
        data = response.json()
    except ValueError as exc:
        raise UpstreamMetadataError("OpenRouter response was not JSON") from exc

    choices = data.get("choices") if isinstance(data, dict) else None
    content = None
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        content = (choices[0].get("message") or {}).get("content")
    if not isinstance(content, str) or not content.strip():
        raise UpstreamMetadataError("OpenRouter response had no message content")

    try:
        parsed = json.loads(strip_code_fences(content))
    except json.JSONDecodeError as exc:
        raise UpstreamMetadataError("OpenRouter content was not valid JSON") from exc
    if not isinstance(parsed, dict):
        raise UpstreamMetadataError("OpenRouter content was not a JSON object")
    return parsed
