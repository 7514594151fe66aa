import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from collectible_draft.core.config import settings
from collectible_draft.core.errors import SearchBackendError, SearchNotConfigured
from collectible_draft.schemas.search import RawImageResult

logger = logging.getLogger(__name__)

SERPAPI_BASE = "https://serpapi.com/search.json"


def _get_serpapi_key(api_key: Optional[str] = None) -> str:
    # Prefer explicit key, then pydantic settings, then env
    key = (api_key if api_key is not None else settings.SERPAPI_API_KEY or "").strip()
    if not key and api_key is None:
        key = (os.environ.get("SERPAPI_API_KEY", "") or "").strip()
    if not key:
        raise SearchNotConfigured("SERPAPI_API_KEY is not set")
    return key


def is_configured() -> bool:
    try:
        _get_serpapi_key()
    except SearchNotConfigured:
        return False
    return True


def _to_raw(r: Dict[str, Any]) -> RawImageResult:
    """
    google_images results carry the page in "link" and the file in "original".
    """
    return RawImageResult(
        title=r.get("title"),
        link=r.get("link"),
        snippet=r.get("snippet"),
        display_link=None,
        thumbnail_link=r.get("thumbnail"),
        context_link=r.get("link"),
        image_link=r.get("original"),
    )


def _collect(entries: Any, convert) -> List[RawImageResult]:
    """Converts the result entries, skipping any that are not well-formed."""
    items: List[RawImageResult] = []
    for entry in entries if isinstance(entries, list) else []:
        if not isinstance(entry, dict):
            continue
        try:
            items.append(convert(entry))
        except ValueError as e:
            logger.warning("Skipping malformed search result: %s", e)
    return items


async def image_search(
    q: str,
    num: int = 6,
    *,
    api_key: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """
    Calls SerpAPI Google Images and returns {"items": [RawImageResult], "total": int}.
    """
    key = _get_serpapi_key(api_key)

    params: Dict[str, Any] = {
        "engine": "google_images",
        "q": q,
        "api_key": key,
        "gl": "us",
        "hl": "en",
    }

    try:
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS, transport=transport) as client:
            r = await client.get(SERPAPI_BASE, params=params)
            if r.status_code >= 400:
                raise SearchBackendError(
                    f"SerpAPI request failed: {r.status_code}",
                    status_code=r.status_code,
                    body=r.text,
                )
            data = r.json()
    except httpx.HTTPError as e:
        raise SearchBackendError(f"SerpAPI transport error: {e}")
    except ValueError:
        raise SearchBackendError("SerpAPI returned a non-JSON body")

    # Normalize: if the engine returns an error payload, surface it clearly
    if isinstance(data, dict) and data.get("error"):
        # SerpAPI reports "no results" as an error string
        if "hasn't returned any results" in str(data.get("error")):
            return {"items": [], "total": 0}
        raise SearchBackendError(f"SerpAPI error: {data.get('error')}")

    if not isinstance(data, dict):
        raise SearchBackendError(f"SerpAPI returned an unexpected response shape: {type(data).__name__}")

    results = data.get("images_results") or []
    if not isinstance(results, list):
        raise SearchBackendError("SerpAPI returned an unexpected response shape: images_results")
    items = _collect(results[: max(1, num)], _to_raw)
    return {"items": items, "total": len(results)}
