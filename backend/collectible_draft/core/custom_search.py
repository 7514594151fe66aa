import logging
from typing import Any, Dict, List, Optional

import httpx

from collectible_draft.core.config import settings
from collectible_draft.core.errors import SearchBackendError, SearchNotConfigured
from collectible_draft.schemas.search import RawImageResult

logger = logging.getLogger(__name__)

CSE_BASE = "https://www.googleapis.com/customsearch/v1"


def is_configured() -> bool:
    return bool(settings.GOOGLE_CSE_API_KEY.strip() and settings.GOOGLE_CSE_ENGINE_ID.strip())


def _to_raw(item: Dict[str, Any]) -> RawImageResult:
    """
    For searchType=image, item.link is usually the image file and
    item.image.contextLink the page it was found on.
    """
    image = item.get("image")
    if not isinstance(image, dict):
        image = {}
    return RawImageResult(
        title=item.get("title"),
        link=item.get("link"),
        snippet=item.get("snippet"),
        display_link=item.get("displayLink"),
        thumbnail_link=image.get("thumbnailLink"),
        context_link=image.get("contextLink"),
        image_link=image.get("link"),
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
    engine_id: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """
    Calls Google Custom Search (image results) and returns
    {"items": [RawImageResult], "total": int}.
    """
    key = (api_key if api_key is not None else settings.GOOGLE_CSE_API_KEY).strip()
    cx = (engine_id if engine_id is not None else settings.GOOGLE_CSE_ENGINE_ID).strip()
    if not key or not cx:
        raise SearchNotConfigured("Google Custom Search API credentials not configured")

    # The API caps num at 10
    params = {
        "key": key,
        "cx": cx,
        "searchType": "image",
        "q": q,
        "num": max(1, min(int(num), 10)),
    }

    try:
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS, transport=transport) as client:
            r = await client.get(CSE_BASE, params=params)
            if r.status_code >= 400:
                raise SearchBackendError(
                    f"Custom Search request failed: {r.status_code}",
                    status_code=r.status_code,
                    body=r.text,
                )
            data = r.json()
    except httpx.HTTPError as e:
        raise SearchBackendError(f"Custom Search transport error: {e}")
    except ValueError:
        raise SearchBackendError("Custom Search returned a non-JSON body")

    if not isinstance(data, dict):
        raise SearchBackendError(f"Custom Search returned an unexpected response shape: {type(data).__name__}")

    items = _collect(data.get("items"), _to_raw)
    try:
        total = int((data.get("searchInformation") or {}).get("totalResults") or 0)
    except (AttributeError, TypeError, ValueError):
        total = len(items)
    return {"items": items, "total": total}
