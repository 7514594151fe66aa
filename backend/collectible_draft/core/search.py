import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from collectible_draft.core import custom_search, serpapi
from collectible_draft.core.config import settings
from collectible_draft.core.errors import SearchBackendError, SearchNotConfigured
from collectible_draft.core.vendors import (
    build_query,
    extract_sku_token,
    host_of,
    looks_like_image_url,
    product_url_guesses,
)
from collectible_draft.schemas.search import RawImageResult, SearchCandidate, SearchOutcome

logger = logging.getLogger(__name__)

SearchBackend = Callable[..., Awaitable[Dict[str, Any]]]

NOT_CONFIGURED_MESSAGE = "Image search API credentials not configured"
NO_RESULTS_MESSAGE = "No matching products found"

# the selection step never shows more than this, whatever the configured limit
MAX_CANDIDATES = 6


def _links_in_priority(raw: RawImageResult) -> List[str]:
    # context link first: for image results it is the page the image came from
    return [u.strip() for u in (raw.context_link, raw.image_link, raw.link) if u and u.strip()]


def sku_url_guesses(raw: RawImageResult, templates: Optional[Sequence[str]] = None) -> List[str]:
    """
    Product page URLs synthesized from a SKU token found in any of the result's links.
    """
    for link in _links_in_priority(raw):
        sku = extract_sku_token(link)
        if sku:
            return product_url_guesses(sku, templates)
    return []


def page_url_for(raw: RawImageResult, templates: Optional[Sequence[str]] = None) -> str:
    """
    Picks the result link that is an HTML page rather than an image file.

    1) first of context link / image link / generic link that doesn't look like an image
    2) a vendor URL built from a SKU token in the links (unverified)
    3) the original image URL, so the result is never dropped
    """
    links = _links_in_priority(raw)
    for link in links:
        if not looks_like_image_url(link):
            return link

    original = links[0] if links else ""
    guesses = sku_url_guesses(raw, templates)
    if guesses:
        logger.debug("No page URL for %s; guessed %s", original, guesses[0])
        return guesses[0]

    if original:
        logger.warning("Keeping image URL as page URL: %s", original)
    return original


async def _first_reachable(urls: Sequence[str], transport: Optional[httpx.AsyncBaseTransport] = None) -> Optional[str]:
    async with httpx.AsyncClient(
        timeout=settings.HTTP_TIMEOUT_SECONDS, follow_redirects=False, transport=transport
    ) as client:
        for url in urls:
            try:
                r = await client.head(url)
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                logger.debug("HEAD %s failed: %s", url, e)
                continue
            if r.status_code < 400:
                return url
    return None


def to_candidate(raw: RawImageResult, page_url: str) -> SearchCandidate:
    return SearchCandidate(
        title=(raw.title or "").strip(),
        page_url=page_url,
        thumbnail_url=(raw.thumbnail_link or raw.link or "").strip(),
        snippet=(raw.snippet or "").strip(),
        display_domain=(raw.display_link or host_of(page_url)).strip(),
    )


def default_backend() -> Optional[SearchBackend]:
    if custom_search.is_configured():
        return custom_search.image_search
    if serpapi.is_configured():
        return serpapi.image_search
    return None


async def search_candidates(
    keywords: Optional[str],
    *,
    backend: Optional[SearchBackend] = None,
    limit: Optional[int] = None,
    verify_guessed_urls: Optional[bool] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SearchOutcome:
    """
    Scoped image search over the vendor domain set.
    Never raises: failures come back as an empty candidate list plus `error`.
    """
    query = build_query(keywords)
    limit = min(limit if limit is not None else settings.SEARCH_RESULT_LIMIT, MAX_CANDIDATES)
    verify = settings.VERIFY_GUESSED_URLS if verify_guessed_urls is None else verify_guessed_urls

    backend = backend or default_backend()
    if backend is None:
        logger.warning(NOT_CONFIGURED_MESSAGE)
        return SearchOutcome(query=query, keywords=keywords, error=NOT_CONFIGURED_MESSAGE)

    logger.info("Image search query: %s", query)
    try:
        raw = await backend(query, num=limit)
    except SearchNotConfigured as e:
        logger.warning("Image search not configured: %s", e)
        return SearchOutcome(query=query, keywords=keywords, error=str(e))
    except SearchBackendError as e:
        detail = (e.body or "")[:200]
        message = f"Search failed: {e.message}" + (f" {detail}" if detail else "")
        logger.warning(message)
        return SearchOutcome(query=query, keywords=keywords, error=message)

    candidates: List[SearchCandidate] = []
    for item in raw.get("items", [])[:limit]:
        page_url = page_url_for(item)
        if verify:
            # only synthesized URLs are probed
            guesses = sku_url_guesses(item)
            if page_url in guesses:
                page_url = await _first_reachable(guesses, transport=transport) or page_url
        candidates.append(to_candidate(item, page_url))

    logger.info("Image search found %d candidates (total %s)", len(candidates), raw.get("total", 0))
    return SearchOutcome(
        query=query,
        keywords=keywords,
        candidates=candidates,
        total_results=int(raw.get("total") or 0),
        error=None if candidates else NO_RESULTS_MESSAGE,
    )
