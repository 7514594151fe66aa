import logging
import re
from typing import Optional

import httpx

from collectible_draft.core import gemini
from collectible_draft.core.vendors import primary_vendor

logger = logging.getLogger(__name__)

MAX_TERMS = 4

# Tokens made only of quotes/punctuation carry no search value
_PUNCT_ONLY = re.compile(r"^[\W_]+$")


def keyword_prompt(vendor: str) -> str:
    where = f" on {vendor}" if vendor else ""
    return (
        "Look at this image of a collectible item. "
        f"Extract 2-4 key search terms that would help find this product{where}. "
        "Return only the search terms separated by spaces, no other text. "
        "Focus on: product name, series name, character name, or distinctive features visible in the image."
    )


def normalize_terms(text: Optional[str], max_terms: int = MAX_TERMS) -> Optional[str]:
    """
    "  Star   Wars\nornament " -> "Star Wars ornament"; None when nothing usable is left.
    """
    if not text:
        return None
    terms = []
    for t in text.split():
        t = t.strip("\"'`,;")
        if not t or _PUNCT_ONLY.match(t):
            continue
        terms.append(t)
    terms = terms[:max_terms]
    return " ".join(terms) or None


async def extract_keywords(
    image_bytes: bytes,
    mime_type: str,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[str]:
    """
    Returns 2-4 space separated search terms for the photo, or None.
    Never raises: no terms is a normal outcome and the caller searches the vendor alone.
    """
    if not gemini.is_configured():
        logger.info("Vision backend not configured; searching without keywords")
        return None

    try:
        text = await gemini.describe_image(
            image_bytes,
            mime_type,
            keyword_prompt(primary_vendor()),
            max_output_tokens=50,
            transport=transport,
        )
    except (gemini.GeminiRequestError, gemini.GeminiNotConfigured) as e:
        logger.warning("Keyword extraction failed: %s", e)
        return None

    terms = normalize_terms(text)
    logger.info("Extracted search terms: %r", terms)
    return terms
