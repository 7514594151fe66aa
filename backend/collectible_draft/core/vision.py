import json
import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from collectible_draft.core import gemini
from collectible_draft.schemas.records import VisionRecord

logger = logging.getLogger(__name__)

GENERIC_TITLE = "Collectible Item"

PLACEHOLDER_RECORD = VisionRecord(
    title=GENERIC_TITLE,
    description="A collectible item from your collection",
)

VISION_PROMPT = """Analyze this image of a collectible item and extract the following information in JSON format:
{
  "title": "A descriptive title for the item",
  "description": "A detailed description of the item, or null if not clear",
  "brand": "The brand or manufacturer name, or null if not visible",
  "series_name": "The series or collection name, or null if not visible",
  "year_released": "The year the item was released (as a number), or null if not visible",
  "condition": "The condition of the item (e.g., Mint, Near Mint, Good, Fair, Poor), or null if not clear",
  "tags": ["Array of relevant tags/categories", "e.g., trading cards, action figures, etc."]
}

Be specific and accurate. Only include information that is clearly visible in the image. If something is not visible or unclear, use null for that field."""

_FENCED = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


class VisionBackendError(Exception):
    """The vision call itself failed (transport, non-2xx, empty reply)."""


def _strip_fence(text: str) -> str:
    m = _FENCED.search(text)
    return m.group(1) if m else text


def _extract_json_best_effort(text: str) -> Dict[str, Any]:
    """
    Returns the first JSON object found in the text.
    """
    body = _strip_fence(text).strip()
    try:
        return json.loads(body)
    except (ValueError, RecursionError):
        pass

    # Greedy fallback: model wrapped the object in prose
    m = re.search(r"\{.*\}", body, re.DOTALL)
    if not m:
        raise ValueError("No JSON object found in model output")
    return json.loads(m.group(0))


def _as_text(v: Any) -> Optional[str]:
    if v is None or isinstance(v, (dict, list, bool)):
        return None
    s = str(v).strip()
    if not s or s.lower() in ("null", "none"):
        return None
    return s


def _as_year(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float):
        return int(v) if v.is_integer() else None
    m = re.search(r"\d{4}", str(v))
    return int(m.group(0)) if m else None


def _as_tags(v: Any) -> List[str]:
    if isinstance(v, str):
        v = v.split(",")
    if not isinstance(v, list):
        return []
    tags = []
    for t in v:
        t = _as_text(t)
        if t and t not in tags:
            tags.append(t)
    return tags


def fallback_record(raw: str) -> VisionRecord:
    return VisionRecord(title=GENERIC_TITLE, description=(raw or "")[:200] or None)


def parse_vision_output(raw: str) -> VisionRecord:
    """
    Model reply -> VisionRecord. Never raises: unparsable output becomes a
    generic title plus the first 200 chars of the reply as description.
    """
    try:
        obj = _extract_json_best_effort(raw or "")
    except (ValueError, RecursionError):
        # RecursionError: pathologically nested brackets
        logger.warning("Vision output was not JSON; using fallback record")
        return fallback_record(raw)

    if not isinstance(obj, dict):
        logger.warning("Vision output JSON was %s, not an object; using fallback record", type(obj).__name__)
        return fallback_record(raw)

    return VisionRecord(
        title=_as_text(obj.get("title")) or GENERIC_TITLE,
        description=_as_text(obj.get("description")),
        brand=_as_text(obj.get("brand")),
        series_name=_as_text(obj.get("series_name")),
        year_released=_as_year(obj.get("year_released")),
        condition=_as_text(obj.get("condition")),
        tags=_as_tags(obj.get("tags")),
    )


async def extract_vision_record(
    image_bytes: bytes,
    mime_type: str,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> VisionRecord:
    """
    Structured metadata straight from the photo.

    Unconfigured backend -> placeholder record. Malformed reply -> fallback
    record. Only a failed call raises (VisionBackendError).
    """
    if not gemini.is_configured():
        logger.warning("GEMINI_API_KEY not set, returning placeholder record")
        return PLACEHOLDER_RECORD.model_copy(deep=True)

    try:
        raw = await gemini.describe_image(
            image_bytes,
            mime_type,
            VISION_PROMPT,
            max_output_tokens=500,
            transport=transport,
        )
    except gemini.GeminiRequestError as e:
        logger.error("Vision extraction failed: %s", e.message)
        raise VisionBackendError(e.message) from e

    record = parse_vision_output(raw)
    logger.info("Vision record: title=%r brand=%r year=%r", record.title, record.brand, record.year_released)
    return record
