from typing import Any, Optional

from collectible_draft.schemas.records import DraftRecord, ScrapedRecord, VisionRecord

# Both sources carry these; the scraped page wins when it has a value
SHARED_FIELDS = ("title", "description", "brand", "series_name", "year_released")


def _coalesce(*values: Any) -> Any:
    for v in values:
        if v is not None:
            return v
    return None


def merge(scraped: Optional[ScrapedRecord], vision: VisionRecord) -> DraftRecord:
    """
    Field-level merge of the scraped page and the vision reading.

    Uses None checks, not truthiness, so a present-but-falsy value
    (0, False) from the scraper still wins over the vision value.
    """
    draft = {
        field: _coalesce(getattr(scraped, field, None), getattr(vision, field, None))
        for field in SHARED_FIELDS
    }
    draft["sku"] = scraped.sku if scraped is not None else None
    draft["condition"] = vision.condition
    draft["tags"] = list(vision.tags)
    return DraftRecord(**draft)
