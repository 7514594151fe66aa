from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class ScrapedRecord(BaseModel):
    """What the page heuristics found, not what is true."""
    title: Optional[str] = None
    description: Optional[str] = None
    brand: Optional[str] = None
    series_name: Optional[str] = None
    year_released: Optional[int] = None
    sku: Optional[str] = None


class ScrapeOutcome(BaseModel):
    data: ScrapedRecord = Field(default_factory=ScrapedRecord)
    success: bool = False
    error: Optional[str] = None


class VisionRecord(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    brand: Optional[str] = None
    series_name: Optional[str] = None
    year_released: Optional[int] = None
    condition: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class DraftRecord(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    brand: Optional[str] = None
    series_name: Optional[str] = None
    year_released: Optional[int] = None
    sku: Optional[str] = None
    condition: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class MergeRequest(BaseModel):
    scraped: Optional[ScrapedRecord] = None
    vision: VisionRecord


def _year_in_range(year: Optional[int], field_name: str) -> Optional[int]:
    if year is None:
        return None
    current = date.today().year
    if year < 1000 or year > current + 10:
        raise ValueError(f"{field_name} must be between 1000 and {current + 10}")
    return year


class ItemSubmission(DraftRecord):
    """
    The draft after the user reviewed it in the item form.
    Blank strings become None; title is required.
    """
    title: Optional[str] = Field(default=None, validate_default=True)
    collection_id: Optional[str] = None
    year_acquired: Optional[int] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    # id of an already stored image to use as the primary one
    primary_image_id: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, data):
        if isinstance(data, dict):
            data = {
                k: (v.strip() or None) if isinstance(v, str) else v
                for k, v in data.items()
            }
        return data

    @field_validator("title")
    @classmethod
    def _title_required(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("title is required")
        return v

    @field_validator("year_released")
    @classmethod
    def _check_year_released(cls, v: Optional[int]) -> Optional[int]:
        return _year_in_range(v, "year_released")

    @field_validator("year_acquired")
    @classmethod
    def _check_year_acquired(cls, v: Optional[int]) -> Optional[int]:
        return _year_in_range(v, "year_acquired")


class SubmissionResult(BaseModel):
    item_id: str
    image_url: Optional[str] = None
