from typing import List, Optional

from pydantic import BaseModel


class RawImageResult(BaseModel):
    """
    One image-search hit, normalized across search providers.
    Any of the link fields may point at the image file itself.
    """
    title: Optional[str] = None
    link: Optional[str] = None
    snippet: Optional[str] = None
    display_link: Optional[str] = None
    thumbnail_link: Optional[str] = None
    context_link: Optional[str] = None
    image_link: Optional[str] = None


class SearchCandidate(BaseModel):
    title: str = ""
    page_url: str = ""
    thumbnail_url: str = ""
    snippet: str = ""
    display_domain: str = ""


class SearchOutcome(BaseModel):
    query: str
    keywords: Optional[str] = None
    candidates: List[SearchCandidate] = []
    total_results: int = 0
    error: Optional[str] = None
