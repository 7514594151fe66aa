from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from collectible_draft.schemas.records import DraftRecord, ScrapeOutcome, VisionRecord
from collectible_draft.schemas.search import SearchCandidate


class Stage(str, Enum):
    CAPTURE = "capture"
    SEARCHING = "searching"
    SELECTING = "selecting"
    SCRAPING = "scraping"
    ANALYZING = "analyzing"
    FORM = "form"
    SUCCESS = "success"


class Photo(BaseModel):
    data: bytes
    mime_type: str = "image/jpeg"


class PipelineRun(BaseModel):
    """
    Ephemeral state of one identification run.
    Never persisted; replaced wholesale by each transition.
    """
    run_id: str
    stage: Stage = Stage.CAPTURE
    photo: Optional[Photo] = None
    keywords: Optional[str] = None
    query: Optional[str] = None
    candidates: List[SearchCandidate] = []
    search_error: Optional[str] = None
    chosen: Optional[SearchCandidate] = None
    scrape: Optional[ScrapeOutcome] = None
    vision: Optional[VisionRecord] = None
    draft: Optional[DraftRecord] = None
    item_id: Optional[str] = None
    image_url: Optional[str] = None
    # user-visible message for the current stage (fatal errors, failed submit)
    message: Optional[str] = None


class RunView(BaseModel):
    run_id: str
    stage: Stage
    has_photo: bool
    keywords: Optional[str] = None
    query: Optional[str] = None
    candidates: List[SearchCandidate] = []
    search_error: Optional[str] = None
    chosen: Optional[SearchCandidate] = None
    scrape: Optional[ScrapeOutcome] = None
    draft: Optional[DraftRecord] = None
    item_id: Optional[str] = None
    image_url: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_run(cls, run: PipelineRun) -> "RunView":
        data = run.model_dump(exclude={"photo", "vision"})
        return cls(has_photo=run.photo is not None, **data)


class SelectRequest(BaseModel):
    index: int
