"""
One endpoint per pipeline component, for clients that drive the flow
themselves. Each fails soft the same way its component does.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from collectible_draft.api.deps import get_controller, read_photo
from collectible_draft.core.merge import merge
from collectible_draft.core.pipeline import PipelineController
from collectible_draft.core.vendors import is_vendor_url, vendor_domains
from collectible_draft.core.vision import VisionBackendError
from collectible_draft.schemas.records import DraftRecord, MergeRequest, ScrapeOutcome, VisionRecord
from collectible_draft.schemas.search import SearchOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["identify"])


class ScrapeRequest(BaseModel):
    url: Optional[str] = None


@router.post("/search-images", response_model=SearchOutcome)
async def search_images(
    image: UploadFile = File(...),
    controller: PipelineController = Depends(get_controller),
):
    photo = await read_photo(image)
    keywords = await controller.keyword_extractor(photo.data, photo.mime_type)
    return await controller.searcher(keywords)


@router.post("/scrape-product", response_model=ScrapeOutcome)
async def scrape_product(
    body: ScrapeRequest,
    controller: PipelineController = Depends(get_controller),
):
    url = (body.url or "").strip()
    if not url:
        raise HTTPException(status_code=400, detail="URL is required")
    if not is_vendor_url(url):
        raise HTTPException(
            status_code=400,
            detail=f"URL must be from one of: {', '.join(vendor_domains())}",
        )
    return await controller.scraper(url)


@router.post("/analyze-image", response_model=VisionRecord)
async def analyze_image(
    image: UploadFile = File(...),
    controller: PipelineController = Depends(get_controller),
):
    photo = await read_photo(image)
    try:
        return await controller.vision_extractor(photo.data, photo.mime_type)
    except VisionBackendError as e:
        raise HTTPException(status_code=502, detail={"error": "vision_error", "message": str(e)})


@router.post("/merge", response_model=DraftRecord)
def merge_records(body: MergeRequest):
    return merge(body.scraped, body.vision)
