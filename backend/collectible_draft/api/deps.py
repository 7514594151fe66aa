from fastapi import HTTPException, Request, UploadFile

from collectible_draft.core.pipeline import PipelineController, RunRegistry
from collectible_draft.schemas.pipeline import Photo


def get_controller(request: Request) -> PipelineController:
    return request.app.state.controller


def get_registry(request: Request) -> RunRegistry:
    return request.app.state.registry


async def read_photo(image: UploadFile) -> Photo:
    mime_type = image.content_type or "image/jpeg"
    if not mime_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Please upload an image file")
    data = await image.read()
    if not data:
        raise HTTPException(status_code=400, detail="No image provided")
    return Photo(data=data, mime_type=mime_type)
