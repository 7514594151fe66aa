from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from collectible_draft.api.deps import get_controller, get_registry, read_photo
from collectible_draft.core import pipeline
from collectible_draft.core.pipeline import PipelineController, RunRegistry
from collectible_draft.schemas.pipeline import RunView, SelectRequest, Stage
from collectible_draft.schemas.records import ItemSubmission

router = APIRouter(prefix="/v1/runs", tags=["runs"])


@router.post("", response_model=RunView, status_code=201)
def create_run(registry: RunRegistry = Depends(get_registry)):
    return RunView.from_run(registry.create())


@router.get("/{run_id}", response_model=RunView)
def get_run(run_id: str, registry: RunRegistry = Depends(get_registry)):
    return RunView.from_run(registry.get(run_id))


@router.post("/{run_id}/photo", response_model=RunView)
async def capture_photo(
    run_id: str,
    image: UploadFile = File(...),
    registry: RunRegistry = Depends(get_registry),
    controller: PipelineController = Depends(get_controller),
):
    run = registry.get(run_id)
    photo = await read_photo(image)
    run = await controller.capture(run, photo, publish=registry.publisher(run_id))
    return RunView.from_run(run)


@router.post("/{run_id}/select", response_model=RunView)
async def select_candidate(
    run_id: str,
    body: SelectRequest,
    registry: RunRegistry = Depends(get_registry),
    controller: PipelineController = Depends(get_controller),
):
    run = registry.get(run_id)
    run = await controller.choose(run, body.index, publish=registry.publisher(run_id))
    return RunView.from_run(run)


@router.post("/{run_id}/skip", response_model=RunView)
async def skip_selection(
    run_id: str,
    registry: RunRegistry = Depends(get_registry),
    controller: PipelineController = Depends(get_controller),
):
    run = registry.get(run_id)
    run = await controller.skip(run, publish=registry.publisher(run_id))
    return RunView.from_run(run)


@router.post("/{run_id}/submit", response_model=RunView)
async def submit_draft(
    run_id: str,
    submission: ItemSubmission,
    registry: RunRegistry = Depends(get_registry),
    controller: PipelineController = Depends(get_controller),
):
    run = registry.get(run_id)
    run = await controller.submit(run, submission, publish=registry.publisher(run_id))
    if run.stage is not Stage.SUCCESS:
        raise HTTPException(
            status_code=502,
            detail={"error": "submission_failed", "message": run.message},
        )
    return RunView.from_run(run)


@router.post("/{run_id}/cancel", response_model=RunView)
def cancel_run(run_id: str, registry: RunRegistry = Depends(get_registry)):
    run = registry.replace(pipeline.cancelled(registry.get(run_id)))
    return RunView.from_run(run)


@router.post("/{run_id}/reset", response_model=RunView)
def reset_run(run_id: str, registry: RunRegistry = Depends(get_registry)):
    run = registry.replace(pipeline.reset(registry.get(run_id)))
    return RunView.from_run(run)


@router.delete("/{run_id}", status_code=204)
def discard_run(run_id: str, registry: RunRegistry = Depends(get_registry)):
    registry.discard(run_id)
