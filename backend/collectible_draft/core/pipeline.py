"""
Pipeline controller: a finite-state machine over one PipelineRun.

capture -> searching -> selecting -> (scraping ->) analyzing -> form -> success

Transitions are pure functions (run, input) -> new run; they raise
InvalidTransition when the run is in the wrong stage. PipelineController
does the I/O between them and hands every new run to an optional `publish`
callback, which returns False once the run has been abandoned (the result
is then dropped).
"""

import logging
import uuid
from typing import Awaitable, Callable, Dict, Optional, Set, Tuple

from collectible_draft.core.collaborators import ImageStore, InMemoryImageStore, InMemoryItemStore, ItemStore
from collectible_draft.core.keywords import extract_keywords
from collectible_draft.core.merge import merge
from collectible_draft.core.scraper import scrape_product
from collectible_draft.core.search import search_candidates
from collectible_draft.core.vision import extract_vision_record
from collectible_draft.schemas.pipeline import Photo, PipelineRun, Stage
from collectible_draft.schemas.records import ItemSubmission, ScrapeOutcome, SubmissionResult, VisionRecord
from collectible_draft.schemas.search import SearchOutcome

logger = logging.getLogger(__name__)

Publish = Callable[[PipelineRun], bool]

TRANSITIONS: Dict[Stage, Set[Stage]] = {
    Stage.CAPTURE: {Stage.SEARCHING},
    Stage.SEARCHING: {Stage.SELECTING},
    Stage.SELECTING: {Stage.SCRAPING, Stage.ANALYZING},
    Stage.SCRAPING: {Stage.ANALYZING},
    Stage.ANALYZING: {Stage.FORM, Stage.CAPTURE},
    Stage.FORM: {Stage.SUCCESS},
    Stage.SUCCESS: set(),
}


class InvalidTransition(ValueError):
    pass


class RunNotFound(KeyError):
    pass


def _require(run: PipelineRun, stage: Stage, action: str) -> None:
    if run.stage is not stage:
        raise InvalidTransition(f"cannot {action} in {run.stage.value}")


def _move(run: PipelineRun, target: Stage, **updates) -> PipelineRun:
    if target not in TRANSITIONS[run.stage]:
        raise InvalidTransition(f"cannot go from {run.stage.value} to {target.value}")
    logger.info("Run %s: %s -> %s", run.run_id, run.stage.value, target.value)
    return run.model_copy(update={"stage": target, **updates})


# ---------------------------------------------------------------------------
# pure transitions
# ---------------------------------------------------------------------------

def new_run(run_id: Optional[str] = None) -> PipelineRun:
    return PipelineRun(run_id=run_id or uuid.uuid4().hex)


def photo_captured(run: PipelineRun, photo: Photo) -> PipelineRun:
    return _move(run, Stage.SEARCHING, photo=photo, message=None)


def search_resolved(run: PipelineRun, outcome: SearchOutcome) -> PipelineRun:
    # empty results and errors are shown on the selection step, never a dead end
    return _move(
        run,
        Stage.SELECTING,
        keywords=outcome.keywords,
        query=outcome.query,
        candidates=list(outcome.candidates),
        search_error=outcome.error,
    )


def candidate_chosen(run: PipelineRun, index: int) -> PipelineRun:
    _require(run, Stage.SELECTING, "choose a candidate")
    if not 0 <= index < len(run.candidates):
        raise InvalidTransition(f"no candidate at index {index}")
    return _move(run, Stage.SCRAPING, chosen=run.candidates[index])


def selection_skipped(run: PipelineRun) -> PipelineRun:
    return _move(run, Stage.ANALYZING, chosen=None, scrape=None)


def scrape_resolved(run: PipelineRun, outcome: ScrapeOutcome) -> PipelineRun:
    return _move(run, Stage.ANALYZING, scrape=outcome)


def analysis_completed(run: PipelineRun, vision: VisionRecord) -> PipelineRun:
    _require(run, Stage.ANALYZING, "merge")
    scraped = run.scrape.data if run.scrape is not None else None
    return _move(run, Stage.FORM, vision=vision, draft=merge(scraped, vision))


def analysis_failed(run: PipelineRun, message: str) -> PipelineRun:
    moved = _move(run, Stage.CAPTURE)
    return new_run(moved.run_id).model_copy(update={"message": message})


def submission_failed(run: PipelineRun, message: str) -> PipelineRun:
    _require(run, Stage.FORM, "submit")
    return run.model_copy(update={"message": message})


def submitted(run: PipelineRun, result: SubmissionResult) -> PipelineRun:
    return _move(run, Stage.SUCCESS, item_id=result.item_id, image_url=result.image_url, message=None)


def cancelled(run: PipelineRun) -> PipelineRun:
    """Back to capture from anywhere; everything gathered so far is dropped."""
    if run.stage is not Stage.CAPTURE:
        logger.info("Run %s: cancelled in %s", run.run_id, run.stage.value)
    return new_run(run.run_id)


def reset(run: PipelineRun) -> PipelineRun:
    """ "Add another" after a successful submit. """
    _require(run, Stage.SUCCESS, "reset")
    return new_run(run.run_id)


# ---------------------------------------------------------------------------
# controller
# ---------------------------------------------------------------------------

def _emit(publish: Optional[Publish], run: PipelineRun) -> bool:
    return publish(run) if publish is not None else True


class PipelineController:
    """
    Sequences the components for one run. Holds no run state itself:
    every operation takes the current run and returns the next one.
    """

    def __init__(
        self,
        *,
        keyword_extractor: Callable[..., Awaitable[Optional[str]]] = extract_keywords,
        searcher: Callable[..., Awaitable[SearchOutcome]] = search_candidates,
        scraper: Callable[..., Awaitable[ScrapeOutcome]] = scrape_product,
        vision_extractor: Callable[..., Awaitable[VisionRecord]] = extract_vision_record,
        item_store: Optional[ItemStore] = None,
        image_store: Optional[ImageStore] = None,
    ):
        self.keyword_extractor = keyword_extractor
        self.searcher = searcher
        self.scraper = scraper
        self.vision_extractor = vision_extractor
        self.item_store = item_store or InMemoryItemStore()
        self.image_store = image_store or InMemoryImageStore()

    async def capture(self, run: PipelineRun, photo: Photo, publish: Optional[Publish] = None) -> PipelineRun:
        run = photo_captured(run, photo)
        if not _emit(publish, run):
            return run

        # the query depends on the terms, so these two run back to back
        keywords = await self.keyword_extractor(photo.data, photo.mime_type)
        outcome = await self.searcher(keywords)

        run = search_resolved(run, outcome)
        _emit(publish, run)
        return run

    async def choose(self, run: PipelineRun, index: int, publish: Optional[Publish] = None) -> PipelineRun:
        run = candidate_chosen(run, index)
        if not _emit(publish, run):
            return run

        outcome = await self.scraper(run.chosen.page_url)
        if not outcome.success:
            logger.warning("Run %s: scrape failed (%s); continuing with vision only", run.run_id, outcome.error)

        run = scrape_resolved(run, outcome)
        if not _emit(publish, run):
            return run
        return await self._analyze(run, publish)

    async def skip(self, run: PipelineRun, publish: Optional[Publish] = None) -> PipelineRun:
        run = selection_skipped(run)
        if not _emit(publish, run):
            return run
        return await self._analyze(run, publish)

    async def _analyze(self, run: PipelineRun, publish: Optional[Publish]) -> PipelineRun:
        photo = run.photo
        try:
            vision = await self.vision_extractor(photo.data, photo.mime_type)
        except Exception as e:
            # malformed replies are handled inside the extractor; this is a failed call
            logger.exception("Run %s: vision extraction failed", run.run_id)
            run = analysis_failed(run, f"Failed to analyze image: {e}")
        else:
            run = analysis_completed(run, vision)
        _emit(publish, run)
        return run

    async def submit(
        self,
        run: PipelineRun,
        submission: ItemSubmission,
        publish: Optional[Publish] = None,
    ) -> PipelineRun:
        """
        Creates the item, then stores the photo under it.
        A failed create keeps the run on the form with a message; a failed
        upload leaves the item in place without an image.
        """
        _require(run, Stage.FORM, "submit")

        try:
            item_id = await self.item_store.create_item(submission, primary_image_id=submission.primary_image_id)
        except Exception as e:
            logger.error("Run %s: item creation failed: %s", run.run_id, e)
            run = submission_failed(run, f"Failed to create item: {e}")
            _emit(publish, run)
            return run

        image_url = None
        if run.photo is not None:
            try:
                image_url = await self.image_store.upload(run.photo.data, run.photo.mime_type, item_id)
            except Exception as e:
                logger.warning("Run %s: image upload for item %s failed: %s", run.run_id, item_id, e)

        run = submitted(run, SubmissionResult(item_id=item_id, image_url=image_url))
        _emit(publish, run)
        return run


# ---------------------------------------------------------------------------
# runs, one per session
# ---------------------------------------------------------------------------

class RunRegistry:
    """
    In-memory home of the live runs. Each run has a generation counter that
    cancel/discard bump, so results of calls still in flight for an abandoned
    run are dropped instead of resurrecting it.
    """

    def __init__(self):
        self._runs: Dict[str, Tuple[int, PipelineRun]] = {}

    def create(self) -> PipelineRun:
        run = new_run()
        self._runs[run.run_id] = (0, run)
        return run

    def get(self, run_id: str) -> PipelineRun:
        try:
            return self._runs[run_id][1]
        except KeyError:
            raise RunNotFound(run_id)

    def publisher(self, run_id: str) -> Publish:
        generation = self._generation(run_id)

        def publish(run: PipelineRun) -> bool:
            current = self._runs.get(run_id)
            if current is None or current[0] != generation:
                logger.info("Run %s was abandoned; dropping %s result", run_id, run.stage.value)
                return False
            self._runs[run_id] = (generation, run)
            return True

        return publish

    def replace(self, run: PipelineRun) -> PipelineRun:
        """Store a run produced outside the controller, invalidating in-flight work."""
        generation = self._generation(run.run_id) + 1
        self._runs[run.run_id] = (generation, run)
        return run

    def discard(self, run_id: str) -> None:
        if self._runs.pop(run_id, None) is None:
            raise RunNotFound(run_id)

    def _generation(self, run_id: str) -> int:
        try:
            return self._runs[run_id][0]
        except KeyError:
            raise RunNotFound(run_id)

    def __len__(self) -> int:
        return len(self._runs)
