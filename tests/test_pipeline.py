from unittest.mock import AsyncMock

import pytest

from collectible_draft.core import pipeline
from collectible_draft.core.pipeline import InvalidTransition, PipelineController, RunNotFound, RunRegistry
from collectible_draft.core.vision import VisionBackendError
from collectible_draft.schemas.pipeline import Stage
from collectible_draft.schemas.records import ItemSubmission, ScrapedRecord, ScrapeOutcome
from collectible_draft.schemas.search import SearchOutcome

from conftest import FakeComponents


def _controller(fake, **kw):
    return PipelineController(
        keyword_extractor=fake.keywords,
        searcher=fake.search,
        scraper=fake.scrape_page,
        vision_extractor=fake.analyze,
        **kw,
    )


# ---------------------------------------------------------------------------
# pure transitions
# ---------------------------------------------------------------------------

def test_transitions_walk_the_happy_path(photo, candidates):
    run = pipeline.new_run("r1")
    assert run.stage is Stage.CAPTURE

    run = pipeline.photo_captured(run, photo)
    assert run.stage is Stage.SEARCHING

    run = pipeline.search_resolved(run, SearchOutcome(query="q", candidates=candidates))
    assert run.stage is Stage.SELECTING

    run = pipeline.candidate_chosen(run, 1)
    assert run.stage is Stage.SCRAPING
    assert run.chosen == candidates[1]

    run = pipeline.scrape_resolved(run, ScrapeOutcome(data=ScrapedRecord(sku="ABC12345"), success=True))
    assert run.stage is Stage.ANALYZING


def test_transitions_do_not_mutate_input(photo):
    run = pipeline.new_run("r1")
    moved = pipeline.photo_captured(run, photo)
    assert run.stage is Stage.CAPTURE
    assert run.photo is None
    assert moved.photo == photo


@pytest.mark.parametrize(
    "apply",
    [
        lambda run: pipeline.search_resolved(run, SearchOutcome(query="q")),
        lambda run: pipeline.candidate_chosen(run, 0),
        lambda run: pipeline.selection_skipped(run),
        lambda run: pipeline.reset(run),
        lambda run: pipeline.submission_failed(run, "x"),
    ],
)
def test_wrong_stage_is_rejected(apply):
    with pytest.raises(InvalidTransition):
        apply(pipeline.new_run("r1"))


def test_choose_out_of_range(photo):
    run = pipeline.search_resolved(pipeline.photo_captured(pipeline.new_run("r1"), photo), SearchOutcome(query="q"))
    with pytest.raises(InvalidTransition):
        pipeline.candidate_chosen(run, 0)


def test_cancel_from_any_stage_clears_run(photo, candidates):
    run = pipeline.photo_captured(pipeline.new_run("r1"), photo)
    run = pipeline.search_resolved(run, SearchOutcome(query="q", candidates=candidates))

    cleared = pipeline.cancelled(run)

    assert cleared.run_id == "r1"
    assert cleared.stage is Stage.CAPTURE
    assert cleared.photo is None
    assert cleared.candidates == []


# ---------------------------------------------------------------------------
# controller
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_choose_candidate_reaches_form_with_merged_draft(photo, candidates):
    fake = FakeComponents(candidates=candidates)
    controller = _controller(fake)

    run = await controller.capture(pipeline.new_run("r1"), photo)
    assert run.stage is Stage.SELECTING
    assert run.keywords == "Mandalorian ornament"
    assert len(run.candidates) == 2

    run = await controller.choose(run, 0)

    assert run.stage is Stage.FORM
    assert run.draft.title == "Scraped Title"
    assert run.draft.description == "Vision description"
    assert run.draft.sku == "5QXI7292"
    assert run.draft.condition == "Mint"
    assert ("scrape", candidates[0].page_url) in fake.calls
    assert [c[0] for c in fake.calls] == ["keywords", "search", "scrape", "vision"]


@pytest.mark.asyncio
async def test_zero_results_still_reach_selecting_and_skip_reaches_form(photo):
    fake = FakeComponents(candidates=[], search_error="No matching products found")
    controller = _controller(fake)

    run = await controller.capture(pipeline.new_run("r1"), photo)
    assert run.stage is Stage.SELECTING
    assert run.candidates == []
    assert run.search_error == "No matching products found"

    run = await controller.skip(run)

    assert run.stage is Stage.FORM
    assert run.draft.title == "Vision Title"
    assert run.draft.sku is None
    assert "scrape" not in [c[0] for c in fake.calls]


@pytest.mark.asyncio
async def test_failed_scrape_still_reaches_form_from_vision(photo, candidates):
    fake = FakeComponents(candidates=candidates, scrape=ScrapeOutcome(success=False, error="Failed to fetch page: 404"))
    controller = _controller(fake)

    run = await controller.capture(pipeline.new_run("r1"), photo)
    run = await controller.choose(run, 0)

    assert run.stage is Stage.FORM
    assert run.scrape.success is False
    assert run.scrape.data == ScrapedRecord()
    assert run.draft.title == "Vision Title"
    assert run.draft.tags == ["star wars", "ornament"]
    assert run.draft.sku is None


@pytest.mark.asyncio
async def test_vision_failure_returns_to_capture(photo):
    fake = FakeComponents(vision_error=VisionBackendError("Gemini request failed: 500"))
    controller = _controller(fake)

    run = await controller.capture(pipeline.new_run("r1"), photo)
    run = await controller.skip(run)

    assert run.stage is Stage.CAPTURE
    assert run.photo is None
    assert "Gemini request failed: 500" in run.message


@pytest.mark.asyncio
async def test_submit_creates_item_and_uploads_photo(photo):
    controller = _controller(FakeComponents())
    run = await controller.skip(await controller.capture(pipeline.new_run("r1"), photo))

    submission = ItemSubmission(**run.draft.model_dump(), collection_id="c1", primary_image_id="img-7")
    run = await controller.submit(run, submission)

    assert run.stage is Stage.SUCCESS
    assert run.item_id in controller.item_store.items
    assert controller.item_store.primary_images[run.item_id] == "img-7"
    assert run.image_url.startswith(f"memory://item-images/{run.item_id}/")
    assert run.image_url.endswith(".png")

    run = pipeline.reset(run)
    assert run.stage is Stage.CAPTURE
    assert run.item_id is None


@pytest.mark.asyncio
async def test_failed_item_creation_stays_on_form(photo):
    store = AsyncMock()
    store.create_item = AsyncMock(side_effect=RuntimeError("database unavailable"))
    controller = _controller(FakeComponents(), item_store=store)
    run = await controller.skip(await controller.capture(pipeline.new_run("r1"), photo))

    run = await controller.submit(run, ItemSubmission(title="Anything"))

    assert run.stage is Stage.FORM
    assert "database unavailable" in run.message
    assert run.draft is not None
    store.create_item.assert_awaited_once()


@pytest.mark.asyncio
async def test_failed_upload_keeps_item(photo):
    images = AsyncMock()
    images.upload = AsyncMock(side_effect=RuntimeError("bucket missing"))
    controller = _controller(FakeComponents(), image_store=images)
    run = await controller.skip(await controller.capture(pipeline.new_run("r1"), photo))

    run = await controller.submit(run, ItemSubmission(title="Anything"))

    assert run.stage is Stage.SUCCESS
    assert run.item_id in controller.item_store.items
    assert run.image_url is None
    images.upload.assert_awaited_once()


@pytest.mark.asyncio
async def test_submit_outside_form_is_rejected(photo):
    controller = _controller(FakeComponents())
    with pytest.raises(InvalidTransition):
        await controller.submit(pipeline.new_run("r1"), ItemSubmission(title="x"))


# ---------------------------------------------------------------------------
# registry
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_results_for_a_cancelled_run_are_dropped(photo):
    registry = RunRegistry()
    run = registry.create()
    fake = FakeComponents()

    async def slow_search(keywords):
        # user cancels while the search is in flight
        registry.replace(pipeline.cancelled(registry.get(run.run_id)))
        return await fake.search(keywords)

    controller = PipelineController(keyword_extractor=fake.keywords, searcher=slow_search)
    await controller.capture(run, photo, publish=registry.publisher(run.run_id))

    stored = registry.get(run.run_id)
    assert stored.stage is Stage.CAPTURE
    assert stored.photo is None


def test_registry_publishes_intermediate_stages(photo):
    registry = RunRegistry()
    run = registry.create()
    publish = registry.publisher(run.run_id)

    assert publish(pipeline.photo_captured(run, photo)) is True
    assert registry.get(run.run_id).stage is Stage.SEARCHING


def test_registry_unknown_and_discarded_runs():
    registry = RunRegistry()
    with pytest.raises(RunNotFound):
        registry.get("nope")

    run = registry.create()
    registry.discard(run.run_id)
    assert len(registry) == 0
    with pytest.raises(RunNotFound):
        registry.discard(run.run_id)
