from collectible_draft.core.merge import SHARED_FIELDS, merge
from collectible_draft.schemas.records import ScrapedRecord, VisionRecord


def _vision(**kw):
    base = dict(
        title="Vision Title",
        description="Vision description",
        brand="Vision Brand",
        series_name="Vision Series",
        year_released=2019,
        condition="Near Mint",
        tags=["ornament"],
    )
    base.update(kw)
    return VisionRecord(**base)


def test_scraped_values_win_over_vision():
    scraped = ScrapedRecord(
        title="Page Title",
        description="Page description",
        brand="Hallmark",
        series_name="Keepsake Ornaments",
        year_released=2021,
        sku="5QXD7292",
    )
    draft = merge(scraped, _vision())

    assert draft.title == "Page Title"
    assert draft.description == "Page description"
    assert draft.brand == "Hallmark"
    assert draft.series_name == "Keepsake Ornaments"
    assert draft.year_released == 2021
    assert draft.sku == "5QXD7292"
    assert draft.condition == "Near Mint"
    assert draft.tags == ["ornament"]


def test_vision_fills_gaps():
    scraped = ScrapedRecord(title="Page Title", sku="ABC12345")
    draft = merge(scraped, _vision())

    assert draft.title == "Page Title"
    assert draft.description == "Vision description"
    assert draft.brand == "Vision Brand"
    assert draft.series_name == "Vision Series"
    assert draft.year_released == 2019
    assert draft.sku == "ABC12345"


def test_without_scraped_record_draft_is_vision_only():
    draft = merge(None, _vision())

    for field in SHARED_FIELDS:
        assert getattr(draft, field) == getattr(_vision(), field)
    assert draft.sku is None
    assert draft.condition == "Near Mint"


def test_both_missing_stays_none():
    draft = merge(ScrapedRecord(), VisionRecord(title="Only Title"))

    assert draft.title == "Only Title"
    assert draft.description is None
    assert draft.brand is None
    assert draft.year_released is None
    assert draft.sku is None
    assert draft.condition is None
    assert draft.tags == []


def test_falsy_but_present_scraped_value_is_kept():
    # 0 is not a real year, but it is a present value and must not be replaced
    draft = merge(ScrapedRecord(year_released=0), _vision())
    assert draft.year_released == 0


def test_merge_is_deterministic_and_does_not_share_tags():
    scraped = ScrapedRecord(title="Page Title")
    vision = _vision()

    first = merge(scraped, vision)
    second = merge(scraped, vision)

    assert first == second
    first.tags.append("mutated")
    assert vision.tags == ["ornament"]
