import pytest

from collectible_draft.core.config import settings
from collectible_draft.core.keywords import extract_keywords, keyword_prompt, normalize_terms

from conftest import gemini_reply, json_transport


@pytest.fixture
def vision_configured(monkeypatch):
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "test-key")
    monkeypatch.setattr(settings, "GEMINI_MODEL", "gemini-2.5-flash")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Mandalorian Grogu ornament", "Mandalorian Grogu ornament"),
        ("  Star\n\nWars   Keepsake  Ornament  2021 light ", "Star Wars Keepsake Ornament"),
        ('"Snoopy" , doghouse', "Snoopy doghouse"),
        ("   ", None),
        ("- - ...", None),
        (None, None),
    ],
)
def test_normalize_terms(raw, expected):
    assert normalize_terms(raw) == expected


def test_prompt_names_vendor():
    assert "hallmark.com" in keyword_prompt("hallmark.com")
    assert "2-4" in keyword_prompt("")


@pytest.mark.asyncio
async def test_unconfigured_returns_no_terms(photo):
    assert await extract_keywords(photo.data, photo.mime_type) is None


@pytest.mark.asyncio
async def test_terms_are_capped(photo, vision_configured):
    transport = json_transport({":generateContent": (200, gemini_reply("Mandalorian Grogu Keepsake Ornament Star Wars"))})

    terms = await extract_keywords(photo.data, photo.mime_type, transport=transport)

    assert terms == "Mandalorian Grogu Keepsake Ornament"


@pytest.mark.asyncio
async def test_backend_failure_returns_no_terms(photo, vision_configured):
    transport = json_transport({":generateContent": (503, "overloaded")})
    assert await extract_keywords(photo.data, photo.mime_type, transport=transport) is None


@pytest.mark.asyncio
async def test_empty_reply_returns_no_terms(photo, vision_configured):
    transport = json_transport({":generateContent": (200, {"candidates": []})})
    assert await extract_keywords(photo.data, photo.mime_type, transport=transport) is None


@pytest.mark.asyncio
async def test_non_string_text_part_returns_no_terms(photo, vision_configured):
    reply = {"candidates": [{"content": {"parts": [{"text": {"terms": ["Snoopy"]}}]}}]}
    transport = json_transport({":generateContent": (200, reply)})
    assert await extract_keywords(photo.data, photo.mime_type, transport=transport) is None
