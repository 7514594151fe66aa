"""
Shared fixtures. No test talks to a real backend: credentials are blanked
and HTTP goes through httpx.MockTransport.
"""

import json

import httpx
import pytest

from collectible_draft.core.config import settings
from collectible_draft.schemas.pipeline import Photo
from collectible_draft.schemas.records import ScrapedRecord, ScrapeOutcome, VisionRecord
from collectible_draft.schemas.search import SearchCandidate, SearchOutcome


@pytest.fixture(autouse=True)
def blank_credentials(monkeypatch):
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "")
    monkeypatch.setattr(settings, "GEMINI_MODEL", "")
    monkeypatch.setattr(settings, "GOOGLE_CSE_API_KEY", "")
    monkeypatch.setattr(settings, "GOOGLE_CSE_ENGINE_ID", "")
    monkeypatch.setattr(settings, "SERPAPI_API_KEY", "")
    monkeypatch.setattr(settings, "VERIFY_GUESSED_URLS", False)
    monkeypatch.delenv("SERPAPI_API_KEY", raising=False)


@pytest.fixture
def photo():
    return Photo(data=b"\x89PNG fake image bytes", mime_type="image/png")


PRODUCT_HTML = """
<html>
<head>
  <title>Hallmark</title>
  <meta property="og:title" content="Mandalorian Ornament | Hallmark">
  <meta property="og:description" content="Star Wars: The Mandalorian 2021 Keepsake Ornament with light.">
  <meta property="product:category" content="Ornaments">
</head>
<body>
  <nav class="breadcrumbs">Home / Ornaments / Keepsake Ornaments</nav>
  <h1 data-testid="product-title">Star Wars: The Mandalorian Ornament</h1>
  <div class="product-info">
    <p>Item number: 5QXI7292 Collectible</p>
  </div>
  <script>var x = "Item number: SCRIPT123";</script>
</body>
</html>
"""


@pytest.fixture
def product_html():
    return PRODUCT_HTML


def gemini_reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def json_transport(handler_map):
    """
    MockTransport answering by URL substring: {"substr": (status, json_body)}.
    Requests are recorded on transport.requests.
    """
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        for needle, (status, body) in handler_map.items():
            if needle in str(request.url):
                if isinstance(body, (dict, list)):
                    return httpx.Response(status, content=json.dumps(body), headers={"content-type": "application/json"})
                return httpx.Response(status, text=body)
        return httpx.Response(404, text="not mocked")

    transport = httpx.MockTransport(handler)
    transport.requests = requests
    return transport


@pytest.fixture
def candidates():
    return [
        SearchCandidate(
            title="Mandalorian Ornament",
            page_url="https://www.hallmark.com/ornaments/mandalorian-5QXI7292.html",
            thumbnail_url="https://img.example/t1.jpg",
            snippet="Keepsake",
            display_domain="www.hallmark.com",
        ),
        SearchCandidate(
            title="Grogu Ornament",
            page_url="https://www.ornamentmall.com/grogu",
            thumbnail_url="https://img.example/t2.jpg",
            snippet="",
            display_domain="www.ornamentmall.com",
        ),
    ]


class FakeComponents:
    """Stand-ins for the network components, recording what they were given."""

    def __init__(self, candidates=None, search_error=None, scrape=None, vision=None, vision_error=None):
        self.candidates = candidates or []
        self.search_error = search_error
        self.scrape = scrape or ScrapeOutcome(
            data=ScrapedRecord(title="Scraped Title", brand="Hallmark", sku="5QXI7292", year_released=2021),
            success=True,
        )
        self.vision = vision or VisionRecord(
            title="Vision Title",
            description="Vision description",
            condition="Mint",
            tags=["star wars", "ornament"],
        )
        self.vision_error = vision_error
        self.calls = []

    async def keywords(self, data, mime_type):
        self.calls.append(("keywords", mime_type))
        return "Mandalorian ornament"

    async def search(self, keywords):
        self.calls.append(("search", keywords))
        return SearchOutcome(
            query=f"(site:hallmark.com) {keywords}",
            keywords=keywords,
            candidates=self.candidates,
            total_results=len(self.candidates),
            error=self.search_error,
        )

    async def scrape_page(self, url):
        self.calls.append(("scrape", url))
        return self.scrape

    async def analyze(self, data, mime_type):
        self.calls.append(("vision", mime_type))
        if self.vision_error is not None:
            raise self.vision_error
        return self.vision
