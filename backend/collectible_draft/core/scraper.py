"""
Heuristic product-page scraper.

Each field is filled by a cascade: an ordered list of small extractor
functions, each trying one strategy and returning None on a miss. The first
non-empty value wins. Extractors receive the parsed page and the fields
found so far (year_released looks at the title and description).
"""

import logging
import re
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx
from bs4 import BeautifulSoup
from bs4.element import Comment, NavigableString, Tag

from collectible_draft.core.config import settings
from collectible_draft.schemas.records import ScrapedRecord, ScrapeOutcome

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

YEAR_RE = re.compile(r"\b(?:19|20)\d{2}\b")
ITEM_LABEL_RE = re.compile(r"Item\s+number:", re.IGNORECASE)
ITEM_NUMBER_RE = re.compile(r"Item\s+number:\s*([A-Z0-9]+)", re.IGNORECASE)
ALNUM_ONLY_RE = re.compile(r"^[A-Z0-9]+$")

TITLE_SELECTORS = 'h1[data-testid="product-title"], h1.product-title, h1.product-name, [data-testid="product-title"]'
TITLE_CLASS_SELECTORS = '[class*="product-title"], [class*="ProductTitle"]'
DESCRIPTION_SELECTORS = (
    '[class*="product-description"], [class*="product-details"], [data-testid="product-description"], '
    '.description, [class*="Description"]'
)
BRAND_SELECTORS = '.brand, .product-brand, [data-testid="brand"]'
SERIES_SELECTORS = (
    '.series, .collection, .product-series, [data-testid="series"], '
    '[class*="series"], [class*="Series"]'
)
BREADCRUMB_SELECTORS = '[class*="breadcrumb"], nav[aria-label*="breadcrumb"], .breadcrumbs'
YEAR_SELECTORS = ".year, .release-year, .product-year"
SKU_SELECTORS = (
    '.sku, .product-sku, [data-testid="sku"], .product-number, '
    '[class*="item-number"], [class*="ItemNumber"]'
)

_SKIP_TEXT_PARENTS = {"script", "style", "noscript", "template"}

Found = Dict[str, Any]
Extractor = Callable[[BeautifulSoup, Found], Optional[str]]


# ---------------------------------------------------------------------------
# small helpers
# ---------------------------------------------------------------------------

def _collapse(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    text = " ".join(text.split())
    return text or None


def _element_text(el: Optional[Tag]) -> Optional[str]:
    if el is None:
        return None
    return _collapse(el.get_text(" "))


def _first_text(soup: BeautifulSoup, selectors: str) -> Optional[str]:
    # first element in document order that has any text
    for el in soup.select(selectors):
        text = _element_text(el)
        if text:
            return text
    return None


def _meta(soup: BeautifulSoup, *, prop: Optional[str] = None, name: Optional[str] = None) -> Optional[str]:
    attrs = {"property": prop} if prop else {"name": name}
    el = soup.find("meta", attrs=attrs)
    if el is None:
        return None
    content = el.get("content")
    if not isinstance(content, str):
        return None
    return content.strip() or None


def run_cascade(soup: BeautifulSoup, found: Found, cascade: Sequence[Extractor]) -> Optional[str]:
    for extractor in cascade:
        value = extractor(soup, found)
        if value is not None and str(value).strip():
            return value
    return None


# ---------------------------------------------------------------------------
# title
# ---------------------------------------------------------------------------

def _title_dedicated(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return _first_text(soup, TITLE_SELECTORS)


def _title_h1(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return _element_text(soup.find("h1"))


def _title_class(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return _first_text(soup, TITLE_CLASS_SELECTORS)


def _title_og(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return _meta(soup, prop="og:title")


def _title_meta(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return _meta(soup, name="title")


TITLE_CASCADE: List[Extractor] = [_title_dedicated, _title_h1, _title_class, _title_og, _title_meta]


# ---------------------------------------------------------------------------
# description
# ---------------------------------------------------------------------------

def _description_og(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return _meta(soup, prop="og:description")


def _description_meta(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return _meta(soup, name="description")


def _description_about_section(soup: BeautifulSoup, found: Found) -> Optional[str]:
    """Block right after an "About this product" style heading."""
    for heading in soup.find_all(["h2", "h3", "h4"]):
        text = heading.get_text(" ").lower()
        if "about" not in text or "product" not in text:
            continue
        nxt = heading.find_next_sibling()
        if nxt is not None and nxt.name in ("p", "div"):
            body = _element_text(nxt)
            if body and len(body) > 20:
                return body
    return None


def _description_class(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return _first_text(soup, DESCRIPTION_SELECTORS)


DESCRIPTION_CASCADE: List[Extractor] = [
    _description_og,
    _description_meta,
    _description_about_section,
    _description_class,
]


# ---------------------------------------------------------------------------
# brand
# ---------------------------------------------------------------------------

def _brand_class(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return _first_text(soup, BRAND_SELECTORS)


def _brand_meta(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return _meta(soup, prop="product:brand")


def _brand_default(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return found.get("_default_brand")


BRAND_CASCADE: List[Extractor] = [_brand_class, _brand_meta, _brand_default]


# ---------------------------------------------------------------------------
# series
# ---------------------------------------------------------------------------

def normalize_series(text: Optional[str]) -> Optional[str]:
    """
    Collapse whitespace and drop a word run repeated right after itself:
    "Keepsake Ornaments\\nKeepsake Ornaments" -> "Keepsake Ornaments".
    """
    words = (text or "").split()
    changed = True
    while changed:
        changed = False
        for size in range(len(words) // 2, 0, -1):
            for i in range(0, len(words) - 2 * size + 1):
                if words[i:i + size] == words[i + size:i + 2 * size]:
                    del words[i + size:i + 2 * size]
                    changed = True
                    break
            if changed:
                break
    return " ".join(words) or None


def last_breadcrumb_segment(text: Optional[str]) -> Optional[str]:
    """
    "Home / Ornaments / Keepsake Ornaments" -> "Keepsake Ornaments".
    Needs at least two segments: a lone segment is usually just "Home".
    """
    parts = [p.strip() for p in (text or "").split("/") if p.strip()]
    if len(parts) > 1:
        return parts[-1]
    return None


def _series_class(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return _first_text(soup, SERIES_SELECTORS)


def _series_breadcrumb(soup: BeautifulSoup, found: Found) -> Optional[str]:
    crumb = soup.select_one(BREADCRUMB_SELECTORS)
    if crumb is None:
        return None
    segment = last_breadcrumb_segment(crumb.get_text(" "))
    if segment:
        return segment
    # separators drawn with CSS: use the list items instead
    items = [_element_text(li) for li in crumb.find_all("li")]
    items = [i for i in items if i and i != "/"]
    if len(items) > 1:
        return items[-1]
    return None


def _series_category_meta(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return _meta(soup, prop="product:category")


SERIES_CASCADE: List[Extractor] = [_series_class, _series_breadcrumb, _series_category_meta]


# ---------------------------------------------------------------------------
# year released
# ---------------------------------------------------------------------------

def find_year(text: Optional[str], current_year: Optional[int] = None) -> Optional[int]:
    if not text:
        return None
    latest = (current_year or date.today().year) + 1
    for m in YEAR_RE.finditer(text):
        year = int(m.group(0))
        if 1900 <= year <= latest:
            return year
    return None


def _year_element(soup: BeautifulSoup, found: Found) -> Optional[str]:
    el = soup.select_one(YEAR_SELECTORS)
    year = find_year(_element_text(el), found.get("_current_year"))
    return str(year) if year else None


def _year_title(soup: BeautifulSoup, found: Found) -> Optional[str]:
    year = find_year(found.get("title"), found.get("_current_year"))
    return str(year) if year else None


def _year_description(soup: BeautifulSoup, found: Found) -> Optional[str]:
    year = find_year(found.get("description"), found.get("_current_year"))
    return str(year) if year else None


YEAR_CASCADE: List[Extractor] = [_year_element, _year_title, _year_description]


# ---------------------------------------------------------------------------
# sku
# ---------------------------------------------------------------------------

def sku_from_text(text: Optional[str]) -> Optional[str]:
    """ "Item number: 5QXD7292 Collectible" -> "5QXD7292" """
    if not text:
        return None
    m = ITEM_NUMBER_RE.search(text)
    return m.group(1) if m else None


def _label_nodes(soup: BeautifulSoup) -> List[NavigableString]:
    return [
        node for node in soup.find_all(string=ITEM_LABEL_RE)
        if not isinstance(node, Comment)
        and node.parent is not None
        and node.parent.name not in _SKIP_TEXT_PARENTS
    ]


def _sku_labeled_text(soup: BeautifulSoup, found: Found) -> Optional[str]:
    for node in _label_nodes(soup):
        # value in the same text node, else split across inline children
        sku = sku_from_text(str(node)) or sku_from_text(node.parent.get_text(" "))
        if sku:
            return sku
    return None


def _sku_label_sibling(soup: BeautifulSoup, found: Found) -> Optional[str]:
    """<span>Item number:</span><span>5QXD7292</span>"""
    for node in _label_nodes(soup):
        sibling = node.parent.find_next_sibling()
        text = _element_text(sibling)
        if text and ALNUM_ONLY_RE.match(text):
            return text
    return None


def _sku_class(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return _first_text(soup, SKU_SELECTORS)


def _sku_retailer_meta(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return _meta(soup, prop="product:retailer_item_id")


def _sku_product_meta(soup: BeautifulSoup, found: Found) -> Optional[str]:
    return _meta(soup, prop="product:product_id")


SKU_CASCADE: List[Extractor] = [
    _sku_labeled_text,
    _sku_label_sibling,
    _sku_class,
    _sku_retailer_meta,
    _sku_product_meta,
]


def _clean_sku(value: Optional[str]) -> Optional[str]:
    if value and ITEM_LABEL_RE.search(value):
        return sku_from_text(value) or value
    return value


# ---------------------------------------------------------------------------
# page -> record
# ---------------------------------------------------------------------------

def _finalize(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def parse_product_html(
    html: str,
    *,
    default_brand: Optional[str] = None,
    current_year: Optional[int] = None,
) -> ScrapedRecord:
    """
    Pure: the same HTML always yields the same record.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    found: Found = {
        "_default_brand": default_brand if default_brand is not None else settings.VENDOR_DEFAULT_BRAND,
        "_current_year": current_year,
    }

    found["title"] = run_cascade(soup, found, TITLE_CASCADE)
    found["description"] = run_cascade(soup, found, DESCRIPTION_CASCADE)
    found["brand"] = run_cascade(soup, found, BRAND_CASCADE)
    found["series_name"] = normalize_series(run_cascade(soup, found, SERIES_CASCADE))
    year = run_cascade(soup, found, YEAR_CASCADE)
    found["year_released"] = int(year) if year else None
    found["sku"] = _clean_sku(run_cascade(soup, found, SKU_CASCADE))

    record = ScrapedRecord(**{
        field: _finalize(found.get(field))
        for field in ScrapedRecord.model_fields
    })
    logger.debug("Scraped fields: %s", record.model_dump())
    return record


async def scrape_product(
    url: str,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ScrapeOutcome:
    """
    Fetches a vendor product page and runs the field cascades over it.
    Never raises: a failed fetch gives success=False and an all-null record.
    """
    try:
        async with httpx.AsyncClient(
            timeout=settings.HTTP_TIMEOUT_SECONDS, follow_redirects=True, transport=transport
        ) as client:
            r = await client.get(url, headers=BROWSER_HEADERS)
            if not r.is_success:
                message = f"Failed to fetch page: {r.status_code}"
                logger.warning("Scrape of %s failed: %s", url, message)
                return ScrapeOutcome(success=False, error=message)
            html = r.text
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning("Scrape of %s failed: %s", url, e)
        return ScrapeOutcome(success=False, error=f"Failed to fetch page: {e}")

    logger.info("Fetched %s (%d chars)", url, len(html))
    return ScrapeOutcome(data=parse_product_html(html), success=True)
