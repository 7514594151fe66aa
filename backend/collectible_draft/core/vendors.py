from __future__ import annotations

import re
from typing import List, Optional, Sequence
from urllib.parse import urlparse

from collectible_draft.core.config import settings

# Links that point at the image file rather than the page it sits on
IMAGE_URL_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp|svg)(\?|$)", re.IGNORECASE)
IMAGE_PATH_MARKERS = ("/images/", "/static/")

# Vendor SKU tokens, e.g. .../demandware.static/.../5QXD7292/...jpg
SKU_TOKEN_PATTERNS = [
    re.compile(r"products/([A-Z0-9]+)", re.IGNORECASE),
    re.compile(r"/([A-Z0-9]{8,})/"),
]


def vendor_domains() -> List[str]:
    return [d.strip().lower() for d in settings.VENDOR_DOMAINS if d and d.strip()]


def primary_vendor() -> str:
    domains = vendor_domains()
    return domains[0] if domains else ""


def build_query(keywords: Optional[str], domains: Optional[Sequence[str]] = None) -> str:
    """
    "(site:a OR site:b) terms" when we have terms, otherwise just "site:a".
    """
    domains = list(domains) if domains is not None else vendor_domains()
    terms = " ".join((keywords or "").split())
    if not terms:
        return f"site:{domains[0]}" if domains else ""
    if not domains:
        return terms
    scope = " OR ".join(f"site:{d}" for d in domains)
    return f"({scope}) {terms}"


def host_of(url: Optional[str]) -> str:
    if not url:
        return ""
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def _bare(domain: str) -> str:
    return domain[4:] if domain.startswith("www.") else domain


def is_vendor_url(url: Optional[str], domains: Optional[Sequence[str]] = None) -> bool:
    """
    True when the URL's host is one of the vendor domains or a subdomain of one.
    """
    host = _bare(host_of(url))
    if not host:
        return False
    domains = list(domains) if domains is not None else vendor_domains()
    for d in domains:
        d = _bare(d.lower())
        if host == d or host.endswith("." + d):
            return True
    return False


def looks_like_image_url(url: Optional[str]) -> bool:
    if not url:
        return False
    if IMAGE_URL_RE.search(url):
        return True
    return any(marker in url for marker in IMAGE_PATH_MARKERS)


def extract_sku_token(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    for pat in SKU_TOKEN_PATTERNS:
        m = pat.search(url)
        if m:
            return m.group(1)
    return None


def product_url_guesses(sku: str, templates: Optional[Sequence[str]] = None) -> List[str]:
    templates = list(templates) if templates is not None else settings.VENDOR_URL_TEMPLATES
    return [t.format(sku=sku) for t in templates if "{sku}" in t]
