from fastapi import APIRouter

from collectible_draft.core import custom_search, gemini, serpapi
from collectible_draft.core.config import settings
from collectible_draft.core.vendors import vendor_domains

router = APIRouter(tags=["meta"])


@router.get("/")
def root():
    return {
        "name": "Collectible Draft API",
        "status": "ok",
        "docs": "/docs",
        "health": "/health",
        "version": "/version",
    }


@router.get("/health")
def health():
    # which backends are usable; unconfigured ones degrade to placeholders
    return {
        "ok": True,
        "vision_configured": gemini.is_configured(),
        "search_configured": custom_search.is_configured() or serpapi.is_configured(),
        "vendors": vendor_domains(),
    }


@router.get("/version")
def version():
    return {
        "version": settings.APP_VERSION,
        "build": settings.BUILD_ID,
    }
