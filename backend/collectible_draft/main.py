"""
Collectible Draft API - FastAPI Main Entry

LOCAL:
    cd backend
    source .venv/bin/activate
    python -m uvicorn collectible_draft.main:app --reload --host 0.0.0.0 --port 8000

TEST:
    curl -i http://127.0.0.1:8000/health
    curl -i -F image=@ornament.jpg http://127.0.0.1:8000/v1/search-images

PRODUCTION:
    pip install .
    python -m uvicorn collectible_draft.main:app --host 0.0.0.0 --port $PORT
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from collectible_draft.api.routes_identify import router as identify_router
from collectible_draft.api.routes_meta import router as meta_router
from collectible_draft.api.routes_runs import router as runs_router
from collectible_draft.core.config import settings
from collectible_draft.core.pipeline import InvalidTransition, PipelineController, RunNotFound, RunRegistry


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request URL at INFO, API keys included
    logging.getLogger("httpx").setLevel(logging.WARNING)


def create_app(
    controller: Optional[PipelineController] = None,
    registry: Optional[RunRegistry] = None,
) -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Collectible Draft API",
        version=settings.APP_VERSION,
        description="Photo -> search -> scrape -> vision -> merged draft for new catalog items",
    )

    # Browser clients upload photos from another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.controller = controller or PipelineController()
    app.state.registry = registry or RunRegistry()

    @app.exception_handler(RunNotFound)
    async def run_not_found(request: Request, exc: RunNotFound):
        return JSONResponse(status_code=404, content={"detail": f"Unknown run {exc.args[0]}"})

    @app.exception_handler(InvalidTransition)
    async def invalid_transition(request: Request, exc: InvalidTransition):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    app.include_router(meta_router)
    app.include_router(identify_router)
    app.include_router(runs_router)

    return app


app = create_app()
