# =============================================================================
# FastAPI Application
# =============================================================================
#
# Run locally:
#   uvicorn cv_evaluator.main:app --reload
#   celery -A cv_evaluator.workers.celery_app worker --loglevel=info
#   celery -A cv_evaluator.workers.celery_app beat --loglevel=info
#
# create_app() builds a fresh application; tests call it after pointing the
# database engine at SQLite.
# =============================================================================

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from cv_evaluator.api.evaluate import router as evaluation_router
from cv_evaluator.config import get_settings
from cv_evaluator.db.engine import init_db
from cv_evaluator.models.responses import HealthResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_db()
    logger.info("%s %s started", app.title, app.version)
    yield


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Scores a candidate's CV and project report against a job title. "
            "Evaluations run asynchronously; poll GET /result/{id}."
        ),
        lifespan=lifespan,
    )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    def health() -> HealthResponse:
        return HealthResponse(version=settings.app_version, service=settings.app_name)

    app.include_router(evaluation_router)
    return app


app = create_app()
