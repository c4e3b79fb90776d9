"""
FabTrack backend service: operator control + monitoring.

Run with:
    uvicorn --factory fabtrack.main:create_app
or:
    fabtrack serve
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fabtrack import __version__
from fabtrack.config import get_cors_origins, get_db_path, strict_invariants_enabled
from fabtrack.jobs.registry import JobRegistry
from fabtrack.monitoring import server as monitoring
from fabtrack.persistence.manager import PersistenceManager
from fabtrack.routes import control

logger = logging.getLogger(__name__)


def create_app(registry: Optional[JobRegistry] = None) -> FastAPI:
    """
    Create the backend application.

    Args:
        registry: Registry to serve. When omitted, a SQLite-backed registry
            is created from configuration and persisted jobs are loaded.
    """
    if registry is None:
        persistence = PersistenceManager(db_path=get_db_path())
        registry = JobRegistry(
            persistence_manager=persistence,
            strict_invariants=strict_invariants_enabled(),
        )
        registry.load_all_jobs()

    app = FastAPI(title="FabTrack Backend", version=__version__)

    # CORS middleware for frontend access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.job_registry = registry

    app.include_router(monitoring.router)
    app.include_router(control.router)

    @app.get("/")
    async def root():
        return {"service": "fabtrack-backend", "status": "running"}

    logger.info(f"FabTrack backend ready with {registry.count()} jobs")
    return app
