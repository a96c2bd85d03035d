"""FastAPI application factory.

The api layer validates inputs, reads and writes the database and shapes
JSON payloads. Long-running work (waiting on RunPod) is handed to
BackgroundTasks and runs in engui.worker.
"""

from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Generator

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from engui.api.errors import (
    ApiError,
    api_error_handler,
    database_error_handler,
    http_error_handler,
    validation_error_handler,
)
from engui.config import get_cors_origins, get_exports_dir, get_log_level, get_results_dir
from engui.db.repo import DbSession
from engui.db.session import get_session, init_db

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """Apply ENGUI_LOG_LEVEL to the root logger (no-op if already configured)."""
    logging.basicConfig(level=get_log_level(), format=LOG_FORMAT)


def get_db_session(request: Request) -> Generator[DbSession, None, None]:
    """Dependency to get database session.

    Yields:
        Database session that is automatically closed after request.
    """
    session = get_session(getattr(request.app.state, "db_path", None))
    try:
        yield session
    finally:
        session.close()


def _mount_public(app: FastAPI, url_path: str, directory: Path, name: str) -> None:
    if directory.exists():
        app.mount(url_path, StaticFiles(directory=str(directory)), name=name)
        return

    # Fallback when the directory has not been created yet
    @app.get(f"{url_path}/{{path:path}}", include_in_schema=False)
    def public_not_found(path: str):
        raise HTTPException(status_code=404, detail="File not found")


def create_app(db_path: Path | None = None, resume_jobs: bool = True) -> FastAPI:
    """Create FastAPI application.

    Args:
        db_path: Optional path to database file.
        resume_jobs: Pick up jobs left in processing when the app starts.

    Returns:
        Configured FastAPI application.
    """
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(db_path)
        if resume_jobs:
            from engui.worker.orchestrator import resume_generation_jobs

            threading.Thread(
                target=resume_generation_jobs, args=(db_path,), daemon=True
            ).start()
        yield

    app = FastAPI(
        title="EnguiStudio API",
        description="AI media generation and video sequencing",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.db_path = db_path

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)

    # Include routes
    from engui.api.routes import (
        credit_activity,
        generate,
        jobs,
        loras,
        media,
        migration,
        presets,
        settings,
        storage,
        video_export,
        video_keyframes,
        video_projects,
        video_tracks,
        workspace_media,
        workspaces,
    )

    for module in (
        jobs,
        presets,
        credit_activity,
        workspaces,
        workspace_media,
        loras,
        settings,
        storage,
        generate,
        media,
        video_projects,
        video_tracks,
        video_keyframes,
        video_export,
        migration,
    ):
        app.include_router(module.router, prefix="/api")

    _mount_public(app, "/results", get_results_dir(), "results")
    _mount_public(app, "/exports", get_exports_dir(), "exports")

    # Health check endpoint
    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


# Default app instance
app = create_app()
