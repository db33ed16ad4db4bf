"""FastAPI application factory.

Main entry point for the speaking practice Web API.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from speaking import __version__
from speaking.config.app_config import load_app_config
from speaking.db.database import init_db
from speaking.llm.client import mask_secret
from speaking.storage.object_store import get_object_store
from speaking.web.routes import (
    health_router,
    tests_router,
    transcribe_router,
    scoring_router,
    recordings_router,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    config = load_app_config()
    init_db()
    store = get_object_store()

    logger.info(
        "api_startup",
        db_path=str(config.db_path),
        storage_dir=str(store.bucket_dir.absolute()),
        scoring_provider=config.scoring.provider,
        transcription_provider=config.transcription.provider,
        providers={
            name: {
                "base_url": mask_secret(provider.base_url),
                "has_api_key": bool(provider.get_api_key()),
            }
            for name, provider in config.providers.items()
        },
        auth_secret_set=bool(config.auth.get_secret()),
    )
    yield


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    config = load_app_config()

    app = FastAPI(
        title="Speaking Practice API",
        description="Record, transcribe and score speaking test answers",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware for web clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health_router)
    app.include_router(tests_router)
    app.include_router(transcribe_router)
    app.include_router(scoring_router)
    app.include_router(recordings_router)

    # Stored recordings are served as static files
    if config.public_storage_url.startswith("/"):
        app.mount(
            config.public_storage_url,
            StaticFiles(directory=config.storage_dir, check_dir=False),
            name="storage",
        )

    return app


# Default app instance for uvicorn
app = create_app()
