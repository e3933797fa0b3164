# qurbani/main.py
"""
Application factory. Builds the FastAPI app, mounts routers and maps domain
errors to HTTP responses.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from qurbani.api.routers import agents, cow_groups, donations, donors, media, notifications
from qurbani.config.settings import Settings, settings as default_settings
from qurbani.domain.errors import QurbaniError
from qurbani.infrastructure.db.session import create_engine_and_sessionmaker, init_models, ping
from qurbani.telegram.service import send_media_to_chat

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger.info("🚀 Starting qurbani backend (%s)", settings.ENV)

    engine, session_factory = create_engine_and_sessionmaker(settings)
    if settings.CREATE_TABLES_ON_STARTUP:
        await init_models(engine)
    await ping(session_factory)
    logger.info("Database connected")

    app.state.engine = engine
    app.state.session_factory = session_factory
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Database engine disposed")


async def qurbani_error_handler(request: Request, exc: QurbaniError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": True, "message": exc.message})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": True, "message": "An unexpected error occurred"})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings

    app = FastAPI(title="Qurbani Donations Backend", lifespan=lifespan)
    app.state.settings = settings
    app.state.media_sender = send_media_to_chat

    # Basic CORS (adjust origins in production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(QurbaniError, qurbani_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # include routers
    app.include_router(donors.router, prefix="/api/donors", tags=["donors"])
    app.include_router(donations.router, prefix="/api/donations", tags=["donations"])
    app.include_router(agents.router, prefix="/api/agents", tags=["agents"])
    app.include_router(cow_groups.router, prefix="/api/cow-groups", tags=["cow-groups"])
    app.include_router(media.router, prefix="/api/media", tags=["media"])
    app.include_router(notifications.router, prefix="/api/notifications", tags=["notifications"])
    app.include_router(notifications.telegram_router, prefix="/api/telegram", tags=["telegram"])

    @app.get("/api/health")
    async def health():
        """Health / basic info endpoint."""
        return {"status": "ok", "service": "qurbani-backend", "env": settings.ENV}

    return app
