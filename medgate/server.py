"""
MedGate application factory

Builds the FastAPI app around the learning router and runs the idle-session
sweep for the lifetime of the process.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .gateway import LearningGateway
from .logger_config import setup_logging_from_settings
from .routes import get_gateway, learning_router, set_gateway

logger = logging.getLogger(__name__)

SERVER_START_TIME = time.time()


async def session_sweeper(gateway: LearningGateway, interval_seconds: int, idle_minutes: int) -> None:
    """Periodically reclaim capacity from sessions that were never logged out"""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = gateway.cleanup_expired_sessions(idle_minutes)
            if removed:
                logger.info(f"Session sweep removed {removed} idle sessions")
        except Exception as e:
            # Keep sweeping; one failed pass must not stop capacity reclamation
            logger.error(f"Session sweep failed: {e}", exc_info=True)


def create_app(settings: Optional[Settings] = None, gateway: Optional[LearningGateway] = None) -> FastAPI:
    settings = settings or get_settings()
    if gateway is not None:
        set_gateway(gateway)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active = get_gateway()
        sweeper = asyncio.create_task(
            session_sweeper(active, settings.SESSION_SWEEP_INTERVAL_SECONDS, settings.SESSION_IDLE_TIMEOUT_MINUTES)
        )
        logger.info(f"{settings.APP_NAME} started (environment={settings.ENVIRONMENT})")
        try:
            yield
        finally:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass
            logger.info(f"{settings.APP_NAME} stopped")

    app = FastAPI(
        title=f"{settings.APP_NAME} Learning Gate",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(learning_router)

    @app.get("/api/health")
    async def health():
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "uptime_seconds": round(time.time() - SERVER_START_TIME, 1),
        }

    return app


def main() -> None:
    settings = get_settings()
    setup_logging_from_settings(settings)
    uvicorn.run(create_app(settings), host=settings.API_HOST, port=settings.API_PORT, workers=1)


if __name__ == "__main__":
    main()
