from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from livetv.config import settings, setup_logging
from livetv.dependencies import build_services

from livetv.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting LiveTV Catalog...")

    try:
        services = build_services(settings)
        app.state.services = services

        logger.info("Starting cache refresh scheduler...")
        services.scheduler.start()
        logger.info("LiveTV Catalog started successfully")
    except Exception as e:
        logger.error(f"Failed to start LiveTV Catalog: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down LiveTV Catalog...")

    try:
        services.scheduler.shutdown()
    except Exception as e:
        logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)

    logger.info("LiveTV Catalog stopped")


app = FastAPI(
    title="LiveTV Catalog",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(main_router)
