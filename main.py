# main.py
"""Main application: retrieval API with an app-owned retrieval monitor"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from config import settings
from services.logger_config import setup_logging
from database.session import async_engine, init_db
from api.endpoints import router
from services.monitor import RetrievalMonitor

setup_logging()
logger = logging.getLogger(settings.LOGGER_NAME)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting application...")

    await init_db()
    logger.info("Database initialized")

    app.state.monitor = RetrievalMonitor(
        capacity=settings.MONITOR_CAPACITY,
        low_quality_threshold=settings.MONITOR_LOW_QUALITY_THRESHOLD,
    )
    logger.info(f"Retrieval monitor ready (capacity {settings.MONITOR_CAPACITY})")
    yield

    await async_engine.dispose()
    logger.info("Application shutdown complete")

app = FastAPI(
    title=settings.APP_TITLE,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

app.include_router(router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )
