"""
FastAPI Main Application
Runs the order book feed and exposes the latest market order cost estimate
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import FastAPI

from app.config import settings
from app.core.logging import setup_logging
from app.realtime.runtime import SimulationRuntime

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager
    Starts the feed on startup and releases it on shutdown
    """
    logger.info("Starting trade simulator (%s)", settings.APP_ENV)
    runtime = SimulationRuntime(settings)
    app.state.simulation_runtime = runtime
    try:
        await runtime.start()
        logger.info(
            "Feed %s %s:%s",
            settings.FEED_WS_URL,
            settings.FEED_CHANNEL,
            settings.FEED_INSTRUMENT,
        )
    except Exception as e:
        logger.error(f"Failed to start simulation runtime: {e}")

    try:
        yield
    finally:
        logger.info("Stopping simulation runtime...")
        await runtime.stop()
        logger.info("Trade simulator shutdown complete")


app = FastAPI(
    title="Market Order Cost Simulator",
    description="Slippage, fee and market impact estimates from a live L2 order book",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Market Order Cost Simulator",
        "version": "1.0.0",
        "exchange": settings.FEED_EXCHANGE,
        "docs": "/docs",
    }


from app.api.routes import health, simulation

app.include_router(health.router, tags=["Health"])
app.include_router(simulation.router, prefix="/api/v1/simulation", tags=["Simulation"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)
