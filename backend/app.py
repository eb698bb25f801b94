"""
Hedgebase Backend Application

FastAPI application hosting the habitat controller.
"""

import os
import sys
from contextlib import asynccontextmanager

import log_config  # noqa: F401
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Import API router
import api
from api import router as api_router

from core.hedgebase.controller import build_controller
from core.hedgebase.settings import load_settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan manager for startup/shutdown."""
    # Startup
    logger.info("Hedgebase starting")

    # Configuration faults are fatal here
    settings = load_settings()
    logger.info(
        f"Hardware profile: {settings.hardware_profile}, store: {settings.store_backend}"
    )

    controller = build_controller(settings)
    await controller.start()

    # Make controller available to API
    api.controller = controller

    yield

    # Shutdown
    logger.info("Hedgebase shutting down")
    api.controller = None
    await controller.stop()
    if controller.actuator:
        controller.actuator.close()
    await controller.store.close()


# Create FastAPI application
app = FastAPI(
    title="Hedgebase API",
    description="Habitat temperature control with a BLE sensor and a heat lamp relay",
    version="0.1.0",
    lifespan=lifespan,
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log an unhandled error once, with its traceback, and answer 500."""
    logger.opt(exception=exc).error(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}: {exc}"
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__},
    )


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


# For development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
