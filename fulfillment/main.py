"""
FastAPI application entry point.
Configures routes and lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fulfillment.api.webhooks.stripe import router as stripe_router
from fulfillment.config import settings
from fulfillment.database import close_db
from fulfillment.logging_config import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifecycle manager."""
    configure_logging()
    logging.info("Starting up ticket fulfillment...")

    yield

    await close_db()
    logging.info("Shutting down...")


app = FastAPI(
    title="Ticket Fulfillment",
    description="Stripe checkout fulfillment for conference tickets and workshop vouchers",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logging.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal Server Error"},
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "env": settings.app_env,
    }


app.include_router(
    stripe_router,
    prefix="/webhooks",
    tags=["webhooks"],
)
