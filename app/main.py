"""
FastAPI side-car for the bot and workers.
Serves health/readiness probes and Prometheus metrics.
"""
from fastapi import FastAPI

from app.api.routes import health
from app.core.logging import configure_logging
from app.utils.metrics import router as metrics_router

configure_logging()

app = FastAPI(
    title="tg-bawer",
    description="Health and metrics for the image generation relay",
    version="1.0.0",
)

# Routers
app.include_router(health.router, tags=["health"])
app.include_router(metrics_router)
