"""
Main FastAPI application for PixShop API.
Serves health, the Arkama payment webhook, the operator purchases API and metrics.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pixshop.core.config import settings
from pixshop.core.logging import configure_logging
from pixshop.api.routes import admin, health, webhooks
from pixshop.services.pix import build_gateway
from pixshop.utils.metrics import router as metrics_router

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="PixShop API",
    description="PIX payment webhook and operator API for the PixShop bot",
    version="1.0.0",
)


@app.on_event("startup")
def open_gateway() -> None:
    # One gateway per process; routes read it from app.state
    app.state.pix_gateway = build_gateway()
    logger.info("pix_gateway_ready", extra={"mode": app.state.pix_gateway.mode})


@app.on_event("shutdown")
def close_gateway() -> None:
    gateway = getattr(app.state, "pix_gateway", None)
    if gateway is not None:
        gateway.close()


# CORS
origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(health.router, tags=["health"])
app.include_router(webhooks.router)
app.include_router(admin.router)
app.include_router(metrics_router)
