"""
Traffic Cop: inline bot/automation classification for publishers.
Main application entry point.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.admin import router as admin_router
from app.api.analyze import router as analyze_router
from app.api.thresholds import router as thresholds_router
from app.config import get_settings
from app.core.engine import get_threshold_store

import structlog

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer() if get_settings().debug else structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()

VERSION = "2.2.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "traffic_cop_starting",
        base_url=get_settings().base_url,
        thresholds=get_threshold_store().snapshot().to_dict(),
    )
    yield
    logger.info("traffic_cop_shutting_down")


app = FastAPI(
    title="Traffic Cop",
    description="Inline traffic classification: allow, challenge or block automated visitors.",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if get_settings().debug else None,
    redoc_url="/redoc" if get_settings().debug else None,
    openapi_url="/openapi.json" if get_settings().debug else None,
)

# The SDK runs on publisher origins; keys, not cookies, authenticate
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["X-API-Key", "Authorization", "Content-Type"],
    max_age=86400,
)

# --- Routes ---
app.include_router(analyze_router)
app.include_router(thresholds_router)
app.include_router(admin_router)


@app.get("/health")
async def health():
    return {"status": "healthy", "service": "traffic-cop", "version": VERSION}
