"""
FastAPI backend for the CRM contact duplicate scrubber.

Exposes the admin preview/execute endpoints over the contact store.
"""

import logging
import os
import subprocess

from dotenv import load_dotenv

load_dotenv()

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from api.routes import duplicates
from crm.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting CRM duplicate scrubber API...")
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title="CRM Duplicate Scrubber API",
    description="Preview and merge duplicate CRM contacts",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS - allow the CRM frontend to connect (configured via API_CORS_ORIGINS env var)
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)

# Previews of large stores are big JSON payloads
app.add_middleware(GZipMiddleware, minimum_size=500)

app.include_router(
    duplicates.router,
    prefix="/api/admin/contacts/scrub-duplicates",
    tags=["admin", "duplicates"],
)


def _get_build_hash() -> str:
    """Get build hash from env var or git."""
    env_hash = os.environ.get("BUILD_HASH")
    if env_hash:
        return env_hash
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],
            stderr=subprocess.DEVNULL,
        ).decode().strip()
    except Exception:
        return "unknown"


BUILD_HASH = _get_build_hash()


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "version": "1.0.0", "commit": BUILD_HASH, "service": "CRM Duplicate Scrubber API"}
