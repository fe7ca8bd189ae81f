"""
SAM Evidence Engine
FastAPI Application Entry Point

Run with:

    uvicorn sam.main:app --host 127.0.0.1 --port 8000
"""
# Load environment variables from .env file first, before any imports
from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from sam.routes import evidence
from sam.services.errors import StorageError
from sam.services.evidence_repository import configure_from_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure the evidence repository on startup."""
    try:
        configure_from_settings()
    except (StorageError, OSError) as e:
        # Routes answer 503 until the store can be opened
        logger.error(f"Evidence store unavailable at startup: {e}")
    yield
    logger.info("SAM evidence engine shutting down")


app = FastAPI(
    title="SAM Evidence",
    description="Evidence reconciliation and identity resolution for personal interactions",
    version="0.1.0",
    lifespan=lifespan
)

# Include routers
app.include_router(evidence.router)


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}
