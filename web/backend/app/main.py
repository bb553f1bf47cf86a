"""FastAPI application for the habitsync service.

Provides REST API endpoints wrapping the habitsync package for:
- Multi-device sync (Last-Write-Wins change exchange)
- The change feed used by devices catching up after being offline
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the habitsync package is importable by adding the project root to sys.path.
_project_root = str(Path(__file__).resolve().parents[3])
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from habitsync import __version__
from habitsync.config import Settings, configure_logging
from web.backend.app.routers import sync

configure_logging(Settings.from_env().log_level)

app = FastAPI(
    title="habitsync API",
    description=(
        "REST API for habitsync. Devices exchange offline edits to goals "
        "and daily completions and converge using Last-Write-Wins."
    ),
    version=__version__,
)

# ---------------------------------------------------------------------------
# CORS middleware (allow all origins for development)
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------
app.include_router(sync.router)


# ---------------------------------------------------------------------------
# Root and health-check endpoints
# ---------------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root():
    """Return basic API information."""
    return {
        "name": "habitsync API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


@app.get("/health", tags=["meta"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
