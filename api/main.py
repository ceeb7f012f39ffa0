"""FastAPI application entry point with lifespan management."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.workspaces import clear_workspaces, workspace_count
from surveybot.config import load_settings
from surveybot.logger import setup_logger

# Routes log under "api.*"; give them the same stdout handler as the core package
setup_logger("api")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle.

    Startup:
        Load model/persona settings. The Gemini provider is created lazily by
        ``api.dependencies.get_provider`` so the API starts without a key.

    Shutdown:
        Drop in-memory workspaces.
    """
    # --- Startup ---
    logger.info("Starting Survey Analyst API...")
    settings = load_settings()
    app.state.settings = settings
    app.state.provider = getattr(app.state, "provider", None)
    logger.info(
        "Settings loaded: main_model=%s selector_model=%s persona=%s",
        settings.main_model, settings.selector_model, settings.persona,
    )

    yield  # --- Application runs ---

    # --- Shutdown ---
    clear_workspaces()
    logger.info("Shutting down Survey Analyst API.")


app = FastAPI(
    title="Survey Analyst API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from api.routes.chat import router as chat_router
from api.routes.settings import router as settings_router
from api.routes.workspaces import router as workspaces_router

app.include_router(workspaces_router)
app.include_router(chat_router)
app.include_router(settings_router)


# --- Health check ---

@app.get("/api/v1/health")
async def health():
    """System health check."""
    has_key = bool(os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY"))
    provider_ready = getattr(app.state, "provider", None) is not None
    return {
        "status": "ok" if has_key or provider_ready else "degraded",
        "api_key_configured": has_key,
        "provider_ready": provider_ready,
        "workspaces": workspace_count(),
    }
