"""FastAPI dependency injection for the provider and workspace-scoped AppState."""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status

from api.workspaces import Workspace, get_workspace
from surveybot.config import Settings, load_settings
from surveybot.gemini import GeminiProvider
from surveybot.state import AppState

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    """Settings loaded at startup, or from the environment if startup was skipped."""
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        settings = load_settings()
        request.app.state.settings = settings
    return settings


def get_provider(request: Request) -> GeminiProvider:
    """Shared Gemini provider, created on first use.

    Creating it requires GOOGLE_API_KEY; a missing key is a 503 rather than a
    startup failure so health checks keep working.
    """
    provider = getattr(request.app.state, "provider", None)
    if provider is None:
        try:
            provider = GeminiProvider.from_config()
        except RuntimeError as exc:
            logger.error("Gemini provider unavailable: %s", exc)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=str(exc),
            )
        request.app.state.provider = provider
    return provider


async def get_current_workspace(workspace_id: str) -> Workspace:
    """Resolve the ``{workspace_id}`` path parameter.

    Raises:
        HTTPException 404: If the workspace does not exist.
    """
    workspace = get_workspace(workspace_id)
    if workspace is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Workspace not found: {workspace_id}",
        )
    return workspace


async def get_app_state(
    workspace: Workspace = Depends(get_current_workspace),
) -> AppState:
    """Primary dependency for chat and settings routes."""
    return workspace.state
