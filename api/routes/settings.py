"""Persona and model settings endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from api.dependencies import get_app_state, get_settings
from surveybot.config import AVAILABLE_MODELS, Settings
from surveybot.personas import PERSONAS, is_known_persona
from surveybot.state import AppState, TurnInProgressError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["settings"])


class PersonaModel(BaseModel):
    id: str
    title: str
    description: str


class PersonaCatalogResponse(BaseModel):
    personas: List[PersonaModel]
    models: List[str]
    defaults: Dict[str, Any]


class SessionSettingsResponse(BaseModel):
    main_model: str
    selector_model: str
    persona: str
    custom_style_guide: str
    carry_forward_history: bool
    rebuilds: int = 0


class SessionSettingsUpdate(BaseModel):
    persona: Optional[str] = Field(default=None, description="Persona id; see /settings/personas.")
    custom_style_guide: Optional[str] = None
    main_model: Optional[str] = None
    selector_model: Optional[str] = None
    carry_forward_history: Optional[bool] = Field(
        default=None,
        description="Seed rebuilt chats with prior turns instead of starting empty.",
    )


def _settings_payload(app_state: AppState) -> Dict[str, Any]:
    payload = app_state.config.to_dict()
    payload["rebuilds"] = app_state.controller.generation if app_state.controller else 0
    return payload


@router.get("/settings/personas", response_model=PersonaCatalogResponse)
async def list_personas(settings: Settings = Depends(get_settings)):
    """Built-in writing personas and selectable models."""
    return PersonaCatalogResponse(
        personas=[PersonaModel(id=p.id, title=p.title, description=p.description) for p in PERSONAS],
        models=list(AVAILABLE_MODELS),
        defaults={
            "main_model": settings.main_model,
            "selector_model": settings.selector_model,
            "persona": settings.persona,
        },
    )


@router.get("/workspaces/{workspace_id}/settings", response_model=SessionSettingsResponse)
async def get_session_settings(app_state: AppState = Depends(get_app_state)):
    return _settings_payload(app_state)


@router.put("/workspaces/{workspace_id}/settings", response_model=SessionSettingsResponse)
async def update_session_settings(
    request: SessionSettingsUpdate,
    app_state: AppState = Depends(get_app_state),
):
    """Change persona and/or models; each change rebuilds the chat.

    Raises:
        HTTPException 400: Unknown persona id.
        HTTPException 409: A chat turn is in progress.
    """
    if request.persona is not None and not is_known_persona(request.persona):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown persona: {request.persona}",
        )

    try:
        if request.carry_forward_history is not None:
            app_state.set_carry_forward_history(request.carry_forward_history)
        if request.persona is not None or request.custom_style_guide is not None:
            app_state.update_persona(
                request.persona or app_state.config.persona,
                request.custom_style_guide,
            )
        if request.main_model and request.main_model != app_state.config.main_model:
            app_state.update_model(request.main_model)
        if request.selector_model and request.selector_model != app_state.config.selector_model:
            app_state.update_selector_model(request.selector_model)
    except TurnInProgressError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

    logger.info("Session settings updated: %s", request.model_dump(exclude_none=True))
    return _settings_payload(app_state)
