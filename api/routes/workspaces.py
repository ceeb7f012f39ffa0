"""Workspace endpoints: create, inspect, upload survey data."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from pydantic import BaseModel

from api.dependencies import get_current_workspace, get_provider, get_settings
from api.workspaces import Workspace, create_workspace
from surveybot.config import Settings
from surveybot.files import UploadFormatError, parse_questionnaire_csv, parse_results_workbook
from surveybot.state import TurnInProgressError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/workspaces", tags=["workspaces"])


class DataSummary(BaseModel):
    variables: int
    quantitative_rows: int
    qualitative_rows: int
    catalog_size: int
    questionnaire_file: Optional[str] = None
    results_file: Optional[str] = None


class InitializationTrace(BaseModel):
    disaggregation_values: List[str]
    analysis_time_variables: List[str]


class WorkspaceResponse(BaseModel):
    workspace_id: str
    created_at: str
    ready: bool
    is_processing: bool
    data: DataSummary
    settings: Dict[str, Any]
    initialization: Optional[InitializationTrace] = None


# --- Endpoints ---

@router.post("", response_model=WorkspaceResponse, status_code=status.HTTP_201_CREATED)
async def create(
    settings: Settings = Depends(get_settings),
    provider=Depends(get_provider),
):
    """Create an empty workspace; upload the questionnaire and results next."""
    workspace = create_workspace(settings, provider)
    logger.info("Workspace created: %s", workspace.workspace_id)
    return workspace.to_dict()


@router.get("/{workspace_id}", response_model=WorkspaceResponse)
async def get(workspace: Workspace = Depends(get_current_workspace)):
    return workspace.to_dict()


def _conflict(exc: TurnInProgressError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.post("/{workspace_id}/questionnaire", response_model=WorkspaceResponse)
async def upload_questionnaire(
    file: UploadFile = File(...),
    workspace: Workspace = Depends(get_current_workspace),
):
    """Upload the XLSForm questionnaire as CSV.

    Raises:
        HTTPException 422: The file could not be decoded; loaded data is untouched.
        HTTPException 409: A chat turn is in progress.
    """
    data = await file.read()
    try:
        rows = await asyncio.to_thread(parse_questionnaire_csv, data)
    except UploadFormatError as exc:
        logger.warning("Questionnaire upload rejected (%s): %s", file.filename, exc)
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))

    try:
        workspace.state.load_questionnaire(rows, filename=file.filename)
    except TurnInProgressError as exc:
        raise _conflict(exc)
    return workspace.to_dict()


@router.post("/{workspace_id}/results", response_model=WorkspaceResponse)
async def upload_results(
    file: UploadFile = File(...),
    workspace: Workspace = Depends(get_current_workspace),
):
    """Upload the results workbook (sheet 1 quantitative, optional sheet 2 qualitative)."""
    data = await file.read()
    try:
        workbook = await asyncio.to_thread(parse_results_workbook, data)
    except UploadFormatError as exc:
        logger.warning("Results upload rejected (%s): %s", file.filename, exc)
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))

    try:
        workspace.state.load_results(
            workbook.quantitative, workbook.qualitative, filename=file.filename
        )
    except TurnInProgressError as exc:
        raise _conflict(exc)
    return workspace.to_dict()
