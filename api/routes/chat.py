"""Chat endpoints: run a turn (JSON or SSE), cancel it, read the transcript."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from starlette.responses import StreamingResponse

from api.dependencies import get_app_state
from surveybot.progress import ProgressTracker
from surveybot.state import AppState, SessionNotReadyError, TurnInProgressError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/workspaces/{workspace_id}", tags=["chat"])


# --- Request / Response Models ---

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=8000)


class MessageModel(BaseModel):
    id: str
    role: str
    content: str
    related_data: List[Dict[str, Any]] = []
    trace: Optional[Dict[str, Any]] = None


class ChatResponse(BaseModel):
    status: str                             # "completed" | "cancelled" | "error"
    message: Optional[MessageModel] = None
    restored_input: Optional[str] = None


class TranscriptResponse(BaseModel):
    messages: List[MessageModel]
    is_processing: bool
    input_text: str = ""
    live_trace: List[Dict[str, Any]] = []


class CancelResponse(BaseModel):
    cancelled: bool


def _check_can_send(app_state: AppState, message: str) -> None:
    """Reject a turn before any work starts.

    Raises:
        HTTPException 422: Blank message.
        HTTPException 503: Questionnaire/results not loaded yet.
        HTTPException 409: A turn is already in flight.
    """
    if not message.strip():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Message text is empty",
        )
    if not app_state.is_ready:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Upload the questionnaire and results before chatting",
        )
    if app_state.is_processing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A turn is already in progress",
        )


def _outcome_payload(outcome) -> Dict[str, Any]:
    return {
        "status": outcome.status,
        "message": outcome.message.to_dict() if outcome.message else None,
        "restored_input": outcome.restored_input,
    }


# --- Endpoints ---

@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    app_state: AppState = Depends(get_app_state),
):
    """Run one turn and return the model message when it is complete."""
    _check_can_send(app_state, request.message)
    logger.info("Chat turn: '%s'", request.message[:80])
    try:
        outcome = await app_state.handle_send(request.message)
    except TurnInProgressError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except SessionNotReadyError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return _outcome_payload(outcome)


def _sse_event(event: str, data: Any) -> str:
    """Format a Server-Sent Event.

    Args:
        event: Event type (progress, message, cancelled, error, done).
        data: Payload, JSON-serialized.

    Returns:
        SSE-formatted string: "event: {type}\\ndata: {json}\\n\\n"
    """
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


@router.post("/chat/stream")
async def chat_stream(
    request: ChatRequest,
    app_state: AppState = Depends(get_app_state),
):
    """Run one turn and stream progress steps as Server-Sent Events.

    Event types: progress, message, cancelled, error, done.
    """
    _check_can_send(app_state, request.message)
    tracker = ProgressTracker()
    queue = tracker.subscribe()

    async def generate():
        task = asyncio.ensure_future(app_state.handle_send(request.message, tracker))
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    yield _sse_event("progress", getter.result().to_dict())
                    continue
                getter.cancel()
                break

            while not queue.empty():
                yield _sse_event("progress", queue.get_nowait().to_dict())

            outcome = task.result()
            if outcome.status == "cancelled":
                yield _sse_event("cancelled", {"restored_input": outcome.restored_input})
            elif outcome.status == "error":
                yield _sse_event("error", {"detail": outcome.message.content})
            else:
                yield _sse_event("message", outcome.message.to_dict())
            yield _sse_event("done", {})

        except Exception as exc:
            logger.error("Streaming chat failed: %s", exc, exc_info=True)
            yield _sse_event("error", {"detail": str(exc)})
        finally:
            tracker.unsubscribe(queue)
            if not task.done():
                # Client went away mid-turn
                app_state.cancel()

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
        },
    )


@router.post("/chat/cancel", response_model=CancelResponse)
async def cancel(app_state: AppState = Depends(get_app_state)):
    """Abort the in-flight turn; its user message is dropped and the input restored."""
    cancelled = app_state.cancel()
    logger.info("Cancel requested: %s", "in-flight turn" if cancelled else "nothing running")
    return CancelResponse(cancelled=cancelled)


@router.get("/messages", response_model=TranscriptResponse)
async def messages(app_state: AppState = Depends(get_app_state)):
    return TranscriptResponse(
        messages=app_state.messages_as_dicts(),
        is_processing=app_state.is_processing,
        input_text=app_state.input_text,
        live_trace=list(app_state.live_trace),
    )
