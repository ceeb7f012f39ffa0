"""Step lifecycle events for live progress display and per-turn traces."""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

IN_PROGRESS = "in_progress"
COMPLETED = "completed"

_STEP_IDS = itertools.count(1)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class TraceStep:
    """One step of a turn (or of session initialization)."""

    id: str
    step_name: str
    status: str = IN_PROGRESS
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "step_name": self.step_name,
            "status": self.status,
            "details": dict(self.details),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted on every step start (``kind="start"``) and completion."""

    kind: str
    step: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "step": self.step}


ProgressListener = Callable[[ProgressEvent], None]


class ProgressTracker:
    """Accumulates :class:`TraceStep` records and fans out events.

    Listeners are plain callables; :meth:`subscribe` hands out an
    ``asyncio.Queue`` for consumers that stream events (SSE).
    """

    def __init__(self, listener: Optional[ProgressListener] = None) -> None:
        self._steps: List[TraceStep] = []
        self._by_id: Dict[str, TraceStep] = {}
        self._listeners: List[ProgressListener] = [listener] if listener else []
        self._queues: Set[asyncio.Queue] = set()

    def add_listener(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._queues.discard(queue)

    def _emit(self, kind: str, step: TraceStep) -> None:
        event = ProgressEvent(kind=kind, step=step.to_dict())
        for listener in list(self._listeners):
            listener(event)
        for queue in list(self._queues):
            queue.put_nowait(event)

    def start_step(self, step_name: str) -> str:
        step = TraceStep(id=f"step-{next(_STEP_IDS)}", step_name=step_name)
        self._steps.append(step)
        self._by_id[step.id] = step
        self._emit("start", step)
        return step.id

    def complete_step(self, step_id: str, details: Optional[Dict[str, Any]] = None) -> None:
        step = self._by_id.get(step_id)
        if step is None:
            return
        step.status = COMPLETED
        if details:
            step.details.update(details)
        self._emit("complete", step)

    @property
    def steps(self) -> List[TraceStep]:
        return list(self._steps)

    def snapshot(self) -> List[Dict[str, Any]]:
        return [step.to_dict() for step in self._steps]

    def clear(self) -> None:
        self._steps.clear()
        self._by_id.clear()


__all__ = [
    "COMPLETED",
    "IN_PROGRESS",
    "ProgressEvent",
    "ProgressListener",
    "ProgressTracker",
    "TraceStep",
    "utc_now_iso",
]
