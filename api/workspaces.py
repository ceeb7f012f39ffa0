"""In-memory workspace registry: one AppState per uploaded survey."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from surveybot.config import Settings
from surveybot.state import AppState


@dataclass
class Workspace:
    """A chat workspace and its survey data."""

    workspace_id: str
    created_at: str                 # ISO timestamp
    state: AppState = field(repr=False, default_factory=AppState)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API response."""
        return {
            "workspace_id": self.workspace_id,
            "created_at": self.created_at,
            "ready": self.state.is_ready,
            "is_processing": self.state.is_processing,
            "data": self.state.data_summary(),
            "settings": self.state.config.to_dict(),
            "initialization": (
                self.state.controller.initialization_trace() if self.state.controller else None
            ),
        }


# ── Module-level workspace store ────────────────────────────────────────

_WORKSPACES: Dict[str, Workspace] = {}
_LOCK = threading.Lock()


def create_workspace(settings: Settings, provider: Any) -> Workspace:
    """Create and register a new empty workspace."""
    workspace = Workspace(
        workspace_id=uuid.uuid4().hex[:12],
        created_at=datetime.now().isoformat(),
        state=AppState.from_settings(settings, provider=provider),
    )
    with _LOCK:
        _WORKSPACES[workspace.workspace_id] = workspace
    return workspace


def get_workspace(workspace_id: str) -> Optional[Workspace]:
    with _LOCK:
        return _WORKSPACES.get(workspace_id)


def workspace_count() -> int:
    with _LOCK:
        return len(_WORKSPACES)


def clear_workspaces() -> None:
    """Drop every workspace (shutdown, tests)."""
    with _LOCK:
        _WORKSPACES.clear()
