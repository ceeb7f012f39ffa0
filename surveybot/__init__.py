"""
Survey analysis assistant: questionnaire/results indexing, a Gemini selector
pass and a tool-calling writer loop, served through Streamlit and FastAPI.
"""

from __future__ import annotations

__all__ = [
    "cancellation",
    "catalog",
    "config",
    "constants",
    "files",
    "gemini",
    "logger",
    "orchestrator",
    "personas",
    "progress",
    "queries",
    "selector",
    "session",
    "state",
    "store",
    "tools",
    "ui",
]  # pragma: no cover
