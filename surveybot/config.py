"""Environment configuration and the shared Gemini client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from google import genai

from .logger import LOGGER

DEFAULT_MAIN_MODEL = "gemini-3-pro-preview"
DEFAULT_SELECTOR_MODEL = "gemini-3-flash-preview"
DEFAULT_PERSONA = "development_economist"
DEFAULT_MAX_TOOL_ROUNDS = 5

# Offered in the model pickers; any other id can still be set through the API.
AVAILABLE_MODELS: Tuple[str, ...] = (
    "gemini-3-pro-preview",
    "gemini-3-flash-preview",
    "gemini-2.5-pro",
    "gemini-2.5-flash",
    "gemini-2.5-flash-lite",
)


def load_api_key() -> str:
    """Retrieve the Gemini API key or raise a helpful error."""
    key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
    if not key:
        raise RuntimeError("GOOGLE_API_KEY environment variable is required.")
    return key


def _int_from_env(env_key: str, default: int) -> int:
    raw = os.getenv(env_key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        LOGGER.warning("Ignoring non-integer %s=%r, using %d", env_key, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    main_model: str
    selector_model: str
    persona: str
    max_tool_rounds: int


def load_settings() -> Settings:
    """Read model and orchestration defaults from the environment."""
    return Settings(
        main_model=os.getenv("SURVEYBOT_MAIN_MODEL", DEFAULT_MAIN_MODEL),
        selector_model=os.getenv("SURVEYBOT_SELECTOR_MODEL", DEFAULT_SELECTOR_MODEL),
        persona=os.getenv("SURVEYBOT_PERSONA", DEFAULT_PERSONA),
        max_tool_rounds=max(1, _int_from_env("SURVEYBOT_MAX_TOOL_ROUNDS", DEFAULT_MAX_TOOL_ROUNDS)),
    )


class AppConfig:
    """Singleton-like accessor around shared configuration."""

    _instance: Optional["AppConfig"] = None

    def __init__(self) -> None:
        api_key = load_api_key()
        self.settings = load_settings()
        self.client = genai.Client(api_key=api_key)
        LOGGER.debug(
            "Configuration initialised: main_model=%s selector_model=%s persona=%s",
            self.settings.main_model,
            self.settings.selector_model,
            self.settings.persona,
        )

    @classmethod
    def get(cls) -> "AppConfig":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance


__all__ = [
    "AVAILABLE_MODELS",
    "AppConfig",
    "DEFAULT_MAIN_MODEL",
    "DEFAULT_MAX_TOOL_ROUNDS",
    "DEFAULT_PERSONA",
    "DEFAULT_SELECTOR_MODEL",
    "Settings",
    "load_api_key",
    "load_settings",
]
