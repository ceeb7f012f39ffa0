"""Selector pass: map a free-text request to known catalog variable names."""

from __future__ import annotations

import json
from typing import List, Optional

from google.genai import types

from .cancellation import CancellationToken, TurnCancelled
from .catalog import VariableCatalog
from .logger import LOGGER

SELECTOR_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(type=types.Type.STRING),
)

SELECTOR_PROMPT = """
You are a **Questionnaire Selector Agent**.
Map the User Request to relevant survey variables.

**User Request:** "{user_text}"

**Available Variables:**
{context}

**Task:**
Return a JSON array of string variable names (exact matches only) that are relevant.
Prioritize finding BOTH Quantitative and Qualitative variables if they exist for the topic.
"""


class SelectorAgent:
    """One structured call to a light model; failures degrade to ``[]``."""

    def __init__(self, provider, catalog: VariableCatalog, model: str) -> None:
        self.provider = provider
        self.catalog = catalog
        self.model = model

    def build_prompt(self, user_text: str) -> str:
        return SELECTOR_PROMPT.format(user_text=user_text, context=self.catalog.context_block())

    async def identify(self, user_text: str, token: Optional[CancellationToken] = None) -> List[str]:
        token = token or CancellationToken()
        try:
            raw = await token.race(
                self.provider.generate_json(self.model, self.build_prompt(user_text), SELECTOR_SCHEMA)
            )
            if not raw:
                return []
            names = json.loads(raw)
            if not isinstance(names, list):
                raise ValueError(f"Expected a JSON array, got {type(names).__name__}")
        except TurnCancelled:
            raise
        except Exception as exc:
            LOGGER.warning("Selector error: %s", exc)
            return []

        valid = [n for n in names if isinstance(n, str) and self.catalog.is_valid_variable(n)]
        dropped = [n for n in names if n not in valid]
        if dropped:
            LOGGER.debug("Selector returned unknown variables, dropped: %s", dropped)
        LOGGER.info("Selector identified variables: %s", valid)
        return valid


__all__ = ["SELECTOR_PROMPT", "SELECTOR_SCHEMA", "SelectorAgent"]
