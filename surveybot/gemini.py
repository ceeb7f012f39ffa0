"""Async Gemini chat sessions and schema-constrained generation.

The orchestrator only sees :class:`ChatReply`, :class:`ToolCall` and
:class:`ToolResult`; everything ``google-genai`` specific stays here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from google import genai
from google.genai import types

from .logger import LOGGER


@dataclass(frozen=True)
class ToolCall:
    name: str
    args: Dict[str, Any]
    call_id: Optional[str] = None


@dataclass(frozen=True)
class ToolResult:
    name: str
    payload: Any
    call_id: Optional[str] = None


@dataclass(frozen=True)
class ChatReply:
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)


def _reply_from_response(response: types.GenerateContentResponse) -> ChatReply:
    calls = [
        ToolCall(name=fc.name or "", args=dict(fc.args) if fc.args else {}, call_id=fc.id)
        for fc in (response.function_calls or [])
    ]
    text_parts: List[str] = []
    candidates = response.candidates or []
    if candidates and candidates[0].content is not None:
        for part in candidates[0].content.parts or []:
            if part.text and not part.thought:
                text_parts.append(part.text)
    return ChatReply(text="".join(text_parts), tool_calls=calls)


def text_history(turns: Sequence[Tuple[str, str]]) -> List[types.Content]:
    """``[("user", "..."), ("model", "...")]`` -> chat history contents."""
    return [
        types.Content(role=role, parts=[types.Part(text=text)])
        for role, text in turns
        if text
    ]


ChatFactory = Callable[[List[types.Content]], Any]


class GeminiChat:
    """One multi-turn conversation seeded with a system prompt and toolset.

    ``reopen`` builds a fresh ``AsyncChat`` with the same model, config and
    tools from a given history; :meth:`rollback` uses it to drop a turn that
    did not finish cleanly.
    """

    def __init__(self, chat: Any, model: str, reopen: Optional[ChatFactory] = None) -> None:
        self._chat = chat
        self._reopen = reopen
        self.model = model

    def history(self) -> List[types.Content]:
        """Curated history: only turns the model answered validly."""
        return list(self._chat.get_history(curated=True))

    def checkpoint(self) -> int:
        return len(self.history())

    def rollback(self, checkpoint: int, turns: Sequence[Tuple[str, str]] = ()) -> None:
        """Truncate history to ``checkpoint`` and append plain-text ``turns``."""
        if self._reopen is None:
            raise RuntimeError("Chat was opened without a factory; cannot roll back")
        history = self.history()[:checkpoint] + text_history(turns)
        self._chat = self._reopen(history)
        LOGGER.debug("Chat on %s rolled back to %d turn(s)", self.model, len(history))

    async def send_text(self, text: str) -> ChatReply:
        LOGGER.debug("Sending message to %s (%d chars)", self.model, len(text))
        response = await self._chat.send_message(text)
        return _reply_from_response(response)

    async def send_tool_results(self, results: Sequence[ToolResult]) -> ChatReply:
        """Return every result of a tool round as one follow-up turn."""
        parts = [
            types.Part(
                function_response=types.FunctionResponse(
                    name=result.name,
                    response={"result": result.payload},
                    id=result.call_id,
                )
            )
            for result in results
        ]
        LOGGER.debug("Sending %d tool result(s) back to %s", len(parts), self.model)
        response = await self._chat.send_message(parts)
        return _reply_from_response(response)


class GeminiProvider:
    """Thin wrapper over ``genai.Client.aio``."""

    def __init__(self, client: genai.Client) -> None:
        self.client = client

    @classmethod
    def from_config(cls, config=None) -> "GeminiProvider":
        if config is None:
            from .config import AppConfig

            config = AppConfig.get()
        return cls(config.client)

    def open_chat(
        self,
        model: str,
        system_instruction: str,
        tools: Sequence[types.Tool],
        history: Optional[Sequence[types.Content]] = None,
    ) -> GeminiChat:
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            tools=list(tools),
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )

        def reopen(contents: List[types.Content]):
            return self.client.aio.chats.create(model=model, config=config, history=contents)

        chat = reopen(list(history) if history else [])
        LOGGER.info("Opened chat on %s (history=%d)", model, len(history or []))
        return GeminiChat(chat, model, reopen=reopen)

    async def generate_json(self, model: str, prompt: str, schema: types.Schema) -> str:
        """Single-shot generation constrained to ``schema``; returns the raw JSON text."""
        response = await self.client.aio.models.generate_content(
            model=model,
            contents=prompt,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=schema,
            ),
        )
        return response.text or ""


__all__ = [
    "ChatReply",
    "GeminiChat",
    "GeminiProvider",
    "ToolCall",
    "ToolResult",
    "text_history",
]
