"""Turn handling and transcript state shared by the Streamlit UI and the API."""

from __future__ import annotations

import dataclasses
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .cancellation import CancellationToken, TurnCancelled
from .config import DEFAULT_MAX_TOOL_ROUNDS, Settings
from .constants import READY_MESSAGE
from .logger import LOGGER
from .progress import ProgressEvent, ProgressTracker
from .session import SessionConfig, SessionController
from .store import TabularStore

USER = "user"
MODEL = "model"
SYSTEM = "system"


class TurnInProgressError(RuntimeError):
    """A send or reconfiguration arrived while a turn is still running."""


class SessionNotReadyError(RuntimeError):
    """Questionnaire and quantitative results must both be loaded first."""


@dataclass
class ChatMessage:
    role: str
    content: str
    related_data: List[Dict[str, Any]] = field(default_factory=list)
    trace: Optional[Dict[str, Any]] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "related_data": list(self.related_data),
            "trace": self.trace,
        }


@dataclass
class TurnOutcome:
    status: str                                 # "completed" | "cancelled" | "error"
    message: Optional[ChatMessage] = None
    restored_input: Optional[str] = None


@dataclass
class AppState:
    provider: Any = None
    config: SessionConfig = field(default_factory=SessionConfig)
    max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS

    questionnaire_records: Optional[List[Dict[str, Any]]] = None
    results_records: Optional[List[Dict[str, Any]]] = None
    qualitative_records: List[Dict[str, Any]] = field(default_factory=list)
    questionnaire_name: Optional[str] = None
    results_name: Optional[str] = None

    store: Optional[TabularStore] = None
    controller: Optional[SessionController] = None
    messages: List[ChatMessage] = field(default_factory=list)

    # Live turn state
    is_processing: bool = False
    input_text: str = ""
    live_trace: List[Dict[str, Any]] = field(default_factory=list)
    init_trace: List[Dict[str, Any]] = field(default_factory=list)
    _token: Optional[CancellationToken] = field(default=None, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @classmethod
    def from_settings(cls, settings: Settings, provider: Any = None) -> "AppState":
        return cls(
            provider=provider,
            config=SessionConfig.from_settings(settings),
            max_tool_rounds=settings.max_tool_rounds,
        )

    # ------------------------------------------------------------------
    # Data loading
    # ------------------------------------------------------------------

    def load_questionnaire(self, rows: Sequence[Mapping[str, Any]], filename: Optional[str] = None) -> None:
        self._ensure_idle()
        self.questionnaire_records = [dict(r) for r in rows]
        self.questionnaire_name = filename
        LOGGER.info("Loaded questionnaire %s: %d rows", filename or "", len(self.questionnaire_records))
        self._maybe_build_controller()

    def load_results(
        self,
        quantitative: Sequence[Mapping[str, Any]],
        qualitative: Sequence[Mapping[str, Any]] = (),
        filename: Optional[str] = None,
    ) -> None:
        self._ensure_idle()
        self.results_records = [dict(r) for r in quantitative]
        self.qualitative_records = [dict(r) for r in qualitative]
        self.results_name = filename
        LOGGER.info(
            "Loaded results %s: %d quantitative rows, %d qualitative rows",
            filename or "", len(self.results_records), len(self.qualitative_records),
        )
        self._maybe_build_controller()

    @property
    def is_ready(self) -> bool:
        return self.controller is not None

    def _provider(self):
        if self.provider is None:
            from .gemini import GeminiProvider

            self.provider = GeminiProvider.from_config()
        return self.provider

    def _maybe_build_controller(self) -> None:
        if self.questionnaire_records is None or self.results_records is None:
            return
        self.store = TabularStore.from_records(
            questionnaire=self.questionnaire_records,
            results=self.results_records,
            qualitative=self.qualitative_records,
        )
        rebuilt = self.controller is not None
        controller = SessionController(
            self.store, self._provider(), self.config, max_tool_rounds=self.max_tool_rounds
        )
        progress = ProgressTracker()
        controller.initialize(progress)
        self.controller = controller
        self.init_trace = progress.snapshot()
        LOGGER.info("Session controller %s", "rebuilt" if rebuilt else "created")
        self.messages.append(ChatMessage(role=SYSTEM, content=READY_MESSAGE))

    def data_summary(self) -> Dict[str, Any]:
        return {
            "variables": len(self.questionnaire_records or []),
            "quantitative_rows": len(self.results_records or []),
            "qualitative_rows": len(self.qualitative_records),
            "catalog_size": len(self.controller.catalog) if self.controller and self.controller.catalog else 0,
            "questionnaire_file": self.questionnaire_name,
            "results_file": self.results_name,
        }

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def _ensure_idle(self) -> None:
        if self.is_processing:
            raise TurnInProgressError("A turn is already in progress")

    def _on_progress(self, event: ProgressEvent) -> None:
        step = event.step
        for i, existing in enumerate(self.live_trace):
            if existing["id"] == step["id"]:
                self.live_trace[i] = step
                return
        self.live_trace.append(step)

    async def handle_send(self, text: str, progress: Optional[ProgressTracker] = None) -> TurnOutcome:
        """Run one user turn.

        Cancelled turns leave the transcript as it was and put ``text`` back in
        :attr:`input_text`. Any other failure becomes a single ``Error: ...``
        model message.
        """
        if not text or not text.strip():
            raise ValueError("Message text is empty")
        if self.controller is None:
            raise SessionNotReadyError("Upload the questionnaire and results before chatting")

        with self._lock:
            self._ensure_idle()
            self.is_processing = True
            token = CancellationToken()
            self._token = token

        try:
            progress = progress or ProgressTracker()
            progress.add_listener(self._on_progress)
            self.input_text = ""
            self.live_trace = []
            user_message = ChatMessage(role=USER, content=text)
            self.messages.append(user_message)

            try:
                result = await self.controller.send_message(text, token, progress)
            except TurnCancelled:
                LOGGER.info("Turn cancelled, restoring input")
                self.messages.remove(user_message)
                self.input_text = text
                return TurnOutcome(status="cancelled", restored_input=text)
            except Exception as exc:
                LOGGER.error("Turn failed: %s", exc, exc_info=True)
                message = ChatMessage(role=MODEL, content=f"Error: {exc}")
                self.messages.append(message)
                return TurnOutcome(status="error", message=message)
            except BaseException:
                # Task cancellation or a Streamlit rerun stopping the script
                LOGGER.info("Turn interrupted, restoring input")
                self.messages.remove(user_message)
                self.input_text = text
                raise

            message = ChatMessage(
                role=MODEL,
                content=result.text,
                related_data=[q.to_dict() for q in result.executed_queries],
                trace=result.trace.to_dict(),
            )
            self.messages.append(message)
            return TurnOutcome(status="completed", message=message)
        finally:
            with self._lock:
                self.is_processing = False
                self._token = None
                self.live_trace = []

    def cancel(self) -> bool:
        """Trip the in-flight turn's token; False when nothing is running."""
        token = self._token
        if token is None:
            return False
        token.cancel()
        return True

    # ------------------------------------------------------------------
    # Reconfiguration
    # ------------------------------------------------------------------

    def update_persona(self, persona: str, custom_style_guide: Optional[str] = None) -> None:
        self._ensure_idle()
        self.config = self.config.with_persona(persona, custom_style_guide)
        if self.controller is not None:
            self.controller.update_persona(persona, custom_style_guide)

    def update_model(self, main_model: str) -> None:
        self._ensure_idle()
        self.config = self.config.with_model(main_model)
        if self.controller is not None:
            self.controller.update_model(main_model)

    def update_selector_model(self, selector_model: str) -> None:
        self._ensure_idle()
        self.config = self.config.with_selector_model(selector_model)
        if self.controller is not None:
            self.controller.update_selector_model(selector_model)

    def set_carry_forward_history(self, enabled: bool) -> None:
        self.config = dataclasses.replace(self.config, carry_forward_history=enabled)
        if self.controller is not None:
            self.controller.set_carry_forward_history(enabled)

    def messages_as_dicts(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self.messages]


__all__ = [
    "AppState",
    "ChatMessage",
    "MODEL",
    "SYSTEM",
    "SessionNotReadyError",
    "TurnInProgressError",
    "TurnOutcome",
    "USER",
]
