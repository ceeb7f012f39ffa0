"""Session configuration and the controller that owns the live chat."""

from __future__ import annotations

import dataclasses
import textwrap
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .cancellation import CancellationToken
from .catalog import DisaggregationIndex, VariableCatalog
from .config import (
    DEFAULT_MAIN_MODEL,
    DEFAULT_MAX_TOOL_ROUNDS,
    DEFAULT_PERSONA,
    DEFAULT_SELECTOR_MODEL,
    Settings,
)
from .constants import QUAL_TOOL_NAME, QUANT_TOOL_NAME
from .gemini import text_history
from .logger import LOGGER
from .orchestrator import ToolOrchestrator, TurnResult
from .personas import is_known_persona, role_for, style_guide_for
from .progress import ProgressTracker
from .queries import QueryEngine
from .selector import SelectorAgent
from .store import TabularStore
from .tools import build_toolset


@dataclass(frozen=True)
class SessionConfig:
    """Immutable session settings; reconfiguration returns a new value."""

    main_model: str = DEFAULT_MAIN_MODEL
    selector_model: str = DEFAULT_SELECTOR_MODEL
    persona: str = DEFAULT_PERSONA
    custom_style_guide: str = ""
    carry_forward_history: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "SessionConfig":
        base = cls(
            main_model=settings.main_model,
            selector_model=settings.selector_model,
            persona=settings.persona,
        )
        return dataclasses.replace(base, **overrides) if overrides else base

    def with_persona(self, persona: str, custom_style_guide: Optional[str] = None) -> "SessionConfig":
        if custom_style_guide is None:
            return dataclasses.replace(self, persona=persona)
        return dataclasses.replace(self, persona=persona, custom_style_guide=custom_style_guide)

    def with_model(self, main_model: str) -> "SessionConfig":
        return dataclasses.replace(self, main_model=main_model)

    def with_selector_model(self, selector_model: str) -> "SessionConfig":
        return dataclasses.replace(self, selector_model=selector_model)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


SYSTEM_PROMPT_TEMPLATE = """\
{role}
You have access to both Quantitative (Numbers) and Qualitative (Themes/Quotes) survey data.

===== DATA SOURCES & TOOLS =====

1. **Quantitative Data**: Accessed via '{quant_tool}'.
   - Use for variables marked [QUANTITATIVE] (select_one, integer, etc.).
   - Requires 'disaggregation' parameter. Available values: {disaggregations}.

2. **Qualitative Data**: Accessed via '{qual_tool}'.
   - Use for variables marked [QUALITATIVE] (text).
   - Returns Executive Summaries, Themes, and Direct Quotes.
   - *No disaggregation parameter needed* for this tool.

===== AVAILABLE VARIABLES =====

{context}

===== YOUR PROCESS =====

1. Analyze the user's request using the [System Note] which lists relevant variables.
2. **Decide** which tools to call:
   - If the user asks about a topic and there are both Quant AND Qual variables, **call BOTH tools**.
   - Combine the findings. Use numbers to show prevalence and quotes/themes to explain the "why".
3. **Synthesize** using the Writing Style Guide below.

===== TOOL RULES =====

- Prefer using variables identified in the [System Note].
- If the user explicitly mentions a specific variable name, you may query it directly even if it's not in the System Note - these may be analysis-time variables.
- If a variable is marked [QUALITATIVE], do NOT use the Quant tool on it.
- If a variable is marked [QUANTITATIVE], do NOT use the Qual tool on it.

===== WRITING STYLE GUIDE =====
{style_guide}

===== DRAFTING NOTES =====

When appropriate (especially for complex requests), begin your response with a brief **[Drafting Notes]** section that:
- Lists the data sources/variables you queried
- Notes any data limitations or caveats
- Outlines the structure you will follow

Then proceed with the main content after a separator (---).
"""


def build_system_prompt(
    config: SessionConfig,
    catalog: VariableCatalog,
    index: DisaggregationIndex,
) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(
        role=role_for(config.persona),
        quant_tool=QUANT_TOOL_NAME,
        qual_tool=QUAL_TOOL_NAME,
        disaggregations=index.describe() or "(none)",
        context=catalog.context_block() or "(no variables)",
        style_guide=textwrap.dedent(style_guide_for(config.persona, config.custom_style_guide)).strip(),
    )


class SessionController:
    """Owns the config, derived data views and the live chat.

    Any configuration change rebuilds the whole chat from
    ``(config, catalog, toolset)``. Prior turns are dropped from the model's
    context unless ``carry_forward_history`` is set.
    """

    def __init__(
        self,
        store: TabularStore,
        provider,
        config: Optional[SessionConfig] = None,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
    ) -> None:
        self.store = store
        self.provider = provider
        self.config = config or SessionConfig()
        self.max_tool_rounds = max_tool_rounds

        self.catalog: Optional[VariableCatalog] = None
        self.index: Optional[DisaggregationIndex] = None
        self.engine = QueryEngine(store)
        self.selector: Optional[SelectorAgent] = None
        self.orchestrator: Optional[ToolOrchestrator] = None
        self.system_prompt = ""
        self.tools: List[Any] = []
        self.chat = None
        self.generation = 0
        self.init_steps: List[Dict[str, Any]] = []
        self._transcript: List[Tuple[str, str]] = []

    def initialize(self, progress: Optional[ProgressTracker] = None) -> None:
        progress = progress or ProgressTracker()

        step_id = progress.start_step("Identifying disaggregation levels...")
        self.index = DisaggregationIndex.build(self.store)
        progress.complete_step(step_id, {"disaggregation_levels": self.index.values})

        step_id = progress.start_step("Identifying analysis-time variables...")
        self.catalog = VariableCatalog.build(self.store)
        progress.complete_step(step_id, {"variables": self.catalog.analysis_time_variables})

        self.selector = SelectorAgent(self.provider, self.catalog, self.config.selector_model)
        self.orchestrator = ToolOrchestrator(self.selector, self.engine, self.max_tool_rounds)
        self.system_prompt = build_system_prompt(self.config, self.catalog, self.index)
        self.tools = build_toolset(self.index.values)

        history = None
        if self.config.carry_forward_history and self._transcript:
            history = text_history(self._transcript)
        else:
            self._transcript = []

        self.chat = self.provider.open_chat(
            self.config.main_model, self.system_prompt, self.tools, history
        )
        self.generation += 1
        self.init_steps = progress.snapshot()
        LOGGER.info(
            "Session initialised (generation %d): model=%s persona=%s variables=%d",
            self.generation, self.config.main_model, self.config.persona, len(self.catalog),
        )

    def _reconfigure(self, config: SessionConfig) -> None:
        self.config = config
        self.initialize()

    def update_persona(self, persona: str, custom_style_guide: Optional[str] = None) -> None:
        if not is_known_persona(persona):
            LOGGER.warning("Unknown persona %r, default style guide will be used", persona)
        LOGGER.info("Updating writing style to: %s", persona)
        self._reconfigure(self.config.with_persona(persona, custom_style_guide))

    def update_model(self, main_model: str) -> None:
        LOGGER.info("Updating model to: %s", main_model)
        self._reconfigure(self.config.with_model(main_model))

    def update_selector_model(self, selector_model: str) -> None:
        LOGGER.info("Updating selector model to: %s", selector_model)
        self._reconfigure(self.config.with_selector_model(selector_model))

    def set_carry_forward_history(self, enabled: bool) -> None:
        """Takes effect at the next rebuild; the live chat is kept."""
        self.config = dataclasses.replace(self.config, carry_forward_history=enabled)

    async def send_message(
        self,
        text: str,
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressTracker] = None,
    ) -> TurnResult:
        if self.chat is None or self.orchestrator is None:
            raise RuntimeError("Session is not initialised")
        result = await self.orchestrator.run_turn(self.chat, text, token, progress)
        self._transcript.extend([("user", text), ("model", result.text)])
        return result

    def initialization_trace(self) -> Dict[str, List[str]]:
        return {
            "disaggregation_values": self.index.values if self.index else [],
            "analysis_time_variables": self.catalog.analysis_time_variables if self.catalog else [],
        }


__all__ = ["SYSTEM_PROMPT_TEMPLATE", "SessionConfig", "SessionController", "build_system_prompt"]
