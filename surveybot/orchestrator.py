"""Writer loop: selector pass, tool rounds against the query engine, trace.

One call to :meth:`ToolOrchestrator.run_turn` handles a single user turn:

1. Selector pass maps the request to catalog variables.
2. The request plus a system note is sent to the live chat.
3. While the model asks for tools (and the round budget allows), every call
   of the round is executed and all results go back as one follow-up turn.
4. The final text, executed queries and trace are returned.

Cancellation is checked before every send and raced against every
outstanding call; a trip raises :class:`TurnCancelled` and the chat is rolled
back to where the turn started. A turn that runs out of tool rounds is
replaced in the chat history by a plain question/answer pair.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .cancellation import CancellationToken
from .constants import EMPTY_RESPONSE_FALLBACK, QUAL_TOOL_NAME, QUANT_TOOL_NAME, UNKNOWN_TOOL_RESULT
from .config import DEFAULT_MAX_TOOL_ROUNDS
from .gemini import ChatReply, ToolCall, ToolResult
from .logger import LOGGER
from .progress import ProgressTracker, utc_now_iso
from .queries import QueryEngine, as_number
from .selector import SelectorAgent

QUANTITATIVE = "Quantitative"
QUALITATIVE = "Qualitative"


# =============================================================================
# Results
# =============================================================================

@dataclass
class ExecutedQuery:
    """A tool invocation that was run against the store."""

    type: str                       # "Quantitative" | "Qualitative"
    query: Dict[str, Any]           # raw tool arguments
    result: Any

    @property
    def question_name(self) -> Optional[str]:
        return self.query.get("question_name")

    @property
    def disaggregation(self) -> Optional[str]:
        return self.query.get("disaggregation")

    @property
    def result_count(self) -> int:
        if isinstance(self.result, list):
            return len(self.result)
        if isinstance(self.result, dict) and "themes" in self.result:
            return len(self.result["themes"])
        return 1

    @property
    def sample_size(self):
        if isinstance(self.result, list):
            return as_number(self.result[0].get("sample_size")) if self.result else None
        if isinstance(self.result, dict):
            return as_number(self.result.get("total_respondents"))
        return None

    def summary(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "question_name": self.question_name,
            "disaggregation": self.disaggregation,
            "result_count": self.result_count,
            "sample_size": self.sample_size,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "query": dict(self.query), "result": self.result}


@dataclass
class TurnTrace:
    identified_variables: List[str]
    queries_executed: List[Dict[str, Any]]
    timestamp: str
    steps: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identified_variables": list(self.identified_variables),
            "queries_executed": [dict(q) for q in self.queries_executed],
            "timestamp": self.timestamp,
            "steps": [dict(s) for s in self.steps],
        }


@dataclass
class TurnResult:
    text: str
    executed_queries: List[ExecutedQuery]
    trace: TurnTrace
    rounds: int = 0
    exhausted: bool = False


def augment_message(user_text: str, variables: Sequence[str]) -> str:
    if variables:
        note = (
            f"[System Note: Relevant variables identified: {', '.join(variables)}. "
            "Decide whether to use Quant or Qual tools based on the variable type in "
            "your system instruction.]"
        )
    else:
        note = "[System Note: No direct variables found. Ask for clarification if needed.]"
    return f"{user_text}\n\n{note}"


# =============================================================================
# Orchestrator
# =============================================================================

class ToolOrchestrator:
    """Runs one user turn against a live chat."""

    def __init__(
        self,
        selector: SelectorAgent,
        engine: QueryEngine,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
    ) -> None:
        self.selector = selector
        self.engine = engine
        self.max_tool_rounds = max_tool_rounds

    def execute_call(self, call: ToolCall, progress: ProgressTracker) -> tuple:
        """Run one tool call; returns ``(ToolResult, ExecutedQuery | None)``."""
        args = call.args
        variable = args.get("question_name") or "unknown"

        if call.name == QUANT_TOOL_NAME:
            step_id = progress.start_step(f"Querying: {variable} (quantitative)...")
            result: Any = self.engine.quantitative(
                str(args.get("question_name", "")), str(args.get("disaggregation", ""))
            )
            executed = ExecutedQuery(type=QUANTITATIVE, query=dict(args), result=result)
        elif call.name == QUAL_TOOL_NAME:
            step_id = progress.start_step(f"Querying: {variable} (qualitative)...")
            result = self.engine.qualitative(str(args.get("question_name", "")))
            executed = ExecutedQuery(type=QUALITATIVE, query=dict(args), result=result)
        else:
            LOGGER.warning("Model requested unknown tool %r", call.name)
            return ToolResult(name=call.name, payload=UNKNOWN_TOOL_RESULT, call_id=call.call_id), None

        progress.complete_step(step_id, executed.summary())
        return ToolResult(name=call.name, payload=result, call_id=call.call_id), executed

    async def run_turn(
        self,
        chat,
        user_text: str,
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressTracker] = None,
    ) -> TurnResult:
        token = token or CancellationToken()
        progress = progress or ProgressTracker()

        token.check()
        step_id = progress.start_step("Identifying variables...")
        variables = await self.selector.identify(user_text, token)
        progress.complete_step(step_id, {"variables": variables})

        message = augment_message(user_text, variables)
        checkpoint = chat.checkpoint()
        executed: List[ExecutedQuery] = []
        rounds = 0
        try:
            token.check()
            reply: ChatReply = await token.race(chat.send_text(message))

            while reply.tool_calls and rounds < self.max_tool_rounds:
                rounds += 1
                round_id = progress.start_step(f"Tool round {rounds}...")
                results: List[ToolResult] = []
                for call in reply.tool_calls:
                    result, query = self.execute_call(call, progress)
                    results.append(result)
                    if query is not None:
                        executed.append(query)
                progress.complete_step(round_id, {"calls": [c.name for c in reply.tool_calls]})

                token.check()
                thinking_id = progress.start_step("Thinking...")
                reply = await token.race(chat.send_tool_results(results))
                progress.complete_step(thinking_id)
        except BaseException:
            # A half-finished turn may end on an unanswered function call
            chat.rollback(checkpoint)
            raise

        text = reply.text or EMPTY_RESPONSE_FALLBACK
        exhausted = bool(reply.tool_calls)
        if exhausted:
            LOGGER.warning(
                "Tool round budget (%d) exhausted; returning best-effort text", self.max_tool_rounds
            )
            chat.rollback(checkpoint, [("user", message), ("model", text)])

        trace = TurnTrace(
            identified_variables=variables,
            queries_executed=[q.summary() for q in executed],
            timestamp=utc_now_iso(),
            steps=progress.snapshot(),
        )
        LOGGER.info("Turn complete: %d round(s), %d queries", rounds, len(executed))
        return TurnResult(
            text=text,
            executed_queries=executed,
            trace=trace,
            rounds=rounds,
            exhausted=exhausted,
        )


__all__ = [
    "ExecutedQuery",
    "QUALITATIVE",
    "QUANTITATIVE",
    "ToolOrchestrator",
    "TurnResult",
    "TurnTrace",
    "augment_message",
]
