"""Shared fixtures: small survey datasets and a scripted Gemini stand-in."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, List, Optional

import pytest

from surveybot.gemini import ChatReply, ToolCall


QUESTIONNAIRE = [
    {"type": "select_one yes_no", "name": "electricity_outages", "label::English (en)": "Had power outages?"},
    {"type": "integer", "name": "num_employees", "label::English (en)": "How many   employees?"},
    {"type": "text", "name": "trust_in_banks", "label::English (en)": "Why do you (not) trust banks?"},
    {"type": "note", "name": "intro_note", "label::English (en)": "Welcome"},
    {"type": "begin_group", "name": "grp_finance", "label::English (en)": ""},
    {"type": "select_multiple sources", "name": "finance_sources", "label::English (en)": ""},
    {"type": "integer", "name": "num_employees", "label::English (en)": "Duplicate row"},
]

RESULTS = [
    {"question": "electricity_outages", "disaggregation": "all", "answer_option_tag": "yes",
     "answer_option_eng": "Yes", "indicator": "percent", "value": "63", "sample_size": "450"},
    {"question": "electricity_outages", "disaggregation": "gender", "answer_option_tag": "yes",
     "answer_option_eng": "", "indicator": "percent", "value": "19", "sample_size": "120"},
    {"question": "electricity_outages", "disaggregation": "firm_owner_gender", "answer_option_tag": "yes",
     "answer_option_eng": "Yes", "indicator": "percent", "value": "55", "sample_size": "200",
     "firm_owner_gender": "female"},
    {"question": "revenue_index", "disaggregation": "all", "answer_option_tag": "",
     "answer_option_eng": "", "indicator": "mean", "value": "1.7", "sample_size": "430"},
]

QUALITATIVE = [
    {"question": "trust_in_banks", "theme": "Executive Summary", "summary": "Low trust overall",
     "total_respondents": "80", "quotes": ""},
    {"question": "trust_in_banks", "theme": "Collateral", "proportion_percent": "0.45",
     "frequency": "36", "summary": "Collateral rules exclude many firms.", "quotes": "q1\n---\nq2"},
    {"question": "climate_adaptation", "theme": "Irrigation", "proportion_percent": "",
     "frequency": "12", "summary": "Investing in irrigation.", "quotes": "\n---\n only one \n---\n"},
]


@pytest.fixture
def questionnaire_records():
    return [dict(r) for r in QUESTIONNAIRE]


@pytest.fixture
def results_records():
    return [dict(r) for r in RESULTS]


@pytest.fixture
def qualitative_records():
    return [dict(r) for r in QUALITATIVE]


@pytest.fixture
def store(questionnaire_records, results_records, qualitative_records):
    from surveybot.store import TabularStore
    return TabularStore.from_records(questionnaire_records, results_records, qualitative_records)


# ---------------------------------------------------------------------------
# Scripted provider
# ---------------------------------------------------------------------------

class FakeChat:
    """Replays ``provider.replies`` in order; records everything sent."""

    def __init__(self, provider: "FakeProvider", model: str, system_instruction: str, tools, history):
        self.provider = provider
        self.model = model
        self.system_instruction = system_instruction
        self.tools = tools
        self.history = history
        self.sent: List[Any] = []
        self.rollbacks: List[tuple] = []

    def checkpoint(self) -> int:
        return len(self.sent)

    def rollback(self, checkpoint: int, turns=()) -> None:
        self.rollbacks.append((checkpoint, list(turns)))

    async def _next(self, payload: Any) -> ChatReply:
        self.sent.append(payload)
        if self.provider.gate is not None:
            await self.provider.gate.wait()
        if self.provider.replies:
            reply = self.provider.replies.pop(0)
        elif self.provider.default_reply is not None:
            reply = self.provider.default_reply
        else:
            reply = ChatReply(text="")
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = reply(payload)
        return reply

    async def send_text(self, text: str) -> ChatReply:
        return await self._next(text)

    async def send_tool_results(self, results) -> ChatReply:
        return await self._next(list(results))


class FakeProvider:
    def __init__(self, selector_response: Any = "[]"):
        self.selector_response = selector_response
        self.selector_calls: List[tuple] = []
        self.replies: List[Any] = []
        self.default_reply: Optional[ChatReply] = None
        self.gate: Optional[asyncio.Event] = None
        self.chats: List[FakeChat] = []

    def open_chat(self, model, system_instruction, tools, history=None):
        chat = FakeChat(self, model, system_instruction, tools, history)
        self.chats.append(chat)
        return chat

    async def generate_json(self, model, prompt, schema):
        self.selector_calls.append((model, prompt))
        if isinstance(self.selector_response, BaseException):
            raise self.selector_response
        if isinstance(self.selector_response, list):
            return json.dumps(self.selector_response)
        return self.selector_response


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def tool_call() -> Callable[..., ToolCall]:
    def make(name: str, call_id: str = "call-1", **args: Any) -> ToolCall:
        return ToolCall(name=name, args=args, call_id=call_id)
    return make


@pytest.fixture
def ready_state(provider, questionnaire_records, results_records, qualitative_records):
    from surveybot.state import AppState
    state = AppState(provider=provider)
    state.load_questionnaire(questionnaire_records, filename="survey.csv")
    state.load_results(results_records, qualitative_records, filename="results.xlsx")
    return state
