"""Tests for turn handling: transcript, cancel/restore, errors, serialization."""
import asyncio

import pytest

from surveybot.gemini import ChatReply


class TestLoading:
    def test_controller_built_once_both_datasets_present(self, provider, questionnaire_records, results_records):
        from surveybot.state import AppState
        state = AppState(provider=provider)
        state.load_questionnaire(questionnaire_records)
        assert not state.is_ready
        assert state.messages == []

        state.load_results(results_records)
        assert state.is_ready
        assert [m.role for m in state.messages] == ["system"]
        assert state.messages[0].content.startswith("I'm ready!")
        assert [s["step_name"] for s in state.init_trace] == [
            "Identifying disaggregation levels...",
            "Identifying analysis-time variables...",
        ]

    def test_data_summary(self, ready_state):
        summary = ready_state.data_summary()
        assert summary["variables"] == 7
        assert summary["quantitative_rows"] == 4
        assert summary["qualitative_rows"] == 3
        assert summary["catalog_size"] == 5
        assert summary["results_file"] == "results.xlsx"


class TestHandleSend:
    def test_successful_turn_appends_model_message(self, provider, ready_state, tool_call):
        provider.selector_response = ["electricity_outages"]
        provider.replies = [
            ChatReply(tool_calls=[
                tool_call("query_survey_data", question_name="electricity_outages", disaggregation="all"),
            ]),
            ChatReply(text="63% had outages."),
        ]
        outcome = asyncio.run(ready_state.handle_send("Outages?"))

        assert outcome.status == "completed"
        roles = [m.role for m in ready_state.messages]
        assert roles == ["system", "user", "model"]
        reply = ready_state.messages[-1]
        assert reply.content == "63% had outages."
        assert reply.related_data[0]["type"] == "Quantitative"
        assert reply.trace["identified_variables"] == ["electricity_outages"]
        assert reply.trace["queries_executed"][0]["sample_size"] == 450
        assert not ready_state.is_processing
        assert ready_state.live_trace == []

    def test_rejects_blank_and_not_ready(self, provider):
        from surveybot.state import AppState, SessionNotReadyError
        state = AppState(provider=provider)
        with pytest.raises(ValueError):
            asyncio.run(state.handle_send("   "))
        with pytest.raises(SessionNotReadyError):
            asyncio.run(state.handle_send("hello"))

    def test_provider_failure_becomes_error_message(self, provider, ready_state):
        provider.replies = [RuntimeError("503 UNAVAILABLE")]
        outcome = asyncio.run(ready_state.handle_send("hello"))
        assert outcome.status == "error"
        assert ready_state.messages[-1].role == "model"
        assert ready_state.messages[-1].content == "Error: 503 UNAVAILABLE"
        assert [m.role for m in ready_state.messages] == ["system", "user", "model"]
        assert not ready_state.is_processing

    def test_cancel_after_selector_restores_state(self, provider, ready_state):
        before = [m.to_dict() for m in ready_state.messages]
        text = "  Explain outages\nby gender  "

        async def scenario():
            provider.gate = asyncio.Event()
            task = asyncio.ensure_future(ready_state.handle_send(text))
            chat = ready_state.controller.chat
            while not chat.sent:
                await asyncio.sleep(0)
            assert provider.selector_calls
            assert ready_state.is_processing
            assert ready_state.live_trace
            assert ready_state.cancel()
            return await task

        outcome = asyncio.run(scenario())
        assert outcome.status == "cancelled"
        assert outcome.restored_input == text
        assert [m.to_dict() for m in ready_state.messages] == before
        assert ready_state.input_text == text
        assert ready_state.live_trace == []
        assert not ready_state.is_processing

    def test_second_send_while_busy_is_rejected(self, provider, ready_state):
        from surveybot.state import TurnInProgressError

        async def scenario():
            provider.gate = asyncio.Event()
            first = asyncio.ensure_future(ready_state.handle_send("first"))
            while not ready_state.controller.chat.sent:
                await asyncio.sleep(0)
            try:
                with pytest.raises(TurnInProgressError):
                    await ready_state.handle_send("second")
                with pytest.raises(TurnInProgressError):
                    ready_state.update_persona("policy_briefing")
            finally:
                provider.gate.set()
            return await first

        outcome = asyncio.run(scenario())
        assert outcome.status == "completed"
        assert [m.content for m in ready_state.messages if m.role == "user"] == ["first"]

    def test_cancel_without_turn(self, ready_state):
        assert ready_state.cancel() is False

    def test_interrupted_turn_restores_input_and_chat(self, provider, ready_state):
        before = [m.to_dict() for m in ready_state.messages]

        async def scenario():
            provider.gate = asyncio.Event()
            task = asyncio.ensure_future(ready_state.handle_send("stop me"))
            while not ready_state.controller.chat.sent:
                await asyncio.sleep(0)
            task.cancel()
            await task

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(scenario())
        assert [m.to_dict() for m in ready_state.messages] == before
        assert ready_state.input_text == "stop me"
        assert not ready_state.is_processing
        assert ready_state.controller.chat.rollbacks == [(0, [])]


class TestReconfiguration:
    def test_update_persona_forwards_to_controller(self, provider, ready_state):
        old_chat = ready_state.controller.chat
        ready_state.update_persona("data_extractor")
        assert ready_state.config.persona == "data_extractor"
        assert ready_state.controller.config.persona == "data_extractor"
        assert ready_state.controller.chat is not old_chat

    def test_update_model_before_data_only_changes_config(self, provider):
        from surveybot.state import AppState
        state = AppState(provider=provider)
        state.update_model("gemini-2.5-flash")
        assert state.config.main_model == "gemini-2.5-flash"
        assert provider.chats == []
