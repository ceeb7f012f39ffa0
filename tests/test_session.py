"""Tests for session config, prompt assembly and rebuild-on-change."""
import asyncio
import dataclasses

import pytest

from surveybot.gemini import ChatReply


@pytest.fixture
def controller(provider, store):
    from surveybot.session import SessionConfig, SessionController
    ctrl = SessionController(store, provider, SessionConfig(main_model="main-a", selector_model="sel-a"))
    ctrl.initialize()
    return ctrl


class TestSessionConfig:
    def test_frozen_and_derived(self):
        from surveybot.session import SessionConfig
        config = SessionConfig()
        assert config.persona == "development_economist"
        assert config.carry_forward_history is False
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.persona = "policy_briefing"

        changed = config.with_persona("custom", "Be brief.")
        assert changed is not config
        assert (changed.persona, changed.custom_style_guide) == ("custom", "Be brief.")
        assert config.with_persona("policy_briefing").custom_style_guide == ""
        assert config.with_model("m2").main_model == "m2"
        assert config.with_selector_model("s2").selector_model == "s2"

    def test_from_settings(self):
        from surveybot.config import Settings
        from surveybot.session import SessionConfig
        settings = Settings(main_model="m", selector_model="s", persona="data_extractor", max_tool_rounds=3)
        config = SessionConfig.from_settings(settings, carry_forward_history=True)
        assert config.main_model == "m"
        assert config.persona == "data_extractor"
        assert config.carry_forward_history


class TestPersonas:
    def test_custom_and_unknown_fall_back(self):
        from surveybot.personas import WRITING_PERSONAS, role_for, style_guide_for
        default = WRITING_PERSONAS["development_economist"]
        assert style_guide_for("custom", "My guide") == "My guide"
        assert style_guide_for("custom", "   ") == default
        assert style_guide_for("mystery") == default
        assert role_for("mystery") == role_for("development_economist")
        assert "policy analyst" in role_for("policy_briefing")


class TestInitialize:
    def test_opens_chat_with_prompt_and_tools(self, provider, controller):
        chat = provider.chats[-1]
        assert chat.model == "main-a"
        prompt = chat.system_instruction
        assert prompt.startswith("You are a Senior Development Economist")
        assert "Available values: 'all', 'firm_owner_gender', 'gender'." in prompt
        assert '- Variable: "trust_in_banks" | Type: text [QUALITATIVE]' in prompt
        assert "**The Analytical Arc" in prompt
        assert "[Drafting Notes]" in prompt
        assert "query_survey_data" in prompt and "query_qualitative_data" in prompt
        assert chat.history is None

    def test_quantitative_tool_enum_tracks_index(self, provider, controller):
        declarations = controller.tools[0].function_declarations
        names = [d.name for d in declarations]
        assert names == ["query_survey_data", "query_qualitative_data"]
        disaggregation = declarations[0].parameters.properties["disaggregation"]
        assert disaggregation.enum == ["all", "firm_owner_gender", "gender"]

    def test_empty_index_has_no_enum(self):
        from surveybot.tools import build_quantitative_tool
        tool = build_quantitative_tool([])
        assert tool.parameters.properties["disaggregation"].enum is None

    def test_initialization_trace_and_steps(self, controller):
        assert controller.initialization_trace() == {
            "disaggregation_values": ["all", "firm_owner_gender", "gender"],
            "analysis_time_variables": ["revenue_index"],
        }
        assert [s["step_name"] for s in controller.init_steps] == [
            "Identifying disaggregation levels...",
            "Identifying analysis-time variables...",
        ]


class TestRebuild:
    def test_persona_change_rebuilds_chat_and_keeps_data(self, provider, controller):
        provider.replies = [ChatReply(text="first answer")]
        asyncio.run(controller.send_message("first question"))
        old_chat = controller.chat
        catalog_before = controller.catalog.names
        index_before = controller.index.values

        controller.update_persona("policy_briefing")

        assert controller.chat is not old_chat
        assert controller.chat.sent == []
        assert controller.chat.history is None
        assert controller.generation == 2
        assert controller.chat.system_instruction.startswith("You are a policy analyst")
        assert controller.catalog.names == catalog_before
        assert controller.index.values == index_before

    def test_custom_persona_uses_user_text(self, provider, controller):
        controller.update_persona("custom", "Write in haiku.")
        prompt = controller.chat.system_instruction
        assert "according to the user's specified style guide" in prompt
        assert "Write in haiku." in prompt

    def test_model_changes_rebuild(self, provider, controller):
        controller.update_model("main-b")
        assert provider.chats[-1].model == "main-b"
        controller.update_selector_model("sel-b")
        assert controller.selector.model == "sel-b"
        assert controller.generation == 3

    def test_carry_forward_history_seeds_new_chat(self, provider, controller):
        controller.set_carry_forward_history(True)
        provider.replies = [ChatReply(text="answer one")]
        asyncio.run(controller.send_message("question one"))

        controller.update_model("main-b")
        history = controller.chat.history
        assert [c.role for c in history] == ["user", "model"]
        assert history[0].parts[0].text == "question one"
        assert history[1].parts[0].text == "answer one"

    def test_send_before_initialize_fails(self, provider, store):
        from surveybot.session import SessionController
        with pytest.raises(RuntimeError):
            asyncio.run(SessionController(store, provider).send_message("hi"))
