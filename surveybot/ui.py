"""Streamlit UI: upload sidebar, persona/model pickers and the chat transcript."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List

import streamlit as st

from .config import AVAILABLE_MODELS
from .files import UploadFormatError, parse_questionnaire_csv, parse_results_workbook
from .logger import LOGGER
from .personas import CUSTOM_PERSONA_ID, PERSONAS
from .progress import COMPLETED, ProgressEvent, ProgressTracker
from .state import SYSTEM, USER, AppState, TurnInProgressError


def _rerun_app() -> None:
    """Compat helper for rerunning the Streamlit script across versions."""
    if hasattr(st, "rerun"):
        st.rerun()
    else:  # pragma: no cover - legacy Streamlit
        st.experimental_rerun()


def _step_icon(status: str) -> str:
    return "✅" if status == COMPLETED else "⏳"


def _format_details(details: Dict[str, Any]) -> str:
    if not details:
        return ""
    parts = []
    for key, value in details.items():
        if value is None or value == [] or value == "":
            continue
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        parts.append(f"{key.replace('_', ' ')}: {value}")
    return " · ".join(parts)


def render_trace_steps(steps: List[Dict[str, Any]]) -> None:
    for step in steps:
        line = f"{_step_icon(step['status'])} {step['step_name']}"
        details = _format_details(step.get("details") or {})
        if details:
            line += f"  \n<small>{details}</small>"
        st.markdown(line, unsafe_allow_html=True)


# ==============================================================================
#  SIDEBAR
# ==============================================================================

def _handle_questionnaire_upload(app_state: AppState, uploaded) -> None:
    try:
        rows = parse_questionnaire_csv(uploaded.getvalue())
    except UploadFormatError as exc:
        LOGGER.error("Questionnaire upload failed: %s", exc)
        st.error(f"Error parsing file: {uploaded.name}. Please check the format.")
        return
    app_state.load_questionnaire(rows, filename=uploaded.name)


def _handle_results_upload(app_state: AppState, uploaded) -> None:
    try:
        workbook = parse_results_workbook(uploaded.getvalue())
    except UploadFormatError as exc:
        LOGGER.error("Results upload failed: %s", exc)
        st.error(f"Error parsing file: {uploaded.name}. Please check the format.")
        return
    app_state.load_results(workbook.quantitative, workbook.qualitative, filename=uploaded.name)


def render_upload_panel(app_state: AppState) -> None:
    st.subheader("📂 Survey data")
    questionnaire = st.file_uploader("Questionnaire (CSV)", type=["csv"], key="questionnaire_upload")
    if questionnaire is not None and questionnaire.name != app_state.questionnaire_name:
        _handle_questionnaire_upload(app_state, questionnaire)

    results = st.file_uploader("Results (Excel)", type=["xlsx", "xls"], key="results_upload")
    if results is not None and results.name != app_state.results_name:
        _handle_results_upload(app_state, results)

    summary = app_state.data_summary()
    col1, col2, col3 = st.columns(3)
    col1.metric("Variables", summary["variables"])
    col2.metric("Quant rows", summary["quantitative_rows"])
    col3.metric("Qual rows", summary["qualitative_rows"])

    if app_state.controller is not None:
        with st.expander("🔎 Discovered data structure", expanded=False):
            init = app_state.controller.initialization_trace()
            st.caption("Disaggregation levels")
            st.write(", ".join(init["disaggregation_values"]) or "None")
            st.caption("Analysis-time variables")
            st.write(", ".join(init["analysis_time_variables"]) or "None")


def render_settings_panel(app_state: AppState) -> None:
    st.subheader("🎭 Writing style")
    persona_ids = [p.id for p in PERSONAS]
    titles = {p.id: p.title for p in PERSONAS}
    current = app_state.config.persona if app_state.config.persona in persona_ids else persona_ids[0]
    persona = st.selectbox(
        "Persona",
        persona_ids,
        index=persona_ids.index(current),
        format_func=lambda pid: titles[pid],
        key="persona_select",
    )
    custom_guide = app_state.config.custom_style_guide
    if persona == CUSTOM_PERSONA_ID:
        custom_guide = st.text_area(
            "Custom style guide",
            value=app_state.config.custom_style_guide,
            height=200,
            key="custom_style_guide",
        )

    st.subheader("🤖 Models")
    main_options = list(dict.fromkeys([app_state.config.main_model, *AVAILABLE_MODELS]))
    main_model = st.selectbox("Writer model", main_options, index=0, key="main_model_select")
    selector_options = list(dict.fromkeys([app_state.config.selector_model, *AVAILABLE_MODELS]))
    selector_model = st.selectbox("Selector model", selector_options, index=0, key="selector_model_select")

    try:
        if persona != app_state.config.persona or (
            persona == CUSTOM_PERSONA_ID and custom_guide != app_state.config.custom_style_guide
        ):
            app_state.update_persona(persona, custom_guide)
            st.toast(f"Writing style set to {titles[persona]}")
        if main_model != app_state.config.main_model:
            app_state.update_model(main_model)
            st.toast(f"Writer model set to {main_model}")
        if selector_model != app_state.config.selector_model:
            app_state.update_selector_model(selector_model)
    except TurnInProgressError as exc:
        st.warning(str(exc))


# ==============================================================================
#  CHAT
# ==============================================================================

def render_message(message: Dict[str, Any]) -> None:
    role = message["role"]
    avatar = "ℹ️" if role == SYSTEM else None
    with st.chat_message("user" if role == USER else "assistant", avatar=avatar):
        st.markdown(message["content"])
        trace = message.get("trace")
        if trace:
            with st.expander("🧭 Trace", expanded=False):
                variables = trace.get("identified_variables") or []
                st.caption(f"Identified variables: {', '.join(variables) or 'none'}")
                render_trace_steps(trace.get("steps") or [])
                st.caption(trace.get("timestamp", ""))
        if message.get("related_data"):
            with st.expander("📊 Data used", expanded=False):
                st.code(json.dumps(message["related_data"], indent=2, ensure_ascii=False), language="json")


def render_restored_input(app_state: AppState) -> None:
    """Offer a stopped question back for resending."""
    st.info("Stopped. Your question was not sent to the transcript.")
    st.code(app_state.input_text, language=None)
    col_resend, col_discard = st.columns(2)
    if col_resend.button("↩ Resend", key="resend_turn"):
        prompt = app_state.input_text
        app_state.input_text = ""
        run_turn(app_state, prompt)
        _rerun_app()
    if col_discard.button("Discard", key="discard_turn"):
        app_state.input_text = ""
        _rerun_app()


def run_turn(app_state: AppState, prompt: str) -> None:
    with st.chat_message("user"):
        st.markdown(prompt)

    with st.chat_message("assistant"):
        status = st.status("Thinking...", expanded=True)
        tracker = ProgressTracker()

        def on_event(event: ProgressEvent) -> None:
            if event.kind == "start":
                status.update(label=event.step["step_name"])
                status.write(f"⏳ {event.step['step_name']}")

        tracker.add_listener(on_event)
        # Clicking reruns the script, which stops this turn at its next progress step
        st.button("⏹ Stop", key="stop_turn", help="Stop this answer and restore your question")
        outcome = asyncio.run(app_state.handle_send(prompt, tracker))
        state = "error" if outcome.status == "error" else "complete"
        status.update(label="Done" if outcome.status == "completed" else outcome.status.title(), state=state, expanded=False)


def render_app(app_state: AppState) -> None:
    """Main page; ``st.set_page_config`` is called by the entrypoint."""
    with st.sidebar:
        render_upload_panel(app_state)
        st.markdown("---")
        render_settings_panel(app_state)

    st.title("📈 Survey Analyst")

    if not app_state.is_ready:
        st.info("Upload the questionnaire (CSV) and the results workbook (Excel) to start.")
        return

    for message in app_state.messages_as_dicts():
        render_message(message)

    if app_state.input_text and not app_state.is_processing:
        render_restored_input(app_state)

    prompt = st.chat_input(
        "Ask for a report section, a breakdown, or a synthesis...",
        disabled=app_state.is_processing,
    )
    if prompt and prompt.strip():
        run_turn(app_state, prompt)
        _rerun_app()


__all__ = ["render_app", "render_message", "render_restored_input", "render_trace_steps"]
