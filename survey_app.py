"""Streamlit entrypoint."""

from __future__ import annotations

import streamlit as st

from surveybot.config import AppConfig
from surveybot.gemini import GeminiProvider
from surveybot.logger import LOGGER
from surveybot.state import AppState
from surveybot.ui import render_app


def main() -> None:
    # Page config (must be first Streamlit command)
    st.set_page_config(
        page_title="Survey Analyst",
        page_icon="📈",
        layout="wide",
        initial_sidebar_state="expanded",
    )

    config = AppConfig.get()

    if "app_state" not in st.session_state:
        st.session_state["app_state"] = AppState.from_settings(
            config.settings, provider=GeminiProvider(config.client)
        )
        LOGGER.info("Created new AppState")

    app_state: AppState = st.session_state["app_state"]
    render_app(app_state)


if __name__ == "__main__":
    main()
