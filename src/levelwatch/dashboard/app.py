"""Streamlit operator dashboard entry point."""

import streamlit as st

st.set_page_config(
    page_title="levelwatch",
    page_icon="📡",
    layout="wide",
    initial_sidebar_state="expanded",
)

from levelwatch.dashboard.pages import health_page
from levelwatch.dashboard.pages import levels_page

PAGE_MAP = {
    "Health": health_page,
    "Levels": levels_page,
}

st.sidebar.title("levelwatch")
selection = st.sidebar.radio("Navigate", list(PAGE_MAP.keys()))

PAGE_MAP[selection].render()
