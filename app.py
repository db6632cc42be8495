"""Scenario Planning & Capacity Forecasting — Streamlit entry point."""

import logging
import streamlit as st
import sys
import os

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from components.sidebar import render_sidebar
from data.session_store import initialize_session_state, get_rule_config
from config.defaults import LOGGING_LEVEL
from tabs import (
    tab_scenario_lab,
    tab_conflicts,
    tab_forecast,
    tab_optimization,
    tab_admin_governance,
)


def configure_logging(level: str = LOGGING_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


def main():
    st.set_page_config(
        page_title="Capacity Planning",
        page_icon="📈",
        layout="wide",
        initial_sidebar_state="expanded",
    )

    initialize_session_state()
    configure_logging(get_rule_config().get("logging_level", LOGGING_LEVEL))
    sidebar_state = render_sidebar()

    tab1, tab2, tab3, tab4, tab5 = st.tabs([
        "🧪 Scenario Lab",
        "⚠️ Conflicts",
        "📈 Forecast",
        "⚡ Optimization",
        "⚙️ Admin & Governance",
    ])

    with tab1:
        tab_scenario_lab.render(sidebar_state)
    with tab2:
        tab_conflicts.render(sidebar_state)
    with tab3:
        tab_forecast.render(sidebar_state)
    with tab4:
        tab_optimization.render(sidebar_state)
    with tab5:
        tab_admin_governance.render(sidebar_state)


if __name__ == "__main__":
    main()
