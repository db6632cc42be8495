"""Global sidebar controls for scenario and horizon selection."""

import streamlit as st
from dataclasses import dataclass
from data.session_store import get_planner, get_active_scenario_id, set_active_scenario_id, is_data_loaded
from config.defaults import PLANNING_HORIZONS, DEFAULT_PLANNING_HORIZON


@dataclass
class SidebarState:
    scenario_id: str
    planning_horizon: int

    @property
    def horizon_days(self) -> int:
        return self.planning_horizon * 30


def render_sidebar() -> SidebarState:
    """Render the global sidebar controls and return current state."""
    with st.sidebar:
        st.title("Capacity Planning")
        st.divider()

        planner = get_planner()
        scenarios = planner.list_scenarios()
        scenario_names = {s.scenario_id: s.name for s in scenarios}
        scenario_ids = list(scenario_names.keys())

        current_id = get_active_scenario_id()
        if current_id not in scenario_ids and scenario_ids:
            current_id = scenario_ids[0]

        selected_id = None
        if scenario_ids:
            selected_id = st.selectbox(
                "Active Scenario",
                options=scenario_ids,
                format_func=lambda x: scenario_names.get(x, x),
                index=scenario_ids.index(current_id),
                key="sidebar_scenario",
            )
            if selected_id != get_active_scenario_id():
                set_active_scenario_id(selected_id)
        else:
            st.info("No scenarios yet. Create one in the Admin tab.")

        horizon = st.selectbox(
            "Planning Horizon (months)",
            options=PLANNING_HORIZONS,
            index=PLANNING_HORIZONS.index(DEFAULT_PLANNING_HORIZON),
            key="sidebar_horizon",
        )

        st.divider()

        if is_data_loaded():
            st.success("Uploaded data loaded")
        else:
            st.info("Using sample pipeline. Upload data in the Admin tab.")

        active = next((s for s in scenarios if s.scenario_id == selected_id), None)
        if active:
            st.caption(f"Type: {active.scenario_type}")
            st.caption(f"Status: {active.status}")
            st.caption(f"Projects: {len(active.projects)}")
            if active.last_run_at:
                st.caption(f"Last run: {active.last_run_at:%Y-%m-%d %H:%M}")

    return SidebarState(
        scenario_id=selected_id,
        planning_horizon=horizon,
    )
