"""Tab 2: Conflicts — over-allocation detection and guarded allocation edits."""

from datetime import date, timedelta

import streamlit as st
import pandas as pd

from data.session_store import get_planner
from engine.errors import CapacityExceededError, PlanningError
from components.metrics_cards import render_metric_row
from components.tables import render_severity_table, conflicts_df, allocations_df
from models.allocation import ALLOCATION_TYPES


def _render_report(planner, scenario_id):
    report = planner.conflict_report(scenario_id)
    conflicts = report["conflicts"]
    summaries = report["by_employee"]

    render_metric_row([
        {"label": "Conflicts", "value": len(conflicts)},
        {"label": "Employees Affected", "value": len(summaries)},
        {"label": "High Severity", "value": sum(1 for c in conflicts if c.severity == "high")},
        {"label": "Over-allocated Windows", "value": len(report["windows"])},
    ])

    if not conflicts:
        st.success("No over-allocations in this scenario.")
        return

    render_severity_table(conflicts_df(conflicts))

    st.markdown("**By Employee**")
    st.dataframe(pd.DataFrame([
        {"Employee": s.employee_id, "Conflicts": len(s.conflicts), "From": s.window.start,
         "To": s.window.end or "ongoing", "Peak %": s.peak_total_pct,
         "Total Over %": s.total_over_allocation_pct}
        for s in summaries
    ]), use_container_width=True)

    with st.expander("Over-allocated windows (combined load)", expanded=False):
        st.dataframe(pd.DataFrame([
            {"Employee": w.employee_id, "From": w.window.start, "To": w.window.end or "ongoing",
             "Peak %": w.peak_pct, "Allocations": ", ".join(w.allocation_ids)}
            for w in report["windows"]
        ]), use_container_width=True)


def _render_new_allocation(planner, scenario):
    st.subheader("Add Allocation")
    project_ids = [p.project_id for p in scenario.projects] or ["—"]
    with st.form("new_allocation", clear_on_submit=False):
        col1, col2, col3 = st.columns(3)
        with col1:
            employee_id = st.text_input("Employee ID", value="E001")
            project_id = st.selectbox("Project", project_ids)
        with col2:
            start = st.date_input("Start", value=date.today())
            open_ended = st.checkbox("Open-ended", value=False)
            end = st.date_input("End", value=date.today() + timedelta(days=30))
        with col3:
            pct = st.number_input("Allocation %", min_value=0.0, max_value=100.0, value=50.0, step=5.0)
            allocation_type = st.selectbox("Type", ALLOCATION_TYPES, index=len(ALLOCATION_TYPES) - 1)
            confidence = st.slider("Confidence", 1, 5, 3)
        notes = st.text_input("Notes")
        submitted = st.form_submit_button("Create Allocation", type="primary")

    if not submitted:
        return
    try:
        allocation = planner.create_scenario_allocation(
            scenario.scenario_id,
            employee_id=employee_id.strip(),
            project_id=project_id,
            start_date=start,
            end_date=None if open_ended else end,
            allocation_pct=pct,
            allocation_type=allocation_type,
            confidence_level=confidence,
            notes=notes,
        )
        st.success(f"Created allocation {allocation.allocation_id}.")
        st.rerun()
    except CapacityExceededError as e:
        st.error(
            f"{e.message} Only {e.available_pct:.0f}% is free for {e.employee_id} in that window."
        )
    except PlanningError as e:
        st.error(e.message)


def _render_allocations(planner, scenario_id):
    allocations = planner.list_scenario_allocations(scenario_id)
    st.subheader(f"Allocations ({len(allocations)})")
    if not allocations:
        st.info("No allocations in this scenario.")
        return
    st.dataframe(allocations_df(allocations), use_container_width=True)

    ids = [a.allocation_id for a in allocations]
    col1, col2 = st.columns([3, 1])
    with col1:
        to_delete = st.selectbox("Remove allocation", ids, key="alloc_delete_id")
    with col2:
        st.write("")
        if st.button("Delete", key="btn_alloc_delete"):
            try:
                planner.delete_scenario_allocation(to_delete, rationale="Removed from Conflicts tab")
                st.rerun()
            except PlanningError as e:
                st.error(e.message)


def render(sidebar_state):
    """Render the Conflicts tab."""
    st.header("Resource Conflicts")

    if not sidebar_state.scenario_id:
        st.info("No active scenario. Create one in Admin & Governance.")
        return

    planner = get_planner()
    try:
        scenario = planner.get_scenario(sidebar_state.scenario_id)
        _render_report(planner, scenario.scenario_id)
        st.divider()
        _render_allocations(planner, scenario.scenario_id)
    except PlanningError as e:
        st.error(e.message)
        return

    st.divider()
    _render_new_allocation(planner, scenario)
