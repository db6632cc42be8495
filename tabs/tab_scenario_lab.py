"""Tab 1: Scenario Lab — tune parameters, evaluate and compare scenarios."""

import logging

import streamlit as st
import pandas as pd

from data.session_store import get_planner, get_history, get_result, store_result
from engine.errors import PlanningError
from components.metrics_cards import render_result_kpis, render_alert_card
from components.tables import (
    render_severity_table, render_comparison_table, violations_df, risk_factors_df, comparison_df,
)
from components.charts import demand_curve_chart, utilization_chart, skill_gap_bar, scenario_comparison_bar
from engine.scenario_engine import analyze_skill_gaps

logger = logging.getLogger(__name__)


def _render_parameters(planner, scenario):
    st.subheader("Parameters")
    numeric = [p for p in scenario.parameters if p.is_numeric]
    cols = st.columns(2)
    edited = {}
    for i, param in enumerate(numeric):
        with cols[i % 2]:
            edited[param.parameter_id] = st.slider(
                param.name or param.parameter_id,
                min_value=float(param.min_value if param.min_value is not None else 0.0),
                max_value=float(param.max_value if param.max_value is not None else 1.0),
                value=float(param.value),
                step=0.05,
                help=param.description,
                key=f"param_{scenario.scenario_id}_{param.parameter_id}",
            )

    rationale = st.text_input("Rationale for changes", key=f"param_rationale_{scenario.scenario_id}")
    if st.button("Save Parameters", key="btn_save_params"):
        changed = 0
        for param in numeric:
            value = edited[param.parameter_id]
            if abs(value - float(param.value)) > 1e-9:
                planner.set_parameter(scenario.scenario_id, param.parameter_id, value, rationale)
                changed += 1
        st.success(f"Saved {changed} parameter change(s).")
        st.rerun()


def _render_result(result):
    render_result_kpis(result)

    st.plotly_chart(demand_curve_chart(result.demand, result.capacity), use_container_width=True)
    days = [c.day for c in result.demand.curves]
    st.plotly_chart(utilization_chart(result.utilization, days), use_container_width=True)

    if result.demand.skill_bottlenecks:
        st.markdown("**Skill Bottlenecks**")
        st.dataframe(pd.DataFrame([
            {"Skill": b.skill, "Peak Date": b.peak_date, "Peak FTE": round(b.demand_value, 2),
             "Average FTE": round(b.average_demand, 2), "Capacity": b.current_capacity}
            for b in result.demand.skill_bottlenecks
        ]), use_container_width=True)

    gaps = analyze_skill_gaps(result)
    if gaps:
        st.plotly_chart(skill_gap_bar(gaps), use_container_width=True)

    st.subheader("Constraint Violations")
    if result.violations:
        render_severity_table(violations_df(result))
    else:
        st.success("No constraint violations.")

    st.subheader("Risk")
    mc = result.risk.monte_carlo
    st.caption(
        f"{mc.iterations} simulations: success {mc.success_probability:.0%}, "
        f"duration {mc.estimated_duration.mean:.0f} ± {mc.estimated_duration.std:.0f} days, "
        f"cost ${mc.estimated_cost.mean:,.0f} ± {mc.estimated_cost.std:,.0f}"
    )
    st.dataframe(risk_factors_df(result), use_container_width=True)

    with st.expander("Timeline", expanded=False):
        st.dataframe(pd.DataFrame([
            {"Project": t.project_id, "Planned End": t.planned_end, "Estimated End": t.estimated_end,
             "Delay (days)": round(t.delay_days, 1), "Critical": "Yes" if t.critical_path else ""}
            for t in result.timeline.project_timelines
        ]), use_container_width=True)
        st.dataframe(pd.DataFrame([
            {"Milestone": m.name, "Date": m.day, "Risk": m.risk} for m in result.timeline.milestones
        ]), use_container_width=True)

    if result.demand_forecast is not None:
        fc = result.demand_forecast
        st.caption(
            f"Demand trend: {fc.trend_direction}, confidence {fc.confidence:.0%}"
            f"{', seasonal' if fc.seasonality else ''}"
        )

    st.subheader("Recommendations")
    for rec in result.recommendations:
        level = "warning" if rec.impact == "high" else "info"
        render_alert_card(f"**{rec.description}** — {rec.expected_benefit}", level)
        with st.expander(f"Steps: {rec.kind}", expanded=False):
            for step in rec.implementation:
                st.markdown(f"- {step}")


def _render_comparison(planner, scenario, sidebar_state):
    others = [s for s in planner.list_scenarios() if s.scenario_id != scenario.scenario_id]
    if not others:
        st.info("Create another scenario to compare against.")
        return
    names = {s.scenario_id: s.name for s in others}
    other_id = st.selectbox(
        "Compare with", options=list(names), format_func=lambda x: names[x], key="compare_with",
    )
    if not st.button("Compare", key="btn_compare"):
        return

    comparison = planner.compare_scenarios(scenario.scenario_id, other_id, sidebar_state.horizon_days)
    df = comparison_df(comparison, scenario.name, names[other_id])
    render_comparison_table(df)
    st.plotly_chart(
        scenario_comparison_bar(comparison, scenario.name, names[other_id]), use_container_width=True,
    )
    for line in comparison.recommendations:
        st.markdown(f"- {line}")


def render(sidebar_state):
    """Render the Scenario Lab tab."""
    st.header("Scenario Lab")

    if not sidebar_state.scenario_id:
        st.info("No active scenario. Create one in Admin & Governance.")
        return

    planner = get_planner()
    try:
        scenario = planner.get_scenario(sidebar_state.scenario_id)
    except PlanningError as e:
        st.error(e.message)
        return

    st.subheader(f"Scenario: {scenario.name}")
    st.caption(
        f"Type: {scenario.scenario_type} | Status: {scenario.status} | "
        f"Horizon: {sidebar_state.planning_horizon} months | Projects: {len(scenario.projects)}"
    )
    if scenario.description:
        st.markdown(scenario.description)

    st.divider()
    try:
        _render_parameters(planner, scenario)
    except PlanningError as e:
        st.error(e.message)

    st.divider()
    use_history = st.checkbox(
        "Include historical baseline load", value=False, key="lab_use_history",
        help="Forecast the uploaded history and add it on top of pipeline demand.",
    )
    if st.button("Evaluate Scenario", type="primary", key="btn_evaluate"):
        try:
            with st.spinner("Evaluating..."):
                result = planner.evaluate_scenario(
                    scenario.scenario_id,
                    horizon_days=sidebar_state.horizon_days,
                    baseline_series=get_history() if use_history else None,
                )
            store_result(result)
        except PlanningError as e:
            logger.warning("Evaluation of %s failed: %s", scenario.scenario_id, e.message)
            st.error(e.message)

    result = get_result(scenario.scenario_id)
    if result is not None:
        st.divider()
        st.subheader("Results")
        st.caption(f"Evaluated at {result.evaluated_at:%Y-%m-%d %H:%M:%S}")
        _render_result(result)

    st.divider()
    st.subheader("Compare Scenarios")
    try:
        _render_comparison(planner, scenario, sidebar_state)
    except PlanningError as e:
        st.error(e.message)
