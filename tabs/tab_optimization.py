"""Tab 4: Optimization — sensitivity analysis and genetic parameter search."""

import streamlit as st
import pandas as pd

from data.session_store import get_planner, drop_result
from engine.errors import PlanningError
from engine.optimizer import OBJECTIVES
from components.charts import convergence_chart, sensitivity_chart
from components.metrics_cards import render_metric_row
from components.tables import render_comparison_table
from config.defaults import DEFAULT_OBJECTIVES, MAX_GENERATIONS


def _render_sensitivity(planner, scenario):
    st.subheader("Sensitivity Analysis")
    numeric = {p.parameter_id: (p.name or p.parameter_id) for p in scenario.parameters if p.is_numeric}
    selected = st.multiselect(
        "Parameters", list(numeric), default=list(numeric)[:4],
        format_func=lambda x: numeric[x], key="sens_params",
    )
    if not st.button("Run Sensitivity", key="btn_sensitivity") or not selected:
        return

    with st.spinner("Evaluating variations..."):
        results = planner.run_sensitivity_analysis(scenario.scenario_id, selected)

    st.plotly_chart(sensitivity_chart(results), use_container_width=True)
    ranked = sorted(results, key=lambda r: r.sensitivity, reverse=True)
    st.dataframe(pd.DataFrame([
        {"Parameter": numeric[r.parameter_id], "Sensitivity": round(r.sensitivity, 4)}
        for r in ranked
    ]), use_container_width=True)


def _render_optimizer(planner, scenario):
    st.subheader("Genetic Optimizer")
    st.caption(
        "Searches parameter values for a better weighted score. "
        "The result improves on the starting point; it is not guaranteed optimal."
    )

    col1, col2, col3 = st.columns(3)
    with col1:
        objectives = st.multiselect("Objectives", OBJECTIVES, default=DEFAULT_OBJECTIVES, key="opt_objectives")
    with col2:
        generations = st.slider("Max generations", 5, 100, MAX_GENERATIONS, step=5, key="opt_generations")
    with col3:
        deadline = st.number_input("Time limit (s, 0 = none)", min_value=0, value=60, step=10, key="opt_deadline")

    if st.button("Optimize", type="primary", key="btn_optimize"):
        if not objectives:
            st.warning("Pick at least one objective.")
            return
        with st.spinner("Optimizing..."):
            result = planner.optimize_scenario(
                scenario.scenario_id,
                objectives=objectives,
                generations=generations,
                deadline_seconds=deadline or None,
            )
        st.session_state["optimization_result"] = (scenario.scenario_id, result)

    stored = st.session_state.get("optimization_result")
    if not stored or stored[0] != scenario.scenario_id:
        return
    result = stored[1]

    render_metric_row([
        {"label": "Fitness", "value": f"{result.fitness:.1f}",
         "delta": f"{result.fitness - result.original_fitness:+.1f}"},
        {"label": "Generations", "value": result.generations_run},
        {"label": "Stopped", "value": result.stopped_reason.replace("_", " ")},
        {"label": "Failed Evaluations", "value": result.failed_evaluations},
    ])
    st.plotly_chart(convergence_chart(result.convergence_history), use_container_width=True)

    st.markdown("**Improvements (positive = better)**")
    render_comparison_table(pd.DataFrame([
        {"Metric": name, "Change %": round(value, 2)} for name, value in result.improvements.items()
    ]))

    if result.parameter_changes:
        st.markdown("**Parameter Changes**")
        st.dataframe(pd.DataFrame([
            {"Parameter": pid, "Before": before, "After": after}
            for pid, (before, after) in result.parameter_changes.items()
        ]), use_container_width=True)

        rationale = st.text_input("Rationale", value="Applied optimizer result", key="opt_rationale")
        if st.button("Apply to Scenario", key="btn_apply_opt"):
            planner.apply_optimization(scenario.scenario_id, result, rationale)
            drop_result(scenario.scenario_id)
            st.session_state.pop("optimization_result", None)
            st.success("Optimized parameters applied.")
            st.rerun()
    else:
        st.info("The optimizer kept the original parameters.")


def render(sidebar_state):
    """Render the Optimization tab."""
    st.header("Optimization")

    if not sidebar_state.scenario_id:
        st.info("No active scenario. Create one in Admin & Governance.")
        return

    planner = get_planner()
    try:
        scenario = planner.get_scenario(sidebar_state.scenario_id)
        _render_sensitivity(planner, scenario)
        st.divider()
        _render_optimizer(planner, scenario)
    except PlanningError as e:
        st.error(e.message)
