"""Tab 5: Admin & Governance — data upload, rule config, scenario management, audit trail."""

import logging
import uuid

import streamlit as st
import pandas as pd

from data.loader import load_file, load_multi_sheet_excel, frames_to_models, build_planner
from data.validator import (
    validate_projects, validate_phases, validate_allocations, validate_history,
    validate_capacity, validate_cross_file,
)
from data.sample_data import build_sample_planner, sample_history_series
from data.session_store import (
    get_planner, set_planner, set_history, set_data_loaded, get_rule_config, set_rule_config,
    set_active_scenario_id, drop_result,
)
from engine.errors import PlanningError
from models.scenario import ScenarioConstraint
from config.defaults import SCENARIO_TYPES, SCENARIO_STATUSES

logger = logging.getLogger(__name__)

VALIDATORS = {
    "projects": validate_projects,
    "phases": validate_phases,
    "allocations": validate_allocations,
    "history": validate_history,
    "capacity": validate_capacity,
}

CONSTRAINT_FIELDS = {
    "resource_limit": ("max_utilization", 1.0),
    "budget_limit": ("max_variance", 0.0),
    "timeline": ("max_delay_days", 14.0),
    "skill_availability": (None, None),
}


def _load_and_validate(frames):
    """Validate uploaded frames and swap in a planner built from them."""
    errors, warnings = [], []
    for category, df in frames.items():
        result = VALIDATORS[category](df)
        errors.extend(result.errors)
        warnings.extend(result.warnings)

    if not errors and "phases" in frames:
        warnings.extend(validate_cross_file(frames["projects"], frames["phases"]).warnings)

    if errors:
        for e in errors:
            st.error(e)
        return False
    for w in warnings:
        st.warning(w)

    projects, allocations, history, capacity = frames_to_models(frames)
    set_planner(build_planner(projects, allocations, capacity, rule_config=get_rule_config()))
    set_history(history)
    set_active_scenario_id("baseline")
    set_data_loaded(True)
    logger.info("Loaded %d projects and %d allocations", len(projects), len(allocations))

    st.success(f"Data loaded: {len(projects)} projects, {len(allocations)} allocations")
    return True


def _render_upload():
    st.subheader("Data Upload")

    upload_mode = st.radio(
        "Upload mode",
        ["Single Excel file", "Separate files"],
        horizontal=True,
        key="upload_mode",
    )

    if upload_mode == "Single Excel file":
        st.caption(
            "Upload one `.xlsx` with sheets **Projects** and **Phases**, and optionally "
            "**Allocations**, **History** and **Capacity** (aliases like 'Pipeline' are accepted)."
        )
        single_file = st.file_uploader("Excel workbook", type=["xlsx"], key="upload_single")
        if st.button("Upload & Validate", type="primary", key="btn_upload_single"):
            if single_file:
                try:
                    _load_and_validate(load_multi_sheet_excel(single_file))
                except ValueError as e:
                    st.error(f"Error loading file: {e}")
            else:
                st.warning("Please upload an Excel file.")
    else:
        cols = st.columns(5)
        uploads = {}
        for col, category in zip(cols, VALIDATORS):
            with col:
                uploads[category] = st.file_uploader(
                    category.title(), type=["csv", "xlsx"], key=f"upload_{category}",
                )
        if st.button("Upload & Validate", type="primary", key="btn_upload_multi"):
            if uploads["projects"] is None:
                st.warning("A projects file is required.")
            else:
                try:
                    frames = {k: load_file(f) for k, f in uploads.items() if f is not None}
                    _load_and_validate(frames)
                except ValueError as e:
                    st.error(f"Error loading files: {e}")

    if st.button("Reset to Sample Data", key="btn_sample"):
        set_planner(build_sample_planner(get_rule_config()))
        set_history(sample_history_series())
        set_active_scenario_id("baseline")
        set_data_loaded(False)
        st.rerun()


def _render_rule_config():
    st.subheader("Rule Configuration")
    config = get_rule_config()

    col1, col2, col3 = st.columns(3)
    with col1:
        daily_rate = st.number_input(
            "Daily rate per FTE", min_value=0.0, value=float(config.get("daily_rate", 500.0)), step=50.0,
        )
        iterations = st.number_input(
            "Monte Carlo iterations", min_value=100, max_value=20000,
            value=int(config.get("monte_carlo_iterations", 1000)), step=100,
        )
    with col2:
        population = st.number_input(
            "GA population size", min_value=4, max_value=200, value=int(config.get("population_size", 20)),
        )
        mutation_rate = st.slider(
            "GA mutation rate", 0.0, 1.0, float(config.get("mutation_rate", 0.1)), step=0.05,
        )
    with col3:
        ttl_hours = st.number_input(
            "Comparison cache TTL (hours)", min_value=0.0,
            value=float(config.get("comparison_ttl_seconds", 86400)) / 3600, step=1.0,
        )
        seed = st.number_input("Random seed", min_value=0, value=int(config.get("random_seed", 42)))
        levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        level = st.selectbox(
            "Logging level", levels, index=levels.index(config.get("logging_level", "INFO")),
        )

    if st.button("Save Rule Configuration"):
        new_config = dict(config)
        new_config.update({
            "daily_rate": daily_rate,
            "monte_carlo_iterations": int(iterations),
            "population_size": int(population),
            "mutation_rate": mutation_rate,
            "comparison_ttl_seconds": ttl_hours * 3600,
            "random_seed": int(seed),
            "logging_level": level,
        })
        planner = get_planner()
        planner.cache.ttl_seconds = new_config["comparison_ttl_seconds"]
        set_rule_config(new_config)
        logging.getLogger().setLevel(level)
        logger.info("Rule configuration updated")
        st.success("Rule configuration saved.")


def _render_scenarios(sidebar_state):
    st.subheader("Scenario Management")
    planner = get_planner()
    scenarios = planner.list_scenarios()

    if scenarios:
        st.dataframe(pd.DataFrame([
            {"ID": s.scenario_id, "Name": s.name, "Type": s.scenario_type, "Status": s.status,
             "Projects": len(s.projects), "Constraints": len(s.constraints),
             "Updated": s.updated_at.strftime("%Y-%m-%d %H:%M"),
             "Last Run": s.last_run_at.strftime("%Y-%m-%d %H:%M") if s.last_run_at else ""}
            for s in scenarios
        ]), use_container_width=True)

    with st.expander("Create Scenario", expanded=False):
        name = st.text_input("Name", key="new_scenario_name")
        scenario_type = st.selectbox("Type", SCENARIO_TYPES, key="new_scenario_type")
        description = st.text_area("Description", key="new_scenario_desc")
        source = planner.get_scenario(sidebar_state.scenario_id) if sidebar_state.scenario_id else None
        copy_projects = st.checkbox(
            "Start from the active scenario's projects", value=source is not None,
            disabled=source is None, key="new_scenario_copy",
        )
        if st.button("Create", key="btn_create_scenario"):
            scenario = planner.create_scenario(
                name,
                description=description,
                scenario_type=scenario_type,
                projects=list(source.projects) if source is not None and copy_projects else [],
            )
            set_active_scenario_id(scenario.scenario_id)
            st.success(f"Created scenario '{scenario.name}'.")
            st.rerun()

    if not sidebar_state.scenario_id:
        return
    active = planner.get_scenario(sidebar_state.scenario_id)

    st.markdown(f"**Active: {active.name}**")
    col1, col2, col3 = st.columns(3)
    with col1:
        dup_name = st.text_input("Copy name", value=f"{active.name} (copy)", key="dup_name")
        if st.button("Duplicate", key="btn_duplicate"):
            copy = planner.duplicate_scenario(active.scenario_id, dup_name)
            set_active_scenario_id(copy.scenario_id)
            st.rerun()
    with col2:
        status = st.selectbox(
            "Status", SCENARIO_STATUSES, index=SCENARIO_STATUSES.index(active.status), key="scenario_status",
        )
        if st.button("Update Status", key="btn_status") and status != active.status:
            planner.update_scenario(active.scenario_id, rationale="Status change", status=status)
            st.rerun()
    with col3:
        rationale = st.text_input("Delete rationale", key="delete_rationale")
        if st.button("Delete Scenario", key="btn_delete"):
            planner.delete_scenario(active.scenario_id, rationale=rationale)
            drop_result(active.scenario_id)
            remaining = planner.list_scenarios()
            set_active_scenario_id(remaining[0].scenario_id if remaining else "")
            st.rerun()

    _render_constraints(planner, active)


def _render_constraints(planner, scenario):
    st.markdown("**Constraints**")
    if scenario.constraints:
        st.dataframe(pd.DataFrame([
            {"ID": c.constraint_id, "Kind": c.kind, "Severity": c.severity, "Parameters": c.parameters}
            for c in scenario.constraints
        ]), use_container_width=True)

    col1, col2, col3 = st.columns(3)
    with col1:
        kind = st.selectbox("Kind", list(CONSTRAINT_FIELDS), key="constraint_kind")
    with col2:
        severity = st.selectbox("Severity", ["warning", "error"], key="constraint_severity")
    field_name, default = CONSTRAINT_FIELDS[kind]
    with col3:
        value = None
        if field_name:
            value = st.number_input(field_name, value=default, key=f"constraint_{field_name}")

    if st.button("Add Constraint", key="btn_add_constraint"):
        constraint = ScenarioConstraint(
            constraint_id=f"{kind}_{uuid.uuid4().hex[:6]}",
            kind=kind,
            parameters={field_name: value} if field_name else {},
            severity=severity,
        )
        planner.update_scenario(
            scenario.scenario_id,
            rationale=f"Added {kind} constraint",
            constraints=list(scenario.constraints) + [constraint],
        )
        drop_result(scenario.scenario_id)
        st.rerun()


def _render_audit(sidebar_state):
    st.subheader("Audit Log")
    if not sidebar_state.scenario_id:
        return
    entries = get_planner().get_scenario_history(sidebar_state.scenario_id)
    if not entries:
        st.info("No changes recorded for this scenario.")
        return
    st.dataframe(pd.DataFrame([
        {"Time": e.timestamp.strftime("%Y-%m-%d %H:%M:%S"), "Action": e.action,
         "Field": e.field_changed, "Old": e.old_value, "New": e.new_value,
         "Allocation": e.allocation_id or "", "Rationale": e.rationale}
        for e in reversed(entries)
    ]), use_container_width=True)


def render(sidebar_state):
    """Render the Admin & Governance tab."""
    st.header("Admin & Governance")

    _render_upload()
    st.divider()
    _render_rule_config()
    st.divider()
    try:
        _render_scenarios(sidebar_state)
    except PlanningError as e:
        st.error(e.message)
    st.divider()
    _render_audit(sidebar_state)
