"""Typed wrapper around st.session_state for application data."""

import streamlit as st
from typing import Dict, Optional

import pandas as pd

from config.defaults import (
    COMPARISON_TTL_SECONDS, DAILY_RATE, DEFAULT_HORIZON_DAYS, DEFAULT_PLANNING_HORIZON,
    LOGGING_LEVEL, MAX_WORKERS, MONTE_CARLO_ITERATIONS, MUTATION_RATE, POPULATION_SIZE,
)
from data.sample_data import build_sample_planner, sample_history_series
from engine.planner import ScenarioPlanner
from models.results import ScenarioResult


def default_rule_config() -> dict:
    return {
        "logging_level": LOGGING_LEVEL,
        "daily_rate": DAILY_RATE,
        "monte_carlo_iterations": MONTE_CARLO_ITERATIONS,
        "population_size": POPULATION_SIZE,
        "mutation_rate": MUTATION_RATE,
        "comparison_ttl_seconds": COMPARISON_TTL_SECONDS,
        "max_workers": MAX_WORKERS,
        "random_seed": 42,
    }


def initialize_session_state():
    """Initialize all session state keys with defaults."""
    defaults = {
        "rule_config": default_rule_config(),
        "history": None,
        "results": {},
        "active_scenario_id": "baseline",
        "data_loaded": False,
        "sidebar_state": {
            "scenario_id": "baseline",
            "planning_horizon": DEFAULT_PLANNING_HORIZON,
            "horizon_days": DEFAULT_HORIZON_DAYS,
            "mode": "View",
        },
    }
    for key, default in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = default

    if "planner" not in st.session_state:
        st.session_state["planner"] = build_sample_planner(st.session_state["rule_config"])
        st.session_state["history"] = sample_history_series()


# --- Getters ---

def get_planner() -> ScenarioPlanner:
    return st.session_state["planner"]


def get_history() -> Optional[pd.DataFrame]:
    return st.session_state.get("history")


def get_active_scenario_id() -> str:
    return st.session_state.get("active_scenario_id", "baseline")


def get_rule_config() -> dict:
    return st.session_state.get("rule_config", {})


def get_results() -> Dict[str, ScenarioResult]:
    return st.session_state.get("results", {})


def get_result(scenario_id: str) -> Optional[ScenarioResult]:
    return get_results().get(scenario_id)


def is_data_loaded() -> bool:
    return st.session_state.get("data_loaded", False)


# --- Setters ---

def set_planner(planner: ScenarioPlanner):
    st.session_state["planner"] = planner
    st.session_state["results"] = {}


def set_history(history: Optional[pd.DataFrame]):
    st.session_state["history"] = history


def set_data_loaded(loaded: bool):
    st.session_state["data_loaded"] = loaded


def set_active_scenario_id(scenario_id: str):
    st.session_state["active_scenario_id"] = scenario_id
    st.session_state["sidebar_state"]["scenario_id"] = scenario_id


def set_rule_config(config: dict):
    """Replace the rule config; the planner reads it live, cached comparisons are dropped."""
    st.session_state["rule_config"] = config
    planner = get_planner()
    planner.rule_config.clear()
    planner.rule_config.update(config)
    planner.cache.clear()
    st.session_state["results"] = {}


def store_result(result: ScenarioResult):
    st.session_state["results"][result.scenario_id] = result


def drop_result(scenario_id: str):
    st.session_state["results"].pop(scenario_id, None)
