"""Tab 3: Forecast — project historical or pipeline demand forward."""

import streamlit as st
import pandas as pd

from data.loader import load_file, parse_history
from data.validator import validate_history
from data.session_store import get_planner, get_history, set_history
from engine.errors import PlanningError
from engine.demand_aggregator import aggregate_pipeline_demand, profile_from_project
from engine.forecast_engine import analyze_capacity_trend, export_forecast, forecast_to_frame
from components.charts import forecast_chart
from components.metrics_cards import render_metric_row
from config.defaults import DEFAULT_FORECAST_DAYS


def _pipeline_series(planner, scenario_id) -> pd.DataFrame:
    scenario = planner.get_scenario(scenario_id)
    profiles = [profile_from_project(p, planner.rule_config) for p in scenario.projects]
    return pd.DataFrame(aggregate_pipeline_demand(profiles), columns=["date", "value"])


def _upload_history():
    uploaded = st.file_uploader("Upload history (Date, Value)", type=["csv", "xlsx"], key="history_upload")
    if uploaded is None:
        return
    try:
        df = load_file(uploaded)
    except ValueError as e:
        st.error(str(e))
        return
    result = validate_history(df)
    for w in result.warnings:
        st.warning(w)
    if not result.is_valid:
        for e in result.errors:
            st.error(e)
        return
    set_history(parse_history(df))
    st.success(f"Loaded {len(df)} history rows.")


def render(sidebar_state):
    """Render the Forecast tab."""
    st.header("Demand Forecast")

    planner = get_planner()
    source = st.radio(
        "Series", ["Historical demand", "Active scenario pipeline"], horizontal=True, key="forecast_source",
    )

    if source == "Historical demand":
        _upload_history()
        series = get_history()
    elif sidebar_state.scenario_id:
        try:
            series = _pipeline_series(planner, sidebar_state.scenario_id)
        except PlanningError as e:
            st.error(e.message)
            return
    else:
        series = None

    if series is None or series.empty:
        st.info("No series available to forecast.")
        return

    horizon = st.slider("Forecast horizon (days)", 7, 180, DEFAULT_FORECAST_DAYS, step=7, key="forecast_horizon")

    try:
        result = planner.forecast_capacity(series, horizon)
    except PlanningError as e:
        st.error(e.message)
        return

    trend = analyze_capacity_trend(series, planner.rule_config)
    render_metric_row([
        {"label": "Data Points", "value": result.data_points},
        {"label": "Trend", "value": result.trend_direction.title()},
        {"label": "Confidence", "value": f"{result.confidence:.0%}"},
        {"label": "Seasonality",
         "value": f"{result.seasonal_pattern.period}-day" if result.seasonal_pattern else "None"},
        {"label": "Annual Growth", "value": f"{trend.growth_rate:+.1f}%"},
        {"label": "Volatility", "value": f"{trend.volatility:.0%}"},
    ])

    st.plotly_chart(forecast_chart(series, result), use_container_width=True)

    with st.expander("Forecast table", expanded=False):
        st.dataframe(forecast_to_frame(result), use_container_width=True)

    exported = export_forecast(result)
    st.text(exported["summary"])
    col1, col2 = st.columns(2)
    with col1:
        st.download_button("Download CSV", exported["csv"], file_name="forecast.csv", mime="text/csv")
    with col2:
        st.download_button("Download JSON", exported["json"], file_name="forecast.json", mime="application/json")
