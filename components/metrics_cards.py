"""Reusable KPI metric card widgets."""

import streamlit as st

from models.results import ScenarioResult


def render_metric_row(metrics: list[dict]):
    """Render a row of metric cards.

    Each metric dict should have: label, value, and optionally delta, delta_color.
    """
    cols = st.columns(len(metrics))
    for col, m in zip(cols, metrics):
        with col:
            st.metric(
                label=m["label"],
                value=m["value"],
                delta=m.get("delta"),
                delta_color=m.get("delta_color", "normal"),
            )


def render_result_kpis(result: ScenarioResult):
    """Headline numbers for one evaluated scenario."""
    counts = result.violation_counts()
    render_metric_row([
        {"label": "Projected Cost", "value": f"${result.total_cost:,.0f}",
         "delta": f"{result.cost.budget_variance:+,.0f} vs budget", "delta_color": "inverse"},
        {"label": "Peak Utilization", "value": f"{result.utilization.peak:.0%}"},
        {"label": "Avg Delay", "value": f"{result.average_delay:.1f} d"},
        {"label": "Success Probability", "value": f"{result.success_probability:.0%}"},
        {"label": "Overall Risk", "value": result.risk.overall_risk.title()},
        {"label": "Violations", "value": counts["error"] + counts["warning"],
         "delta": f"{counts['error']} errors", "delta_color": "off"},
    ])


def render_alert_card(message: str, level: str = "warning"):
    """Render an alert card with appropriate styling."""
    if level == "error":
        st.error(message, icon="🔴")
    elif level == "warning":
        st.warning(message, icon="🟡")
    else:
        st.info(message, icon="🔵")
