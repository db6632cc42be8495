"""Styled dataframe display helpers and result-to-table conversions."""

import streamlit as st
import pandas as pd
from typing import List

from models.allocation import Conflict, ScenarioAllocation
from models.results import ScenarioComparison, ScenarioResult

SEVERITY_STYLES = {
    "high": "background-color: #ffcccc; color: #cc0000; font-weight: bold",
    "critical": "background-color: #ffcccc; color: #cc0000; font-weight: bold",
    "error": "background-color: #ffcccc; color: #cc0000; font-weight: bold",
    "medium": "background-color: #fff3cd; color: #856404; font-weight: bold",
    "warning": "background-color: #fff3cd; color: #856404; font-weight: bold",
    "low": "background-color: #d4edda; color: #155724; font-weight: bold",
}


def render_severity_table(df: pd.DataFrame, severity_column: str = "Severity"):
    """Render a table with color-coded severity levels."""
    if severity_column in df.columns and not df.empty:
        styled = df.style.map(lambda val: SEVERITY_STYLES.get(val, ""), subset=[severity_column])
        st.dataframe(styled, use_container_width=True)
    else:
        st.dataframe(df, use_container_width=True)


def render_comparison_table(df: pd.DataFrame, change_column: str = "Change %"):
    """Render a comparison table with positive/negative highlighting."""
    def color_change(val):
        try:
            v = float(val)
            if v > 0:
                return "color: #155724; font-weight: bold"
            elif v < 0:
                return "color: #cc0000; font-weight: bold"
        except (ValueError, TypeError):
            pass
        return ""

    if change_column in df.columns:
        styled = df.style.map(color_change, subset=[change_column])
        st.dataframe(styled, use_container_width=True)
    else:
        st.dataframe(df, use_container_width=True)


def conflicts_df(conflicts: List[Conflict]) -> pd.DataFrame:
    return pd.DataFrame([
        {
            "Employee": c.employee_id,
            "Projects": " / ".join(c.project_ids),
            "From": c.window.start,
            "To": c.window.end if c.window.end else "ongoing",
            "Total %": c.total_pct,
            "Over %": c.over_allocation_pct,
            "Severity": c.severity,
        }
        for c in conflicts
    ])


def allocations_df(allocations: List[ScenarioAllocation]) -> pd.DataFrame:
    return pd.DataFrame([
        {
            "ID": a.allocation_id,
            "Employee": a.employee_id,
            "Project": a.project_id,
            "Type": a.allocation_type,
            "Start": a.start_date,
            "End": a.end_date,
            "Allocation %": a.allocation_pct,
            "Confidence": a.confidence_level,
        }
        for a in allocations
    ])


def violations_df(result: ScenarioResult) -> pd.DataFrame:
    return pd.DataFrame([
        {
            "Constraint": v.constraint_id,
            "Severity": v.severity,
            "Description": v.description,
            "Projects": ", ".join(v.impacted_projects),
            "Suggested Actions": "; ".join(v.suggested_actions),
        }
        for v in result.violations
    ])


def risk_factors_df(result: ScenarioResult) -> pd.DataFrame:
    return pd.DataFrame([
        {
            "Category": f.category,
            "Description": f.description,
            "Probability": round(f.probability, 2),
            "Impact": f.impact,
            "Score": round(f.probability * f.impact, 2),
        }
        for f in result.risk.risk_factors
    ])


def comparison_df(comparison: ScenarioComparison, name_a: str, name_b: str) -> pd.DataFrame:
    winners = {"a": name_a, "b": name_b, None: "tie"}
    return pd.DataFrame([
        {
            "Category": m.category,
            "Metric": m.name,
            name_a: round(m.value_a, 2),
            name_b: round(m.value_b, 2),
            "Difference": round(m.difference, 2),
            "Change %": round(m.percentage_change, 1),
            "Better": winners[m.better],
        }
        for m in comparison.metrics
    ])
