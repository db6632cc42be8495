"""Plotly chart builders for the capacity planning app."""

import plotly.express as px
import plotly.graph_objects as go
import pandas as pd
from typing import Dict, List, Optional, Sequence, Tuple

from engine.optimizer import SensitivityResult
from models.demand import DemandForecast
from models.forecast import ForecastResult
from models.results import ScenarioComparison, SkillGap, UtilizationMetrics


def demand_curve_chart(
    demand: DemandForecast,
    capacity: Optional[Dict[str, float]] = None,
    title: str = "Daily Demand by Skill (FTE)",
) -> go.Figure:
    """Stacked skill demand with the total capacity line on top."""
    days = [c.day for c in demand.curves]
    fig = go.Figure()
    for skill in demand.skills:
        fig.add_trace(go.Scatter(
            x=days, y=demand.skill_series(skill),
            name=skill, stackgroup="demand", mode="lines", line_width=0.5,
        ))
    if capacity:
        fig.add_trace(go.Scatter(
            x=days, y=[sum(capacity.values())] * len(days),
            name="Capacity", mode="lines", line=dict(color="#333333", dash="dash"),
        ))
    if demand.peak_demand.day is not None:
        fig.add_annotation(
            x=demand.peak_demand.day, y=demand.peak_demand.value,
            text=f"Peak {demand.peak_demand.value:.1f}", showarrow=True,
        )
    fig.update_layout(title=title, height=420, xaxis_title="Date", yaxis_title="FTE")
    return fig


def utilization_chart(
    utilization: UtilizationMetrics,
    days: Sequence,
    title: str = "Overall Utilization",
) -> go.Figure:
    """Overall utilization over time with the 100% line marked."""
    df = pd.DataFrame({"Date": list(days), "Utilization": utilization.overall})
    fig = px.line(df, x="Date", y="Utilization", title=title)
    fig.add_hline(y=1.0, line_dash="dash", line_color="#E8734A", annotation_text="100%")
    peaks = pd.DataFrame([
        {"Date": p.day, "Utilization": p.utilization, "Severity": p.severity}
        for p in utilization.peaks
    ])
    if not peaks.empty:
        fig.add_trace(go.Scatter(
            x=peaks["Date"], y=peaks["Utilization"], mode="markers", name="Peaks",
            marker=dict(color="#cc0000", size=6), text=peaks["Severity"],
        ))
    fig.update_layout(height=350, yaxis_tickformat=".0%")
    return fig


def forecast_chart(
    history: pd.DataFrame,
    result: ForecastResult,
    title: str = "Demand Forecast",
) -> go.Figure:
    """History plus forecast with a band that widens as confidence decays."""
    pred = pd.DataFrame([
        {"date": p.day, "predicted": p.predicted, "confidence": p.confidence}
        for p in result.predictions
    ])
    spread = result.residual_std * (2 - pred["confidence"])
    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=history["date"], y=history["value"], name="History",
        mode="lines", line=dict(color="#4A90D9"),
    ))
    fig.add_trace(go.Scatter(
        x=pd.concat([pred["date"], pred["date"][::-1]]),
        y=pd.concat([pred["predicted"] + spread, (pred["predicted"] - spread).clip(lower=0)[::-1]]),
        fill="toself", fillcolor="rgba(232,115,74,0.2)", line=dict(width=0),
        name="Uncertainty", hoverinfo="skip",
    ))
    fig.add_trace(go.Scatter(
        x=pred["date"], y=pred["predicted"], name="Forecast",
        mode="lines", line=dict(color="#E8734A", dash="dash"),
    ))
    fig.update_layout(title=title, height=420, xaxis_title="Date", yaxis_title="Demand")
    return fig


def skill_gap_bar(gaps: List[SkillGap], title: str = "Skill Gaps (peak demand vs capacity)") -> go.Figure:
    df = pd.DataFrame([
        {"Skill": g.skill, "Peak Demand": g.peak_demand, "Capacity": g.capacity}
        for g in gaps
    ])
    fig = px.bar(
        df, x="Skill", y=["Peak Demand", "Capacity"], barmode="group", title=title,
        labels={"value": "FTE", "variable": ""},
        color_discrete_map={"Peak Demand": "#E8734A", "Capacity": "#4A90D9"},
    )
    fig.update_layout(legend_title_text="", height=380)
    return fig


def convergence_chart(history: List[Tuple[int, float, float]]) -> go.Figure:
    """Best and average fitness per generation."""
    df = pd.DataFrame(history, columns=["Generation", "Best", "Average"])
    fig = px.line(
        df, x="Generation", y=["Best", "Average"], title="Optimizer Convergence",
        labels={"value": "Fitness", "variable": ""},
        color_discrete_map={"Best": "#155724", "Average": "#4A90D9"},
    )
    fig.update_layout(height=350)
    return fig


def sensitivity_chart(results: List[SensitivityResult]) -> go.Figure:
    """Cost change per variation, one line per parameter."""
    rows = [
        {"Parameter": r.parameter_id, "Variation": f"{pt.variation:+.0%}", "Cost Change": pt.metric_change}
        for r in results for pt in r.points
    ]
    fig = px.line(
        pd.DataFrame(rows), x="Variation", y="Cost Change", color="Parameter", markers=True,
        title="Sensitivity of Projected Cost",
    )
    fig.update_layout(height=380, yaxis_tickformat=".1%")
    return fig


def scenario_comparison_bar(comparison: ScenarioComparison, name_a: str, name_b: str) -> go.Figure:
    """Grouped bars of the comparison metrics, normalized to scenario A."""
    names, a_vals, b_vals = [], [], []
    for m in comparison.metrics:
        if m.value_a == 0:
            continue
        names.append(m.name)
        a_vals.append(1.0)
        b_vals.append(m.value_b / m.value_a)

    fig = go.Figure()
    fig.add_trace(go.Bar(name=name_a, x=names, y=a_vals, marker_color="#4A90D9"))
    fig.add_trace(go.Bar(name=name_b, x=names, y=b_vals, marker_color="#E8734A"))
    fig.update_layout(
        barmode="group",
        title=f"{name_b} relative to {name_a}",
        yaxis_title="Ratio",
        height=400,
    )
    return fig
