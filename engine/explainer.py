"""Human-readable recommendations for evaluated and compared scenarios."""

from typing import List, Optional, Sequence

from models.allocation import Conflict
from models.demand import DemandForecast
from models.results import (
    ConstraintViolation, CostAnalysis, Recommendation, ScenarioComparison,
    UtilizationMetrics,
)


def generate_recommendations(
    demand: DemandForecast,
    utilization: UtilizationMetrics,
    violations: Sequence[ConstraintViolation],
    cost: CostAnalysis,
    conflicts: Optional[Sequence[Conflict]] = None,
) -> List[Recommendation]:
    """Actionable suggestions derived from one scenario evaluation."""
    recommendations = []

    if utilization.overallocated:
        skills = ", ".join(i.skill for i in utilization.overallocated)
        recommendations.append(Recommendation(
            recommendation_id="resource_rebalancing",
            kind="resource_adjustment",
            description=f"Rebalance resource allocation to resolve overallocation ({skills})",
            impact="high",
            effort="medium",
            expected_benefit="Reduced project risk and improved delivery predictability",
            implementation=[
                "Identify skills with excess capacity",
                "Cross-train team members",
                "Adjust project team compositions",
            ],
        ))

    if cost.budget_variance > 0:
        recommendations.append(Recommendation(
            recommendation_id="budget_optimization",
            kind="budget_reallocation",
            description=(
                f"Projected cost exceeds the budget limit by {cost.budget_variance:.1%}; "
                "optimize budget allocation across projects"
            ),
            impact="medium",
            effort="low",
            expected_benefit="Better ROI and resource utilization",
            implementation=[
                "Prioritize high-value projects",
                "Consider phased delivery",
                "Evaluate project dependencies",
            ],
        ))

    if demand.skill_bottlenecks:
        top = demand.skill_bottlenecks[0]
        recommendations.append(Recommendation(
            recommendation_id="skill_development",
            kind="skill_development",
            description=(
                f"{len(demand.skill_bottlenecks)} skill bottleneck(s); "
                f"{top.skill} peaks at {top.demand_value:.1f} FTE on {top.peak_date}"
            ),
            impact="medium",
            effort="high",
            expected_benefit="Smoother demand curve for constrained skills",
            implementation=[
                f"Upskill adjacent roles into {top.skill}",
                "Stagger phases that compete for the same skill",
                "Line up contractors ahead of the peak",
            ],
        ))

    if utilization.underutilized:
        skills = ", ".join(i.skill for i in utilization.underutilized)
        recommendations.append(Recommendation(
            recommendation_id="capacity_redeployment",
            kind="resource_adjustment",
            description=f"Underutilized skills available for redeployment: {skills}",
            impact="low",
            effort="low",
            expected_benefit="Higher utilization of existing staff",
            implementation=["Offer spare capacity to pipeline projects"],
        ))

    if conflicts:
        employees = sorted({c.employee_id for c in conflicts})
        recommendations.append(Recommendation(
            recommendation_id="resolve_conflicts",
            kind="timeline_change",
            description=f"{len(conflicts)} allocation conflict(s) across {len(employees)} employee(s)",
            impact="high",
            effort="medium",
            expected_benefit="Feasible individual workloads",
            implementation=[
                "Reduce allocation percentages on lower-priority projects",
                "Shift overlapping start dates",
                "Reassign work to employees with free capacity",
            ],
        ))

    errors = [v for v in violations if v.severity == "error"]
    if errors:
        recommendations.append(Recommendation(
            recommendation_id="constraint_review",
            kind="timeline_change",
            description=f"{len(errors)} hard constraint(s) breached; review scope or timelines",
            impact="high",
            effort="high",
            expected_benefit="Scenario that satisfies all hard constraints",
            implementation=sorted({a for v in errors for a in v.suggested_actions}),
        ))

    return recommendations


def comparison_recommendations(
    comparison: ScenarioComparison,
    name_a: Optional[str] = None,
    name_b: Optional[str] = None,
) -> List[str]:
    """One line per headline metric naming the better scenario."""
    labels = {
        "a": name_a or comparison.scenario_a_id,
        "b": name_b or comparison.scenario_b_id,
    }
    lines = []

    cost = comparison.metric("total_cost")
    if cost is not None:
        winner = cost.better or "a"
        lines.append(f"Consider Scenario {labels[winner]} for lowest cost impact")

    success = comparison.metric("success_probability")
    if success is not None:
        winner = success.better or "a"
        lines.append(f"Scenario {labels[winner]} offers highest success probability")

    overallocated = comparison.metric("overallocation_days")
    if overallocated is not None and overallocated.better is not None:
        lines.append(f"Scenario {labels[overallocated.better]} has fewer over-allocated skill days")

    return lines
