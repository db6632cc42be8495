"""Scenario evaluation: apply parameters, aggregate demand, score utilization,
cost, timeline and risk."""

import logging
from dataclasses import replace
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from models.demand import DemandForecast, ProjectPhase
from models.forecast import ForecastResult
from models.scenario import ParameterKind, Scenario, ScenarioConstraint, ScenarioProject
from models.results import (
    ComparisonMetric, ConstraintViolation, CostAnalysis, Milestone, ProjectTimeline,
    ScenarioComparison, ScenarioResult, SkillGap, SkillUtilizationIssue,
    TimelineAnalysis, UtilizationMetrics, UtilizationPeak,
)
from engine.conflict_detector import find_conflicts
from engine.demand_aggregator import aggregate_demand, aggregate_pipeline_demand, profile_from_project
from engine.errors import InsufficientDataError, ScenarioValidationError
from engine.explainer import comparison_recommendations, generate_recommendations
from engine.forecast_engine import SeriesInput, forecast
from engine.risk import assess_risk
from config.defaults import (
    DAILY_RATE, DEFAULT_BASELINE_CAPACITY, DEFAULT_HORIZON_DAYS, DEFAULT_HOURLY_RATE,
    HOURS_PER_DAY, MAX_SIMULATED_DELAY_DAYS, PEAK_UTILIZATION_THRESHOLD,
    OVERALLOCATION_THRESHOLD, CRITICAL_UTILIZATION_THRESHOLD,
    UNDERUTILIZATION_THRESHOLD, RISK_BUFFER_PCT,
)

logger = logging.getLogger(__name__)

RESOURCE_ACTIONS = [
    "Hire additional resources",
    "Extend project timelines",
    "Redistribute workload",
]
RISK_RANK = {"low": 0, "medium": 1, "high": 2, "critical": 3}


def _buffer_phases(phases: Sequence[ProjectPhase], buffer: float) -> Tuple[List[ProjectPhase], int]:
    """Stretch each phase by ``buffer`` and push later phases back to match."""
    shift = 0
    stretched = []
    for phase in sorted(phases, key=lambda p: p.start_date):
        extra = int(round(phase.duration_days * buffer))
        stretched.append(replace(
            phase,
            start_date=phase.start_date + timedelta(days=shift),
            end_date=phase.end_date + timedelta(days=shift + extra),
        ))
        shift += extra
    return stretched, shift


def apply_parameters(
    scenario: Scenario,
    rule_config: Optional[dict] = None,
) -> List[ScenarioProject]:
    """Project list with the scenario's parameter values applied.

    Team sizes are scaled by the multiplier, phases stretched by the
    timeline buffer, and per-project probabilities overwritten. Every
    project is kept; see ``included_projects`` for the demand gate.
    Inputs are never mutated.
    """
    cfg = rule_config or {}
    multiplier = float(scenario.parameter_value(ParameterKind.TEAM_SIZE_MULTIPLIER, 1.0))
    buffer = float(scenario.parameter_value(ParameterKind.TIMELINE_BUFFER, 0.0))
    if multiplier < 0 or buffer < 0:
        raise ScenarioValidationError(
            "Team size multiplier and timeline buffer must be non-negative",
            {"team_size_multiplier": multiplier, "timeline_buffer": buffer},
        )
    probabilities = {
        pid: float(p.value) for pid, p in scenario.project_probability_parameters().items()
    }

    adjusted = []
    for project in scenario.projects:
        probability = probabilities.get(project.project_id, project.probability)
        if not 0 <= probability <= 1:
            raise ScenarioValidationError(
                f"Probability for project {project.project_id} must be within 0-1",
                {"project_id": project.project_id, "probability": probability},
            )
        phases = list(profile_from_project(project, cfg).phases)
        phases = [replace(ph, team_size=ph.team_size * multiplier) for ph in phases]
        phases, shift = _buffer_phases(phases, buffer)
        adjusted.append(replace(
            project,
            phases=phases,
            team_size=project.team_size * multiplier,
            probability=probability,
            end_date=project.end_date + timedelta(days=shift),
        ))
    return adjusted


def included_projects(
    projects: Sequence[ScenarioProject],
    rule_config: Optional[dict] = None,
) -> List[ScenarioProject]:
    """Projects whose probability exceeds the inclusion threshold.

    Only these contribute demand, cost and timeline; the Monte Carlo run
    still sees every project.
    """
    threshold = (rule_config or {}).get("inclusion_threshold", 0.0)
    kept = []
    for project in projects:
        if project.probability <= threshold:
            logger.debug("Excluding project %s (probability %.2f)", project.project_id, project.probability)
            continue
        kept.append(project)
    return kept


def effective_capacity(
    scenario: Scenario,
    baseline_capacity: Optional[Dict[str, float]] = None,
    rule_config: Optional[dict] = None,
) -> Dict[str, float]:
    """Baseline FTE per skill scaled by the skill-availability parameter."""
    cfg = rule_config or {}
    base = baseline_capacity or cfg.get("baseline_capacity", DEFAULT_BASELINE_CAPACITY)
    availability = float(scenario.parameter_value(ParameterKind.SKILL_AVAILABILITY, 1.0))
    return {skill: fte * availability for skill, fte in base.items()}


def calculate_utilization(
    demand: DemandForecast,
    capacity: Dict[str, float],
    extra_load: Optional[Sequence[float]] = None,
    rule_config: Optional[dict] = None,
) -> UtilizationMetrics:
    """Demand over capacity per day, overall and by skill, with issue detection.

    Zero capacity yields zero utilization rather than a division error.
    """
    cfg = rule_config or {}
    peak_threshold = cfg.get("peak_utilization_threshold", PEAK_UTILIZATION_THRESHOLD)
    over_threshold = cfg.get("overallocation_threshold", OVERALLOCATION_THRESHOLD)
    critical_threshold = cfg.get("critical_utilization_threshold", CRITICAL_UTILIZATION_THRESHOLD)
    under_threshold = cfg.get("underutilization_threshold", UNDERUTILIZATION_THRESHOLD)

    total_capacity = sum(capacity.values())
    load = np.array(demand.total_demand, dtype=float)
    if extra_load is not None:
        load = load + np.asarray(extra_load, dtype=float)[: len(load)]
    overall = load / total_capacity if total_capacity > 0 else np.zeros_like(load)

    by_skill = {}
    for skill in demand.skills:
        skill_cap = capacity.get(skill, 0.0)
        series = np.array(demand.skill_series(skill), dtype=float)
        by_skill[skill] = (series / skill_cap if skill_cap > 0 else np.zeros_like(series)).tolist()

    metrics = UtilizationMetrics(overall=overall.tolist(), by_skill=by_skill)

    for curve, util in zip(demand.curves, metrics.overall):
        if util > peak_threshold:
            if util > critical_threshold:
                severity = "high"
            elif util > over_threshold:
                severity = "medium"
            else:
                severity = "low"
            metrics.peaks.append(UtilizationPeak(day=curve.day, utilization=util, severity=severity))

    for skill, series in by_skill.items():
        values = np.array(series)
        if values.size == 0:
            continue
        average = float(values.mean())
        if average < under_threshold:
            metrics.underutilized.append(SkillUtilizationIssue(
                skill=skill,
                percentage=(1 - average) * 100,
                days=int((values < under_threshold).sum()),
            ))
        over = values[values > over_threshold]
        if over.size:
            metrics.overallocated.append(SkillUtilizationIssue(
                skill=skill,
                percentage=float((over - over_threshold).mean()) * 100,
                days=int(over.size),
            ))
    return metrics


def _working_days(start: date, end: date) -> int:
    if end < start:
        return 0
    return int(np.busday_count(start, end + timedelta(days=1)))


def allocation_cost(
    allocations: Sequence,
    horizon_end: date,
    rule_config: Optional[dict] = None,
) -> float:
    """Cost of scenario allocations from estimated hours or working days x percentage."""
    cfg = rule_config or {}
    default_rate = cfg.get("default_hourly_rate", DEFAULT_HOURLY_RATE)
    hours_per_day = cfg.get("hours_per_day", HOURS_PER_DAY)

    total = 0.0
    for a in allocations:
        if getattr(a, "is_deleted", False):
            continue
        hours = getattr(a, "estimated_hours", None)
        if hours is None:
            end = a.end_date or horizon_end
            hours = _working_days(a.start_date, end) * hours_per_day * a.allocation_pct / 100
        rate = a.hourly_rate if a.hourly_rate is not None else default_rate
        total += hours * rate
    return total


def analyze_costs(
    scenario: Scenario,
    projects: Sequence[ScenarioProject],
    demand: DemandForecast,
    allocations: Optional[Sequence] = None,
    rule_config: Optional[dict] = None,
) -> CostAnalysis:
    """Daily demand priced at the person-day rate, against the budget limit."""
    cfg = rule_config or {}
    rate = cfg.get("daily_rate", DAILY_RATE)
    buffer_pct = cfg.get("risk_buffer_pct", RISK_BUFFER_PCT)

    total_budget = sum(p.budget for p in projects)
    budget_fraction = float(scenario.parameter_value(ParameterKind.BUDGET_CONSTRAINT, 1.0))
    budget_limit = total_budget * budget_fraction

    projected = [d * rate for d in demand.total_demand]
    total = sum(projected)
    variance = (total - budget_limit) / budget_limit if budget_limit > 0 else 0.0

    horizon_start = demand.curves[0].day if demand.curves else scenario.base_date
    horizon_end = demand.curves[-1].day if demand.curves else scenario.base_date
    cost_by_project = {}
    for project in projects:
        person_days = 0.0
        for phase in project.phases:
            lo = max(phase.start_date, horizon_start)
            hi = min(phase.end_date, horizon_end)
            if hi >= lo:
                person_days += phase.daily_demand * ((hi - lo).days + 1)
        cost_by_project[project.project_id] = person_days * rate

    cost_by_skill = {
        skill: sum(demand.skill_series(skill)) * rate for skill in demand.skills
    }

    return CostAnalysis(
        total_budget=total_budget,
        budget_limit=budget_limit,
        projected_cost=projected,
        budget_variance=variance,
        cost_by_project=cost_by_project,
        cost_by_skill=cost_by_skill,
        allocation_cost=allocation_cost(allocations or [], horizon_end, cfg),
        risk_buffer=total_budget * buffer_pct,
    )


def analyze_timeline(
    original: Sequence[ScenarioProject],
    projects: Sequence[ScenarioProject],
    utilization_by_phase: Optional[Dict[str, float]] = None,
    rng: Optional[np.random.Generator] = None,
    rule_config: Optional[dict] = None,
) -> TimelineAnalysis:
    """Estimated start/end per project with a simulated delay, plus phase milestones.

    The delay is uniform over the configured maximum, scaled by the chance
    the project does not proceed, plus any timeline-buffer extension.
    """
    cfg = rule_config or {}
    max_delay = cfg.get("max_simulated_delay_days", MAX_SIMULATED_DELAY_DAYS)
    rng = rng if rng is not None else np.random.default_rng()
    planned = {p.project_id: p for p in original}

    timelines = []
    milestones = []
    for project in projects:
        base = planned.get(project.project_id, project)
        extension = (project.end_date - base.end_date).days
        delay = float(rng.uniform(0, max_delay)) * (1 - project.probability) + extension
        start_shift = timedelta(days=delay - extension)
        timelines.append(ProjectTimeline(
            project_id=project.project_id,
            planned_start=base.start_date,
            planned_end=base.end_date,
            estimated_start=base.start_date + start_shift,
            estimated_end=base.end_date + timedelta(days=delay),
            delay_days=delay,
            critical_path=project.priority == "critical",
        ))
        for index, phase in enumerate(project.phases):
            util = phase.utilization_rate
            if util > 0.8:
                risk = "high"
            elif util > 0.5:
                risk = "medium"
            else:
                risk = "low"
            milestones.append(Milestone(
                milestone_id=f"{project.project_id}-phase-{index}",
                name=f"{project.name} - {phase.name}",
                day=phase.end_date,
                dependencies=list(project.dependencies),
                risk=risk,
            ))
    milestones.sort(key=lambda m: m.day)
    return TimelineAnalysis(project_timelines=timelines, milestones=milestones)


def _projects_using_skill(projects: Sequence[ScenarioProject], skill: str) -> List[str]:
    return [p.project_id for p in projects if any(skill in ph.skills for ph in p.phases)]


def check_constraints(
    constraints: Sequence[ScenarioConstraint],
    projects: Sequence[ScenarioProject],
    demand: DemandForecast,
    utilization: UtilizationMetrics,
    cost: CostAnalysis,
    timeline: TimelineAnalysis,
    capacity: Dict[str, float],
    rule_config: Optional[dict] = None,
) -> List[ConstraintViolation]:
    """Evaluate declared constraints; breaches are returned, never raised."""
    cfg = rule_config or {}
    critical = cfg.get("critical_utilization_threshold", CRITICAL_UTILIZATION_THRESHOLD)
    rate = cfg.get("daily_rate", DAILY_RATE)
    violations = []

    for constraint in constraints:
        params = constraint.parameters
        if constraint.kind == "resource_limit":
            limit = params.get("max_utilization", 1.0)
            skills = params.get("skills") or list(utilization.by_skill)
            for skill in skills:
                series = utilization.by_skill.get(skill)
                if not series:
                    continue
                peak = max(series)
                if peak <= limit:
                    continue
                excess_fte = sum(max(0.0, u - limit) for u in series) * capacity.get(skill, 0.0)
                violations.append(ConstraintViolation(
                    constraint_id=constraint.constraint_id,
                    severity="error" if peak > critical else "warning",
                    description=f"{skill} overallocated by {(peak - 1) * 100:.1f}%",
                    impacted_projects=_projects_using_skill(projects, skill),
                    suggested_actions=list(RESOURCE_ACTIONS),
                    estimated_cost=excess_fte * rate,
                ))

        elif constraint.kind == "budget_limit":
            allowed = params.get("max_variance", 0.0)
            if cost.budget_limit > 0 and cost.budget_variance > allowed:
                violations.append(ConstraintViolation(
                    constraint_id=constraint.constraint_id,
                    severity=constraint.severity,
                    description=(
                        f"Projected cost {cost.total_projected_cost:,.0f} exceeds budget limit "
                        f"{cost.budget_limit:,.0f} by {cost.budget_variance:.1%}"
                    ),
                    impacted_projects=sorted(
                        cost.cost_by_project, key=cost.cost_by_project.get, reverse=True,
                    ),
                    suggested_actions=[
                        "Reduce team sizes",
                        "Defer lower-priority projects",
                        "Increase budget allocation",
                    ],
                    estimated_cost=cost.total_projected_cost - cost.budget_limit,
                ))

        elif constraint.kind == "timeline":
            max_delay = params.get("max_delay_days", 14)
            deadline = params.get("deadline")
            if isinstance(deadline, str):
                deadline = date.fromisoformat(deadline)
            late = [
                t for t in timeline.project_timelines
                if t.delay_days > max_delay or (deadline is not None and t.estimated_end > deadline)
            ]
            if late:
                worst = max(t.delay_days for t in late)
                violations.append(ConstraintViolation(
                    constraint_id=constraint.constraint_id,
                    severity=constraint.severity,
                    description=f"{len(late)} project(s) miss the timeline; worst delay {worst:.0f} days",
                    impacted_projects=[t.project_id for t in late],
                    suggested_actions=[
                        "Add timeline buffer",
                        "Increase team size on late projects",
                        "Re-sequence dependent projects",
                    ],
                ))

        elif constraint.kind == "skill_availability":
            skills = params.get("skills") or demand.skills
            for skill in skills:
                series = demand.skill_series(skill)
                peak = max(series, default=0.0)
                if peak <= 0:
                    continue
                available = capacity.get(skill, 0.0)
                if available <= 0:
                    severity, text = "error", f"No capacity available for required skill {skill}"
                elif peak > available:
                    severity = constraint.severity
                    text = f"{skill} peak demand {peak:.1f} FTE exceeds available {available:.1f} FTE"
                else:
                    continue
                violations.append(ConstraintViolation(
                    constraint_id=constraint.constraint_id,
                    severity=severity,
                    description=text,
                    impacted_projects=_projects_using_skill(projects, skill),
                    suggested_actions=[
                        f"Train or hire {skill} staff",
                        "Engage contractors for the peak period",
                        "Stagger phases needing this skill",
                    ],
                ))

        else:
            logger.warning("Unknown constraint kind %r on %s", constraint.kind, constraint.constraint_id)

    return violations


def _baseline_load(
    baseline_series: SeriesInput,
    demand: DemandForecast,
    horizon_days: int,
    rule_config: Optional[dict],
) -> Tuple[Optional[ForecastResult], Optional[List[float]]]:
    result = forecast(baseline_series, horizon_days, rule_config)
    by_day = {p.day: p.predicted for p in result.predictions}
    return result, [by_day.get(c.day, 0.0) for c in demand.curves]


def evaluate_scenario(
    scenario: Scenario,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    allocations: Optional[Sequence] = None,
    baseline_capacity: Optional[Dict[str, float]] = None,
    baseline_series: Optional[SeriesInput] = None,
    rule_config: Optional[dict] = None,
    rng: Optional[np.random.Generator] = None,
) -> ScenarioResult:
    """Run a full scenario evaluation.

    ``baseline_series`` is an optional history of non-project load; when
    given it is forecast over the horizon and added to overall utilization.
    Without it the project pipeline itself is forecast for reference.
    Sparse input degrades the forecast to None instead of failing.
    """
    cfg = rule_config or {}
    if horizon_days <= 0:
        raise ScenarioValidationError(
            "Evaluation horizon must be at least one day", {"horizon_days": horizon_days},
        )
    if rng is None:
        rng = np.random.default_rng(cfg.get("random_seed"))

    adjusted = apply_parameters(scenario, cfg)
    projects = included_projects(adjusted, cfg)
    profiles = [profile_from_project(p, cfg) for p in projects]
    capacity = effective_capacity(scenario, baseline_capacity, cfg)
    demand = aggregate_demand(profiles, scenario.base_date, horizon_days, capacity, cfg)

    demand_forecast = None
    extra_load = None
    try:
        if baseline_series is not None:
            demand_forecast, extra_load = _baseline_load(baseline_series, demand, horizon_days, cfg)
        else:
            pipeline = aggregate_pipeline_demand(profiles)
            demand_forecast = forecast(pipeline, horizon_days, cfg)
    except InsufficientDataError as exc:
        logger.warning("Demand forecast skipped for %s: %s", scenario.scenario_id, exc.message)

    utilization = calculate_utilization(demand, capacity, extra_load, cfg)
    cost = analyze_costs(scenario, projects, demand, allocations, cfg)
    timeline = analyze_timeline(scenario.projects, projects, rng=rng, rule_config=cfg)
    violations = check_constraints(
        scenario.constraints, projects, demand, utilization, cost, timeline, capacity, cfg,
    )
    risk = assess_risk(adjusted, scenario.base_date, utilization, rng, cfg)
    conflicts = find_conflicts(allocations, cfg) if allocations else []
    recommendations = generate_recommendations(demand, utilization, violations, cost, conflicts)

    result = ScenarioResult(
        scenario_id=scenario.scenario_id,
        demand=demand,
        utilization=utilization,
        violations=violations,
        recommendations=recommendations,
        risk=risk,
        cost=cost,
        timeline=timeline,
        demand_forecast=demand_forecast,
        conflicts=conflicts,
        capacity=capacity,
    )
    counts = result.violation_counts()
    logger.info(
        "Evaluated scenario %s: %d projects, cost %.0f, success %.2f, %d errors, %d warnings",
        scenario.scenario_id, len(projects), result.total_cost,
        result.success_probability, counts["error"], counts["warning"],
    )
    return result


def compare_scenarios(
    result_a: ScenarioResult,
    result_b: ScenarioResult,
    name_a: Optional[str] = None,
    name_b: Optional[str] = None,
) -> ScenarioComparison:
    """Side-by-side metrics for two evaluated scenarios."""
    def overallocated_days(r: ScenarioResult) -> float:
        return float(sum(i.days for i in r.utilization.overallocated))

    metrics = [
        ComparisonMetric("cost", "total_cost", result_a.total_cost, result_b.total_cost),
        ComparisonMetric("cost", "budget_variance",
                         result_a.cost.budget_variance, result_b.cost.budget_variance),
        ComparisonMetric("timeline", "average_delay", result_a.average_delay, result_b.average_delay),
        ComparisonMetric("timeline", "critical_path_projects",
                         result_a.timeline.critical_path_count, result_b.timeline.critical_path_count),
        ComparisonMetric("risk", "success_probability",
                         result_a.success_probability, result_b.success_probability,
                         lower_is_better=False),
        ComparisonMetric("risk", "overall_risk",
                         RISK_RANK[result_a.risk.overall_risk], RISK_RANK[result_b.risk.overall_risk]),
        ComparisonMetric("utilization", "average_utilization",
                         result_a.utilization.average, result_b.utilization.average,
                         lower_is_better=False),
        ComparisonMetric("utilization", "peak_utilization",
                         result_a.utilization.peak, result_b.utilization.peak),
        ComparisonMetric("utilization", "overallocation_days",
                         overallocated_days(result_a), overallocated_days(result_b)),
    ]
    comparison = ScenarioComparison(
        scenario_a_id=result_a.scenario_id,
        scenario_b_id=result_b.scenario_id,
        metrics=metrics,
    )
    comparison.recommendations = comparison_recommendations(comparison, name_a, name_b)
    return comparison


def analyze_skill_gaps(result: ScenarioResult) -> List[SkillGap]:
    """Skills whose peak demand outruns capacity, most critical first."""
    skills = list(dict.fromkeys(list(result.demand.skills) + list(result.capacity)))
    gaps = []
    for skill in skills:
        peak = max(result.demand.skill_series(skill), default=0.0)
        capacity = result.capacity.get(skill, 0.0)
        gap = peak - capacity
        if gap <= 0:
            continue
        criticality = min(gap / capacity, 1.0) if capacity > 0 else 1.0
        gaps.append(SkillGap(
            skill=skill,
            peak_demand=peak,
            capacity=capacity,
            gap=gap,
            criticality=criticality,
        ))
    gaps.sort(key=lambda g: (g.criticality, g.gap), reverse=True)
    return gaps
