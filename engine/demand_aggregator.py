"""Project pipeline to per-day, per-skill demand curves."""

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from models.demand import (
    DemandCurve, DemandForecast, PeakDemand, PhasePattern, ProjectDemandProfile,
    ProjectPhase, ProjectTypePattern, SkillBottleneck,
)
from models.scenario import ScenarioProject
from config.defaults import (
    BOTTLENECK_RATIO, DEFAULT_PHASE_DURATION_DAYS, DEFAULT_PROJECT_TYPE,
    PHASE_TEMPLATES,
)

logger = logging.getLogger(__name__)


def _day_span(phase: ProjectPhase, start_date: date, days: int) -> Optional[Tuple[int, int]]:
    """Half-open index range of the phase inside the horizon, or None."""
    first = (phase.start_date - start_date).days
    last = (phase.end_date - start_date).days
    lo, hi = max(first, 0), min(last, days - 1) + 1
    if lo >= hi:
        return None
    return lo, hi


def aggregate_demand(
    profiles: Sequence[ProjectDemandProfile],
    start_date: date,
    days: int,
    capacity: Optional[Dict[str, float]] = None,
    rule_config: Optional[dict] = None,
) -> DemandForecast:
    """Daily demand over ``days`` days starting at ``start_date``.

    A phase contributes ``team_size * utilization_rate`` on every day it is
    active, split equally across its skills. Peak demand is the first day
    holding the maximum total. A skill is a bottleneck when its peak exceeds
    ``bottleneck_ratio`` times its average over the days it is demanded.
    """
    cfg = rule_config or {}
    ratio = cfg.get("bottleneck_ratio", BOTTLENECK_RATIO)
    days = max(0, days)

    total = np.zeros(days)
    skill_demand: Dict[str, np.ndarray] = {}
    skill_present: Dict[str, np.ndarray] = {}
    project_demand: Dict[str, np.ndarray] = {}
    project_util: Dict[str, np.ndarray] = {}

    for profile in profiles:
        demand = np.zeros(days)
        util = np.zeros(days)
        for phase in profile.phases:
            span = _day_span(phase, start_date, days)
            if span is None:
                continue
            lo, hi = span
            phase_demand = phase.daily_demand
            demand[lo:hi] += phase_demand
            util[lo:hi] += phase.utilization_rate
            if not phase.skills:
                continue
            share = phase_demand / len(phase.skills)
            for skill in phase.skills:
                if skill not in skill_demand:
                    skill_demand[skill] = np.zeros(days)
                    skill_present[skill] = np.zeros(days, dtype=bool)
                skill_demand[skill][lo:hi] += share
                skill_present[skill][lo:hi] = True
        total += demand
        key = profile.project_name
        if key in project_demand:
            project_demand[key] += demand
            project_util[key] += util
        else:
            project_demand[key] = demand
            project_util[key] = util

    curves = []
    for i in range(days):
        breakdown = {name: float(arr[i]) for name, arr in project_demand.items() if arr[i] > 0}
        active_util = [float(project_util[name][i]) for name in breakdown]
        curves.append(DemandCurve(
            day=start_date + timedelta(days=i),
            total_demand=float(total[i]),
            skill_demand={s: float(arr[i]) for s, arr in skill_demand.items() if skill_present[s][i]},
            project_breakdown=breakdown,
            utilization_rate=sum(active_util) / len(active_util) if active_util else 0.0,
        ))

    if days:
        peak_idx = int(np.argmax(total))
        peak = PeakDemand(
            day=curves[peak_idx].day,
            value=float(total[peak_idx]),
            projects=list(curves[peak_idx].project_breakdown),
        )
        average = float(total.mean())
    else:
        peak = PeakDemand(day=None, value=0.0)
        average = 0.0

    bottlenecks = []
    for skill, series in skill_demand.items():
        present = skill_present[skill]
        if not present.any():
            continue
        skill_avg = float(series[present].mean())
        peak_i = int(np.argmax(series))
        peak_value = float(series[peak_i])
        if peak_value > skill_avg * ratio:
            bottlenecks.append(SkillBottleneck(
                skill=skill,
                peak_date=start_date + timedelta(days=peak_i),
                demand_value=peak_value,
                average_demand=skill_avg,
                current_capacity=(capacity or {}).get(skill),
            ))
    bottlenecks.sort(key=lambda b: b.demand_value, reverse=True)

    logger.debug(
        "Aggregated %d profiles over %d days: peak %.2f, %d bottlenecks",
        len(profiles), days, peak.value, len(bottlenecks),
    )
    return DemandForecast(
        curves=curves,
        peak_demand=peak,
        average_demand=average,
        skill_bottlenecks=bottlenecks,
    )


def generate_project_template(
    project_type: str,
    start_date: Optional[date] = None,
    duration: Optional[int] = None,
    team_size: Optional[float] = None,
    skills: Optional[List[str]] = None,
    rule_config: Optional[dict] = None,
) -> List[ProjectPhase]:
    """Synthetic phases from the template for ``project_type``.

    Unknown types fall back to the default project type. ``duration`` is
    spread evenly over the template's phases; each phase starts the day
    after the previous one ends.
    """
    cfg = rule_config or {}
    templates = cfg.get("phase_templates", PHASE_TEMPLATES)
    template = templates.get(project_type) or templates[DEFAULT_PROJECT_TYPE]
    if duration:
        phase_days = max(1, duration // len(template))
    else:
        phase_days = cfg.get("default_phase_duration_days", DEFAULT_PHASE_DURATION_DAYS)

    current = start_date or date.today()
    phases = []
    for index, entry in enumerate(template):
        end = current + timedelta(days=phase_days - 1)
        phases.append(ProjectPhase(
            name=entry.get("name") or f"Phase {index + 1}",
            start_date=current,
            end_date=end,
            team_size=team_size if team_size is not None else entry.get("team_size", 5),
            skills=tuple(skills if skills is not None else entry.get("skills", ["developer"])),
            utilization_rate=entry.get("utilization_rate", 0.8),
        ))
        current = end + timedelta(days=1)
    return phases


def profile_from_project(
    project: ScenarioProject,
    rule_config: Optional[dict] = None,
) -> ProjectDemandProfile:
    """Demand profile of a project; projects without phases get a synthetic one."""
    if project.phases:
        phases = tuple(project.phases)
    else:
        span = (project.end_date - project.start_date).days + 1
        phases = tuple(generate_project_template(
            project.project_type,
            start_date=project.start_date,
            duration=span,
            team_size=project.team_size,
            rule_config=rule_config,
        ))
        logger.debug("Synthesized %d phases for project %s", len(phases), project.project_id)
    return ProjectDemandProfile(
        project_id=project.project_id,
        project_name=project.name,
        phases=phases,
    )


def aggregate_pipeline_demand(
    profiles: Sequence[ProjectDemandProfile],
) -> List[Tuple[date, float]]:
    """Contiguous daily total demand spanning every phase, usable as forecast input."""
    phases = [ph for p in profiles for ph in p.phases]
    if not phases:
        return []
    first = min(ph.start_date for ph in phases)
    last = max(ph.end_date for ph in phases)
    result = aggregate_demand(profiles, first, (last - first).days + 1)
    return [(c.day, c.total_demand) for c in result.curves]


def analyze_historical_patterns(
    projects: Sequence[ScenarioProject],
) -> Tuple[Dict[str, PhasePattern], Dict[str, ProjectTypePattern]]:
    """Average phase shape by phase name and project shape by project type."""
    by_phase = defaultdict(lambda: {"durations": [], "team_sizes": [], "utils": [], "skills": defaultdict(int)})
    by_type = defaultdict(lambda: {"durations": [], "peaks": [], "counts": [], "skills": defaultdict(int)})

    for project in projects:
        if not project.phases:
            continue
        for phase in project.phases:
            bucket = by_phase[phase.name]
            bucket["durations"].append(phase.duration_days)
            bucket["team_sizes"].append(phase.team_size)
            bucket["utils"].append(phase.utilization_rate)
            for skill in phase.skills:
                bucket["skills"][skill] += 1

        bucket = by_type[project.project_type]
        bucket["durations"].append(sum(ph.duration_days for ph in project.phases))
        bucket["peaks"].append(max(ph.team_size for ph in project.phases))
        bucket["counts"].append(len(project.phases))
        for phase in project.phases:
            for skill in phase.skills:
                bucket["skills"][skill] += 1

    phase_patterns = {
        name: PhasePattern(
            average_duration=float(np.mean(b["durations"])),
            average_team_size=float(np.mean(b["team_sizes"])),
            average_utilization=float(np.mean(b["utils"])),
            skill_frequency=dict(b["skills"]),
        )
        for name, b in by_phase.items()
    }
    type_patterns = {
        ptype: ProjectTypePattern(
            average_total_duration=float(np.mean(b["durations"])),
            average_peak_team_size=float(np.mean(b["peaks"])),
            average_phase_count=float(np.mean(b["counts"])),
            skill_distribution=dict(b["skills"]),
        )
        for ptype, b in by_type.items()
    }
    return phase_patterns, type_patterns
