"""Monte Carlo risk assessment over a scenario's project list."""

import logging
from datetime import date
from typing import List, Optional, Sequence

import numpy as np

from models.scenario import ScenarioProject
from models.results import (
    DistributionSummary, MonteCarloResult, RiskAssessment, RiskFactor, UtilizationMetrics,
)
from config.defaults import (
    MONTE_CARLO_ITERATIONS, DURATION_VARIATION, COST_VARIATION, DAILY_RATE,
    RISK_CRITICAL_SCORE, RISK_HIGH_SCORE, RISK_MEDIUM_SCORE,
    OVERALLOCATION_THRESHOLD,
)

logger = logging.getLogger(__name__)

# Standing factors applied to every scenario: (category, description, probability, impact, mitigation)
BASE_RISK_FACTORS = [
    ("Resource Availability", "Risk of key resources being unavailable", 0.3, 0.7,
     ["Maintain resource pool", "Cross-training programs"]),
    ("Scope Creep", "Risk of project scope expanding beyond estimates", 0.5, 0.6,
     ["Clear scope definition", "Change management process"]),
]


def _summary(values: np.ndarray) -> DistributionSummary:
    if values.size == 0:
        return DistributionSummary(min=0.0, max=0.0, mean=0.0, std=0.0)
    return DistributionSummary(
        min=float(values.min()),
        max=float(values.max()),
        mean=float(values.mean()),
        std=float(values.std()),
    )


def _base_cost(project: ScenarioProject, daily_rate: float) -> float:
    if project.budget > 0:
        return project.budget
    return project.duration_days * project.team_size * daily_rate


def run_monte_carlo(
    projects: Sequence[ScenarioProject],
    base_date: date,
    iterations: int = MONTE_CARLO_ITERATIONS,
    rng: Optional[np.random.Generator] = None,
    rule_config: Optional[dict] = None,
) -> MonteCarloResult:
    """Sample duration, cost and proceed/cancel outcomes for every project.

    Each iteration draws an independent duration multiplier, cost multiplier
    and success flag per project. The scenario duration is the latest
    simulated project end measured from ``base_date``; the cost is the sum;
    an iteration succeeds only when every project does.
    """
    cfg = rule_config or {}
    dur_lo, dur_hi = cfg.get("duration_variation", DURATION_VARIATION)
    cost_lo, cost_hi = cfg.get("cost_variation", COST_VARIATION)
    daily_rate = cfg.get("daily_rate", DAILY_RATE)
    rng = rng if rng is not None else np.random.default_rng()
    iterations = max(1, int(iterations))

    n = len(projects)
    offsets = np.array([max(0, (p.start_date - base_date).days) for p in projects], dtype=float)
    durations = np.array([p.duration_days for p in projects], dtype=float)
    costs = np.array([_base_cost(p, daily_rate) for p in projects], dtype=float)
    probabilities = np.array([p.probability for p in projects], dtype=float)

    duration_mult = rng.uniform(dur_lo, dur_hi, size=(iterations, n))
    cost_mult = rng.uniform(cost_lo, cost_hi, size=(iterations, n))
    proceeds = rng.random((iterations, n)) < probabilities

    ends = offsets + durations * duration_mult
    if n:
        total_duration = ends.max(axis=1)
        drivers = np.bincount(ends.argmax(axis=1), minlength=n)
        critical_path = [
            projects[i].project_id
            for i in np.argsort(-drivers, kind="stable") if drivers[i] > 0
        ]
    else:
        total_duration = np.zeros(iterations)
        critical_path = []
    total_cost = (costs * cost_mult).sum(axis=1)
    successes = proceeds.all(axis=1)

    result = MonteCarloResult(
        iterations=iterations,
        success_probability=float(successes.mean()),
        estimated_duration=_summary(total_duration),
        estimated_cost=_summary(total_cost),
        critical_path=critical_path,
    )
    logger.debug(
        "Monte Carlo over %d projects x %d iterations: success %.3f",
        n, iterations, result.success_probability,
    )
    return result


def risk_label(score: float, rule_config: Optional[dict] = None) -> str:
    cfg = rule_config or {}
    if score > cfg.get("risk_critical_score", RISK_CRITICAL_SCORE):
        return "critical"
    if score > cfg.get("risk_high_score", RISK_HIGH_SCORE):
        return "high"
    if score > cfg.get("risk_medium_score", RISK_MEDIUM_SCORE):
        return "medium"
    return "low"


def assess_risk(
    projects: Sequence[ScenarioProject],
    base_date: date,
    utilization: Optional[UtilizationMetrics] = None,
    rng: Optional[np.random.Generator] = None,
    rule_config: Optional[dict] = None,
) -> RiskAssessment:
    """Risk factors plus a Monte Carlo run, labelled by mean probability x impact."""
    cfg = rule_config or {}
    iterations = cfg.get("monte_carlo_iterations", MONTE_CARLO_ITERATIONS)
    monte_carlo = run_monte_carlo(projects, base_date, iterations, rng, cfg)

    factors: List[RiskFactor] = [
        RiskFactor(category=c, description=d, probability=p, impact=i, mitigation=list(m))
        for c, d, p, i, m in BASE_RISK_FACTORS
    ]
    failure = 1 - monte_carlo.success_probability
    if projects:
        factors.append(RiskFactor(
            category="Delivery",
            description="Chance that at least one project does not proceed",
            probability=failure,
            impact=0.8,
            mitigation=["Secure project commitments early", "Prepare fallback staffing plans"],
        ))
    if utilization is not None and utilization.overall:
        threshold = cfg.get("overallocation_threshold", OVERALLOCATION_THRESHOLD)
        overloaded = sum(1 for u in utilization.overall if u > threshold)
        if overloaded:
            factors.append(RiskFactor(
                category="Capacity Overload",
                description=f"Demand exceeds capacity on {overloaded} days",
                probability=overloaded / len(utilization.overall),
                impact=0.8,
                mitigation=["Hire or contract additional staff", "Stagger project start dates"],
            ))

    score = sum(f.probability * f.impact for f in factors) / len(factors)
    return RiskAssessment(
        overall_risk=risk_label(score, cfg),
        risk_factors=factors,
        monte_carlo=monte_carlo,
    )
