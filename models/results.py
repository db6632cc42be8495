from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

from models.allocation import Conflict
from models.demand import DemandForecast
from models.forecast import ForecastResult


@dataclass
class UtilizationPeak:
    day: date
    utilization: float
    severity: str  # "low", "medium", "high"


@dataclass
class SkillUtilizationIssue:
    skill: str
    percentage: float   # underutilized: idle share; overallocated: mean excess
    days: int


@dataclass
class UtilizationMetrics:
    overall: List[float]
    by_skill: Dict[str, List[float]]
    peaks: List[UtilizationPeak] = field(default_factory=list)
    underutilized: List[SkillUtilizationIssue] = field(default_factory=list)
    overallocated: List[SkillUtilizationIssue] = field(default_factory=list)

    @property
    def average(self) -> float:
        return sum(self.overall) / len(self.overall) if self.overall else 0.0

    @property
    def peak(self) -> float:
        return max(self.overall, default=0.0)


@dataclass
class ConstraintViolation:
    """A policy breach found during evaluation. Never raised."""
    constraint_id: str
    severity: str  # "warning" or "error"
    description: str
    impacted_projects: List[str] = field(default_factory=list)
    suggested_actions: List[str] = field(default_factory=list)
    estimated_cost: Optional[float] = None


@dataclass
class Recommendation:
    recommendation_id: str
    kind: str  # "resource_adjustment", "timeline_change", "budget_reallocation", "skill_development"
    description: str
    impact: str  # "low", "medium", "high"
    effort: str  # "low", "medium", "high"
    expected_benefit: str
    implementation: List[str] = field(default_factory=list)


@dataclass
class DistributionSummary:
    min: float
    max: float
    mean: float
    std: float


@dataclass
class MonteCarloResult:
    iterations: int
    success_probability: float
    estimated_duration: DistributionSummary
    estimated_cost: DistributionSummary
    critical_path: List[str] = field(default_factory=list)


@dataclass
class RiskFactor:
    category: str
    description: str
    probability: float
    impact: float
    mitigation: List[str] = field(default_factory=list)


@dataclass
class RiskAssessment:
    overall_risk: str  # "low", "medium", "high", "critical"
    risk_factors: List[RiskFactor]
    monte_carlo: MonteCarloResult


@dataclass
class CostAnalysis:
    total_budget: float
    budget_limit: float
    projected_cost: List[float]
    budget_variance: float
    cost_by_project: Dict[str, float] = field(default_factory=dict)
    cost_by_skill: Dict[str, float] = field(default_factory=dict)
    allocation_cost: float = 0.0
    risk_buffer: float = 0.0

    @property
    def total_projected_cost(self) -> float:
        return float(sum(self.projected_cost))


@dataclass
class ProjectTimeline:
    project_id: str
    planned_start: date
    planned_end: date
    estimated_start: date
    estimated_end: date
    delay_days: float
    critical_path: bool


@dataclass
class Milestone:
    milestone_id: str
    name: str
    day: date
    dependencies: List[str] = field(default_factory=list)
    risk: str = "low"


@dataclass
class TimelineAnalysis:
    project_timelines: List[ProjectTimeline] = field(default_factory=list)
    milestones: List[Milestone] = field(default_factory=list)

    @property
    def average_delay(self) -> float:
        if not self.project_timelines:
            return 0.0
        return sum(t.delay_days for t in self.project_timelines) / len(self.project_timelines)

    @property
    def critical_path_count(self) -> int:
        return sum(1 for t in self.project_timelines if t.critical_path)


@dataclass
class SkillGap:
    skill: str
    peak_demand: float
    capacity: float
    gap: float
    criticality: float  # 0-1


@dataclass
class ScenarioResult:
    scenario_id: str
    demand: DemandForecast
    utilization: UtilizationMetrics
    violations: List[ConstraintViolation]
    recommendations: List[Recommendation]
    risk: RiskAssessment
    cost: CostAnalysis
    timeline: TimelineAnalysis
    demand_forecast: Optional[ForecastResult] = None
    conflicts: List[Conflict] = field(default_factory=list)
    capacity: Dict[str, float] = field(default_factory=dict)
    evaluated_at: datetime = field(default_factory=datetime.now)

    @property
    def total_cost(self) -> float:
        return self.cost.total_projected_cost

    @property
    def average_delay(self) -> float:
        return self.timeline.average_delay

    @property
    def success_probability(self) -> float:
        return self.risk.monte_carlo.success_probability

    def violation_counts(self) -> Dict[str, int]:
        counts = {"error": 0, "warning": 0}
        for v in self.violations:
            counts[v.severity] = counts.get(v.severity, 0) + 1
        return counts


@dataclass
class ComparisonMetric:
    category: str
    name: str
    value_a: float
    value_b: float
    lower_is_better: bool = True

    @property
    def difference(self) -> float:
        return self.value_b - self.value_a

    @property
    def percentage_change(self) -> float:
        if self.value_a == 0:
            return 0.0
        return (self.value_b - self.value_a) / abs(self.value_a) * 100

    @property
    def better(self) -> Optional[str]:
        """Winning side, "a" or "b", or None on a tie."""
        if self.value_a == self.value_b:
            return None
        a_wins = self.value_a < self.value_b
        if not self.lower_is_better:
            a_wins = not a_wins
        return "a" if a_wins else "b"


@dataclass
class ScenarioComparison:
    scenario_a_id: str
    scenario_b_id: str
    metrics: List[ComparisonMetric]
    recommendations: List[str] = field(default_factory=list)
    compared_at: datetime = field(default_factory=datetime.now)

    def metric(self, name: str) -> Optional[ComparisonMetric]:
        return next((m for m in self.metrics if m.name == name), None)
