from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class ProjectPhase:
    name: str
    start_date: date
    end_date: date
    team_size: float
    skills: Tuple[str, ...] = ()
    utilization_rate: float = 0.8   # 0-1

    @property
    def duration_days(self) -> int:
        """Inclusive day count."""
        return (self.end_date - self.start_date).days + 1

    @property
    def daily_demand(self) -> float:
        return self.team_size * self.utilization_rate

    def is_active(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class ProjectDemandProfile:
    project_id: str
    project_name: str
    phases: Tuple[ProjectPhase, ...]

    @property
    def total_duration(self) -> int:
        return sum(p.duration_days for p in self.phases)

    @property
    def peak_team_size(self) -> float:
        return max((p.team_size for p in self.phases), default=0)

    @property
    def average_utilization(self) -> float:
        if not self.phases:
            return 0.0
        return sum(p.utilization_rate for p in self.phases) / len(self.phases)


@dataclass
class DemandCurve:
    day: date
    total_demand: float
    skill_demand: Dict[str, float] = field(default_factory=dict)
    project_breakdown: Dict[str, float] = field(default_factory=dict)
    utilization_rate: float = 0.0   # mean phase utilization over active projects


@dataclass
class PeakDemand:
    day: Optional[date]
    value: float
    projects: List[str] = field(default_factory=list)


@dataclass
class SkillBottleneck:
    skill: str
    peak_date: date
    demand_value: float
    average_demand: float
    current_capacity: Optional[float] = None


@dataclass
class DemandForecast:
    curves: List[DemandCurve]
    peak_demand: PeakDemand
    average_demand: float
    skill_bottlenecks: List[SkillBottleneck] = field(default_factory=list)

    @property
    def total_demand(self) -> List[float]:
        return [c.total_demand for c in self.curves]

    @property
    def skills(self) -> List[str]:
        seen = {}
        for c in self.curves:
            for skill in c.skill_demand:
                seen.setdefault(skill, None)
        return list(seen)

    def skill_series(self, skill: str) -> List[float]:
        return [c.skill_demand.get(skill, 0.0) for c in self.curves]


@dataclass
class PhasePattern:
    average_duration: float
    average_team_size: float
    average_utilization: float
    skill_frequency: Dict[str, int] = field(default_factory=dict)


@dataclass
class ProjectTypePattern:
    average_total_duration: float
    average_peak_team_size: float
    average_phase_count: float
    skill_distribution: Dict[str, int] = field(default_factory=dict)
