from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from models.demand import ProjectPhase


class ParameterKind(Enum):
    TEAM_SIZE_MULTIPLIER = "team_size_multiplier"
    TIMELINE_BUFFER = "timeline_buffer"
    BUDGET_CONSTRAINT = "budget_constraint"
    SKILL_AVAILABILITY = "skill_availability"
    PROJECT_PROBABILITY = "project_probability"


# Semantic value types a parameter can carry
VALUE_TYPES = ["number", "percentage", "date", "boolean", "enumeration"]


@dataclass
class ScenarioParameter:
    kind: ParameterKind
    value: Any
    value_type: str = "percentage"
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    options: List[str] = field(default_factory=list)
    description: str = ""
    name: str = ""
    project_id: Optional[str] = None  # only for PROJECT_PROBABILITY

    @property
    def parameter_id(self) -> str:
        if self.kind is ParameterKind.PROJECT_PROBABILITY:
            return f"project_{self.project_id}_probability"
        return self.kind.value

    @property
    def value_range(self) -> float:
        if self.min_value is None or self.max_value is None:
            return 0.0
        return self.max_value - self.min_value

    @property
    def is_numeric(self) -> bool:
        return self.value_type in ("number", "percentage")

    def clamp(self, value: float) -> float:
        if self.min_value is not None:
            value = max(self.min_value, value)
        if self.max_value is not None:
            value = min(self.max_value, value)
        return value


@dataclass
class ScenarioConstraint:
    constraint_id: str
    kind: str  # "resource_limit", "budget_limit", "timeline", "skill_availability"
    parameters: Dict[str, Any] = field(default_factory=dict)
    severity: str = "warning"  # "warning" or "error"


@dataclass
class ScenarioProject:
    project_id: str
    name: str
    start_date: date
    end_date: date
    phases: List[ProjectPhase] = field(default_factory=list)
    project_type: str = "software_development"
    team_size: float = 5
    budget: float = 0.0
    probability: float = 1.0        # chance the project proceeds, 0-1
    priority: str = "medium"        # "low", "medium", "high", "critical"
    dependencies: List[str] = field(default_factory=list)

    @property
    def duration_days(self) -> int:
        if self.phases:
            return sum(p.duration_days for p in self.phases)
        return (self.end_date - self.start_date).days + 1


@dataclass
class Scenario:
    scenario_id: str
    name: str
    description: str
    scenario_type: str  # "what-if", "forecast", "template", "growth", "efficiency", "custom"
    status: str = "draft"  # "draft", "active", "archived"
    base_date: date = field(default_factory=date.today)
    forecast_period_months: int = 6
    parameters: List[ScenarioParameter] = field(default_factory=list)
    projects: List[ScenarioProject] = field(default_factory=list)
    constraints: List[ScenarioConstraint] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    is_deleted: bool = False
    last_run_at: Optional[datetime] = None

    def get_parameter(self, parameter_id: str) -> Optional[ScenarioParameter]:
        return next((p for p in self.parameters if p.parameter_id == parameter_id), None)

    def parameter_value(self, kind: ParameterKind, default: Any = None) -> Any:
        param = next((p for p in self.parameters if p.kind is kind), None)
        return param.value if param is not None else default

    def project_probability_parameters(self) -> Dict[str, ScenarioParameter]:
        return {
            p.project_id: p for p in self.parameters
            if p.kind is ParameterKind.PROJECT_PROBABILITY
        }

    def with_parameter_values(self, values: List[Any], scenario_id: Optional[str] = None) -> "Scenario":
        """Copy of this scenario with parameter values replaced positionally."""
        params = [replace(p, value=v) for p, v in zip(self.parameters, values)]
        return replace(
            self,
            scenario_id=scenario_id or self.scenario_id,
            parameters=params,
        )


def default_parameters(projects: List[ScenarioProject]) -> List[ScenarioParameter]:
    """Build the standard tunable parameter set for a list of projects."""
    params = [
        ScenarioParameter(
            kind=ParameterKind.TEAM_SIZE_MULTIPLIER,
            name="Team Size Multiplier",
            value=1.0, min_value=0.5, max_value=2.0,
            description="Multiply all project team sizes by this factor",
        ),
        ScenarioParameter(
            kind=ParameterKind.TIMELINE_BUFFER,
            name="Timeline Buffer",
            value=0.0, min_value=0.0, max_value=0.5,
            description="Add buffer time to all project phases",
        ),
        ScenarioParameter(
            kind=ParameterKind.BUDGET_CONSTRAINT,
            name="Budget Constraint",
            value=1.0, min_value=0.5, max_value=1.5,
            description="Available budget as a fraction of total project budgets",
        ),
        ScenarioParameter(
            kind=ParameterKind.SKILL_AVAILABILITY,
            name="Skill Availability",
            value=1.0, min_value=0.5, max_value=2.0,
            description="Multiplier applied to baseline skill capacity",
        ),
    ]
    for project in projects:
        params.append(ScenarioParameter(
            kind=ParameterKind.PROJECT_PROBABILITY,
            name=f"{project.name} Probability",
            value=project.probability, min_value=0.0, max_value=1.0,
            description=f"Probability that {project.name} will proceed",
            project_id=project.project_id,
        ))
    return params
