from models.time_window import TimeWindow
from models.demand import ProjectPhase, ProjectDemandProfile, DemandCurve, DemandForecast
from models.scenario import (
    Scenario, ScenarioParameter, ScenarioConstraint, ScenarioProject, ParameterKind,
)
from models.allocation import Allocation, ScenarioAllocation, Conflict
from models.forecast import ForecastResult, ForecastPoint
from models.results import ScenarioResult, ScenarioComparison, ConstraintViolation
from models.audit import AuditEntry
