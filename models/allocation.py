from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from models.time_window import TimeWindow


# Allocation types, strongest commitment first
ALLOCATION_TYPES = ["confirmed", "probable", "tentative"]


@dataclass
class Allocation:
    """Committed allocation as read from the resource data layer."""
    allocation_id: str
    employee_id: str
    project_id: str
    start_date: date
    end_date: Optional[date]
    allocation_pct: float           # 0-100
    hourly_rate: Optional[float] = None

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(self.start_date, self.end_date)


@dataclass
class ScenarioAllocation:
    allocation_id: str
    scenario_id: str
    project_id: str
    employee_id: str
    start_date: date
    allocation_pct: float           # 0-100
    end_date: Optional[date] = None
    role_id: Optional[str] = None
    allocation_type: str = "tentative"  # "confirmed", "probable", "tentative"
    estimated_hours: Optional[float] = None
    hourly_rate: Optional[float] = None
    confidence_level: int = 3       # 1-5
    notes: str = ""
    is_deleted: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(self.start_date, self.end_date)


@dataclass
class Conflict:
    """Two allocations for one employee whose overlap exceeds 100%."""
    employee_id: str
    allocation_ids: List[str]
    project_ids: List[str]
    window: TimeWindow
    total_pct: float
    severity: str  # "low", "medium", "high"

    @property
    def over_allocation_pct(self) -> float:
        return self.total_pct - 100.0


@dataclass
class OverallocationWindow:
    """Maximal span during which an employee's summed allocation stays above 100%."""
    employee_id: str
    window: TimeWindow
    peak_pct: float
    allocation_ids: List[str] = field(default_factory=list)


@dataclass
class EmployeeConflictSummary:
    employee_id: str
    conflicts: List[Conflict]
    window: TimeWindow
    peak_total_pct: float
    total_over_allocation_pct: float
