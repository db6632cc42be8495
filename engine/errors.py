"""Exception types raised by the planning engine."""

from datetime import date
from typing import Any, Dict, Optional


class PlanningError(Exception):
    """Base class for planning failures surfaced to callers."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class InsufficientDataError(PlanningError):
    def __init__(self, required: int, received: int) -> None:
        super().__init__(
            f"Insufficient data: need at least {required} points, got {received}",
            {"required": required, "received": received},
        )
        self.required = required
        self.received = received


class CapacityExceededError(PlanningError):
    def __init__(
        self,
        employee_id: str,
        start: date,
        end: Optional[date],
        existing_pct: float,
        requested_pct: float,
    ) -> None:
        window = f"{start} to {end or 'ongoing'}"
        super().__init__(
            f"Employee {employee_id} would be allocated "
            f"{existing_pct + requested_pct:.0f}% during {window} "
            f"(existing {existing_pct:.0f}% + requested {requested_pct:.0f}%)",
            {
                "employee_id": employee_id,
                "start": start.isoformat(),
                "end": end.isoformat() if end else None,
                "existing_pct": existing_pct,
                "requested_pct": requested_pct,
            },
        )
        self.employee_id = employee_id
        self.existing_pct = existing_pct
        self.requested_pct = requested_pct

    @property
    def available_pct(self) -> float:
        return max(0.0, 100.0 - self.existing_pct)


class ScenarioNotFoundError(PlanningError):
    def __init__(self, scenario_id: str) -> None:
        super().__init__(f"Scenario {scenario_id} not found", {"scenario_id": scenario_id})
        self.scenario_id = scenario_id


class AllocationNotFoundError(PlanningError):
    def __init__(self, allocation_id: str) -> None:
        super().__init__(
            f"Scenario allocation {allocation_id} not found",
            {"allocation_id": allocation_id},
        )
        self.allocation_id = allocation_id


class ScenarioValidationError(PlanningError):
    """Rejected input: bad dates, out-of-range percentages or parameter values."""
