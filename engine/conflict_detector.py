"""Over-allocation detection and the pre-write capacity guard."""

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from models.allocation import Conflict, EmployeeConflictSummary, OverallocationWindow
from models.time_window import TimeWindow
from engine.errors import CapacityExceededError, ScenarioValidationError
from config.defaults import (
    CONFLICT_HIGH_EXCESS, CONFLICT_MEDIUM_EXCESS, MAX_ALLOCATION_PCT,
)

logger = logging.getLogger(__name__)

_EPS = 1e-9


def _live(allocations: Iterable) -> List:
    return [a for a in allocations if not getattr(a, "is_deleted", False)]


def _by_employee(allocations: Iterable) -> Dict[str, List]:
    groups = defaultdict(list)
    for a in _live(allocations):
        groups[a.employee_id].append(a)
    return groups


def conflict_severity(excess_pct: float, rule_config: Optional[dict] = None) -> str:
    cfg = rule_config or {}
    if excess_pct > cfg.get("conflict_high_excess", CONFLICT_HIGH_EXCESS):
        return "high"
    if excess_pct > cfg.get("conflict_medium_excess", CONFLICT_MEDIUM_EXCESS):
        return "medium"
    return "low"


def find_conflicts(allocations: Iterable, rule_config: Optional[dict] = None) -> List[Conflict]:
    """Every pair of one employee's allocations on different projects that
    overlap in time and together exceed the allocation ceiling.

    Works on committed and scenario allocations alike; soft-deleted rows are
    ignored. Results are ordered by employee then overlap start.
    """
    cfg = rule_config or {}
    ceiling = cfg.get("max_allocation_pct", MAX_ALLOCATION_PCT)

    conflicts = []
    for employee_id, rows in sorted(_by_employee(allocations).items()):
        rows = sorted(rows, key=lambda a: (a.start_date, a.allocation_id))
        for i, a in enumerate(rows):
            for b in rows[i + 1:]:
                if a.project_id == b.project_id:
                    continue
                overlap = a.window.intersection(b.window)
                if overlap is None:
                    continue
                total = a.allocation_pct + b.allocation_pct
                if total <= ceiling + _EPS:
                    continue
                conflicts.append(Conflict(
                    employee_id=employee_id,
                    allocation_ids=[a.allocation_id, b.allocation_id],
                    project_ids=[a.project_id, b.project_id],
                    window=overlap,
                    total_pct=total,
                    severity=conflict_severity(total - ceiling, cfg),
                ))
    conflicts.sort(key=lambda c: (c.employee_id, c.window.start))
    if conflicts:
        logger.info("Found %d allocation conflicts", len(conflicts))
    return conflicts


def find_overallocation_windows(
    allocations: Iterable,
    rule_config: Optional[dict] = None,
) -> List[OverallocationWindow]:
    """Maximal spans where an employee's summed allocation is over the ceiling.

    Sweeps start/end events per employee, so overlaps of three or more
    allocations that no single pair explains are reported too.
    """
    cfg = rule_config or {}
    ceiling = cfg.get("max_allocation_pct", MAX_ALLOCATION_PCT)

    windows = []
    for employee_id, rows in sorted(_by_employee(allocations).items()):
        events: Dict[date, List] = defaultdict(list)
        for a in rows:
            events[a.start_date].append((a, True))
            if a.end_date is not None:
                events[a.end_date + timedelta(days=1)].append((a, False))

        active: Dict[str, float] = {}
        open_start: Optional[date] = None
        peak = 0.0
        members: set = set()
        for day in sorted(events):
            for a, starting in events[day]:
                if starting:
                    active[a.allocation_id] = a.allocation_pct
                else:
                    active.pop(a.allocation_id, None)
            running = sum(active.values())
            if running > ceiling + _EPS:
                if open_start is None:
                    open_start, peak, members = day, running, set(active)
                else:
                    peak = max(peak, running)
                    members |= set(active)
            elif open_start is not None:
                windows.append(OverallocationWindow(
                    employee_id=employee_id,
                    window=TimeWindow(open_start, day - timedelta(days=1)),
                    peak_pct=peak,
                    allocation_ids=sorted(members),
                ))
                open_start = None
        if open_start is not None:
            windows.append(OverallocationWindow(
                employee_id=employee_id,
                window=TimeWindow(open_start, None),
                peak_pct=peak,
                allocation_ids=sorted(members),
            ))
    return windows


def group_conflicts_by_employee(conflicts: Iterable[Conflict]) -> List[EmployeeConflictSummary]:
    grouped = defaultdict(list)
    for c in conflicts:
        grouped[c.employee_id].append(c)

    summaries = []
    for employee_id, rows in sorted(grouped.items()):
        start = min(c.window.start for c in rows)
        if any(c.window.is_open_ended for c in rows):
            end = None
        else:
            end = max(c.window.end for c in rows)
        summaries.append(EmployeeConflictSummary(
            employee_id=employee_id,
            conflicts=rows,
            window=TimeWindow(start, end),
            peak_total_pct=max(c.total_pct for c in rows),
            total_over_allocation_pct=sum(c.over_allocation_pct for c in rows),
        ))
    summaries.sort(key=lambda s: s.total_over_allocation_pct, reverse=True)
    return summaries


def overlapping_pct(
    employee_id: str,
    window: TimeWindow,
    allocations: Iterable,
    scenario_id: Optional[str] = None,
    exclude_id: Optional[str] = None,
) -> float:
    """Sum of the employee's other live allocations overlapping ``window``."""
    total = 0.0
    for a in _live(allocations):
        if a.employee_id != employee_id or a.allocation_id == exclude_id:
            continue
        if scenario_id is not None and getattr(a, "scenario_id", scenario_id) != scenario_id:
            continue
        if a.window.overlaps(window):
            total += a.allocation_pct
    return total


def validate_capacity(
    employee_id: str,
    start_date: date,
    end_date: Optional[date],
    new_pct: float,
    allocations: Iterable,
    scenario_id: Optional[str] = None,
    exclude_id: Optional[str] = None,
    rule_config: Optional[dict] = None,
    previous_total: Optional[float] = None,
) -> float:
    """Reject a write that would push the employee over the ceiling.

    Sums every other live allocation of the employee (within the scenario,
    when given) overlapping the requested window. Returns the percentage
    still available after the write.

    ``previous_total`` is the overlapping total before an edit. An edit that
    does not raise the total above it is accepted even when the employee is
    already over the ceiling, so imported over-allocations can be reduced.
    """
    cfg = rule_config or {}
    ceiling = cfg.get("max_allocation_pct", MAX_ALLOCATION_PCT)

    if not 0 <= new_pct <= ceiling:
        raise ScenarioValidationError(
            f"Allocation percentage must be between 0 and {ceiling:.0f}, got {new_pct}",
            {"allocation_pct": new_pct},
        )
    if end_date is not None and end_date < start_date:
        raise ScenarioValidationError(
            "Allocation end date is before its start date",
            {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )

    existing = overlapping_pct(
        employee_id, TimeWindow(start_date, end_date), allocations,
        scenario_id=scenario_id, exclude_id=exclude_id,
    )
    total = existing + new_pct
    if total > ceiling + _EPS:
        if previous_total is not None and total <= previous_total + _EPS:
            logger.warning(
                "%s stays over-allocated at %.0f%% (was %.0f%%)", employee_id, total, previous_total,
            )
            return ceiling - total
        logger.warning(
            "Capacity guard rejected %.0f%% for %s (%.0f%% already allocated)",
            new_pct, employee_id, existing,
        )
        raise CapacityExceededError(employee_id, start_date, end_date, existing, new_pct)
    return ceiling - total
