"""Planner service: scenario and allocation CRUD, evaluation, comparison and optimization."""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from contextlib import ExitStack
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from models.allocation import ALLOCATION_TYPES, Conflict, ScenarioAllocation
from models.audit import AuditEntry
from models.forecast import ForecastResult
from models.results import ScenarioComparison, ScenarioResult, SkillGap
from models.scenario import (
    Scenario, ScenarioConstraint, ScenarioParameter, ScenarioProject, default_parameters,
)
from data.repository import ScenarioRepository
from engine.cache import TTLCache
from engine.conflict_detector import (
    find_conflicts, find_overallocation_windows, group_conflicts_by_employee, overlapping_pct,
    validate_capacity,
)
from engine.errors import AllocationNotFoundError, ScenarioNotFoundError, ScenarioValidationError
from engine.forecast_engine import SeriesInput, forecast
from engine.optimizer import (
    OptimizationResult, SensitivityResult, default_evaluator, optimize_scenario,
    run_sensitivity_analysis,
)
from engine.scenario_engine import analyze_skill_gaps, compare_scenarios, evaluate_scenario
from config.defaults import (
    COMPARISON_TTL_SECONDS, DEFAULT_HORIZON_DAYS, DEFAULT_PLANNING_HORIZON,
    DEFAULT_FORECAST_DAYS, MAX_GENERATIONS, MAX_WORKERS, SCENARIO_STATUSES, SCENARIO_TYPES,
)

logger = logging.getLogger(__name__)

SCENARIO_FIELDS = {
    "name", "description", "scenario_type", "status", "base_date",
    "forecast_period_months", "projects", "constraints", "parameters",
}
CAPACITY_FIELDS = {"employee_id", "allocation_pct", "start_date", "end_date"}
ALLOCATION_FIELDS = {
    "project_id", "employee_id", "role_id", "allocation_type", "allocation_pct",
    "start_date", "end_date", "estimated_hours", "hourly_rate", "confidence_level", "notes",
}


def _new_id(name: str) -> str:
    slug = "".join(ch if ch.isalnum() else "_" for ch in name.lower()).strip("_") or "scenario"
    return f"{slug}_{uuid.uuid4().hex[:6]}"


def _validate_parameters(parameters: Sequence[ScenarioParameter]) -> None:
    for p in parameters:
        if not p.is_numeric:
            if p.value_type == "enumeration" and p.options and p.value not in p.options:
                raise ScenarioValidationError(
                    f"{p.parameter_id} must be one of {p.options}",
                    {"parameter_id": p.parameter_id, "value": p.value},
                )
            continue
        if p.clamp(float(p.value)) != float(p.value):
            raise ScenarioValidationError(
                f"{p.parameter_id}={p.value} is outside [{p.min_value}, {p.max_value}]",
                {"parameter_id": p.parameter_id, "value": p.value},
            )


def _validate_allocation(allocation: ScenarioAllocation) -> None:
    if allocation.allocation_type not in ALLOCATION_TYPES:
        raise ScenarioValidationError(
            f"Unknown allocation type {allocation.allocation_type}",
            {"allocation_type": allocation.allocation_type},
        )
    if not 1 <= allocation.confidence_level <= 5:
        raise ScenarioValidationError(
            "Confidence level must be between 1 and 5",
            {"confidence_level": allocation.confidence_level},
        )


class ScenarioPlanner:
    """Entry point for the UI layer. Every mutation is audited and
    invalidates cached comparisons that involve the scenario."""

    def __init__(
        self,
        repository: ScenarioRepository,
        rule_config: Optional[dict] = None,
        cache: Optional[TTLCache] = None,
        baseline_capacity: Optional[Dict[str, float]] = None,
    ) -> None:
        self.repository = repository
        self.rule_config = rule_config if rule_config is not None else {}
        ttl = self.rule_config.get("comparison_ttl_seconds", COMPARISON_TTL_SECONDS)
        self.cache = cache if cache is not None else TTLCache(ttl)
        self.baseline_capacity = baseline_capacity

    # ==================== Audit ====================

    def _audit(
        self,
        action: str,
        scenario_id: str,
        field_changed: str,
        old_value: Any = "",
        new_value: Any = "",
        allocation_id: Optional[str] = None,
        rationale: str = "",
    ) -> None:
        self.repository.append_audit(AuditEntry(
            timestamp=datetime.now(),
            action=action,
            scenario_id=scenario_id,
            allocation_id=allocation_id,
            field_changed=field_changed,
            old_value=str(old_value),
            new_value=str(new_value),
            rationale=rationale,
        ))

    def get_scenario_history(self, scenario_id: str) -> List[AuditEntry]:
        return self.repository.list_audit(scenario_id)

    def _invalidate(self, scenario_id: str) -> None:
        self.cache.invalidate(lambda key: scenario_id in key[:2])

    # ==================== Scenarios ====================

    def create_scenario(
        self,
        name: str,
        description: str = "",
        scenario_type: str = "what-if",
        projects: Optional[List[ScenarioProject]] = None,
        parameters: Optional[List[ScenarioParameter]] = None,
        constraints: Optional[List[ScenarioConstraint]] = None,
        base_date: Optional[date] = None,
        forecast_period_months: int = DEFAULT_PLANNING_HORIZON,
        scenario_id: Optional[str] = None,
    ) -> Scenario:
        if not name.strip():
            raise ScenarioValidationError("Scenario name is required")
        if scenario_type not in SCENARIO_TYPES:
            raise ScenarioValidationError(
                f"Unknown scenario type {scenario_type}", {"scenario_type": scenario_type},
            )
        projects = list(projects or [])
        parameters = list(parameters) if parameters is not None else default_parameters(projects)
        _validate_parameters(parameters)

        scenario = Scenario(
            scenario_id=scenario_id or _new_id(name),
            name=name.strip(),
            description=description,
            scenario_type=scenario_type,
            base_date=base_date or date.today(),
            forecast_period_months=forecast_period_months,
            parameters=parameters,
            projects=projects,
            constraints=list(constraints or []),
        )
        if self.repository.get_scenario(scenario.scenario_id, include_deleted=True) is not None:
            raise ScenarioValidationError(
                f"Scenario {scenario.scenario_id} already exists",
                {"scenario_id": scenario.scenario_id},
            )
        self.repository.save_scenario(scenario)
        self._audit("create", scenario.scenario_id, "scenario", "", scenario.name)
        logger.info("Created scenario %s (%d projects)", scenario.scenario_id, len(projects))
        return scenario

    def get_scenario(self, scenario_id: str) -> Scenario:
        scenario = self.repository.get_scenario(scenario_id)
        if scenario is None:
            raise ScenarioNotFoundError(scenario_id)
        return scenario

    def list_scenarios(
        self, status: Optional[str] = None, scenario_type: Optional[str] = None,
    ) -> List[Scenario]:
        return self.repository.list_scenarios(status=status, scenario_type=scenario_type)

    def update_scenario(self, scenario_id: str, rationale: str = "", **changes) -> Scenario:
        unknown = set(changes) - SCENARIO_FIELDS
        if unknown:
            raise ScenarioValidationError(
                f"Cannot update fields: {', '.join(sorted(unknown))}", {"fields": sorted(unknown)},
            )
        if "status" in changes and changes["status"] not in SCENARIO_STATUSES:
            raise ScenarioValidationError(f"Unknown status {changes['status']}", {"status": changes["status"]})
        if "scenario_type" in changes and changes["scenario_type"] not in SCENARIO_TYPES:
            raise ScenarioValidationError(
                f"Unknown scenario type {changes['scenario_type']}",
                {"scenario_type": changes["scenario_type"]},
            )
        if "parameters" in changes:
            _validate_parameters(changes["parameters"])

        scenario = self.get_scenario(scenario_id)
        updated = replace(scenario, updated_at=datetime.now(), **changes)
        self.repository.save_scenario(updated)
        for key, value in changes.items():
            old = getattr(scenario, key)
            if key in ("projects", "constraints", "parameters"):
                old, value = f"{len(old)} items", f"{len(value)} items"
            self._audit("update", scenario_id, key, old, value, rationale=rationale)
        self._invalidate(scenario_id)
        return updated

    def set_parameter(
        self, scenario_id: str, parameter_id: str, value: Any, rationale: str = "",
    ) -> Scenario:
        scenario = self.get_scenario(scenario_id)
        param = scenario.get_parameter(parameter_id)
        if param is None:
            raise ScenarioValidationError(
                f"Unknown parameter {parameter_id}", {"parameter_id": parameter_id},
            )
        _validate_parameters([replace(param, value=value)])
        parameters = [replace(p, value=value) if p is param else p for p in scenario.parameters]
        updated = replace(scenario, parameters=parameters, updated_at=datetime.now())
        self.repository.save_scenario(updated)
        self._audit("update", scenario_id, parameter_id, param.value, value, rationale=rationale)
        self._invalidate(scenario_id)
        return updated

    def delete_scenario(self, scenario_id: str, rationale: str = "") -> None:
        """Soft delete; the row stays so history and comparisons can refer to it."""
        scenario = self.get_scenario(scenario_id)
        self.repository.save_scenario(replace(scenario, is_deleted=True, updated_at=datetime.now()))
        self._audit("delete", scenario_id, "is_deleted", False, True, rationale=rationale)
        self._invalidate(scenario_id)
        logger.info("Deleted scenario %s", scenario_id)

    def duplicate_scenario(self, scenario_id: str, new_name: str) -> Scenario:
        """Copy a scenario and its live allocations as a new draft."""
        source = self.get_scenario(scenario_id)
        copy_id = _new_id(new_name)
        now = datetime.now()
        duplicate = replace(
            source,
            scenario_id=copy_id,
            name=new_name,
            status="draft",
            created_at=now,
            updated_at=now,
            last_run_at=None,
        )
        self.repository.save_scenario(duplicate)
        for allocation in self.repository.list_scenario_allocations(scenario_id):
            self.repository.save_scenario_allocation(replace(
                allocation,
                allocation_id=uuid.uuid4().hex[:12],
                scenario_id=copy_id,
                created_at=now,
                updated_at=now,
            ))
        self._audit("duplicate", copy_id, "scenario", scenario_id, new_name)
        logger.info("Duplicated scenario %s as %s", scenario_id, copy_id)
        return duplicate

    # ==================== Scenario allocations ====================

    def list_scenario_allocations(self, scenario_id: str, **filters) -> List[ScenarioAllocation]:
        self.get_scenario(scenario_id)
        return self.repository.list_scenario_allocations(scenario_id, **filters)

    def create_scenario_allocation(
        self,
        scenario_id: str,
        employee_id: str,
        project_id: str,
        start_date: date,
        allocation_pct: float,
        end_date: Optional[date] = None,
        allocation_type: str = "tentative",
        role_id: Optional[str] = None,
        estimated_hours: Optional[float] = None,
        hourly_rate: Optional[float] = None,
        confidence_level: int = 3,
        notes: str = "",
    ) -> ScenarioAllocation:
        """Create an allocation after the capacity guard passes.

        Raises CapacityExceededError when the employee's overlapping
        allocations in this scenario plus ``allocation_pct`` exceed 100%.
        """
        self.get_scenario(scenario_id)
        allocation = ScenarioAllocation(
            allocation_id=uuid.uuid4().hex[:12],
            scenario_id=scenario_id,
            project_id=project_id,
            employee_id=employee_id,
            start_date=start_date,
            end_date=end_date,
            allocation_pct=allocation_pct,
            role_id=role_id,
            allocation_type=allocation_type,
            estimated_hours=estimated_hours,
            hourly_rate=hourly_rate,
            confidence_level=confidence_level,
            notes=notes,
        )
        _validate_allocation(allocation)
        with self.repository.employee_lock(scenario_id, employee_id):
            validate_capacity(
                employee_id, start_date, end_date, allocation_pct,
                self.repository.list_scenario_allocations(scenario_id, employee_id=employee_id),
                scenario_id=scenario_id,
                rule_config=self.rule_config,
            )
            self.repository.save_scenario_allocation(allocation)
        self._audit(
            "allocate", scenario_id, "allocation_pct", "", f"{allocation_pct:.0f}%",
            allocation_id=allocation.allocation_id,
        )
        self._invalidate(scenario_id)
        logger.info(
            "Allocated %s to %s at %.0f%% in %s", employee_id, project_id, allocation_pct, scenario_id,
        )
        return allocation

    def update_scenario_allocation(self, allocation_id: str, rationale: str = "", **changes) -> ScenarioAllocation:
        unknown = set(changes) - ALLOCATION_FIELDS
        if unknown:
            raise ScenarioValidationError(
                f"Cannot update fields: {', '.join(sorted(unknown))}", {"fields": sorted(unknown)},
            )
        current = self.repository.get_scenario_allocation(allocation_id)
        if current is None:
            raise AllocationNotFoundError(allocation_id)
        updated = replace(current, updated_at=datetime.now(), **changes)
        _validate_allocation(updated)

        employees = sorted({current.employee_id, updated.employee_id})
        with ExitStack() as stack:
            for employee_id in employees:
                stack.enter_context(self.repository.employee_lock(current.scenario_id, employee_id))
            if CAPACITY_FIELDS & set(changes):
                others = self.repository.list_scenario_allocations(
                    current.scenario_id, employee_id=updated.employee_id,
                )
                previous_total = None
                if updated.employee_id == current.employee_id:
                    previous_total = current.allocation_pct + overlapping_pct(
                        current.employee_id, current.window, others,
                        scenario_id=current.scenario_id, exclude_id=allocation_id,
                    )
                validate_capacity(
                    updated.employee_id, updated.start_date, updated.end_date, updated.allocation_pct,
                    others,
                    scenario_id=current.scenario_id,
                    exclude_id=allocation_id,
                    rule_config=self.rule_config,
                    previous_total=previous_total,
                )
            self.repository.save_scenario_allocation(updated)

        for key, value in changes.items():
            self._audit(
                "update", current.scenario_id, key, getattr(current, key), value,
                allocation_id=allocation_id, rationale=rationale,
            )
        self._invalidate(current.scenario_id)
        return updated

    def delete_scenario_allocation(self, allocation_id: str, rationale: str = "") -> None:
        current = self.repository.get_scenario_allocation(allocation_id)
        if current is None:
            raise AllocationNotFoundError(allocation_id)
        self.repository.save_scenario_allocation(
            replace(current, is_deleted=True, updated_at=datetime.now())
        )
        self._audit(
            "delete", current.scenario_id, "is_deleted", False, True,
            allocation_id=allocation_id, rationale=rationale,
        )
        self._invalidate(current.scenario_id)

    # ==================== Analysis ====================

    def _rng(self) -> np.random.Generator:
        return np.random.default_rng(self.rule_config.get("random_seed"))

    def evaluate_scenario(
        self,
        scenario_id: str,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
        baseline_series: Optional[SeriesInput] = None,
    ) -> ScenarioResult:
        scenario = self.get_scenario(scenario_id)
        result = evaluate_scenario(
            scenario,
            horizon_days=horizon_days,
            allocations=self.repository.list_scenario_allocations(scenario_id),
            baseline_capacity=self.baseline_capacity,
            baseline_series=baseline_series,
            rule_config=self.rule_config,
            rng=self._rng(),
        )
        self.repository.save_scenario(replace(scenario, last_run_at=datetime.now()))
        return result

    def evaluate_many(
        self,
        scenario_ids: Sequence[str],
        horizon_days: int = DEFAULT_HORIZON_DAYS,
    ) -> Dict[str, ScenarioResult]:
        """Evaluate independent scenarios concurrently."""
        workers = self.rule_config.get("max_workers", MAX_WORKERS)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = pool.map(lambda sid: self.evaluate_scenario(sid, horizon_days), scenario_ids)
            return dict(zip(scenario_ids, results))

    def compare_scenarios(
        self,
        scenario_a_id: str,
        scenario_b_id: str,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
    ) -> ScenarioComparison:
        """Cached side-by-side comparison; repeated calls within the TTL return the same object."""
        key = (scenario_a_id, scenario_b_id, horizon_days)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("Comparison cache hit for %s vs %s", scenario_a_id, scenario_b_id)
            return cached
        logger.info("Comparison cache miss for %s vs %s", scenario_a_id, scenario_b_id)

        scenario_a = self.get_scenario(scenario_a_id)
        scenario_b = self.get_scenario(scenario_b_id)
        results = self.evaluate_many([scenario_a_id, scenario_b_id], horizon_days)
        comparison = compare_scenarios(
            results[scenario_a_id], results[scenario_b_id], scenario_a.name, scenario_b.name,
        )
        self.cache.set(key, comparison)
        return comparison

    def detect_resource_conflicts(self, scenario_id: str) -> List[Conflict]:
        allocations = self.list_scenario_allocations(scenario_id)
        return find_conflicts(allocations, self.rule_config)

    def conflict_report(self, scenario_id: str) -> Dict[str, list]:
        """Pairwise conflicts, per-employee summaries and sweep-line windows together."""
        allocations = self.list_scenario_allocations(scenario_id)
        conflicts = find_conflicts(allocations, self.rule_config)
        return {
            "conflicts": conflicts,
            "by_employee": group_conflicts_by_employee(conflicts),
            "windows": find_overallocation_windows(allocations, self.rule_config),
        }

    def analyze_skill_gaps(
        self, scenario_id: str, horizon_days: int = DEFAULT_HORIZON_DAYS,
    ) -> List[SkillGap]:
        return analyze_skill_gaps(self.evaluate_scenario(scenario_id, horizon_days))

    def forecast_capacity(
        self, series: SeriesInput, horizon_days: int = DEFAULT_FORECAST_DAYS,
    ) -> ForecastResult:
        return forecast(series, horizon_days, self.rule_config)

    # ==================== Optimization ====================

    def _evaluator(self):
        cfg = dict(self.rule_config)
        if self.baseline_capacity is not None:
            cfg.setdefault("baseline_capacity", self.baseline_capacity)
        return default_evaluator(cfg)

    def run_sensitivity_analysis(
        self,
        scenario_id: str,
        parameter_ids: Sequence[str],
        variations: Optional[Sequence[float]] = None,
    ) -> List[SensitivityResult]:
        scenario = self.get_scenario(scenario_id)
        return run_sensitivity_analysis(
            scenario, parameter_ids, variations, self._evaluator(), self.rule_config,
        )

    def optimize_scenario(
        self,
        scenario_id: str,
        objectives: Optional[Sequence[str]] = None,
        constraints: Optional[Sequence[ScenarioConstraint]] = None,
        generations: int = MAX_GENERATIONS,
        deadline_seconds: Optional[float] = None,
    ) -> OptimizationResult:
        scenario = self.get_scenario(scenario_id)
        result = optimize_scenario(
            scenario,
            objectives=objectives,
            constraints=constraints,
            generations=generations,
            evaluate=self._evaluator(),
            rng=self._rng(),
            deadline_seconds=deadline_seconds,
            rule_config=self.rule_config,
        )
        self._audit(
            "optimize", scenario_id, "fitness",
            f"{result.original_fitness:.2f}", f"{result.fitness:.2f}",
            rationale=f"{result.generations_run} generations, {result.stopped_reason}",
        )
        return result

    def apply_optimization(
        self, scenario_id: str, result: OptimizationResult, rationale: str = "",
    ) -> Scenario:
        """Write the optimized parameter values back onto the scenario."""
        return self.update_scenario(
            scenario_id,
            rationale=rationale or "Applied optimizer result",
            parameters=list(result.scenario.parameters),
        )
