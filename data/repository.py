"""Persistence interface for scenarios and allocations, plus an in-memory store."""

import copy
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from models.allocation import Allocation, ScenarioAllocation
from models.audit import AuditEntry
from models.scenario import Scenario
from models.time_window import TimeWindow


class ScenarioRepository(ABC):
    """
    Storage the planner reads and writes through.

    Lookups hide soft-deleted rows unless asked otherwise. Implementations
    must make ``employee_lock`` exclusive per (scenario, employee) so the
    capacity check and the following write happen atomically.
    """

    # ==================== Committed allocations ====================

    @abstractmethod
    def list_allocations(
        self,
        employee_id: Optional[str] = None,
        project_id: Optional[str] = None,
        date_range: Optional[TimeWindow] = None,
    ) -> List[Allocation]:
        """Committed allocations, optionally filtered"""

    # ==================== Scenarios ====================

    @abstractmethod
    def get_scenario(self, scenario_id: str, include_deleted: bool = False) -> Optional[Scenario]:
        """Single scenario by id"""

    @abstractmethod
    def list_scenarios(
        self,
        status: Optional[str] = None,
        scenario_type: Optional[str] = None,
        include_deleted: bool = False,
    ) -> List[Scenario]:
        """Scenarios ordered by creation time"""

    @abstractmethod
    def save_scenario(self, scenario: Scenario) -> Scenario:
        """Insert or replace a scenario"""

    # ==================== Scenario allocations ====================

    @abstractmethod
    def get_scenario_allocation(
        self, allocation_id: str, include_deleted: bool = False,
    ) -> Optional[ScenarioAllocation]:
        """Single scenario allocation by id"""

    @abstractmethod
    def list_scenario_allocations(
        self,
        scenario_id: str,
        employee_id: Optional[str] = None,
        project_id: Optional[str] = None,
        allocation_type: Optional[str] = None,
        include_deleted: bool = False,
    ) -> List[ScenarioAllocation]:
        """Allocations belonging to one scenario"""

    @abstractmethod
    def save_scenario_allocation(self, allocation: ScenarioAllocation) -> ScenarioAllocation:
        """Insert or replace a scenario allocation"""

    # ==================== Audit ====================

    @abstractmethod
    def append_audit(self, entry: AuditEntry) -> None:
        """Record a mutation"""

    @abstractmethod
    def list_audit(self, scenario_id: Optional[str] = None) -> List[AuditEntry]:
        """Audit entries, oldest first"""

    @abstractmethod
    def employee_lock(self, scenario_id: str, employee_id: str):
        """Context manager serializing writes for one employee in one scenario"""


class InMemoryScenarioRepository(ScenarioRepository):
    """Dict-backed repository; stored objects are copies so callers cannot
    mutate state behind the store's back."""

    def __init__(self, allocations: Optional[List[Allocation]] = None) -> None:
        self._allocations: List[Allocation] = list(allocations or [])
        self._scenarios: Dict[str, Scenario] = {}
        self._scenario_allocations: Dict[str, ScenarioAllocation] = {}
        self._audit: List[AuditEntry] = []
        self._lock = threading.RLock()
        self._employee_locks: Dict[tuple, threading.Lock] = defaultdict(threading.Lock)

    def load_allocations(self, allocations: List[Allocation]) -> None:
        with self._lock:
            self._allocations = list(allocations)

    def list_allocations(self, employee_id=None, project_id=None, date_range=None):
        with self._lock:
            rows = list(self._allocations)
        if employee_id is not None:
            rows = [a for a in rows if a.employee_id == employee_id]
        if project_id is not None:
            rows = [a for a in rows if a.project_id == project_id]
        if date_range is not None:
            rows = [a for a in rows if a.window.overlaps(date_range)]
        return rows

    def get_scenario(self, scenario_id, include_deleted=False):
        with self._lock:
            scenario = self._scenarios.get(scenario_id)
        if scenario is None or (scenario.is_deleted and not include_deleted):
            return None
        return copy.deepcopy(scenario)

    def list_scenarios(self, status=None, scenario_type=None, include_deleted=False):
        with self._lock:
            rows = [copy.deepcopy(s) for s in self._scenarios.values()]
        if not include_deleted:
            rows = [s for s in rows if not s.is_deleted]
        if status is not None:
            rows = [s for s in rows if s.status == status]
        if scenario_type is not None:
            rows = [s for s in rows if s.scenario_type == scenario_type]
        return sorted(rows, key=lambda s: s.created_at)

    def save_scenario(self, scenario):
        with self._lock:
            self._scenarios[scenario.scenario_id] = copy.deepcopy(scenario)
        return scenario

    def get_scenario_allocation(self, allocation_id, include_deleted=False):
        with self._lock:
            allocation = self._scenario_allocations.get(allocation_id)
        if allocation is None or (allocation.is_deleted and not include_deleted):
            return None
        return copy.deepcopy(allocation)

    def list_scenario_allocations(
        self, scenario_id, employee_id=None, project_id=None,
        allocation_type=None, include_deleted=False,
    ):
        with self._lock:
            rows = [
                copy.deepcopy(a) for a in self._scenario_allocations.values()
                if a.scenario_id == scenario_id
            ]
        if not include_deleted:
            rows = [a for a in rows if not a.is_deleted]
        if employee_id is not None:
            rows = [a for a in rows if a.employee_id == employee_id]
        if project_id is not None:
            rows = [a for a in rows if a.project_id == project_id]
        if allocation_type is not None:
            rows = [a for a in rows if a.allocation_type == allocation_type]
        return sorted(rows, key=lambda a: (a.start_date, a.allocation_id))

    def save_scenario_allocation(self, allocation):
        with self._lock:
            self._scenario_allocations[allocation.allocation_id] = copy.deepcopy(allocation)
        return allocation

    def append_audit(self, entry):
        with self._lock:
            self._audit.append(entry)

    def list_audit(self, scenario_id=None):
        with self._lock:
            rows = list(self._audit)
        if scenario_id is not None:
            rows = [e for e in rows if e.scenario_id == scenario_id]
        return rows

    @contextmanager
    def employee_lock(self, scenario_id: str, employee_id: str) -> Iterator[None]:
        with self._lock:
            lock = self._employee_locks[(scenario_id, employee_id)]
        with lock:
            yield
