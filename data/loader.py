"""File upload parsing: CSV/XLSX into typed model lists."""

from datetime import date
from typing import Dict, List, Optional, Tuple

import pandas as pd

from config.defaults import DEFAULT_BASELINE_CAPACITY
from data.repository import InMemoryScenarioRepository
from engine.planner import ScenarioPlanner
from models.allocation import Allocation, ScenarioAllocation
from models.demand import ProjectPhase
from models.scenario import ScenarioProject


def _to_date(value) -> Optional[date]:
    if value is None or pd.isna(value):
        return None
    return pd.to_datetime(value).date()


def _split_list(value) -> List[str]:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return []
    return [part.strip() for part in str(value).replace(",", ";").split(";") if part.strip()]


def _optional(row, df: pd.DataFrame, column: str, default=None):
    if column in df.columns and pd.notna(row.get(column)):
        return row[column]
    return default


def parse_phases(df: pd.DataFrame) -> Dict[str, List[ProjectPhase]]:
    """Group phase rows by project ID, ordered by start date."""
    phases: Dict[str, List[ProjectPhase]] = {}
    for _, row in df.iterrows():
        project_id = str(row["Project ID"]).strip()
        phases.setdefault(project_id, []).append(ProjectPhase(
            name=str(row["Phase Name"]).strip(),
            start_date=_to_date(row["Start Date"]),
            end_date=_to_date(row["End Date"]),
            team_size=float(row["Team Size"]),
            skills=tuple(_split_list(row["Skills"])),
            utilization_rate=float(row["Utilization Rate"]),
        ))
    for rows in phases.values():
        rows.sort(key=lambda p: p.start_date)
    return phases


def parse_projects(df: pd.DataFrame, phases_df: Optional[pd.DataFrame] = None) -> List[ScenarioProject]:
    """Convert a projects DataFrame (plus optional phases) into ScenarioProject objects."""
    phases = parse_phases(phases_df) if phases_df is not None else {}
    projects = []
    for _, row in df.iterrows():
        project_id = str(row["Project ID"]).strip()
        priority = _optional(row, df, "Priority", "medium")
        projects.append(ScenarioProject(
            project_id=project_id,
            name=str(row["Project Name"]).strip(),
            start_date=_to_date(row["Start Date"]),
            end_date=_to_date(row["End Date"]),
            phases=phases.get(project_id, []),
            project_type=str(_optional(row, df, "Project Type", "software_development")).strip(),
            team_size=float(_optional(row, df, "Team Size", 5)),
            budget=float(_optional(row, df, "Budget", 0.0)),
            probability=float(_optional(row, df, "Probability", 1.0)),
            priority=str(priority).strip().lower(),
            dependencies=_split_list(_optional(row, df, "Dependencies")),
        ))
    return projects


def parse_allocations(df: pd.DataFrame) -> List[Allocation]:
    """Convert an allocations DataFrame into committed Allocation objects."""
    allocations = []
    for _, row in df.iterrows():
        rate = _optional(row, df, "Hourly Rate")
        allocations.append(Allocation(
            allocation_id=str(row["Allocation ID"]).strip(),
            employee_id=str(row["Employee ID"]).strip(),
            project_id=str(row["Project ID"]).strip(),
            start_date=_to_date(row["Start Date"]),
            end_date=_to_date(_optional(row, df, "End Date")),
            allocation_pct=float(row["Allocation %"]),
            hourly_rate=float(rate) if rate is not None else None,
        ))
    return allocations


def parse_history(df: pd.DataFrame) -> pd.DataFrame:
    """Historical series as a date/value frame, sorted by date."""
    history = pd.DataFrame({
        "date": pd.to_datetime(df["Date"]).dt.date,
        "value": df["Value"].astype(float),
    })
    return history.sort_values("date", kind="stable").reset_index(drop=True)


def parse_capacity(df: pd.DataFrame) -> Dict[str, float]:
    """Skill -> FTE mapping."""
    return {str(row["Skill"]).strip(): float(row["FTE"]) for _, row in df.iterrows()}


def load_file(uploaded_file) -> pd.DataFrame:
    """Load an uploaded file (CSV or XLSX) into a DataFrame."""
    name = uploaded_file.name.lower()
    if name.endswith(".csv"):
        return pd.read_csv(uploaded_file)
    elif name.endswith(".xlsx") or name.endswith(".xls"):
        return pd.read_excel(uploaded_file, engine="openpyxl")
    else:
        raise ValueError(f"Unsupported file format: {name}. Use CSV or XLSX.")


# Expected sheet names for multi-tab Excel (case-insensitive matching)
SHEET_ALIASES = {
    "projects": ["projects", "project", "pipeline", "project pipeline"],
    "phases": ["phases", "phase", "project phases"],
    "allocations": ["allocations", "allocation", "assignments"],
    "history": ["history", "historical", "demand history", "capacity history"],
    "capacity": ["capacity", "skills", "skill capacity", "baseline capacity"],
}

REQUIRED_SHEETS = ["projects", "phases"]


def _match_sheet(sheet_names: List[str], category: str) -> Optional[str]:
    """Find a sheet name matching the given category, or None."""
    aliases = SHEET_ALIASES[category]
    lower_map = {s.lower().strip(): s for s in sheet_names}
    for alias in aliases:
        if alias in lower_map:
            return lower_map[alias]
    return None


def load_multi_sheet_excel(uploaded_file) -> Dict[str, pd.DataFrame]:
    """Load one Excel workbook holding the planning datasets.

    Sheet names are matched case-insensitively against ``SHEET_ALIASES``.
    Projects and Phases are required; Allocations, History and Capacity are
    optional and absent from the result when missing.
    """
    xl = pd.ExcelFile(uploaded_file, engine="openpyxl")
    sheet_names = xl.sheet_names

    frames = {}
    for category in SHEET_ALIASES:
        sheet = _match_sheet(sheet_names, category)
        if sheet is None:
            if category in REQUIRED_SHEETS:
                raise ValueError(
                    f"Could not find a sheet for '{category}'. "
                    f"Expected one of: {SHEET_ALIASES[category]}. "
                    f"Found sheets: {sheet_names}"
                )
            continue
        frames[category] = pd.read_excel(xl, sheet_name=sheet)
    return frames


def frames_to_models(frames: Dict[str, pd.DataFrame]) -> Tuple[
    List[ScenarioProject], List[Allocation], Optional[pd.DataFrame], Optional[Dict[str, float]]
]:
    """Parse every available frame into (projects, allocations, history, capacity)."""
    projects = parse_projects(frames["projects"], frames.get("phases"))
    allocations = parse_allocations(frames["allocations"]) if "allocations" in frames else []
    history = parse_history(frames["history"]) if "history" in frames else None
    capacity = parse_capacity(frames["capacity"]) if "capacity" in frames else None
    return projects, allocations, history, capacity


def build_planner(
    projects: List[ScenarioProject],
    allocations: List[Allocation],
    capacity: Optional[Dict[str, float]] = None,
    rule_config: Optional[dict] = None,
    base_date: Optional[date] = None,
) -> ScenarioPlanner:
    """Fresh planner over an in-memory store with a ``baseline`` scenario.

    The baseline's allocations mirror the committed ones and are stored
    directly, so pre-existing double bookings show up as conflicts instead
    of being rejected by the capacity guard.
    """
    repository = InMemoryScenarioRepository(allocations)
    planner = ScenarioPlanner(
        repository,
        rule_config=rule_config,
        baseline_capacity=dict(capacity) if capacity else dict(DEFAULT_BASELINE_CAPACITY),
    )
    planner.create_scenario(
        "Baseline",
        description="Current pipeline with committed allocations",
        scenario_type="forecast",
        projects=projects,
        base_date=base_date or min((p.start_date for p in projects), default=date.today()),
        scenario_id="baseline",
    )
    for a in allocations:
        repository.save_scenario_allocation(ScenarioAllocation(
            allocation_id=f"baseline-{a.allocation_id}",
            scenario_id="baseline",
            project_id=a.project_id,
            employee_id=a.employee_id,
            start_date=a.start_date,
            end_date=a.end_date,
            allocation_pct=a.allocation_pct,
            allocation_type="confirmed",
            hourly_rate=a.hourly_rate,
            confidence_level=5,
        ))
    return planner
