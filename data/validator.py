"""Schema validation for uploaded data files."""

from dataclasses import dataclass, field
from typing import List
import pandas as pd


@dataclass
class ValidationResult:
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


PROJECT_REQUIRED_COLUMNS = [
    "Project ID",
    "Project Name",
    "Start Date",
    "End Date",
]

PHASE_REQUIRED_COLUMNS = [
    "Project ID",
    "Phase Name",
    "Start Date",
    "End Date",
    "Team Size",
    "Utilization Rate",
    "Skills",
]

ALLOCATION_REQUIRED_COLUMNS = [
    "Allocation ID",
    "Employee ID",
    "Project ID",
    "Start Date",
    "Allocation %",
]

HISTORY_REQUIRED_COLUMNS = ["Date", "Value"]

CAPACITY_REQUIRED_COLUMNS = ["Skill", "FTE"]


def _check_required_columns(df: pd.DataFrame, required: List[str], file_label: str) -> ValidationResult:
    result = ValidationResult()
    missing = [col for col in required if col not in df.columns]
    if missing:
        result.is_valid = False
        result.errors.append(f"{file_label}: Missing required columns: {', '.join(missing)}")
    if df.empty:
        result.is_valid = False
        result.errors.append(f"{file_label}: File contains no data rows.")
    return result


def _check_date_order(df: pd.DataFrame, file_label: str, result: ValidationResult) -> None:
    starts = pd.to_datetime(df["Start Date"], errors="coerce")
    if starts.isna().any():
        result.is_valid = False
        result.errors.append(f"{file_label}: Start Date has missing or unparseable values.")
        return
    if "End Date" not in df.columns:
        return
    ends = pd.to_datetime(df["End Date"], errors="coerce")
    backwards = ends.notna() & (ends < starts)
    if backwards.any():
        result.is_valid = False
        result.errors.append(f"{file_label}: {int(backwards.sum())} row(s) end before they start.")


def validate_projects(df: pd.DataFrame) -> ValidationResult:
    result = _check_required_columns(df, PROJECT_REQUIRED_COLUMNS, "Projects")
    if not result.is_valid:
        return result

    _check_date_order(df, "Projects", result)

    dupes = df.duplicated(subset=["Project ID"], keep=False)
    if dupes.any():
        result.is_valid = False
        result.errors.append(f"Projects: Duplicate project IDs: {df[dupes]['Project ID'].unique().tolist()}")

    if "Probability" in df.columns:
        prob = df["Probability"].dropna()
        if ((prob < 0) | (prob > 1)).any():
            result.is_valid = False
            result.errors.append("Projects: Probability must be between 0 and 1.")

    if "Budget" in df.columns and (df["Budget"].dropna() < 0).any():
        result.is_valid = False
        result.errors.append("Projects: Budget cannot be negative.")

    return result


def validate_phases(df: pd.DataFrame) -> ValidationResult:
    result = _check_required_columns(df, PHASE_REQUIRED_COLUMNS, "Phases")
    if not result.is_valid:
        return result

    _check_date_order(df, "Phases", result)

    if (df["Team Size"] < 0).any():
        result.is_valid = False
        result.errors.append("Phases: Team Size cannot be negative.")

    if ((df["Utilization Rate"] < 0) | (df["Utilization Rate"] > 1)).any():
        result.is_valid = False
        result.errors.append("Phases: Utilization Rate must be between 0 and 1.")

    return result


def validate_allocations(df: pd.DataFrame) -> ValidationResult:
    result = _check_required_columns(df, ALLOCATION_REQUIRED_COLUMNS, "Allocations")
    if not result.is_valid:
        return result

    _check_date_order(df, "Allocations", result)

    pct = df["Allocation %"]
    if ((pct < 0) | (pct > 100)).any():
        result.is_valid = False
        result.errors.append("Allocations: Allocation % must be between 0 and 100.")

    dupes = df.duplicated(subset=["Allocation ID"], keep=False)
    if dupes.any():
        result.is_valid = False
        result.errors.append(f"Allocations: Duplicate allocation IDs: {df[dupes]['Allocation ID'].unique().tolist()}")

    return result


def validate_history(df: pd.DataFrame) -> ValidationResult:
    result = _check_required_columns(df, HISTORY_REQUIRED_COLUMNS, "History")
    if not result.is_valid:
        return result

    if pd.to_datetime(df["Date"], errors="coerce").isna().any():
        result.is_valid = False
        result.errors.append("History: Date has missing or unparseable values.")

    if df["Date"].duplicated().any():
        result.warnings.append("History: Duplicate dates found; values are kept in file order.")

    if len(df) < 7:
        result.warnings.append(
            f"History: {len(df)} rows; forecasting needs at least 7 points."
        )
    return result


def validate_capacity(df: pd.DataFrame) -> ValidationResult:
    result = _check_required_columns(df, CAPACITY_REQUIRED_COLUMNS, "Capacity")
    if not result.is_valid:
        return result

    if (df["FTE"] < 0).any():
        result.is_valid = False
        result.errors.append("Capacity: FTE cannot be negative.")
    return result


def validate_cross_file(projects_df: pd.DataFrame, phases_df: pd.DataFrame) -> ValidationResult:
    """Check that phase rows reference known projects."""
    result = ValidationResult()
    project_ids = set(projects_df["Project ID"].astype(str).str.strip())
    phase_ids = set(phases_df["Project ID"].astype(str).str.strip())

    orphans = phase_ids - project_ids
    without_phases = project_ids - phase_ids

    if orphans:
        result.warnings.append(
            f"Phases for unknown projects: {', '.join(sorted(orphans))}. "
            "These will be ignored."
        )
    if without_phases:
        result.warnings.append(
            f"Projects without phases: {', '.join(sorted(without_phases))}. "
            "Template phases will be generated from the project type."
        )
    return result
