"""Generate synthetic planning datasets: pipeline, phases, allocations and history."""

import math
import os
import random
from datetime import date, timedelta
from typing import Optional

import pandas as pd

from config.defaults import DEFAULT_BASELINE_CAPACITY, PHASE_TEMPLATES
from data.loader import build_planner, parse_allocations, parse_history, parse_projects
from engine.planner import ScenarioPlanner

SAMPLE_PROJECTS = [
    {"Project ID": "P001", "Project Name": "Customer Portal Rebuild", "Project Type": "software_development",
     "Budget": 250000, "Probability": 0.9, "Priority": "high", "Offset": 0, "Dependencies": ""},
    {"Project ID": "P002", "Project Name": "Payments API Migration", "Project Type": "software_development",
     "Budget": 320000, "Probability": 1.0, "Priority": "critical", "Offset": 14, "Dependencies": ""},
    {"Project ID": "P003", "Project Name": "Churn Analytics", "Project Type": "data_analytics",
     "Budget": 90000, "Probability": 0.7, "Priority": "medium", "Offset": 21, "Dependencies": ""},
    {"Project ID": "P004", "Project Name": "Mobile App Refresh", "Project Type": "software_development",
     "Budget": 180000, "Probability": 0.6, "Priority": "medium", "Offset": 45, "Dependencies": "P001"},
    {"Project ID": "P005", "Project Name": "Supply Chain Dashboard", "Project Type": "data_analytics",
     "Budget": 60000, "Probability": 0.5, "Priority": "low", "Offset": 60, "Dependencies": "P003"},
]

# Weekday load factors, Monday first
WEEKLY_PATTERN = [1.0, 1.05, 1.1, 1.05, 0.95, 0.6, 0.55]


def _anchor(base_date: Optional[date]) -> date:
    return base_date or date.today()


def generate_phases_df(base_date: Optional[date] = None) -> pd.DataFrame:
    """Phases laid out back to back from each project's template."""
    random.seed(42)
    start = _anchor(base_date)
    rows = []
    for project in SAMPLE_PROJECTS:
        day = start + timedelta(days=project["Offset"])
        for template in PHASE_TEMPLATES[project["Project Type"]]:
            length = random.choice([14, 21, 28])
            end = day + timedelta(days=length - 1)
            rows.append({
                "Project ID": project["Project ID"],
                "Phase Name": template["name"],
                "Start Date": day,
                "End Date": end,
                "Team Size": template["team_size"] + random.choice([-1, 0, 0, 1]),
                "Utilization Rate": template["utilization_rate"],
                "Skills": ";".join(template["skills"]),
            })
            day = end + timedelta(days=1)
    return pd.DataFrame(rows)


def generate_projects_df(base_date: Optional[date] = None) -> pd.DataFrame:
    """Project pipeline whose dates span the generated phases."""
    phases = generate_phases_df(base_date)
    spans = phases.groupby("Project ID").agg(start=("Start Date", "min"), end=("End Date", "max"))
    peaks = phases.groupby("Project ID")["Team Size"].max()
    rows = []
    for project in SAMPLE_PROJECTS:
        pid = project["Project ID"]
        rows.append({
            "Project ID": pid,
            "Project Name": project["Project Name"],
            "Project Type": project["Project Type"],
            "Start Date": spans.loc[pid, "start"],
            "End Date": spans.loc[pid, "end"],
            "Team Size": int(peaks[pid]),
            "Budget": project["Budget"],
            "Probability": project["Probability"],
            "Priority": project["Priority"],
            "Dependencies": project["Dependencies"],
        })
    return pd.DataFrame(rows)


def generate_allocations_df(base_date: Optional[date] = None) -> pd.DataFrame:
    """Twelve employees on the pipeline; E003 is double-booked on P001 and P002."""
    random.seed(7)
    start = _anchor(base_date)
    project_ids = [p["Project ID"] for p in SAMPLE_PROJECTS]
    rows = []
    counter = 1
    for i in range(1, 13):
        employee_id = f"E{i:03d}"
        offset = random.randint(0, 20)
        first_pct = random.choice([40, 50, 60])
        spans = [
            (random.choice(project_ids[:3]), offset, offset + 60, first_pct),
            (random.choice(project_ids[3:]), offset + 61, offset + 120, random.choice([50, 80, 100])),
        ]
        if employee_id == "E003":
            spans = [("P001", 0, 59, 60), ("P002", 30, 89, 60)]
        for project_id, begin, end, pct in spans:
            rows.append({
                "Allocation ID": f"A{counter:04d}",
                "Employee ID": employee_id,
                "Project ID": project_id,
                "Start Date": start + timedelta(days=begin),
                "End Date": start + timedelta(days=end),
                "Allocation %": pct,
                "Hourly Rate": random.choice([60, 75, 90, 110]),
            })
            counter += 1
    return pd.DataFrame(rows)


def generate_history_df(days: int = 90, end_date: Optional[date] = None) -> pd.DataFrame:
    """Daily demand ending yesterday: slow growth, weekly cycle and noise."""
    random.seed(42)
    last = _anchor(end_date) - timedelta(days=1)
    first = last - timedelta(days=days - 1)
    rows = []
    for i in range(days):
        day = first + timedelta(days=i)
        base = 40 + 0.08 * i
        value = base * WEEKLY_PATTERN[day.weekday()] + 2 * math.sin(i / 15) + random.gauss(0, 1.5)
        rows.append({"Date": day, "Value": round(max(value, 0.0), 2)})
    return pd.DataFrame(rows)


def generate_capacity_df() -> pd.DataFrame:
    return pd.DataFrame(
        [{"Skill": skill, "FTE": fte} for skill, fte in DEFAULT_BASELINE_CAPACITY.items()]
    )


def generate_sample_csvs(output_dir: str):
    """Write sample CSV files to the given directory."""
    os.makedirs(output_dir, exist_ok=True)
    generate_projects_df().to_csv(os.path.join(output_dir, "projects.csv"), index=False)
    generate_phases_df().to_csv(os.path.join(output_dir, "phases.csv"), index=False)
    generate_allocations_df().to_csv(os.path.join(output_dir, "allocations.csv"), index=False)
    generate_history_df().to_csv(os.path.join(output_dir, "history.csv"), index=False)
    generate_capacity_df().to_csv(os.path.join(output_dir, "capacity.csv"), index=False)


def generate_sample_excel(output_dir: str):
    """Write a single multi-tab Excel file with every dataset."""
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, "sample_data.xlsx")
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        generate_projects_df().to_excel(writer, sheet_name="Projects", index=False)
        generate_phases_df().to_excel(writer, sheet_name="Phases", index=False)
        generate_allocations_df().to_excel(writer, sheet_name="Allocations", index=False)
        generate_history_df().to_excel(writer, sheet_name="History", index=False)
        generate_capacity_df().to_excel(writer, sheet_name="Capacity", index=False)


def build_sample_planner(rule_config: Optional[dict] = None, base_date: Optional[date] = None) -> ScenarioPlanner:
    """Planner preloaded with the sample pipeline; E003 shows up as a conflict."""
    return build_planner(
        parse_projects(generate_projects_df(base_date), generate_phases_df(base_date)),
        parse_allocations(generate_allocations_df(base_date)),
        dict(DEFAULT_BASELINE_CAPACITY),
        rule_config=rule_config,
        base_date=_anchor(base_date),
    )


def sample_history_series(days: int = 90, end_date: Optional[date] = None) -> pd.DataFrame:
    return parse_history(generate_history_df(days, end_date))


if __name__ == "__main__":
    out = os.path.join(os.path.dirname(__file__), "..", "sample_files")
    generate_sample_csvs(out)
    generate_sample_excel(out)
    print("Sample CSV and Excel files generated in sample_files/")
