"""Tests for file parsing, schema validation and the sample dataset."""

import sys
import os
import io
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from datetime import date

import numpy as np
import pandas as pd
import pytest

from data.loader import (
    parse_phases, parse_projects, parse_allocations, parse_history, parse_capacity,
    frames_to_models, load_file, load_multi_sheet_excel, build_planner,
)
from data.validator import (
    validate_projects, validate_phases, validate_allocations, validate_history,
    validate_capacity, validate_cross_file,
)
from data.sample_data import (
    build_sample_planner, generate_allocations_df, generate_history_df, generate_phases_df,
    generate_projects_df, generate_capacity_df, generate_sample_csvs, generate_sample_excel,
)

BASE = date(2024, 1, 1)


def make_projects_df(**extra):
    data = {
        "Project ID": ["P1", "P2"],
        "Project Name": ["Alpha", "Beta"],
        "Start Date": ["2024-01-01", "2024-02-01"],
        "End Date": ["2024-03-31", "2024-04-30"],
    }
    data.update(extra)
    return pd.DataFrame(data)


def make_phases_df(**extra):
    data = {
        "Project ID": ["P1", "P1", "P2"],
        "Phase Name": ["Test", "Build", "Build"],
        "Start Date": ["2024-02-15", "2024-01-01", "2024-02-01"],
        "End Date": ["2024-03-31", "2024-02-14", "2024-04-30"],
        "Team Size": [2, 4, 3],
        "Utilization Rate": [0.7, 0.9, 0.8],
        "Skills": ["qa", "backend_dev; frontend_dev", "data_science,ml_engineering"],
    }
    data.update(extra)
    return pd.DataFrame(data)


def make_allocations_df(**extra):
    data = {
        "Allocation ID": ["A1", "A2"],
        "Employee ID": ["E1", "E1"],
        "Project ID": ["P1", "P2"],
        "Start Date": ["2024-01-01", "2024-02-01"],
        "End Date": ["2024-02-28", None],
        "Allocation %": [60, 50],
    }
    data.update(extra)
    return pd.DataFrame(data)


class TestParsers:
    def test_phases_grouped_and_sorted(self):
        phases = parse_phases(make_phases_df())
        assert [p.name for p in phases["P1"]] == ["Build", "Test"]
        assert phases["P1"][0].skills == ("backend_dev", "frontend_dev")
        assert phases["P2"][0].skills == ("data_science", "ml_engineering")
        assert phases["P1"][0].start_date == date(2024, 1, 1)

    def test_projects_defaults(self):
        projects = parse_projects(make_projects_df())
        p = projects[0]
        assert p.project_type == "software_development"
        assert (p.team_size, p.budget, p.probability, p.priority) == (5, 0.0, 1.0, "medium")
        assert p.phases == []
        assert p.dependencies == []

    def test_projects_optional_columns(self):
        df = make_projects_df(
            Budget=[1000, np.nan], Probability=[0.5, 0.9], Priority=["High", None],
            Dependencies=[None, "P1; P3"],
        )
        projects = parse_projects(df, make_phases_df())
        assert projects[0].budget == 1000
        assert projects[0].priority == "high"
        assert projects[1].budget == 0.0
        assert projects[1].priority == "medium"
        assert projects[1].dependencies == ["P1", "P3"]
        assert len(projects[0].phases) == 2

    def test_allocations(self):
        rows = parse_allocations(make_allocations_df())
        assert rows[0].end_date == date(2024, 2, 28)
        assert rows[1].end_date is None
        assert rows[0].allocation_pct == 60.0
        assert rows[0].hourly_rate is None

    def test_allocation_rates(self):
        rows = parse_allocations(make_allocations_df(**{"Hourly Rate": [90, None]}))
        assert [r.hourly_rate for r in rows] == [90.0, None]

    def test_history_sorted(self):
        df = pd.DataFrame({"Date": ["2024-01-03", "2024-01-01", "2024-01-02"], "Value": [3, 1, 2]})
        history = parse_history(df)
        assert history["value"].tolist() == [1.0, 2.0, 3.0]
        assert history["date"].iloc[0] == date(2024, 1, 1)

    def test_capacity(self):
        df = pd.DataFrame({"Skill": [" qa ", "devops"], "FTE": [3, 2.5]})
        assert parse_capacity(df) == {"qa": 3.0, "devops": 2.5}

    def test_frames_to_models_optional_sheets(self):
        projects, allocations, history, capacity = frames_to_models({
            "projects": make_projects_df(), "phases": make_phases_df(),
        })
        assert len(projects) == 2
        assert allocations == []
        assert history is None and capacity is None


class TestLoadFile:
    def test_csv(self):
        buffer = io.StringIO("Skill,FTE\nqa,3\n")
        buffer.name = "Capacity.CSV"
        assert load_file(buffer)["FTE"].tolist() == [3]

    def test_unsupported(self):
        buffer = io.StringIO("")
        buffer.name = "notes.txt"
        with pytest.raises(ValueError):
            load_file(buffer)

    def test_multi_sheet_workbook(self, tmp_path):
        generate_sample_excel(str(tmp_path))
        frames = load_multi_sheet_excel(str(tmp_path / "sample_data.xlsx"))
        assert set(frames) == {"projects", "phases", "allocations", "history", "capacity"}
        assert len(frames["projects"]) == 5

    def test_sheet_aliases_and_optional_sheets(self, tmp_path):
        path = tmp_path / "pipeline.xlsx"
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            make_projects_df().to_excel(writer, sheet_name="Project Pipeline", index=False)
            make_phases_df().to_excel(writer, sheet_name="PHASES", index=False)
        frames = load_multi_sheet_excel(str(path))
        assert set(frames) == {"projects", "phases"}

    def test_missing_required_sheet(self, tmp_path):
        path = tmp_path / "partial.xlsx"
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            make_projects_df().to_excel(writer, sheet_name="Projects", index=False)
        with pytest.raises(ValueError, match="phases"):
            load_multi_sheet_excel(str(path))


class TestValidators:
    def test_valid_frames(self):
        assert validate_projects(make_projects_df()).is_valid
        assert validate_phases(make_phases_df()).is_valid
        assert validate_allocations(make_allocations_df()).is_valid

    def test_missing_columns(self):
        result = validate_projects(make_projects_df().drop(columns=["End Date"]))
        assert not result.is_valid
        assert "End Date" in result.errors[0]

    def test_empty_file(self):
        result = validate_capacity(pd.DataFrame(columns=["Skill", "FTE"]))
        assert not result.is_valid

    def test_duplicate_project_ids(self):
        df = make_projects_df()
        df.loc[1, "Project ID"] = "P1"
        assert not validate_projects(df).is_valid

    def test_probability_out_of_range(self):
        assert not validate_projects(make_projects_df(Probability=[0.5, 1.2])).is_valid

    def test_end_before_start(self):
        df = make_projects_df()
        df.loc[0, "End Date"] = "2023-12-01"
        result = validate_projects(df)
        assert not result.is_valid
        assert "1 row(s) end before they start" in result.errors[0]

    def test_phase_utilization_range(self):
        assert not validate_phases(make_phases_df(**{"Utilization Rate": [0.5, 1.5, 0.5]})).is_valid

    def test_allocation_percentage(self):
        assert not validate_allocations(make_allocations_df(**{"Allocation %": [60, 120]})).is_valid

    def test_open_ended_allocation_is_valid(self):
        assert validate_allocations(make_allocations_df().drop(columns=["End Date"])).is_valid

    def test_history_warnings(self):
        df = pd.DataFrame({"Date": ["2024-01-01", "2024-01-01", "2024-01-02"], "Value": [1, 2, 3]})
        result = validate_history(df)
        assert result.is_valid
        assert len(result.warnings) == 2

    def test_history_bad_dates(self):
        df = pd.DataFrame({"Date": ["not a date"] * 8, "Value": range(8)})
        assert not validate_history(df).is_valid

    def test_negative_capacity(self):
        assert not validate_capacity(pd.DataFrame({"Skill": ["qa"], "FTE": [-1]})).is_valid

    def test_cross_file(self):
        phases = make_phases_df(**{"Project ID": ["P1", "P1", "P9"]})
        result = validate_cross_file(make_projects_df(), phases)
        assert result.is_valid
        assert len(result.warnings) == 2
        assert "P9" in result.warnings[0]
        assert "P2" in result.warnings[1]


class TestSampleData:
    def test_generated_frames_validate(self):
        assert validate_projects(generate_projects_df(BASE)).is_valid
        assert validate_phases(generate_phases_df(BASE)).is_valid
        assert validate_allocations(generate_allocations_df(BASE)).is_valid
        assert validate_history(generate_history_df()).is_valid
        assert validate_capacity(generate_capacity_df()).is_valid

    def test_generation_is_repeatable(self):
        pd.testing.assert_frame_equal(generate_phases_df(BASE), generate_phases_df(BASE))

    def test_history_ends_yesterday(self):
        df = generate_history_df(30, end_date=BASE)
        assert len(df) == 30
        assert df["Date"].iloc[-1] == date(2023, 12, 31)
        assert (df["Value"] >= 0).all()

    def test_sample_planner_has_baseline_conflict(self):
        planner = build_sample_planner({"monte_carlo_iterations": 50}, base_date=BASE)
        assert [s.scenario_id for s in planner.list_scenarios()] == ["baseline"]
        assert len(planner.list_scenario_allocations("baseline")) == 24

        conflicts = planner.detect_resource_conflicts("baseline")
        assert len(conflicts) == 1
        assert conflicts[0].employee_id == "E003"
        assert conflicts[0].project_ids == ["P001", "P002"]
        assert conflicts[0].severity == "medium"

    def test_build_planner_defaults(self):
        projects = parse_projects(make_projects_df(), make_phases_df())
        planner = build_planner(projects, parse_allocations(make_allocations_df()))
        baseline = planner.get_scenario("baseline")
        assert baseline.base_date == date(2024, 1, 1)
        assert baseline.scenario_type == "forecast"
        assert "backend_dev" in planner.baseline_capacity
        rows = planner.list_scenario_allocations("baseline")
        assert {r.allocation_type for r in rows} == {"confirmed"}

    def test_csv_export(self, tmp_path):
        generate_sample_csvs(str(tmp_path))
        assert sorted(os.listdir(tmp_path)) == [
            "allocations.csv", "capacity.csv", "history.csv", "phases.csv", "projects.csv",
        ]


if __name__ == "__main__":
    import pytest
    pytest.main([__file__, "-v"])
