"""Tests for demand aggregation and project templates."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from datetime import date, timedelta

import pytest

from models.demand import ProjectPhase, ProjectDemandProfile
from models.scenario import ScenarioProject
from engine.demand_aggregator import (
    aggregate_demand, generate_project_template, profile_from_project,
    aggregate_pipeline_demand, analyze_historical_patterns,
)
from config.defaults import PHASE_TEMPLATES

START = date(2024, 3, 1)


def make_phase(name="Build", offset=0, length=10, team=4, util=0.5, skills=("backend_dev",)):
    start = START + timedelta(days=offset)
    return ProjectPhase(name, start, start + timedelta(days=length - 1), team, tuple(skills), util)


def make_profile(pid="P1", name="Alpha", phases=None):
    return ProjectDemandProfile(pid, name, tuple(phases if phases is not None else [make_phase()]))


def make_project(pid="P1", phases=None, project_type="software_development", days=70, team=5):
    return ScenarioProject(
        project_id=pid, name=f"Project {pid}", start_date=START,
        end_date=START + timedelta(days=days - 1), phases=list(phases or []),
        project_type=project_type, team_size=team,
    )


class TestAggregateDemand:
    def test_single_phase_daily_demand(self):
        result = aggregate_demand([make_profile()], START, 20)
        assert len(result.curves) == 20
        assert result.curves[0].total_demand == pytest.approx(2.0)
        assert result.curves[9].total_demand == pytest.approx(2.0)
        assert result.curves[10].total_demand == 0.0

    def test_skill_demand_split_equally(self):
        phase = make_phase(team=6, util=1.0, skills=("a", "b", "c"))
        curve = aggregate_demand([make_profile(phases=[phase])], START, 5).curves[0]
        assert curve.skill_demand == {"a": 2.0, "b": 2.0, "c": 2.0}

    def test_overlapping_projects_sum(self):
        p1 = make_profile("P1", "Alpha", [make_phase(offset=0, length=10, team=2, util=1.0)])
        p2 = make_profile("P2", "Beta", [make_phase(offset=5, length=10, team=3, util=1.0)])
        result = aggregate_demand([p1, p2], START, 20)
        assert result.curves[7].total_demand == pytest.approx(5.0)
        assert result.curves[7].project_breakdown == {"Alpha": 2.0, "Beta": 3.0}
        assert result.peak_demand.day == START + timedelta(days=5)
        assert result.peak_demand.value == pytest.approx(5.0)
        assert set(result.peak_demand.projects) == {"Alpha", "Beta"}

    def test_utilization_rate_averaged_over_active_projects(self):
        p1 = make_profile("P1", "Alpha", [make_phase(util=0.4)])
        p2 = make_profile("P2", "Beta", [make_phase(util=0.8)])
        curve = aggregate_demand([p1, p2], START, 3).curves[0]
        assert curve.utilization_rate == pytest.approx(0.6)

    def test_phases_outside_horizon_ignored(self):
        early = make_phase(offset=-30, length=10)
        late = make_phase(offset=40, length=10)
        result = aggregate_demand([make_profile(phases=[early, late])], START, 20)
        assert result.average_demand == 0.0
        assert all(c.total_demand == 0 for c in result.curves)

    def test_phase_clipped_to_horizon(self):
        phase = make_phase(offset=-5, length=10, team=1, util=1.0)
        result = aggregate_demand([make_profile(phases=[phase])], START, 10)
        assert [c.total_demand for c in result.curves[:6]] == [1.0] * 5 + [0.0]

    def test_zero_days(self):
        result = aggregate_demand([make_profile()], START, 0)
        assert result.curves == []
        assert result.peak_demand.day is None
        assert result.peak_demand.value == 0.0

    def test_empty_pipeline(self):
        result = aggregate_demand([], START, 10)
        assert result.peak_demand.value == 0.0
        assert result.skill_bottlenecks == []


class TestBottlenecks:
    def test_spike_is_bottleneck(self):
        steady = make_phase("Steady", offset=0, length=30, team=1, util=1.0, skills=("qa",))
        spike = make_phase("Spike", offset=10, length=2, team=4, util=1.0, skills=("qa",))
        result = aggregate_demand([make_profile(phases=[steady, spike])], START, 30, capacity={"qa": 2})
        assert len(result.skill_bottlenecks) == 1
        b = result.skill_bottlenecks[0]
        assert b.skill == "qa"
        assert b.peak_date == START + timedelta(days=10)
        assert b.demand_value == pytest.approx(5.0)
        assert b.current_capacity == 2

    def test_steady_demand_is_not_bottleneck(self):
        phase = make_phase(length=30, skills=("qa",))
        assert aggregate_demand([make_profile(phases=[phase])], START, 60).skill_bottlenecks == []

    def test_ratio_from_rule_config(self):
        steady = make_phase("Steady", offset=0, length=30, team=1, util=1.0, skills=("qa",))
        bump = make_phase("Bump", offset=10, length=2, team=0.4, util=1.0, skills=("qa",))
        profiles = [make_profile(phases=[steady, bump])]
        assert aggregate_demand(profiles, START, 30).skill_bottlenecks == []
        assert aggregate_demand(profiles, START, 30, rule_config={"bottleneck_ratio": 1.2}).skill_bottlenecks


class TestProjectTemplate:
    def test_default_phase_length(self):
        phases = generate_project_template("software_development", START)
        assert len(phases) == len(PHASE_TEMPLATES["software_development"])
        assert all(p.duration_days == 14 for p in phases)

    def test_phases_are_contiguous(self):
        phases = generate_project_template("data_analytics", START, duration=40)
        for prev, nxt in zip(phases, phases[1:]):
            assert nxt.start_date == prev.end_date + timedelta(days=1)
        assert phases[0].duration_days == 10

    def test_unknown_type_falls_back(self):
        phases = generate_project_template("quantum_research", START)
        assert [p.name for p in phases] == [t["name"] for t in PHASE_TEMPLATES["software_development"]]

    def test_overrides(self):
        phases = generate_project_template("software_development", START, team_size=2, skills=["x"])
        assert all(p.team_size == 2 and p.skills == ("x",) for p in phases)


class TestProfiles:
    def test_explicit_phases_kept(self):
        project = make_project(phases=[make_phase()])
        profile = profile_from_project(project)
        assert profile.phases == (make_phase(),)
        assert profile.project_name == "Project P1"

    def test_synthetic_phases_span_project(self):
        profile = profile_from_project(make_project(days=70, team=3))
        assert len(profile.phases) == 5
        assert profile.phases[0].start_date == START
        assert all(p.team_size == 3 for p in profile.phases)

    def test_pipeline_series_is_contiguous(self):
        p1 = make_profile("P1", "A", [make_phase(offset=0, length=5, team=1, util=1.0)])
        p2 = make_profile("P2", "B", [make_phase(offset=10, length=5, team=2, util=1.0)])
        series = aggregate_pipeline_demand([p1, p2])
        assert len(series) == 15
        assert series[0] == (START, 1.0)
        assert series[7][1] == 0.0
        assert series[-1] == (START + timedelta(days=14), 2.0)

    def test_pipeline_series_empty(self):
        assert aggregate_pipeline_demand([]) == []


class TestHistoricalPatterns:
    def test_averages_by_phase_and_type(self):
        a = make_project("A", phases=[make_phase("Build", length=10, team=4), make_phase("Test", offset=10, length=6, team=2)])
        b = make_project("B", phases=[make_phase("Build", length=20, team=6)])
        phases, types = analyze_historical_patterns([a, b, make_project("C")])

        assert phases["Build"].average_duration == pytest.approx(15.0)
        assert phases["Build"].average_team_size == pytest.approx(5.0)
        assert phases["Build"].skill_frequency == {"backend_dev": 2}
        assert phases["Test"].average_duration == pytest.approx(6.0)

        sw = types["software_development"]
        assert sw.average_total_duration == pytest.approx(18.0)
        assert sw.average_peak_team_size == pytest.approx(5.0)
        assert sw.average_phase_count == pytest.approx(1.5)


if __name__ == "__main__":
    import pytest
    pytest.main([__file__, "-v"])
