"""Tests for the scenario engine."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from datetime import date, timedelta

import numpy as np
import pytest

from models.allocation import Allocation, ScenarioAllocation
from models.demand import DemandCurve, DemandForecast, PeakDemand, ProjectPhase
from models.scenario import (
    ParameterKind, Scenario, ScenarioConstraint, ScenarioParameter, ScenarioProject,
)
from engine.demand_aggregator import aggregate_demand, profile_from_project
from engine.errors import ScenarioValidationError
from engine.scenario_engine import (
    apply_parameters, included_projects, effective_capacity, calculate_utilization, allocation_cost,
    analyze_costs, analyze_timeline, evaluate_scenario, compare_scenarios,
    analyze_skill_gaps,
)

START = date(2024, 1, 1)  # a Monday
FAST = {"monte_carlo_iterations": 200}


def make_phase(name="Build", offset=0, length=10, team=4, util=1.0, skills=("qa",)):
    start = START + timedelta(days=offset)
    return ProjectPhase(name, start, start + timedelta(days=length - 1), team, tuple(skills), util)


def make_project(pid="P1", phases=None, budget=0.0, probability=1.0, priority="medium", team=5):
    phases = list(phases if phases is not None else [make_phase()])
    end = max(p.end_date for p in phases) if phases else START + timedelta(days=29)
    return ScenarioProject(
        project_id=pid, name=f"Project {pid}", start_date=START, end_date=end,
        phases=phases, team_size=team, budget=budget, probability=probability,
        priority=priority,
    )


def make_scenario(projects=None, parameters=None, constraints=None, sid="S1"):
    return Scenario(
        scenario_id=sid, name=sid, description="", scenario_type="what-if",
        base_date=START,
        projects=list(projects if projects is not None else [make_project()]),
        parameters=list(parameters or []),
        constraints=list(constraints or []),
    )


def param(kind, value, project_id=None):
    return ScenarioParameter(kind=kind, value=value, project_id=project_id)


def make_demand(values, skill="qa"):
    curves = [
        DemandCurve(day=START + timedelta(days=i), total_demand=v, skill_demand={skill: v})
        for i, v in enumerate(values)
    ]
    return DemandForecast(curves=curves, peak_demand=PeakDemand(None, 0.0), average_demand=0.0)


def rng(seed=3):
    return np.random.default_rng(seed)


class TestApplyParameters:
    def test_team_multiplier_scales_phases(self):
        scenario = make_scenario(parameters=[param(ParameterKind.TEAM_SIZE_MULTIPLIER, 2.0)])
        projects = apply_parameters(scenario)
        assert projects[0].phases[0].team_size == 8
        assert projects[0].team_size == 10
        assert scenario.projects[0].phases[0].team_size == 4  # Original unchanged

    def test_timeline_buffer_stretches_and_shifts(self):
        build = make_phase("Build", offset=0, length=10)
        test = make_phase("Test", offset=10, length=6)
        scenario = make_scenario(
            projects=[make_project(phases=[build, test])],
            parameters=[param(ParameterKind.TIMELINE_BUFFER, 0.5)],
        )
        project = apply_parameters(scenario)[0]
        b, t = project.phases
        assert b.start_date == START
        assert b.end_date == START + timedelta(days=14)
        assert t.start_date == START + timedelta(days=15)
        assert t.end_date == START + timedelta(days=23)
        assert project.end_date == scenario.projects[0].end_date + timedelta(days=8)

    def test_probability_override(self):
        scenario = make_scenario(parameters=[param(ParameterKind.PROJECT_PROBABILITY, 0.3, "P1")])
        assert apply_parameters(scenario)[0].probability == 0.3

    def test_zero_probability_project_is_kept(self):
        scenario = make_scenario(
            projects=[make_project("P1"), make_project("P2")],
            parameters=[param(ParameterKind.PROJECT_PROBABILITY, 0.0, "P1")],
        )
        projects = apply_parameters(scenario)
        assert [p.project_id for p in projects] == ["P1", "P2"]
        assert [p.project_id for p in included_projects(projects)] == ["P2"]

    def test_inclusion_threshold_from_rule_config(self):
        projects = apply_parameters(make_scenario(projects=[make_project(probability=0.4)]))
        assert included_projects(projects, {"inclusion_threshold": 0.5}) == []

    def test_projects_without_phases_get_template(self):
        project = make_project(phases=[])
        projects = apply_parameters(make_scenario(projects=[project]))
        assert len(projects[0].phases) > 0

    def test_probability_out_of_range(self):
        scenario = make_scenario(parameters=[param(ParameterKind.PROJECT_PROBABILITY, 1.5, "P1")])
        with pytest.raises(ScenarioValidationError):
            apply_parameters(scenario)

    def test_negative_multiplier(self):
        scenario = make_scenario(parameters=[param(ParameterKind.TEAM_SIZE_MULTIPLIER, -1.0)])
        with pytest.raises(ScenarioValidationError) as exc:
            apply_parameters(scenario)
        assert exc.value.details["team_size_multiplier"] == -1.0


class TestEffectiveCapacity:
    def test_scaled_by_skill_availability(self):
        scenario = make_scenario(parameters=[param(ParameterKind.SKILL_AVAILABILITY, 1.5)])
        assert effective_capacity(scenario, {"a": 2, "b": 4}) == {"a": 3.0, "b": 6.0}

    def test_defaults_without_parameter(self):
        assert effective_capacity(make_scenario(), {"a": 2}) == {"a": 2.0}

    def test_baseline_from_rule_config(self):
        capacity = effective_capacity(make_scenario(), rule_config={"baseline_capacity": {"x": 7}})
        assert capacity == {"x": 7.0}


class TestUtilization:
    def test_peaks_graded_by_severity(self):
        metrics = calculate_utilization(make_demand([1, 9.5, 11, 13, 2]), {"qa": 10})
        assert metrics.overall == pytest.approx([0.1, 0.95, 1.1, 1.3, 0.2])
        assert [p.severity for p in metrics.peaks] == ["low", "medium", "high"]
        assert metrics.peaks[0].day == START + timedelta(days=1)

    def test_overallocated_skill(self):
        metrics = calculate_utilization(make_demand([1, 9.5, 11, 13, 2]), {"qa": 10})
        assert len(metrics.overallocated) == 1
        issue = metrics.overallocated[0]
        assert issue.skill == "qa"
        assert issue.days == 2
        assert issue.percentage == pytest.approx(20.0)
        assert metrics.underutilized == []

    def test_zero_capacity_yields_zero(self):
        metrics = calculate_utilization(make_demand([1, 2, 3]), {})
        assert metrics.overall == [0.0, 0.0, 0.0]
        assert metrics.by_skill["qa"] == [0.0, 0.0, 0.0]
        assert metrics.peaks == []
        assert metrics.underutilized[0].percentage == pytest.approx(100.0)
        assert metrics.underutilized[0].days == 3

    def test_extra_load_added(self):
        metrics = calculate_utilization(make_demand([4, 0]), {"qa": 10}, extra_load=[2, 2])
        assert metrics.overall == pytest.approx([0.6, 0.2])
        assert metrics.by_skill["qa"] == pytest.approx([0.4, 0.0])

    def test_summary_properties(self):
        metrics = calculate_utilization(make_demand([5, 15]), {"qa": 10})
        assert metrics.average == pytest.approx(1.0)
        assert metrics.peak == pytest.approx(1.5)


class TestCosts:
    def test_allocation_cost_from_hours_and_days(self):
        rows = [
            ScenarioAllocation("A", "S1", "P1", "E1", START, 100, estimated_hours=10, hourly_rate=100),
            ScenarioAllocation("B", "S1", "P1", "E2", START, 50, end_date=date(2024, 1, 5)),
            ScenarioAllocation("C", "S1", "P1", "E3", START, 100, estimated_hours=99, is_deleted=True),
        ]
        # 1000 + 5 working days * 8h * 50% * 75
        assert allocation_cost(rows, date(2024, 1, 31)) == pytest.approx(2500.0)

    def test_open_ended_allocation_runs_to_horizon(self):
        rows = [Allocation("A", "E1", "P1", START, None, 100, hourly_rate=10)]
        assert allocation_cost(rows, date(2024, 1, 7)) == pytest.approx(5 * 8 * 10)

    def test_analyze_costs(self):
        p1 = make_project("P1", [make_phase(team=2)], budget=1000)
        p2 = make_project("P2", [make_phase(offset=100)], budget=3000)
        scenario = make_scenario(
            projects=[p1, p2], parameters=[param(ParameterKind.BUDGET_CONSTRAINT, 0.5)],
        )
        projects = apply_parameters(scenario)
        demand = aggregate_demand([profile_from_project(p) for p in projects], START, 30)
        cost = analyze_costs(scenario, projects, demand)

        assert cost.total_budget == 4000
        assert cost.budget_limit == 2000
        assert cost.total_projected_cost == pytest.approx(10000)
        assert cost.budget_variance == pytest.approx(4.0)
        assert cost.cost_by_project == {"P1": pytest.approx(10000), "P2": 0.0}
        assert cost.cost_by_skill == {"qa": pytest.approx(10000)}
        assert cost.risk_buffer == pytest.approx(400)

    def test_no_budget_means_no_variance(self):
        scenario = make_scenario()
        projects = apply_parameters(scenario)
        demand = aggregate_demand([profile_from_project(p) for p in projects], START, 30)
        assert analyze_costs(scenario, projects, demand).budget_variance == 0.0


class TestTimeline:
    def test_buffer_extension_is_delay(self):
        scenario = make_scenario(
            projects=[make_project(phases=[make_phase(length=10), make_phase("Test", offset=10, length=6)])],
            parameters=[param(ParameterKind.TIMELINE_BUFFER, 0.5)],
        )
        timeline = analyze_timeline(scenario.projects, apply_parameters(scenario), rng=rng())
        t = timeline.project_timelines[0]
        assert t.delay_days == pytest.approx(8)
        assert t.estimated_start == t.planned_start
        assert t.estimated_end == t.planned_end + timedelta(days=8)

    def test_uncertain_project_is_delayed(self):
        projects = [make_project(probability=0.5)]
        t = analyze_timeline(projects, projects, rng=rng()).project_timelines[0]
        assert 0 <= t.delay_days <= 15

    def test_milestones_sorted_with_risk(self):
        project = make_project(priority="critical", phases=[
            make_phase("Test", offset=10, length=5, util=0.6),
            make_phase("Build", offset=0, length=10, util=0.9),
        ])
        timeline = analyze_timeline([project], [project], rng=rng())
        assert timeline.critical_path_count == 1
        assert [m.name for m in timeline.milestones] == ["Project P1 - Build", "Project P1 - Test"]
        assert [m.risk for m in timeline.milestones] == ["high", "medium"]


class TestConstraints:
    def evaluate(self, constraints, capacity=None, projects=None):
        scenario = make_scenario(projects=projects, constraints=constraints)
        return evaluate_scenario(
            scenario, 30, baseline_capacity=capacity or {"qa": 2}, rule_config=FAST, rng=rng(),
        )

    def test_resource_limit(self):
        result = self.evaluate([ScenarioConstraint("C1", "resource_limit", {"max_utilization": 1.0})])
        assert len(result.violations) == 1
        v = result.violations[0]
        assert v.severity == "error"
        assert v.description == "qa overallocated by 100.0%"
        assert v.impacted_projects == ["P1"]
        assert v.estimated_cost == pytest.approx(10 * 1.0 * 2 * 500)

    def test_budget_limit(self):
        projects = [make_project(budget=1000)]
        result = self.evaluate([ScenarioConstraint("C2", "budget_limit", {}, "error")], projects=projects)
        v = result.violations[0]
        assert v.severity == "error"
        assert v.estimated_cost == pytest.approx(20000 - 1000)

    def test_timeline_deadline(self):
        deadline = (START + timedelta(days=5)).isoformat()
        result = self.evaluate([ScenarioConstraint("C3", "timeline", {"deadline": deadline})])
        assert result.violations[0].impacted_projects == ["P1"]

    def test_skill_availability(self):
        projects = [make_project(phases=[make_phase(), make_phase("Model", skills=("ml",), team=1)])]
        result = self.evaluate([ScenarioConstraint("C4", "skill_availability")], projects=projects)
        by_text = {v.description: v.severity for v in result.violations}
        assert by_text == {
            "qa peak demand 4.0 FTE exceeds available 2.0 FTE": "warning",
            "No capacity available for required skill ml": "error",
        }

    def test_satisfied_constraints_are_silent(self):
        result = self.evaluate(
            [ScenarioConstraint("C1", "resource_limit"), ScenarioConstraint("C5", "mystery")],
            capacity={"qa": 10},
        )
        assert result.violations == []


class TestEvaluateScenario:
    def test_non_positive_horizon_rejected(self):
        with pytest.raises(ScenarioValidationError):
            evaluate_scenario(make_scenario(), 0)

    def test_result_shape(self):
        result = evaluate_scenario(make_scenario(), 30, baseline_capacity={"qa": 10}, rule_config=FAST, rng=rng())
        assert result.scenario_id == "S1"
        assert len(result.demand.curves) == 30
        assert len(result.utilization.overall) == 30
        assert result.capacity == {"qa": 10.0}
        assert result.demand_forecast is not None
        assert result.risk.monte_carlo.iterations == 200

    def test_short_pipeline_skips_forecast(self):
        scenario = make_scenario(projects=[make_project(phases=[make_phase(length=3)])])
        result = evaluate_scenario(scenario, 30, baseline_capacity={"qa": 10}, rule_config=FAST, rng=rng())
        assert result.demand_forecast is None

    def test_baseline_series_adds_load(self):
        history = [(START - timedelta(days=14 - i), 2.0) for i in range(14)]
        result = evaluate_scenario(
            make_scenario(), 30, baseline_capacity={"qa": 10}, baseline_series=history,
            rule_config=FAST, rng=rng(),
        )
        assert result.demand_forecast.data_points == 14
        assert result.utilization.overall[0] == pytest.approx(0.6)
        assert result.utilization.overall[20] == pytest.approx(0.2)

    def test_allocations_feed_conflicts_and_cost(self):
        rows = [
            ScenarioAllocation("A", "S1", "P1", "E1", START, 60, end_date=date(2024, 1, 31)),
            ScenarioAllocation("B", "S1", "P2", "E1", START, 60, end_date=date(2024, 1, 31)),
        ]
        result = evaluate_scenario(
            make_scenario(), 30, allocations=rows, baseline_capacity={"qa": 10},
            rule_config=FAST, rng=rng(),
        )
        assert len(result.conflicts) == 1
        assert result.cost.allocation_cost > 0

    def test_zero_probability_project_sinks_success(self):
        scenario = make_scenario(projects=[
            make_project("P1", budget=1000, probability=1.0),
            make_project("P2", budget=3000, probability=0.0),
        ])
        result = evaluate_scenario(scenario, 60, baseline_capacity={"qa": 10}, rule_config=FAST, rng=rng())
        assert result.success_probability == 0.0
        assert result.demand.total_demand[0] == pytest.approx(4.0)
        assert set(result.cost.cost_by_project) == {"P1"}
        assert result.cost.total_budget == 1000


class TestCompare:
    def results(self):
        base = make_scenario(sid="A")
        bigger = make_scenario(sid="B", parameters=[param(ParameterKind.TEAM_SIZE_MULTIPLIER, 2.0)])
        kwargs = dict(horizon_days=30, baseline_capacity={"qa": 10}, rule_config=FAST)
        return evaluate_scenario(base, rng=rng(), **kwargs), evaluate_scenario(bigger, rng=rng(), **kwargs)

    def test_cost_metric(self):
        a, b = self.results()
        comparison = compare_scenarios(a, b, "Base", "Bigger")
        cost = comparison.metric("total_cost")
        assert cost.value_b == pytest.approx(2 * cost.value_a)
        assert cost.percentage_change == pytest.approx(100.0)
        assert cost.better == "a"
        assert comparison.scenario_a_id == "A"
        assert comparison.scenario_b_id == "B"

    def test_higher_utilization_is_better(self):
        a, b = self.results()
        assert compare_scenarios(a, b).metric("average_utilization").better == "b"

    def test_identical_results_tie(self):
        a, _ = self.results()
        comparison = compare_scenarios(a, a)
        assert all(m.better is None for m in comparison.metrics)


class TestSkillGaps:
    def test_gaps_ranked_by_criticality(self):
        projects = [make_project(phases=[make_phase(), make_phase("Model", skills=("ml",), team=1)])]
        result = evaluate_scenario(
            make_scenario(projects=projects), 30,
            baseline_capacity={"qa": 2, "dev": 10}, rule_config=FAST, rng=rng(),
        )
        gaps = analyze_skill_gaps(result)
        assert [g.skill for g in gaps] == ["qa", "ml"]
        assert gaps[0].gap == pytest.approx(2.0)
        assert gaps[0].criticality == pytest.approx(1.0)
        assert gaps[1].capacity == 0.0

    def test_no_gaps(self):
        result = evaluate_scenario(make_scenario(), 30, baseline_capacity={"qa": 10}, rule_config=FAST, rng=rng())
        assert analyze_skill_gaps(result) == []


if __name__ == "__main__":
    import pytest
    pytest.main([__file__, "-v"])
