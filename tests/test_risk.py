"""Tests for Monte Carlo risk assessment."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from datetime import date, timedelta

import numpy as np
import pytest

from models.scenario import ScenarioProject
from models.results import UtilizationMetrics
from engine.risk import run_monte_carlo, assess_risk, risk_label

BASE = date(2024, 1, 1)


def make_project(pid="P1", offset=0, days=100, probability=1.0, budget=1000.0, team=2):
    start = BASE + timedelta(days=offset)
    return ScenarioProject(
        project_id=pid, name=pid, start_date=start, end_date=start + timedelta(days=days - 1),
        budget=budget, probability=probability, team_size=team,
    )


def rng(seed=1):
    return np.random.default_rng(seed)


class TestMonteCarlo:
    def test_certain_projects_always_succeed(self):
        result = run_monte_carlo([make_project(), make_project("P2")], BASE, 500, rng())
        assert result.success_probability == 1.0
        assert result.iterations == 500

    def test_impossible_project_never_succeeds(self):
        result = run_monte_carlo([make_project(), make_project("P2", probability=0.0)], BASE, 500, rng())
        assert result.success_probability == 0.0

    def test_success_is_joint(self):
        projects = [make_project("P1", probability=0.5), make_project("P2", probability=0.5)]
        result = run_monte_carlo(projects, BASE, 5000, rng())
        assert result.success_probability == pytest.approx(0.25, abs=0.03)

    def test_duration_within_multiplier_range(self):
        result = run_monte_carlo([make_project(days=100)], BASE, 2000, rng())
        assert 80 <= result.estimated_duration.min <= result.estimated_duration.max <= 120
        assert result.estimated_duration.mean == pytest.approx(100, abs=2)
        assert result.estimated_duration.std > 0

    def test_cost_within_multiplier_range(self):
        result = run_monte_carlo([make_project(budget=1000)], BASE, 2000, rng())
        assert 850 <= result.estimated_cost.min <= result.estimated_cost.max <= 1150

    def test_cost_without_budget_uses_daily_rate(self):
        project = make_project(days=10, budget=0.0, team=2)
        result = run_monte_carlo([project], BASE, 2000, rng(), {"daily_rate": 100})
        assert result.estimated_cost.mean == pytest.approx(2000, rel=0.02)

    def test_duration_measured_from_base_date(self):
        result = run_monte_carlo([make_project(offset=50, days=10)], BASE, 200, rng())
        assert 58 <= result.estimated_duration.min
        assert result.estimated_duration.max <= 62

    def test_critical_path_favors_latest_project(self):
        projects = [make_project("P1", offset=0, days=10), make_project("P2", offset=200, days=10)]
        assert run_monte_carlo(projects, BASE, 200, rng()).critical_path == ["P2"]

    def test_seeded_runs_repeat(self):
        projects = [make_project("P1", probability=0.7), make_project("P2", probability=0.4)]
        a = run_monte_carlo(projects, BASE, 300, rng(7))
        b = run_monte_carlo(projects, BASE, 300, rng(7))
        assert a == b

    def test_empty_pipeline(self):
        result = run_monte_carlo([], BASE, 100, rng())
        assert result.success_probability == 1.0
        assert result.estimated_duration.max == 0.0
        assert result.critical_path == []


class TestRiskLabel:
    @pytest.mark.parametrize("score,label", [
        (0.1, "low"), (0.3, "low"), (0.31, "medium"), (0.51, "high"), (0.71, "critical"),
    ])
    def test_thresholds(self, score, label):
        assert risk_label(score) == label


class TestAssessRisk:
    def test_base_factors_only(self):
        assessment = assess_risk([], BASE, rng=rng())
        assert [f.category for f in assessment.risk_factors] == ["Resource Availability", "Scope Creep"]
        assert assessment.overall_risk == "low"

    def test_delivery_factor_uses_failure_probability(self):
        projects = [make_project("P1", probability=0.5), make_project("P2", probability=0.5)]
        assessment = assess_risk(projects, BASE, rng=rng(), rule_config={"monte_carlo_iterations": 4000})
        delivery = next(f for f in assessment.risk_factors if f.category == "Delivery")
        assert delivery.probability == pytest.approx(0.75, abs=0.03)
        assert assessment.overall_risk == "medium"

    def test_overload_raises_risk(self):
        projects = [make_project(probability=0.0)]
        utilization = UtilizationMetrics(overall=[1.5] * 10, by_skill={})
        assessment = assess_risk(projects, BASE, utilization, rng=rng())
        overload = next(f for f in assessment.risk_factors if f.category == "Capacity Overload")
        assert overload.probability == 1.0
        assert assessment.overall_risk == "high"


if __name__ == "__main__":
    import pytest
    pytest.main([__file__, "-v"])
