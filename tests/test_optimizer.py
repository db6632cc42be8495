"""Tests for sensitivity analysis and the genetic optimizer."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from datetime import date, timedelta
from itertools import count

import numpy as np
import pytest

from models.demand import ProjectPhase
from models.results import ConstraintViolation
from models.scenario import (
    ParameterKind, Scenario, ScenarioConstraint, ScenarioParameter, ScenarioProject, default_parameters,
)
from engine.errors import ScenarioValidationError
from engine.optimizer import (
    run_sensitivity_analysis, evaluate_fitness, optimize_scenario, mutate_value,
    _mutate, _next_generation, _tournament,
)
from engine.scenario_engine import evaluate_scenario

START = date(2024, 1, 1)
FAST = {"monte_carlo_iterations": 100, "population_size": 6, "max_workers": 2}


def make_scenario(probability=0.8):
    phase = ProjectPhase("Build", START, START + timedelta(days=9), 4, ("qa",), 1.0)
    project = ScenarioProject(
        project_id="P1", name="Alpha", start_date=START, end_date=phase.end_date,
        phases=[phase], probability=probability,
    )
    return Scenario(
        scenario_id="S1", name="Base", description="", scenario_type="what-if",
        base_date=START, projects=[project], parameters=default_parameters([project]),
    )


def evaluator(scenario):
    return evaluate_scenario(
        scenario, 30, baseline_capacity={"qa": 10}, rule_config=FAST,
        rng=np.random.default_rng(0),
    )


class TestSensitivity:
    def test_cost_scales_with_team_multiplier(self):
        results = run_sensitivity_analysis(
            make_scenario(), ["team_size_multiplier"], [-0.5, 0.0, 0.5], evaluate=evaluator,
        )
        assert len(results) == 1
        points = results[0].points
        assert [p.value for p in points] == [0.5, 1.0, 1.5]
        assert [p.metric_change for p in points] == pytest.approx([0.5, 0.0, 0.5])
        assert results[0].sensitivity == pytest.approx(1 / 3)

    def test_values_clamped_to_bounds(self):
        results = run_sensitivity_analysis(
            make_scenario(), ["team_size_multiplier"], [-0.8, 1.5], evaluate=evaluator,
        )
        assert [p.value for p in results[0].points] == [0.5, 2.0]

    def test_project_probability_parameter(self):
        results = run_sensitivity_analysis(
            make_scenario(), ["project_P1_probability"], [0.0], evaluate=evaluator,
        )
        assert results[0].points[0].value == pytest.approx(0.8)

    def test_unknown_parameter(self):
        with pytest.raises(ScenarioValidationError) as exc:
            run_sensitivity_analysis(make_scenario(), ["headcount"], evaluate=evaluator)
        assert exc.value.details == {"parameter_id": "headcount"}

    def test_no_variations(self):
        with pytest.raises(ScenarioValidationError):
            run_sensitivity_analysis(make_scenario(), ["timeline_buffer"], [], evaluate=evaluator)


class TestFitness:
    def test_risk_only(self):
        result = evaluator(make_scenario(probability=1.0))
        assert evaluate_fitness(result, ["minimize_risk"]) == pytest.approx(1000.0)

    def test_violations_penalized(self):
        result = evaluator(make_scenario(probability=1.0))
        result.violations = [
            ConstraintViolation("C1", "error", "broken"),
            ConstraintViolation("C2", "warning", "bent"),
        ]
        assert evaluate_fitness(result, ["minimize_risk"]) == pytest.approx(1000 - 500 - 100)

    def test_unknown_objective(self):
        with pytest.raises(ScenarioValidationError):
            evaluate_fitness(evaluator(make_scenario()), ["maximize_fun"])


class TestMutation:
    def test_numeric_stays_in_bounds(self):
        param = default_parameters([])[0]
        rng = np.random.default_rng(5)
        values = [mutate_value(param, 2.0, rng, magnitude=0.5) for _ in range(50)]
        assert all(0.5 <= v <= 2.0 for v in values)
        assert any(v < 2.0 for v in values)

    def test_boolean_flips_at_mutation_rate(self):
        param = ScenarioParameter(ParameterKind.SKILL_AVAILABILITY, True, value_type="boolean")
        rng = np.random.default_rng(9)
        flips = sum(1 for _ in range(2000) if _mutate([True], [param], rng, 0.1, 0.2) == [False])
        assert 120 < flips < 280


class TestSelection:
    def test_tournament_skips_failed_individuals(self):
        fitness = [float("-inf")] * 19 + [1.0]
        rng = np.random.default_rng(0)
        assert {_tournament(fitness, rng, 3) for _ in range(200)} == {19}

    def test_tournament_needs_an_evaluated_individual(self):
        with pytest.raises(ValueError):
            _tournament([float("-inf")] * 3, np.random.default_rng(0), 3)

    def test_failed_individuals_are_not_elites(self):
        params = make_scenario().parameters
        good = [p.value for p in params]
        failed = [2.0] + good[1:]
        population = [failed] * 9 + [good]
        fitness = [float("-inf")] * 9 + [5.0]
        offspring = _next_generation(
            population, fitness, params, np.random.default_rng(0), {"mutation_rate": 0.0}, good,
        )
        assert len(offspring) == 10
        assert all(child == good for child in offspring)

    def test_all_failed_restarts_from_fallback(self):
        params = make_scenario().parameters
        original = [p.value for p in params]
        population = [[2.0] + original[1:]] * 4
        offspring = _next_generation(
            population, [float("-inf")] * 4, params, np.random.default_rng(0), {}, original,
        )
        assert offspring[0] == original
        assert len(offspring) == 4


class TestOptimize:
    def test_never_worse_than_original(self):
        result = optimize_scenario(
            make_scenario(), generations=4, evaluate=evaluator,
            rng=np.random.default_rng(11), rule_config=FAST,
        )
        assert result.fitness >= result.original_fitness
        assert result.generations_run == len(result.convergence_history) <= 4
        assert result.scenario.scenario_id == "S1-optimized"
        assert result.scenario.name == "Base (optimized)"
        assert set(result.improvements) == {
            "cost_reduction", "risk_reduction", "success_probability_improvement", "delay_reduction",
        }

    def test_parameter_changes_reported(self):
        result = optimize_scenario(
            make_scenario(), generations=4, evaluate=evaluator,
            rng=np.random.default_rng(11), rule_config=FAST,
        )
        original = {p.parameter_id: p.value for p in make_scenario().parameters}
        for parameter_id, (old, new) in result.parameter_changes.items():
            assert original[parameter_id] == old
            assert old != new

    def test_optimized_scenario_keeps_extra_constraints(self):
        extra = ScenarioConstraint("C1", "resource_limit", {"max_utilization": 0.1})
        result = optimize_scenario(
            make_scenario(), ["minimize_risk"], constraints=[extra], generations=2,
            evaluate=evaluator, rng=np.random.default_rng(3), rule_config=FAST,
        )
        assert result.scenario.constraints == [extra]
        rescored = evaluate_fitness(evaluator(result.scenario), ["minimize_risk"], FAST)
        assert rescored == pytest.approx(result.fitness)

    def test_input_scenario_untouched(self):
        scenario = make_scenario()
        before = [p.value for p in scenario.parameters]
        optimize_scenario(scenario, generations=2, evaluate=evaluator,
                          rng=np.random.default_rng(2), rule_config=FAST)
        assert [p.value for p in scenario.parameters] == before

    def test_deadline_stops_search(self):
        ticks = count()
        result = optimize_scenario(
            make_scenario(), generations=20, evaluate=evaluator, rng=np.random.default_rng(1),
            deadline_seconds=0, rule_config=FAST, clock=lambda: next(ticks),
        )
        assert result.stopped_reason == "deadline"
        assert result.generations_run == 1

    def test_convergence_stops_search(self):
        cfg = dict(FAST, convergence_window=2, convergence_threshold=1e12)
        result = optimize_scenario(
            make_scenario(), generations=20, evaluate=evaluator,
            rng=np.random.default_rng(1), rule_config=cfg,
        )
        assert result.converged
        assert result.stopped_reason == "converged"
        assert result.generations_run == 3

    def test_failing_individuals_are_skipped(self):
        def fragile(scenario):
            if scenario.parameter_value(ParameterKind.TEAM_SIZE_MULTIPLIER) != 1.0:
                raise RuntimeError("evaluation backend unavailable")
            return evaluator(scenario)

        result = optimize_scenario(
            make_scenario(), generations=2, evaluate=fragile,
            rng=np.random.default_rng(4), rule_config=FAST,
        )
        assert result.failed_evaluations > 0
        assert result.fitness >= result.original_fitness
        assert result.scenario.parameter_value(ParameterKind.TEAM_SIZE_MULTIPLIER) == 1.0

    def test_original_must_evaluate(self):
        def broken(scenario):
            raise RuntimeError("down")

        with pytest.raises(ScenarioValidationError):
            optimize_scenario(make_scenario(), generations=1, evaluate=broken,
                              rng=np.random.default_rng(4), rule_config=FAST)

    def test_unknown_objective(self):
        with pytest.raises(ScenarioValidationError):
            optimize_scenario(make_scenario(), ["maximize_fun"], evaluate=evaluator)

    def test_generations_must_be_positive(self):
        with pytest.raises(ScenarioValidationError):
            optimize_scenario(make_scenario(), generations=0, evaluate=evaluator)


if __name__ == "__main__":
    import pytest
    pytest.main([__file__, "-v"])
