"""Sensitivity analysis and genetic-algorithm parameter search for scenarios."""

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from models.scenario import Scenario, ScenarioConstraint, ScenarioParameter
from models.results import ScenarioResult
from engine.errors import ScenarioValidationError
from engine.scenario_engine import evaluate_scenario
from config.defaults import (
    POPULATION_SIZE, ELITE_FRACTION, TOURNAMENT_SIZE, MUTATION_RATE,
    MUTATION_MAGNITUDE, MAX_GENERATIONS, CONVERGENCE_WINDOW,
    CONVERGENCE_THRESHOLD, ERROR_PENALTY, WARNING_PENALTY,
    DEFAULT_OBJECTIVES, DEFAULT_VARIATIONS, MAX_WORKERS,
)

logger = logging.getLogger(__name__)

Evaluator = Callable[[Scenario], ScenarioResult]
Genome = List[Any]

OBJECTIVES = ["minimize_cost", "minimize_timeline", "minimize_risk"]


@dataclass
class SensitivityPoint:
    variation: float
    value: float
    total_cost: float
    metric_change: float
    success_probability: float


@dataclass
class SensitivityResult:
    parameter_id: str
    points: List[SensitivityPoint]
    sensitivity: float  # mean absolute normalized cost change


@dataclass
class OptimizationResult:
    scenario: Scenario
    fitness: float
    original_fitness: float
    original_result: ScenarioResult
    optimized_result: ScenarioResult
    improvements: Dict[str, float]
    convergence_history: List[Tuple[int, float, float]]  # (generation, best, average)
    generations_run: int
    converged: bool = False
    stopped_reason: str = "generation_cap"  # "generation_cap", "converged", "deadline"
    failed_evaluations: int = 0
    parameter_changes: Dict[str, Tuple[Any, Any]] = field(default_factory=dict)


def default_evaluator(rule_config: Optional[dict] = None) -> Evaluator:
    """Evaluator with a fixed seed, so equal parameters always score the same."""
    cfg = rule_config or {}
    seed = cfg.get("evaluation_seed", 0)

    def _evaluate(scenario: Scenario) -> ScenarioResult:
        return evaluate_scenario(scenario, rule_config=cfg, rng=np.random.default_rng(seed))
    return _evaluate


def run_sensitivity_analysis(
    scenario: Scenario,
    parameter_ids: Sequence[str],
    variations: Optional[Sequence[float]] = None,
    evaluate: Optional[Evaluator] = None,
    rule_config: Optional[dict] = None,
) -> List[SensitivityResult]:
    """Perturb each parameter by relative ``variations`` and measure cost response.

    Perturbed values are clamped to the parameter's declared bounds.
    """
    evaluate = evaluate or default_evaluator(rule_config)
    variations = list(DEFAULT_VARIATIONS if variations is None else variations)
    if not variations:
        raise ScenarioValidationError("At least one variation is required")

    base_result = evaluate(scenario)
    base_cost = base_result.total_cost

    results = []
    for parameter_id in parameter_ids:
        index = next(
            (i for i, p in enumerate(scenario.parameters) if p.parameter_id == parameter_id),
            None,
        )
        if index is None:
            raise ScenarioValidationError(
                f"Unknown parameter {parameter_id}", {"parameter_id": parameter_id},
            )
        param = scenario.parameters[index]
        if not param.is_numeric:
            raise ScenarioValidationError(
                f"Parameter {parameter_id} is not numeric", {"parameter_id": parameter_id},
            )

        points = []
        for variation in variations:
            value = param.clamp(float(param.value) * (1 + variation))
            values = [p.value for p in scenario.parameters]
            values[index] = value
            variant = scenario.with_parameter_values(
                values, scenario_id=f"{scenario.scenario_id}-{parameter_id}-{variation:+.2f}",
            )
            result = evaluate(variant)
            change = abs(result.total_cost - base_cost) / base_cost if base_cost else 0.0
            points.append(SensitivityPoint(
                variation=variation,
                value=value,
                total_cost=result.total_cost,
                metric_change=change,
                success_probability=result.success_probability,
            ))

        sensitivity = sum(p.metric_change for p in points) / len(points)
        logger.info("Sensitivity of %s: %.4f", parameter_id, sensitivity)
        results.append(SensitivityResult(parameter_id=parameter_id, points=points, sensitivity=sensitivity))
    return results


def evaluate_fitness(
    result: ScenarioResult,
    objectives: Sequence[str] = DEFAULT_OBJECTIVES,
    rule_config: Optional[dict] = None,
) -> float:
    """Higher is better. Inverse cost and delay, success probability, minus
    a penalty per constraint violation."""
    cfg = rule_config or {}
    error_penalty = cfg.get("error_penalty", ERROR_PENALTY)
    warning_penalty = cfg.get("warning_penalty", WARNING_PENALTY)

    fitness = 0.0
    for objective in objectives:
        if objective == "minimize_cost":
            fitness += 1_000_000 / (result.total_cost + 1)
        elif objective == "minimize_timeline":
            fitness += 365 / (result.average_delay + 1)
        elif objective == "minimize_risk":
            fitness += result.success_probability * 1000
        else:
            raise ScenarioValidationError(f"Unknown objective {objective}", {"objective": objective})

    for violation in result.violations:
        fitness -= error_penalty if violation.severity == "error" else warning_penalty
    return fitness


def mutate_value(
    param: ScenarioParameter,
    value: Any,
    rng: np.random.Generator,
    magnitude: float = MUTATION_MAGNITUDE,
    flip_rate: float = MUTATION_RATE,
) -> Any:
    """Nudge a numeric value by at most ``magnitude`` of its declared range."""
    if param.is_numeric:
        if param.value_range > 0:
            step = rng.uniform(-magnitude, magnitude) * param.value_range
        else:
            step = rng.uniform(-magnitude, magnitude) * abs(float(value))
        return param.clamp(float(value) + float(step))
    if param.value_type == "boolean":
        return (not value) if rng.random() < flip_rate else value
    return value


def _mutate(
    genome: Genome,
    params: Sequence[ScenarioParameter],
    rng: np.random.Generator,
    rate: float,
    magnitude: float,
) -> Genome:
    # booleans already passed the rate gate, so they always flip here
    return [
        mutate_value(p, v, rng, magnitude, flip_rate=1.0) if rng.random() < rate else v
        for p, v in zip(params, genome)
    ]


def _viable(fitness: Sequence[float]) -> List[int]:
    return [i for i, f in enumerate(fitness) if math.isfinite(f)]


def _tournament(fitness: Sequence[float], rng: np.random.Generator, size: int) -> int:
    """Best of ``size`` random draws among individuals that evaluated."""
    candidates = _viable(fitness)
    if not candidates:
        raise ValueError("No evaluated individuals to select from")
    contenders = rng.choice(candidates, size=size)
    return int(max(contenders, key=lambda i: fitness[i]))


def _crossover(a: Genome, b: Genome, rng: np.random.Generator) -> Genome:
    if not a:
        return []
    point = int(rng.integers(0, len(a)))
    return list(a[:point]) + list(b[point:])


def _next_generation(
    population: List[Genome],
    fitness: List[float],
    params: Sequence[ScenarioParameter],
    rng: np.random.Generator,
    cfg: dict,
    fallback: Genome,
) -> List[Genome]:
    """Elites plus mutated crossovers of tournament winners.

    Failed individuals never become elites or parents; when a whole
    generation failed, the next one is rebuilt around ``fallback``.
    """
    elite_fraction = cfg.get("elite_fraction", ELITE_FRACTION)
    tournament_size = cfg.get("tournament_size", TOURNAMENT_SIZE)
    rate = cfg.get("mutation_rate", MUTATION_RATE)
    magnitude = cfg.get("mutation_magnitude", MUTATION_MAGNITUDE)

    viable = _viable(fitness)
    if not viable:
        logger.warning("Every individual failed; restarting from the original parameters")
        offspring = [list(fallback)]
        while len(offspring) < len(population):
            offspring.append(_mutate(fallback, params, rng, rate, magnitude))
        return offspring

    order = sorted(viable, key=lambda i: fitness[i], reverse=True)
    elite_count = max(1, int(len(population) * elite_fraction))
    offspring = [list(population[i]) for i in order[:elite_count]]
    while len(offspring) < len(population):
        parent_a = population[_tournament(fitness, rng, tournament_size)]
        parent_b = population[_tournament(fitness, rng, tournament_size)]
        child = _crossover(parent_a, parent_b, rng)
        offspring.append(_mutate(child, params, rng, rate, magnitude))
    return offspring


def _converged(history: Sequence[Tuple[int, float, float]], window: int, threshold: float) -> bool:
    if len(history) <= window:
        return False
    recent = [best for _, best, _ in history[-window:]]
    if not all(math.isfinite(b) for b in recent):
        return False
    return float(np.var(recent)) < threshold


def _improvements(original: ScenarioResult, optimized: ScenarioResult) -> Dict[str, float]:
    original_cost, optimized_cost = original.total_cost, optimized.total_cost
    original_risk = 1 - original.success_probability
    optimized_risk = 1 - optimized.success_probability
    original_delay, optimized_delay = original.average_delay, optimized.average_delay
    return {
        "cost_reduction": (original_cost - optimized_cost) / original_cost if original_cost else 0.0,
        "risk_reduction": (original_risk - optimized_risk) / original_risk if original_risk else 0.0,
        "success_probability_improvement": optimized.success_probability - original.success_probability,
        "delay_reduction": (original_delay - optimized_delay) / original_delay if original_delay else 0.0,
    }


def optimize_scenario(
    scenario: Scenario,
    objectives: Optional[Sequence[str]] = None,
    constraints: Optional[Sequence[ScenarioConstraint]] = None,
    generations: int = MAX_GENERATIONS,
    evaluate: Optional[Evaluator] = None,
    rng: Optional[np.random.Generator] = None,
    deadline_seconds: Optional[float] = None,
    rule_config: Optional[dict] = None,
    clock: Callable[[], float] = time.monotonic,
) -> OptimizationResult:
    """Genetic search over the scenario's parameter values.

    A heuristic: it keeps the best individual ever seen, so the result never
    scores below the best of the first generation (which contains the
    unmodified scenario), but it does not guarantee a global optimum.
    Individuals whose evaluation raises are logged and never selected.
    Stops at ``generations``, on convergence of the best-fitness trace, or
    when ``deadline_seconds`` of wall time have elapsed. The returned
    scenario carries the extra ``constraints`` it was scored against.
    """
    cfg = rule_config or {}
    objectives = list(objectives or DEFAULT_OBJECTIVES)
    unknown = [o for o in objectives if o not in OBJECTIVES]
    if unknown:
        raise ScenarioValidationError(f"Unknown objectives: {', '.join(unknown)}", {"objectives": unknown})
    if generations < 1:
        raise ScenarioValidationError("generations must be at least 1", {"generations": generations})

    population_size = cfg.get("population_size", POPULATION_SIZE)
    window = cfg.get("convergence_window", CONVERGENCE_WINDOW)
    threshold = cfg.get("convergence_threshold", CONVERGENCE_THRESHOLD)
    magnitude = cfg.get("mutation_magnitude", MUTATION_MAGNITUDE)
    flip_rate = cfg.get("mutation_rate", MUTATION_RATE)
    workers = cfg.get("max_workers", MAX_WORKERS)
    rng = rng if rng is not None else np.random.default_rng(cfg.get("random_seed"))
    evaluate = evaluate or default_evaluator(cfg)

    base = replace(scenario, constraints=list(scenario.constraints) + list(constraints or []))
    params = base.parameters
    original = [p.value for p in params]

    # generation zero: the original plus fully mutated variants
    population: List[Genome] = [list(original)]
    while len(population) < population_size:
        population.append([mutate_value(p, v, rng, magnitude, flip_rate) for p, v in zip(params, original)])

    scored: Dict[Tuple, Tuple[float, Optional[ScenarioResult]]] = {}
    failures = 0

    def _score(genome: Genome) -> Tuple[float, Optional[ScenarioResult]]:
        candidate = base.with_parameter_values(genome, scenario_id=f"{scenario.scenario_id}-candidate")
        try:
            result = evaluate(candidate)
        except Exception:
            logger.warning("Skipping optimizer individual %r", genome, exc_info=True)
            return float("-inf"), None
        return evaluate_fitness(result, objectives, cfg), result

    history: List[Tuple[int, float, float]] = []
    best_genome, best_fitness, best_result = list(original), float("-inf"), None
    stopped = "generation_cap"
    started = clock()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        for generation in range(generations):
            keys = [tuple(repr(v) for v in g) for g in population]
            pending = {k: g for k, g in zip(keys, population) if k not in scored}
            for key, outcome in zip(pending, pool.map(_score, pending.values())):
                scored[key] = outcome
                if outcome[1] is None:
                    failures += 1
            fitness = [scored[k][0] for k in keys]

            finite = [f for f in fitness if math.isfinite(f)]
            gen_best = max(fitness)
            gen_avg = sum(finite) / len(finite) if finite else float("-inf")
            history.append((generation, gen_best, gen_avg))

            leader = fitness.index(gen_best)
            if gen_best > best_fitness:
                best_genome = list(population[leader])
                best_fitness, best_result = scored[keys[leader]]
            logger.info(
                "Generation %d: best %.2f, average %.2f, best so far %.2f",
                generation, gen_best, gen_avg, best_fitness,
            )

            if _converged(history, window, threshold):
                stopped = "converged"
                break
            if deadline_seconds is not None and clock() - started >= deadline_seconds:
                stopped = "deadline"
                logger.info("Optimizer deadline reached after %d generations", generation + 1)
                break
            population = _next_generation(population, fitness, params, rng, cfg, original)

    original_fitness, original_result = scored[tuple(repr(v) for v in original)]
    if original_result is None:
        raise ScenarioValidationError(
            f"Scenario {scenario.scenario_id} could not be evaluated",
            {"scenario_id": scenario.scenario_id},
        )
    if best_result is None:
        best_genome, best_fitness, best_result = list(original), original_fitness, original_result

    optimized = replace(
        base.with_parameter_values(best_genome, scenario_id=f"{scenario.scenario_id}-optimized"),
        name=f"{scenario.name} (optimized)",
    )
    changes = {
        p.parameter_id: (old, new)
        for p, old, new in zip(params, original, best_genome) if old != new
    }
    return OptimizationResult(
        scenario=optimized,
        fitness=best_fitness,
        original_fitness=original_fitness,
        original_result=original_result,
        optimized_result=best_result,
        improvements=_improvements(original_result, best_result),
        convergence_history=history,
        generations_run=len(history),
        converged=stopped == "converged",
        stopped_reason=stopped,
        failed_evaluations=failures,
        parameter_changes=changes,
    )
