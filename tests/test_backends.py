"""Tests for the Optuna search backend."""
from __future__ import annotations

import csv
import itertools
import tempfile
import unittest
from pathlib import Path

import optuna
import pytest

from simopt.backends import (
    OptunaBackend,
    TrialLogger,
    build_sampler,
    optimize,
    parameter_names,
    wrap_study,
)
from simopt.evaluation import FeasibilityConstraint
from simopt.metrics import ExpectedValue
from simopt.models import (
    CounterConfig,
    CounterModel,
    CounterPolicy,
    CounterScenario,
    ElevationPolicy,
    HouseConfig,
    HouseElevationModel,
    HouseScenario,
)
from simopt.pareto import dominates
from simopt.problem import OptimizationProblem
from simopt.types import Policy, maximize, minimize

optuna.logging.set_verbosity(optuna.logging.WARNING)


def _counter_problem(objective=minimize, policy=CounterPolicy, **kwargs) -> OptimizationProblem:
    return OptimizationProblem(
        CounterModel(),
        CounterConfig(),
        [CounterScenario()],
        policy,
        [ExpectedValue("mean_total", "total")],
        [objective("mean_total")],
        **kwargs,
    )


def _house_problem() -> OptimizationProblem:
    return OptimizationProblem(
        HouseElevationModel(),
        HouseConfig(horizon_years=10),
        [HouseScenario(surge_loc=4.0, surge_scale=1.0), HouseScenario(surge_loc=5.0, surge_scale=1.5)],
        ElevationPolicy,
        [
            ExpectedValue("construction", "construction_cost"),
            ExpectedValue("damages", "npv_damages"),
        ],
        [minimize("construction"), minimize("damages")],
    )


class OptunaBackendTests(unittest.TestCase):
    def test_multi_objective_front_is_non_dominated(self) -> None:
        result = optimize(_house_problem(), OptunaBackend(15, sampler="random", seed=0))
        self.assertEqual(result.iterations, 15)
        self.assertFalse(result.converged)
        self.assertEqual(result.front.names, ("construction", "damages"))
        points = [point.objectives for point in result.front]
        self.assertGreater(len(points), 0)
        for a, b in itertools.permutations(points, 2):
            self.assertFalse(dominates(a, b))
        self.assertEqual(result.convergence_info["sampler"], "RandomSampler")

    def test_patience_stops_early_and_marks_convergence(self) -> None:
        backend = OptunaBackend(50, sampler="random", seed=1, patience=2)
        result = optimize(_counter_problem(), backend)
        self.assertTrue(result.converged)
        self.assertLess(result.iterations, 50)
        self.assertIn("no Pareto improvement", result.convergence_info["stopped_reason"])

    def test_maximized_objective_is_reported_on_original_scale(self) -> None:
        result = optimize(_counter_problem(maximize), OptunaBackend(20, sampler="tpe", seed=3))
        increment = result.best_params[0]
        self.assertGreater(result.best_objectives["mean_total"], 0.0)
        self.assertAlmostEqual(result.best_objectives["mean_total"], 10.0 * increment, places=9)
        self.assertEqual(result.best_policy(_counter_problem(maximize)), CounterPolicy(increment=increment))

    def test_trial_log_has_one_row_per_trial(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log_file = Path(tmp) / "logs" / "trials.csv"
            optimize(_counter_problem(), OptunaBackend(5, sampler="random", seed=2, log_file=log_file))
            with log_file.open(newline="", encoding="utf-8") as fh:
                rows = list(csv.DictReader(fh))
        self.assertEqual(len(rows), 5)
        self.assertEqual(
            list(rows[0]),
            ["trial", "param_increment", "metric_mean_total", "objective_mean_total"],
        )
        for row in rows:
            self.assertAlmostEqual(
                float(row["objective_mean_total"]), 10.0 * float(row["param_increment"])
            )

    def test_infeasible_search_raises(self) -> None:
        problem = _counter_problem(
            constraints=[FeasibilityConstraint("never", lambda policy: False)]
        )
        with self.assertRaises(RuntimeError):
            optimize(problem, OptunaBackend(3, sampler="random", seed=0))


def test_tpe_multi_objective_falls_back_to_nsga2() -> None:
    with pytest.warns(RuntimeWarning, match="nsga2"):
        sampler = build_sampler("tpe", 0, n_objectives=2)
    assert isinstance(sampler, optuna.samplers.NSGAIISampler)


def test_unknown_sampler() -> None:
    with pytest.raises(ValueError):
        build_sampler("cmaes", 0)


def test_backend_from_mapping() -> None:
    backend = OptunaBackend.from_config({"n_trials": 3, "sampler": "RANDOM", "seed": 5})
    assert backend.config.sampler == "random"
    assert backend.config.n_trials == 3


def test_backend_rejects_invalid_settings() -> None:
    with pytest.raises(ValueError):
        OptunaBackend(0)
    with pytest.raises(ValueError):
        OptunaBackend(5, sampler="tpe", population_size=10)


def test_optimize_type_checks() -> None:
    with pytest.raises(TypeError):
        optimize("problem", OptunaBackend(1))  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        optimize(_counter_problem(), object())  # type: ignore[arg-type]


def test_wrap_existing_study() -> None:
    problem = _counter_problem()
    study = optuna.create_study(directions=["minimize"])
    study.add_trial(
        optuna.trial.create_trial(
            params={"increment": 0.5},
            distributions={"increment": optuna.distributions.FloatDistribution(0.0, 2.0)},
            values=[5.0],
        )
    )
    result = wrap_study(study, problem)
    assert result.best_params == (0.5,)
    assert result.best_objectives == {"mean_total": 5.0}
    assert result.convergence_info["n_pareto"] == 1


def test_parameter_names_follow_policy_fields() -> None:
    assert parameter_names(_counter_problem()) == ["increment"]


class VectorPolicy:
    def __init__(self, x) -> None:
        self.x = list(x)

    @classmethod
    def param_bounds(cls):
        return [(0.0, 1.0), (0.0, 1.0)]

    @classmethod
    def from_vector(cls, x):
        return cls(x)


def test_parameter_names_fall_back_to_positions() -> None:
    problem = _counter_problem(policy=VectorPolicy)
    assert parameter_names(problem) == ["x0", "x1"]


class ExplicitPolicy(Policy):
    increment: float = 1.0

    @classmethod
    def param_bounds(cls):
        return [(0.0, 2.0)]

    @classmethod
    def from_vector(cls, x):
        return cls(increment=float(x[0]))

    def params(self):
        return [self.increment]


def test_explicit_bounds_policy_runs_through_backend() -> None:
    problem = _counter_problem(policy=ExplicitPolicy)
    assert parameter_names(problem) == ["x0"]
    result = optimize(problem, OptunaBackend(3, sampler="random", seed=0))
    assert result.iterations == 3
    assert all(0.0 <= point.params[0] <= 2.0 for point in result.front)


def test_trial_logger_appends(tmp_path: Path) -> None:
    path = tmp_path / "log.csv"
    with TrialLogger(path, ["x"], ["m"], ["m"]) as logger:
        logger.log(0, {"x": 1.0}, {"m": 2.0}, [2.0])
    with TrialLogger(path, ["x"], ["m"], ["m"]) as logger:
        logger.log(1, {"x": 3.0}, {"m": 4.0}, [4.0])
    lines = path.read_text(encoding="utf-8").strip().splitlines()
    assert lines[0] == "trial,param_x,metric_m,objective_m"
    assert len(lines) == 3
