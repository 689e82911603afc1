"""Construction-time validation of optimization problems."""
from __future__ import annotations

import unittest
from typing import Annotated, List, Sequence, Tuple

import numpy as np
import pytest

from simopt.batching import FixedBatch, FractionBatch
from simopt.errors import ConstructionError, InterfaceNotImplementedError, ValidationError
from simopt.executors import SequentialExecutor
from simopt.metrics import ExpectedValue, Variance
from simopt.models import (
    CounterConfig,
    CounterModel,
    CounterPolicy,
    CounterScenario,
    HouseScenario,
)
from simopt.parameters import Continuous, Discrete, GenericField
from simopt.problem import OptimizationProblem
from simopt.types import Policy, Scenario, SimulationModel, ignore, maximize, minimize
from simopt.validation import ValidationMode


class CountingModel(CounterModel):
    calls = 0

    def run_timestep(self, state, action, t, config, scenario, rng):
        CountingModel.calls += 1
        return super().run_timestep(state, action, t, config, scenario, rng)


class IntegerPolicy(Policy):
    steps: Annotated[int, Discrete()] = 1


class NoVectorPolicy:
    @classmethod
    def param_bounds(cls) -> List[Tuple[float, float]]:
        return [(0.0, 1.0)]


class WrongTypePolicy:
    @classmethod
    def param_bounds(cls) -> List[Tuple[float, float]]:
        return [(0.0, 1.0)]

    @classmethod
    def from_vector(cls, x: Sequence[float]) -> dict:
        return {"x": list(x)}


class ShortParamsPolicy:
    def __init__(self, x: Sequence[float]) -> None:
        self.x = list(x)

    @classmethod
    def param_bounds(cls) -> List[Tuple[float, float]]:
        return [(0.0, 1.0), (0.0, 1.0)]

    @classmethod
    def from_vector(cls, x: Sequence[float]) -> "ShortParamsPolicy":
        return cls(x)

    def params(self) -> List[float]:
        return self.x[:1]


class NotedPolicy(Policy):
    increment: Annotated[float, Continuous(0.0, 2.0)] = 1.0
    note: Annotated[str, GenericField()] = ""


class CappedPolicy(CounterPolicy):
    def validate_for(self, config: CounterConfig) -> None:
        if config.n_steps > 3:
            raise ValueError("CappedPolicy supports at most three steps")


def _problem(**overrides):
    arguments = dict(
        model=CounterModel(),
        config=CounterConfig(),
        scenarios=[CounterScenario(offset=i) for i in range(10)],
        policy=CounterPolicy,
        metrics=[ExpectedValue("mean_total", "total"), Variance("var_total", "total")],
        objectives=[minimize("mean_total")],
    )
    arguments.update(overrides)
    return OptimizationProblem(**arguments)


class ProblemConstructionTests(unittest.TestCase):
    def test_valid_problem_exposes_derived_attributes(self) -> None:
        problem = _problem(objectives=[minimize("mean_total"), ignore("var_total")])
        self.assertEqual(problem.bounds, [(0.0, 2.0)])
        self.assertEqual(problem.n_params, 1)
        self.assertEqual(problem.n_scenarios, 10)
        self.assertEqual(problem.metric_names, ("mean_total", "var_total"))
        self.assertEqual([o.name for o in problem.active_objectives], ["mean_total"])
        self.assertIsInstance(problem.executor, SequentialExecutor)
        self.assertIn("CounterPolicy", repr(problem))

    def test_policy_instance_is_accepted(self) -> None:
        problem = _problem(policy=CounterPolicy(increment=0.5))
        self.assertIs(problem.policy_type, CounterPolicy)

    def test_bounds_matrix_has_lower_and_upper_rows(self) -> None:
        matrix = _problem().bounds_matrix()
        self.assertEqual(matrix.shape, (2, 1))
        np.testing.assert_array_equal(matrix, np.array([[0.0], [2.0]]))

    def test_unknown_objective_fails_before_any_simulation(self) -> None:
        CountingModel.calls = 0
        with self.assertRaises(ValidationError) as ctx:
            _problem(model=CountingModel(), objectives=[minimize("p95_total")])
        message = str(ctx.exception)
        self.assertIn("p95_total", message)
        self.assertIn("mean_total", message)
        self.assertEqual(CountingModel.calls, 0)

    def test_heterogeneous_scenarios_are_rejected(self) -> None:
        mixed = [CounterScenario(), HouseScenario(surge_loc=1.0, surge_scale=1.0)]
        with self.assertRaises(ValidationError):
            _problem(scenarios=mixed)

    def test_empty_scenarios_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            _problem(scenarios=[])

    def test_duplicate_objectives_are_rejected(self) -> None:
        with self.assertRaises(ConstructionError):
            _problem(objectives=[minimize("mean_total"), maximize("mean_total")])

    def test_all_ignored_objectives_are_rejected(self) -> None:
        with self.assertRaises(ConstructionError):
            _problem(objectives=[ignore("mean_total")])

    def test_empty_objectives_are_rejected(self) -> None:
        with self.assertRaises(ConstructionError):
            _problem(objectives=[])

    def test_discrete_policy_is_rejected(self) -> None:
        with self.assertRaises(ConstructionError):
            _problem(policy=IntegerPolicy)

    def test_bounds_override(self) -> None:
        problem = _problem(bounds=[(0.5, 1.5)])
        self.assertEqual(problem.bounds, [(0.5, 1.5)])

    def test_invalid_bounds_override(self) -> None:
        for bounds in ([(2.0, 1.0)], [], [(0.0, float("inf"))], [(0.0,)]):
            with self.subTest(bounds=bounds):
                with self.assertRaises(ConstructionError):
                    _problem(bounds=bounds)

    def test_policy_without_from_vector(self) -> None:
        with self.assertRaises(InterfaceNotImplementedError) as ctx:
            _problem(policy=NoVectorPolicy)
        self.assertIn("from_vector", str(ctx.exception))

    def test_from_vector_must_return_policy_type(self) -> None:
        with self.assertRaises(ConstructionError):
            _problem(policy=WrongTypePolicy)

    def test_params_length_must_match_bounds(self) -> None:
        with self.assertRaises(ConstructionError):
            _problem(policy=ShortParamsPolicy)

    def test_config_hook_errors_propagate(self) -> None:
        with self.assertRaises(ValueError):
            _problem(config=CounterConfig(n_steps=0))

    def test_policy_config_hook_errors_propagate(self) -> None:
        with self.assertRaises(ValueError):
            _problem(policy=CappedPolicy)
        problem = _problem(policy=CappedPolicy, config=CounterConfig(n_steps=3))
        self.assertIs(problem.policy_type, CappedPolicy)

    def test_batch_larger_than_scenarios(self) -> None:
        with self.assertRaises(ValidationError):
            _problem(batch=FixedBatch(20))
        self.assertEqual(_problem(batch=FractionBatch(0.25)).batch.size(10), 3)

    def test_unsupported_seeding_and_executor(self) -> None:
        with self.assertRaises(ConstructionError):
            _problem(seeding=42)
        with self.assertRaises(TypeError):
            _problem(executor="threads")

    def test_unsupported_constraint(self) -> None:
        with self.assertRaises(ConstructionError):
            _problem(constraints=[lambda policy: True])

    def test_metric_function_requires_names(self) -> None:
        def reduce(outcomes):
            return {"best": min(o.total for o in outcomes)}

        with self.assertRaises(ConstructionError):
            _problem(metrics=reduce, objectives=[minimize("best")])
        problem = _problem(metrics=reduce, metric_names=["best"], objectives=[minimize("best")])
        self.assertEqual(problem.metric_names, ("best",))

    def test_model_missing_callback(self) -> None:
        class NoOutcome(CounterModel):
            compute_outcome = SimulationModel.compute_outcome

        with self.assertRaises(InterfaceNotImplementedError):
            _problem(model=NoOutcome())


class ProblemStrictModeTests(unittest.TestCase):
    def test_strict_mode_requires_marked_scenario_fields(self) -> None:
        class TaggedScenario(Scenario):
            offset: Annotated[int, Discrete()] = 0
            tag: str = "base"

        with self.assertRaises(ValidationError):
            _problem(scenarios=[TaggedScenario()], validation=ValidationMode.STRICT)
        problem = _problem(scenarios=[TaggedScenario()])
        self.assertIs(problem.validation, ValidationMode.STANDARD)

    def test_strict_mode_accepts_marked_types(self) -> None:
        problem = _problem(validation="strict")
        self.assertIs(problem.validation, ValidationMode.STRICT)


def test_generic_policy_fields_warn() -> None:
    with pytest.warns(RuntimeWarning, match="note"):
        problem = _problem(policy=NotedPolicy)
    assert problem.bounds == [(0.0, 2.0)]


def test_build_policy_checks_length() -> None:
    problem = _problem()
    assert problem.build_policy([0.25]) == CounterPolicy(increment=0.25)
    with pytest.raises(ConstructionError):
        problem.build_policy([0.1, 0.2])
