"""Tests for the time-stepping simulation engine."""
from __future__ import annotations

import unittest
from typing import Any, Dict, Tuple

import numpy as np
import pytest

from simopt.errors import (
    InterfaceNotImplementedError,
    RandomnessMisuseError,
    SimulationRuntimeError,
    ValidationError,
)
from simopt.models import CounterConfig, CounterModel, CounterPolicy, CounterScenario
from simopt.recorders import TraceRecorderBuilder
from simopt.simulation import (
    PoisonedGenerator,
    SimulationPhase,
    initialize_state,
    simulate,
    simulate_traced,
)
from simopt.timestepping import TimeStep
from simopt.types import Scenario, SimulationModel
from simopt.validation import ValidationMode


class CountingModel(CounterModel):
    def __init__(self) -> None:
        super().__init__()
        self.transitions = 0

    def run_timestep(self, state, action, t, config, scenario, rng):
        self.transitions += 1
        return super().run_timestep(state, action, t, config, scenario, rng)


class RandomInitModel(SimulationModel):
    def time_axis(self, config: Any, scenario: Any):
        return range(3)

    def initialize(self, config: Any, scenario: Any, rng: Any) -> float:
        return float(rng.random())

    def run_timestep(self, state, action, t, config, scenario, rng) -> Tuple[float, float]:
        return state, state

    def compute_outcome(self, step_records, config, scenario) -> float:
        return float(sum(step_records))


class DeterministicThreeArgModel(RandomInitModel):
    def initialize(self, config: Any, scenario: Any, rng: Any) -> float:
        return 2.5


class CounterEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.config = CounterConfig()
        self.scenario = CounterScenario()
        self.policy = CounterPolicy()

    def test_counter_totals_ten_over_five_steps(self) -> None:
        outcome = simulate(CounterModel(), self.config, self.scenario, self.policy)
        self.assertEqual(outcome.total, 10.0)
        self.assertEqual(outcome.steps, 5)

    def test_one_transition_per_time_step(self) -> None:
        for n_steps in (1, 3, 7):
            model = CountingModel()
            simulate(model, CounterConfig(n_steps=n_steps), self.scenario, self.policy)
            self.assertEqual(model.transitions, n_steps)

    def test_terminal_state_stops_after_current_step(self) -> None:
        outcome = simulate(CounterModel(stop_at=3), self.config, self.scenario, self.policy)
        self.assertEqual(outcome.steps, 3)
        self.assertEqual(outcome.total, 0.0 + 1.0 + 2.0)

    def test_traced_run_records_every_column(self) -> None:
        outcome, trace = simulate_traced(CounterModel(), self.config, self.scenario, self.policy)
        self.assertEqual(outcome.total, 10.0)
        self.assertEqual(len(trace), 5)
        self.assertEqual(trace.column("time"), (1, 2, 3, 4, 5))
        self.assertEqual(trace.column("state"), (1.0, 2.0, 3.0, 4.0, 5.0))
        self.assertEqual(trace.column("step_record")[0], {"value": 0.0})
        self.assertEqual(set(trace.column("action")), {1.0})
        self.assertEqual(trace.initial_state, 0.0)
        self.assertIs(trace.schema["time"], int)

    def test_recorder_receives_initial_state(self) -> None:
        builder = TraceRecorderBuilder()
        simulate(CounterModel(), self.config, CounterScenario(offset=4), self.policy, builder)
        self.assertEqual(builder.initial_state, 4.0)
        self.assertEqual(len(builder), 5)


class InitializeStateTests(unittest.TestCase):
    def test_two_argument_initialize_needs_no_rng(self) -> None:
        state = initialize_state(CounterModel(), CounterConfig(), CounterScenario(offset=2))
        self.assertEqual(state, 2.0)

    def test_poisoned_generator_raises_on_draw(self) -> None:
        with self.assertRaises(RandomnessMisuseError) as ctx:
            initialize_state(RandomInitModel(), None, None)
        self.assertIn("initialize(config, scenario, rng)", str(ctx.exception))

    def test_three_argument_initialize_without_draws_succeeds(self) -> None:
        self.assertEqual(initialize_state(DeterministicThreeArgModel(), None, None), 2.5)

    def test_explicit_rng_is_used(self) -> None:
        state = initialize_state(RandomInitModel(), None, None, np.random.default_rng(0))
        self.assertEqual(state, float(np.random.default_rng(0).random()))

    def test_poisoned_generator_is_not_a_silent_stand_in(self) -> None:
        poisoned = PoisonedGenerator()
        with self.assertRaises(RandomnessMisuseError):
            poisoned.normal(0.0, 1.0)
        self.assertFalse(hasattr(poisoned, "__deepcopy__"))


class EngineFailureTests(unittest.TestCase):
    def test_missing_callback_raises_before_any_callback_runs(self) -> None:
        calls = []

        class Incomplete(SimulationModel):
            def time_axis(self, config, scenario):
                calls.append("time_axis")
                return range(3)

        with self.assertRaises(InterfaceNotImplementedError) as ctx:
            simulate(Incomplete(), None, None, None)
        self.assertEqual(calls, [])
        self.assertIn("initialize", str(ctx.exception))
        self.assertIn("Incomplete", str(ctx.exception))

    def test_callback_exception_is_wrapped_with_step(self) -> None:
        class Exploding(CounterModel):
            def run_timestep(self, state, action, t, config, scenario, rng):
                if t.index == 2:
                    raise ZeroDivisionError("boom")
                return super().run_timestep(state, action, t, config, scenario, rng)

        with self.assertRaises(SimulationRuntimeError) as ctx:
            simulate(Exploding(), CounterConfig(), CounterScenario(), CounterPolicy())
        error = ctx.exception
        self.assertEqual(error.callback, "run_timestep")
        self.assertEqual(error.step, 2)
        self.assertIs(error.phase, SimulationPhase.STEPPING)
        self.assertIsInstance(error.__cause__, ZeroDivisionError)

    def test_step_record_keys_must_stay_fixed(self) -> None:
        class Drifting(CounterModel):
            def run_timestep(self, state, action, t, config, scenario, rng):
                key = "value" if t.index == 0 else "other"
                return state + 1, {key: state}

        with self.assertRaises(ValidationError):
            simulate(Drifting(), CounterConfig(), CounterScenario(), CounterPolicy())

    def test_step_record_type_must_stay_fixed(self) -> None:
        class Mixed(CounterModel):
            def run_timestep(self, state, action, t, config, scenario, rng):
                record: Dict[str, float] | float = {"value": state} if t.index == 0 else state
                return state + 1, record

        with self.assertRaises(ValidationError):
            simulate(Mixed(), CounterConfig(), CounterScenario(), CounterPolicy())


def test_empty_time_axis_is_rejected() -> None:
    with pytest.raises(ValidationError):
        simulate(CounterModel(), CounterConfig(n_steps=0), CounterScenario(), CounterPolicy())


def test_mixed_time_axis_is_rejected() -> None:
    class MixedAxis(CounterModel):
        def time_axis(self, config, scenario):
            return [1, 2.0, 3]

    with pytest.raises(ValidationError, match="homogeneously-typed"):
        simulate(MixedAxis(), CounterConfig(), CounterScenario(), CounterPolicy())


def test_strict_mode_rejects_unmarked_scenario_fields() -> None:
    class LooseScenario(Scenario):
        label: str = "x"

    with pytest.raises(ValidationError, match="label"):
        simulate(
            CounterModel(),
            CounterConfig(),
            LooseScenario(),
            CounterPolicy(),
            validation=ValidationMode.STRICT,
        )


def test_duck_typed_model_is_accepted() -> None:
    class Duck:
        def time_axis(self, config, scenario):
            return ["a", "b"]

        def initialize(self, config, scenario):
            return 0

        def get_action(self, policy, state, t: TimeStep, scenario):
            return None

        def run_timestep(self, state, action, t, config, scenario, rng):
            return state + 1, t.value

        def is_terminal(self, state, config, t):
            return False

        def compute_outcome(self, step_records, config, scenario):
            return "".join(step_records)

    assert simulate(Duck(), None, None, None) == "ab"


def test_duck_typed_model_without_optional_callbacks() -> None:
    class Duck:
        def time_axis(self, config, scenario):
            return range(1, 6)

        def initialize(self, config, scenario):
            return 0

        def run_timestep(self, state, action, t, config, scenario, rng):
            assert action is None
            return state + 1, state

        def compute_outcome(self, step_records, config, scenario):
            return sum(step_records)

    assert simulate(Duck(), None, None, None) == 10
