"""Callback-driven time-stepping simulation engine."""
from __future__ import annotations

from enum import Enum
from typing import Any, Callable, List, Mapping, Tuple

import numpy as np

from .errors import RandomnessMisuseError, SimOptError, SimulationRuntimeError, ValidationError
from .recorders import NoRecorder, Recorder, SimulationTrace, TraceRecorderBuilder
from .timestepping import TimeStep, time_index
from .types import accepts_rng, require_callbacks
from .validation import ValidationMode, validate_parameter_fields


class SimulationPhase(str, Enum):
    """Lifecycle of a single run."""

    INIT = "init"
    STEPPING = "stepping"
    DONE = "done"


class PoisonedGenerator:
    """Stand-in random source that fails on any draw.

    Passed to ``initialize`` when the caller supplied no generator, so that a
    model which claims to be deterministic fails loudly if it draws anyway.
    """

    __slots__ = ("_owner",)

    def __init__(self, owner: type | None = None) -> None:
        object.__setattr__(self, "_owner", owner)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__"):
            raise AttributeError(name)
        owner = self._owner.__name__ if self._owner is not None else "the model"
        raise RandomnessMisuseError(
            f"initialize for {owner} attempted to draw random numbers (rng.{name}) "
            "but no generator was provided. Pass rng=np.random.default_rng(seed) or "
            "implement initialize(config, scenario, rng) and use the rng it receives."
        )

    def __repr__(self) -> str:
        return "PoisonedGenerator()"


def _invoke(
    phase: SimulationPhase,
    callback: str,
    step: int | None,
    fn: Callable[..., Any],
    *args: Any,
) -> Any:
    try:
        return fn(*args)
    except SimOptError:
        raise
    except Exception as exc:
        error = SimulationRuntimeError(callback, step, exc)
        error.phase = phase
        raise error from exc


def initialize_state(model: Any, config: Any, scenario: Any, rng: Any = None) -> Any:
    """Create the initial state of ``model``.

    Models may implement ``initialize(config, scenario)`` or
    ``initialize(config, scenario, rng)``. When ``rng`` is omitted and the
    model takes one, a :class:`PoisonedGenerator` is supplied instead.
    """

    initialize = model.initialize
    if not accepts_rng(initialize):
        return initialize(config, scenario)
    if rng is None:
        rng = PoisonedGenerator(type(model))
    return initialize(config, scenario, rng)


class _RecordSchema:
    """Checks that every step record shares the first record's shape."""

    def __init__(self) -> None:
        self._type: type | None = None
        self._keys: frozenset | None = None

    def check(self, record: Any, step: int) -> None:
        if self._type is None:
            self._type = type(record)
            if isinstance(record, Mapping):
                self._keys = frozenset(record.keys())
            return
        if type(record) is not self._type:
            raise ValidationError(
                f"step record type changed at step {step}: expected "
                f"{self._type.__name__}, got {type(record).__name__}"
            )
        if self._keys is not None:
            keys = frozenset(record.keys())
            if keys != self._keys:
                raise ValidationError(
                    f"step record keys changed at step {step}: expected "
                    f"{sorted(map(str, self._keys))}, got {sorted(map(str, keys))}"
                )


def run_simulation(
    model: Any,
    config: Any,
    scenario: Any,
    policy: Any,
    recorder: Recorder,
    rng: Any,
) -> Any:
    """Run the engine loop once and return the model's outcome.

    Raises
    ------
    InterfaceNotImplementedError
        If the model lacks a required callback; checked before any callback runs.
    SimulationRuntimeError
        If a model callback raises; the partial records are discarded.
    """

    require_callbacks(model)
    phase = SimulationPhase.INIT
    axis = time_index(_invoke(phase, "time_axis", None, model.time_axis, config, scenario))
    state = _invoke(phase, "initialize", None, initialize_state, model, config, scenario, rng)
    recorder.record_initial(state)

    phase = SimulationPhase.STEPPING
    records: List[Any] = []
    schema = _RecordSchema()
    get_action = getattr(model, "get_action", None)
    is_terminal = getattr(model, "is_terminal", None)
    for t in axis:
        action = None
        if get_action is not None:
            action = _invoke(phase, "get_action", t.index, get_action, policy, state, t, scenario)
        result = _invoke(
            phase,
            "run_timestep",
            t.index,
            model.run_timestep,
            state,
            action,
            t,
            config,
            scenario,
            rng,
        )
        try:
            state, step_record = result
        except (TypeError, ValueError) as exc:
            raise SimulationRuntimeError("run_timestep", t.index, exc) from exc
        schema.check(step_record, t.index)
        records.append(step_record)
        recorder.record(state, step_record, t, action)
        if is_terminal is None:
            continue
        if _invoke(phase, "is_terminal", t.index, is_terminal, state, config, t):
            break

    phase = SimulationPhase.DONE
    return _invoke(
        phase, "compute_outcome", None, model.compute_outcome, tuple(records), config, scenario
    )


def simulate(
    model: Any,
    config: Any,
    scenario: Any,
    policy: Any,
    recorder: Recorder | None = None,
    rng: Any = None,
    *,
    validation: ValidationMode = ValidationMode.STANDARD,
) -> Any:
    """Simulate ``policy`` on one scenario and return the outcome.

    Parameters
    ----------
    recorder:
        Receives each completed step. Defaults to :class:`NoRecorder`.
    rng:
        ``numpy.random.Generator`` passed to the model. A fresh unseeded
        generator is used when omitted.
    validation:
        ``ValidationMode.STRICT`` checks that scenario and policy types mark
        every declared field before running.
    """

    if validation is ValidationMode.STRICT:
        validate_parameter_fields(type(scenario), "scenario", validation)
        validate_parameter_fields(type(policy), "policy", validation)
    if recorder is None:
        recorder = NoRecorder()
    if rng is None:
        rng = np.random.default_rng()
    return run_simulation(model, config, scenario, policy, recorder, rng)


def simulate_traced(
    model: Any,
    config: Any,
    scenario: Any,
    policy: Any,
    rng: Any = None,
    *,
    validation: ValidationMode = ValidationMode.STANDARD,
) -> Tuple[Any, SimulationTrace]:
    """Simulate with a :class:`TraceRecorderBuilder` and return ``(outcome, trace)``."""

    builder = TraceRecorderBuilder()
    outcome = simulate(model, config, scenario, policy, builder, rng, validation=validation)
    return outcome, builder.build_trace()


__all__ = [
    "SimulationPhase",
    "PoisonedGenerator",
    "initialize_state",
    "run_simulation",
    "simulate",
    "simulate_traced",
]
