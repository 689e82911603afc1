"""Exploratory modeling: simulate every policy on every scenario."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Sequence

from .errors import ValidationError
from .evaluation import simulate_task
from .executors import Executor, resolve_executor
from .parameters import (
    GenericField,
    TimeSeriesParameter,
    declared_fields,
    flatten_parameters,
    parameter_marker,
)
from .seeding import CommonRandomNumbers, SeedingStrategy
from .sinks import ExplorationResult, InMemorySink, ResultSink
from .validation import ValidationMode, validate_parameter_fields, validate_scenarios


def flatten_outcome(outcome: Any, prefix: str = "outcome") -> Dict[str, Any]:
    """Flatten an outcome into ``{prefix_field: value}`` columns.

    Mapping outcomes use their keys. Dataclass and pydantic outcomes use
    their declared fields; time series expand to one column per time value
    and generic fields are skipped.
    """

    if isinstance(outcome, Mapping):
        flat: Dict[str, Any] = {}
        for key, value in outcome.items():
            if isinstance(value, TimeSeriesParameter):
                for t, item in zip(value.time_axis, value.values):
                    flat[f"{prefix}_{key}[{t}]"] = item
            else:
                flat[f"{prefix}_{key}"] = value
        return flat

    fields = declared_fields(type(outcome))
    if not fields:
        raise ValidationError(
            f"cannot flatten outcome of type {type(outcome).__name__}; return a mapping, "
            "a dataclass or a pydantic model from compute_outcome"
        )
    flat = {}
    for name, _annotation, metadata in fields:
        if isinstance(parameter_marker(metadata), GenericField):
            continue
        value = getattr(outcome, name)
        if isinstance(value, TimeSeriesParameter):
            for t, item in zip(value.time_axis, value.values):
                flat[f"{prefix}_{name}[{t}]"] = item
        else:
            flat[f"{prefix}_{name}"] = value
    return flat


def explore(
    model: Any,
    config: Any,
    scenarios: Sequence[Any],
    policies: Sequence[Any],
    *,
    executor: Executor | None = None,
    seeding: SeedingStrategy = CommonRandomNumbers(),
    sink: ResultSink | None = None,
) -> Any:
    """Simulate each policy on each scenario and stream flattened rows to ``sink``.

    Rows are produced in policy-major order and contain ``policy_idx``,
    ``scenario_idx``, the flattened policy and scenario parameters, and the
    flattened outcome. Scenario ``i`` always receives the stream
    ``seeding.scenario_rng(i)``, so every policy faces the same draws.

    Returns whatever ``sink.finalize`` returns; by default an
    :class:`ExplorationResult`.
    """

    scenario_tuple = validate_scenarios(scenarios)
    policy_tuple = tuple(policies)
    if not policy_tuple:
        raise ValidationError("policies must contain at least one policy")
    validate_parameter_fields(type(scenario_tuple[0]), "scenario", ValidationMode.STRICT)
    validate_parameter_fields(type(policy_tuple[0]), "policy", ValidationMode.STRICT)

    runner = resolve_executor(executor)
    target = sink if sink is not None else InMemorySink()
    scenario_columns = [flatten_parameters(s, "scenario") for s in scenario_tuple]

    for policy_idx, policy in enumerate(policy_tuple):
        tasks = [
            (model, config, scenario, policy, seeding.scenario_rng(scenario_idx))
            for scenario_idx, scenario in enumerate(scenario_tuple)
        ]
        outcomes = runner.map(simulate_task, tasks)
        policy_columns = flatten_parameters(policy, "policy")
        for scenario_idx, outcome in enumerate(outcomes):
            row: Dict[str, Any] = {"policy_idx": policy_idx, "scenario_idx": scenario_idx}
            row.update(policy_columns)
            row.update(scenario_columns[scenario_idx])
            row.update(flatten_outcome(outcome))
            target.record(row)

    return target.finalize(len(policy_tuple), len(scenario_tuple))


__all__ = ["ExplorationResult", "flatten_outcome", "explore"]
