"""Definition and validation of simulation-optimization problems."""
from __future__ import annotations

from typing import Any, Iterable, List, Sequence, Tuple

import numpy as np

from .batching import BatchPolicy, FullBatch, check_batch
from .errors import ConstructionError
from .evaluation import FeasibilityConstraint, PenaltyConstraint
from .executors import Executor, resolve_executor
from .metrics import MetricSet
from .seeding import CommonRandomNumbers, IndependentDraws, SeedingStrategy
from .types import Objective, require_callbacks
from .validation import (
    ValidationMode,
    validate_bounds,
    validate_objectives,
    validate_parameter_fields,
    validate_policy_interface,
    validate_scenarios,
)


def _resolve_metric_set(metrics: Any, metric_names: Sequence[str] | None) -> MetricSet:
    if isinstance(metrics, MetricSet):
        return metrics
    if callable(metrics) and not isinstance(metrics, (list, tuple)):
        if metric_names is None:
            raise ConstructionError(
                "A metric function requires metric_names= so objectives can be "
                "checked before any simulation runs."
            )
        return MetricSet.from_function(metrics, metric_names)
    return MetricSet(metrics)


class OptimizationProblem:
    """A model, its scenarios and the objectives a policy search optimizes.

    Construction validates everything it can before any simulation runs, in
    order: scenario homogeneity, the policy interface and bounds, then the
    objective/metric cross-reference, batch size and config hooks. A failing
    check raises and no problem object is created.

    Parameters
    ----------
    model:
        Object implementing the :class:`~simopt.types.SimulationModel` callbacks.
    config:
        Fixed parameters shared by every scenario.
    scenarios:
        Non-empty collection of scenarios sharing one concrete type.
    policy:
        Policy type, or a representative instance whose type is used.
    metrics:
        Metric descriptors, a :class:`MetricSet`, or a reduction function
        ``fn(outcomes) -> {name: value}`` together with ``metric_names``.
    objectives:
        Objectives referencing produced metric names.
    batch:
        Scenarios evaluated per iteration.
    seeding:
        Random-stream strategy for scenario simulations.
    constraints:
        Feasibility or penalty constraints evaluated on each candidate policy.
    bounds:
        Explicit ``(low, high)`` pairs overriding ``policy.param_bounds()``.
    validation:
        ``ValidationMode.STRICT`` also checks parameter markers on the
        scenario and policy types.
    executor:
        Runs the scenario simulations of a batch; sequential by default.
    """

    def __init__(
        self,
        model: Any,
        config: Any,
        scenarios: Iterable[Any],
        policy: Any,
        metrics: Any,
        objectives: Iterable[Objective],
        *,
        batch: BatchPolicy = FullBatch(),
        seeding: SeedingStrategy = CommonRandomNumbers(),
        constraints: Iterable[FeasibilityConstraint | PenaltyConstraint] = (),
        bounds: Sequence[Tuple[float, float]] | None = None,
        validation: ValidationMode | str = ValidationMode.STANDARD,
        executor: Executor | None = None,
        metric_names: Sequence[str] | None = None,
    ) -> None:
        mode = ValidationMode(validation)

        scenario_tuple = validate_scenarios(scenarios)

        policy_type = policy if isinstance(policy, type) else type(policy)
        resolved_bounds = validate_policy_interface(
            policy_type,
            validate_bounds(bounds, policy_type.__name__) if bounds is not None else None,
        )

        metric_set = _resolve_metric_set(metrics, metric_names)
        objective_tuple = validate_objectives(objectives, metric_set.names)

        require_callbacks(model)
        check_batch(batch, len(scenario_tuple))
        if not isinstance(seeding, (CommonRandomNumbers, IndependentDraws)):
            raise ConstructionError(
                f"Unsupported seeding strategy: {type(seeding).__name__}. "
                "Use CommonRandomNumbers or IndependentDraws."
            )
        constraint_tuple = tuple(constraints)
        for constraint in constraint_tuple:
            if not isinstance(constraint, (FeasibilityConstraint, PenaltyConstraint)):
                raise ConstructionError(
                    f"Unsupported constraint: {type(constraint).__name__}. "
                    "Use FeasibilityConstraint or PenaltyConstraint."
                )
        resolved_executor = resolve_executor(executor)

        validate_config = getattr(config, "validate_config", None)
        if callable(validate_config):
            validate_config()
        midpoint = policy_type.from_vector([(lo + hi) / 2.0 for lo, hi in resolved_bounds])
        validate_for = getattr(midpoint, "validate_for", None)
        if callable(validate_for):
            validate_for(config)
        validate_parameter_fields(type(scenario_tuple[0]), "scenario", mode)
        validate_parameter_fields(policy_type, "policy", mode)

        self.model = model
        self.config = config
        self.scenarios = scenario_tuple
        self.policy_type = policy_type
        self.metrics = metric_set
        self.objectives = objective_tuple
        self.batch = batch
        self.seeding = seeding
        self.constraints = constraint_tuple
        self.validation = mode
        self.executor = resolved_executor
        self._bounds = tuple(resolved_bounds)

    @property
    def bounds(self) -> List[Tuple[float, float]]:
        return list(self._bounds)

    def bounds_matrix(self) -> np.ndarray:
        """Return bounds as a ``(2, n_params)`` array of lower then upper rows."""

        return np.array(self._bounds, dtype=float).T.copy()

    @property
    def n_params(self) -> int:
        return len(self._bounds)

    @property
    def n_scenarios(self) -> int:
        return len(self.scenarios)

    @property
    def active_objectives(self) -> Tuple[Objective, ...]:
        return tuple(objective for objective in self.objectives if objective.is_active)

    @property
    def metric_names(self) -> Tuple[str, ...]:
        return self.metrics.names

    def build_policy(self, x: Sequence[float]) -> Any:
        values = [float(v) for v in x]
        if len(values) != self.n_params:
            raise ConstructionError(
                f"{self.policy_type.__name__} expects {self.n_params} parameters, got {len(values)}"
            )
        return self.policy_type.from_vector(values)

    def __repr__(self) -> str:
        objectives = ", ".join(f"{o.direction.value}({o.name})" for o in self.objectives)
        return (
            f"OptimizationProblem(policy={self.policy_type.__name__}, "
            f"scenarios={self.n_scenarios}, objectives=[{objectives}])"
        )


__all__ = ["OptimizationProblem"]
