"""Batch evaluation of policies and conversion of metrics into objectives."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Mapping, Sequence, Tuple

import numpy as np

from .batching import select_batch
from .errors import ConstructionError, ValidationError
from .recorders import NoRecorder
from .simulation import simulate
from .types import Direction, Objective

if TYPE_CHECKING:  # pragma: no cover
    from .problem import OptimizationProblem


@dataclass(frozen=True)
class FeasibilityConstraint:
    """Reject a policy outright when ``func(policy)`` is false."""

    name: str
    func: Callable[[Any], bool]


@dataclass(frozen=True)
class PenaltyConstraint:
    """Add ``weight * func(policy)`` to every objective when the penalty is positive."""

    name: str
    func: Callable[[Any], float]
    weight: float = 1.0

    def __post_init__(self) -> None:
        weight = float(self.weight)
        if not math.isfinite(weight) or weight < 0:
            raise ConstructionError(
                f"PenaltyConstraint weight must be a finite value >= 0, got {self.weight}"
            )
        object.__setattr__(self, "weight", weight)


Constraint = FeasibilityConstraint | PenaltyConstraint


# ----------------------------------------------------------------------
# Objective extraction
# ----------------------------------------------------------------------
def extract_objectives(metrics: Mapping[str, float], objectives: Sequence[Objective]) -> np.ndarray:
    """Return the active objective values in minimization form.

    Minimized objectives pass through, maximized ones are negated and ignored
    ones are dropped.
    """

    values = []
    for objective in objectives:
        if objective.direction is Direction.IGNORE:
            continue
        if objective.name not in metrics:
            raise ValidationError(
                f"metrics do not contain objective {objective.name!r}. "
                f"Available metrics: {', '.join(metrics)}"
            )
        values.append(objective.to_minimization(float(metrics[objective.name])))
    return np.array(values, dtype=float)


def restore_objectives(values: Sequence[float], objectives: Sequence[Objective]) -> Tuple[float, ...]:
    """Undo :func:`extract_objectives` for the active objectives."""

    active = [objective for objective in objectives if objective.is_active]
    return tuple(objective.to_minimization(float(v)) for objective, v in zip(active, values))


def apply_constraints(
    values: np.ndarray,
    policy: Any,
    constraints: Iterable[Constraint],
) -> np.ndarray:
    """Apply feasibility and penalty constraints to minimization-form objectives."""

    adjusted = np.array(values, dtype=float)
    for constraint in constraints:
        if isinstance(constraint, FeasibilityConstraint):
            if not constraint.func(policy):
                return np.full(adjusted.shape, math.inf)
        elif isinstance(constraint, PenaltyConstraint):
            penalty = float(constraint.func(policy))
            if penalty > 0:
                adjusted = adjusted + constraint.weight * penalty
        else:
            raise TypeError(f"Unsupported constraint: {type(constraint).__name__}")
    return adjusted


# ----------------------------------------------------------------------
# Policy evaluation
# ----------------------------------------------------------------------
def simulate_task(task: Tuple[Any, Any, Any, Any, np.random.Generator]) -> Any:
    model, config, scenario, policy, rng = task
    return simulate(model, config, scenario, policy, NoRecorder(), rng)


def _batch_rng(problem: "OptimizationProblem", rng: Any, iteration: int) -> np.random.Generator:
    if rng is None:
        return problem.seeding.batch_rng(iteration)
    if isinstance(rng, np.random.Generator):
        return rng
    if isinstance(rng, (int, np.integer)) and not isinstance(rng, bool):
        return np.random.default_rng(int(rng))
    raise TypeError(f"rng must be a numpy Generator, an int seed or None, got {type(rng).__name__}")


def evaluate_policy(
    problem: "OptimizationProblem",
    policy: Any,
    rng: Any = None,
    *,
    iteration: int = 0,
) -> Dict[str, float]:
    """Simulate ``policy`` over a batch of scenarios and reduce to metrics.

    Parameters
    ----------
    rng:
        Generator or integer seed used only to select the batch. When omitted
        the problem's seeding strategy derives one from ``iteration``.
    iteration:
        Search iteration number, forwarded to the seeding strategy.

    Each selected scenario receives its own generator from the problem's
    seeding strategy, so results do not depend on the executor.
    """

    indices = select_batch(problem.batch, problem.n_scenarios, _batch_rng(problem, rng, iteration))
    tasks = [
        (
            problem.model,
            problem.config,
            problem.scenarios[index],
            policy,
            problem.seeding.scenario_rng(index, iteration),
        )
        for index in indices
    ]
    outcomes = problem.executor.map(simulate_task, tasks)
    return problem.metrics.compute(outcomes)


class FitnessFunction:
    """Stateless mapping from a parameter vector to minimization-form objectives.

    Instances only hold a reference to the problem and a seed, so they can be
    pickled and called concurrently.
    """

    def __init__(self, problem: "OptimizationProblem", seed: int = 42) -> None:
        self.problem = problem
        self.seed = int(seed)

    def _rng(self, iteration: int | None) -> np.random.Generator:
        if iteration is None:
            return np.random.default_rng(self.seed)
        return np.random.default_rng([self.seed, int(iteration)])

    def evaluate(
        self, x: Sequence[float], iteration: int | None = None
    ) -> Tuple[Dict[str, float], np.ndarray]:
        """Return ``(metrics, objective_vector)`` for one parameter vector."""

        policy = self.problem.build_policy(x)
        metrics = evaluate_policy(
            self.problem,
            policy,
            self._rng(iteration),
            iteration=iteration or 0,
        )
        values = extract_objectives(metrics, self.problem.objectives)
        return metrics, apply_constraints(values, policy, self.problem.constraints)

    def metrics_for(self, x: Sequence[float], iteration: int | None = None) -> Dict[str, float]:
        return self.evaluate(x, iteration)[0]

    def __call__(self, x: Sequence[float], iteration: int | None = None) -> np.ndarray:
        return self.evaluate(x, iteration)[1]


__all__ = [
    "FeasibilityConstraint",
    "PenaltyConstraint",
    "Constraint",
    "extract_objectives",
    "restore_objectives",
    "apply_constraints",
    "simulate_task",
    "evaluate_policy",
    "FitnessFunction",
]
