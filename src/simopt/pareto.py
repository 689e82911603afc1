"""Pareto-front maintenance and optimization results."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List, Sequence, Tuple

from .errors import ConstructionError, InterfaceNotImplementedError
from .evaluation import evaluate_policy
from .types import Objective

if TYPE_CHECKING:  # pragma: no cover
    from .problem import OptimizationProblem


def dominates(candidate: Sequence[float], other: Sequence[float]) -> bool:
    """Return whether ``candidate`` Pareto-dominates ``other`` (all minimized)."""

    if len(candidate) != len(other):
        raise ValueError(
            f"cannot compare objective vectors of length {len(candidate)} and {len(other)}"
        )
    better = False
    for cand_value, other_value in zip(candidate, other):
        if cand_value > other_value:
            return False
        if cand_value < other_value:
            better = True
    return better


@dataclass(frozen=True)
class ParetoPoint:
    """One non-dominated solution.

    ``objectives`` holds the active objective values on their original scale
    (maximized objectives are not negated).
    """

    params: Tuple[float, ...]
    objectives: Tuple[float, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", tuple(float(v) for v in self.params))
        object.__setattr__(self, "objectives", tuple(float(v) for v in self.objectives))


class ParetoFront:
    """Set of mutually non-dominated points for a fixed list of objectives."""

    def __init__(self, objectives: Sequence[Objective], points: Iterable[ParetoPoint] = ()) -> None:
        active = tuple(objective for objective in objectives if objective.is_active)
        if not active:
            raise ConstructionError("ParetoFront requires at least one active objective")
        self._objectives = active
        self._points: List[ParetoPoint] = []
        for point in points:
            self.merge(point)

    @property
    def objectives(self) -> Tuple[Objective, ...]:
        return self._objectives

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(objective.name for objective in self._objectives)

    @property
    def points(self) -> Tuple[ParetoPoint, ...]:
        return tuple(self._points)

    def minimization_values(self, point: ParetoPoint) -> Tuple[float, ...]:
        if len(point.objectives) != len(self._objectives):
            raise ValueError(
                f"point has {len(point.objectives)} objective values, "
                f"front tracks {len(self._objectives)}"
            )
        return tuple(
            objective.to_minimization(value)
            for objective, value in zip(self._objectives, point.objectives)
        )

    def merge(self, candidate: ParetoPoint) -> bool:
        """Insert ``candidate`` unless dominated; drop members it dominates.

        Returns whether the candidate was added.
        """

        candidate_values = self.minimization_values(candidate)
        if any(math.isnan(value) for value in candidate_values):
            return False
        dominated_indices: List[int] = []
        for idx, existing in enumerate(self._points):
            existing_values = self.minimization_values(existing)
            if dominates(existing_values, candidate_values):
                return False
            if dominates(candidate_values, existing_values):
                dominated_indices.append(idx)
        for idx in reversed(dominated_indices):
            self._points.pop(idx)
        self._points.append(candidate)
        return True

    def sorted_points(self) -> List[ParetoPoint]:
        """Points ordered by the first objective, best first."""

        return sorted(self._points, key=lambda point: self.minimization_values(point)[0])

    def as_records(self) -> List[Dict[str, Any]]:
        return [
            {"params": list(point.params), **dict(zip(self.names, point.objectives))}
            for point in self._points
        ]

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[ParetoPoint]:
        return iter(list(self._points))

    def __repr__(self) -> str:
        return f"ParetoFront(objectives={list(self.names)}, points={len(self._points)})"


def merge_into_pareto(front: ParetoFront, candidate: ParetoPoint) -> bool:
    return front.merge(candidate)


@dataclass
class OptimizationResult:
    """Outcome of a policy search.

    Policies are rebuilt from parameter vectors on demand through
    :meth:`best_policy` and :meth:`pareto_policies`; they are never cached.
    """

    best_params: Tuple[float, ...]
    best_objectives: Dict[str, float]
    front: ParetoFront
    converged: bool = False
    iterations: int = 0
    convergence_info: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_front(
        cls,
        front: ParetoFront,
        *,
        converged: bool = False,
        iterations: int = 0,
        convergence_info: Dict[str, Any] | None = None,
    ) -> "OptimizationResult":
        """Build a result whose best point is the front's best first objective."""

        if not len(front):
            raise ValueError("cannot build an OptimizationResult from an empty Pareto front")
        best = front.sorted_points()[0]
        return cls(
            best_params=best.params,
            best_objectives=dict(zip(front.names, best.objectives)),
            front=front,
            converged=converged,
            iterations=iterations,
            convergence_info=dict(convergence_info or {}),
        )

    def best_policy(self, problem: "OptimizationProblem") -> Any:
        return problem.build_policy(self.best_params)

    def pareto_policies(self, problem: "OptimizationProblem") -> List[Any]:
        return [problem.build_policy(point.params) for point in self.front]

    def pareto_points(self) -> List[Tuple[Tuple[float, ...], Dict[str, float]]]:
        return [(point.params, dict(zip(self.front.names, point.objectives))) for point in self.front]


def merge_policy_into_pareto(
    result: OptimizationResult,
    problem: "OptimizationProblem",
    policy: Any,
    seed: int = 42,
) -> bool:
    """Evaluate ``policy`` and merge it into ``result.front``.

    Useful for adding a baseline (such as a do-nothing policy) to a front
    produced by a search. Returns whether the policy joined the front.
    """

    params = getattr(policy, "params", None)
    if not callable(params):
        raise InterfaceNotImplementedError("params", type(policy), "self")
    metrics = evaluate_policy(problem, policy, seed)
    values = [float(metrics[objective.name]) for objective in result.front.objectives]
    return result.front.merge(ParetoPoint(tuple(params()), tuple(values)))


__all__ = [
    "dominates",
    "ParetoPoint",
    "ParetoFront",
    "merge_into_pareto",
    "OptimizationResult",
    "merge_policy_into_pareto",
]
