"""Scenario batch selection for each search iteration."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List

import numpy as np

from .errors import ConstructionError, ValidationError


@dataclass(frozen=True)
class FullBatch:
    """Evaluate every scenario each iteration."""

    def size(self, n_scenarios: int) -> int:
        return n_scenarios


@dataclass(frozen=True)
class FixedBatch:
    """Evaluate ``n`` scenarios drawn at random each iteration."""

    n: int
    replace: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.n, bool) or int(self.n) != self.n or self.n <= 0:
            raise ConstructionError(f"FixedBatch n must be a positive integer, got {self.n!r}")
        object.__setattr__(self, "n", int(self.n))

    def size(self, n_scenarios: int) -> int:
        return self.n


@dataclass(frozen=True)
class FractionBatch:
    """Evaluate ``ceil(fraction * n_scenarios)`` scenarios each iteration."""

    fraction: float
    replace: bool = False

    def __post_init__(self) -> None:
        fraction = float(self.fraction)
        if not 0.0 < fraction <= 1.0:
            raise ConstructionError(f"FractionBatch fraction must be in (0, 1], got {self.fraction}")
        object.__setattr__(self, "fraction", fraction)

    def size(self, n_scenarios: int) -> int:
        # round off float noise such as 0.07 * 100 == 7.000000000000001
        return max(1, math.ceil(round(self.fraction * n_scenarios, 9)))


BatchPolicy = FullBatch | FixedBatch | FractionBatch


def check_batch(batch: BatchPolicy, n_scenarios: int) -> int:
    """Return the batch size after checking it lies in ``(0, n_scenarios]``."""

    if not isinstance(batch, (FullBatch, FixedBatch, FractionBatch)):
        raise ConstructionError(
            f"Unsupported batch policy: {type(batch).__name__}. "
            "Use FullBatch, FixedBatch or FractionBatch."
        )
    size = batch.size(n_scenarios)
    if not getattr(batch, "replace", False) and not 0 < size <= n_scenarios:
        raise ValidationError(
            f"{type(batch).__name__} selects {size} scenarios but only {n_scenarios} are available"
        )
    return size


def select_batch(batch: BatchPolicy, n_scenarios: int, rng: np.random.Generator) -> List[int]:
    """Return the scenario indices evaluated this iteration, in scenario order."""

    size = check_batch(batch, n_scenarios)
    if isinstance(batch, FullBatch):
        return list(range(n_scenarios))
    chosen = rng.choice(n_scenarios, size=size, replace=batch.replace)
    return sorted(int(index) for index in chosen)


__all__ = [
    "FullBatch",
    "FixedBatch",
    "FractionBatch",
    "BatchPolicy",
    "check_batch",
    "select_batch",
]
