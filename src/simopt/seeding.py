"""Random-stream strategies applied when scenarios are evaluated."""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

DEFAULT_SEED = 1234


@dataclass(frozen=True)
class CommonRandomNumbers:
    """Give scenario ``i`` the same stream in every iteration.

    Comparing two policies on one scenario then differs only by the policy,
    which reduces the variance of their difference.
    """

    seed: int = DEFAULT_SEED

    def scenario_rng(self, scenario_index: int, iteration: int = 0) -> np.random.Generator:
        return np.random.default_rng(np.random.SeedSequence([int(self.seed), int(scenario_index)]))

    def batch_rng(self, iteration: int) -> np.random.Generator:
        return np.random.default_rng(np.random.SeedSequence([int(self.seed), int(iteration), 1]))


@dataclass(frozen=True)
class IndependentDraws:
    """Give every (iteration, scenario) pair its own stream."""

    seed: int = DEFAULT_SEED

    def scenario_rng(self, scenario_index: int, iteration: int = 0) -> np.random.Generator:
        return np.random.default_rng(
            np.random.SeedSequence([int(self.seed), int(iteration), 0, int(scenario_index)])
        )

    def batch_rng(self, iteration: int) -> np.random.Generator:
        return np.random.default_rng(np.random.SeedSequence([int(self.seed), int(iteration), 1]))


SeedingStrategy = CommonRandomNumbers | IndependentDraws


__all__ = ["DEFAULT_SEED", "CommonRandomNumbers", "IndependentDraws", "SeedingStrategy"]
