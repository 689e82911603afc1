"""Deterministic counter model used for smoke tests and examples."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Dict, Sequence, Tuple

from ..parameters import Continuous, Discrete
from ..timestepping import TimeStep
from ..types import Config, Policy, Scenario, SimulationModel


class CounterConfig(Config):
    n_steps: int = 5

    def validate_config(self) -> None:
        if self.n_steps <= 0:
            raise ValueError("CounterConfig.n_steps must be positive")


class CounterScenario(Scenario):
    offset: Annotated[int, Discrete()] = 0


class CounterPolicy(Policy):
    increment: Annotated[float, Continuous(0.0, 2.0)] = 1.0


@dataclass(frozen=True)
class CounterOutcome:
    total: Annotated[float, Continuous()]
    steps: Annotated[int, Discrete()]


class CounterModel(SimulationModel):
    """Counts up by one each step; the outcome sums the pre-step states.

    With the default five-step axis ``1..5`` the total is ``0+1+2+3+4 = 10``.
    A non-default policy increment scales each step, and a scenario offset
    shifts the initial state.
    """

    def __init__(self, stop_at: int | None = None) -> None:
        self.stop_at = stop_at

    def time_axis(self, config: CounterConfig, scenario: CounterScenario) -> range:
        return range(1, config.n_steps + 1)

    def initialize(self, config: CounterConfig, scenario: CounterScenario) -> float:
        return float(scenario.offset)

    def get_action(self, policy: Any, state: float, t: TimeStep, scenario: Any) -> float:
        return float(getattr(policy, "increment", 1.0))

    def run_timestep(
        self,
        state: float,
        action: float,
        t: TimeStep,
        config: CounterConfig,
        scenario: CounterScenario,
        rng: Any,
    ) -> Tuple[float, Dict[str, float]]:
        return state + action, {"value": state}

    def is_terminal(self, state: float, config: CounterConfig, t: TimeStep) -> bool:
        return self.stop_at is not None and t.value >= self.stop_at

    def compute_outcome(
        self,
        step_records: Sequence[Dict[str, float]],
        config: CounterConfig,
        scenario: CounterScenario,
    ) -> CounterOutcome:
        return CounterOutcome(
            total=float(sum(record["value"] for record in step_records)),
            steps=len(step_records),
        )


__all__ = ["CounterConfig", "CounterScenario", "CounterPolicy", "CounterOutcome", "CounterModel"]
