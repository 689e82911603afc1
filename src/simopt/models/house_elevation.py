"""Stochastic house-elevation model: up-front elevation against flood damages."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Annotated, Any, Dict, Sequence, Tuple

import numpy as np

from ..parameters import Continuous
from ..timestepping import TimeStep, discount_factor, is_first
from ..types import Config, Policy, Scenario, SimulationModel


class HouseConfig(Config):
    horizon_years: int = 30
    house_value: float = 250_000.0
    house_height_ft: float = 4.0
    max_elevation_ft: float = 14.0

    def validate_config(self) -> None:
        if self.horizon_years <= 0:
            raise ValueError("HouseConfig.horizon_years must be positive")
        if self.house_value <= 0:
            raise ValueError("HouseConfig.house_value must be positive")


class HouseScenario(Scenario):
    """Annual maximum surge ~ Gumbel(surge_loc, surge_scale), in feet."""

    surge_loc: Annotated[float, Continuous(0.0, 10.0)]
    surge_scale: Annotated[float, Continuous(0.1, 5.0)]
    discount_rate: Annotated[float, Continuous(0.0, 0.1)] = 0.03


class ElevationPolicy(Policy):
    elevation_ft: Annotated[float, Continuous(0.0, 14.0)]


@dataclass(frozen=True)
class HouseState:
    floor_height_ft: float


@dataclass(frozen=True)
class HouseOutcome:
    construction_cost: Annotated[float, Continuous()]
    npv_damages: Annotated[float, Continuous()]

    @property
    def total_cost(self) -> float:
        return self.construction_cost + self.npv_damages


def elevation_cost(house_value: float, elevation_ft: float) -> float:
    """Fixed mobilisation cost plus a per-foot cost, as a share of house value."""

    if elevation_ft <= 0:
        return 0.0
    return house_value * (0.10 + 0.025 * elevation_ft)


def damage_fraction(depth_ft: float) -> float:
    """Logistic depth-damage curve; zero for water below the first floor."""

    if depth_ft <= 0:
        return 0.0
    return 1.0 / (1.0 + math.exp(-(depth_ft - 4.0) / 1.5))


class HouseElevationModel(SimulationModel):
    """Elevate once in the first year, then accumulate discounted flood damages."""

    def time_axis(self, config: HouseConfig, scenario: HouseScenario) -> range:
        return range(config.horizon_years)

    def initialize(
        self, config: HouseConfig, scenario: HouseScenario, rng: np.random.Generator
    ) -> HouseState:
        return HouseState(floor_height_ft=config.house_height_ft)

    def get_action(
        self, policy: ElevationPolicy, state: HouseState, t: TimeStep, scenario: HouseScenario
    ) -> float:
        return float(policy.elevation_ft) if is_first(t) else 0.0

    def run_timestep(
        self,
        state: HouseState,
        action: float,
        t: TimeStep,
        config: HouseConfig,
        scenario: HouseScenario,
        rng: np.random.Generator,
    ) -> Tuple[HouseState, Dict[str, float]]:
        elevation = min(max(action, 0.0), config.max_elevation_ft)
        floor = state.floor_height_ft + elevation
        surge = float(rng.gumbel(scenario.surge_loc, scenario.surge_scale))
        damage = config.house_value * damage_fraction(surge - floor)
        record = {
            "surge_ft": surge,
            "damage": damage,
            "investment": elevation_cost(config.house_value, elevation),
        }
        return HouseState(floor), record

    def compute_outcome(
        self,
        step_records: Sequence[Dict[str, float]],
        config: HouseConfig,
        scenario: HouseScenario,
    ) -> HouseOutcome:
        npv = sum(
            record["damage"] * discount_factor(scenario.discount_rate, year)
            for year, record in enumerate(step_records)
        )
        return HouseOutcome(
            construction_cost=float(sum(record["investment"] for record in step_records)),
            npv_damages=float(npv),
        )


__all__ = [
    "HouseConfig",
    "HouseScenario",
    "ElevationPolicy",
    "HouseState",
    "HouseOutcome",
    "elevation_cost",
    "damage_fraction",
    "HouseElevationModel",
]
