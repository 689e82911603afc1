"""Built-in example models."""

from .counter import CounterConfig, CounterModel, CounterOutcome, CounterPolicy, CounterScenario
from .house_elevation import (
    ElevationPolicy,
    HouseConfig,
    HouseElevationModel,
    HouseOutcome,
    HouseScenario,
    HouseState,
    damage_fraction,
    elevation_cost,
)

__all__ = [
    "CounterConfig",
    "CounterModel",
    "CounterOutcome",
    "CounterPolicy",
    "CounterScenario",
    "ElevationPolicy",
    "HouseConfig",
    "HouseElevationModel",
    "HouseOutcome",
    "HouseScenario",
    "HouseState",
    "damage_fraction",
    "elevation_cost",
]
