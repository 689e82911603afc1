"""Base types for user-defined models, scenarios, configs and policies.

Everything here is open for extension: subclass the bases (or provide
duck-typed equivalents) and implement the callbacks a model needs.
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from .errors import ConstructionError, InterfaceNotImplementedError
from .parameters import continuous_fields, derive_bounds
from .timestepping import TimeStep


class Scenario(BaseModel):
    """Immutable realization of exogenous uncertain inputs."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class Config(BaseModel):
    """Fixed parameters shared by every scenario of an experiment."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def validate_config(self) -> None:
        """Domain-specific validation hook; raise to reject the config."""


class Policy(BaseModel):
    """Parameterized decision rule exposing a flat parameter vector.

    Subclasses declare searchable fields with
    ``Annotated[float, Continuous(low, high)]``. :meth:`param_bounds`,
    :meth:`from_vector` and :meth:`params` are derived from those fields in
    declaration order; override all three to supply them explicitly, in
    which case the search names its dimensions ``x0..xn``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    @classmethod
    def param_names(cls) -> List[str]:
        return [name for name, _ in continuous_fields(cls)]

    @classmethod
    def param_bounds(cls) -> List[Tuple[float, float]]:
        return derive_bounds(cls)

    @classmethod
    def from_vector(cls, x: Sequence[float]) -> "Policy":
        names = cls.param_names()
        values = list(x)
        if len(values) != len(names):
            raise ConstructionError(
                f"{cls.__name__}.from_vector expected {len(names)} values, got {len(values)}"
            )
        return cls(**{name: float(value) for name, value in zip(names, values)})

    def params(self) -> List[float]:
        return [float(getattr(self, name)) for name in self.param_names()]

    def validate_for(self, config: Any) -> None:
        """Policy/config compatibility hook; raise to reject the pairing."""


class Direction(str, Enum):
    """Optimization direction of an objective."""

    MINIMIZE = "minimize"
    MAXIMIZE = "maximize"
    IGNORE = "ignore"


@dataclass(frozen=True)
class Objective:
    """A metric name paired with an optimization direction."""

    name: str
    direction: Direction = Direction.MINIMIZE

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ConstructionError("Objective name must be a non-empty string")
        try:
            direction = Direction(self.direction)
        except ValueError as exc:
            raise ConstructionError(
                f"Objective direction must be one of "
                f"{', '.join(d.value for d in Direction)}, got {self.direction!r}"
            ) from exc
        object.__setattr__(self, "direction", direction)

    @property
    def is_active(self) -> bool:
        return self.direction is not Direction.IGNORE

    def to_minimization(self, value: float) -> float:
        return -value if self.direction is Direction.MAXIMIZE else value


def minimize(name: str) -> Objective:
    return Objective(name, Direction.MINIMIZE)


def maximize(name: str) -> Objective:
    return Objective(name, Direction.MAXIMIZE)


def ignore(name: str) -> Objective:
    """Track a metric without passing it to the search backend."""

    return Objective(name, Direction.IGNORE)


class SimulationModel:
    """Callback protocol consumed by :func:`simopt.simulation.simulate`.

    Required callbacks are :meth:`time_axis`, :meth:`initialize`,
    :meth:`run_timestep` and :meth:`compute_outcome`. :meth:`initialize` may
    be implemented either as ``initialize(config, scenario, rng)`` or, for
    deterministic models, as ``initialize(config, scenario)``.
    :meth:`get_action` and :meth:`is_terminal` are optional.
    """

    #: Names of callbacks that every model must implement.
    REQUIRED_CALLBACKS: Sequence[str] = (
        "time_axis",
        "initialize",
        "run_timestep",
        "compute_outcome",
    )

    def time_axis(self, config: Any, scenario: Any) -> Iterable[Any]:
        raise InterfaceNotImplementedError("time_axis", type(self), "self, config, scenario")

    def initialize(self, config: Any, scenario: Any, rng: Any) -> Any:
        raise InterfaceNotImplementedError(
            "initialize", type(self), "self, config, scenario[, rng]"
        )

    def get_action(self, policy: Any, state: Any, t: TimeStep, scenario: Any) -> Any:
        return None

    def run_timestep(
        self,
        state: Any,
        action: Any,
        t: TimeStep,
        config: Any,
        scenario: Any,
        rng: Any,
    ) -> Tuple[Any, Any]:
        raise InterfaceNotImplementedError(
            "run_timestep",
            type(self),
            "self, state, action, t, config, scenario, rng",
        )

    def is_terminal(self, state: Any, config: Any, t: TimeStep) -> bool:
        return False

    def compute_outcome(self, step_records: Sequence[Any], config: Any, scenario: Any) -> Any:
        raise InterfaceNotImplementedError(
            "compute_outcome", type(self), "self, step_records, config, scenario"
        )


def missing_callbacks(model: Any) -> List[str]:
    """Return the required callbacks ``model`` does not implement."""

    missing: List[str] = []
    for name in SimulationModel.REQUIRED_CALLBACKS:
        attribute = getattr(type(model), name, None)
        if attribute is None or not callable(attribute):
            missing.append(name)
        elif attribute is getattr(SimulationModel, name):
            missing.append(name)
    return missing


def require_callbacks(model: Any) -> None:
    missing = missing_callbacks(model)
    if missing:
        raise InterfaceNotImplementedError(missing[0], type(model))


def accepts_rng(initialize: Any) -> bool:
    """Return whether an ``initialize`` callable takes the ``rng`` argument."""

    signature = inspect.signature(initialize)
    positional = 0
    for parameter in signature.parameters.values():
        if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
            return True
        if parameter.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            positional += 1
    return positional >= 3


__all__ = [
    "Scenario",
    "Config",
    "Policy",
    "Direction",
    "Objective",
    "minimize",
    "maximize",
    "ignore",
    "SimulationModel",
    "missing_callbacks",
    "require_callbacks",
    "accepts_rng",
]
