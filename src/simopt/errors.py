"""Exception hierarchy shared by the simulation and optimization layers."""
from __future__ import annotations


class SimOptError(Exception):
    """Base class for every error raised by :mod:`simopt`."""


class InterfaceNotImplementedError(SimOptError, NotImplementedError):
    """A model or policy does not provide a required callback."""

    def __init__(self, method: str, owner: type, signature: str = "") -> None:
        self.method = method
        self.owner = owner
        hint = f"({signature})" if signature else "(...)"
        super().__init__(
            f"Interface method `{method}` not implemented for {owner.__name__}. "
            f"Add: `def {method}{hint}` to {owner.__name__}."
        )


class ConstructionError(SimOptError, ValueError):
    """Invalid arguments passed to a composite constructor."""


class ValidationError(SimOptError, ValueError):
    """Homogeneity or cross-reference check failed before a run."""


class RandomnessMisuseError(SimOptError, RuntimeError):
    """A deterministic code path attempted to draw random numbers."""


class SimulationRuntimeError(SimOptError, RuntimeError):
    """A model callback raised while a simulation was running."""

    def __init__(self, callback: str, step: int | None, error: BaseException) -> None:
        self.callback = callback
        self.step = step
        self.phase = None
        location = "before the first step" if step is None else f"at step {step}"
        super().__init__(
            f"Model callback `{callback}` failed {location}: "
            f"{error.__class__.__name__}: {error}"
        )


__all__ = [
    "SimOptError",
    "InterfaceNotImplementedError",
    "ConstructionError",
    "ValidationError",
    "RandomnessMisuseError",
    "SimulationRuntimeError",
]
