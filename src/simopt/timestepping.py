"""Time axis handling for time-stepped simulations."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Iterable, Iterator, Sequence, TypeVar

from .errors import ValidationError

V = TypeVar("V")


@dataclass(frozen=True, slots=True)
class TimeStep(Generic[V]):
    """One instant of a time axis.

    Attributes
    ----------
    index:
        Zero-based position within the axis.
    value:
        The axis value at this position (year, date, float time, ...).
    is_last:
        ``True`` for the final element of the axis.
    """

    index: int
    value: V
    is_last: bool = False


class TimeAxis(Sequence[TimeStep[V]]):
    """Validated, length-known, homogeneously typed sequence of instants."""

    __slots__ = ("_values", "_element_type")

    def __init__(self, values: Iterable[V]) -> None:
        materialised = tuple(values)
        if not materialised:
            raise ValidationError("time_axis must return at least one time point")
        element_type = type(materialised[0])
        for position, item in enumerate(materialised):
            if type(item) is not element_type:
                raise ValidationError(
                    "time_axis must return a homogeneously-typed collection. "
                    f"Element 0 is {element_type.__name__}, element {position} is "
                    f"{type(item).__name__}. Use a single concrete type such as "
                    "range(...) or a list of dates."
                )
        self._values = materialised
        self._element_type = element_type

    @property
    def values(self) -> tuple[V, ...]:
        return self._values

    @property
    def element_type(self) -> type:
        return self._element_type

    def __len__(self) -> int:
        return len(self._values)

    def __getitem__(self, position):  # type: ignore[override]
        if isinstance(position, slice):
            raise TypeError("TimeAxis does not support slicing; index single steps")
        count = len(self._values)
        if position < 0:
            position += count
        if not 0 <= position < count:
            raise IndexError(f"time step {position} outside axis of length {count}")
        return TimeStep(position, self._values[position], position == count - 1)

    def __iter__(self) -> Iterator[TimeStep[V]]:
        last = len(self._values) - 1
        for position, value in enumerate(self._values):
            yield TimeStep(position, value, position == last)

    def __repr__(self) -> str:
        return f"TimeAxis(n={len(self._values)}, type={self._element_type.__name__})"


def time_index(values: Iterable[Any]) -> TimeAxis:
    """Wrap ``values`` in a validated :class:`TimeAxis`."""

    if isinstance(values, TimeAxis):
        return values
    return TimeAxis(values)


def is_first(step: TimeStep) -> bool:
    return step.index == 0


def discount_factor(rate: float, t: float) -> float:
    """Return ``1 / (1 + rate) ** t``."""

    return 1.0 / (1.0 + rate) ** t


__all__ = ["TimeStep", "TimeAxis", "time_index", "is_first", "discount_factor"]
