"""Parameter declarations and automatic bounds derivation.

Fields of a policy, scenario or outcome type are declared with
:data:`typing.Annotated` markers::

    class ElevationPolicy(Policy):
        elevation_ft: Annotated[float, Continuous(0.0, 14.0)]

The markers carry no value themselves; the annotated field holds a plain
Python value. Bounds and parameter vectors are derived by walking the
annotated fields in declaration order.
"""
from __future__ import annotations

import dataclasses
import math
import typing
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from .errors import ConstructionError, SimOptError
from .timestepping import TimeStep


@dataclass(frozen=True)
class Continuous:
    """Real-valued field, optionally bounded."""

    low: float = -math.inf
    high: float = math.inf

    def __post_init__(self) -> None:
        if math.isnan(self.low) or math.isnan(self.high):
            raise ConstructionError("Continuous bounds must not be NaN")
        if self.low > self.high:
            raise ConstructionError(
                f"Continuous bounds require low <= high, got ({self.low}, {self.high})"
            )

    @property
    def is_bounded(self) -> bool:
        return math.isfinite(self.low) and math.isfinite(self.high)


@dataclass(frozen=True)
class Discrete:
    """Integer-valued field, optionally restricted to ``valid_values``."""

    valid_values: Tuple[int, ...] | None = None

    def __post_init__(self) -> None:
        if self.valid_values is not None:
            object.__setattr__(self, "valid_values", tuple(int(v) for v in self.valid_values))
            if not self.valid_values:
                raise ConstructionError("Discrete valid_values must not be empty when provided")


@dataclass(frozen=True)
class Categorical:
    """Field taking one of a fixed set of levels."""

    levels: Tuple[Any, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "levels", tuple(self.levels))
        if not self.levels:
            raise ConstructionError("Categorical requires at least one level")

    def check(self, value: Any) -> Any:
        if value not in self.levels:
            raise ConstructionError(f"Value {value!r} not in levels {list(self.levels)}")
        return value


@dataclass(frozen=True)
class GenericField:
    """Opaque field; skipped when flattening and never optimized."""


ParameterMarker = Continuous | Discrete | Categorical | GenericField
_MARKER_TYPES = (Continuous, Discrete, Categorical, GenericField)


class TimeSeriesBoundsError(SimOptError, IndexError):
    """Lookup of a time value that is not part of the series."""

    def __init__(self, requested: Any, available: Sequence[Any]) -> None:
        if len(available) <= 10:
            hint = f"Available: {list(available)}"
        else:
            hint = f"Available range: {available[0]} to {available[-1]}"
        super().__init__(f"time value {requested!r} not in time series axis. {hint}")


class TimeSeriesParameter:
    """Time-indexed float data carried by a scenario.

    Index with a :class:`~simopt.timestepping.TimeStep` (looked up by its
    value) or with an integer position.
    """

    __slots__ = ("_time_axis", "_values", "_positions")

    def __init__(self, values: Iterable[float], time_axis: Iterable[Any] | None = None) -> None:
        data = tuple(float(v) for v in values)
        if not data:
            raise ConstructionError("TimeSeriesParameter cannot be empty")
        axis = tuple(time_axis) if time_axis is not None else tuple(range(len(data)))
        if len(axis) != len(data):
            raise ConstructionError(
                f"time_axis length ({len(axis)}) must match values length ({len(data)})"
            )
        self._time_axis = axis
        self._values = data
        self._positions = {value: idx for idx, value in enumerate(axis)}

    @property
    def time_axis(self) -> Tuple[Any, ...]:
        return self._time_axis

    @property
    def values(self) -> Tuple[float, ...]:
        return self._values

    def __getitem__(self, key: TimeStep | int) -> float:
        if isinstance(key, TimeStep):
            position = self._positions.get(key.value)
            if position is None:
                raise TimeSeriesBoundsError(key.value, self._time_axis)
            return self._values[position]
        if not 0 <= key < len(self._values):
            raise IndexError(f"index {key} outside series of length {len(self._values)}")
        return self._values[key]

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self):
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TimeSeriesParameter):
            return NotImplemented
        return self._time_axis == other._time_axis and self._values == other._values

    def __hash__(self) -> int:
        return hash((self._time_axis, self._values))

    def __repr__(self) -> str:
        return f"TimeSeriesParameter(n={len(self._values)})"


# ----------------------------------------------------------------------
# Field introspection
# ----------------------------------------------------------------------
def declared_fields(cls: type) -> List[Tuple[str, Any, Tuple[Any, ...]]]:
    """Return ``(name, annotation, metadata)`` for each field in declaration order.

    Supports pydantic models and dataclasses; any other class yields no fields.
    """

    model_fields = getattr(cls, "model_fields", None)
    if isinstance(model_fields, dict):
        return [
            (name, info.annotation, tuple(info.metadata))
            for name, info in model_fields.items()
        ]
    if dataclasses.is_dataclass(cls):
        hints = typing.get_type_hints(cls, include_extras=True)
        entries = []
        for field in dataclasses.fields(cls):
            hint = hints.get(field.name, field.type)
            metadata: Tuple[Any, ...] = ()
            if typing.get_origin(hint) is typing.Annotated:
                base, *extras = typing.get_args(hint)
                hint, metadata = base, tuple(extras)
            entries.append((field.name, hint, metadata))
        return entries
    return []


def parameter_marker(metadata: Sequence[Any]) -> ParameterMarker | None:
    for item in metadata:
        if isinstance(item, _MARKER_TYPES):
            return item
    return None


def parameter_fields(cls: type) -> List[Tuple[str, ParameterMarker]]:
    """Return the marked fields of ``cls`` in declaration order."""

    result: List[Tuple[str, ParameterMarker]] = []
    for name, _annotation, metadata in declared_fields(cls):
        marker = parameter_marker(metadata)
        if marker is not None:
            result.append((name, marker))
    return result


def continuous_fields(cls: type) -> List[Tuple[str, Continuous]]:
    """Return the continuous fields eligible for search, in declaration order.

    Raises
    ------
    ConstructionError
        If the type declares discrete or categorical fields, if it declares no
        continuous field, or if any continuous field is unbounded.
    """

    marked = parameter_fields(cls)
    rejected = [
        f"{name} ({type(marker).__name__})"
        for name, marker in marked
        if isinstance(marker, (Discrete, Categorical))
    ]
    if rejected:
        raise ConstructionError(
            f"{cls.__name__} declares non-continuous fields: {', '.join(rejected)}. "
            "Only continuous parameter spaces can be searched."
        )
    eligible = [(name, marker) for name, marker in marked if isinstance(marker, Continuous)]
    if not eligible:
        raise ConstructionError(
            f"{cls.__name__} declares no Continuous fields; annotate fields with "
            "Continuous(low, high) or implement param_bounds()/from_vector()."
        )
    unbounded = [name for name, marker in eligible if not marker.is_bounded]
    if unbounded:
        raise ConstructionError(
            f"{cls.__name__} has unbounded Continuous fields: {', '.join(unbounded)}"
        )
    return eligible


def derive_bounds(cls: type) -> List[Tuple[float, float]]:
    return [(float(marker.low), float(marker.high)) for _, marker in continuous_fields(cls)]


def flatten_parameters(obj: Any, prefix: str) -> Dict[str, Any]:
    """Flatten the marked fields of ``obj`` into ``{prefix_name: value}``.

    Time series expand to one column per time value; generic fields are
    skipped.
    """

    flat: Dict[str, Any] = {}
    for name, _annotation, metadata in declared_fields(type(obj)):
        marker = parameter_marker(metadata)
        if isinstance(marker, GenericField):
            continue
        value = getattr(obj, name)
        if isinstance(value, TimeSeriesParameter):
            for t, item in zip(value.time_axis, value.values):
                flat[f"{prefix}_{name}[{t}]"] = item
        elif marker is not None:
            flat[f"{prefix}_{name}"] = value
    return flat


__all__ = [
    "Continuous",
    "Discrete",
    "Categorical",
    "GenericField",
    "ParameterMarker",
    "TimeSeriesParameter",
    "TimeSeriesBoundsError",
    "declared_fields",
    "parameter_marker",
    "parameter_fields",
    "continuous_fields",
    "derive_bounds",
    "flatten_parameters",
]
