"""Construction-time checks shared by problems and simulations."""
from __future__ import annotations

import math
import warnings
from collections import Counter
from enum import Enum
from typing import Any, Iterable, List, Sequence, Tuple

from .errors import ConstructionError, InterfaceNotImplementedError, ValidationError
from .parameters import GenericField, TimeSeriesParameter, declared_fields, parameter_marker
from .types import Objective


class ValidationMode(str, Enum):
    """How thoroughly user types are checked before a run.

    ``STANDARD`` runs the homogeneity, interface and cross-reference checks.
    ``STRICT`` additionally requires every declared field of scenario and
    policy types to carry a parameter marker.
    """

    STANDARD = "standard"
    STRICT = "strict"


def validate_scenarios(scenarios: Iterable[Any]) -> Tuple[Any, ...]:
    """Return ``scenarios`` as a tuple after checking it is non-empty and homogeneous."""

    collection = tuple(scenarios)
    if not collection:
        raise ValidationError("scenarios must contain at least one scenario")
    expected = type(collection[0])
    for index, scenario in enumerate(collection):
        if type(scenario) is not expected:
            raise ValidationError(
                "scenarios must all share one concrete type. "
                f"Scenario 0 is {expected.__name__}, scenario {index} is "
                f"{type(scenario).__name__}."
            )
    return collection


def validate_bounds(bounds: Any, owner: str) -> List[Tuple[float, float]]:
    """Normalise ``bounds`` to a list of finite ``(low, high)`` float pairs."""

    if bounds is None:
        raise ConstructionError(f"{owner} returned no parameter bounds")
    try:
        entries = list(bounds)
    except TypeError as exc:
        raise ConstructionError(
            f"{owner} bounds must be a sequence of (low, high) pairs, got {type(bounds).__name__}"
        ) from exc
    if not entries:
        raise ConstructionError(f"{owner} bounds must not be empty")

    normalised: List[Tuple[float, float]] = []
    for position, entry in enumerate(entries):
        try:
            low, high = entry
            low, high = float(low), float(high)
        except (TypeError, ValueError) as exc:
            raise ConstructionError(
                f"{owner} bound {position} must be a (low, high) pair, got {entry!r}"
            ) from exc
        if not (math.isfinite(low) and math.isfinite(high)):
            raise ConstructionError(
                f"{owner} bound {position} must be finite, got ({low}, {high})"
            )
        if low > high:
            raise ConstructionError(
                f"{owner} bound {position} requires low <= high, got ({low}, {high})"
            )
        normalised.append((low, high))
    return normalised


def validate_policy_interface(
    policy_type: type,
    bounds: Sequence[Tuple[float, float]] | None = None,
) -> List[Tuple[float, float]]:
    """Check the policy accessors and return the validated bounds.

    The policy is constructed once at the midpoint of its bounds to confirm
    that ``from_vector`` returns an instance of ``policy_type`` whose
    ``params()`` (when defined) has one entry per bound.
    """

    name = policy_type.__name__
    if not callable(getattr(policy_type, "from_vector", None)):
        raise InterfaceNotImplementedError("from_vector", policy_type, "cls, x")
    if bounds is None:
        accessor = getattr(policy_type, "param_bounds", None)
        if not callable(accessor):
            raise InterfaceNotImplementedError("param_bounds", policy_type, "cls")
        bounds = accessor()
    validated = validate_bounds(bounds, name)

    midpoint = [(low + high) / 2.0 for low, high in validated]
    try:
        candidate = policy_type.from_vector(midpoint)
    except (ConstructionError, InterfaceNotImplementedError):
        raise
    except Exception as exc:
        raise ConstructionError(
            f"{name}.from_vector failed at the bounds midpoint {midpoint}: {exc}"
        ) from exc
    if not isinstance(candidate, policy_type):
        raise ConstructionError(
            f"{name}.from_vector must return a {name}, got {type(candidate).__name__}"
        )
    params = getattr(candidate, "params", None)
    if callable(params):
        length = len(list(params()))
        if length != len(validated):
            raise ConstructionError(
                f"{name}.params() returned {length} values but {len(validated)} bounds are defined"
            )
    return validated


def validate_objectives(
    objectives: Iterable[Objective],
    available: Sequence[str],
) -> Tuple[Objective, ...]:
    """Check objectives are unique, not all ignored and reference known metrics."""

    collection = tuple(objectives)
    if not collection:
        raise ConstructionError("objectives must contain at least one Objective")
    for objective in collection:
        if not isinstance(objective, Objective):
            raise ConstructionError(
                f"objectives must be Objective instances, got {type(objective).__name__}"
            )
    duplicates = sorted(
        name for name, count in Counter(obj.name for obj in collection).items() if count > 1
    )
    if duplicates:
        raise ConstructionError(f"duplicate objective names: {', '.join(duplicates)}")
    if not any(objective.is_active for objective in collection):
        raise ConstructionError("at least one objective must be minimized or maximized")

    known = set(available)
    unknown = [objective.name for objective in collection if objective.name not in known]
    if unknown:
        raise ValidationError(
            f"objective(s) {', '.join(unknown)} not produced by the metric set. "
            f"Available metrics: {', '.join(available)}"
        )
    return collection


def validate_parameter_fields(cls: type, role: str, mode: ValidationMode) -> None:
    """Check the declared fields of a scenario or policy type.

    Generic policy fields are reported with a :class:`RuntimeWarning` since
    they are never searched. In ``STRICT`` mode every declared field must
    carry a parameter marker or hold a :class:`TimeSeriesParameter`.
    """

    unmarked: List[str] = []
    for name, annotation, metadata in declared_fields(cls):
        marker = parameter_marker(metadata)
        if isinstance(marker, GenericField) and role == "policy":
            warnings.warn(
                f"{cls.__name__}.{name} is a generic field and will not be optimized",
                RuntimeWarning,
                stacklevel=3,
            )
        if marker is None and annotation is not TimeSeriesParameter:
            unmarked.append(name)
    if mode is ValidationMode.STRICT and unmarked:
        raise ValidationError(
            f"{role} type {cls.__name__} has fields without a parameter marker: "
            f"{', '.join(unmarked)}. Annotate them with Continuous, Discrete, "
            "Categorical or GenericField."
        )


__all__ = [
    "ValidationMode",
    "validate_scenarios",
    "validate_bounds",
    "validate_policy_interface",
    "validate_objectives",
    "validate_parameter_fields",
]
