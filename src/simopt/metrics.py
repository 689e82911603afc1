"""Declarative reductions of simulation outcomes into named scalar metrics.

Each descriptor names the metric(s) it produces and how outcomes are
reduced::

    metrics = MetricSet([
        ExpectedValue("expected_cost", "total_cost"),
        Quantile("cost_95", "total_cost", 0.95),
        Probability("prob_no_flood", lambda o: o.n_floods == 0),
    ])
    metrics.compute(outcomes)
    # {"expected_cost": ..., "cost_95": ..., "prob_no_flood": ...}
"""
from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence, Tuple

import numpy as np

from .errors import ConstructionError, ValidationError


@dataclass(frozen=True)
class ExpectedValue:
    """Mean of ``field`` across outcomes."""

    name: str
    field: str


@dataclass(frozen=True)
class Variance:
    """Sample variance of ``field`` across outcomes."""

    name: str
    field: str


@dataclass(frozen=True)
class MeanAndVariance:
    """Mean and sample variance of ``field``, reported under two names."""

    mean_name: str
    var_name: str
    field: str


@dataclass(frozen=True)
class Quantile:
    """Linearly interpolated ``q``-quantile of ``field``; ``q`` lies strictly in (0, 1)."""

    name: str
    field: str
    q: float

    def __post_init__(self) -> None:
        q = float(self.q)
        if not 0.0 < q < 1.0:
            raise ConstructionError(f"Quantile q must be in (0, 1), got {self.q}")
        object.__setattr__(self, "q", q)


@dataclass(frozen=True)
class Probability:
    """Fraction of outcomes for which ``predicate`` holds."""

    name: str
    predicate: Callable[[Any], bool]


@dataclass(frozen=True)
class CustomMetric:
    """Arbitrary reduction ``func(outcomes) -> float``."""

    name: str
    func: Callable[[Sequence[Any]], float]


Metric = ExpectedValue | Variance | MeanAndVariance | Quantile | Probability | CustomMetric
_METRIC_TYPES = (ExpectedValue, Variance, MeanAndVariance, Quantile, Probability, CustomMetric)


def _field_value(outcome: Any, field: str) -> float:
    if isinstance(outcome, Mapping):
        if field not in outcome:
            raise ValidationError(
                f"outcome has no field {field!r}; available keys: {', '.join(map(str, outcome))}"
            )
        return float(outcome[field])
    try:
        return float(getattr(outcome, field))
    except AttributeError:
        raise ValidationError(
            f"{type(outcome).__name__} outcome has no field {field!r}"
        ) from None


def _field_values(outcomes: Sequence[Any], field: str) -> np.ndarray:
    return np.array([_field_value(outcome, field) for outcome in outcomes], dtype=float)


def _sample_variance(values: np.ndarray) -> float:
    if values.size < 2:
        return math.nan
    return float(np.var(values, ddof=1))


def metric_names(metric: Metric) -> Tuple[str, ...]:
    """Return the names ``metric`` produces, in output order."""

    if isinstance(metric, MeanAndVariance):
        return (metric.mean_name, metric.var_name)
    if isinstance(metric, _METRIC_TYPES):
        return (metric.name,)
    raise TypeError(f"Unsupported metric descriptor: {type(metric).__name__}")


def all_metric_names(metrics: Iterable[Metric]) -> List[str]:
    names: List[str] = []
    for metric in metrics:
        names.extend(metric_names(metric))
    return names


def compute_metric(metric: Metric, outcomes: Sequence[Any]) -> Dict[str, float]:
    """Reduce ``outcomes`` with a single descriptor."""

    if isinstance(metric, ExpectedValue):
        return {metric.name: float(np.mean(_field_values(outcomes, metric.field)))}
    if isinstance(metric, Variance):
        return {metric.name: _sample_variance(_field_values(outcomes, metric.field))}
    if isinstance(metric, MeanAndVariance):
        values = _field_values(outcomes, metric.field)
        return {
            metric.mean_name: float(np.mean(values)),
            metric.var_name: _sample_variance(values),
        }
    if isinstance(metric, Quantile):
        values = _field_values(outcomes, metric.field)
        return {metric.name: float(np.quantile(values, metric.q, method="linear"))}
    if isinstance(metric, Probability):
        hits = np.array([bool(metric.predicate(outcome)) for outcome in outcomes], dtype=float)
        return {metric.name: float(np.mean(hits))}
    if isinstance(metric, CustomMetric):
        return {metric.name: float(metric.func(outcomes))}
    raise TypeError(f"Unsupported metric descriptor: {type(metric).__name__}")


def _check_unique(names: Sequence[str]) -> None:
    duplicates = sorted(name for name, count in Counter(names).items() if count > 1)
    if duplicates:
        raise ConstructionError(f"duplicate metric names: {', '.join(duplicates)}")


def _require_outcomes(outcomes: Iterable[Any]) -> Tuple[Any, ...]:
    collection = tuple(outcomes)
    if not collection:
        raise ValidationError("cannot compute metrics from an empty outcome collection")
    return collection


def compute_metrics(metrics: Iterable[Metric], outcomes: Iterable[Any]) -> Dict[str, float]:
    """Evaluate every descriptor and merge the results in declaration order."""

    descriptors = list(metrics)
    _check_unique(all_metric_names(descriptors))
    collection = _require_outcomes(outcomes)
    result: Dict[str, float] = {}
    for metric in descriptors:
        result.update(compute_metric(metric, collection))
    return result


class MetricSet:
    """Validated collection of metric descriptors.

    A set is built either from descriptors or, via :meth:`from_function`, from
    a free-form reduction whose produced names are declared up front.
    """

    def __init__(self, metrics: Iterable[Metric]) -> None:
        descriptors = tuple(metrics)
        if not descriptors:
            raise ConstructionError("MetricSet requires at least one metric")
        for metric in descriptors:
            if not isinstance(metric, _METRIC_TYPES):
                raise ConstructionError(
                    f"Unsupported metric descriptor: {type(metric).__name__}. Use one of "
                    f"{', '.join(t.__name__ for t in _METRIC_TYPES)}."
                )
        names = all_metric_names(descriptors)
        _check_unique(names)
        self._metrics = descriptors
        self._names = tuple(names)
        self._function: Callable[[Sequence[Any]], Mapping[str, float]] | None = None

    @classmethod
    def from_function(
        cls,
        fn: Callable[[Sequence[Any]], Mapping[str, float]],
        names: Sequence[str],
    ) -> "MetricSet":
        """Wrap ``fn(outcomes) -> {name: value}`` producing the declared ``names``."""

        if not callable(fn):
            raise ConstructionError("MetricSet.from_function requires a callable")
        declared = tuple(str(name) for name in names)
        if not declared:
            raise ConstructionError("MetricSet.from_function requires declared metric names")
        _check_unique(declared)
        instance = cls.__new__(cls)
        instance._metrics = ()
        instance._names = declared
        instance._function = fn
        return instance

    @property
    def metrics(self) -> Tuple[Metric, ...]:
        return self._metrics

    @property
    def names(self) -> Tuple[str, ...]:
        return self._names

    def __len__(self) -> int:
        return len(self._names)

    def __iter__(self):
        return iter(self._metrics)

    def compute(self, outcomes: Iterable[Any]) -> Dict[str, float]:
        collection = _require_outcomes(outcomes)
        if self._function is None:
            result: Dict[str, float] = {}
            for metric in self._metrics:
                result.update(compute_metric(metric, collection))
            return result

        raw = self._function(collection)
        missing = [name for name in self._names if name not in raw]
        if missing:
            raise ValidationError(
                f"metric function did not return declared metric(s): {', '.join(missing)}"
            )
        return {name: float(raw[name]) for name in self._names}

    def __repr__(self) -> str:
        return f"MetricSet(names={list(self._names)})"


__all__ = [
    "ExpectedValue",
    "Variance",
    "MeanAndVariance",
    "Quantile",
    "Probability",
    "CustomMetric",
    "Metric",
    "metric_names",
    "all_metric_names",
    "compute_metric",
    "compute_metrics",
    "MetricSet",
]
