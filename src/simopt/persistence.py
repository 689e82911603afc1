"""Checkpoint and experiment persistence."""
from __future__ import annotations

import math
import pickle
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml

from .config import ExperimentConfig
from .pareto import OptimizationResult, ParetoFront, ParetoPoint
from .types import Direction, Objective

CHECKPOINT_VERSION = 1


@dataclass
class Checkpoint:
    """Problem and opaque search state saved mid-run."""

    problem: Any
    search_state: Any
    metadata: str = ""
    saved_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def save_checkpoint(
    path: str | Path,
    problem: Any,
    search_state: Any,
    metadata: str = "",
) -> Path:
    """Pickle ``problem`` and ``search_state`` to ``path``.

    Everything referenced by the problem (model, metric callables,
    constraints) must be picklable, so define them at module level.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "version": CHECKPOINT_VERSION,
        "checkpoint": Checkpoint(problem, search_state, metadata),
    }
    with target.open("wb") as fh:
        pickle.dump(payload, fh, protocol=pickle.HIGHEST_PROTOCOL)
    return target


def load_checkpoint(path: str | Path) -> Checkpoint:
    """Load a checkpoint written by :func:`save_checkpoint`.

    Only load checkpoints from trusted sources; unpickling runs arbitrary code.
    """

    with Path(path).open("rb") as fh:
        payload = pickle.load(fh)
    if not isinstance(payload, Mapping) or "checkpoint" not in payload:
        raise ValueError(f"{path} is not a simopt checkpoint")
    version = payload.get("version")
    if version != CHECKPOINT_VERSION:
        raise ValueError(
            f"unsupported checkpoint version {version!r}; expected {CHECKPOINT_VERSION}"
        )
    return payload["checkpoint"]


# ----------------------------------------------------------------------
# Experiments
# ----------------------------------------------------------------------
@dataclass
class Experiment:
    config: ExperimentConfig
    result: OptimizationResult | None = None


def _yaml_safe(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _yaml_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_yaml_safe(item) for item in value]
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if hasattr(value, "item"):
        return _yaml_safe(value.item())
    return str(value)


def _result_to_dict(result: OptimizationResult) -> Dict[str, Any]:
    return {
        "objectives": [
            {"name": objective.name, "direction": objective.direction.value}
            for objective in result.front.objectives
        ],
        "best_params": [float(v) for v in result.best_params],
        "best_objectives": {name: float(v) for name, v in result.best_objectives.items()},
        "converged": bool(result.converged),
        "iterations": int(result.iterations),
        "convergence_info": _yaml_safe(result.convergence_info),
        "front": [
            {"params": list(point.params), "objectives": list(point.objectives)}
            for point in result.front
        ],
    }


def _result_from_dict(data: Mapping[str, Any]) -> OptimizationResult:
    objectives: List[Objective] = [
        Objective(entry["name"], Direction(entry["direction"])) for entry in data["objectives"]
    ]
    front = ParetoFront(objectives)
    for entry in data.get("front", []):
        front.merge(ParetoPoint(tuple(entry["params"]), tuple(entry["objectives"])))
    return OptimizationResult(
        best_params=tuple(float(v) for v in data["best_params"]),
        best_objectives={str(k): float(v) for k, v in data["best_objectives"].items()},
        front=front,
        converged=bool(data.get("converged", False)),
        iterations=int(data.get("iterations", 0)),
        convergence_info=dict(data.get("convergence_info") or {}),
    )


def save_experiment(
    path: str | Path,
    config: ExperimentConfig,
    result: OptimizationResult | None = None,
) -> Path:
    """Write experiment provenance and an optional result as YAML."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    document: Dict[str, Any] = {"config": config.model_dump(mode="json")}
    if result is not None:
        document["result"] = _result_to_dict(result)
    with target.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(document, fh, allow_unicode=True, sort_keys=False)
    return target


def load_experiment(path: str | Path) -> Experiment:
    with Path(path).open("r", encoding="utf-8") as fh:
        document = yaml.safe_load(fh)
    if not isinstance(document, Mapping) or "config" not in document:
        raise ValueError(f"{path} does not contain an experiment document")
    config = ExperimentConfig.model_validate(document["config"])
    result_data = document.get("result")
    result = _result_from_dict(result_data) if result_data is not None else None
    return Experiment(config=config, result=result)


__all__ = [
    "CHECKPOINT_VERSION",
    "Checkpoint",
    "save_checkpoint",
    "load_checkpoint",
    "Experiment",
    "save_experiment",
    "load_experiment",
]
