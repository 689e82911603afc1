"""Configuration schema for search backends and experiment provenance."""

from __future__ import annotations

import subprocess
from datetime import datetime, timezone
from importlib import metadata
from typing import Any, Dict, Iterable

from pydantic import BaseModel, ConfigDict, Field, model_validator

SUPPORTED_SAMPLERS = ("tpe", "random", "nsga2", "nsgaiii")


class BackendConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sampler: str = "tpe"
    n_trials: int
    seed: int | None = None
    fitness_seed: int = 42
    patience: int | None = None
    population_size: int | None = None
    log_file: str | None = None
    study_name: str | None = None

    @model_validator(mode="after")
    def validate_backend(self) -> "BackendConfig":
        self.sampler = self.sampler.lower().strip()
        if self.sampler not in SUPPORTED_SAMPLERS:
            raise ValueError("backend.sampler must be one of " + ", ".join(SUPPORTED_SAMPLERS))
        if self.n_trials <= 0:
            raise ValueError("backend.n_trials must be a positive integer")
        if self.patience is not None and self.patience <= 0:
            raise ValueError("backend.patience must be positive when provided")
        if self.population_size is not None:
            if self.sampler not in {"nsga2", "nsgaiii"}:
                raise ValueError("backend.population_size is only supported by nsga2 and nsgaiii")
            if self.population_size < 2:
                raise ValueError("backend.population_size must be at least 2")
        if self.log_file is not None:
            log_file = self.log_file.strip()
            if not log_file:
                raise ValueError("backend.log_file must be a non-empty string when provided")
            self.log_file = log_file
        return self


class ExperimentConfig(BaseModel):
    """Provenance stored alongside a saved experiment."""

    model_config = ConfigDict(extra="forbid")

    seed: int | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    git_commit: str | None = None
    package_versions: Dict[str, str] = Field(default_factory=dict)
    scenario_source: str = ""
    shared: Dict[str, Any] = Field(default_factory=dict)
    backend: BackendConfig | None = None

    @model_validator(mode="after")
    def validate_experiment(self) -> "ExperimentConfig":
        if self.git_commit is not None:
            commit = self.git_commit.strip()
            self.git_commit = commit or None
        for name in self.shared:
            if not isinstance(name, str) or not name.strip():
                raise ValueError("shared parameter names must be non-empty strings")
        return self

    @classmethod
    def capture(
        cls,
        *,
        seed: int | None = None,
        packages: Iterable[str] = ("simopt", "numpy", "optuna", "pydantic"),
        **kwargs: Any,
    ) -> "ExperimentConfig":
        """Build a config recording the current git commit and package versions."""

        return cls(
            seed=seed,
            git_commit=current_git_commit(),
            package_versions=package_versions(packages),
            **kwargs,
        )


def current_git_commit() -> str | None:
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            check=True,
            capture_output=True,
            text=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None
    commit = result.stdout.strip()
    return commit or None


def package_versions(names: Iterable[str]) -> Dict[str, str]:
    versions: Dict[str, str] = {}
    for name in names:
        try:
            versions[name] = metadata.version(name)
        except metadata.PackageNotFoundError:
            continue
    return versions


__all__ = [
    "SUPPORTED_SAMPLERS",
    "BackendConfig",
    "ExperimentConfig",
    "current_git_commit",
    "package_versions",
]
