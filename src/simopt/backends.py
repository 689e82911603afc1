"""Search backends driving policy optimization."""
from __future__ import annotations

import csv
import math
import warnings
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence

import optuna
from optuna.distributions import FloatDistribution
from optuna.trial import TrialState

from .config import SUPPORTED_SAMPLERS, BackendConfig
from .errors import ConstructionError
from .evaluation import FitnessFunction, restore_objectives
from .pareto import OptimizationResult, ParetoFront, ParetoPoint
from .problem import OptimizationProblem


class SearchBackend(ABC):
    """A search procedure over the problem's bounded parameter space."""

    @abstractmethod
    def optimize(self, problem: OptimizationProblem) -> OptimizationResult:
        """Search for non-dominated policies and return the result."""


def optimize(problem: OptimizationProblem, backend: SearchBackend) -> OptimizationResult:
    """Run ``backend`` on ``problem``."""

    if not isinstance(problem, OptimizationProblem):
        raise TypeError(f"problem must be an OptimizationProblem, got {type(problem).__name__}")
    if not isinstance(backend, SearchBackend):
        raise TypeError(
            f"backend must implement SearchBackend, got {type(backend).__name__}"
        )
    return backend.optimize(problem)


# ----------------------------------------------------------------------
# Optuna backend
# ----------------------------------------------------------------------
def build_sampler(
    sampler_name: str,
    seed: int | None,
    *,
    n_objectives: int = 1,
    population_size: int | None = None,
) -> optuna.samplers.BaseSampler:
    name = sampler_name.lower().strip()
    if name == "tpe" and n_objectives > 1:
        warnings.warn(
            "sampler 'tpe' requested for a multi-objective problem; using 'nsga2' instead",
            RuntimeWarning,
            stacklevel=3,
        )
        name = "nsga2"
    if name == "tpe":
        return optuna.samplers.TPESampler(seed=seed)
    if name == "random":
        return optuna.samplers.RandomSampler(seed=seed)
    if name in {"nsga2", "nsgaiii"}:
        kwargs: Dict[str, Any] = {"seed": seed}
        if population_size is not None:
            kwargs["population_size"] = population_size
        if name == "nsga2":
            return optuna.samplers.NSGAIISampler(**kwargs)
        return optuna.samplers.NSGAIIISampler(**kwargs)
    raise ValueError(
        f"Unsupported sampler: {sampler_name}. Use one of {', '.join(SUPPORTED_SAMPLERS)}."
    )


def parameter_names(problem: OptimizationProblem) -> List[str]:
    """Names used for the search dimensions; falls back to ``x0..xn``."""

    accessor = getattr(problem.policy_type, "param_names", None)
    if callable(accessor):
        try:
            names = list(accessor())
        except ConstructionError:
            # explicit bounds without Continuous fields
            names = []
        if len(names) == problem.n_params and len(set(names)) == len(names):
            return names
    return [f"x{i}" for i in range(problem.n_params)]


class TrialLogger:
    """Append one CSV row per trial with its parameters, metrics and objective values."""

    def __init__(
        self,
        path: Path,
        param_names: Iterable[str],
        metric_names: Iterable[str],
        objective_names: Iterable[str],
    ) -> None:
        self.path = path
        self.param_names = list(param_names)
        self.metric_names = [str(name) for name in metric_names]
        self.objective_names = [str(name) for name in objective_names]

        path.parent.mkdir(parents=True, exist_ok=True)
        write_header = not path.exists() or path.stat().st_size == 0
        self._fh = path.open("a", newline="", encoding="utf-8")
        self._writer = csv.DictWriter(
            self._fh,
            fieldnames=[
                "trial",
                *[f"param_{name}" for name in self.param_names],
                *[f"metric_{name}" for name in self.metric_names],
                *[f"objective_{name}" for name in self.objective_names],
            ],
        )
        if write_header:
            self._writer.writeheader()

    def log(
        self,
        trial_number: int,
        params: Mapping[str, float],
        metrics: Mapping[str, float],
        objectives: Sequence[float],
    ) -> None:
        row: Dict[str, Any] = {"trial": trial_number}
        for name in self.param_names:
            row[f"param_{name}"] = params.get(name)
        for name in self.metric_names:
            row[f"metric_{name}"] = metrics.get(name)
        for name, value in zip(self.objective_names, objectives):
            row[f"objective_{name}"] = value
        self._writer.writerow(row)
        self._fh.flush()

    def close(self) -> None:
        self._fh.close()

    def __enter__(self) -> "TrialLogger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class _NoImprovementTracker:
    """Counts consecutive trials that leave the running Pareto front unchanged."""

    def __init__(self, front: ParetoFront, patience: int | None) -> None:
        self._front = front
        self._patience = patience
        self._stale = 0

    def update(self, point: ParetoPoint | None) -> bool:
        """Merge ``point`` and return whether patience is exhausted."""

        improved = point is not None and self._front.merge(point)
        self._stale = 0 if improved else self._stale + 1
        return self._patience is not None and self._stale >= self._patience


class OptunaBackend(SearchBackend):
    """Ask/tell search with an Optuna sampler.

    Every objective is passed to Optuna as ``"minimize"``; maximized metrics
    are negated beforehand and restored when the result is built.

    Parameters
    ----------
    n_trials:
        Maximum number of policies evaluated.
    sampler:
        ``"tpe"``, ``"random"``, ``"nsga2"`` or ``"nsgaiii"``.
    seed:
        Seed for the sampler.
    fitness_seed:
        Seed for batch selection inside the fitness function.
    patience:
        Stop after this many consecutive trials without a Pareto-front
        change; the result is then marked converged.
    log_file:
        Optional CSV file receiving one row per trial.
    """

    def __init__(
        self,
        n_trials: int,
        *,
        sampler: str = "tpe",
        seed: int | None = None,
        fitness_seed: int = 42,
        patience: int | None = None,
        population_size: int | None = None,
        log_file: str | Path | None = None,
        study_name: str | None = None,
    ) -> None:
        config = BackendConfig(
            sampler=sampler,
            n_trials=n_trials,
            seed=seed,
            fitness_seed=fitness_seed,
            patience=patience,
            population_size=population_size,
            log_file=str(log_file) if log_file is not None else None,
            study_name=study_name,
        )
        self.config = config

    @classmethod
    def from_config(cls, config: BackendConfig | Mapping[str, Any]) -> "OptunaBackend":
        if not isinstance(config, BackendConfig):
            config = BackendConfig.model_validate(dict(config))
        return cls(**config.model_dump())

    def create_study(self, n_objectives: int) -> optuna.study.Study:
        sampler = build_sampler(
            self.config.sampler,
            self.config.seed,
            n_objectives=n_objectives,
            population_size=self.config.population_size,
        )
        return optuna.create_study(
            study_name=self.config.study_name,
            directions=["minimize"] * n_objectives,
            sampler=sampler,
        )

    def optimize(self, problem: OptimizationProblem) -> OptimizationResult:
        fitness = FitnessFunction(problem, self.config.fitness_seed)
        objectives = problem.active_objectives
        names = parameter_names(problem)
        distributions = {
            name: FloatDistribution(low, high) for name, (low, high) in zip(names, problem.bounds)
        }
        study = self.create_study(len(objectives))
        tracker = _NoImprovementTracker(ParetoFront(objectives), self.config.patience)

        logger: TrialLogger | None = None
        if self.config.log_file is not None:
            logger = TrialLogger(
                Path(self.config.log_file),
                names,
                problem.metric_names,
                [objective.name for objective in objectives],
            )

        stopped_reason: str | None = None
        try:
            for _ in range(self.config.n_trials):
                trial = study.ask(distributions)
                x = [trial.params[name] for name in names]
                metrics, values = fitness.evaluate(x, iteration=trial.number)
                trial.set_user_attr("metrics", dict(metrics))
                study.tell(trial, [float(v) for v in values])

                original = restore_objectives(values, problem.objectives)
                if logger is not None:
                    logger.log(trial.number, trial.params, metrics, original)

                point = None
                if all(math.isfinite(v) for v in values):
                    point = ParetoPoint(tuple(x), original)
                if tracker.update(point):
                    stopped_reason = (
                        f"no Pareto improvement for {self.config.patience} consecutive trials"
                    )
                    break
        finally:
            if logger is not None:
                logger.close()

        return wrap_study(
            study,
            problem,
            names,
            converged=stopped_reason is not None,
            convergence_info={
                "sampler": type(study.sampler).__name__,
                "stopped_reason": stopped_reason,
            },
        )


def wrap_study(
    study: optuna.study.Study,
    problem: OptimizationProblem,
    param_names: Sequence[str] | None = None,
    *,
    converged: bool = False,
    convergence_info: Mapping[str, Any] | None = None,
) -> OptimizationResult:
    """Convert a study run on ``problem`` into an :class:`OptimizationResult`.

    Only completed trials with finite objective values join the Pareto front.
    """

    names = list(param_names) if param_names is not None else parameter_names(problem)
    front = ParetoFront(problem.objectives)
    completed = study.get_trials(deepcopy=False, states=(TrialState.COMPLETE,))
    for trial in completed:
        values = trial.values
        if values is None or not all(math.isfinite(v) for v in values):
            continue
        x = tuple(float(trial.params[name]) for name in names)
        front.merge(ParetoPoint(x, restore_objectives(values, problem.objectives)))
    if not len(front):
        raise RuntimeError(
            f"no feasible trial among {len(study.trials)}; "
            "every evaluated policy violated a constraint or produced non-finite objectives"
        )
    info = {"n_trials": len(study.trials), "n_complete": len(completed), "n_pareto": len(front)}
    info.update(convergence_info or {})
    return OptimizationResult.from_front(
        front,
        converged=converged,
        iterations=len(study.trials),
        convergence_info=info,
    )


__all__ = [
    "SearchBackend",
    "optimize",
    "build_sampler",
    "parameter_names",
    "TrialLogger",
    "OptunaBackend",
    "wrap_study",
]
