"""Simulation-optimization core: time-stepped simulation and policy search."""

from .backends import OptunaBackend, SearchBackend, TrialLogger, optimize, wrap_study
from .batching import FixedBatch, FractionBatch, FullBatch, select_batch
from .config import BackendConfig, ExperimentConfig
from .errors import (
    ConstructionError,
    InterfaceNotImplementedError,
    RandomnessMisuseError,
    SimOptError,
    SimulationRuntimeError,
    ValidationError,
)
from .evaluation import (
    FeasibilityConstraint,
    FitnessFunction,
    PenaltyConstraint,
    apply_constraints,
    evaluate_policy,
    extract_objectives,
)
from .executors import Executor, ProcessExecutor, SequentialExecutor, ThreadedExecutor
from .exploration import ExplorationResult, explore
from .metrics import (
    CustomMetric,
    ExpectedValue,
    MeanAndVariance,
    MetricSet,
    Probability,
    Quantile,
    Variance,
    compute_metric,
    compute_metrics,
)
from .parameters import (
    Categorical,
    Continuous,
    Discrete,
    GenericField,
    TimeSeriesParameter,
)
from .pareto import (
    OptimizationResult,
    ParetoFront,
    ParetoPoint,
    dominates,
    merge_into_pareto,
    merge_policy_into_pareto,
)
from .persistence import load_checkpoint, load_experiment, save_checkpoint, save_experiment
from .problem import OptimizationProblem
from .recorders import NoRecorder, SimulationTrace, TraceRecorder, TraceRecorderBuilder
from .seeding import CommonRandomNumbers, IndependentDraws
from .simulation import initialize_state, simulate, simulate_traced
from .sinks import CSVSink, InMemorySink, NoSink, StreamingSink
from .timestepping import TimeAxis, TimeStep, discount_factor, is_first, time_index
from .types import (
    Config,
    Direction,
    Objective,
    Policy,
    Scenario,
    SimulationModel,
    ignore,
    maximize,
    minimize,
)
from .validation import ValidationMode

__all__ = [
    "BackendConfig",
    "CSVSink",
    "Categorical",
    "CommonRandomNumbers",
    "Config",
    "ConstructionError",
    "Continuous",
    "CustomMetric",
    "Direction",
    "Discrete",
    "Executor",
    "ExpectedValue",
    "ExperimentConfig",
    "ExplorationResult",
    "FeasibilityConstraint",
    "FitnessFunction",
    "FixedBatch",
    "FractionBatch",
    "FullBatch",
    "GenericField",
    "InMemorySink",
    "IndependentDraws",
    "InterfaceNotImplementedError",
    "MeanAndVariance",
    "MetricSet",
    "NoRecorder",
    "NoSink",
    "Objective",
    "OptimizationProblem",
    "OptimizationResult",
    "OptunaBackend",
    "ParetoFront",
    "ParetoPoint",
    "PenaltyConstraint",
    "Policy",
    "Probability",
    "ProcessExecutor",
    "Quantile",
    "RandomnessMisuseError",
    "Scenario",
    "SearchBackend",
    "SequentialExecutor",
    "SimOptError",
    "SimulationModel",
    "SimulationRuntimeError",
    "SimulationTrace",
    "StreamingSink",
    "ThreadedExecutor",
    "TimeAxis",
    "TimeSeriesParameter",
    "TimeStep",
    "TraceRecorder",
    "TraceRecorderBuilder",
    "TrialLogger",
    "ValidationError",
    "ValidationMode",
    "Variance",
    "apply_constraints",
    "compute_metric",
    "compute_metrics",
    "discount_factor",
    "dominates",
    "evaluate_policy",
    "explore",
    "extract_objectives",
    "ignore",
    "initialize_state",
    "is_first",
    "load_checkpoint",
    "load_experiment",
    "maximize",
    "merge_into_pareto",
    "merge_policy_into_pareto",
    "minimize",
    "optimize",
    "save_checkpoint",
    "save_experiment",
    "select_batch",
    "simulate",
    "simulate_traced",
    "time_index",
    "wrap_study",
]
