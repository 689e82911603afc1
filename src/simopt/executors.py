"""Execution strategies for running independent simulations."""
from __future__ import annotations

import concurrent.futures
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, List, TypeVar

T = TypeVar("T")
R = TypeVar("R")


class Executor(ABC):
    """Maps a task over work items and returns results in input order."""

    @abstractmethod
    def map(self, fn: Callable[[T], R], items: Iterable[T]) -> List[R]:
        """Apply ``fn`` to each item; the first failure propagates."""


class SequentialExecutor(Executor):
    """Run every task in the calling thread."""

    def map(self, fn: Callable[[T], R], items: Iterable[T]) -> List[R]:
        return [fn(item) for item in items]

    def __repr__(self) -> str:
        return "SequentialExecutor()"


class ThreadedExecutor(Executor):
    """Run tasks on a :class:`concurrent.futures.ThreadPoolExecutor`."""

    def __init__(self, max_workers: int | None = None) -> None:
        if max_workers is not None and max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self.max_workers = max_workers

    def map(self, fn: Callable[[T], R], items: Iterable[T]) -> List[R]:
        work = list(items)
        if not work:
            return []
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            return list(pool.map(fn, work))

    def __repr__(self) -> str:
        return f"ThreadedExecutor(max_workers={self.max_workers})"


class ProcessExecutor(Executor):
    """Run tasks on a :class:`concurrent.futures.ProcessPoolExecutor`.

    Tasks and their arguments must be picklable, so models, configs,
    scenarios and policies have to be defined at module level.
    """

    def __init__(self, max_workers: int | None = None, chunksize: int = 1) -> None:
        if max_workers is not None and max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self.max_workers = max_workers
        self.chunksize = chunksize

    def map(self, fn: Callable[[T], R], items: Iterable[T]) -> List[R]:
        work = list(items)
        if not work:
            return []
        with concurrent.futures.ProcessPoolExecutor(max_workers=self.max_workers) as pool:
            return list(pool.map(fn, work, chunksize=self.chunksize))

    def __repr__(self) -> str:
        return f"ProcessExecutor(max_workers={self.max_workers})"


def resolve_executor(executor: Any) -> Executor:
    if executor is None:
        return SequentialExecutor()
    if isinstance(executor, Executor):
        return executor
    raise TypeError(
        f"executor must be an Executor instance, got {type(executor).__name__}. "
        "Use SequentialExecutor, ThreadedExecutor or ProcessExecutor."
    )


__all__ = [
    "Executor",
    "SequentialExecutor",
    "ThreadedExecutor",
    "ProcessExecutor",
    "resolve_executor",
]
