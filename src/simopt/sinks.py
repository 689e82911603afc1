"""Result sinks collecting or streaming exploration rows."""
from __future__ import annotations

import csv
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

import pandas as pd


class ExplorationResult:
    """Rows of a policies x scenarios exploration, policy-major order."""

    def __init__(self, rows: Iterable[Mapping[str, Any]], n_policies: int, n_scenarios: int) -> None:
        self.rows: Tuple[Dict[str, Any], ...] = tuple(dict(row) for row in rows)
        self.n_policies = n_policies
        self.n_scenarios = n_scenarios
        if len(self.rows) != n_policies * n_scenarios:
            raise ValueError(
                f"expected {n_policies * n_scenarios} rows for {n_policies} policies x "
                f"{n_scenarios} scenarios, got {len(self.rows)}"
            )

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(self.rows[0].keys()) if self.rows else ()

    def column(self, name: str) -> List[Any]:
        if name not in self.column_names:
            raise KeyError(
                f"Unknown exploration column {name!r}. Valid columns: {', '.join(self.column_names)}"
            )
        return [row[name] for row in self.rows]

    def row(self, policy_idx: int, scenario_idx: int) -> Dict[str, Any]:
        if not (0 <= policy_idx < self.n_policies and 0 <= scenario_idx < self.n_scenarios):
            raise IndexError(f"no result for policy {policy_idx}, scenario {scenario_idx}")
        return dict(self.rows[policy_idx * self.n_scenarios + scenario_idx])

    def __len__(self) -> int:
        return len(self.rows)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(list(self.rows), columns=list(self.column_names))

    def __repr__(self) -> str:
        return f"ExplorationResult(policies={self.n_policies}, scenarios={self.n_scenarios})"


class ResultSink(ABC):
    """Receives exploration rows one at a time."""

    @abstractmethod
    def record(self, row: Mapping[str, Any]) -> None:
        """Store a single row."""

    @abstractmethod
    def finalize(self, n_policies: int, n_scenarios: int) -> Any:
        """Finish the exploration and return the sink's product."""


class NoSink(ResultSink):
    """Discards every row."""

    def record(self, row: Mapping[str, Any]) -> None:
        return None

    def finalize(self, n_policies: int, n_scenarios: int) -> None:
        return None


class InMemorySink(ResultSink):
    """Keeps rows in memory and returns an :class:`ExplorationResult`."""

    def __init__(self) -> None:
        self.rows: List[Dict[str, Any]] = []

    def record(self, row: Mapping[str, Any]) -> None:
        self.rows.append(dict(row))

    def finalize(self, n_policies: int, n_scenarios: int) -> ExplorationResult:
        return ExplorationResult(self.rows, n_policies, n_scenarios)


class FileSink(ABC):
    """Format-specific writer used behind a :class:`StreamingSink`."""

    path: Path

    @abstractmethod
    def write_header(self, columns: Sequence[str]) -> None:
        ...

    @abstractmethod
    def write_rows(self, rows: Sequence[Mapping[str, Any]]) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        ...


class CSVSink(FileSink):
    """Write rows to a CSV file with :class:`csv.DictWriter`."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self.path.open("w", newline="", encoding="utf-8")
        self._writer: csv.DictWriter | None = None

    def write_header(self, columns: Sequence[str]) -> None:
        self._writer = csv.DictWriter(self._fh, fieldnames=list(columns))
        self._writer.writeheader()
        self._fh.flush()

    def write_rows(self, rows: Sequence[Mapping[str, Any]]) -> None:
        if self._writer is None:
            raise RuntimeError("write_header must be called before write_rows")
        self._writer.writerows(rows)
        self._fh.flush()

    def close(self) -> None:
        self._fh.close()

    def __enter__(self) -> "CSVSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class StreamingSink(ResultSink):
    """Buffer rows and hand them to a :class:`FileSink` every ``flush_every`` rows.

    The header is written from the keys of the first row.
    """

    def __init__(self, file_sink: FileSink, flush_every: int = 100) -> None:
        if flush_every <= 0:
            raise ValueError(f"flush_every must be positive, got {flush_every}")
        self.file_sink = file_sink
        self.flush_every = flush_every
        self._buffer: List[Dict[str, Any]] = []
        self._header_written = False

    def record(self, row: Mapping[str, Any]) -> None:
        if not self._header_written:
            self.file_sink.write_header(list(row.keys()))
            self._header_written = True
        self._buffer.append(dict(row))
        if len(self._buffer) >= self.flush_every:
            self.flush()

    def flush(self) -> None:
        if self._buffer:
            self.file_sink.write_rows(self._buffer)
            self._buffer = []

    def finalize(self, n_policies: int, n_scenarios: int) -> Path:
        self.flush()
        self.file_sink.close()
        return self.file_sink.path


__all__ = [
    "ExplorationResult",
    "ResultSink",
    "NoSink",
    "InMemorySink",
    "FileSink",
    "CSVSink",
    "StreamingSink",
]
