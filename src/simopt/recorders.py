"""Recorders capturing per-step simulation history."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Mapping, Sequence, Tuple

import pandas as pd

from .errors import ValidationError
from .timestepping import TimeStep

COLUMNS: Tuple[str, ...] = ("state", "step_record", "time", "action")


class Recorder(ABC):
    """Sink for the states and step records produced by the engine."""

    def record_initial(self, state: Any) -> None:
        """Capture the state returned by ``initialize``; ignored by default."""

    @abstractmethod
    def record(self, state: Any, step_record: Any, t: TimeStep, action: Any = None) -> None:
        """Capture one completed time step."""

    @abstractmethod
    def extract(self) -> Any:
        """Return whatever the recorder captured."""


class NoRecorder(Recorder):
    """Recorder that retains nothing; used during optimization."""

    def record(self, state: Any, step_record: Any, t: TimeStep, action: Any = None) -> None:
        return None

    def extract(self) -> Tuple[()]:
        return ()


class SimulationTrace:
    """Immutable, column-oriented history of one simulation run.

    Columns are ``state``, ``step_record``, ``time`` and ``action``; each is a
    tuple with one entry per completed step. The state returned by
    ``initialize`` is kept separately as :attr:`initial_state`.
    """

    def __init__(
        self,
        columns: Mapping[str, Sequence[Any]],
        schema: Mapping[str, type],
        initial_state: Any = None,
    ) -> None:
        lengths = {name: len(columns[name]) for name in COLUMNS}
        if len(set(lengths.values())) != 1:
            raise ValidationError(f"trace columns have different lengths: {lengths}")
        self._columns: Dict[str, Tuple[Any, ...]] = {name: tuple(columns[name]) for name in COLUMNS}
        self._schema = {name: schema[name] for name in COLUMNS}
        self.initial_state = initial_state

    @property
    def column_names(self) -> Tuple[str, ...]:
        return COLUMNS

    @property
    def schema(self) -> Dict[str, type]:
        return dict(self._schema)

    def column(self, name: str) -> Tuple[Any, ...]:
        try:
            return self._columns[name]
        except KeyError:
            raise KeyError(
                f"Unknown trace column {name!r}. Valid columns: {', '.join(COLUMNS)}"
            ) from None

    def __getitem__(self, name: str) -> Tuple[Any, ...]:
        return self.column(name)

    def __len__(self) -> int:
        return len(self._columns["time"])

    @property
    def states(self) -> Tuple[Any, ...]:
        return self._columns["state"]

    @property
    def step_records(self) -> Tuple[Any, ...]:
        return self._columns["step_record"]

    @property
    def times(self) -> Tuple[Any, ...]:
        return self._columns["time"]

    @property
    def actions(self) -> Tuple[Any, ...]:
        return self._columns["action"]

    def rows(self) -> Iterator[Dict[str, Any]]:
        for position in range(len(self)):
            yield {name: self._columns[name][position] for name in COLUMNS}

    def to_frame(self) -> pd.DataFrame:
        """Return the trace as a DataFrame with one row per step.

        Mapping step records are expanded into ``record_<key>`` columns.
        """

        frame = pd.DataFrame({name: list(self._columns[name]) for name in COLUMNS})
        if len(self) and issubclass(self._schema["step_record"], Mapping):
            expanded = pd.DataFrame([dict(record) for record in self.step_records])
            expanded.columns = [f"record_{key}" for key in expanded.columns]
            frame = pd.concat([frame, expanded], axis=1)
        return frame

    def __repr__(self) -> str:
        return f"SimulationTrace(steps={len(self)})"


class TraceRecorderBuilder(Recorder):
    """Growable recorder; column types are inferred when the trace is built."""

    def __init__(self) -> None:
        self.initial_state: Any = None
        self._entries: Dict[str, List[Any]] = {name: [] for name in COLUMNS}

    def record_initial(self, state: Any) -> None:
        self.initial_state = state

    def record(self, state: Any, step_record: Any, t: TimeStep, action: Any = None) -> None:
        self._entries["state"].append(state)
        self._entries["step_record"].append(step_record)
        self._entries["time"].append(t.value)
        self._entries["action"].append(action)

    def __len__(self) -> int:
        return len(self._entries["time"])

    def build_trace(self) -> SimulationTrace:
        """Fix column types from the first step and return a :class:`SimulationTrace`.

        Raises
        ------
        ValidationError
            If no step was recorded or a later entry changes type.
        """

        if not len(self):
            raise ValidationError(
                "Cannot build a trace from zero recorded steps: there is nothing to "
                "infer column types from. Check that the time axis is non-empty and "
                "that record() was called."
            )
        schema: Dict[str, type] = {}
        for name in COLUMNS:
            values = self._entries[name]
            expected = type(values[0])
            for position, value in enumerate(values):
                if type(value) is not expected:
                    raise ValidationError(
                        f"trace column {name!r} changed type at step {position}: "
                        f"expected {expected.__name__}, got {type(value).__name__}"
                    )
            schema[name] = expected
        return SimulationTrace(self._entries, schema, self.initial_state)

    def extract(self) -> SimulationTrace:
        return self.build_trace()


class TraceRecorder(Recorder):
    """Pre-allocated recorder with declared column types.

    Writes land at ``t.index``; :meth:`extract` fails if any slot was left
    unwritten.
    """

    _EMPTY = object()

    def __init__(
        self,
        n_steps: int,
        *,
        state_type: type = object,
        record_type: type = object,
        time_type: type = object,
        action_type: type = object,
    ) -> None:
        if int(n_steps) <= 0:
            raise ValidationError(f"TraceRecorder requires n_steps > 0, got {n_steps}")
        self.n_steps = int(n_steps)
        self.initial_state: Any = None
        self._schema: Dict[str, type] = {
            "state": state_type,
            "step_record": record_type,
            "time": time_type,
            "action": action_type,
        }
        self._slots: Dict[str, List[Any]] = {
            name: [self._EMPTY] * self.n_steps for name in COLUMNS
        }

    def record_initial(self, state: Any) -> None:
        self.initial_state = state

    def record(self, state: Any, step_record: Any, t: TimeStep, action: Any = None) -> None:
        if not 0 <= t.index < self.n_steps:
            raise IndexError(
                f"time step {t.index} outside pre-allocated trace of {self.n_steps} steps"
            )
        values = {"state": state, "step_record": step_record, "time": t.value, "action": action}
        for name, value in values.items():
            expected = self._schema[name]
            if not isinstance(value, expected):
                raise ValidationError(
                    f"trace column {name!r} expects {expected.__name__}, "
                    f"got {type(value).__name__} at step {t.index}"
                )
        for name, value in values.items():
            self._slots[name][t.index] = value

    def extract(self) -> SimulationTrace:
        missing = [i for i, value in enumerate(self._slots["time"]) if value is self._EMPTY]
        if missing:
            raise ValidationError(
                f"TraceRecorder has {len(missing)} unwritten step(s), first at index {missing[0]}"
            )
        return SimulationTrace(self._slots, self._schema, self.initial_state)


__all__ = [
    "COLUMNS",
    "Recorder",
    "NoRecorder",
    "SimulationTrace",
    "TraceRecorderBuilder",
    "TraceRecorder",
]
