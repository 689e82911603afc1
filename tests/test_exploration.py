"""Tests for exploratory modeling and result sinks."""
from __future__ import annotations

import csv
import unittest
from pathlib import Path
from typing import Annotated

import pytest

from simopt.errors import ValidationError
from simopt.executors import ThreadedExecutor
from simopt.exploration import explore, flatten_outcome
from simopt.models import (
    CounterConfig,
    CounterModel,
    CounterOutcome,
    CounterPolicy,
    CounterScenario,
    HouseConfig,
    HouseElevationModel,
    HouseScenario,
    ElevationPolicy,
)
from simopt.parameters import Continuous, TimeSeriesParameter
from simopt.sinks import CSVSink, ExplorationResult, NoSink, StreamingSink
from simopt.types import Policy

SCENARIOS = [CounterScenario(offset=0), CounterScenario(offset=1)]
POLICIES = [CounterPolicy(increment=1.0), CounterPolicy(increment=0.5)]


class LabelledPolicy(Policy):
    increment: Annotated[float, Continuous(0.0, 2.0)] = 1.0
    label: str = ""


class ExploreTests(unittest.TestCase):
    def test_every_policy_meets_every_scenario(self) -> None:
        result = explore(CounterModel(), CounterConfig(), SCENARIOS, POLICIES)
        self.assertIsInstance(result, ExplorationResult)
        self.assertEqual(len(result), 4)
        self.assertEqual(result.row(0, 1)["outcome_total"], 15.0)
        self.assertEqual(result.row(1, 0)["outcome_total"], 5.0)
        self.assertEqual(result.column("policy_idx"), [0, 0, 1, 1])
        self.assertEqual(result.column("scenario_idx"), [0, 1, 0, 1])
        self.assertEqual(
            result.column_names,
            (
                "policy_idx",
                "scenario_idx",
                "policy_increment",
                "scenario_offset",
                "outcome_total",
                "outcome_steps",
            ),
        )

    def test_frame_view(self) -> None:
        frame = explore(CounterModel(), CounterConfig(), SCENARIOS, POLICIES).to_frame()
        self.assertEqual(frame.shape, (4, 6))
        self.assertEqual(list(frame["outcome_total"]), [10.0, 15.0, 5.0, 10.0])

    def test_unknown_column_and_row(self) -> None:
        result = explore(CounterModel(), CounterConfig(), SCENARIOS, POLICIES)
        with self.assertRaises(KeyError):
            result.column("outcome_cost")
        with self.assertRaises(IndexError):
            result.row(2, 0)

    def test_unmarked_policy_field_is_rejected(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            explore(CounterModel(), CounterConfig(), SCENARIOS, [LabelledPolicy()])
        self.assertIn("label", str(ctx.exception))

    def test_empty_policies_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            explore(CounterModel(), CounterConfig(), SCENARIOS, [])

    def test_scenarios_share_draws_across_policies(self) -> None:
        scenarios = [HouseScenario(surge_loc=3.0, surge_scale=1.0)]
        policies = [ElevationPolicy(elevation_ft=0.0), ElevationPolicy(elevation_ft=0.0)]
        result = explore(
            HouseElevationModel(),
            HouseConfig(horizon_years=5),
            scenarios,
            policies,
            executor=ThreadedExecutor(max_workers=2),
        )
        damages = result.column("outcome_npv_damages")
        self.assertEqual(damages[0], damages[1])


def test_streaming_csv_sink(tmp_path: Path) -> None:
    sink = StreamingSink(CSVSink(tmp_path / "out" / "explore.csv"), flush_every=3)
    path = explore(CounterModel(), CounterConfig(), SCENARIOS, POLICIES, sink=sink)
    assert path == tmp_path / "out" / "explore.csv"
    with path.open(newline="", encoding="utf-8") as fh:
        rows = list(csv.DictReader(fh))
    assert len(rows) == 4
    assert float(rows[1]["outcome_total"]) == 15.0
    assert rows[3]["policy_increment"] == "0.5"


def test_no_sink_returns_nothing() -> None:
    assert explore(CounterModel(), CounterConfig(), SCENARIOS, POLICIES, sink=NoSink()) is None


def test_streaming_sink_requires_positive_flush(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        StreamingSink(CSVSink(tmp_path / "x.csv"), flush_every=0)


def test_flatten_outcome_variants() -> None:
    assert flatten_outcome(CounterOutcome(total=3.0, steps=2)) == {
        "outcome_total": 3.0,
        "outcome_steps": 2,
    }
    series = TimeSeriesParameter([1.0, 2.0], time_axis=[2030, 2031])
    assert flatten_outcome({"level": series, "n": 1}) == {
        "outcome_level[2030]": 1.0,
        "outcome_level[2031]": 2.0,
        "outcome_n": 1,
    }
    with pytest.raises(ValidationError):
        flatten_outcome(3.5)


def test_exploration_result_checks_row_count() -> None:
    with pytest.raises(ValueError):
        ExplorationResult([{"a": 1}], n_policies=2, n_scenarios=1)
