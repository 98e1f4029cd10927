import logging

import pytest

from storeroute.common.errors import NoCoverageAchieved, RunCancelled
from storeroute.common.models import Coordinate, Record
from storeroute.pipeline.aggregate import aggregate_probes, merge_records

BOUNDARY = [Coordinate(0, 0), Coordinate(0, 2), Coordinate(2, 2), Coordinate(2, 0)]
POINTS = [Coordinate(0.5, 0.5), Coordinate(0.5, 1.5), Coordinate(1.5, 1.0)]


def _record(identity: str, lat: float, lon: float, **attributes) -> Record:
    return Record(identity=identity, coordinate=Coordinate(lat, lon), attributes=attributes)


class ScriptedSearch:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def __call__(self, point):
        self.calls.append(point)
        response = self.responses[len(self.calls) - 1]
        if isinstance(response, Exception):
            raise response
        return response


def test_merge_records_keeps_first_position_and_last_payload():
    merged = {}
    assert merge_records(merged, [_record("a", 1, 1, v=1), _record("b", 1, 1)]) == 2
    assert merge_records(merged, [_record("a", 1, 1, v=2), _record("c", 1, 1)]) == 1
    assert list(merged) == ["a", "b", "c"]
    assert merged["a"].attributes["v"] == 2


def test_aggregate_dedupes_across_probes_and_filters_by_boundary():
    search = ScriptedSearch(
        [
            [_record("a", 0.5, 0.5, store_name="A", v=1), _record("out", 5.0, 5.0)],
            [_record("a", 0.5, 0.5, store_name="A", v=2), _record("b", 0.5, 1.5)],
            [_record("edge", 2.0, 1.0), _record("b", 0.5, 1.5)],
        ]
    )
    result = aggregate_probes(POINTS, search, BOUNDARY, pacing_seconds=0, sleep=lambda _s: None)

    identities = [record.identity for record in result.records]
    assert identities == ["a", "b", "edge"]
    assert len(set(identities)) == len(identities)
    assert result.records[0].attributes["v"] == 2
    assert result.probes_attempted == 3
    assert result.probes_succeeded == 3
    assert search.calls == POINTS


def test_aggregate_paces_between_probes_only():
    sleeps = []
    search = ScriptedSearch([[], [], []])
    aggregate_probes(POINTS, search, BOUNDARY, pacing_seconds=0.5, sleep=sleeps.append)
    assert sleeps == [0.5, 0.5]


def test_single_probe_failure_is_skipped_and_logged(caplog):
    search = ScriptedSearch(
        [
            [_record("a", 0.5, 0.5)],
            RuntimeError("upstream timeout"),
            [_record("b", 1.5, 1.0)],
        ]
    )
    with caplog.at_level(logging.INFO):
        result = aggregate_probes(POINTS, search, BOUNDARY, pacing_seconds=0, sleep=lambda _s: None)

    assert [record.identity for record in result.records] == ["a", "b"]
    assert result.probes_attempted == 3
    assert result.probes_succeeded == 2
    assert any(getattr(record, "event", None) == "PROBE_FAIL" for record in caplog.records)


def test_all_probes_failing_raises_no_coverage():
    search = ScriptedSearch([RuntimeError("down")] * 3)
    with pytest.raises(NoCoverageAchieved):
        aggregate_probes(POINTS, search, BOUNDARY, pacing_seconds=0, sleep=lambda _s: None)


def test_zero_records_is_a_successful_empty_result():
    search = ScriptedSearch([[], RuntimeError("down"), []])
    result = aggregate_probes(POINTS, search, BOUNDARY, pacing_seconds=0, sleep=lambda _s: None)
    assert result.records == []
    assert result.probes_succeeded == 2


def test_without_boundary_nothing_is_filtered():
    search = ScriptedSearch([[_record("far", 40.0, 140.0)]])
    result = aggregate_probes([Coordinate(0, 0)], search, None, pacing_seconds=0)
    assert [record.identity for record in result.records] == ["far"]


def test_cancellation_discards_partial_state_by_default():
    search = ScriptedSearch([[_record("a", 0.5, 0.5)], [], []])
    with pytest.raises(RunCancelled):
        aggregate_probes(
            POINTS,
            search,
            BOUNDARY,
            pacing_seconds=0,
            should_cancel=lambda: len(search.calls) >= 1,
        )
    assert len(search.calls) == 1


def test_cancellation_can_return_best_effort_results():
    search = ScriptedSearch([[_record("a", 0.5, 0.5)], [], []])
    result = aggregate_probes(
        POINTS,
        search,
        BOUNDARY,
        pacing_seconds=0,
        should_cancel=lambda: len(search.calls) >= 1,
        allow_partial=True,
    )
    assert result.cancelled is True
    assert result.probes_attempted == 1
    assert [record.identity for record in result.records] == ["a"]


def test_empty_probe_list_is_rejected():
    with pytest.raises(ValueError):
        aggregate_probes([], ScriptedSearch([]), BOUNDARY)
