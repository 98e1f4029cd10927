"""Paced multi-probe aggregation with identity deduplication."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Sequence

from storeroute.common.constants import DEFAULT_PACING_SECONDS
from storeroute.common.errors import NoCoverageAchieved, ProbeFailed, RunCancelled
from storeroute.common.geometry import contains
from storeroute.common.logging import log_event, log_warning
from storeroute.common.models import AggregationResult, Coordinate, MultiPolygon, Polygon, Record
from storeroute.common.time_utils import elapsed_ms

SearchFn = Callable[[Coordinate], Iterable[Record]]


def merge_records(merged: dict[str, Record], records: Iterable[Record]) -> int:
    """Merge ``records`` into ``merged`` by identity and return how many identities were new.

    A repeated identity replaces the stored record but keeps its original position.
    """
    new_count = 0
    for record in records:
        if record.identity not in merged:
            new_count += 1
        merged[record.identity] = record
    return new_count


def filter_within(records: Iterable[Record], boundary: Polygon | MultiPolygon | None) -> list[Record]:
    if boundary is None:
        return list(records)
    return [record for record in records if contains(boundary, record.coordinate)]


def _probe(search: SearchFn, point: Coordinate) -> list[Record]:
    try:
        return list(search(point))
    except Exception as exc:
        raise ProbeFailed(f"Probe at {point.lat:.6f},{point.lon:.6f} failed: {exc}") from exc


def aggregate_probes(
    points: Sequence[Coordinate],
    search: SearchFn,
    boundary: Polygon | MultiPolygon | None = None,
    *,
    pacing_seconds: float = DEFAULT_PACING_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    logger: logging.Logger | None = None,
    should_cancel: Callable[[], bool] | None = None,
    allow_partial: bool = False,
) -> AggregationResult:
    """Probe each point in order and return the deduplicated records inside ``boundary``.

    Probes run one at a time with ``pacing_seconds`` between consecutive calls. A failed probe
    is logged and skipped; only when every probe fails is :class:`NoCoverageAchieved` raised.
    """
    if not points:
        raise ValueError("aggregate_probes needs at least one probe point")
    logger = logger or logging.getLogger(__name__)

    merged: dict[str, Record] = {}
    attempted = 0
    succeeded = 0
    cancelled = False

    for index, point in enumerate(points):
        if should_cancel is not None and should_cancel():
            cancelled = True
            break
        if index > 0 and pacing_seconds > 0:
            sleep(pacing_seconds)

        attempted += 1
        started_at = time.monotonic()
        try:
            records = _probe(search, point)
        except ProbeFailed as exc:
            log_warning(
                logger,
                str(exc),
                stage="probe",
                event="PROBE_FAIL",
                status="error",
                probe=index,
                duration_ms=elapsed_ms(started_at),
                error_code=exc.error_code,
            )
            continue

        succeeded += 1
        new_count = merge_records(merged, records)
        log_event(
            logger,
            f"probe {index + 1}/{len(points)}: {len(records)} records ({new_count} new, {len(merged)} unique)",
            stage="probe",
            event="PROBE_OK",
            status="ok",
            probe=index,
            duration_ms=elapsed_ms(started_at),
            rows_in=len(records),
            rows_out=len(merged),
        )

    if cancelled and not allow_partial:
        raise RunCancelled(f"Run cancelled after {attempted} of {len(points)} probes")
    if attempted > 0 and succeeded == 0:
        raise NoCoverageAchieved(f"All {attempted} probes failed")

    within = filter_within(merged.values(), boundary)
    log_event(
        logger,
        f"kept {len(within)} of {len(merged)} unique records inside boundary",
        stage="probe",
        event="PROBE_SUMMARY",
        status="partial" if cancelled else "ok",
        probes_attempted=attempted,
        probes_succeeded=succeeded,
        rows_in=len(merged),
        rows_out=len(within),
    )
    return AggregationResult(
        records=within,
        probes_attempted=attempted,
        probes_succeeded=succeeded,
        cancelled=cancelled,
    )
