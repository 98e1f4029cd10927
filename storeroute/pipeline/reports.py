"""Run report aggregation."""

from __future__ import annotations

from pathlib import Path

from storeroute.common.fs import write_json
from storeroute.common.models import PipelineResult
from storeroute.pipeline.tour import tour_length_km


def build_run_summary(run_id: str, result: PipelineResult, outputs: dict[str, str]) -> dict:
    request = result.request
    status = "success" if result.records else "empty"
    if result.probes_succeeded < result.probes_attempted:
        status = "partial"

    payload = {
        "run_id": run_id,
        "status": status,
        "request": {
            "kind": request.kind,
            "code": request.code,
            "origin": request.origin.to_dict() if request.origin is not None else None,
            "route": request.route,
        },
        "counts": {
            "boundary_outlines": len(result.boundary),
            "cells": len(result.cells),
            "probes_attempted": result.probes_attempted,
            "probes_succeeded": result.probes_succeeded,
            "records": len(result.records),
        },
        "from_cache": result.from_cache,
        "routed": result.routed,
        "outputs": dict(sorted(outputs.items())),
    }
    if result.routed:
        payload["route_length_km"] = round(tour_length_km(result.records, start=request.origin), 3)
    return payload


def write_run_summary(data_dir: Path, run_id: str, result: PipelineResult, outputs: dict[str, str]) -> Path:
    summary_path = data_dir / "out" / "reports" / f"{run_id}_summary.json"
    write_json(summary_path, build_run_summary(run_id, result, outputs))
    return summary_path
