"""Per-request pipeline: boundary, tessellation, probing, ordering."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Protocol, Sequence, TypeVar

from storeroute.common.cache import Cache, decode_json, encode_json
from storeroute.common.constants import (
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_PACING_SECONDS,
    DEFAULT_SAFETY_MARGIN,
    REQUEST_KINDS,
)
from storeroute.common.errors import (
    BoundaryNotFound,
    InvalidGeometry,
    InvalidRequest,
    NoBoundaryGeometry,
    PipelineError,
)
from storeroute.common.geometry import cell_radius_for_search_radius, centroid, union_polygons
from storeroute.common.ids import cache_key, point_code
from storeroute.common.logging import log_event, log_warning
from storeroute.common.models import (
    AggregationResult,
    Coordinate,
    HexCell,
    PipelineResult,
    Record,
    RouteRequest,
)
from storeroute.common.postcode import normalise_code
from storeroute.pipeline.aggregate import aggregate_probes
from storeroute.pipeline.tessellate import tessellate_parts
from storeroute.pipeline.tour import build_tour

T = TypeVar("T")


class BoundarySource(Protocol):
    def resolve_boundary(self, kind: str, code: str) -> list[list[Coordinate]]: ...


class PointSearch(Protocol):
    def search_near(self, coordinate: Coordinate) -> list[Record]: ...


@dataclass(frozen=True)
class PipelineSettings:
    search_radius_m: float = 1000.0
    cell_radius_deg: float | None = None
    safety_margin: float = DEFAULT_SAFETY_MARGIN
    pacing_seconds: float = DEFAULT_PACING_SECONDS
    cache_enabled: bool = True
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    enrich_details: bool = False

    @classmethod
    def from_config(cls, config: dict) -> "PipelineSettings":
        search = config["search"]
        cache = config.get("cache") or {}
        cell_radius = search.get("cell_radius_deg")
        return cls(
            search_radius_m=float(search["search_radius_m"]),
            cell_radius_deg=float(cell_radius) if cell_radius is not None else None,
            safety_margin=float(search.get("safety_margin", DEFAULT_SAFETY_MARGIN)),
            pacing_seconds=float(search.get("pacing_seconds", DEFAULT_PACING_SECONDS)),
            cache_enabled=bool(cache.get("enabled", True)),
            cache_ttl_seconds=float(cache.get("ttl_seconds", DEFAULT_CACHE_TTL_SECONDS)),
            enrich_details=bool(search.get("enrich_details", False)),
        )


def _rings_to_payload(rings: Sequence[Sequence[Coordinate]]) -> list[list[list[float]]]:
    return [[[point.lat, point.lon] for point in ring] for ring in rings]


def _rings_from_payload(payload: list) -> list[list[Coordinate]]:
    return [[Coordinate(float(lat), float(lon)) for lat, lon in ring] for ring in payload]


def _aggregation_from_payload(payload: dict) -> AggregationResult:
    return AggregationResult(
        records=[Record.from_dict(item) for item in payload["records"]],
        probes_attempted=int(payload["probes_attempted"]),
        probes_succeeded=int(payload["probes_succeeded"]),
    )


def name_sorted(records: Sequence[Record]) -> list[Record]:
    return sorted(records, key=lambda record: (record.name, record.identity))


class RoutePipeline:
    def __init__(
        self,
        boundaries: BoundarySource | None,
        searcher: PointSearch,
        cache: Cache | None = None,
        settings: PipelineSettings | None = None,
        *,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.boundaries = boundaries
        self.searcher = searcher
        self.cache = cache
        self.settings = settings or PipelineSettings()
        self.logger = logger or logging.getLogger(__name__)
        self.sleep = sleep

    def _cache_get(self, request: RouteRequest, key: str, load: Callable[[Any], T]) -> T | None:
        if self.cache is None or not self.settings.cache_enabled or not request.use_cache:
            return None
        value = self.cache.get(key)
        if value is None:
            return None
        try:
            loaded = load(decode_json(value))
        except (ValueError, TypeError, KeyError, InvalidGeometry) as exc:
            log_warning(
                self.logger,
                f"ignoring unreadable cache entry {key}: {exc}",
                request=request.label,
                event="CACHE_READ_FAIL",
                status="error",
            )
            return None
        log_event(self.logger, f"cache hit {key}", request=request.label, event="CACHE_HIT", status="ok")
        return loaded

    def _cache_put(self, request: RouteRequest, key: str, payload: Any) -> None:
        if self.cache is None or not self.settings.cache_enabled:
            return
        try:
            self.cache.put(key, encode_json(payload), self.settings.cache_ttl_seconds)
        except OSError as exc:
            log_warning(
                self.logger,
                f"cache write failed for {key}: {exc}",
                request=request.label,
                event="CACHE_WRITE_FAIL",
                status="error",
            )

    def resolve_outlines(self, request: RouteRequest, kind: str, code: str) -> list[list[Coordinate]]:
        key = cache_key("boundary", kind, code)
        polygons = self._cache_get(request, key, _rings_from_payload)
        if polygons is None:
            if self.boundaries is None:
                raise NoBoundaryGeometry("No boundary source configured")
            polygons = self.boundaries.resolve_boundary(kind, code)
            self._cache_put(request, key, _rings_to_payload(polygons))

        outlines = union_polygons(polygons)
        if not outlines:
            raise NoBoundaryGeometry(f"Boundary for {kind} code {code} has no usable polygon")
        log_event(
            self.logger,
            f"boundary resolved: {len(polygons)} parts, {len(outlines)} outlines",
            request=request.label,
            stage="boundary",
            event="BOUNDARY_OK",
            status="ok",
            rows_in=len(polygons),
            rows_out=len(outlines),
        )
        return outlines

    def cell_radius(self, outlines: Sequence[Sequence[Coordinate]]) -> float:
        if self.settings.cell_radius_deg is not None:
            return self.settings.cell_radius_deg
        return cell_radius_for_search_radius(
            self.settings.search_radius_m,
            centroid(outlines).lat,
            self.settings.safety_margin,
        )

    def enrich(self, request: RouteRequest, records: Sequence[Record]) -> list[Record]:
        fetch_details = getattr(self.searcher, "fetch_details", None)
        if not self.settings.enrich_details or fetch_details is None:
            return list(records)
        enriched = []
        for record in records:
            try:
                details = fetch_details(record.identity)
            except PipelineError as exc:
                log_warning(
                    self.logger,
                    f"details unavailable for {record.identity}: {exc}",
                    request=request.label,
                    stage="enrich",
                    event="DETAILS_FAIL",
                    status="error",
                    error_code=exc.error_code,
                )
                enriched.append(record)
                continue
            enriched.append(replace(record, attributes={**record.attributes, **details}))
        return enriched

    def _aggregate(
        self,
        request: RouteRequest,
        key: str,
        points: Sequence[Coordinate],
        boundary: Sequence[Sequence[Coordinate]] | None,
        should_cancel: Callable[[], bool] | None,
        allow_partial: bool,
    ) -> tuple[AggregationResult, bool]:
        cached = self._cache_get(request, key, _aggregation_from_payload)
        if cached is not None:
            return cached, True

        result = aggregate_probes(
            points,
            self.searcher.search_near,
            boundary,
            pacing_seconds=self.settings.pacing_seconds,
            sleep=self.sleep,
            logger=self.logger,
            should_cancel=should_cancel,
            allow_partial=allow_partial,
        )
        records = self.enrich(request, result.records)
        result = replace(result, records=records)
        if not result.cancelled:
            self._cache_put(
                request,
                key,
                {
                    "records": [record.to_dict() for record in records],
                    "probes_attempted": result.probes_attempted,
                    "probes_succeeded": result.probes_succeeded,
                },
            )
        return result, False

    def run(
        self,
        request: RouteRequest,
        *,
        should_cancel: Callable[[], bool] | None = None,
        allow_partial: bool = False,
    ) -> PipelineResult:
        stage = "request"
        try:
            if request.kind not in REQUEST_KINDS:
                raise InvalidRequest(f"Unsupported request kind: {request.kind}")
            cells: list[HexCell] = []
            outlines: list[list[Coordinate]] = []
            if request.kind == "point":
                if request.origin is None:
                    raise InvalidGeometry("Point requests need an origin coordinate")
                stage = "probe"
                key = cache_key("records", "point", point_code(request.origin.lat, request.origin.lon))
                result, from_cache = self._aggregate(
                    request, key, [request.origin], None, should_cancel, allow_partial
                )
            else:
                stage = "boundary"
                code = normalise_code(request.kind, request.code)
                if code is None:
                    raise BoundaryNotFound(f"Invalid {request.kind} code: {request.code!r}")
                outlines = self.resolve_outlines(request, request.kind, code)

                stage = "tessellate"
                radius = self.cell_radius(outlines)
                cells = tessellate_parts(outlines, radius)
                log_event(
                    self.logger,
                    f"tessellated into {len(cells)} cells (radius {radius:.6f} deg)",
                    request=request.label,
                    stage=stage,
                    event="TESSELLATE_OK",
                    status="ok",
                    rows_out=len(cells),
                )

                stage = "probe"
                result, from_cache = self._aggregate(
                    request,
                    cache_key("records", request.kind, code),
                    [cell.center for cell in cells],
                    outlines,
                    should_cancel,
                    allow_partial,
                )

            stage = "route"
            if request.route:
                records = build_tour(result.records, start=request.origin)
            else:
                records = name_sorted(result.records)
        except PipelineError as exc:
            log_warning(
                self.logger,
                f"run failed: {exc}",
                request=request.label,
                stage=stage,
                event="RUN_FAIL",
                status="error",
                error_code=exc.error_code,
            )
            raise exc.with_context(stage=stage, request_code=request.label)

        log_event(
            self.logger,
            f"run complete: {len(records)} records",
            request=request.label,
            stage=stage,
            event="RUN_OK",
            status="partial" if result.cancelled else "ok",
            probes_attempted=result.probes_attempted,
            probes_succeeded=result.probes_succeeded,
            rows_out=len(records),
        )
        return PipelineResult(
            request=request,
            records=records,
            cells=cells,
            boundary=outlines,
            probes_attempted=result.probes_attempted,
            probes_succeeded=result.probes_succeeded,
            from_cache=from_cache,
            routed=request.route,
        )
