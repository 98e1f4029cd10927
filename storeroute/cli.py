"""CLI entrypoint for the store coverage and route pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from storeroute.common.cache import FileCache
from storeroute.common.config_loader import load_config
from storeroute.common.constants import EXIT_EMPTY, EXIT_HARD_FAIL, EXIT_SUCCESS, REQUEST_KINDS
from storeroute.common.errors import ConfigError, InvalidGeometry, InvalidRequest, PipelineError
from storeroute.common.fs import write_json
from storeroute.common.http import HttpClient, TimeoutConfig
from storeroute.common.ids import generate_run_id
from storeroute.common.logging import build_logger, close_logger, log_event
from storeroute.common.models import Coordinate, RouteRequest
from storeroute.common.postcode import normalise_postal_code
from storeroute.harvest.boundary import GeoJsonBoundarySource
from storeroute.harvest.postal_data import describe_postal_code, find_postal_codes, load_postal_data
from storeroute.harvest.store_search import StoreSearchClient
from storeroute.pipeline.export import write_route_csv, write_route_kml
from storeroute.pipeline.orchestrator import PipelineSettings, RoutePipeline
from storeroute.pipeline.reports import write_run_summary


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=[*REQUEST_KINDS, "lookup", "cache-clear"])
    parser.add_argument("code", nargs="?", default=None, help="postal or area code")
    parser.add_argument("--lat", type=float, default=None)
    parser.add_argument("--lon", type=float, default=None)
    parser.add_argument("--origin-lat", type=float, default=None)
    parser.add_argument("--origin-lon", type=float, default=None)
    parser.add_argument("--no-route", dest="route", action="store_false")
    parser.add_argument("--no-cache", dest="use_cache", action="store_false")
    parser.add_argument("--include-cells", action="store_true")
    parser.add_argument("--prefecture", default=None, help="lookup: prefecture term")
    parser.add_argument("--city", default=None, help="lookup: city term")
    parser.add_argument("--area", default=None, help="lookup: area term")
    parser.add_argument("--limit", type=int, default=20, help="lookup: maximum matches written")
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--output", default=None, help="KML output path (CSV is written beside it) or lookup JSON path")
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def build_request(args: argparse.Namespace) -> RouteRequest:
    if args.command == "point":
        if args.lat is None or args.lon is None:
            raise InvalidGeometry("point requests need --lat and --lon")
        return RouteRequest(
            kind="point",
            origin=Coordinate(args.lat, args.lon),
            route=args.route,
            use_cache=args.use_cache,
        )

    if not args.code:
        raise InvalidGeometry(f"{args.command} requests need a code")
    origin = None
    if args.origin_lat is not None and args.origin_lon is not None:
        origin = Coordinate(args.origin_lat, args.origin_lon)
    return RouteRequest(kind=args.command, code=args.code, origin=origin, route=args.route, use_cache=args.use_cache)


def build_pipeline(cfg: dict, data_dir: Path, http_client: HttpClient, logger: logging.Logger) -> RoutePipeline:
    search_cfg = cfg["search"]
    searcher = StoreSearchClient(
        http_client,
        base_url=search_cfg["base_url"],
        client_id=search_cfg["client_id"],
        service_filter=search_cfg.get("service_filter"),
        exclude_name_substrings=search_cfg.get("exclude_name_substrings") or [],
    )
    boundaries_cfg = cfg["boundaries"]
    boundaries = GeoJsonBoundarySource(
        Path(boundaries_cfg["geojson_path"]),
        postal_property=boundaries_cfg.get("postal_property", "postal_code"),
        area_property=boundaries_cfg.get("area_property", "area_code"),
    )
    return RoutePipeline(
        boundaries,
        searcher,
        FileCache(data_dir / "cache"),
        PipelineSettings.from_config(cfg),
        logger=logger,
    )


def _title_and_description(cfg: dict, request: RouteRequest) -> tuple[str, str]:
    if request.kind == "point":
        label = f"{request.origin.lat:.5f},{request.origin.lon:.5f}"
        return f"Rpay Stores - {label}", f"Stores near {label}"
    if request.kind == "area":
        return f"Rpay Stores Route - area {request.code}", f"Route for area code {request.code}"

    code = normalise_postal_code(request.code) or request.code
    entries = None
    zip_path = (cfg.get("postal_data") or {}).get("zip_path")
    if zip_path and Path(zip_path).exists():
        entries = load_postal_data(Path(zip_path)).get(code)
    return f"Rpay Stores Route - {code}", describe_postal_code(code, entries)


def _output_paths(args: argparse.Namespace, data_dir: Path, request: RouteRequest) -> tuple[Path, Path]:
    if args.output:
        kml_path = Path(args.output)
    else:
        if request.code:
            slug = request.code.replace("-", "")
        else:
            slug = request.label.split(":", 1)[1].replace(",", "_")
        kml_path = data_dir / "out" / f"route_{request.kind}_{slug}.kml"
    return kml_path, kml_path.with_suffix(".csv")


def run_route(args: argparse.Namespace, cfg: dict, data_dir: Path, run_id: str, logger: logging.Logger) -> int:
    request = build_request(args)
    timeout = TimeoutConfig(**(cfg["search"].get("timeout") or {}))
    with HttpClient(timeout=timeout) as http_client:
        pipeline = build_pipeline(cfg, data_dir, http_client, logger)
        result = pipeline.run(request)

    outputs: dict[str, str] = {}
    kml_path, csv_path = _output_paths(args, data_dir, request)
    if cfg["output"].get("kml", True):
        title, description = _title_and_description(cfg, request)
        write_route_kml(
            kml_path,
            result.records,
            title=title,
            description=description,
            routed=result.routed,
            boundary=result.boundary,
            cells=result.cells if (args.include_cells or cfg["output"].get("include_cells")) else (),
        )
        outputs["kml"] = str(kml_path)
    if cfg["output"].get("csv", True):
        write_route_csv(csv_path, result.records)
        outputs["csv"] = str(csv_path)
    summary_path = write_run_summary(data_dir, run_id, result, outputs)
    log_event(
        logger,
        f"wrote {len(outputs)} outputs and summary {summary_path}",
        run_id=run_id,
        request=request.label,
        stage="export",
        event="EXPORT_OK",
        status="ok",
        rows_out=len(result.records),
    )
    return EXIT_SUCCESS if result.records else EXIT_EMPTY


def run_lookup(args: argparse.Namespace, cfg: dict, data_dir: Path, run_id: str, logger: logging.Logger) -> int:
    if not (args.prefecture or args.city or args.area):
        raise InvalidRequest("lookup needs at least one of --prefecture, --city, --area")
    zip_path = (cfg.get("postal_data") or {}).get("zip_path")
    if not zip_path:
        raise ConfigError("postal_data.zip_path is not configured")

    matches = find_postal_codes(load_postal_data(Path(zip_path)), args.prefecture, args.city, args.area)
    matches = matches[: args.limit]
    output_path = Path(args.output) if args.output else data_dir / "out" / f"lookup_{run_id}.json"
    write_json(
        output_path,
        {
            "query": {"prefecture": args.prefecture, "city": args.city, "area": args.area},
            "matches": [match.to_dict() for match in matches],
        },
    )
    log_event(
        logger,
        f"postal lookup wrote {len(matches)} matches to {output_path}",
        run_id=run_id,
        stage="lookup",
        event="LOOKUP_OK",
        status="ok",
        rows_out=len(matches),
    )
    return EXIT_SUCCESS if matches else EXIT_EMPTY


def run_cache_clear(data_dir: Path, run_id: str, logger: logging.Logger) -> int:
    removed = FileCache(data_dir / "cache").clear()
    log_event(
        logger,
        f"removed {removed} cache entries",
        run_id=run_id,
        stage="cache",
        event="CACHE_CLEAR",
        status="ok",
        rows_out=removed,
    )
    return EXIT_SUCCESS


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    try:
        if args.command == "cache-clear":
            return run_cache_clear(data_dir, run_id, logger)
        cfg = load_config(config_dir, overlay_config_dir=overlay_config_dir)
        if args.command == "lookup":
            return run_lookup(args, cfg, data_dir, run_id, logger)
        return run_route(args, cfg, data_dir, run_id, logger)
    except PipelineError as exc:
        log_event(
            logger,
            f"run failed: {exc}",
            run_id=run_id,
            stage=exc.stage,
            request=exc.request_code,
            event="RUN_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL
    except Exception as exc:
        log_event(
            logger,
            f"unexpected failure: {exc!r}",
            run_id=run_id,
            event="RUN_FAIL",
            status="error",
            error_code="UNEXPECTED_ERROR",
        )
        return EXIT_HARD_FAIL
    finally:
        close_logger(logger)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
