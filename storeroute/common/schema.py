"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from storeroute.common.errors import ConfigError

SECTION_KEYS = {
    "search": {
        "required": {"base_url", "client_id", "search_radius_m"},
        "known": {
            "base_url",
            "client_id",
            "search_radius_m",
            "cell_radius_deg",
            "safety_margin",
            "pacing_seconds",
            "service_filter",
            "exclude_name_substrings",
            "enrich_details",
            "timeout",
        },
    },
    "boundaries": {
        "required": {"geojson_path"},
        "known": {"geojson_path", "postal_property", "area_property"},
    },
    "cache": {
        "required": {"enabled"},
        "known": {"enabled", "ttl_seconds"},
    },
    "postal_data": {
        "required": set(),
        "known": {"zip_path"},
    },
    "output": {
        "required": {"kml", "csv"},
        "known": {"kml", "csv", "include_cells"},
    },
}


def _assert_mapping(obj, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    return obj


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive(value, ctx: str, *, allow_none: bool = False) -> None:
    if value is None and allow_none:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{ctx} must be a positive number")


def validate_app_config(cfg, *, allow_unknown: bool = False) -> dict:
    cfg = _assert_mapping(cfg, "config")
    _assert_required_keys(cfg, {"search", "boundaries", "cache", "output"}, "config")
    _assert_no_unknown_keys(cfg, set(SECTION_KEYS), "config", allow_unknown)

    for section, keys in SECTION_KEYS.items():
        if section not in cfg:
            continue
        body = _assert_mapping(cfg[section], section)
        _assert_required_keys(body, keys["required"], section)
        _assert_no_unknown_keys(body, keys["known"], section, allow_unknown)

    search = cfg["search"]
    _assert_positive(search["search_radius_m"], "search.search_radius_m")
    _assert_positive(search.get("cell_radius_deg"), "search.cell_radius_deg", allow_none=True)
    margin = search.get("safety_margin", 1.0)
    if isinstance(margin, bool) or not isinstance(margin, (int, float)) or not 0 < margin <= 1:
        raise ConfigError("search.safety_margin must be in (0, 1]")
    pacing = search.get("pacing_seconds", 0)
    if isinstance(pacing, bool) or not isinstance(pacing, (int, float)) or pacing < 0:
        raise ConfigError("search.pacing_seconds must be a non-negative number")
    if not isinstance(search.get("exclude_name_substrings", []), list):
        raise ConfigError("search.exclude_name_substrings must be a list")
    if "timeout" in search:
        timeout = _assert_mapping(search["timeout"], "search.timeout")
        _assert_no_unknown_keys(timeout, {"connect", "read"}, "search.timeout", allow_unknown)

    _assert_positive(cfg["cache"].get("ttl_seconds", 1), "cache.ttl_seconds")
    return cfg
