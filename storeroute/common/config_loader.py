"""Configuration loading and validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from storeroute.common.errors import ConfigError
from storeroute.common.fs import read_yaml
from storeroute.common.schema import validate_app_config

CONFIG_FILENAME = "storeroute.yml"


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    if not isinstance(overlay, dict):
        raise ConfigError(f"Overlay config must be a mapping: {overlay_path}")
    return _deep_merge(base, overlay)


def _resolve_path(value: str | None, config_dir: Path) -> str | None:
    if not value:
        return value
    path = Path(value)
    if path.is_absolute():
        return str(path)
    return str((config_dir / path).resolve())


def load_config(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> dict:
    overlay_path = overlay_config_dir / CONFIG_FILENAME if overlay_config_dir is not None else None
    cfg = validate_app_config(
        _load_yaml_with_overlay(config_dir / CONFIG_FILENAME, overlay_path),
        allow_unknown=allow_unknown,
    )
    cfg["boundaries"]["geojson_path"] = _resolve_path(cfg["boundaries"]["geojson_path"], config_dir)
    if cfg.get("postal_data"):
        cfg["postal_data"]["zip_path"] = _resolve_path(cfg["postal_data"].get("zip_path"), config_dir)
    return cfg
