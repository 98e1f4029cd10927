from pathlib import Path

import pytest

from storeroute.common.config_loader import load_config
from storeroute.common.errors import ConfigError

MINIMAL = """search:
  base_url: "https://stores.example/api"
  client_id: integrated
  search_radius_m: 800
boundaries:
  geojson_path: boundaries.geojson
cache:
  enabled: false
output:
  kml: true
  csv: false
"""


def _write(directory: Path, text: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "storeroute.yml").write_text(text, encoding="utf-8")
    return directory


def test_load_config_from_repo_config_dir():
    cfg = load_config(Path("config"))
    assert cfg["search"]["search_radius_m"] > 0
    assert cfg["search"]["service_filter"] == "rpay"
    assert Path(cfg["boundaries"]["geojson_path"]).is_absolute()
    assert Path(cfg["boundaries"]["geojson_path"]).exists()


def test_load_config_applies_overlay_values(tmp_path: Path):
    base = _write(tmp_path / "base", MINIMAL)
    overlay = _write(tmp_path / "overlay", "search:\n  pacing_seconds: 0\n  cell_radius_deg: 0.004\n")

    cfg = load_config(base, overlay_config_dir=overlay)

    assert cfg["search"]["pacing_seconds"] == 0
    assert cfg["search"]["cell_radius_deg"] == 0.004
    assert cfg["search"]["search_radius_m"] == 800
    assert cfg["boundaries"]["geojson_path"] == str((base / "boundaries.geojson").resolve())


def test_load_config_ignores_empty_overlay_file(tmp_path: Path):
    base = _write(tmp_path / "base", MINIMAL)
    overlay = _write(tmp_path / "overlay", "")
    assert load_config(base, overlay_config_dir=overlay)["cache"]["enabled"] is False


def test_load_config_rejects_non_mapping_overlay(tmp_path: Path):
    base = _write(tmp_path / "base", MINIMAL)
    overlay = _write(tmp_path / "overlay", "- not\n- a\n- mapping\n")
    with pytest.raises(ConfigError):
        load_config(base, overlay_config_dir=overlay)


@pytest.mark.parametrize(
    "overlay_text",
    [
        "search:\n  search_radius_m: 0\n",
        "search:\n  safety_margin: 1.5\n",
        "search:\n  pacing_seconds: -1\n",
        "search:\n  unexpected: 1\n",
        "extra_section: {}\n",
    ],
)
def test_load_config_rejects_invalid_values(tmp_path: Path, overlay_text: str):
    base = _write(tmp_path / "base", MINIMAL)
    overlay = _write(tmp_path / "overlay", overlay_text)
    with pytest.raises(ConfigError):
        load_config(base, overlay_config_dir=overlay)


def test_load_config_missing_file(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_config(tmp_path)
