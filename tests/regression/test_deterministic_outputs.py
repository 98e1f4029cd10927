from pathlib import Path

import pytest

from storeroute.cli import parse_args, run_command
from storeroute.common.models import Coordinate, Record
from storeroute.harvest.store_search import StoreSearchClient

CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


def _fake_search(self, coordinate):
    # Results depend only on the probe position so repeated runs see identical inputs.
    return [
        Record(f"{round(coordinate.lat, 3)}:{round(coordinate.lon, 3)}", Coordinate(round(coordinate.lat, 3), round(coordinate.lon, 3)), {"store_name": "cell store"}),
        Record("shared", Coordinate(35.8180, 139.6800), {"store_name": "shared store"}),
    ]


def _run_once(tmp_path: Path, name: str) -> Path:
    overlay = tmp_path / f"overlay_{name}"
    overlay.mkdir()
    (overlay / "storeroute.yml").write_text("search:\n  pacing_seconds: 0\ncache:\n  enabled: false\n", encoding="utf-8")
    data_dir = tmp_path / name
    args = parse_args(
        [
            "postal",
            "335-0016",
            "--config-dir",
            str(CONFIG_DIR),
            "--overlay-config-dir",
            str(overlay),
            "--data-dir",
            str(data_dir),
            "--run-id",
            f"route-{name}",
            "--include-cells",
        ]
    )
    assert run_command(args) == 0
    return data_dir / "out"


@pytest.mark.regression
def test_route_outputs_are_byte_stable_for_same_inputs(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(StoreSearchClient, "search_near", _fake_search)

    first = _run_once(tmp_path, "first")
    second = _run_once(tmp_path, "second")

    for filename in ("route_postal_3350016.kml", "route_postal_3350016.csv"):
        assert (first / filename).read_bytes() == (second / filename).read_bytes()
