"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from storeroute.common.errors import InvalidGeometry


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lon: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise InvalidGeometry(f"Latitude out of range: {self.lat}")
        if not -180.0 <= self.lon <= 180.0:
            raise InvalidGeometry(f"Longitude out of range: {self.lon}")

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lon": self.lon}


Polygon = Sequence[Coordinate]
MultiPolygon = Sequence[Polygon]


@dataclass(frozen=True)
class HexCell:
    center: Coordinate
    ring: tuple[Coordinate, ...]


@dataclass(frozen=True)
class Record:
    identity: str
    coordinate: Coordinate
    attributes: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def name(self) -> str:
        return str(self.attributes.get("store_name") or "")

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "lat": self.coordinate.lat,
            "lon": self.coordinate.lon,
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Record":
        return cls(
            identity=str(payload["identity"]),
            coordinate=Coordinate(float(payload["lat"]), float(payload["lon"])),
            attributes=payload.get("attributes") or {},
        )


@dataclass(frozen=True)
class AggregationResult:
    records: list[Record]
    probes_attempted: int
    probes_succeeded: int
    cancelled: bool = False


@dataclass(frozen=True)
class RouteRequest:
    kind: str
    code: str | None = None
    origin: Coordinate | None = None
    route: bool = True
    use_cache: bool = True

    @property
    def label(self) -> str:
        if self.code:
            return f"{self.kind}:{self.code}"
        if self.origin is not None:
            return f"{self.kind}:{self.origin.lat:.6f},{self.origin.lon:.6f}"
        return self.kind


@dataclass(frozen=True)
class PipelineResult:
    request: RouteRequest
    records: list[Record]
    cells: list[HexCell]
    boundary: list[list[Coordinate]]
    probes_attempted: int
    probes_succeeded: int
    from_cache: bool
    routed: bool
