"""Boundary lookup from a GeoJSON feature collection."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from storeroute.common.errors import BoundaryNotFound, ConfigError, InvalidGeometry
from storeroute.common.fs import read_json
from storeroute.common.models import Coordinate
from storeroute.common.postcode import normalise_code


def _ring_from_positions(positions: list[Any]) -> list[Coordinate]:
    ring = []
    for position in positions:
        lon, lat = float(position[0]), float(position[1])
        ring.append(Coordinate(lat=lat, lon=lon))
    return ring


def polygons_from_geometry(geometry: dict[str, Any] | None) -> list[list[Coordinate]]:
    """Exterior rings of a GeoJSON Polygon or MultiPolygon; holes are ignored."""
    if not geometry:
        return []
    geometry_type = geometry.get("type")
    coordinates = geometry.get("coordinates") or []
    if geometry_type == "Polygon":
        return [_ring_from_positions(coordinates[0])] if coordinates else []
    if geometry_type == "MultiPolygon":
        return [_ring_from_positions(polygon[0]) for polygon in coordinates if polygon]
    if geometry_type == "GeometryCollection":
        rings = []
        for member in geometry.get("geometries") or []:
            rings.extend(polygons_from_geometry(member))
        return rings
    return []


class GeoJsonBoundarySource:
    def __init__(self, path: Path, *, postal_property: str = "postal_code", area_property: str = "area_code") -> None:
        self.path = path
        self.properties = {"postal": postal_property, "area": area_property}
        self._index: dict[tuple[str, str], list[list[Coordinate]]] | None = None

    def _load(self) -> dict[tuple[str, str], list[list[Coordinate]]]:
        if self._index is not None:
            return self._index
        if not self.path.exists():
            raise ConfigError(f"Boundary file not found: {self.path}")
        payload = read_json(self.path)
        if payload.get("type") != "FeatureCollection":
            raise ConfigError(f"Boundary file is not a FeatureCollection: {self.path}")

        index: dict[tuple[str, str], list[list[Coordinate]]] = {}
        for feature in payload.get("features") or []:
            properties = feature.get("properties") or {}
            try:
                rings = polygons_from_geometry(feature.get("geometry"))
            except (InvalidGeometry, TypeError, ValueError, IndexError):
                continue
            for kind, property_name in self.properties.items():
                raw = properties.get(property_name)
                code = normalise_code(kind, str(raw)) if raw is not None else None
                if code is None:
                    continue
                index.setdefault((kind, code), []).extend(rings)
        self._index = index
        return index

    def resolve_boundary(self, kind: str, code: str) -> list[list[Coordinate]]:
        polygons = self._load().get((kind, code))
        if not polygons:
            raise BoundaryNotFound(f"No boundary for {kind} code {code}")
        return [list(polygon) for polygon in polygons]
