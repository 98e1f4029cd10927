"""Planar polygon helpers over (lat, lon) coordinates.

Planar formulas treat longitude as x and latitude as y. That is adequate at the scale of a
postal boundary; distances between records use the haversine formula instead.
"""

from __future__ import annotations

import math
from typing import Sequence

from pyproj import Geod
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from storeroute.common.constants import DEFAULT_SAFETY_MARGIN, EARTH_RADIUS_KM
from storeroute.common.errors import InvalidGeometry
from storeroute.common.models import Coordinate, HexCell, MultiPolygon, Polygon

# Overlap below this fraction of a cell's own area is floating-point noise from edge contact.
POSITIVE_AREA_FRACTION = 1e-9
_ON_SEGMENT_TOLERANCE = 1e-12

_WGS84 = Geod(ellps="WGS84")


def open_ring(polygon: Polygon) -> list[Coordinate]:
    points = list(polygon)
    if len(points) > 1 and points[0] == points[-1]:
        points.pop()
    return points


def close_ring(polygon: Polygon) -> tuple[Coordinate, ...]:
    points = open_ring(polygon)
    if not points:
        return ()
    return (*points, points[0])


def is_multipolygon(geometry: Polygon | MultiPolygon) -> bool:
    return bool(geometry) and not isinstance(geometry[0], Coordinate)


def area(polygon: Polygon) -> float:
    """Signed shoelace area in square degrees; counter-clockwise rings are positive."""
    ring = close_ring(polygon)
    total = 0.0
    for a, b in zip(ring, ring[1:]):
        total += a.lon * b.lat - b.lon * a.lat
    return total / 2.0


def _vertex_mean(polygon: Polygon) -> Coordinate:
    points = open_ring(polygon)
    if not points:
        raise InvalidGeometry("Cannot take the centroid of an empty polygon")
    lat = sum(point.lat for point in points) / len(points)
    lon = sum(point.lon for point in points) / len(points)
    return Coordinate(lat, lon)


def centroid(geometry: Polygon | MultiPolygon) -> Coordinate:
    """Vertex-mean centroid.

    For a multipolygon only the part with the largest absolute area is used, so a probe seeded
    from it lands on the dominant landmass rather than between islands.
    """
    if not geometry:
        raise InvalidGeometry("Cannot take the centroid of an empty geometry")
    if not is_multipolygon(geometry):
        return _vertex_mean(geometry)

    parts = [part for part in geometry if open_ring(part)]
    if not parts:
        raise InvalidGeometry("Multipolygon has no vertices")
    largest = parts[0]
    largest_area = abs(area(largest))
    for part in parts[1:]:
        part_area = abs(area(part))
        if part_area > largest_area:
            largest, largest_area = part, part_area
    return _vertex_mean(largest)


def bounding_box(polygon: Polygon) -> tuple[float, float, float, float]:
    points = open_ring(polygon)
    if not points:
        raise InvalidGeometry("Cannot take the bounding box of an empty polygon")
    lats = [point.lat for point in points]
    lons = [point.lon for point in points]
    return min(lats), max(lats), min(lons), max(lons)


def _on_segment(point: Coordinate, a: Coordinate, b: Coordinate) -> bool:
    cross = (b.lon - a.lon) * (point.lat - a.lat) - (b.lat - a.lat) * (point.lon - a.lon)
    if abs(cross) > _ON_SEGMENT_TOLERANCE:
        return False
    return (
        min(a.lon, b.lon) - _ON_SEGMENT_TOLERANCE <= point.lon <= max(a.lon, b.lon) + _ON_SEGMENT_TOLERANCE
        and min(a.lat, b.lat) - _ON_SEGMENT_TOLERANCE <= point.lat <= max(a.lat, b.lat) + _ON_SEGMENT_TOLERANCE
    )


def _ring_contains(polygon: Polygon, point: Coordinate) -> bool:
    ring = close_ring(polygon)
    if len(ring) < 2:
        return False
    inside = False
    for a, b in zip(ring, ring[1:]):
        if _on_segment(point, a, b):
            return True
        if (a.lat > point.lat) != (b.lat > point.lat):
            crossing_lon = a.lon + (point.lat - a.lat) * (b.lon - a.lon) / (b.lat - a.lat)
            if point.lon < crossing_lon:
                inside = not inside
    return inside


def contains(geometry: Polygon | MultiPolygon, point: Coordinate) -> bool:
    """Ray-casting containment; edges and vertices count as inside."""
    if not geometry:
        return False
    if is_multipolygon(geometry):
        return any(_ring_contains(part, point) for part in geometry)
    return _ring_contains(geometry, point)


def to_shape(polygon: Polygon) -> ShapelyPolygon:
    return ShapelyPolygon([(point.lon, point.lat) for point in open_ring(polygon)])


def from_shape(shape: ShapelyPolygon) -> list[Coordinate]:
    return [Coordinate(lat=y, lon=x) for x, y in shape.exterior.coords]


def intersects(cell: HexCell, polygon: Polygon) -> bool:
    return to_shape(cell.ring).intersects(to_shape(polygon))


def intersection_has_positive_area(cell: HexCell, polygon: Polygon) -> bool:
    cell_shape = to_shape(cell.ring)
    polygon_shape = to_shape(polygon)
    if not cell_shape.intersects(polygon_shape):
        return False
    overlap = cell_shape.intersection(polygon_shape)
    return overlap.area > cell_shape.area * POSITIVE_AREA_FRACTION


def _polygon_parts(shape: BaseGeometry) -> list[ShapelyPolygon]:
    parts = getattr(shape, "geoms", [shape])
    return [part for part in parts if part.geom_type == "Polygon" and part.area > 0]


def union_polygons(polygons: Sequence[Polygon]) -> list[list[Coordinate]]:
    """Merge boundary parts into outlines, largest first.

    Touching or overlapping parts become one outline; disjoint parts stay separate. Holes and
    zero-area parts are dropped.
    """
    shapes = [to_shape(polygon) for polygon in polygons if len(open_ring(polygon)) >= 3]
    shapes = [shape for shape in shapes if shape.area > 0]
    if not shapes:
        return []
    merged = _polygon_parts(unary_union(shapes))
    merged.sort(key=lambda part: (-part.area, part.bounds))
    return [from_shape(part) for part in merged]


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    d_lat = math.radians(b.lat - a.lat)
    d_lon = math.radians(b.lon - a.lon)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def cell_radius_for_search_radius(
    search_radius_m: float,
    latitude: float,
    safety_margin: float = DEFAULT_SAFETY_MARGIN,
) -> float:
    """Hex edge length in degrees whose cell fits inside a search circle at ``latitude``.

    The tighter of the north and east degree spans is used, so every vertex of a cell stays
    within ``safety_margin * search_radius_m`` of its center.
    """
    if search_radius_m <= 0:
        raise ValueError("search_radius_m must be positive")
    if not 0 < safety_margin <= 1:
        raise ValueError("safety_margin must be in (0, 1]")

    _, north_lat, _ = _WGS84.fwd(0.0, latitude, 0.0, search_radius_m)
    east_lon, _, _ = _WGS84.fwd(0.0, latitude, 90.0, search_radius_m)
    span = min(abs(north_lat - latitude), abs(east_lon))
    return span * safety_margin
