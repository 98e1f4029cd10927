"""Hexagonal tessellation of a boundary into probe cells."""

from __future__ import annotations

import math
from typing import Sequence

from storeroute.common.errors import InvalidGeometry
from storeroute.common.geometry import area, bounding_box, centroid, intersection_has_positive_area, open_ring
from storeroute.common.models import Coordinate, HexCell, Polygon

_MIN_POLYGON_AREA = 1e-14


def hex_count_for_rings(rings: int) -> int:
    """Cells in a hexagon of ``rings`` rings around one center cell."""
    if rings < 0:
        raise ValueError("rings must be non-negative")
    return 1 + 3 * rings * (rings + 1)


def _clamp_lat(value: float) -> float:
    return max(-90.0, min(90.0, value))


def _clamp_lon(value: float) -> float:
    return max(-180.0, min(180.0, value))


def hex_cell(center: Coordinate, cell_radius: float) -> HexCell:
    vertices = []
    for k in range(6):
        angle = math.radians(30 + 60 * k)
        vertices.append(
            Coordinate(
                lat=_clamp_lat(center.lat + cell_radius * math.sin(angle)),
                lon=_clamp_lon(center.lon + cell_radius * math.cos(angle)),
            )
        )
    vertices.append(vertices[0])
    return HexCell(center=center, ring=tuple(vertices))


def _validate_polygon(polygon: Polygon) -> None:
    distinct = set(open_ring(polygon))
    if len(distinct) < 3:
        raise InvalidGeometry(f"Polygon needs at least 3 distinct vertices, got {len(distinct)}")
    if abs(area(polygon)) < _MIN_POLYGON_AREA:
        raise InvalidGeometry("Polygon has zero area")


def lattice_centers(polygon: Polygon, cell_radius: float) -> list[Coordinate]:
    """Hex lattice points covering the polygon's bounding box, anchored on the box center."""
    min_lat, max_lat, min_lon, max_lon = bounding_box(polygon)
    hex_width = math.sqrt(3) * cell_radius
    hex_height = 2 * cell_radius
    row_step = 0.75 * hex_height

    center_lat = (min_lat + max_lat) / 2
    center_lon = (min_lon + max_lon) / 2
    half_rows = math.ceil(((max_lat - min_lat) / 2 + cell_radius) / row_step) + 1
    half_cols = math.ceil(((max_lon - min_lon) / 2 + hex_width) / hex_width) + 1

    centers: list[Coordinate] = []
    for row in range(-half_rows, half_rows + 1):
        lat = center_lat + row * row_step
        if not -90.0 <= lat <= 90.0:
            continue
        offset = hex_width / 2 if row % 2 else 0.0
        for col in range(-half_cols, half_cols + 1):
            lon = center_lon + col * hex_width + offset
            if not -180.0 <= lon <= 180.0:
                continue
            centers.append(Coordinate(lat, lon))
    return centers


def tessellate(polygon: Polygon, cell_radius: float) -> list[HexCell]:
    """Cells of a hex lattice whose area overlaps ``polygon``, in row-major scan order.

    Cells that merely touch the polygon along an edge or at a vertex are left out. When no
    lattice cell qualifies the polygon is covered by a single cell on its centroid.
    """
    if cell_radius <= 0:
        raise InvalidGeometry(f"cell_radius must be positive, got {cell_radius}")
    _validate_polygon(polygon)

    cells = []
    for center in lattice_centers(polygon, cell_radius):
        cell = hex_cell(center, cell_radius)
        if intersection_has_positive_area(cell, polygon):
            cells.append(cell)

    if not cells:
        cells.append(hex_cell(centroid(polygon), cell_radius))
    return cells


def tessellate_parts(polygons: Sequence[Polygon], cell_radius: float) -> list[HexCell]:
    if not polygons:
        raise InvalidGeometry("No polygons to tessellate")
    cells: list[HexCell] = []
    seen: set[Coordinate] = set()
    for polygon in polygons:
        for cell in tessellate(polygon, cell_radius):
            if cell.center in seen:
                continue
            seen.add(cell.center)
            cells.append(cell)
    return cells
