import math

import pytest

from storeroute.common.errors import InvalidGeometry
from storeroute.common.geometry import (
    area,
    bounding_box,
    cell_radius_for_search_radius,
    centroid,
    close_ring,
    contains,
    haversine_km,
    intersection_has_positive_area,
    intersects,
    union_polygons,
)
from storeroute.common.models import Coordinate
from storeroute.pipeline.tessellate import hex_cell


def _ring(*points):
    return [Coordinate(lat, lon) for lat, lon in points]


SQUARE = _ring((0, 0), (2, 0), (2, 2), (0, 2))


def test_centroid_of_square_is_its_center():
    assert centroid(SQUARE) == Coordinate(1.0, 1.0)
    assert centroid(close_ring(SQUARE)) == Coordinate(1.0, 1.0)


def test_area_sign_follows_winding():
    counter_clockwise = _ring((0, 0), (0, 2), (2, 2), (2, 0))
    assert area(counter_clockwise) == pytest.approx(4.0)
    assert area(list(reversed(counter_clockwise))) == pytest.approx(-4.0)
    assert area(close_ring(counter_clockwise)) == pytest.approx(4.0)


def test_multipolygon_centroid_ignores_degenerate_part():
    sliver = _ring((10, 10))
    assert centroid([SQUARE, sliver]) == Coordinate(1.0, 1.0)
    assert centroid([sliver, SQUARE]) == Coordinate(1.0, 1.0)


def test_multipolygon_centroid_uses_largest_part():
    small = _ring((10, 10), (10, 11), (11, 11), (11, 10))
    large = _ring((0, 0), (0, 4), (4, 4), (4, 0))
    assert centroid([small, large]) == Coordinate(2.0, 2.0)


def test_centroid_of_empty_geometry_raises():
    with pytest.raises(InvalidGeometry):
        centroid([])


def test_bounding_box_order():
    ring = _ring((1, -3), (4, 2), (-1, 0))
    assert bounding_box(ring) == (-1, 4, -3, 2)


def test_contains_is_boundary_inclusive():
    assert contains(SQUARE, Coordinate(1, 1))
    assert not contains(SQUARE, Coordinate(3, 1))
    assert contains(SQUARE, Coordinate(0, 1))
    assert contains(SQUARE, Coordinate(2, 2))
    assert contains(SQUARE, Coordinate(1, 2))


def test_contains_handles_concave_rings_and_multipolygons():
    u_shape = _ring((0, 0), (0, 3), (3, 3), (3, 2), (1, 2), (1, 1), (3, 1), (3, 0))
    assert contains(u_shape, Coordinate(0.5, 2.5))
    assert not contains(u_shape, Coordinate(2, 1.5))
    assert contains(u_shape, Coordinate(2, 2.5))

    far_square = _ring((10, 10), (10, 12), (12, 12), (12, 10))
    assert contains([SQUARE, far_square], Coordinate(11, 11))
    assert not contains([SQUARE, far_square], Coordinate(5, 5))


def test_edge_contact_is_not_positive_area():
    touching = hex_cell(Coordinate(1.0, 2.0 + math.sqrt(3) / 2), 1.0)
    overlapping = hex_cell(Coordinate(1.0, 2.0), 1.0)
    far_away = hex_cell(Coordinate(10.0, 10.0), 1.0)

    assert not intersection_has_positive_area(touching, SQUARE)
    assert intersection_has_positive_area(overlapping, SQUARE)
    assert intersects(overlapping, SQUARE)
    assert not intersects(far_away, SQUARE)
    assert not intersection_has_positive_area(far_away, SQUARE)


def test_vertex_contact_is_not_positive_area():
    below = hex_cell(Coordinate(-1.0, 1.0), 1.0)
    assert not intersection_has_positive_area(below, SQUARE)


def test_union_merges_adjacent_parts_into_one_outline():
    left = _ring((0, 0), (0, 2), (2, 2), (2, 0))
    right = _ring((0, 2), (0, 4), (2, 4), (2, 2))
    outlines = union_polygons([left, right])
    assert len(outlines) == 1
    assert abs(area(outlines[0])) == pytest.approx(8.0)


def test_union_keeps_disjoint_parts_largest_first_and_drops_degenerate():
    small = _ring((10, 10), (10, 11), (11, 11), (11, 10))
    large = _ring((0, 0), (0, 3), (3, 3), (3, 0))
    line = _ring((5, 5), (6, 6))
    outlines = union_polygons([small, line, large])
    assert [abs(area(outline)) for outline in outlines] == [pytest.approx(9.0), pytest.approx(1.0)]
    assert union_polygons([line]) == []


def test_haversine_known_distances():
    assert haversine_km(Coordinate(0, 0), Coordinate(0, 0)) == 0
    assert haversine_km(Coordinate(0, 0), Coordinate(1, 0)) == pytest.approx(111.195, abs=0.01)
    tokyo = Coordinate(35.6812, 139.7671)
    toda = Coordinate(35.8177, 139.6797)
    assert 16.5 < haversine_km(tokyo, toda) < 17.7
    assert haversine_km(tokyo, toda) == pytest.approx(haversine_km(toda, tokyo))


def test_cell_radius_for_search_radius_uses_tighter_span():
    radius = cell_radius_for_search_radius(1000, 35.8, safety_margin=1.0)
    assert 0.0089 < radius < 0.0091
    assert cell_radius_for_search_radius(1000, 35.8, safety_margin=0.5) == pytest.approx(radius / 2)


def test_cell_radius_for_search_radius_rejects_bad_inputs():
    with pytest.raises(ValueError):
        cell_radius_for_search_radius(0, 35.0)
    with pytest.raises(ValueError):
        cell_radius_for_search_radius(1000, 35.0, safety_margin=1.5)


def test_coordinate_rejects_out_of_range_values():
    with pytest.raises(InvalidGeometry):
        Coordinate(91, 0)
    with pytest.raises(InvalidGeometry):
        Coordinate(0, -181)
