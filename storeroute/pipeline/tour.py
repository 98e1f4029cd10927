"""Greedy nearest-neighbour visiting order."""

from __future__ import annotations

from typing import Sequence

from storeroute.common.geometry import haversine_km
from storeroute.common.models import Coordinate, Record


def _nearest_index(current: Coordinate, remaining: Sequence[Record]) -> int:
    best_index = 0
    best_distance = float("inf")
    for index, record in enumerate(remaining):
        distance = haversine_km(current, record.coordinate)
        # Strict comparison keeps the earliest record on ties.
        if distance < best_distance:
            best_index = index
            best_distance = distance
    return best_index


def build_tour(records: Sequence[Record], start: Coordinate | None = None) -> list[Record]:
    """Order ``records`` by repeatedly visiting the nearest unvisited one.

    With ``start`` the tour opens at the record nearest to it; otherwise at the first record.
    """
    identities = [record.identity for record in records]
    if len(set(identities)) != len(identities):
        raise ValueError("build_tour requires records with unique identities")

    remaining = list(records)
    if not remaining:
        return []

    tour: list[Record] = []
    if start is None:
        tour.append(remaining.pop(0))
        current = tour[0].coordinate
    else:
        current = start

    while remaining:
        nearest = remaining.pop(_nearest_index(current, remaining))
        tour.append(nearest)
        current = nearest.coordinate
    return tour


def tour_length_km(tour: Sequence[Record], start: Coordinate | None = None) -> float:
    total = 0.0
    previous = start
    for record in tour:
        if previous is not None:
            total += haversine_km(previous, record.coordinate)
        previous = record.coordinate
    return total
