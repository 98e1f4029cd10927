"""Route export to KML and CSV."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Sequence

from storeroute.common.fs import ensure_dir, write_csv
from storeroute.common.models import Coordinate, HexCell, Record

KML_NAMESPACE = "http://www.opengis.net/kml/2.2"

ROUTE_CSV_HEADERS = [
    "order",
    "identity",
    "store_name",
    "postal_code",
    "lat",
    "lon",
]

_STYLES = {
    "startPoint": ("IconStyle", "ff0000ff", "http://maps.google.com/mapfiles/kml/paddle/red-circle.png"),
    "storePoint": ("IconStyle", "ff00ff00", "http://maps.google.com/mapfiles/kml/paddle/grn-blank.png"),
    "routeLine": ("LineStyle", "ffff0000", None),
    "boundaryArea": ("PolyStyle", "330000ff", None),
    "probeCell": ("PolyStyle", "2200ffff", None),
}


def _sub(parent: ET.Element, tag: str, text: str | None = None) -> ET.Element:
    element = ET.SubElement(parent, tag)
    if text is not None:
        element.text = text
    return element


def _coordinates_text(points: Sequence[Coordinate]) -> str:
    return " ".join(f"{point.lon},{point.lat},0" for point in points)


def _add_styles(document: ET.Element) -> None:
    for style_id, (kind, color, icon) in _STYLES.items():
        style = _sub(document, "Style")
        style.set("id", style_id)
        body = _sub(style, kind)
        _sub(body, "color", color)
        if icon is not None:
            _sub(_sub(body, "Icon"), "href", icon)
        if kind == "LineStyle":
            _sub(body, "width", "3")


def _add_polygon(folder: ET.Element, name: str, style_id: str, ring: Sequence[Coordinate]) -> None:
    placemark = _sub(folder, "Placemark")
    _sub(placemark, "name", name)
    _sub(placemark, "styleUrl", f"#{style_id}")
    polygon = _sub(placemark, "Polygon")
    boundary = _sub(_sub(polygon, "outerBoundaryIs"), "LinearRing")
    closed = list(ring)
    if closed and closed[0] != closed[-1]:
        closed.append(closed[0])
    _sub(boundary, "coordinates", _coordinates_text(closed))


def _store_description(record: Record, position: int, total: int) -> str:
    lines = [f"Store ID: {record.identity}"]
    postal_code = record.attributes.get("postal_code")
    if postal_code:
        lines.append(f"Postal Code: {postal_code}")
    lines.append(f"Position: {position} of {total}")
    return "\n".join(lines)


def build_route_kml(
    records: Sequence[Record],
    *,
    title: str,
    description: str,
    routed: bool = True,
    boundary: Sequence[Sequence[Coordinate]] = (),
    cells: Sequence[HexCell] = (),
) -> ET.ElementTree:
    root = ET.Element("kml", xmlns=KML_NAMESPACE)
    document = _sub(root, "Document")
    _sub(document, "name", title)
    _sub(document, "description", description)
    _add_styles(document)

    total = len(records)
    for index, record in enumerate(records):
        placemark = _sub(document, "Placemark")
        _sub(placemark, "name", f"{index + 1}. {record.name or record.identity}")
        _sub(placemark, "description", _store_description(record, index + 1, total))
        _sub(placemark, "styleUrl", "#startPoint" if index == 0 and routed else "#storePoint")
        _sub(_sub(placemark, "Point"), "coordinates", _coordinates_text([record.coordinate]))

    if routed and total > 1:
        placemark = _sub(document, "Placemark")
        _sub(placemark, "name", "Route")
        _sub(placemark, "description", "Nearest-neighbour route through all stores")
        _sub(placemark, "styleUrl", "#routeLine")
        line = _sub(placemark, "LineString")
        _sub(line, "tessellate", "1")
        _sub(line, "coordinates", _coordinates_text([record.coordinate for record in records]))

    if boundary:
        folder = _sub(document, "Folder")
        _sub(folder, "name", "Boundary")
        for index, ring in enumerate(boundary):
            _add_polygon(folder, f"Boundary {index + 1}", "boundaryArea", ring)

    if cells:
        folder = _sub(document, "Folder")
        _sub(folder, "name", "Probe cells")
        _sub(folder, "visibility", "0")
        for index, cell in enumerate(cells):
            _add_polygon(folder, f"Cell {index + 1}", "probeCell", cell.ring)

    tree = ET.ElementTree(root)
    ET.indent(tree, space="  ")
    return tree


def write_route_kml(path: Path, records: Sequence[Record], **kwargs) -> Path:
    ensure_dir(path.parent)
    tree = build_route_kml(records, **kwargs)
    tree.write(path, encoding="utf-8", xml_declaration=True)
    return path


def _serialize_row(index: int, record: Record) -> dict:
    return {
        "order": index + 1,
        "identity": record.identity,
        "store_name": record.name,
        "postal_code": record.attributes.get("postal_code") or "",
        "lat": record.coordinate.lat,
        "lon": record.coordinate.lon,
    }


def write_route_csv(path: Path, records: Sequence[Record]) -> Path:
    write_csv(path, ROUTE_CSV_HEADERS, (_serialize_row(index, record) for index, record in enumerate(records)))
    return path
