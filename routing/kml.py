"""
Purpose: KML / KMZ -> GeoJSON conversion for fiber routes.
What it does:

- Parses KML 2.2 documents (with or without the default namespace)
- Turns every Placemark into a GeoJSON Feature
  Point, LineString, LinearRing, Polygon, MultiGeometry, gx:Track, gx:MultiTrack
- Keeps name / description / ExtendedData as feature properties
- Unzips KMZ archives (doc.kml or the first .kml entry)

Output is a plain dict FeatureCollection so callers can json.dumps it as is.
Coordinates stay in GeoJSON order: [lon, lat] or [lon, lat, alt].
"""

from __future__ import annotations

import logging
import re
import zipfile
from io import BytesIO
from typing import Any, Dict, Iterator, List, Optional, Union

from lxml import etree

logger = logging.getLogger(__name__)

Feature = Dict[str, Any]
Geometry = Dict[str, Any]

# entities / network access disabled, uploads are untrusted
_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=True)

_GEOMETRY_TAGS = {"Point", "LineString", "LinearRing", "Polygon", "MultiGeometry", "Track", "MultiTrack"}


class RouteParseError(ValueError):
    """Route data could not be turned into at least one GeoJSON feature."""
    pass


def _local(element) -> str:
    tag = element.tag
    if not isinstance(tag, str):
        return ""
    return etree.QName(tag).localname


def _children(element, name: str) -> List:
    return [child for child in element if _local(child) == name]


def _first(element, name: str):
    for child in element:
        if _local(child) == name:
            return child
    return None


def _descendants(element, name: str) -> Iterator:
    for node in element.iter():
        if _local(node) == name:
            yield node


def _text(element, name: str) -> Optional[str]:
    child = _first(element, name)
    if child is None or child.text is None:
        return None
    return child.text.strip()


def parse_coordinates(text: Optional[str]) -> List[List[float]]:
    """
    Parse a KML <coordinates> body: "lon,lat[,alt] lon,lat[,alt] ..."
    Malformed tuples are skipped.
    """
    coords: List[List[float]] = []
    for chunk in re.split(r"\s+", (text or "").strip()):
        if not chunk:
            continue
        parts = chunk.split(",")
        if len(parts) < 2:
            continue
        try:
            values = [float(part) for part in parts[:3] if part != ""]
        except ValueError:
            continue
        if len(values) < 2:
            continue
        coords.append(values)
    return coords


def _track_coordinates(track) -> List[List[float]]:
    # gx:coord is space separated: "lon lat alt"
    coords = []
    for node in _children(track, "coord"):
        try:
            values = [float(part) for part in (node.text or "").split()]
        except ValueError:
            continue
        if len(values) >= 2:
            coords.append(values[:3])
    return coords


def _ring(boundary) -> Optional[List[List[float]]]:
    ring = _first(boundary, "LinearRing")
    if ring is None:
        return None
    coords = parse_coordinates(_text(ring, "coordinates"))
    return coords or None


def _geometry(element) -> Optional[Geometry]:
    kind = _local(element)

    if kind == "Point":
        coords = parse_coordinates(_text(element, "coordinates"))
        if not coords:
            return None
        return {"type": "Point", "coordinates": coords[0]}

    if kind in ("LineString", "LinearRing"):
        coords = parse_coordinates(_text(element, "coordinates"))
        if not coords:
            return None
        return {"type": "LineString", "coordinates": coords}

    if kind == "Track":
        coords = _track_coordinates(element)
        if not coords:
            return None
        return {"type": "LineString", "coordinates": coords}

    if kind == "Polygon":
        rings = []
        outer = _first(element, "outerBoundaryIs")
        if outer is not None:
            ring = _ring(outer)
            if ring:
                rings.append(ring)
        if not rings:
            return None
        for inner in _children(element, "innerBoundaryIs"):
            ring = _ring(inner)
            if ring:
                rings.append(ring)
        return {"type": "Polygon", "coordinates": rings}

    if kind in ("MultiGeometry", "MultiTrack"):
        parts = [geom for geom in (_geometry(child) for child in element if _local(child) in _GEOMETRY_TAGS) if geom]
        if not parts:
            return None
        return _collect(parts)

    return None


def _collect(parts: List[Geometry]) -> Geometry:
    """Homogeneous parts become the matching Multi* type, mixed ones a GeometryCollection."""
    if len(parts) == 1:
        return parts[0]

    kinds = {part["type"] for part in parts}
    if len(kinds) == 1:
        kind = kinds.pop()
        if kind in ("Point", "LineString", "Polygon"):
            return {"type": f"Multi{kind}", "coordinates": [part["coordinates"] for part in parts]}
    return {"type": "GeometryCollection", "geometries": parts}


def _properties(placemark) -> Dict[str, Any]:
    properties: Dict[str, Any] = {}

    for key in ("name", "description", "styleUrl"):
        value = _text(placemark, key)
        if value:
            properties[key] = value

    extended = _first(placemark, "ExtendedData")
    if extended is not None:
        for data in _descendants(extended, "Data"):
            name = data.get("name")
            if name:
                properties[name] = _text(data, "value")
        for data in _descendants(extended, "SimpleData"):
            name = data.get("name")
            if name:
                properties[name] = (data.text or "").strip()

    return properties


def _placemark_feature(placemark) -> Optional[Feature]:
    parts = [geom for geom in (_geometry(child) for child in placemark if _local(child) in _GEOMETRY_TAGS) if geom]
    if not parts:
        return None
    return {
        "type": "Feature",
        "geometry": _collect(parts),
        "properties": _properties(placemark),
    }


def parse_kml(data: Union[str, bytes]) -> Dict[str, Any]:
    """
    Convert a KML document to a GeoJSON FeatureCollection.

    Raises:
        RouteParseError: empty input, broken XML or no placemark with geometry.
    """
    if isinstance(data, str):
        if not data.strip():
            raise RouteParseError("Empty KML data")
        # lxml refuses str input that carries an encoding declaration
        data = data.strip().encode("utf-8")
    elif not data or not data.strip():
        raise RouteParseError("Empty KML data")

    try:
        root = etree.fromstring(data, parser=_PARSER)
    except etree.XMLSyntaxError as exc:
        raise RouteParseError(f"XML parsing error: {exc}") from exc

    features = []
    for placemark in _descendants(root, "Placemark"):
        feature = _placemark_feature(placemark)
        if feature is not None:
            features.append(feature)

    if not features:
        raise RouteParseError("Invalid KML data: no features found")

    logger.debug("Parsed KML into %d features", len(features))
    return {"type": "FeatureCollection", "features": features}


def extract_kml_from_kmz(data: bytes) -> bytes:
    """Return the raw KML bytes inside a KMZ archive."""
    try:
        archive = zipfile.ZipFile(BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise RouteParseError("Invalid KMZ archive") from exc

    with archive:
        names = [name for name in archive.namelist() if name.lower().endswith(".kml")]
        if not names:
            raise RouteParseError("KMZ archive contains no .kml file")
        # doc.kml is the conventional root document
        name = next((n for n in names if n.lower().rsplit("/", 1)[-1] == "doc.kml"), names[0])
        return archive.read(name)


def parse_kmz(data: bytes) -> Dict[str, Any]:
    """Convert a KMZ archive to a GeoJSON FeatureCollection."""
    return parse_kml(extract_kml_from_kmz(data))
