"""
Purpose: Turn stored route data into map-ready geometry.
What it does:

- parse_route_data: KML, KMZ or GeoJSON in -> FeatureCollection out
- route_lines / route_coordinates: (lat, lon) vertex lists for distance math
- route_markers: vertex markers for the first line of a route
- to_leaflet: GeoJSON [lon, lat] -> Leaflet [lat, lon]

Rule: this is the only place that knows GeoJSON coordinate order.
Everything downstream works with (lat, lon) tuples.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence, Tuple, Union

from .kml import RouteParseError, parse_kml, parse_kmz

LatLon = Tuple[float, float]

_GEOMETRY_TYPES = {
    "Point", "MultiPoint", "LineString", "MultiLineString",
    "Polygon", "MultiPolygon", "GeometryCollection",
}


def parse_geojson(data: Union[str, bytes]) -> Dict[str, Any]:
    """
    Load GeoJSON text and normalise it to a FeatureCollection.
    Accepts a FeatureCollection, a single Feature or a bare geometry.
    """
    try:
        document = json.loads(data)
    except (TypeError, ValueError) as exc:
        raise RouteParseError(f"Invalid GeoJSON: {exc}") from exc

    if not isinstance(document, dict):
        raise RouteParseError("Invalid GeoJSON: expected an object")

    kind = document.get("type")
    if kind == "FeatureCollection":
        features = [f for f in document.get("features") or [] if isinstance(f, dict) and f.get("geometry")]
    elif kind == "Feature":
        features = [document] if document.get("geometry") else []
    elif kind in _GEOMETRY_TYPES:
        features = [{"type": "Feature", "geometry": document, "properties": {}}]
    else:
        raise RouteParseError(f"Invalid GeoJSON: unsupported type {kind!r}")

    if not features:
        raise RouteParseError("Invalid GeoJSON: no features found")

    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": feature["geometry"],
                "properties": feature.get("properties") or {},
            }
            for feature in features
        ],
    }


def parse_route_data(data: Union[str, bytes]) -> Dict[str, Any]:
    """
    Parse whatever a fiber route was stored as.

    - bytes starting with the zip magic -> KMZ
    - text starting with '{'           -> GeoJSON
    - anything else                    -> KML

    Raises:
        RouteParseError when nothing usable comes out.
    """
    if data is None:
        raise RouteParseError("Empty route data")

    if isinstance(data, bytes):
        if data[:2] == b"PK":
            return parse_kmz(data)
        data = data.decode("utf-8-sig", errors="replace")

    stripped = data.strip()
    if not stripped:
        raise RouteParseError("Empty route data")
    if stripped.startswith("{"):
        return parse_geojson(stripped)
    return parse_kml(stripped)


def _point(coord: Sequence[float]) -> LatLon:
    return (float(coord[1]), float(coord[0]))


def _geometry_lines(geometry: Dict[str, Any]) -> List[List[LatLon]]:
    kind = geometry.get("type")
    coords = geometry.get("coordinates")

    # pins (poles, handholes) are not cable, they never form a line
    if kind == "LineString":
        return [[_point(c) for c in coords]]
    if kind == "MultiLineString":
        return [[_point(c) for c in line] for line in coords]
    if kind == "Polygon":
        # exterior ring only, holes are not cable paths
        return [[_point(c) for c in coords[0]]] if coords else []
    if kind == "MultiPolygon":
        return [[_point(c) for c in polygon[0]] for polygon in coords if polygon]
    if kind == "GeometryCollection":
        lines: List[List[LatLon]] = []
        for part in geometry.get("geometries") or []:
            lines.extend(_geometry_lines(part))
        return lines
    return []


def _geometry_vertices(geometry: Dict[str, Any]) -> List[LatLon]:
    """Every vertex of a geometry, pins included."""
    kind = geometry.get("type")
    coords = geometry.get("coordinates")

    if kind == "Point":
        return [_point(coords)] if coords else []
    if kind == "MultiPoint":
        return [_point(c) for c in coords or []]
    if kind == "GeometryCollection":
        return [point for part in geometry.get("geometries") or [] for point in _geometry_vertices(part)]
    return [point for line in _geometry_lines(geometry) for point in line]


def route_lines(feature_collection: Dict[str, Any]) -> List[List[LatLon]]:
    """
    Line geometries of the collection as (lat, lon) vertex lists, in feature order.
    LineString, MultiLineString and polygon exteriors only; Point/MultiPoint are skipped.
    """
    lines: List[List[LatLon]] = []
    for feature in feature_collection.get("features", []):
        geometry = feature.get("geometry")
        if not geometry:
            continue
        lines.extend(line for line in _geometry_lines(geometry) if line)
    return lines


def route_coordinates(feature_collection: Dict[str, Any]) -> List[LatLon]:
    """Flattened (lat, lon) vertices of the whole collection."""
    return [point for line in route_lines(feature_collection) for point in line]


def route_markers(feature_collection: Dict[str, Any], limit: int = 500) -> List[Dict[str, float]]:
    """
    Vertex markers of the first feature, the way the map pins route points.
    """
    for feature in feature_collection.get("features", []):
        geometry = feature.get("geometry")
        if not geometry:
            continue
        vertices = _geometry_vertices(geometry)
        if vertices:
            return [
                {"index": index, "latitude": lat, "longitude": lon}
                for index, (lat, lon) in enumerate(vertices[:limit])
            ]
    return []


def to_leaflet(coordinates: Sequence[Sequence[float]]) -> List[List[float]]:
    """Swap GeoJSON [lon, lat] pairs into Leaflet's [lat, lon]."""
    return [[coord[1], coord[0]] for coord in coordinates]
