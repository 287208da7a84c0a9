"""
Purpose: Distance math for the site map.
What it does:

- Great-circle distance between two (lat, lon) points (haversine, km)
- Total length of a polyline (sum of consecutive legs)
- Local equirectangular plane (pyproj) used by the nearest-point search
- Closest point on a polyline (shapely project / interpolate)

Rule: pure functions only. No Django, no HTTP.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Sequence, Tuple

from pyproj import CRS, Transformer
from shapely.geometry import LineString, Point

from .policy import EARTH_RADIUS_KM

# internal coordinate type: (lat, lon)
LatLon = Tuple[float, float]

EARTH_RADIUS_M = EARTH_RADIUS_KM * 1000.0

# geographic lon/lat on the same sphere, so no datum shift is applied
LONLAT = CRS.from_proj4(f"+proj=longlat +R={EARTH_RADIUS_M} +no_defs")


@dataclass(frozen=True)
class NearestPoint:
    """
    Closest location on a polyline to some query point.

    segment_index is the index of the segment start vertex, fraction is how far
    along that segment (0.0 = start vertex, 1.0 = end vertex) the point lies.
    """

    latitude: float
    longitude: float
    segment_index: int
    fraction: float
    distance_km: float

    @property
    def coordinates(self) -> LatLon:
        return (self.latitude, self.longitude)


def validate_lat_lon(lat: float, lon: float) -> LatLon:
    """Coerce to floats and range-check a latitude/longitude pair."""
    try:
        lat_f = float(lat)
        lon_f = float(lon)
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid coordinates") from exc
    if not (-90 <= lat_f <= 90 and -180 <= lon_f <= 180):
        raise ValueError("Coordinates out of range")
    return lat_f, lon_f


def haversine_km(a: LatLon, b: LatLon) -> float:
    """Great-circle distance in kilometers between two (lat, lon) points."""
    lat1, lon1 = math.radians(a[0]), math.radians(a[1])
    lat2, lon2 = math.radians(b[0]), math.radians(b[1])

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def path_length_km(points: Sequence[LatLon]) -> float:
    """
    Total length of the polyline through `points`, in kilometers.
    Fewer than two points is a zero-length path.
    """
    total = 0.0
    for index in range(len(points) - 1):
        total += haversine_km(points[index], points[index + 1])
    return total


def midpoint(a: LatLon, b: LatLon) -> LatLon:
    """Arithmetic midpoint, good enough for placing a label between two markers."""
    return ((a[0] + b[0]) / 2, (a[1] + b[1]) / 2)


@lru_cache(maxsize=256)
def _local_frame(origin: LatLon) -> Tuple[Transformer, Transformer]:
    """
    Forward/inverse transformers between lon/lat and a local equirectangular
    plane in meters, centred on origin (x east, y north).
    """
    lat, lon = origin
    local = CRS.from_proj4(
        f"+proj=eqc +lat_ts={lat:.10f} +lat_0={lat:.10f} +lon_0={lon:.10f} +x_0=0 +y_0=0 "
        f"+R={EARTH_RADIUS_M} +units=m +no_defs"
    )
    return (
        Transformer.from_crs(LONLAT, local, always_xy=True),
        Transformer.from_crs(local, LONLAT, always_xy=True),
    )


def _to_local(points: Sequence[LatLon], to_local: Transformer) -> List[Tuple[float, float]]:
    xs, ys = to_local.transform([p[1] for p in points], [p[0] for p in points])
    return list(zip(xs, ys))


def planar_distance_m(a: LatLon, b: LatLon) -> float:
    """
    Equirectangular distance in meters. Accurate for the short hops between a
    site and nearby fiber; used for ranking only.
    """
    to_local, _ = _local_frame(tuple(a))
    origin, other = _to_local([a, b], to_local)
    return Point(origin).distance(Point(other))


def _locate(vertices: Sequence[Tuple[float, float]], along: float) -> Tuple[int, float]:
    """Segment index and fraction for a distance measured along the projected line."""
    travelled = 0.0
    last = len(vertices) - 2
    for index in range(len(vertices) - 1):
        length = Point(vertices[index]).distance(Point(vertices[index + 1]))
        # a shared vertex belongs to the earlier segment
        if along <= travelled + length or index == last:
            fraction = (along - travelled) / length if length else 0.0
            return index, max(0.0, min(1.0, fraction))
        travelled += length
    return 0, 0.0


def nearest_point_on_line(
        point: LatLon,
        line: Sequence[LatLon],
        *,
        snap_to_vertex: bool = False,
) -> NearestPoint:
    """
    Find the closest location on a polyline to `point`.

    The line is projected into a local planar frame centred on the query
    point and shapely finds the closest location on it. With
    snap_to_vertex=True only the line's own vertices are considered (what the
    map shows as route markers).

    Args:
        point: (lat, lon) query location
        line: ordered (lat, lon) vertices
        snap_to_vertex: restrict candidates to existing vertices

    Returns:
        NearestPoint with the haversine distance to the query point.
    """
    if not line:
        raise ValueError("Cannot search an empty line.")

    to_local, to_lonlat = _local_frame(tuple(point))
    site = Point(_to_local([point], to_local)[0])
    vertices = _to_local(line, to_local)

    if snap_to_vertex or len(line) == 1:
        distances = [site.distance(Point(vertex)) for vertex in vertices]
        # first vertex wins a tie
        best_index = distances.index(min(distances))
        lat, lon = line[best_index]
        return NearestPoint(
            latitude=lat,
            longitude=lon,
            segment_index=best_index,
            fraction=0.0,
            distance_km=haversine_km(point, (lat, lon)),
        )

    cable = LineString(vertices)
    along = cable.project(site)
    foot = cable.interpolate(along)
    segment_index, fraction = _locate(vertices, along)

    lon, lat = to_lonlat.transform(foot.x, foot.y)
    return NearestPoint(
        latitude=lat,
        longitude=lon,
        segment_index=segment_index,
        fraction=fraction,
        distance_km=haversine_km(point, (lat, lon)),
    )
