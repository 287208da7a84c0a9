#Purpose: Nearest-fiber search.
#Connects telecom sites to the closest point of any fiber route.
#Typical responsibilities:
#Given a site position + parsed route geometries -> find the closest route point
#Linear scan over every route vertex/segment (O(sites x route points))
#Planar (equirectangular) projection per segment, haversine for the reported distance
#Optional distance cap so far-away sites are left unconnected
#Output: a list of "connection candidates" the map draws as connector lines.

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .geometry import nearest_point_on_line
from .policy import MapPolicy, default_map_policy

#internal coordinate type :(lat,lon)
LatLon = Tuple[float, float]


@dataclass(frozen=True)
class RouteGeometry:
    """
    A parsed fiber route reduced to what the search needs:
    its id and its lines as (lat, lon) vertex lists.
    """

    route_id: str
    lines: List[List[LatLon]] = field(default_factory=list)
    description: str = ""

    @property
    def point_count(self) -> int:
        return sum(len(line) for line in self.lines)


@dataclass(frozen=True)
class FiberConnectionCandidate:
    """
    Closest fiber point for one site.
    This is what the map layer turns into a connector line.
    """

    site_id: Optional[str]
    site_location: LatLon
    route_id: str
    latitude: float
    longitude: float
    line_index: int
    segment_index: int
    fraction: float
    distance_km: float

    @property
    def fiber_location(self) -> LatLon:
        return (self.latitude, self.longitude)

    def as_feature(self) -> Dict[str, Any]:
        """GeoJSON LineString from the site to its fiber point."""
        site_lat, site_lon = self.site_location
        return {
            "type": "Feature",
            "geometry": {
                "type": "LineString",
                "coordinates": [[site_lon, site_lat], [self.longitude, self.latitude]],
            },
            "properties": {
                "site_id": self.site_id,
                "route_id": self.route_id,
                "line_index": self.line_index,
                "segment_index": self.segment_index,
                "distance_km": round(self.distance_km, 6),
                "distance_m": round(self.distance_km * 1000, 1),
            },
        }


def nearest_fiber_point(
        site_location: LatLon,
        routes: Sequence[RouteGeometry],
        *,
        site_id: Optional[str] = None,
        snap_to_vertex: bool = False,
        policy: Optional[MapPolicy] = None,
) -> Optional[FiberConnectionCandidate]:
    """
    Closest point on any route to a single site.

    Args:
        site_location: (lat, lon) of the site
        routes: parsed route geometries
        site_id: carried through to the candidate
        snap_to_vertex: only consider existing route vertices
        policy: MapPolicy (max_route_points caps oversized routes)

    Returns:
        FiberConnectionCandidate, or None when no route has any point.
        Ties keep the route that comes first in `routes`.
    """
    policy = policy or default_map_policy()
    best: Optional[FiberConnectionCandidate] = None

    for route in routes:
        scanned = 0
        for line_index, line in enumerate(route.lines):
            #skip empty lines, nothing to project onto
            if not line:
                continue
            #budget per route so a giant upload cannot stall a request
            if scanned >= policy.max_route_points:
                break
            line = line[: policy.max_route_points - scanned]
            scanned += len(line)

            nearest = nearest_point_on_line(site_location, line, snap_to_vertex=snap_to_vertex)

            #strictly smaller, so the earlier route wins a tie
            if best is None or nearest.distance_km < best.distance_km:
                best = FiberConnectionCandidate(
                    site_id=site_id,
                    site_location=site_location,
                    route_id=route.route_id,
                    latitude=nearest.latitude,
                    longitude=nearest.longitude,
                    line_index=line_index,
                    segment_index=nearest.segment_index,
                    fraction=nearest.fraction,
                    distance_km=nearest.distance_km,
                )

    return best


def connect_sites_to_routes(
        sites: Sequence[Any],
        routes: Sequence[RouteGeometry],
        *,
        max_distance_km: Optional[float] = None,
        snap_to_vertex: bool = False,
        policy: Optional[MapPolicy] = None,
) -> List[FiberConnectionCandidate]:
    """
    Nearest fiber point for every site.

    Args:
        sites: objects with .id, .latitude, .longitude (None coordinates are skipped)
        routes: parsed route geometries
        max_distance_km: drop connections longer than this (falls back to the policy cap)

    Returns:
        List[FiberConnectionCandidate], sorted by distance ascending.
    """
    policy = policy or default_map_policy()
    if max_distance_km is None:
        max_distance_km = policy.max_connection_distance_km

    #nothing to connect
    if not sites or not routes:
        return []

    candidates: List[FiberConnectionCandidate] = []

    for site in sites:
        if site.latitude is None or site.longitude is None:
            continue

        candidate = nearest_fiber_point(
            (float(site.latitude), float(site.longitude)),
            routes,
            site_id=str(site.id),
            snap_to_vertex=snap_to_vertex,
            policy=policy,
        )
        if candidate is None:
            continue
        if max_distance_km is not None and candidate.distance_km > max_distance_km:
            continue
        candidates.append(candidate)

    #closest connections first, site id keeps the order stable
    candidates.sort(key=lambda candidate: (candidate.distance_km, candidate.site_id or ""))
    return candidates
