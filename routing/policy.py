"""
Purpose: Central configuration for the map layer and fiber-point search.
What it does:

Stores all tunable map defaults and search thresholds:

DEFAULT_CENTER = (27.7172, 85.3240)   # Kathmandu
DEFAULT_ZOOM = 10
EARTH_RADIUS_KM = 6371.0088

Rule: No logic here - just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

LatLon = Tuple[float, float]

# Mean Earth radius, same value turf.js uses for 'kilometers'
EARTH_RADIUS_KM = 6371.0088


@dataclass(frozen=True)
class MapPolicy:
    """
    Central configuration for the site map and nearest-fiber search.
    """

    # --- Map view ---
    # Where the map opens when no site is selected.
    default_center: LatLon = (27.7172, 85.3240)
    default_zoom: int = 10
    # Zoom used when a single site is focused (e.g. the add-point picker).
    focus_zoom: int = 13

    # --- Nearest fiber search ---
    # Sites farther than this from every route are reported without a connector.
    # None means no cap.
    max_connection_distance_km: Optional[float] = None

    # Hard cap on route vertices scanned per route, guards against huge KML uploads.
    max_route_points: int = 50_000

    # --- Route markers ---
    # Vertex markers are only emitted for the first N points of a route.
    max_route_markers: int = 500

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        lat, lon = self.default_center
        if not (-90 <= lat <= 90 and -180 <= lon <= 180):
            raise ValueError("default_center must be a valid (lat, lon) pair")

        if self.default_zoom < 0 or self.focus_zoom < 0:
            raise ValueError("zoom levels must be >= 0")

        if self.max_connection_distance_km is not None and self.max_connection_distance_km <= 0:
            raise ValueError("max_connection_distance_km must be > 0 when set")

        if self.max_route_points <= 0:
            raise ValueError("max_route_points must be > 0")

        if self.max_route_markers < 0:
            raise ValueError("max_route_markers must be >= 0")


def default_map_policy() -> MapPolicy:
    """
    Convenience factory for the default policy.
    """
    p = MapPolicy()
    p.validate()
    return p
