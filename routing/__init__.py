#Marks routing as a package.
#Re-exports the public geometry API (parse_route_data, haversine_km,
#nearest_fiber_point, ...) so the Django apps import from routing without
#knowing internal file names.
#No business logic.

from .geojson import parse_route_data, route_coordinates, route_lines, route_markers, to_leaflet
from .geometry import NearestPoint, haversine_km, midpoint, nearest_point_on_line, path_length_km, planar_distance_m, validate_lat_lon
from .kml import RouteParseError, parse_kml, parse_kmz
from .nearest import FiberConnectionCandidate, RouteGeometry, connect_sites_to_routes, nearest_fiber_point
from .policy import MapPolicy, default_map_policy

__all__ = [
           "parse_route_data",
           "parse_kml",
           "parse_kmz",
           "RouteParseError",
           "route_lines",
           "route_coordinates",
           "route_markers",
           "to_leaflet",
           "haversine_km",
           "path_length_km",
           "planar_distance_m",
           "midpoint",
           "validate_lat_lon",
           "nearest_point_on_line",
           "NearestPoint",
           "RouteGeometry",
           "FiberConnectionCandidate",
           "nearest_fiber_point",
           "connect_sites_to_routes",
           "MapPolicy",
           "default_map_policy",
           ]
