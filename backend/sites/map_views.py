import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from routing import connect_sites_to_routes, haversine_km, midpoint, path_length_km, route_markers, validate_lat_lon

from .models import Site, SitePoint
from .services import load_route_geometries, map_policy, parsed_routes

logger = logging.getLogger(__name__)


def _parse_location(raw):
    """'lat,lng' -> (lat, lng). Raises ValueError for anything else."""
    if not raw:
        raise ValueError("Missing coordinates")
    parts = raw.split(',')
    if len(parts) != 2:
        raise ValueError("Invalid coordinates")
    return validate_lat_lon(parts[0].strip(), parts[1].strip())


class MapView(APIView):
    """
    Everything the map screen draws in one payload.
    ?site=<id> centres the map on that site and adds its manual points.
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        policy = map_policy()
        sites = [site for site in Site.objects.all() if site.has_coordinates]

        selected = None
        site_id = request.query_params.get('site')
        if site_id:
            try:
                selected = Site.objects.filter(pk=site_id).first()
            except DjangoValidationError:
                selected = None
            if selected is None:
                return Response({"error": "Site not found"}, status=status.HTTP_404_NOT_FOUND)

        points = list(SitePoint.objects.filter(site=selected)) if selected else []

        if selected is not None and selected.has_coordinates:
            center, zoom = selected.coordinates, policy.focus_zoom
        else:
            center, zoom = policy.default_center, policy.default_zoom

        routes = []
        for route, feature_collection in parsed_routes():
            routes.append({
                "id": str(route.id),
                "site": str(route.site_id),
                "description": route.description,
                "geojson": feature_collection,
                "points": route_markers(feature_collection, limit=policy.max_route_markers),
            })

        # sites first, then the selected site's points
        path = [site.coordinates for site in sites] + [point.coordinates for point in points]

        return Response({
            "center": {"latitude": center[0], "longitude": center[1]},
            "zoom": zoom,
            "sites": [
                {
                    "id": str(site.id),
                    "name": site.name,
                    "location": site.location,
                    "latitude": site.coordinates[0],
                    "longitude": site.coordinates[1],
                }
                for site in sites
            ],
            "points": [
                {
                    "id": str(point.id),
                    "latitude": point.coordinates[0],
                    "longitude": point.coordinates[1],
                    "description": point.description,
                }
                for point in points
            ],
            "routes": routes,
            "path": {
                "coordinates": [[lat, lon] for lat, lon in path],
                "length_km": round(path_length_km(path), 6),
            },
        })


class DistanceView(APIView):
    """
    GET /map/distance/?from=lat,lng&to=lat,lng
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        try:
            origin = _parse_location(request.query_params.get('from'))
            destination = _parse_location(request.query_params.get('to'))
        except ValueError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        distance_km = haversine_km(origin, destination)
        label_at = midpoint(origin, destination)
        return Response({
            "from": {"latitude": origin[0], "longitude": origin[1]},
            "to": {"latitude": destination[0], "longitude": destination[1]},
            "distance_km": round(distance_km, 6),
            "distance_m": round(distance_km * 1000, 1),
            "midpoint": {"latitude": label_at[0], "longitude": label_at[1]},
        })


class ConnectionsView(APIView):
    """
    Connector lines from every located site to its nearest fiber point.
    ?max_distance_km= drops sites that are farther than that from any route.
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        max_distance_km = request.query_params.get('max_distance_km')
        if max_distance_km is not None:
            try:
                max_distance_km = float(max_distance_km)
            except ValueError:
                return Response({"error": "max_distance_km must be a number"}, status=status.HTTP_400_BAD_REQUEST)
            if max_distance_km <= 0:
                return Response({"error": "max_distance_km must be > 0"}, status=status.HTTP_400_BAD_REQUEST)

        sites = Site.objects.filter(latitude__isnull=False, longitude__isnull=False)
        candidates = connect_sites_to_routes(
            list(sites),
            load_route_geometries(),
            max_distance_km=max_distance_km,
            snap_to_vertex=request.query_params.get('snap') == 'true',
            policy=map_policy(),
        )
        logger.debug("Connected %d sites to fiber", len(candidates))

        return Response({
            "type": "FeatureCollection",
            "features": [candidate.as_feature() for candidate in candidates],
        })
