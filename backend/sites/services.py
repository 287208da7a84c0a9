import logging

from django.conf import settings

from routing import MapPolicy, RouteParseError

from .models import FiberRoute

logger = logging.getLogger(__name__)


def map_policy():
    """
    MapPolicy with overrides from settings (MAP_DEFAULT_CENTER, MAP_DEFAULT_ZOOM,
    MAP_MAX_CONNECTION_DISTANCE_KM).
    """
    overrides = {}
    center = getattr(settings, 'MAP_DEFAULT_CENTER', None)
    if center is not None:
        overrides['default_center'] = tuple(center)
    zoom = getattr(settings, 'MAP_DEFAULT_ZOOM', None)
    if zoom is not None:
        overrides['default_zoom'] = zoom
    max_distance = getattr(settings, 'MAP_MAX_CONNECTION_DISTANCE_KM', None)
    if max_distance is not None:
        overrides['max_connection_distance_km'] = max_distance

    policy = MapPolicy(**overrides)
    policy.validate()
    return policy


def parsed_routes(queryset=None):
    """
    Yield (route, feature_collection) for every route whose data parses.
    Routes with unusable data are skipped with a warning.
    """
    if queryset is None:
        queryset = FiberRoute.objects.select_related('site')

    for route in queryset:
        try:
            feature_collection = route.to_geojson()
        except RouteParseError as exc:
            logger.warning("Skipping fiber route %s: %s", route.id, exc)
            continue
        yield route, feature_collection


def load_route_geometries(queryset=None):
    return [route.to_geometry(feature_collection) for route, feature_collection in parsed_routes(queryset)]
