from decimal import Decimal

import pytest

from routing import haversine_km
from sites.models import FiberRoute, Site, SitePoint

pytestmark = pytest.mark.django_db


@pytest.fixture
def second_site(user):
    return Site.objects.create(
        name="KTM-002",
        location="Patan",
        latitude=Decimal("27.670000"),
        longitude=Decimal("85.320000"),
        created_by=user,
    )


@pytest.fixture
def unlocated_site(user):
    return Site.objects.create(name="KTM-003", location="Not surveyed", created_by=user)


def test_map_defaults_to_kathmandu(site, unlocated_site, user_api):
    response = user_api.get("/api/v1/map/")

    assert response.status_code == 200
    assert response.data["center"] == {"latitude": 27.7172, "longitude": 85.3240}
    assert response.data["zoom"] == 10
    assert [row["name"] for row in response.data["sites"]] == ["KTM-001"]
    assert response.data["points"] == []


def test_map_skips_unparseable_routes(site, fiber_route, user_api, propagate_logs, caplog):
    FiberRoute.objects.create(site=site, route_data="<kml><broken", description="Corrupt")

    response = user_api.get("/api/v1/map/")

    assert [route["id"] for route in response.data["routes"]] == [str(fiber_route.id)]
    assert response.data["routes"][0]["points"][0] == {"index": 0, "latitude": 27.7, "longitude": 85.3}
    assert "Skipping fiber route" in caplog.text


def test_map_focuses_selected_site_and_builds_path(site, second_site, user_api):
    SitePoint.objects.create(site=site, latitude=Decimal("27.720000"), longitude=Decimal("85.330000"), description="Pole")

    response = user_api.get("/api/v1/map/", {"site": str(site.id)})

    assert response.data["center"] == {"latitude": 27.71, "longitude": 85.32}
    assert response.data["zoom"] == 13
    assert [point["description"] for point in response.data["points"]] == ["Pole"]

    # sites in name order, then the selected site's points
    expected = [(27.71, 85.32), (27.67, 85.32), (27.72, 85.33)]
    assert response.data["path"]["coordinates"] == [list(point) for point in expected]
    expected_km = haversine_km(expected[0], expected[1]) + haversine_km(expected[1], expected[2])
    assert response.data["path"]["length_km"] == pytest.approx(expected_km, abs=1e-5)


def test_map_with_selected_site_without_coordinates(unlocated_site, user_api):
    response = user_api.get("/api/v1/map/", {"site": str(unlocated_site.id)})

    assert response.data["center"] == {"latitude": 27.7172, "longitude": 85.3240}
    assert response.data["path"] == {"coordinates": [], "length_km": 0}


def test_map_unknown_site(user_api):
    assert user_api.get("/api/v1/map/", {"site": "00000000-0000-0000-0000-000000000000"}).status_code == 404
    assert user_api.get("/api/v1/map/", {"site": "garbage"}).status_code == 404


def test_map_default_center_from_settings(settings, user_api, db):
    settings.MAP_DEFAULT_CENTER = (28.2096, 83.9856)

    response = user_api.get("/api/v1/map/")

    assert response.data["center"] == {"latitude": 28.2096, "longitude": 83.9856}


def test_distance_between_two_locations(user_api):
    response = user_api.get("/api/v1/map/distance/", {"from": "27.7172,85.3240", "to": "28.2096, 83.9856"})

    assert response.status_code == 200
    expected = haversine_km((27.7172, 85.3240), (28.2096, 83.9856))
    assert response.data["distance_km"] == pytest.approx(expected, abs=1e-6)
    assert response.data["distance_m"] == pytest.approx(expected * 1000, abs=0.1)
    assert response.data["midpoint"]["latitude"] == pytest.approx(27.9634)


@pytest.mark.parametrize("params", [
    {},
    {"from": "27.7", "to": "28.2,83.9"},
    {"from": "north,east", "to": "28.2,83.9"},
    {"from": "127.7,85.3", "to": "28.2,83.9"},
])
def test_distance_rejects_bad_locations(user_api, params):
    assert user_api.get("/api/v1/map/distance/", params).status_code == 400


def test_connections_feature_collection(site, second_site, unlocated_site, fiber_route, user_api):
    response = user_api.get("/api/v1/map/connections/")

    assert response.status_code == 200
    assert response.data["type"] == "FeatureCollection"

    features = response.data["features"]
    # KTM-001 is ~1.1 km from the route, KTM-002 ~3.3 km
    assert [feature["properties"]["site_id"] for feature in features] == [str(site.id), str(second_site.id)]
    assert features[0]["properties"]["route_id"] == str(fiber_route.id)
    assert features[0]["geometry"]["coordinates"][0] == [85.32, 27.71]

    capped = user_api.get("/api/v1/map/connections/", {"max_distance_km": "2"})
    assert [feature["properties"]["site_id"] for feature in capped.data["features"]] == [str(site.id)]


@pytest.mark.parametrize("value", ["far", "0", "-1"])
def test_connections_rejects_bad_max_distance(user_api, value):
    assert user_api.get("/api/v1/map/connections/", {"max_distance_km": value}).status_code == 400


def test_connections_without_routes(site, user_api):
    assert user_api.get("/api/v1/map/connections/").data["features"] == []
