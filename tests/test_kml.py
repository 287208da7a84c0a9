import json

import pytest

from routing import RouteParseError, parse_kml, parse_kmz, parse_route_data, route_coordinates, route_lines, route_markers, to_leaflet
from routing.geojson import parse_geojson
from routing.kml import extract_kml_from_kmz, parse_coordinates


NO_NAMESPACE_KML = """
<kml>
  <Placemark>
    <name>Handhole 7</name>
    <Point><coordinates>85.3240,27.7172,1310</coordinates></Point>
  </Placemark>
</kml>
"""


def test_parse_kml_line_string_keeps_lon_lat_order(route_kml):
    feature_collection = parse_kml(route_kml)

    assert feature_collection["type"] == "FeatureCollection"
    assert len(feature_collection["features"]) == 1

    feature = feature_collection["features"][0]
    assert feature["geometry"]["type"] == "LineString"
    assert feature["geometry"]["coordinates"][0] == [85.3, 27.7, 0.0]
    assert feature["properties"] == {"name": "Backbone A", "description": "48 core"}


def test_parse_kml_without_namespace():
    feature = parse_kml(NO_NAMESPACE_KML)["features"][0]

    assert feature["geometry"] == {"type": "Point", "coordinates": [85.324, 27.7172, 1310.0]}
    assert feature["properties"]["name"] == "Handhole 7"


def test_parse_kml_accepts_bytes(route_kml):
    assert parse_kml(route_kml.encode("utf-8"))["features"][0]["geometry"]["type"] == "LineString"


def test_parse_kml_polygon_with_hole_and_extended_data():
    kml = """<kml xmlns="http://www.opengis.net/kml/2.2"><Document><Placemark>
      <name>Compound</name>
      <ExtendedData>
        <Data name="owner"><value>NEA</value></Data>
        <SchemaData schemaUrl="#s"><SimpleData name="cores">24</SimpleData></SchemaData>
      </ExtendedData>
      <Polygon>
        <outerBoundaryIs><LinearRing><coordinates>0,0 0,1 1,1 1,0 0,0</coordinates></LinearRing></outerBoundaryIs>
        <innerBoundaryIs><LinearRing><coordinates>0.2,0.2 0.2,0.4 0.4,0.4 0.2,0.2</coordinates></LinearRing></innerBoundaryIs>
      </Polygon>
    </Placemark></Document></kml>"""

    feature = parse_kml(kml)["features"][0]

    assert feature["geometry"]["type"] == "Polygon"
    assert len(feature["geometry"]["coordinates"]) == 2
    assert feature["properties"]["owner"] == "NEA"
    assert feature["properties"]["cores"] == "24"


def test_multi_geometry_homogeneous_and_mixed():
    kml = """<kml xmlns="http://www.opengis.net/kml/2.2"><Document>
      <Placemark><MultiGeometry>
        <LineString><coordinates>0,0 1,1</coordinates></LineString>
        <LineString><coordinates>2,2 3,3</coordinates></LineString>
      </MultiGeometry></Placemark>
      <Placemark><MultiGeometry>
        <Point><coordinates>0,0</coordinates></Point>
        <LineString><coordinates>2,2 3,3</coordinates></LineString>
      </MultiGeometry></Placemark>
    </Document></kml>"""

    homogeneous, mixed = parse_kml(kml)["features"]

    assert homogeneous["geometry"]["type"] == "MultiLineString"
    assert homogeneous["geometry"]["coordinates"] == [[[0.0, 0.0], [1.0, 1.0]], [[2.0, 2.0], [3.0, 3.0]]]
    assert mixed["geometry"]["type"] == "GeometryCollection"
    assert [g["type"] for g in mixed["geometry"]["geometries"]] == ["Point", "LineString"]


def test_gx_track_becomes_line_string():
    kml = """<kml xmlns="http://www.opengis.net/kml/2.2" xmlns:gx="http://www.google.com/kml/ext/2.2">
      <Placemark><gx:Track>
        <when>2024-01-01T00:00:00Z</when><when>2024-01-01T00:01:00Z</when>
        <gx:coord>85.30 27.70 1300</gx:coord>
        <gx:coord>85.31 27.71 1302</gx:coord>
      </gx:Track></Placemark>
    </kml>"""

    geometry = parse_kml(kml)["features"][0]["geometry"]

    assert geometry == {"type": "LineString", "coordinates": [[85.30, 27.70, 1300.0], [85.31, 27.71, 1302.0]]}


def test_parse_coordinates_skips_malformed_tuples():
    assert parse_coordinates("85.3,27.7 garbage 85.4 85.5,27.8,") == [[85.3, 27.7], [85.5, 27.8]]


@pytest.mark.parametrize("data", ["", "   ", b""])
def test_parse_kml_rejects_empty_input(data):
    with pytest.raises(RouteParseError):
        parse_kml(data)


def test_parse_kml_rejects_broken_xml():
    with pytest.raises(RouteParseError, match="XML parsing error"):
        parse_kml("<kml><Placemark>")


def test_parse_kml_without_features_is_an_error():
    with pytest.raises(RouteParseError, match="no features"):
        parse_kml('<kml xmlns="http://www.opengis.net/kml/2.2"><Document><Placemark><name>x</name></Placemark></Document></kml>')


def test_kmz_prefers_doc_kml(make_kmz, route_kml):
    import io
    import zipfile

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("extra/other.kml", NO_NAMESPACE_KML)
        archive.writestr("doc.kml", route_kml)

    assert parse_kmz(buffer.getvalue())["features"][0]["properties"]["name"] == "Backbone A"
    assert extract_kml_from_kmz(make_kmz(NO_NAMESPACE_KML, name="route.kml")).strip().startswith(b"<kml>")


def test_kmz_errors():
    with pytest.raises(RouteParseError, match="Invalid KMZ"):
        parse_kmz(b"PK not really a zip")

    import io
    import zipfile

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("readme.txt", "nothing here")
    with pytest.raises(RouteParseError, match="no .kml"):
        parse_kmz(buffer.getvalue())


def test_parse_route_data_dispatches_on_content(make_kmz, route_kml):
    line = {"type": "LineString", "coordinates": [[85.3, 27.7], [85.4, 27.8]]}

    from_geojson = parse_route_data(json.dumps(line))
    from_kml = parse_route_data(route_kml)
    from_kmz = parse_route_data(make_kmz(route_kml))

    assert from_geojson["features"][0] == {"type": "Feature", "geometry": line, "properties": {}}
    assert from_kml == from_kmz


@pytest.mark.parametrize("data", [None, "", "  \n "])
def test_parse_route_data_rejects_empty(data):
    with pytest.raises(RouteParseError):
        parse_route_data(data)


def test_parse_geojson_normalises_features_and_rejects_unknown_types():
    feature = {"type": "Feature", "geometry": {"type": "Point", "coordinates": [85.3, 27.7]}}

    normalised = parse_geojson(json.dumps(feature))
    assert normalised["features"][0]["properties"] == {}

    with pytest.raises(RouteParseError, match="unsupported type"):
        parse_geojson('{"type": "Topology"}')
    with pytest.raises(RouteParseError, match="no features"):
        parse_geojson('{"type": "FeatureCollection", "features": []}')
    with pytest.raises(RouteParseError):
        parse_geojson("[1, 2]")


def test_route_coordinates_markers_and_leaflet_order(route_kml):
    feature_collection = parse_kml(route_kml)

    assert route_coordinates(feature_collection) == [(27.7, 85.3), (27.7, 85.32), (27.7, 85.34)]

    markers = route_markers(feature_collection)
    assert markers[0] == {"index": 0, "latitude": 27.7, "longitude": 85.3}
    assert len(route_markers(feature_collection, limit=2)) == 2

    assert to_leaflet([[85.3, 27.7], [85.4, 27.8, 1200]]) == [[27.7, 85.3], [27.8, 85.4]]


def test_polygon_routes_use_the_exterior_ring_only():
    polygon = {
        "type": "Polygon",
        "coordinates": [
            [[0, 0], [0, 1], [1, 1], [0, 0]],
            [[0.2, 0.2], [0.2, 0.4], [0.4, 0.4], [0.2, 0.2]],
        ],
    }

    assert len(route_coordinates(parse_geojson(json.dumps(polygon)))) == 4


POLE_PINS_KML = """<kml xmlns="http://www.opengis.net/kml/2.2"><Document>
  <Placemark><name>Poles</name><MultiGeometry>
    <Point><coordinates>0,0</coordinates></Point>
    <Point><coordinates>1,0</coordinates></Point>
  </MultiGeometry></Placemark>
  <Placemark><MultiGeometry>
    <Point><coordinates>5,5</coordinates></Point>
    <LineString><coordinates>2,2 3,3</coordinates></LineString>
  </MultiGeometry></Placemark>
</Document></kml>"""


def test_point_pins_are_markers_but_not_lines():
    feature_collection = parse_kml(POLE_PINS_KML)
    assert feature_collection["features"][0]["geometry"]["type"] == "MultiPoint"

    # only the real LineString survives as cable
    assert route_lines(feature_collection) == [[(2.0, 2.0), (3.0, 3.0)]]
    assert route_coordinates(feature_collection) == [(2.0, 2.0), (3.0, 3.0)]

    markers = route_markers(feature_collection)
    assert [(m["latitude"], m["longitude"]) for m in markers] == [(0.0, 0.0), (0.0, 1.0)]
