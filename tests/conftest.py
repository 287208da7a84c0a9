import io
import logging
import zipfile
from decimal import Decimal

import pytest
from rest_framework.test import APIClient


ROUTE_KML = """<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2">
  <Document>
    <Placemark>
      <name>Backbone A</name>
      <description>48 core</description>
      <LineString>
        <coordinates>
          85.300000,27.700000,0 85.320000,27.700000,0 85.340000,27.700000,0
        </coordinates>
      </LineString>
    </Placemark>
  </Document>
</kml>
"""


def _zip_kml(kml_text, name="doc.kml"):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(name, kml_text)
    return buffer.getvalue()


@pytest.fixture
def make_kmz():
    return _zip_kml


@pytest.fixture
def route_kml():
    return ROUTE_KML


@pytest.fixture(autouse=True)
def media_root(settings, tmp_path):
    settings.MEDIA_ROOT = str(tmp_path / "media")
    return settings.MEDIA_ROOT


@pytest.fixture(autouse=True)
def no_fcm(settings, monkeypatch):
    # push is off unless a test installs a fake client
    from notifications import services

    settings.FCM_PROJECT_ID = None
    settings.FCM_CREDENTIALS_FILE = None
    monkeypatch.setattr(services, "_push_client", None)
    monkeypatch.setattr(services, "_push_disabled_logged", False)


@pytest.fixture
def propagate_logs(monkeypatch):
    """Let caplog see the app loggers (LOGGING turns propagation off)."""
    for name in ("notifications", "sites", "push", "routing"):
        monkeypatch.setattr(logging.getLogger(name), "propagate", True)


class RecordingPushClient:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def send_many(self, tokens, title, body, data=None):
        from push import SendReport

        self.calls.append({"tokens": list(tokens), "title": title, "body": body, "data": data})
        if self.fail:
            raise RuntimeError("FCM is down")
        return SendReport(sent=[f"projects/demo/messages/{i}" for i, _ in enumerate(tokens)])


@pytest.fixture
def push_client(monkeypatch):
    from notifications import services

    client = RecordingPushClient()
    monkeypatch.setattr(services, "get_push_client", lambda: client)
    return client


def _make_user(email, role, **extra):
    from users.models import User

    return User.objects.create_user(
        username=email,
        email=email,
        password="Fiber-Route-2024!",
        role=role,
        **extra,
    )


@pytest.fixture
def admin(db):
    from users.models import User

    return _make_user("admin@example.com", User.Roles.ADMIN)


@pytest.fixture
def second_admin(db):
    from users.models import User

    return _make_user("ops-admin@example.com", User.Roles.ADMIN, fcm_token="admin-device-token")


@pytest.fixture
def user(db):
    from users.models import User

    return _make_user("tech@example.com", User.Roles.USER)


@pytest.fixture
def other_user(db):
    from users.models import User

    return _make_user("surveyor@example.com", User.Roles.USER)


def _client_for(account):
    client = APIClient()
    client.force_authenticate(user=account)
    return client


@pytest.fixture
def admin_api(admin):
    return _client_for(admin)


@pytest.fixture
def user_api(user):
    return _client_for(user)


@pytest.fixture
def other_api(other_user):
    return _client_for(other_user)


@pytest.fixture
def site(user):
    from sites.models import Site

    return Site.objects.create(
        name="KTM-001",
        location="Ward 10, Kathmandu",
        latitude=Decimal("27.710000"),
        longitude=Decimal("85.320000"),
        created_by=user,
        updated_by=user,
    )


@pytest.fixture
def fiber_route(site, user, route_kml):
    from sites.models import FiberRoute

    return FiberRoute.objects.create(site=site, route_data=route_kml, description="Backbone A", created_by=user)
