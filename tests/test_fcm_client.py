import pytest
import requests

from push import FCMClient, FCMError, SendReport, build_message


class FakeCredentials:
    def __init__(self, valid=False):
        self.valid = valid
        self.token = "stale-token" if valid else None
        self.refreshes = 0

    def refresh(self, request):
        self.refreshes += 1
        self.valid = True
        self.token = f"access-token-{self.refreshes}"


class FakeResponse:
    def __init__(self, status_code=200, payload=None, reason="OK"):
        self.status_code = status_code
        self._payload = payload
        self.reason = reason

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeSession:
    """Returns queued responses (or raises queued exceptions) and records each POST."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.posts = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_client(responses, credentials=None):
    session = FakeSession(responses)
    client = FCMClient(
        project_id="telesite-demo",
        credentials=credentials or FakeCredentials(),
        session=session,
        timeout=3,
    )
    return client, session


def test_build_message_stringifies_data_and_keeps_defaults():
    message = build_message("device-1", "Site updated", "KTM-001 changed", {"site_id": 42, "skip": None})

    assert message == {
        "message": {
            "token": "device-1",
            "notification": {"title": "Site updated", "body": "KTM-001 changed"},
            "data": {
                "click_action": "FLUTTER_NOTIFICATION_CLICK",
                "sound": "default",
                "site_id": "42",
            },
        }
    }


def test_send_posts_to_v1_endpoint_with_fresh_token():
    credentials = FakeCredentials(valid=False)
    client, session = make_client(
        [FakeResponse(payload={"name": "projects/telesite-demo/messages/1"})],
        credentials=credentials,
    )

    name = client.send("device-1", "Hello", "World")

    assert name == "projects/telesite-demo/messages/1"
    assert credentials.refreshes == 1

    post = session.posts[0]
    assert post["url"] == "https://fcm.googleapis.com/v1/projects/telesite-demo/messages:send"
    assert post["headers"]["Authorization"] == "Bearer access-token-1"
    assert post["json"]["message"]["token"] == "device-1"
    assert post["timeout"] == 3


def test_valid_credentials_are_not_refreshed():
    credentials = FakeCredentials(valid=True)
    client, session = make_client([FakeResponse(payload={"name": "m"})], credentials=credentials)

    client.send("device-1", "Hello", "World")

    assert credentials.refreshes == 0
    assert session.posts[0]["headers"]["Authorization"] == "Bearer stale-token"


def test_send_raises_fcm_error_with_status():
    client, _ = make_client([
        FakeResponse(status_code=404, payload={"error": {"status": "NOT_FOUND"}}, reason="Not Found"),
    ])

    with pytest.raises(FCMError) as excinfo:
        client.send("gone-device", "Hello", "World")

    assert excinfo.value.status_code == 404
    assert excinfo.value.fcm_status == "NOT_FOUND"


def test_send_error_without_json_body():
    client, _ = make_client([FakeResponse(status_code=503, payload=None, reason="Service Unavailable")])

    with pytest.raises(FCMError, match="Service Unavailable") as excinfo:
        client.send("device-1", "Hello", "World")

    assert excinfo.value.fcm_status is None


def test_send_requires_a_token():
    client, session = make_client([])

    with pytest.raises(ValueError):
        client.send("", "Hello", "World")
    assert session.posts == []


def test_send_many_collects_failures_and_skips_blank_tokens():
    client, session = make_client([
        FakeResponse(payload={"name": "projects/telesite-demo/messages/1"}),
        FakeResponse(status_code=400, payload={"error": {"status": "INVALID_ARGUMENT"}}),
        requests.ConnectionError("network unreachable"),
    ])

    report = client.send_many(["device-1", "", "device-2", "device-3"], "Hello", "World")

    assert isinstance(report, SendReport)
    assert report.sent == ["projects/telesite-demo/messages/1"]
    assert report.success_count == 1
    assert report.failure_count == 2
    assert [token for token, _ in report.failed] == ["device-2", "device-3"]
    assert len(session.posts) == 3


def test_client_requires_configuration(monkeypatch):
    monkeypatch.delenv("FCM_PROJECT_ID", raising=False)
    monkeypatch.delenv("FCM_CREDENTIALS_FILE", raising=False)

    with pytest.raises(ValueError, match="FCM_PROJECT_ID"):
        FCMClient()
    with pytest.raises(ValueError, match="FCM_CREDENTIALS_FILE"):
        FCMClient(project_id="telesite-demo")


def test_client_reads_environment(monkeypatch):
    monkeypatch.setenv("FCM_PROJECT_ID", "from-env")
    monkeypatch.setenv("FCM_CREDENTIALS_FILE", "/tmp/service-account.json")

    client = FCMClient()

    assert client.send_url.endswith("/projects/from-env/messages:send")
    assert client.credentials_file == "/tmp/service-account.json"


def test_send_many_reports_an_unreadable_service_account(tmp_path):
    broken = tmp_path / "service-account.json"
    broken.write_text("{not json")
    session = FakeSession([])

    for credentials_file in (broken, tmp_path / "missing.json"):
        client = FCMClient(project_id="telesite-demo", credentials_file=str(credentials_file), session=session)

        report = client.send_many(["device-1", "", "device-2"], "Hello", "World")

        assert report.sent == []
        assert [token for token, _ in report.failed] == ["device-1", "device-2"]
        assert "Cannot load FCM service account" in report.failed[0][1]

    assert session.posts == []

    with pytest.raises(FCMError, match="Cannot load FCM service account"):
        client.send("device-1", "Hello", "World")
