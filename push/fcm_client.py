#Purpose: The Firebase Cloud Messaging "adapter/client".
#Sole responsibility: talk to FCM via HTTP and return normalized outputs.
#Encapsulates FCM-specific details:
#service-account OAuth token (google-auth), refreshed when expired
#URL construction (/v1/projects/<id>/messages:send)
#message body shape (notification + string-only data)
#error handling (non-2xx -> FCMError)
#It should not decide who gets notified.


from dotenv import load_dotenv
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.service_account import Credentials

# Read FCM settings from environment
# Example in .env:
# FCM_PROJECT_ID=telecom-sites
# FCM_CREDENTIALS_FILE=/etc/telesite/firebase-service-account.json
load_dotenv()

logger = logging.getLogger(__name__)

FCM_SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]
FCM_BASE_URL = "https://fcm.googleapis.com/v1"

DEFAULT_DATA = {
    "click_action": "FLUTTER_NOTIFICATION_CLICK",
    "sound": "default",
}


class FCMError(Exception):
    """Custom exception for FCM client errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, fcm_status: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.fcm_status = fcm_status


@dataclass
class SendReport:
    """
    Result of a fan-out: message names that went out, and (token, error) pairs that did not.
    """
    sent: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.sent)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


def build_message(token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    FCM HTTP v1 request body for a single device token.
    FCM only accepts string values in `data`.
    """
    payload_data = dict(DEFAULT_DATA)
    for key, value in (data or {}).items():
        if value is None:
            continue
        payload_data[str(key)] = str(value)

    return {
        "message": {
            "token": token,
            "notification": {
                "title": title,
                "body": body,
            },
            "data": payload_data,
        }
    }


class FCMClient:
    """
    FCM Adapter / Client

    Sole responsibility:
    - Talk to FCM via HTTP
    - Keep a valid OAuth access token
    - Send one message per device token (no multicast)

    """
    def __init__(self,
                 project_id: Optional[str] = None,
                 credentials_file: Optional[str] = None,
                 timeout: int = 5,
                 session: Optional[requests.Session] = None,
                 credentials: Optional[Credentials] = None):
        self.project_id = project_id or os.getenv("FCM_PROJECT_ID")
        self.credentials_file = credentials_file or os.getenv("FCM_CREDENTIALS_FILE")
        self.timeout = timeout #the time to wait for FCM before giving up
        self.session = session or requests.Session()
        self._credentials = credentials

        if not self.project_id:
            raise ValueError("FCM project id not set. Please set FCM_PROJECT_ID in the .env file.")
        if self._credentials is None and not self.credentials_file:
            raise ValueError("FCM credentials not set. Please set FCM_CREDENTIALS_FILE in the .env file.")

    #----------------
    # Internal helpers for auth and URL construction
    #----------------
    @property
    def send_url(self) -> str:
        return f"{FCM_BASE_URL}/projects/{self.project_id}/messages:send"

    def _load_credentials(self) -> Credentials:
        if self._credentials is None:
            try:
                self._credentials = Credentials.from_service_account_file(
                    self.credentials_file, scopes=FCM_SCOPES
                )
            except (OSError, ValueError) as exc:
                raise FCMError(f"Cannot load FCM service account {self.credentials_file}: {exc}") from exc
        return self._credentials

    def _access_token(self) -> str:
        self._load_credentials()
        if not self._credentials.valid:
            self._credentials.refresh(Request())
        return self._credentials.token

    #----------------
    # Public methods
    #----------------
    def send(self, token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> str:
        """
        Send one notification to one device.

        Returns:
            FCM message name, e.g. "projects/<id>/messages/0:1500415314455276%31bd1c9631bd1c96"
        """
        if not token:
            raise ValueError("A device token is required.")

        response = self.session.post(
            self.send_url,
            json=build_message(token, title, body, data),
            headers={
                "Authorization": f"Bearer {self._access_token()}",
                "Content-Type": "application/json; UTF-8",
            },
            timeout=self.timeout,
        )

        if not 200 <= response.status_code < 300:
            fcm_status = None
            try:
                fcm_status = response.json().get("error", {}).get("status")
            except ValueError:
                pass
            raise FCMError(
                f"FCM send failed: {response.status_code} {fcm_status or response.reason}",
                status_code=response.status_code,
                fcm_status=fcm_status,
            )

        return response.json().get("name", "")

    def send_many(self,
                  tokens: Iterable[str],
                  title: str,
                  body: str,
                  data: Optional[Dict[str, Any]] = None) -> SendReport:
        """
        Send the same notification to many devices, one request each.
        A failing token is recorded and does not stop the others.
        """
        report = SendReport()
        tokens = [token for token in tokens if token]
        try:
            self._load_credentials()
        except FCMError as exc:
            #no service account, nothing can go out
            logger.error("%s", exc)
            report.failed.extend((token, str(exc)) for token in tokens)
            return report

        for token in tokens:
            try:
                report.sent.append(self.send(token, title, body, data))
            except (FCMError, GoogleAuthError, requests.RequestException) as exc:
                logger.warning("Push to token %s... failed: %s", token[:12], exc)
                report.failed.append((token, str(exc)))
        return report
