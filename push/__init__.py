#Push notification delivery (Firebase Cloud Messaging).
#Re-exports the client so callers do `from push import FCMClient`.

from .fcm_client import FCMClient, FCMError, SendReport, build_message

__all__ = [
           "FCMClient",
           "FCMError",
           "SendReport",
           "build_message",
           ]
