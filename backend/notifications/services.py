"""
Who gets told about what.

Every notification is stored in-app first; push (FCM) is best effort on top.
A push failure is logged and never reaches the caller.
"""

import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Q

from push import FCMClient

from .models import Notification

logger = logging.getLogger(__name__)

_push_client = None
_push_disabled_logged = False


def get_push_client():
    """
    Shared FCMClient, or None when FCM is not configured.
    The "push disabled" warning is logged once per process.
    """
    global _push_client, _push_disabled_logged

    if _push_client is not None:
        return _push_client

    project_id = getattr(settings, 'FCM_PROJECT_ID', None)
    credentials_file = getattr(settings, 'FCM_CREDENTIALS_FILE', None)
    if not project_id or not credentials_file:
        if not _push_disabled_logged:
            logger.warning("FCM is not configured (FCM_PROJECT_ID / FCM_CREDENTIALS_FILE); push notifications are disabled")
            _push_disabled_logged = True
        return None

    _push_client = FCMClient(
        project_id=project_id,
        credentials_file=credentials_file,
        timeout=getattr(settings, 'FCM_TIMEOUT', 5),
    )
    return _push_client


def send_push(users, title, body, data=None):
    """
    Push title/body to every user in `users` that registered a device token.
    Returns the SendReport, or None when nothing was sent.
    """
    tokens = [user.fcm_token for user in users if user.fcm_token]
    if not tokens:
        return None

    client = get_push_client()
    if client is None:
        return None

    try:
        report = client.send_many(tokens, title, body, data)
    except Exception as exc:
        logger.error("Push fan-out failed: %s", exc)
        return None

    if report.failed:
        logger.warning("Push delivered to %d of %d devices", report.success_count, len(tokens))
    return report


def admin_users():
    User = get_user_model()
    return User.objects.filter(is_active=True).filter(Q(role=User.Roles.ADMIN) | Q(is_superuser=True))


def change_message(actor, verb, site_name, changes=None):
    """'<email> <created|updated|deleted> site: <name>[. Changes: ...]'"""
    who = actor.email if actor is not None else "Someone"
    message = f"{who} {verb} site: {site_name}"
    if changes:
        message = f"{message}. Changes: {changes}"
    return message


def notify(recipients, title, message, notification_type=Notification.Type.INFO,
           actor=None, site=None, site_name="", push=True):
    """
    Store one notification per recipient and push it to their devices.
    """
    recipients = list(recipients)
    if not recipients:
        return []

    if site is not None and not site_name:
        site_name = site.name

    notifications = Notification.objects.bulk_create([
        Notification(
            recipient=recipient,
            actor=actor,
            title=title,
            message=message,
            notification_type=notification_type,
            site=site,
            site_name=site_name,
        )
        for recipient in recipients
    ])
    logger.info("Notified %d users: %s", len(notifications), title)

    if push:
        data = {"type": notification_type}
        if site is not None:
            data["site_id"] = site.pk
        send_push(recipients, title, message, data)
    return notifications


def notify_admins(title, message, notification_type=Notification.Type.INFO,
                  actor=None, site=None, site_name="", push=True):
    """
    Notify every active admin except the one who acted.
    """
    recipients = admin_users()
    if actor is not None:
        recipients = recipients.exclude(pk=actor.pk)
    return notify(recipients, title, message, notification_type,
                  actor=actor, site=site, site_name=site_name, push=push)


def notify_user(user, title, message, notification_type=Notification.Type.INFO,
                actor=None, site=None, site_name="", push=True):
    return notify([user], title, message, notification_type,
                  actor=actor, site=site, site_name=site_name, push=push)
