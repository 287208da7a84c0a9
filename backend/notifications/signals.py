"""
Change feed: saving or deleting site records notifies the admins.
The acting user is instance._actor when a view set it, else the audit fields.
"""

import logging

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from sites.models import ChangeRequest, FiberRoute, NetworkDevice, Site, Task

from .models import Notification
from .services import change_message, notify, notify_admins, notify_user

logger = logging.getLogger(__name__)


def _actor(instance):
    return getattr(instance, '_actor', None) or instance.updated_by or instance.created_by


def _site_name(site_id):
    return Site.objects.filter(pk=site_id).values_list('name', flat=True).first() or ""


def _cascaded_from_site(origin):
    # rows removed together with their site are covered by the site's own notification
    return isinstance(origin, Site)


@receiver(post_save, sender=Site)
def site_saved(sender, instance, created, **kwargs):
    actor = _actor(instance)
    verb = "created" if created else "updated"
    notify_admins(
        title=f"Site {verb}",
        message=change_message(actor, verb, instance.name),
        notification_type=Notification.Type.SITE_CREATE if created else Notification.Type.SITE_UPDATE,
        actor=actor,
        site=instance,
    )


@receiver(post_delete, sender=Site)
def site_deleted(sender, instance, **kwargs):
    actor = _actor(instance)
    # the row is going away, keep only the name
    notify_admins(
        title="Site deleted",
        message=change_message(actor, "deleted", instance.name),
        notification_type=Notification.Type.SITE_DELETE,
        actor=actor,
        site_name=instance.name,
    )


@receiver(post_save, sender=NetworkDevice)
def device_saved(sender, instance, created, **kwargs):
    actor = _actor(instance)
    notify_admins(
        title="Network device changed",
        message=change_message(actor, "updated", instance.site.name,
                               f"device {instance.name} {'added' if created else 'updated'}"),
        notification_type=Notification.Type.DEVICE_CHANGE,
        actor=actor,
        site=instance.site,
    )


@receiver(post_delete, sender=NetworkDevice)
def device_deleted(sender, instance, origin=None, **kwargs):
    if _cascaded_from_site(origin):
        return
    actor = _actor(instance)
    site_name = _site_name(instance.site_id)
    notify_admins(
        title="Network device changed",
        message=change_message(actor, "updated", site_name, f"device {instance.name} removed"),
        notification_type=Notification.Type.DEVICE_CHANGE,
        actor=actor,
        site_name=site_name,
    )


@receiver(post_save, sender=FiberRoute)
def route_saved(sender, instance, created, **kwargs):
    actor = _actor(instance)
    notify_admins(
        title="Fiber route changed",
        message=change_message(actor, "updated", instance.site.name,
                               f"fiber route {'added' if created else 'updated'}"),
        notification_type=Notification.Type.ROUTE_CHANGE,
        actor=actor,
        site=instance.site,
    )


@receiver(post_delete, sender=FiberRoute)
def route_deleted(sender, instance, origin=None, **kwargs):
    if _cascaded_from_site(origin):
        return
    actor = _actor(instance)
    site_name = _site_name(instance.site_id)
    notify_admins(
        title="Fiber route changed",
        message=change_message(actor, "updated", site_name, "fiber route removed"),
        notification_type=Notification.Type.ROUTE_CHANGE,
        actor=actor,
        site_name=site_name,
    )


@receiver(post_save, sender=ChangeRequest)
def change_request_saved(sender, instance, created, **kwargs):
    if created:
        author = instance.created_by
        who = author.email if author is not None else "Someone"
        message = f"{who} requested changes to {instance.get_table_name_display().lower()}: {', '.join(sorted(instance.changes))}"
        if instance.notify_all:
            recipients = type(author).objects.filter(is_active=True).exclude(pk=author.pk) if author else []
            notify(recipients, "Change request", message, Notification.Type.CHANGE_REQUEST, actor=author)
        else:
            notify_admins("Change request", message, Notification.Type.CHANGE_REQUEST, actor=author)
        return

    # reviewed: tell the author
    if instance.status != ChangeRequest.Status.PENDING and instance.created_by is not None:
        notify_user(
            instance.created_by,
            title=f"Change request {instance.status}",
            message=f"Your change request for {instance.get_table_name_display().lower()} was {instance.status}.",
            notification_type=Notification.Type.CHANGE_REQUEST,
            actor=instance.reviewed_by,
        )


@receiver(post_save, sender=Task)
def task_saved(sender, instance, created, **kwargs):
    actor = _actor(instance)
    if created:
        notify_user(
            instance.assigned_to,
            title="New task",
            message=instance.description,
            notification_type=Notification.Type.TASK,
            actor=actor,
            site=instance.site,
        )
    elif instance.completed and actor is not None and actor.pk == instance.assigned_to_id:
        notify_admins(
            title="Task completed",
            message=f"{actor.email} completed task: {instance.description}",
            notification_type=Notification.Type.TASK,
            actor=actor,
            site=instance.site,
        )
