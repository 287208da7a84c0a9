from django.conf import settings
from django.db import models


class Notification(models.Model):
    """
    One in-app notification for one recipient.
    site_name is a snapshot so the text survives the site being deleted.
    """
    class Type(models.TextChoices):
        SITE_CREATE = "SITE_CREATE", "Site created"
        SITE_UPDATE = "SITE_UPDATE", "Site updated"
        SITE_DELETE = "SITE_DELETE", "Site deleted"
        DEVICE_CHANGE = "DEVICE_CHANGE", "Device changed"
        ROUTE_CHANGE = "ROUTE_CHANGE", "Fiber route changed"
        CHANGE_REQUEST = "CHANGE_REQUEST", "Change request"
        TASK = "TASK", "Task"
        INFO = "INFO", "Info"

    recipient = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='notifications')
    actor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    title = models.CharField(max_length=255)
    message = models.TextField()
    notification_type = models.CharField(max_length=20, choices=Type.choices, default=Type.INFO)
    site = models.ForeignKey('sites.Site', on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    site_name = models.CharField(max_length=255, blank=True)
    read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['recipient', 'read'], name='notif_recipient_read_idx'),
        ]

    def __str__(self):
        return f"{self.title} -> {self.recipient}"
