from rest_framework import serializers

from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    actor_email = serializers.ReadOnlyField(source='actor.email')

    class Meta:
        model = Notification
        fields = [
            'id', 'title', 'message', 'notification_type', 'site', 'site_name',
            'actor_email', 'read', 'created_at',
        ]
        read_only_fields = [
            'id', 'title', 'message', 'notification_type', 'site', 'site_name', 'created_at',
        ]


class BroadcastSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    message = serializers.CharField()
