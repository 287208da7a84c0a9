import logging

from django.utils.dateparse import parse_datetime
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from users.permissions import IsAdminRole

from .models import Notification
from .serializers import BroadcastSerializer, NotificationSerializer
from . import services

logger = logging.getLogger(__name__)

MAX_LIMIT = 500


class NotificationViewSet(mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          mixins.UpdateModelMixin,
                          mixins.DestroyModelMixin,
                          viewsets.GenericViewSet):
    """
    The signed-in user's notifications, newest first.
    - ?unread=true only unread
    - ?since=<ISO timestamp> only newer ones (poll this for the live feed)
    - ?limit=N at most N
    """
    serializer_class = NotificationSerializer
    permission_classes = [permissions.IsAuthenticated]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']

    def get_queryset(self):
        queryset = Notification.objects.filter(recipient=self.request.user).select_related('actor')

        if self.request.query_params.get('unread') == 'true':
            queryset = queryset.filter(read=False)

        since = self.request.query_params.get('since')
        if since:
            # '+' in a query string arrives as a space
            since_at = parse_datetime(since.replace(' ', '+'))
            if since_at is None:
                raise ValidationError({"since": "Use an ISO 8601 timestamp."})
            queryset = queryset.filter(created_at__gt=since_at)
        return queryset

    def get_permissions(self):
        if self.action == 'broadcast':
            return [IsAdminRole()]
        return super().get_permissions()

    def list(self, request, *args, **kwargs):
        queryset = self.filter_queryset(self.get_queryset())

        limit = request.query_params.get('limit')
        if limit is not None:
            try:
                limit = int(limit)
            except ValueError:
                raise ValidationError({"limit": "Must be an integer."})
            if not 1 <= limit <= MAX_LIMIT:
                raise ValidationError({"limit": f"Must be between 1 and {MAX_LIMIT}."})
            queryset = queryset[:limit]

        serializer = self.get_serializer(queryset, many=True)
        return Response(serializer.data)

    @action(detail=True, methods=['post'])
    def read(self, request, pk=None):
        notification = self.get_object()
        if not notification.read:
            notification.read = True
            notification.save(update_fields=['read'])
        return Response(self.get_serializer(notification).data)

    @action(detail=False, methods=['post'], url_path='read-all')
    def read_all(self, request):
        updated = Notification.objects.filter(recipient=request.user, read=False).update(read=True)
        return Response({"updated": updated})

    @action(detail=False, methods=['get'], url_path='unread-count')
    def unread_count(self, request):
        count = Notification.objects.filter(recipient=request.user, read=False).count()
        return Response({"unread": count})

    @action(detail=False, methods=['post'])
    def broadcast(self, request):
        """
        Admin announcement to every other admin (in-app + push).
        """
        serializer = BroadcastSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        notifications = services.notify_admins(
            serializer.validated_data['title'],
            serializer.validated_data['message'],
            Notification.Type.INFO,
            actor=request.user,
        )
        return Response({"sent": len(notifications)}, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'], url_path='notify-admins')
    def notify_admins(self, request):
        """
        Any user can raise something with the admins.
        """
        serializer = BroadcastSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        notifications = services.notify_admins(
            serializer.validated_data['title'],
            f"{request.user.email}: {serializer.validated_data['message']}",
            Notification.Type.INFO,
            actor=request.user,
        )
        logger.info("%s notified %d admins", request.user.email, len(notifications))
        return Response({"sent": len(notifications)}, status=status.HTTP_201_CREATED)
