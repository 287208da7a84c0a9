import logging
import uuid

from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist, ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView

from routing import RouteParseError, nearest_fiber_point, route_markers
from users.permissions import IsAdminRole, IsCreatorOrAdmin

from .models import ChangeRequest, FiberConnection, FiberRoute, NetworkDevice, Site, SiteImage, SitePoint, Task
from .serializers import (
    ChangeRequestSerializer,
    FiberConnectionSerializer,
    FiberRouteSerializer,
    NetworkDeviceSerializer,
    SiteDetailSerializer,
    SiteImageSerializer,
    SitePointSerializer,
    SiteSerializer,
    TaskSerializer,
)
from .services import load_route_geometries, map_policy

logger = logging.getLogger(__name__)


class AuditedViewSet(viewsets.ModelViewSet):
    """
    Base for site records:
    - Authenticated: List/Retrieve/Create
    - Creator or admin: Update
    - Admin: Delete
    Records can be narrowed to one site with ?site=<id>.
    """
    permission_classes = [permissions.IsAuthenticated, IsCreatorOrAdmin]
    creator_may_delete = False

    def get_queryset(self):
        queryset = super().get_queryset()
        site_id = self.request.query_params.get('site')
        if site_id:
            try:
                uuid.UUID(site_id)
            except ValueError:
                raise ValidationError({"site": "Invalid site id."})
            queryset = queryset.filter(site_id=site_id)
        return queryset

    def perform_create(self, serializer):
        # Automatically assign the creator
        serializer.save(created_by=self.request.user, updated_by=self.request.user)

    def perform_update(self, serializer):
        serializer.save(updated_by=self.request.user)

    def perform_destroy(self, instance):
        # picked up by the notification signals as the acting user
        instance._actor = self.request.user
        instance.delete()


class SiteViewSet(AuditedViewSet):
    """
    Sites. Retrieve embeds devices, routes, connections, points and images.
    ?search= matches name or location.
    """
    queryset = Site.objects.select_related('created_by', 'updated_by')

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return SiteDetailSerializer
        return SiteSerializer

    def get_queryset(self):
        queryset = Site.objects.select_related('created_by', 'updated_by')
        if self.action == 'retrieve':
            queryset = queryset.prefetch_related(
                'network_devices', 'fiber_routes', 'fiber_connections', 'points', 'images'
            )
        search = self.request.query_params.get('search')
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(location__icontains=search))
        return queryset

    @action(detail=True, methods=['get'], url_path='nearest-fiber')
    def nearest_fiber(self, request, pk=None):
        """
        Closest fiber point (any route) to this site.
        ?snap=true restricts the answer to existing route vertices.
        """
        site = self.get_object()
        if not site.has_coordinates:
            return Response({"error": "Site has no coordinates"}, status=status.HTTP_400_BAD_REQUEST)

        routes = load_route_geometries()
        candidate = nearest_fiber_point(
            site.coordinates,
            routes,
            site_id=str(site.id),
            snap_to_vertex=request.query_params.get('snap') == 'true',
            policy=map_policy(),
        )
        if candidate is None:
            return Response({"error": "No fiber routes with geometry"}, status=status.HTTP_404_NOT_FOUND)

        return Response({
            "site_id": str(site.id),
            "route_id": candidate.route_id,
            "latitude": candidate.latitude,
            "longitude": candidate.longitude,
            "segment_index": candidate.segment_index,
            "distance_km": candidate.distance_km,
            "connector": candidate.as_feature(),
        })


class SitePointViewSet(AuditedViewSet):
    queryset = SitePoint.objects.select_related('site', 'created_by', 'updated_by')
    serializer_class = SitePointSerializer
    creator_may_delete = True


class SiteImageViewSet(AuditedViewSet):
    """
    Site photos. Upload as multipart (image, site, category, description).
    ?category= filters; deleting a row also removes the stored file.
    """
    queryset = SiteImage.objects.select_related('site', 'created_by', 'updated_by')
    serializer_class = SiteImageSerializer
    parser_classes = [MultiPartParser, FormParser, JSONParser]
    creator_may_delete = True

    def get_queryset(self):
        queryset = super().get_queryset()
        category = self.request.query_params.get('category')
        if category and category != 'all':
            queryset = queryset.filter(category=category)
        return queryset


class NetworkDeviceViewSet(AuditedViewSet):
    queryset = NetworkDevice.objects.select_related('site', 'created_by', 'updated_by')
    serializer_class = NetworkDeviceSerializer


class FiberConnectionViewSet(AuditedViewSet):
    queryset = FiberConnection.objects.select_related('site', 'source_device', 'destination_device', 'created_by', 'updated_by')
    serializer_class = FiberConnectionSerializer


class FiberRouteViewSet(AuditedViewSet):
    """
    Fiber routes. Create with pasted route_data or a multipart route_file.
    """
    queryset = FiberRoute.objects.select_related('site', 'created_by', 'updated_by')
    serializer_class = FiberRouteSerializer
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    @action(detail=True, methods=['get'])
    def geojson(self, request, pk=None):
        """
        Parsed route as a FeatureCollection plus its vertex markers.
        """
        route = self.get_object()
        try:
            feature_collection = route.to_geojson()
        except RouteParseError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_422_UNPROCESSABLE_ENTITY)

        return Response({
            "id": str(route.id),
            "site": str(route.site_id),
            "description": route.description,
            "geojson": feature_collection,
            "points": route_markers(feature_collection, limit=map_policy().max_route_markers),
        })


class TaskViewSet(AuditedViewSet):
    """
    Admins manage all tasks. Users see tasks assigned to them and may only
    tick them off.
    """
    serializer_class = TaskSerializer
    queryset = Task.objects.select_related('site', 'assigned_to', 'created_by', 'updated_by')
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        queryset = super().get_queryset()
        if not self.request.user.is_admin_role:
            queryset = queryset.filter(assigned_to=self.request.user)
        return queryset

    def perform_create(self, serializer):
        if not self.request.user.is_admin_role:
            raise PermissionDenied("Only admins can create tasks.")
        super().perform_create(serializer)

    def perform_update(self, serializer):
        if not self.request.user.is_admin_role and set(serializer.validated_data) - {'completed'}:
            raise PermissionDenied("You can only mark your tasks as completed.")
        super().perform_update(serializer)

    def perform_destroy(self, instance):
        if not self.request.user.is_admin_role:
            raise PermissionDenied("Only admins can delete tasks.")
        super().perform_destroy(instance)


class ChangeRequestViewSet(viewsets.ModelViewSet):
    """
    Suggested edits held for review.
    - Any user: create, see their own
    - Admin: see all, approve (applies the changes) or reject
    """
    serializer_class = ChangeRequestSerializer
    permission_classes = [permissions.IsAuthenticated]
    http_method_names = ['get', 'post', 'delete', 'head', 'options']

    def get_queryset(self):
        queryset = ChangeRequest.objects.select_related('created_by', 'reviewed_by')
        if not self.request.user.is_admin_role:
            queryset = queryset.filter(created_by=self.request.user)
        status_filter = self.request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset

    def get_permissions(self):
        if self.action in ('approve', 'reject', 'destroy'):
            return [IsAdminRole()]
        return super().get_permissions()

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)

    def _review(self, change_request, new_status):
        change_request.status = new_status
        change_request.reviewed_by = self.request.user
        change_request.reviewed_at = timezone.now()
        change_request.save(update_fields=['status', 'reviewed_by', 'reviewed_at', 'updated_at'])

    def _lock(self):
        # row lock so two reviewers cannot both act on the same request
        return ChangeRequest.objects.select_for_update().get(pk=self.get_object().pk)

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        with transaction.atomic():
            change_request = self._lock()
            if change_request.status != ChangeRequest.Status.PENDING:
                return Response({"error": "Change request already reviewed"}, status=status.HTTP_400_BAD_REQUEST)

            try:
                change_request.apply(request.user)
            except ObjectDoesNotExist as exc:
                return Response({"error": str(exc)}, status=status.HTTP_404_NOT_FOUND)
            except DjangoValidationError as exc:
                return Response({"error": exc.messages}, status=status.HTTP_400_BAD_REQUEST)

            self._review(change_request, ChangeRequest.Status.APPROVED)

        logger.info("Change request %s approved by %s", change_request.id, request.user.email)
        return Response(self.get_serializer(change_request).data)

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        with transaction.atomic():
            change_request = self._lock()
            if change_request.status != ChangeRequest.Status.PENDING:
                return Response({"error": "Change request already reviewed"}, status=status.HTTP_400_BAD_REQUEST)

            self._review(change_request, ChangeRequest.Status.REJECTED)
        return Response(self.get_serializer(change_request).data)


class DashboardView(APIView):
    """
    Admin dashboard counters.
    """
    permission_classes = [IsAdminRole]

    def get(self, request):
        return Response({
            "sites": Site.objects.count(),
            "network_devices": NetworkDevice.objects.count(),
            "fiber_routes": FiberRoute.objects.count(),
            "users": get_user_model().objects.count(),
            "pending_change_requests": ChangeRequest.objects.filter(status=ChangeRequest.Status.PENDING).count(),
            "open_tasks": Task.objects.filter(completed=False).count(),
        })
