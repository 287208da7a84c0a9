from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from users.views import FcmTokenView, LoginView, LogoutView, UserDetailView, UserViewSet
from sites.views import (
    ChangeRequestViewSet,
    DashboardView,
    FiberConnectionViewSet,
    FiberRouteViewSet,
    NetworkDeviceViewSet,
    SiteImageViewSet,
    SitePointViewSet,
    SiteViewSet,
    TaskViewSet,
)
from sites.map_views import ConnectionsView, DistanceView, MapView
from notifications.views import NotificationViewSet

router = DefaultRouter()
router.register(r'users', UserViewSet)
router.register(r'sites', SiteViewSet)
router.register(r'site-points', SitePointViewSet)
router.register(r'site-images', SiteImageViewSet)
router.register(r'network-devices', NetworkDeviceViewSet)
router.register(r'fiber-connections', FiberConnectionViewSet)
router.register(r'fiber-routes', FiberRouteViewSet)
router.register(r'tasks', TaskViewSet, basename='task')
router.register(r'change-requests', ChangeRequestViewSet, basename='change-request')
router.register(r'notifications', NotificationViewSet, basename='notification')

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include(router.urls)),
    path('api/v1/auth/login/', LoginView.as_view(), name='login'),
    path('api/v1/auth/logout/', LogoutView.as_view(), name='logout'),
    path('api/v1/auth/me/', UserDetailView.as_view(), name='current-user'),
    path('api/v1/auth/me/fcm-token/', FcmTokenView.as_view(), name='fcm-token'),
    path('api/v1/dashboard/', DashboardView.as_view(), name='dashboard'),
    path('api/v1/map/', MapView.as_view(), name='map'),
    path('api/v1/map/distance/', DistanceView.as_view(), name='map-distance'),
    path('api/v1/map/connections/', ConnectionsView.as_view(), name='map-connections'),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
