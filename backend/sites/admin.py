from django.contrib import admin

from .models import ChangeRequest, FiberConnection, FiberRoute, NetworkDevice, Site, SiteImage, SitePoint, Task


class NetworkDeviceInline(admin.TabularInline):
    model = NetworkDevice
    extra = 0
    fields = ("name", "device_type", "ip_address", "status")


class FiberRouteInline(admin.TabularInline):
    model = FiberRoute
    extra = 0
    fields = ("description",)


@admin.register(Site)
class SiteAdmin(admin.ModelAdmin):
    list_display = ("name", "location", "latitude", "longitude", "created_at")
    search_fields = ("name", "location")
    inlines = [NetworkDeviceInline, FiberRouteInline]


@admin.register(NetworkDevice)
class NetworkDeviceAdmin(admin.ModelAdmin):
    list_display = ("name", "site", "device_type", "ip_address", "status")
    list_filter = ("device_type", "status")
    search_fields = ("name", "ip_address")


@admin.register(FiberRoute)
class FiberRouteAdmin(admin.ModelAdmin):
    list_display = ("__str__", "site", "created_at")


@admin.register(SiteImage)
class SiteImageAdmin(admin.ModelAdmin):
    list_display = ("site", "category", "created_at")
    list_filter = ("category",)


@admin.register(ChangeRequest)
class ChangeRequestAdmin(admin.ModelAdmin):
    list_display = ("table_name", "record_id", "status", "created_by", "created_at")
    list_filter = ("status", "table_name")


admin.site.register(SitePoint)
admin.site.register(FiberConnection)
admin.site.register(Task)
