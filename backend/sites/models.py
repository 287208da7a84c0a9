import os
import uuid
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from routing import RouteGeometry, RouteParseError, parse_route_data, route_lines


class AuditedModel(models.Model):
    """
    Common columns for every site record.
    created_by / updated_by are set by the API from the signed-in user.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    updated_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')

    class Meta:
        abstract = True


def check_coordinates(latitude, longitude):
    """
    Both or neither, and inside the valid ranges.
    Raises django ValidationError keyed by field.
    """
    if (latitude is None) != (longitude is None):
        raise ValidationError("Latitude and longitude must be provided together.")
    errors = {}
    if latitude is not None and not -90 <= latitude <= 90:
        errors['latitude'] = "Latitude must be between -90 and 90."
    if longitude is not None and not -180 <= longitude <= 180:
        errors['longitude'] = "Longitude must be between -180 and 180."
    if errors:
        raise ValidationError(errors)


class Site(AuditedModel):
    """
    A telecom site (tower, exchange, POP).
    Location text is what field staff use; lat/lng put it on the map.
    """
    name = models.CharField(max_length=255)
    location = models.TextField()

    # Optional until surveyed. Sites without both are hidden from the map.
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)

    configuration = models.JSONField(default=dict, blank=True)
    power_details = models.TextField(blank=True)
    transmission_details = models.TextField(blank=True)

    # {"name": ..., "contact": ..., "agreement_date": ...}
    landlord_details = models.JSONField(default=dict, blank=True)
    # Nepal Electricity Authority approval: {"approval_number": ..., "approval_date": ...}
    nea_details = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ['name']

    @property
    def has_coordinates(self):
        return self.latitude is not None and self.longitude is not None

    @property
    def coordinates(self):
        if not self.has_coordinates:
            return None
        return (float(self.latitude), float(self.longitude))

    def clean(self):
        check_coordinates(self.latitude, self.longitude)

    def __str__(self):
        return self.name


class SitePoint(AuditedModel):
    """
    A manually placed map point belonging to a site (handhole, pole, splice).
    """
    site = models.ForeignKey(Site, on_delete=models.CASCADE, related_name='points')
    latitude = models.DecimalField(max_digits=9, decimal_places=6)
    longitude = models.DecimalField(max_digits=9, decimal_places=6)
    description = models.TextField()

    class Meta:
        ordering = ['created_at']

    @property
    def coordinates(self):
        return (float(self.latitude), float(self.longitude))

    def clean(self):
        check_coordinates(self.latitude, self.longitude)

    def __str__(self):
        return f"{self.site.name}: {self.description[:40]}"


def site_image_upload_to(instance, filename):
    """site-images/<site id>/<category>/<random>.<ext>"""
    ext = os.path.splitext(filename)[1].lower() or '.jpg'
    return f"site-images/{instance.site_id}/{instance.category}/{uuid.uuid4().hex}{ext}"


class SiteImage(AuditedModel):
    class Category(models.TextChoices):
        GENERAL = "general", "General"
        EQUIPMENT = "equipment", "Equipment"
        CONSTRUCTION = "construction", "Construction"
        MAINTENANCE = "maintenance", "Maintenance"
        DOCUMENTATION = "documentation", "Documentation"

    site = models.ForeignKey(Site, on_delete=models.CASCADE, related_name='images')
    image = models.FileField(upload_to=site_image_upload_to, max_length=512)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=20, choices=Category.choices, default=Category.GENERAL)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.site.name} [{self.category}]"


class NetworkDevice(AuditedModel):
    class DeviceType(models.TextChoices):
        ROUTER = "router", "Router"
        SWITCH = "switch", "Switch"
        FIREWALL = "firewall", "Firewall"
        ACCESS_POINT = "access_point", "Access Point"

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        INACTIVE = "inactive", "Inactive"
        MAINTENANCE = "maintenance", "Maintenance"

    site = models.ForeignKey(Site, on_delete=models.CASCADE, related_name='network_devices')
    device_type = models.CharField(max_length=20, choices=DeviceType.choices)
    name = models.CharField(max_length=255)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    # Free-form port map, e.g. {"ge-0/0/1": "uplink to core"}
    port_configuration = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.get_device_type_display()})"


class FiberConnection(AuditedModel):
    """
    Optical connection at a site and how its cores are mapped between devices.
    """
    site = models.ForeignKey(Site, on_delete=models.CASCADE, related_name='fiber_connections')
    connection_type = models.CharField(max_length=100)
    # e.g. {"1": "OLT-1 PON 3", "2": "spare"}
    core_mapping = models.JSONField(default=dict, blank=True)
    source_device = models.ForeignKey(NetworkDevice, on_delete=models.SET_NULL, null=True, blank=True, related_name='outgoing_connections')
    destination_device = models.ForeignKey(NetworkDevice, on_delete=models.SET_NULL, null=True, blank=True, related_name='incoming_connections')

    class Meta:
        ordering = ['created_at']

    def clean(self):
        for field in ('source_device', 'destination_device'):
            device = getattr(self, field)
            if device is not None and device.site_id != self.site_id:
                raise ValidationError({field: "Device belongs to a different site."})

    def __str__(self):
        return f"{self.site.name}: {self.connection_type}"


class FiberRoute(AuditedModel):
    """
    A fiber path drawn on the map. route_data holds the KML (or GeoJSON) text
    exactly as uploaded; geometry is derived on read.
    """
    site = models.ForeignKey(Site, on_delete=models.CASCADE, related_name='fiber_routes')
    route_data = models.TextField()
    description = models.TextField(blank=True)

    class Meta:
        ordering = ['created_at']

    def clean(self):
        try:
            self.to_geojson()
        except RouteParseError as exc:
            raise ValidationError({'route_data': str(exc)}) from exc

    def to_geojson(self):
        """FeatureCollection for the map. Raises RouteParseError for unusable data."""
        return parse_route_data(self.route_data)

    def to_geometry(self, feature_collection=None):
        feature_collection = feature_collection or self.to_geojson()
        return RouteGeometry(
            route_id=str(self.id),
            lines=route_lines(feature_collection),
            description=self.description,
        )

    def __str__(self):
        return self.description[:60] or f"Route {self.id}"


class Task(AuditedModel):
    """
    Work assigned by an admin to a user, optionally tied to a site.
    """
    site = models.ForeignKey(Site, on_delete=models.CASCADE, null=True, blank=True, related_name='tasks')
    description = models.TextField()
    completed = models.BooleanField(default=False)
    assigned_to = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='tasks')

    class Meta:
        ordering = ['completed', '-created_at']

    def __str__(self):
        return self.description[:60]


class ChangeRequest(models.Model):
    """
    A suggested edit to a record, held for admin review.
    Approving applies `changes` field by field to the target record.
    """
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"

    class TableName(models.TextChoices):
        SITES = "sites", "Sites"
        NETWORK_DEVICES = "network_devices", "Network devices"
        FIBER_ROUTES = "fiber_routes", "Fiber routes"
        SITE_IMAGES = "site_images", "Site images"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    table_name = models.CharField(max_length=30, choices=TableName.choices)
    record_id = models.UUIDField()
    changes = models.JSONField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    notify_all = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='change_requests')
    reviewed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')

    # fields a change request may never touch
    PROTECTED_FIELDS = {'id', 'site', 'created_at', 'updated_at', 'created_by', 'updated_by', 'image'}

    class Meta:
        ordering = ['-created_at']

    @classmethod
    def model_for(cls, table_name):
        return {
            cls.TableName.SITES: Site,
            cls.TableName.NETWORK_DEVICES: NetworkDevice,
            cls.TableName.FIBER_ROUTES: FiberRoute,
            cls.TableName.SITE_IMAGES: SiteImage,
        }[table_name]

    def target(self):
        return self.model_for(self.table_name).objects.get(pk=self.record_id)

    def editable_fields(self):
        model = self.model_for(self.table_name)
        return {
            field.name for field in model._meta.concrete_fields
            if field.name not in self.PROTECTED_FIELDS and not field.is_relation
        }

    def apply(self, reviewer):
        """
        Write the requested values onto the target record.
        Raises ValidationError for unknown fields or invalid values.
        """
        record = self.target()
        unknown = set(self.changes) - self.editable_fields()
        if unknown:
            raise ValidationError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

        for field_name, value in self.changes.items():
            field = record._meta.get_field(field_name)
            if isinstance(field, models.DecimalField) and value is not None:
                # JSON numbers arrive as floats, keep only the stored precision
                try:
                    value = round(Decimal(str(value)), field.decimal_places)
                except InvalidOperation:
                    raise ValidationError({field_name: "Enter a number."})
            setattr(record, field_name, value)
        record.updated_by = reviewer
        record.full_clean(exclude=['site', 'image'])
        record.save()
        return record

    def __str__(self):
        return f"{self.table_name}/{self.record_id} ({self.status})"
