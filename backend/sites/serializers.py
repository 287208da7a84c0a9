import os
from decimal import Decimal

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from routing import RouteParseError, parse_route_data
from routing.kml import extract_kml_from_kmz

from .models import (
    ChangeRequest,
    FiberConnection,
    FiberRoute,
    NetworkDevice,
    Site,
    SiteImage,
    SitePoint,
    Task,
    check_coordinates,
)

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.gif', '.webp', '.heic'}
ROUTE_EXTENSIONS = {'.kml', '.kmz', '.geojson', '.json'}


class CoordinateField(serializers.FloatField):
    """
    Accepts any float precision (GPS fixes have more than 6 decimals),
    stores a 6-decimal Decimal and renders a JSON number.
    """

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        return Decimal(str(round(value, 6)))

    def to_representation(self, value):
        return float(value)


def _validate_coordinates(attrs, instance=None):
    # partial updates: fall back to what is stored
    latitude = attrs.get('latitude', getattr(instance, 'latitude', None))
    longitude = attrs.get('longitude', getattr(instance, 'longitude', None))
    try:
        check_coordinates(latitude, longitude)
    except DjangoValidationError as exc:
        raise serializers.ValidationError(exc.message_dict if hasattr(exc, 'error_dict') else exc.messages)


class AuditedSerializer(serializers.ModelSerializer):
    created_by_email = serializers.ReadOnlyField(source='created_by.email')
    updated_by_email = serializers.ReadOnlyField(source='updated_by.email')


class SitePointSerializer(AuditedSerializer):
    latitude = CoordinateField()
    longitude = CoordinateField()

    class Meta:
        model = SitePoint
        fields = '__all__'
        read_only_fields = ['created_by', 'updated_by']

    def validate(self, attrs):
        _validate_coordinates(attrs, self.instance)
        return attrs


class SiteImageSerializer(AuditedSerializer):
    image_url = serializers.SerializerMethodField()

    class Meta:
        model = SiteImage
        fields = '__all__'
        read_only_fields = ['created_by', 'updated_by']

    def get_image_url(self, obj):
        if not obj.image:
            return None
        request = self.context.get('request')
        url = obj.image.url
        return request.build_absolute_uri(url) if request else url

    def validate_image(self, value):
        ext = os.path.splitext(value.name)[1].lower()
        if ext not in IMAGE_EXTENSIONS:
            raise serializers.ValidationError(f"Unsupported image type '{ext}'.")
        return value


class NetworkDeviceSerializer(AuditedSerializer):
    class Meta:
        model = NetworkDevice
        fields = '__all__'
        read_only_fields = ['created_by', 'updated_by']


class FiberConnectionSerializer(AuditedSerializer):
    class Meta:
        model = FiberConnection
        fields = '__all__'
        read_only_fields = ['created_by', 'updated_by']

    def validate(self, attrs):
        site = attrs.get('site', getattr(self.instance, 'site', None))
        for field in ('source_device', 'destination_device'):
            device = attrs.get(field, getattr(self.instance, field, None))
            if device is not None and site is not None and device.site_id != site.id:
                raise serializers.ValidationError({field: "Device belongs to a different site."})
        return attrs


class FiberRouteSerializer(AuditedSerializer):
    """
    route_data may be pasted KML/GeoJSON text, or come from an uploaded
    .kml / .kmz / .geojson file in route_file (KMZ is unzipped to its KML).
    """
    route_file = serializers.FileField(write_only=True, required=False)
    route_data = serializers.CharField(required=False, trim_whitespace=False)

    class Meta:
        model = FiberRoute
        fields = '__all__'
        read_only_fields = ['created_by', 'updated_by']

    def validate(self, attrs):
        upload = attrs.pop('route_file', None)
        if upload is not None:
            attrs['route_data'] = self._read_upload(upload)

        if 'route_data' not in attrs and self.instance is None:
            raise serializers.ValidationError({'route_data': "Provide route_data or a route_file."})

        if 'route_data' in attrs:
            try:
                parse_route_data(attrs['route_data'])
            except RouteParseError as exc:
                raise serializers.ValidationError({'route_data': str(exc)})
        return attrs

    def _read_upload(self, upload):
        ext = os.path.splitext(upload.name)[1].lower()
        if ext not in ROUTE_EXTENSIONS:
            raise serializers.ValidationError({'route_file': f"Unsupported route file type '{ext}'."})

        raw = upload.read()
        try:
            if ext == '.kmz':
                raw = extract_kml_from_kmz(raw)
        except RouteParseError as exc:
            raise serializers.ValidationError({'route_file': str(exc)})
        return raw.decode('utf-8-sig', errors='replace')


class SiteSerializer(AuditedSerializer):
    latitude = CoordinateField(required=False, allow_null=True)
    longitude = CoordinateField(required=False, allow_null=True)
    has_coordinates = serializers.BooleanField(read_only=True)

    class Meta:
        model = Site
        fields = '__all__'
        read_only_fields = ['created_by', 'updated_by']

    def validate(self, attrs):
        _validate_coordinates(attrs, self.instance)
        return attrs


class SiteDetailSerializer(SiteSerializer):
    """
    Site with its equipment, routes, points and photos in one payload.
    """
    network_devices = NetworkDeviceSerializer(many=True, read_only=True)
    fiber_routes = FiberRouteSerializer(many=True, read_only=True)
    fiber_connections = FiberConnectionSerializer(many=True, read_only=True)
    points = SitePointSerializer(many=True, read_only=True)
    images = SiteImageSerializer(many=True, read_only=True)


class TaskSerializer(AuditedSerializer):
    assigned_to_email = serializers.ReadOnlyField(source='assigned_to.email')
    site_name = serializers.ReadOnlyField(source='site.name')

    class Meta:
        model = Task
        fields = '__all__'
        read_only_fields = ['created_by', 'updated_by']


class ChangeRequestSerializer(serializers.ModelSerializer):
    created_by_email = serializers.ReadOnlyField(source='created_by.email')
    reviewed_by_email = serializers.ReadOnlyField(source='reviewed_by.email')

    class Meta:
        model = ChangeRequest
        fields = '__all__'
        read_only_fields = ['status', 'created_by', 'reviewed_by', 'reviewed_at']

    def validate_changes(self, value):
        if not isinstance(value, dict) or not value:
            raise serializers.ValidationError("changes must be a non-empty object.")
        return value

    def validate(self, attrs):
        table_name = attrs.get('table_name', getattr(self.instance, 'table_name', None))
        record_id = attrs.get('record_id', getattr(self.instance, 'record_id', None))
        model = ChangeRequest.model_for(table_name)
        if not model.objects.filter(pk=record_id).exists():
            raise serializers.ValidationError({'record_id': f"No {table_name} record with this id."})

        draft = ChangeRequest(table_name=table_name)
        unknown = set(attrs.get('changes', {})) - draft.editable_fields()
        if unknown:
            raise serializers.ValidationError({'changes': f"Fields cannot be changed: {', '.join(sorted(unknown))}"})
        return attrs
