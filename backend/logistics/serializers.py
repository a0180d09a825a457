from enum import Enum

from rest_framework import serializers

from orders.models import PaymentMethod, PaymentStatus


class EnumField(serializers.CharField):
    """Renders str-enums as their value ("PENDING"), not "OrderStatus.PENDING"."""

    def to_representation(self, value):
        if isinstance(value, Enum):
            return value.value
        return super().to_representation(value)


class OrderSerializer(serializers.Serializer):
    """
    Read-only view of an engine Order (orders.models.Order dataclass).
    """
    id = serializers.CharField()
    order_id = serializers.CharField()
    tracking_id = serializers.CharField()
    customer_id = serializers.CharField()
    driver_id = serializers.CharField(allow_null=True)

    tank_size = serializers.CharField()
    quantity = serializers.IntegerField()
    delivery_address = serializers.CharField()
    delivery_latitude = serializers.FloatField()
    delivery_longitude = serializers.FloatField()

    amount = serializers.DecimalField(max_digits=10, decimal_places=2)
    total_amount = serializers.DecimalField(max_digits=10, decimal_places=2)
    payment_method = EnumField()
    payment_status = EnumField()
    payment_reference = serializers.CharField(allow_null=True)

    status = EnumField()
    assigned_at = serializers.DateTimeField(allow_null=True)
    accepted_at = serializers.DateTimeField(allow_null=True)
    picked_up_at = serializers.DateTimeField(allow_null=True)
    delivered_at = serializers.DateTimeField(allow_null=True)
    cancelled_at = serializers.DateTimeField(allow_null=True)

    delivery_confirmed = serializers.BooleanField()
    cancellation_reason = serializers.CharField(allow_null=True)
    cancelled_by = EnumField(allow_null=True)
    notes = serializers.CharField(allow_null=True)

    created_at = serializers.DateTimeField()
    updated_at = serializers.DateTimeField()


class OrderCreateSerializer(serializers.Serializer):
    # price comes from the tank size catalog; an "amount" sent by the client is ignored
    tank_size = serializers.CharField(max_length=20)
    quantity = serializers.IntegerField(min_value=1, default=1)
    delivery_address = serializers.CharField()
    delivery_latitude = serializers.FloatField(min_value=-90, max_value=90)
    delivery_longitude = serializers.FloatField(min_value=-180, max_value=180)
    payment_method = serializers.ChoiceField(choices=[m.value for m in PaymentMethod])
    payment_reference = serializers.CharField(max_length=100, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class AssignDriverSerializer(serializers.Serializer):
    # null / missing means "pick the best driver automatically"
    driver_id = serializers.CharField(required=False, allow_null=True)


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class PaymentResultSerializer(serializers.Serializer):
    payment_status = serializers.ChoiceField(choices=[s.value for s in PaymentStatus])
    reference = serializers.CharField(max_length=100, required=False, allow_null=True)


class DriverLocationSerializer(serializers.Serializer):
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)


class DriverAvailabilitySerializer(serializers.Serializer):
    is_available = serializers.BooleanField()


class DriverSerializer(serializers.Serializer):
    """Read-only view of an engine Driver snapshot."""
    id = serializers.CharField()
    user_id = serializers.CharField()
    is_available = serializers.BooleanField()
    current_lat = serializers.FloatField(allow_null=True)
    current_long = serializers.FloatField(allow_null=True)
    total_trips = serializers.IntegerField()
    rating = serializers.FloatField()
    last_ping_at = serializers.DateTimeField(allow_null=True)


class EtaSerializer(serializers.Serializer):
    distance_km = serializers.FloatField()
    duration_s = serializers.FloatField()
    source = serializers.CharField()


class TankSizeSerializer(serializers.Serializer):
    size = serializers.CharField()
    name = serializers.CharField()
    price = serializers.DecimalField(max_digits=10, decimal_places=2)
    is_active = serializers.BooleanField()


class AssignmentAlarmSerializer(serializers.Serializer):
    order_id = serializers.CharField()
    driver_id = serializers.CharField()
    status = EnumField()
    requested_at = serializers.DateTimeField()
    acknowledged_at = serializers.DateTimeField(allow_null=True)
    last_reminder_at = serializers.DateTimeField(allow_null=True)
    reminders_sent = serializers.IntegerField()
