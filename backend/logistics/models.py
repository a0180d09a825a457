from django.db import models
from django.conf import settings
from django.utils import timezone

class Driver(models.Model):
    """
    Delivery driver profile attached to a DRIVER user.
    is_available is flipped by the dispatch engine with conditional updates,
    never with a read-modify-save.
    """
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='driver_profile')

    is_available = models.BooleanField(default=False)

    # Last GPS ping; drivers without one are never auto-matched
    current_lat = models.FloatField(blank=True, null=True)
    current_long = models.FloatField(blank=True, null=True)
    last_ping_at = models.DateTimeField(blank=True, null=True)

    # Experience term of the scorer
    total_trips = models.PositiveIntegerField(default=0)
    rating = models.FloatField(default=0.0)

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Driver #{self.pk} ({self.user.username})"

class Order(models.Model):
    """
    Gas-cylinder delivery order.
    Tracks lifecycle: Pending -> Assigned -> Accepted -> Picked Up -> In Transit -> Delivered.
    Status is only ever written by orders.lifecycle through logistics.repository.
    """
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        ASSIGNED = "ASSIGNED", "Assigned to Driver"
        ACCEPTED = "ACCEPTED", "Accepted by Driver"
        PICKED_UP = "PICKED_UP", "Picked Up"
        IN_TRANSIT = "IN_TRANSIT", "In Transit"
        DELIVERED = "DELIVERED", "Delivered"
        CANCELLED = "CANCELLED", "Cancelled"

    class PaymentMethod(models.TextChoices):
        CASH = "CASH", "Cash"
        CARD = "CARD", "Card"
        POS = "POS", "POS on Delivery"
        BANK_TRANSFER = "BANK_TRANSFER", "Bank Transfer"
        ONLINE = "ONLINE", "Online"

    class PaymentStatus(models.TextChoices):
        PENDING = "PENDING", "Pending"
        COMPLETED = "COMPLETED", "Completed"
        FAILED = "FAILED", "Failed"

    # uuid generated by the engine
    id = models.CharField(primary_key=True, max_length=36)
    # 4 digit code the customer reads out to the driver
    order_id = models.CharField(max_length=8)
    tracking_id = models.CharField(max_length=32, unique=True)

    # Relationships
    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='orders')
    # Set exactly while the order is ASSIGNED..DELIVERED
    driver = models.ForeignKey(Driver, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')

    tank_size = models.CharField(max_length=20)
    quantity = models.PositiveIntegerField(default=1)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    payment_status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    payment_reference = models.CharField(max_length=100, blank=True, null=True)

    delivery_address = models.TextField()
    # Coordinates where the driver needs to go
    delivery_latitude = models.FloatField()
    delivery_longitude = models.FloatField()

    assigned_at = models.DateTimeField(blank=True, null=True)
    accepted_at = models.DateTimeField(blank=True, null=True)
    picked_up_at = models.DateTimeField(blank=True, null=True)
    delivered_at = models.DateTimeField(blank=True, null=True)
    cancelled_at = models.DateTimeField(blank=True, null=True)

    delivery_confirmed = models.BooleanField(default=False)
    cancellation_reason = models.TextField(blank=True, null=True)
    cancelled_by = models.CharField(max_length=20, blank=True, null=True)
    notes = models.TextField(blank=True, null=True)

    # Set by the engine's clock, not auto_now, so tests can control time
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["customer", "status"]),
            models.Index(fields=["driver", "status"]),
            models.Index(fields=["created_at"]),
        ]

    def __str__(self):
        return f"Order #{self.order_id} - {self.status}"


class TankSize(models.Model):
    """
    Cylinder catalog. Orders take their price from here.
    Sizes with orders are deactivated rather than deleted.
    """
    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        INACTIVE = "INACTIVE", "Inactive"

    size = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=100)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.ACTIVE)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["size"]

    def __str__(self):
        return f"{self.size} ({self.price})"


class AssignmentAlarm(models.Model):
    """
    Outstanding acknowledgement of the latest driver assignment of an order.
    Reset (not duplicated) on every reassignment.
    """
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        ACKNOWLEDGED = "ACKNOWLEDGED", "Acknowledged"
        CANCELLED = "CANCELLED", "Cancelled"
        EXPIRED = "EXPIRED", "Expired"

    order = models.OneToOneField(Order, on_delete=models.CASCADE, related_name='assignment_alarm')
    driver = models.ForeignKey(Driver, on_delete=models.CASCADE, related_name='assignment_alarms')
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)

    requested_at = models.DateTimeField(default=timezone.now)
    acknowledged_at = models.DateTimeField(blank=True, null=True)
    resolved_at = models.DateTimeField(blank=True, null=True)
    last_reminder_at = models.DateTimeField(blank=True, null=True)
    reminders_sent = models.PositiveIntegerField(default=0)

    class Meta:
        indexes = [models.Index(fields=["status", "requested_at"])]

    def __str__(self):
        return f"Alarm for order {self.order_id} ({self.status})"
