import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from dispatch.dispatcher import Dispatcher
from dispatch.notifications import RecordingPushService
from drivers.models import Driver, User, UserRole
from orders.lifecycle import OrderLifecycle
from orders.models import Order, OrderStatus, PaymentMethod, PaymentStatus, TankSize
from orders.policy import LifecyclePolicy
from orders.repository import InMemoryOrderRepository

# Lagos Island, used as the delivery point in most tests
DELIVERY_POINT = (6.4541, 3.3947)


# the catalog every test repository starts with
TANK_SIZES = (
    TankSize("3kg", "3kg Cylinder", Decimal("4500.00")),
    TankSize("6kg", "6kg Cylinder", Decimal("8000.00")),
    TankSize("12.5kg", "12.5kg Cylinder", Decimal("15000.00")),
    TankSize("50kg", "50kg Cylinder", Decimal("55000.00"), is_active=False),
)


def point_km_north(origin, km):
    """A point `km` kilometres due north of origin (along the meridian)."""
    lat, lon = origin
    return (lat + km / 6371.0 * 180.0 / math.pi, lon)


class FixedClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now=None):
        self.now = now or datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


def seed_driver(repository, driver_id, location=None, *, total_trips=0, is_available=True, is_active=True, is_blocked=False):
    user_id = f"user-{driver_id}"
    repository.add_user(User(id=user_id, phone_number="", role=UserRole.DRIVER, is_active=is_active, is_blocked=is_blocked))
    lat, lon = location if location is not None else (None, None)
    return repository.add_driver(
        Driver.new(driver_id, user_id, lat, lon, is_available=is_available, total_trips=total_trips)
    )


def seed_order(
    repository,
    customer_id,
    *,
    status=OrderStatus.DELIVERED,
    driver_id=None,
    payment_method=PaymentMethod.CASH,
    payment_status=PaymentStatus.COMPLETED,
    created_at=None,
):
    """
    Insert a historical order directly, bypassing the business rules.
    """
    order = Order.new(
        customer_id,
        "12.5kg",
        "1 History Road",
        *DELIVERY_POINT,
        payment_method,
        "15000.00",
        payment_status=payment_status,
        created_at=created_at,
    )
    repository.create_order(order)
    if status != OrderStatus.PENDING:
        repository.update_order_status(order.id, OrderStatus.PENDING, status, {"driver_id": driver_id})
    return repository.get_order(order.id)


def order_fields(**overrides):
    fields = dict(
        tank_size="12.5kg",
        delivery_address="12 Marina Road, Lagos Island",
        delivery_latitude=DELIVERY_POINT[0],
        delivery_longitude=DELIVERY_POINT[1],
        payment_method=PaymentMethod.CASH,
    )
    fields.update(overrides)
    return fields


@pytest.fixture
def repository():
    repository = InMemoryOrderRepository()
    for tank_size in TANK_SIZES:
        repository.add_tank_size(tank_size)
    return repository


@pytest.fixture
def push():
    return RecordingPushService()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def lifecycle(repository, push, clock):
    return OrderLifecycle(repository, push_service=push, clock=clock)


@pytest.fixture
def dispatcher(repository, push, clock):
    return Dispatcher.build(repository, push_service=push, clock=clock)


@pytest.fixture
def manual_dispatcher(repository, push, clock):
    """Dispatcher that leaves new orders PENDING."""
    policy = LifecyclePolicy(auto_assign_on_create=False)
    return Dispatcher.build(repository, push_service=push, lifecycle_policy=policy, clock=clock)
