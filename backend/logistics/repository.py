"""
Purpose: OrderRepository backed by the Django ORM.
What it does:
Translates the engine's repository calls into queries on logistics.Order,
logistics.Driver and users.User, and converts rows to the engine's
dataclasses (orders.models.Order, drivers.models.Driver/User).

Conditional writes are single UPDATE ... WHERE statements:
- update_order_status: WHERE id = ? AND status = expected [AND driver_id = ?]
- claim_driver: WHERE id = ? AND is_available = true
- resolve_alarm: WHERE order_id = ? AND status = PENDING [AND driver_id = ?]
so two racing requests can never both succeed. make_driver_available locks
the driver row (select_for_update) while it checks for busy orders, and
atomic() is transaction.atomic() so a claim and its order update commit together.
"""

from contextlib import contextmanager
from datetime import datetime
from enum import Enum

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F

from drivers.models import Driver, User, UserRole
from orders.exceptions import ConcurrentModification, DriverUnavailable, OrderNotFound
from orders.models import (
    ActorRole,
    AlarmStatus,
    AssignmentAlarm,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    TankSize,
    utcnow,
)
from orders.repository import ANY_DRIVER, OrderRepository, check_update_fields

from .models import Driver as DriverModel
from .models import AssignmentAlarm as AlarmModel
from .models import Order as OrderModel
from .models import TankSize as TankSizeModel


def _pk(value):
    """Numeric primary key or None for ids that cannot exist in this database."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _db_value(value):
    if isinstance(value, Enum):
        return value.value
    return value


def order_to_domain(row: OrderModel) -> Order:
    return Order(
        id=row.id,
        order_id=row.order_id,
        tracking_id=row.tracking_id,
        customer_id=str(row.customer_id),
        tank_size=row.tank_size,
        quantity=row.quantity,
        delivery_address=row.delivery_address,
        delivery_latitude=row.delivery_latitude,
        delivery_longitude=row.delivery_longitude,
        payment_method=PaymentMethod(row.payment_method),
        payment_status=PaymentStatus(row.payment_status),
        payment_reference=row.payment_reference,
        amount=row.amount,
        total_amount=row.total_amount,
        status=OrderStatus(row.status),
        driver_id=str(row.driver_id) if row.driver_id is not None else None,
        assigned_at=row.assigned_at,
        accepted_at=row.accepted_at,
        picked_up_at=row.picked_up_at,
        delivered_at=row.delivered_at,
        cancelled_at=row.cancelled_at,
        delivery_confirmed=row.delivery_confirmed,
        cancellation_reason=row.cancellation_reason,
        cancelled_by=ActorRole(row.cancelled_by) if row.cancelled_by else None,
        notes=row.notes,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def driver_to_domain(row: DriverModel) -> Driver:
    return Driver(
        id=str(row.pk),
        user_id=str(row.user_id),
        is_available=row.is_available,
        current_lat=row.current_lat,
        current_long=row.current_long,
        total_trips=row.total_trips,
        rating=row.rating,
        last_ping_at=row.last_ping_at,
    )


def user_to_domain(row) -> User:
    return User(
        id=str(row.pk),
        phone_number=str(row.phone_number or ""),
        role=UserRole(row.role),
        is_active=row.is_active,
        is_blocked=row.is_blocked,
    )


def tank_size_to_domain(row: TankSizeModel) -> TankSize:
    return TankSize(
        size=row.size,
        name=row.name,
        price=row.price,
        is_active=row.status == TankSizeModel.Status.ACTIVE,
    )


def alarm_to_domain(row: AlarmModel) -> AssignmentAlarm:
    return AssignmentAlarm(
        order_id=row.order_id,
        driver_id=str(row.driver_id),
        requested_at=row.requested_at,
        status=AlarmStatus(row.status),
        acknowledged_at=row.acknowledged_at,
        resolved_at=row.resolved_at,
        last_reminder_at=row.last_reminder_at,
        reminders_sent=row.reminders_sent,
    )


class DjangoOrderRepository(OrderRepository):

    # --- Orders ---

    def create_order(self, order):
        row = OrderModel.objects.create(
            id=order.id,
            order_id=order.order_id,
            tracking_id=order.tracking_id,
            customer_id=_pk(order.customer_id),
            driver_id=_pk(order.driver_id),
            tank_size=order.tank_size,
            quantity=order.quantity,
            amount=order.amount,
            total_amount=order.total_amount,
            status=order.status.value,
            payment_method=order.payment_method.value,
            payment_status=order.payment_status.value,
            payment_reference=order.payment_reference,
            delivery_address=order.delivery_address,
            delivery_latitude=order.delivery_latitude,
            delivery_longitude=order.delivery_longitude,
            notes=order.notes,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
        return order_to_domain(row)

    def get_order(self, order_id):
        try:
            return order_to_domain(OrderModel.objects.get(pk=order_id))
        except OrderModel.DoesNotExist:
            raise OrderNotFound(order_id)

    def find_order_by_tracking_id(self, tracking_id):
        try:
            return order_to_domain(OrderModel.objects.get(tracking_id=tracking_id))
        except OrderModel.DoesNotExist:
            raise OrderNotFound(tracking_id)

    def update_order_status(self, order_id, expected_status, new_status, fields=None, *, expected_driver_id=ANY_DRIVER):
        update = dict(fields or {})
        check_update_fields(update)

        query = OrderModel.objects.filter(pk=order_id, status=OrderStatus(expected_status).value)
        if expected_driver_id is not ANY_DRIVER:
            if expected_driver_id is None:
                query = query.filter(driver__isnull=True)
            else:
                query = query.filter(driver_id=_pk(expected_driver_id))

        values = {name: _db_value(value) for name, value in update.items()}
        if "driver_id" in values:
            values["driver_id"] = _pk(values["driver_id"])
        values.setdefault("updated_at", utcnow())
        values["status"] = OrderStatus(new_status).value

        if query.update(**values) == 0:
            if not OrderModel.objects.filter(pk=order_id).exists():
                raise OrderNotFound(order_id)
            raise ConcurrentModification(order_id, expected_status)

        return self.get_order(order_id)

    def _filtered(self, order_filter):
        query = OrderModel.objects.all()
        if order_filter.customer_id is not None:
            query = query.filter(customer_id=_pk(order_filter.customer_id))
        if order_filter.driver_id is not None:
            query = query.filter(driver_id=_pk(order_filter.driver_id))
        if order_filter.statuses is not None:
            query = query.filter(status__in=[OrderStatus(s).value for s in order_filter.statuses])
        if order_filter.payment_method is not None:
            query = query.filter(payment_method=PaymentMethod(order_filter.payment_method).value)
        if order_filter.payment_status is not None:
            query = query.filter(payment_status=PaymentStatus(order_filter.payment_status).value)
        if order_filter.created_since is not None:
            query = query.filter(created_at__gte=order_filter.created_since)
        return query

    def find_orders(self, order_filter, *, newest_first=False, offset=0, limit=None):
        query = self._filtered(order_filter).order_by("-created_at" if newest_first else "created_at")
        end = None if limit is None else offset + limit
        return [order_to_domain(row) for row in query[offset:end]]

    def count_orders(self, order_filter):
        return self._filtered(order_filter).count()

    @contextmanager
    def customer_lock(self, customer_id):
        # row lock on the customer holds concurrent creates for the same customer
        # until this transaction commits (SQLite serialises writers instead)
        with transaction.atomic():
            list(get_user_model().objects.select_for_update().filter(pk=_pk(customer_id)))
            yield

    # --- Drivers / users ---

    def get_driver(self, driver_id):
        row = DriverModel.objects.filter(pk=_pk(driver_id)).first()
        return driver_to_domain(row) if row is not None else None

    def get_user(self, user_id):
        row = get_user_model().objects.filter(pk=_pk(user_id)).first()
        return user_to_domain(row) if row is not None else None

    def find_available_drivers(self, driver_filter):
        query = DriverModel.objects.select_related("user")
        if driver_filter.is_available is not None:
            query = query.filter(is_available=driver_filter.is_available)
        if driver_filter.user_is_active is not None:
            query = query.filter(user__is_active=driver_filter.user_is_active)
        if driver_filter.user_is_blocked is not None:
            query = query.filter(user__is_blocked=driver_filter.user_is_blocked)
        if driver_filter.require_location:
            query = query.filter(current_lat__isnull=False, current_long__isnull=False)
        if driver_filter.exclude_driver_ids:
            query = query.exclude(pk__in=[_pk(d) for d in driver_filter.exclude_driver_ids])
        return [driver_to_domain(row) for row in query.order_by("pk")]

    def claim_driver(self, driver_id):
        return DriverModel.objects.filter(pk=_pk(driver_id), is_available=True).update(is_available=False) == 1

    def release_driver(self, driver_id, *, completed_trip=False):
        values = {"is_available": True}
        if completed_trip:
            values["total_trips"] = F("total_trips") + 1
        DriverModel.objects.filter(pk=_pk(driver_id)).update(**values)

    def update_driver_location(self, driver_id, lat, lon, at: datetime):
        updated = DriverModel.objects.filter(pk=_pk(driver_id)).update(current_lat=lat, current_long=lon, last_ping_at=at)
        if not updated:
            raise KeyError(f"Driver {driver_id} not found")
        return self.get_driver(driver_id)

    def set_driver_availability(self, driver_id, available):
        updated = DriverModel.objects.filter(pk=_pk(driver_id)).update(is_available=available)
        if not updated:
            raise KeyError(f"Driver {driver_id} not found")
        return self.get_driver(driver_id)

    def make_driver_available(self, driver_id, busy_statuses):
        with transaction.atomic():
            # locked so a concurrent claim_driver waits until the busy check is committed
            row = DriverModel.objects.select_for_update().filter(pk=_pk(driver_id)).first()
            if row is None:
                raise KeyError(f"Driver {driver_id} not found")

            busy = OrderModel.objects.filter(
                driver_id=row.pk, status__in=[OrderStatus(s).value for s in busy_statuses]
            ).exists()
            if busy:
                raise DriverUnavailable(driver_id, "has an order in progress")

            DriverModel.objects.filter(pk=row.pk).update(is_available=True)
        return self.get_driver(driver_id)

    def atomic(self):
        return transaction.atomic()

    # --- Tank sizes ---

    def get_tank_size(self, size):
        row = TankSizeModel.objects.filter(size=size).first()
        return tank_size_to_domain(row) if row is not None else None

    def list_tank_sizes(self, include_inactive=False):
        query = TankSizeModel.objects.all()
        if not include_inactive:
            query = query.filter(status=TankSizeModel.Status.ACTIVE)
        return [tank_size_to_domain(row) for row in query.order_by("size")]

    # --- Acknowledgement alarms ---

    def save_alarm(self, alarm):
        row, _ = AlarmModel.objects.update_or_create(
            order_id=alarm.order_id,
            defaults={
                "driver_id": _pk(alarm.driver_id),
                "status": AlarmStatus(alarm.status).value,
                "requested_at": alarm.requested_at,
                "acknowledged_at": alarm.acknowledged_at,
                "resolved_at": alarm.resolved_at,
                "last_reminder_at": alarm.last_reminder_at,
                "reminders_sent": alarm.reminders_sent,
            },
        )
        return alarm_to_domain(row)

    def get_alarm(self, order_id):
        row = AlarmModel.objects.filter(order_id=order_id).first()
        return alarm_to_domain(row) if row is not None else None

    def find_pending_alarms(self):
        query = AlarmModel.objects.filter(status=AlarmModel.Status.PENDING).order_by("requested_at")
        return [alarm_to_domain(row) for row in query]

    def resolve_alarm(self, order_id, status, at, *, driver_id=None):
        query = AlarmModel.objects.filter(order_id=order_id, status=AlarmModel.Status.PENDING)
        if driver_id is not None:
            query = query.filter(driver_id=_pk(driver_id))

        status = AlarmStatus(status)
        values = {"status": status.value, "resolved_at": at}
        if status == AlarmStatus.ACKNOWLEDGED:
            values["acknowledged_at"] = at

        if query.update(**values) == 0:
            return None
        return self.get_alarm(order_id)

    def record_alarm_reminder(self, order_id, at):
        AlarmModel.objects.filter(order_id=order_id).update(
            last_reminder_at=at, reminders_sent=F("reminders_sent") + 1
        )
