"""
Purpose: Domain models for the Orders capability.
What it does:
- Defines core data structures:
- Order (ids, customer, tank size, delivery point, payment, status, driver binding, timestamps)
- Actor (who performs an action on an order)
- TankSize (catalog entry: size, display name, server-side price)
- AssignmentAlarm (a driver assignment waiting to be acknowledged)

Defines enums/constants:
- OrderStatus = PENDING | ASSIGNED | ACCEPTED | PICKED_UP | IN_TRANSIT | DELIVERED | CANCELLED
- PaymentMethod = CASH | CARD | POS | BANK_TRANSFER | ONLINE
- PaymentStatus = PENDING | COMPLETED | FAILED
- AlarmStatus = PENDING | ACKNOWLEDGED | CANCELLED | EXPIRED
- ACTIVE_STATUSES / DRIVER_BOUND_STATUSES / TERMINAL_STATUSES

Rule: No repository calls, no transition logic. Models only.
"""
from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, Optional, Tuple

LatLon = Tuple[float, float]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    ACCEPTED = "ACCEPTED"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    POS = "POS"
    BANK_TRANSFER = "BANK_TRANSFER"
    ONLINE = "ONLINE"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class AlarmStatus(str, Enum):
    PENDING = "PENDING"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class ActorRole(str, Enum):
    CUSTOMER = "CUSTOMER"
    DRIVER = "DRIVER"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# An active order blocks the customer from placing another one.
ACTIVE_STATUSES: FrozenSet[OrderStatus] = frozenset(set(OrderStatus) - TERMINAL_STATUSES)

# driver_id is set exactly when the order is in one of these.
DRIVER_BOUND_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.ASSIGNED,
    OrderStatus.ACCEPTED,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
})

# Statuses in which the driver is physically handling the order.
IN_PROGRESS_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.ACCEPTED,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
})


@dataclass(frozen=True)
class Actor:
    """
    The caller of a lifecycle action.
    id is the customer id, driver id or admin id depending on role.
    """
    role: ActorRole
    id: str

    @classmethod
    def customer(cls, customer_id: str) -> Actor:
        return cls(ActorRole.CUSTOMER, str(customer_id))

    @classmethod
    def driver(cls, driver_id: str) -> Actor:
        return cls(ActorRole.DRIVER, str(driver_id))

    @classmethod
    def admin(cls, admin_id: str) -> Actor:
        return cls(ActorRole.ADMIN, str(admin_id))

    @classmethod
    def system(cls, label: str = "auto-assignment") -> Actor:
        return cls(ActorRole.SYSTEM, label)


def generate_order_code() -> str:
    """Short human readable order reference, e.g. '0427'."""
    return f"{random.randint(1000, 9999):04d}"


def generate_tracking_id() -> str:
    return f"TRK-{uuid.uuid4().hex[:10].upper()}"


@dataclass
class Order:
    """
    A single gas-cylinder delivery order.
    """

    id: str
    order_id: str
    tracking_id: str
    customer_id: str

    tank_size: str
    delivery_address: str
    delivery_latitude: float
    delivery_longitude: float

    payment_method: PaymentMethod
    amount: Decimal
    total_amount: Decimal

    quantity: int = 1
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_reference: Optional[str] = None

    status: OrderStatus = OrderStatus.PENDING
    driver_id: Optional[str] = None

    assigned_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    delivery_confirmed: bool = False
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[ActorRole] = None
    notes: Optional[str] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def delivery_location(self) -> LatLon:
        return (self.delivery_latitude, self.delivery_longitude)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @staticmethod  # Factory method to create a fresh PENDING order
    def new(
        customer_id: str,
        tank_size: str,
        delivery_address: str,
        delivery_latitude: float,
        delivery_longitude: float,
        payment_method: PaymentMethod | str,
        amount: Decimal | float | str,
        *,
        quantity: int = 1,
        payment_status: PaymentStatus | str = PaymentStatus.PENDING,
        payment_reference: Optional[str] = None,
        notes: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Order:
        if quantity < 1:
            raise ValueError("quantity must be >= 1")

        amount = Decimal(str(amount))
        if amount < 0:
            raise ValueError("amount must be >= 0")

        now = created_at or utcnow()
        return Order(
            id=str(uuid.uuid4()),
            order_id=generate_order_code(),
            tracking_id=generate_tracking_id(),
            customer_id=str(customer_id),
            tank_size=tank_size,
            quantity=quantity,
            delivery_address=delivery_address,
            delivery_latitude=float(delivery_latitude),
            delivery_longitude=float(delivery_longitude),
            payment_method=PaymentMethod(payment_method),
            payment_status=PaymentStatus(payment_status),
            payment_reference=payment_reference,
            amount=amount,
            total_amount=amount * quantity,
            notes=notes,
            created_at=now,
            updated_at=now,
        )


@dataclass(frozen=True)
class TankSize:
    """
    Catalog entry. The order amount always comes from here, never from the client.
    """
    size: str
    name: str
    price: Decimal
    is_active: bool = True


@dataclass
class AssignmentAlarm:
    """
    One per order: the latest driver assignment and whether the driver
    has acknowledged it. Reset on every (re)assignment.
    """
    order_id: str
    driver_id: str
    requested_at: datetime
    status: AlarmStatus = AlarmStatus.PENDING
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    last_reminder_at: Optional[datetime] = None
    reminders_sent: int = 0

    @property
    def is_pending(self) -> bool:
        return self.status == AlarmStatus.PENDING
