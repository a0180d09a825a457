"""
Purpose: Persistence boundary for orders, drivers and users.
What it does:
- OrderRepository: the interface the engine is written against.
  All writes that race are conditional:
   - update_order_status is a compare-and-set on the current status
     (and optionally the bound driver)
   - claim_driver flips a driver from available to busy only if still available
   - customer_lock serialises "check active orders, then create" per customer
   - make_driver_available re-checks busy orders and flips the flag in one step
   - resolve_alarm only touches an acknowledgement that is still pending
  atomic() groups several writes (driver claim + order CAS) into one unit.
- InMemoryOrderRepository: thread-safe implementation used by tests,
  scripts and single-process deployments.

Rule: Repository stores and compares; it never decides transitions.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field, fields as dataclass_fields, replace
from datetime import datetime
from typing import AbstractSet, Any, ContextManager, Dict, Iterator, List, Mapping, Optional

from drivers.models import Driver, User
from drivers.selection import filter_eligible_drivers

from .exceptions import ConcurrentModification, DriverUnavailable, OrderNotFound
from .filters import DriverFilter, OrderFilter
from .models import AlarmStatus, AssignmentAlarm, Order, OrderStatus, TankSize, utcnow

# Marker for "do not compare the driver" in update_order_status.
ANY_DRIVER = object()

ORDER_FIELDS = frozenset(f.name for f in dataclass_fields(Order))


def check_update_fields(update: Mapping[str, Any]) -> None:
    unknown = set(update) - ORDER_FIELDS
    if unknown:
        raise ValueError(f"Unknown order fields: {sorted(unknown)}")
    if "id" in update or "status" in update:
        raise ValueError("id and status cannot be changed through fields")


class OrderRepository(ABC):

    # --- Orders ---

    @abstractmethod
    def create_order(self, order: Order) -> Order: ...

    @abstractmethod
    def get_order(self, order_id: str) -> Order:
        """Raises OrderNotFound."""

    @abstractmethod
    def find_order_by_tracking_id(self, tracking_id: str) -> Order:
        """Raises OrderNotFound."""

    @abstractmethod
    def update_order_status(
        self,
        order_id: str,
        expected_status: OrderStatus,
        new_status: OrderStatus,
        fields: Optional[Mapping[str, Any]] = None,
        *,
        expected_driver_id: Any = ANY_DRIVER,
    ) -> Order:
        """
        Atomically set status (and fields) if the stored status still equals
        expected_status (and the stored driver equals expected_driver_id when given).
        Raises OrderNotFound or ConcurrentModification.
        """

    @abstractmethod
    def find_orders(
        self,
        order_filter: OrderFilter,
        *,
        newest_first: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Order]: ...

    @abstractmethod
    def count_orders(self, order_filter: OrderFilter) -> int: ...

    @abstractmethod
    def customer_lock(self, customer_id: str) -> ContextManager[None]:
        """Serialises order creation for one customer."""

    # --- Drivers / users ---

    @abstractmethod
    def get_driver(self, driver_id: str) -> Optional[Driver]: ...

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    def find_available_drivers(self, driver_filter: DriverFilter) -> List[Driver]:
        """Drivers matching the filter in a stable (insertion/primary key) order."""

    @abstractmethod
    def claim_driver(self, driver_id: str) -> bool:
        """Set is_available False only if it is currently True. Returns whether it flipped."""

    @abstractmethod
    def release_driver(self, driver_id: str, *, completed_trip: bool = False) -> None:
        """Mark the driver available again, counting a finished trip if asked."""

    @abstractmethod
    def update_driver_location(self, driver_id: str, lat: float, lon: float, at: datetime) -> Driver: ...

    @abstractmethod
    def set_driver_availability(self, driver_id: str, available: bool) -> Driver: ...

    @abstractmethod
    def make_driver_available(self, driver_id: str, busy_statuses: AbstractSet[OrderStatus]) -> Driver:
        """
        Set is_available True unless the driver holds an order in busy_statuses,
        as one step against concurrent claims. Raises DriverUnavailable when busy,
        KeyError when the driver does not exist.
        """

    # --- Transactions ---

    @abstractmethod
    def atomic(self) -> ContextManager[None]:
        """Writes inside the block commit together or not at all."""

    # --- Tank size catalog ---

    @abstractmethod
    def get_tank_size(self, size: str) -> Optional[TankSize]: ...

    @abstractmethod
    def list_tank_sizes(self, include_inactive: bool = False) -> List[TankSize]:
        """Ordered by size."""

    # --- Assignment acknowledgement ---

    @abstractmethod
    def save_alarm(self, alarm: AssignmentAlarm) -> AssignmentAlarm:
        """Create or replace the alarm of alarm.order_id."""

    @abstractmethod
    def get_alarm(self, order_id: str) -> Optional[AssignmentAlarm]: ...

    @abstractmethod
    def find_pending_alarms(self) -> List[AssignmentAlarm]:
        """PENDING alarms, oldest request first."""

    @abstractmethod
    def resolve_alarm(
        self,
        order_id: str,
        status: AlarmStatus,
        at: datetime,
        *,
        driver_id: Optional[str] = None,
    ) -> Optional[AssignmentAlarm]:
        """
        Move a PENDING alarm (for driver_id when given) to status.
        Returns the updated alarm, or None when there was nothing pending to resolve.
        """

    @abstractmethod
    def record_alarm_reminder(self, order_id: str, at: datetime) -> None: ...


@dataclass
class InMemoryOrderRepository(OrderRepository):
    """
    In-memory store guarded by a single re-entrant lock.
    Records are copied in and out so callers never share mutable state with the store.
    """

    _orders: Dict[str, Order] = field(default_factory=dict)
    _drivers: Dict[str, Driver] = field(default_factory=dict)
    _users: Dict[str, User] = field(default_factory=dict)
    _tank_sizes: Dict[str, TankSize] = field(default_factory=dict)
    _alarms: Dict[str, AssignmentAlarm] = field(default_factory=dict)

    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    _customer_locks: Dict[str, threading.Lock] = field(default_factory=dict, repr=False)

    # --- Seeding helpers (not part of the interface) ---

    def add_user(self, user: User) -> User:
        with self._lock:
            self._users[user.id] = user
        return user

    def add_tank_size(self, tank_size: TankSize) -> TankSize:
        with self._lock:
            self._tank_sizes[tank_size.size] = tank_size
        return tank_size

    def add_driver(self, driver: Driver) -> Driver:
        with self._lock:
            self._drivers[driver.id] = driver
        return driver

    # --- Orders ---

    def create_order(self, order: Order) -> Order:
        with self._lock:
            if order.id in self._orders:
                raise ValueError(f"Order {order.id} already exists")
            self._orders[order.id] = replace(order)
            return replace(order)

    def get_order(self, order_id: str) -> Order:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                raise OrderNotFound(order_id)
            return replace(order)

    def find_order_by_tracking_id(self, tracking_id: str) -> Order:
        with self._lock:
            for order in self._orders.values():
                if order.tracking_id == tracking_id:
                    return replace(order)
        raise OrderNotFound(tracking_id)

    def update_order_status(self, order_id, expected_status, new_status, fields=None, *, expected_driver_id=ANY_DRIVER):
        update = dict(fields or {})
        check_update_fields(update)

        with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                raise OrderNotFound(order_id)

            if current.status != expected_status:
                raise ConcurrentModification(order_id, expected_status)
            if expected_driver_id is not ANY_DRIVER and current.driver_id != expected_driver_id:
                raise ConcurrentModification(order_id, expected_status)

            update.setdefault("updated_at", utcnow())
            stored = replace(current, status=new_status, **update)
            self._orders[order_id] = stored
            return replace(stored)

    def find_orders(self, order_filter, *, newest_first=False, offset=0, limit=None):
        with self._lock:
            matched = [replace(o) for o in self._orders.values() if order_filter.matches(o)]

        matched.sort(key=lambda o: o.created_at, reverse=newest_first)
        end = None if limit is None else offset + limit
        return matched[offset:end]

    def count_orders(self, order_filter):
        with self._lock:
            return sum(1 for o in self._orders.values() if order_filter.matches(o))

    @contextmanager
    def customer_lock(self, customer_id: str) -> Iterator[None]:
        with self._lock:
            lock = self._customer_locks.setdefault(str(customer_id), threading.Lock())
        with lock:
            yield

    # --- Drivers / users ---

    def get_driver(self, driver_id):
        with self._lock:
            return self._drivers.get(str(driver_id))

    def get_user(self, user_id):
        with self._lock:
            return self._users.get(str(user_id))

    def find_available_drivers(self, driver_filter):
        with self._lock:
            return filter_eligible_drivers(list(self._drivers.values()), dict(self._users), driver_filter)

    def claim_driver(self, driver_id):
        with self._lock:
            driver = self._drivers.get(str(driver_id))
            if driver is None or not driver.is_available:
                return False
            self._drivers[driver.id] = replace(driver, is_available=False)
            return True

    def release_driver(self, driver_id, *, completed_trip=False):
        with self._lock:
            driver = self._drivers.get(str(driver_id))
            if driver is None:
                return
            trips = driver.total_trips + 1 if completed_trip else driver.total_trips
            self._drivers[driver.id] = replace(driver, is_available=True, total_trips=trips)

    def update_driver_location(self, driver_id, lat, lon, at):
        with self._lock:
            driver = self._drivers.get(str(driver_id))
            if driver is None:
                raise KeyError(f"Driver {driver_id} not found")
            updated = replace(driver, current_lat=lat, current_long=lon, last_ping_at=at)
            self._drivers[driver.id] = updated
            return updated

    def set_driver_availability(self, driver_id, available):
        with self._lock:
            driver = self._drivers.get(str(driver_id))
            if driver is None:
                raise KeyError(f"Driver {driver_id} not found")
            updated = replace(driver, is_available=available)
            self._drivers[driver.id] = updated
            return updated

    def make_driver_available(self, driver_id, busy_statuses):
        with self._lock:
            driver = self._drivers.get(str(driver_id))
            if driver is None:
                raise KeyError(f"Driver {driver_id} not found")
            if any(o.driver_id == driver.id and o.status in busy_statuses for o in self._orders.values()):
                raise DriverUnavailable(driver.id, "has an order in progress")
            updated = replace(driver, is_available=True)
            self._drivers[driver.id] = updated
            return updated

    # --- Transactions ---

    @contextmanager
    def atomic(self) -> Iterator[None]:
        # nothing to roll back in memory; holding the store lock keeps other writers out
        with self._lock:
            yield

    # --- Tank size catalog ---

    def get_tank_size(self, size):
        with self._lock:
            return self._tank_sizes.get(size)

    def list_tank_sizes(self, include_inactive=False):
        with self._lock:
            sizes = [t for t in self._tank_sizes.values() if include_inactive or t.is_active]
        return sorted(sizes, key=lambda t: t.size)

    # --- Assignment acknowledgement ---

    def save_alarm(self, alarm):
        with self._lock:
            self._alarms[alarm.order_id] = replace(alarm)
            return replace(alarm)

    def get_alarm(self, order_id):
        with self._lock:
            alarm = self._alarms.get(order_id)
            return replace(alarm) if alarm is not None else None

    def find_pending_alarms(self):
        with self._lock:
            pending = [replace(a) for a in self._alarms.values() if a.is_pending]
        return sorted(pending, key=lambda a: a.requested_at)

    def resolve_alarm(self, order_id, status, at, *, driver_id=None):
        with self._lock:
            alarm = self._alarms.get(order_id)
            if alarm is None or not alarm.is_pending:
                return None
            if driver_id is not None and alarm.driver_id != str(driver_id):
                return None
            acknowledged_at = at if status == AlarmStatus.ACKNOWLEDGED else None
            stored = replace(alarm, status=status, acknowledged_at=acknowledged_at, resolved_at=at)
            self._alarms[order_id] = stored
            return replace(stored)

    def record_alarm_reminder(self, order_id, at):
        with self._lock:
            alarm = self._alarms.get(order_id)
            if alarm is not None:
                self._alarms[order_id] = replace(alarm, last_reminder_at=at, reminders_sent=alarm.reminders_sent + 1)
