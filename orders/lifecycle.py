"""
Purpose: The only writer of order state.
What it does:
- create_order: business-rule validation + insert, atomic per customer
- assign / reassign: bind a driver (driver claim and order CAS in one repository
  transaction) and open an acknowledgement alarm for that driver
- acknowledge / expire_assignment / remind_driver: the acknowledgement alarm
- accept / decline / pick_up / start_transit / deliver / confirm_delivery / cancel
- record_payment_result: store a payment outcome on the order
- read helpers for the API layer (active orders, histories, tracking)

Every transition re-reads the order, plans it with the order state
machine, and writes with a compare-and-set on the status and driver it
planned from. Losing the CAS re-plans, up to policy.max_concurrent_retries.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from dispatch.notifications import ADMIN_RECIPIENT, EventEmitter, EventType, OrderEvent, PushService
from dispatch.state_machines.driver_state import completes_trip, releases_driver
from dispatch.state_machines.order_state import OrderAction, plan_transition, transition_fields
from drivers.models import Driver
from routing.geo import distance_km

from .exceptions import (
    ConcurrentModification,
    DriverUnavailable,
    InvalidTransition,
    NoPendingAcknowledgement,
    TankSizeNotFound,
    TransitionNotPermitted,
)
from .filters import OrderFilter
from .models import (
    ACTIVE_STATUSES,
    Actor,
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
from .policy import LifecyclePolicy, default_lifecycle_policy
from .repository import OrderRepository
from .rules import BusinessRulesEngine

logger = logging.getLogger(__name__)

# What happens to an outstanding acknowledgement alarm after each action.
ALARM_OUTCOMES = {
    OrderAction.ACCEPT: AlarmStatus.ACKNOWLEDGED,
    OrderAction.DELIVER: AlarmStatus.ACKNOWLEDGED,
    OrderAction.DECLINE: AlarmStatus.CANCELLED,
    OrderAction.CANCEL: AlarmStatus.CANCELLED,
}


class OrderLifecycle:

    def __init__(
        self,
        repository: OrderRepository,
        rules: Optional[BusinessRulesEngine] = None,
        policy: Optional[LifecyclePolicy] = None,
        push_service: Optional[PushService] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.policy = policy or default_lifecycle_policy()
        self.rules = rules or BusinessRulesEngine(repository, self.policy, clock)
        self.events = EventEmitter(push_service)
        self.clock = clock

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_order(
        self,
        customer_id: str,
        *,
        tank_size: str,
        delivery_address: str,
        delivery_latitude: float,
        delivery_longitude: float,
        payment_method: PaymentMethod | str,
        quantity: int = 1,
        payment_status: PaymentStatus | str = PaymentStatus.PENDING,
        payment_reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Create a PENDING order with no driver, priced from the tank size catalog.
        Raises TankSizeNotFound, ActiveOrderExists or PosPaymentNotAllowed.
        """
        catalog_entry = self.repository.get_tank_size(tank_size)
        if catalog_entry is None or not catalog_entry.is_active:
            raise TankSizeNotFound(tank_size)

        order = Order.new(
            customer_id,
            catalog_entry.size,
            delivery_address,
            delivery_latitude,
            delivery_longitude,
            payment_method,
            catalog_entry.price,
            quantity=quantity,
            payment_status=payment_status,
            payment_reference=payment_reference,
            notes=notes,
            created_at=self.clock(),
        )

        # the check and the insert must not interleave with another request
        with self.repository.customer_lock(order.customer_id):
            self.rules.validate_new_order(order.customer_id, order.payment_method)
            created = self.repository.create_order(order)

        logger.info("Order %s (#%s) created for customer %s", created.id, created.order_id, created.customer_id)

        event = OrderEvent.for_order(EventType.ORDER_CREATED, created, delivery_address=created.delivery_address)
        self.events.emit(created.customer_id, event)
        self.events.emit(ADMIN_RECIPIENT, event)
        return created

    # ------------------------------------------------------------------
    # Driver binding
    # ------------------------------------------------------------------

    def check_driver_eligible(self, driver_id: str) -> Driver:
        """
        The driver must exist, be available, and belong to an active, unblocked user.
        """
        driver = self.repository.get_driver(driver_id)
        if driver is None:
            raise DriverUnavailable(driver_id, "not found")

        if not driver.is_available:
            raise DriverUnavailable(driver_id, "is not available")

        user = self.repository.get_user(driver.user_id)
        if user is None or not user.is_active or user.is_blocked:
            raise DriverUnavailable(driver_id, "account is inactive or blocked")

        return driver

    def assign(self, order_id: str, driver_id: str, actor: Optional[Actor] = None) -> Order:
        """
        PENDING -> ASSIGNED. Raises DriverUnavailable when the driver cannot be claimed.
        """
        actor = actor or Actor.system()
        driver_id = str(driver_id)

        # fail on the order's state before touching the driver
        plan_transition(self.repository.get_order(order_id), OrderAction.ASSIGN, actor)
        driver = self.check_driver_eligible(driver_id)
        _, updated = self._bind_driver(order_id, OrderAction.ASSIGN, actor, driver_id)

        logger.info("Order %s assigned to driver %s by %s", order_id, driver_id, actor.role.value)
        self._notify_driver_assigned(updated, driver)
        self.events.order_status(updated)
        return updated

    def reassign(self, order_id: str, driver_id: str, actor: Actor) -> Order:
        """
        ASSIGNED/ACCEPTED -> ASSIGNED with a different driver (admin only).
        The previous driver is released and told the order moved.
        """
        driver_id = str(driver_id)
        current = self.repository.get_order(order_id)
        plan_transition(current, OrderAction.REASSIGN, actor)

        if current.driver_id == driver_id:
            return current

        driver = self.check_driver_eligible(driver_id)
        before, updated = self._bind_driver(order_id, OrderAction.REASSIGN, actor, driver_id)

        previous_driver_id = before.driver_id
        if previous_driver_id and previous_driver_id != driver_id:
            self.repository.release_driver(previous_driver_id)
            self.events.emit(
                previous_driver_id,
                OrderEvent.for_order(
                    EventType.ORDER_REASSIGNED, updated, new_driver_id=driver_id, requires_acknowledgement=True
                ),
            )

        logger.info("Order %s reassigned from driver %s to %s by admin %s", order_id, previous_driver_id, driver_id, actor.id)
        self._notify_driver_assigned(updated, driver, reassigned=True)
        self.events.order_status(updated)
        return updated

    # ------------------------------------------------------------------
    # Driver / customer actions
    # ------------------------------------------------------------------

    def accept(self, order_id: str, actor: Actor) -> Order:
        return self._transition(order_id, OrderAction.ACCEPT, actor)

    def decline(
        self,
        order_id: str,
        actor: Actor,
        reason: Optional[str] = None,
        *,
        expected_driver_id: Optional[str] = None,
    ) -> Order:
        """
        ASSIGNED -> PENDING; the order is free for the next matching attempt.
        With expected_driver_id the decline only applies while that driver still holds the order.
        """
        updated = self._transition(
            order_id, OrderAction.DECLINE, actor, reason=reason, expected_driver_id=expected_driver_id
        )
        self.events.emit(ADMIN_RECIPIENT, OrderEvent.for_order(EventType.ORDER_STATUS, updated, declined_reason=reason))
        return updated

    def pick_up(self, order_id: str, actor: Actor) -> Order:
        return self._transition(order_id, OrderAction.PICK_UP, actor)

    def start_transit(self, order_id: str, actor: Actor) -> Order:
        return self._transition(order_id, OrderAction.START_TRANSIT, actor)

    def deliver(self, order_id: str, actor: Actor) -> Order:
        return self._transition(order_id, OrderAction.DELIVER, actor)

    def confirm_delivery(self, order_id: str, actor: Actor) -> Order:
        """
        Idempotent: a second confirmation returns the order unchanged.
        """
        current = self.repository.get_order(order_id)
        plan_transition(current, OrderAction.CONFIRM_DELIVERY, actor)
        if current.delivery_confirmed:
            return current
        _, updated = self._apply(order_id, OrderAction.CONFIRM_DELIVERY, actor)
        logger.info("Delivery of order %s confirmed", order_id)
        return updated

    def cancel(self, order_id: str, actor: Actor, reason: Optional[str] = None) -> Order:
        return self._transition(order_id, OrderAction.CANCEL, actor, reason=reason)

    # ------------------------------------------------------------------
    # Assignment acknowledgement
    # ------------------------------------------------------------------

    def get_pending_acknowledgement(self, order_id: str) -> Optional[AssignmentAlarm]:
        alarm = self.repository.get_alarm(order_id)
        return alarm if alarm is not None and alarm.is_pending else None

    def acknowledge(self, order_id: str, actor: Actor) -> AssignmentAlarm:
        """
        The assigned driver confirms they saw the assignment; stops reminders
        and the timeout. The order itself stays ASSIGNED until accepted.
        """
        order = self.repository.get_order(order_id)
        alarm = self.get_pending_acknowledgement(order_id)
        if alarm is None:
            raise NoPendingAcknowledgement(order_id)

        if actor.role != ActorRole.DRIVER or actor.id != alarm.driver_id:
            raise TransitionNotPermitted(order_id, order.status.value, "acknowledge", actor)

        resolved = self.repository.resolve_alarm(order_id, AlarmStatus.ACKNOWLEDGED, self.clock(), driver_id=actor.id)
        if resolved is None:
            # accepted, declined or reassigned in the meantime
            raise NoPendingAcknowledgement(order_id)

        logger.info("Driver %s acknowledged assignment of order %s", actor.id, order_id)
        return resolved

    def expire_assignment(self, order_id: str, driver_id: str) -> Optional[Order]:
        """
        Acknowledgement timeout: the system declines on behalf of the driver.
        Returns the PENDING order, or None when the driver no longer holds it
        (the stale alarm is closed instead).
        """
        order = self.repository.get_order(order_id)
        if order.status != OrderStatus.ASSIGNED or order.driver_id != driver_id:
            self.repository.resolve_alarm(order_id, AlarmStatus.CANCELLED, self.clock(), driver_id=driver_id)
            return None

        logger.warning("Driver %s did not acknowledge order %s in time", driver_id, order_id)
        return self.decline(
            order_id,
            Actor.system("acknowledgement-timeout"),
            "Driver did not acknowledge the assignment",
            expected_driver_id=driver_id,
        )

    def remind_driver(self, alarm: AssignmentAlarm) -> None:
        order = self.repository.get_order(alarm.order_id)
        self.events.emit(
            alarm.driver_id,
            OrderEvent.for_order(
                EventType.ASSIGNMENT_REMINDER,
                order,
                message=f"Order #{order.order_id} is waiting for your confirmation",
                requires_acknowledgement=True,
            ),
        )
        self.repository.record_alarm_reminder(alarm.order_id, self.clock())

    def record_payment_result(
        self,
        order_id: str,
        payment_status: PaymentStatus | str,
        reference: Optional[str] = None,
    ) -> Order:
        """
        Store a payment outcome. Recording the same outcome twice is a no-op;
        a COMPLETED payment is final and cancelled orders take no payments.
        """
        payment_status = PaymentStatus(payment_status)

        for attempt in range(self.policy.max_concurrent_retries):
            current = self.repository.get_order(order_id)

            if current.status == OrderStatus.CANCELLED:
                raise InvalidTransition(order_id, current.status.value, "record payment for")
            if current.payment_status == payment_status and reference in (None, current.payment_reference):
                return current
            if current.payment_status == PaymentStatus.COMPLETED:
                raise InvalidTransition(
                    order_id, current.status.value, "record payment for",
                    message=f"Payment for order {order_id} is already completed.",
                )

            fields = {"payment_status": payment_status}
            if reference:
                fields["payment_reference"] = reference
            try:
                updated = self.repository.update_order_status(
                    order_id, current.status, current.status, fields, expected_driver_id=current.driver_id
                )
            except ConcurrentModification:
                logger.debug("Payment update for %s lost a race (attempt %d)", order_id, attempt + 1)
                continue

            logger.info("Order %s payment %s", order_id, payment_status.value)
            return updated

        raise ConcurrentModification(order_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        return self.repository.get_order(order_id)

    def list_tank_sizes(self, include_inactive: bool = False) -> List[TankSize]:
        return self.repository.list_tank_sizes(include_inactive)

    def track_order(self, tracking_id: str) -> Order:
        return self.repository.find_order_by_tracking_id(tracking_id)

    def get_active_orders(self, customer_id: str) -> List[Order]:
        return self.repository.find_orders(
            OrderFilter(customer_id=str(customer_id), statuses=ACTIVE_STATUSES), newest_first=True
        )

    def get_customer_history(self, customer_id: str) -> List[Order]:
        return self.repository.find_orders(OrderFilter(customer_id=str(customer_id)), newest_first=True)

    def get_driver_history(self, driver_id: str, page: int = 1, limit: int = 20) -> Tuple[List[Order], int]:
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be >= 1")
        order_filter = OrderFilter(driver_id=str(driver_id))
        orders = self.repository.find_orders(order_filter, newest_first=True, offset=(page - 1) * limit, limit=limit)
        return orders, self.repository.count_orders(order_filter)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(
        self,
        order_id: str,
        action: OrderAction,
        actor: Actor,
        reason: Optional[str] = None,
        expected_driver_id: Optional[str] = None,
    ) -> Order:
        before, updated = self._apply(order_id, action, actor, reason=reason, expected_driver_id=expected_driver_id)

        alarm_outcome = ALARM_OUTCOMES.get(action)
        if alarm_outcome is not None and before.driver_id:
            if action == OrderAction.DECLINE and actor.role == ActorRole.SYSTEM:
                alarm_outcome = AlarmStatus.EXPIRED
            self.repository.resolve_alarm(order_id, alarm_outcome, self.clock(), driver_id=before.driver_id)

        if before.driver_id and releases_driver(action):
            self.repository.release_driver(before.driver_id, completed_trip=completes_trip(action))
            if action == OrderAction.CANCEL and actor.id != before.driver_id:
                self.events.emit(before.driver_id, OrderEvent.for_order(EventType.ORDER_STATUS, updated, reason=reason))

        logger.info("Order %s: %s -> %s (%s by %s)", order_id, before.status.value, updated.status.value, action.value, actor.role.value)
        self.events.order_status(updated)
        return updated

    def _apply(
        self,
        order_id: str,
        action: OrderAction,
        actor: Actor,
        *,
        driver_id: Optional[str] = None,
        reason: Optional[str] = None,
        expected_driver_id: Optional[str] = None,
    ) -> Tuple[Order, Order]:
        """
        Plan and compare-and-set one transition. Returns (order before, order after).
        """
        for attempt in range(self.policy.max_concurrent_retries):
            current = self.repository.get_order(order_id)
            if expected_driver_id is not None and current.driver_id != expected_driver_id:
                raise InvalidTransition(
                    order_id, current.status.value, action.value,
                    message=f"Order {order_id} is no longer held by driver {expected_driver_id}.",
                )
            target = plan_transition(current, action, actor)
            fields = transition_fields(current, action, self.clock(), actor, driver_id=driver_id, reason=reason)

            try:
                updated = self.repository.update_order_status(
                    order_id, current.status, target, fields, expected_driver_id=current.driver_id
                )
            except ConcurrentModification:
                logger.debug("Order %s %s lost a race (attempt %d)", order_id, action.value, attempt + 1)
                continue

            return current, updated

        logger.warning("Order %s %s gave up after %d attempts", order_id, action.value, self.policy.max_concurrent_retries)
        raise ConcurrentModification(order_id)

    def _bind_driver(self, order_id: str, action: OrderAction, actor: Actor, driver_id: str) -> Tuple[Order, Order]:
        """
        Claim the driver and move the order in one repository transaction, then
        open a fresh acknowledgement alarm for the new driver.
        """
        with self.repository.atomic():
            if not self.repository.claim_driver(driver_id):
                raise DriverUnavailable(driver_id, "was claimed by another order")
            try:
                before, updated = self._apply(order_id, action, actor, driver_id=driver_id)
            except Exception:
                self.repository.release_driver(driver_id)
                raise

        self.repository.save_alarm(AssignmentAlarm(order_id=order_id, driver_id=driver_id, requested_at=self.clock()))
        return before, updated

    def _notify_driver_assigned(self, order: Order, driver: Driver, reassigned: bool = False) -> None:
        payload = {"delivery_address": order.delivery_address, "reassigned": reassigned}
        if driver.location is not None:
            payload["estimated_distance_km"] = round(
                distance_km(order.delivery_latitude, order.delivery_longitude, driver.current_lat, driver.current_long), 1
            )
        self.events.emit(driver.id, OrderEvent.for_order(EventType.DRIVER_ASSIGNED, order, **payload))
