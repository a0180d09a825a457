"""
Purpose: Orchestrator / decision pipeline (the "glue").
What it does:
One object the API layer talks to. It wires the repository, business
rules, order lifecycle and driver matcher together and adds the
cross-component flows:
- place_order: create, then auto-assign when the policy says so
- decline: hand the order back, then look for another driver
- record_payment_result: a completed payment on a driverless order triggers matching
- sweep_acknowledgements: take orders back from drivers who never acknowledged them
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, List, Optional

from drivers.policy import ScoringPolicy
from orders.models import Actor, AssignmentAlarm, Order, OrderStatus, PaymentStatus, TankSize, utcnow

from .matcher import AssignmentResult, DriverMatcher
from .notifications import PushService

if TYPE_CHECKING:
    from datetime import datetime

    from orders.lifecycle import OrderLifecycle
    from orders.policy import LifecyclePolicy
    from orders.repository import OrderRepository
    from orders.rules import BusinessRulesEngine

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Coordinates order placement, driver matching and lifecycle actions.
    """

    def __init__(self, lifecycle: OrderLifecycle, matcher: Optional[DriverMatcher] = None):
        self.lifecycle = lifecycle
        self.matcher = matcher or DriverMatcher(lifecycle)

    @classmethod
    def build(
        cls,
        repository: OrderRepository,
        *,
        push_service: Optional[PushService] = None,
        lifecycle_policy: Optional[LifecyclePolicy] = None,
        scoring_policy: Optional[ScoringPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> Dispatcher:
        from orders.lifecycle import OrderLifecycle

        lifecycle = OrderLifecycle(repository, policy=lifecycle_policy, push_service=push_service, clock=clock)
        return cls(lifecycle, DriverMatcher(lifecycle, scoring_policy))

    @property
    def rules(self) -> BusinessRulesEngine:
        return self.lifecycle.rules

    # --- Customer ---

    def place_order(self, customer_id: str, **order_fields) -> Order:
        """
        Create the order and, if enabled, try to assign a driver straight away.
        The returned order is PENDING when nobody could be matched.
        """
        order = self.lifecycle.create_order(customer_id, **order_fields)

        if not self.lifecycle.policy.auto_assign_on_create:
            return order

        result = self.matcher.assign_driver(order.id)
        if not result.assigned:
            logger.info("Order %s waiting for a driver: %s", order.id, result.error)
        return result.order

    def has_active_order(self, customer_id: str) -> bool:
        return self.rules.has_active_order(customer_id)

    def can_use_pos(self, customer_id: str) -> bool:
        return self.rules.can_use_pos(customer_id)

    def confirm_delivery(self, order_id: str, actor: Actor) -> Order:
        return self.lifecycle.confirm_delivery(order_id, actor)

    def cancel(self, order_id: str, actor: Actor, reason: Optional[str] = None) -> Order:
        return self.lifecycle.cancel(order_id, actor, reason)

    # --- Admin / system ---

    def assign(self, order_id: str, driver_id: Optional[str] = None, actor: Optional[Actor] = None) -> AssignmentResult:
        return self.matcher.assign_driver(order_id, driver_id, actor)

    def sweep(self, limit: Optional[int] = None):
        return self.matcher.sweep_pending_orders(limit)

    def sweep_acknowledgements(self) -> List[AssignmentResult]:
        return self.matcher.sweep_unacknowledged_assignments()

    def record_payment_result(self, order_id: str, payment_status: PaymentStatus | str, reference: Optional[str] = None) -> Order:
        order = self.lifecycle.record_payment_result(order_id, payment_status, reference)

        if order.payment_status == PaymentStatus.COMPLETED and order.status == OrderStatus.PENDING and order.driver_id is None:
            order = self.matcher.assign_driver(order.id).order
        return order

    # --- Driver ---

    def accept(self, order_id: str, actor: Actor) -> Order:
        return self.lifecycle.accept(order_id, actor)

    def decline(self, order_id: str, actor: Actor, reason: Optional[str] = None) -> AssignmentResult:
        """
        Release the order and offer it to the next best driver, skipping the one who declined.
        """
        before = self.lifecycle.get_order(order_id)
        self.lifecycle.decline(order_id, actor, reason)
        declined_driver_id = before.driver_id or actor.id
        return self.matcher.reassign_after_decline(order_id, declined_driver_id)

    def pick_up(self, order_id: str, actor: Actor) -> Order:
        return self.lifecycle.pick_up(order_id, actor)

    def start_transit(self, order_id: str, actor: Actor) -> Order:
        return self.lifecycle.start_transit(order_id, actor)

    def deliver(self, order_id: str, actor: Actor) -> Order:
        return self.lifecycle.deliver(order_id, actor)

    def acknowledge(self, order_id: str, actor: Actor) -> AssignmentAlarm:
        return self.lifecycle.acknowledge(order_id, actor)

    def pending_acknowledgement(self, order_id: str) -> Optional[AssignmentAlarm]:
        return self.lifecycle.get_pending_acknowledgement(order_id)

    # --- Catalog ---

    def list_tank_sizes(self, include_inactive: bool = False) -> List[TankSize]:
        return self.lifecycle.list_tank_sizes(include_inactive)
