"""
Purpose: Pick the best driver for a pending order and bind them.
What it does:
- find_best_available_driver: candidate filter -> scorer -> top of the ranking
- assign_driver: manual (given driver) or auto (ranked candidates, next-best on contention)
- sweep_pending_orders: periodic retry of orders still waiting for a driver
- sweep_unacknowledged_assignments: remind silent drivers, then take the order back
- reassign_after_decline: auto-match again without the driver who declined

Binding itself goes through OrderLifecycle so the claim-driver-then-CAS-order
sequence and its invariants live in one place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, List, Optional

from drivers.policy import ScoringPolicy, default_scoring_policy
from orders.exceptions import (
    ConcurrentModification,
    DriverUnavailable,
    InvalidTransition,
    NoDriverAvailable,
    OrderEngineError,
)
from orders.filters import OrderFilter
from orders.models import Actor, Order, OrderStatus

from .candidate_filter import build_base_candidates
from .notifications import ADMIN_RECIPIENT, EventType, OrderEvent
from .scoring import DriverScore, rank_candidates

if TYPE_CHECKING:
    from orders.lifecycle import OrderLifecycle

logger = logging.getLogger(__name__)


@dataclass
class AssignmentResult:
    order: Order
    driver_id: Optional[str] = None
    score: Optional[float] = None
    error: Optional[OrderEngineError] = None
    candidates_tried: List[str] = field(default_factory=list)

    @property
    def assigned(self) -> bool:
        return self.driver_id is not None and self.error is None


class DriverMatcher:

    def __init__(self, lifecycle: OrderLifecycle, policy: Optional[ScoringPolicy] = None):
        self.lifecycle = lifecycle
        self.repository = lifecycle.repository
        self.policy = policy or default_scoring_policy()

    def rank_drivers(self, order: Order, exclude_driver_ids: Iterable[str] = ()) -> List[DriverScore]:
        candidates = build_base_candidates(self.repository, self.policy, exclude_driver_ids)
        return rank_candidates(candidates, order.delivery_location, self.policy)

    def find_best_available_driver(self, order: Order, exclude_driver_ids: Iterable[str] = ()) -> Optional[str]:
        ranking = self.rank_drivers(order, exclude_driver_ids)
        if not ranking:
            return None
        return ranking[0].driver_id

    def assign_driver(
        self,
        order_id: str,
        driver_id: Optional[str] = None,
        actor: Optional[Actor] = None,
        exclude_driver_ids: Iterable[str] = (),
    ) -> AssignmentResult:
        """
        Manual when driver_id is given: raises DriverUnavailable / InvalidTransition.
        Auto otherwise: never raises NoDriverAvailable, it is returned in result.error.
        """
        actor = actor or Actor.system()

        if driver_id is not None:
            return self._assign_manually(order_id, str(driver_id), actor)

        return self._assign_automatically(order_id, actor, exclude_driver_ids)

    def reassign_after_decline(self, order_id: str, declined_driver_id: str) -> AssignmentResult:
        return self._assign_automatically(order_id, Actor.system(), exclude_driver_ids=[declined_driver_id])

    def sweep_pending_orders(self, limit: Optional[int] = None) -> List[AssignmentResult]:
        """
        Try to place every PENDING order, oldest first.
        Stops at the first order nobody can take since later ones would fail too.
        """
        pending = self.repository.find_orders(
            OrderFilter(statuses=frozenset({OrderStatus.PENDING})), limit=limit
        )
        results = []
        for order in pending:
            result = self._assign_automatically(order.id, Actor.system("pending-sweep"))
            results.append(result)
            if isinstance(result.error, NoDriverAvailable):
                break

        assigned = sum(1 for r in results if r.assigned)
        if pending:
            logger.info("Pending sweep: %d/%d orders assigned", assigned, len(pending))
        return results

    def sweep_unacknowledged_assignments(self) -> List[AssignmentResult]:
        """
        Walk the outstanding acknowledgement alarms:
        - past policy.acknowledgement_timeout_s: system decline, then re-match without that driver
        - otherwise remind the driver every policy.alarm_reminder_interval_s
        Returns one result per order that was taken away from its driver.
        """
        policy = self.lifecycle.policy
        now = self.lifecycle.clock()
        results = []

        for alarm in self.repository.find_pending_alarms():
            waited = (now - alarm.requested_at).total_seconds()

            if waited >= policy.acknowledgement_timeout_s:
                try:
                    declined = self.lifecycle.expire_assignment(alarm.order_id, alarm.driver_id)
                except (InvalidTransition, ConcurrentModification) as exc:
                    # the driver acted on the order while we were looking at it
                    logger.info("Skipping expiry of order %s: %s", alarm.order_id, exc)
                    continue
                if declined is not None:
                    results.append(self.reassign_after_decline(alarm.order_id, alarm.driver_id))
                continue

            last_push = alarm.last_reminder_at or alarm.requested_at
            if (now - last_push).total_seconds() >= policy.alarm_reminder_interval_s:
                self.lifecycle.remind_driver(alarm)

        if results:
            logger.info("Acknowledgement sweep: %d orders taken back from silent drivers", len(results))
        return results

    # ------------------------------------------------------------------

    def _assign_manually(self, order_id: str, driver_id: str, actor: Actor) -> AssignmentResult:
        order = self.repository.get_order(order_id)

        if order.status == OrderStatus.PENDING:
            updated = self.lifecycle.assign(order_id, driver_id, actor)
        else:
            # admin moving an already bound order; the state machine rejects anyone else
            updated = self.lifecycle.reassign(order_id, driver_id, actor)

        return AssignmentResult(order=updated, driver_id=driver_id, candidates_tried=[driver_id])

    def _assign_automatically(
        self,
        order_id: str,
        actor: Actor,
        exclude_driver_ids: Iterable[str] = (),
    ) -> AssignmentResult:
        order = self.repository.get_order(order_id)
        if order.status != OrderStatus.PENDING:
            logger.debug("Order %s is %s, skipping auto-assignment", order_id, order.status.value)
            return AssignmentResult(order=order, driver_id=order.driver_id)

        ranking = self.rank_drivers(order, exclude_driver_ids)
        tried = []

        for candidate in ranking:
            tried.append(candidate.driver_id)
            try:
                updated = self.lifecycle.assign(order_id, candidate.driver_id, actor)
            except (DriverUnavailable, ConcurrentModification) as exc:
                # lost this driver to another order, try the next best
                logger.info("Driver %s unavailable for order %s: %s", candidate.driver_id, order_id, exc)
                continue
            except InvalidTransition:
                # another request already moved the order out of PENDING
                current = self.repository.get_order(order_id)
                return AssignmentResult(order=current, driver_id=current.driver_id, candidates_tried=tried)

            logger.info(
                "Order %s auto-assigned to driver %s (score %.2f, %.2f km)",
                order_id, candidate.driver_id, candidate.score, candidate.distance_km,
            )
            return AssignmentResult(order=updated, driver_id=candidate.driver_id, score=candidate.score, candidates_tried=tried)

        logger.info("No available drivers for order %s (%d candidates tried)", order_id, len(tried))
        error = NoDriverAvailable(order_id)
        current = self.repository.get_order(order_id)
        self.lifecycle.events.emit(
            ADMIN_RECIPIENT,
            OrderEvent.for_order(EventType.NO_DRIVER_AVAILABLE, current, message="Order will be assigned manually by admin."),
        )
        return AssignmentResult(order=current, error=error, candidates_tried=tried)
