"""
Order state machine.

PENDING -> ASSIGNED -> ACCEPTED -> PICKED_UP -> IN_TRANSIT -> DELIVERED
CANCELLED is reachable from PENDING, ASSIGNED, ACCEPTED and PICKED_UP.

Pure functions over (order, action, actor). They decide the target status
and the fields that change; they never write. OrderLifecycle applies the
result with a compare-and-set on the status it planned from.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from orders.exceptions import InvalidTransition, TransitionNotPermitted
from orders.models import DRIVER_BOUND_STATUSES, Actor, ActorRole, Order, OrderStatus


class OrderAction(str, Enum):
    ASSIGN = "assign"
    REASSIGN = "reassign"
    ACCEPT = "accept"
    DECLINE = "decline"
    PICK_UP = "pick_up"
    START_TRANSIT = "start_transit"
    DELIVER = "deliver"
    CONFIRM_DELIVERY = "confirm_delivery"
    CANCEL = "cancel"


@dataclass(frozen=True)
class TransitionRule:
    sources: FrozenSet[OrderStatus]
    target: OrderStatus
    actors: FrozenSet[ActorRole]


_S = OrderStatus
_A = ActorRole

TRANSITIONS: Dict[OrderAction, TransitionRule] = {
    OrderAction.ASSIGN: TransitionRule(
        frozenset({_S.PENDING}), _S.ASSIGNED, frozenset({_A.ADMIN, _A.SYSTEM})),
    OrderAction.REASSIGN: TransitionRule(
        frozenset({_S.ASSIGNED, _S.ACCEPTED}), _S.ASSIGNED, frozenset({_A.ADMIN})),
    OrderAction.ACCEPT: TransitionRule(
        frozenset({_S.ASSIGNED}), _S.ACCEPTED, frozenset({_A.DRIVER})),
    # SYSTEM declines on behalf of a driver who never acknowledged the offer
    OrderAction.DECLINE: TransitionRule(
        frozenset({_S.ASSIGNED}), _S.PENDING, frozenset({_A.DRIVER, _A.SYSTEM})),
    OrderAction.PICK_UP: TransitionRule(
        frozenset({_S.ACCEPTED}), _S.PICKED_UP, frozenset({_A.DRIVER})),
    OrderAction.START_TRANSIT: TransitionRule(
        frozenset({_S.ACCEPTED, _S.PICKED_UP}), _S.IN_TRANSIT, frozenset({_A.DRIVER})),
    OrderAction.DELIVER: TransitionRule(
        frozenset({_S.IN_TRANSIT}), _S.DELIVERED, frozenset({_A.DRIVER})),
    OrderAction.CONFIRM_DELIVERY: TransitionRule(
        frozenset({_S.DELIVERED}), _S.DELIVERED, frozenset({_A.CUSTOMER, _A.ADMIN})),
    OrderAction.CANCEL: TransitionRule(
        frozenset({_S.PENDING, _S.ASSIGNED, _S.ACCEPTED, _S.PICKED_UP}),
        _S.CANCELLED,
        frozenset({_A.CUSTOMER, _A.DRIVER, _A.ADMIN}),
    ),
}


def is_permitted_actor(order: Order, action: OrderAction, actor: Actor) -> bool:
    """
    Customers act only on their own orders, drivers only on orders bound to them.
    """
    rule = TRANSITIONS[action]
    if actor.role not in rule.actors:
        return False

    if actor.role == ActorRole.CUSTOMER:
        return actor.id == order.customer_id
    if actor.role == ActorRole.DRIVER:
        return order.driver_id is not None and actor.id == order.driver_id
    return True


def plan_transition(order: Order, action: OrderAction, actor: Actor) -> OrderStatus:
    """
    Returns the status the order moves to, or raises InvalidTransition
    (wrong status) / TransitionNotPermitted (wrong caller).
    """
    rule = TRANSITIONS[action]

    if order.status not in rule.sources:
        raise InvalidTransition(order.id, order.status.value, action.value)

    if not is_permitted_actor(order, action, actor):
        raise TransitionNotPermitted(order.id, order.status.value, action.value, actor)

    return rule.target


def transition_fields(
    order: Order,
    action: OrderAction,
    now: datetime,
    actor: Actor,
    *,
    driver_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Field changes that accompany a transition (driver binding and timestamps).
    """
    if action in (OrderAction.ASSIGN, OrderAction.REASSIGN):
        if not driver_id:
            raise ValueError(f"{action.value} needs a driver_id")
        return {"driver_id": driver_id, "assigned_at": now, "accepted_at": None}

    if action == OrderAction.ACCEPT:
        return {"accepted_at": now}

    if action == OrderAction.DECLINE:
        note = f"Previous driver declined: {reason}" if reason else "Previous driver declined"
        if order.notes:
            note = f"{order.notes}\n{note}"
        return {"driver_id": None, "assigned_at": None, "accepted_at": None, "notes": note}

    if action == OrderAction.PICK_UP:
        return {"picked_up_at": now}

    if action == OrderAction.START_TRANSIT:
        # drivers may skip the explicit pickup step
        return {} if order.picked_up_at else {"picked_up_at": now}

    if action == OrderAction.DELIVER:
        return {"delivered_at": now}

    if action == OrderAction.CONFIRM_DELIVERY:
        return {"delivery_confirmed": True}

    if action == OrderAction.CANCEL:
        return {
            "driver_id": None,
            "cancelled_at": now,
            "cancellation_reason": reason,
            "cancelled_by": actor.role,
        }

    raise ValueError(f"Unknown action {action}")


def driver_binding_is_consistent(order: Order) -> bool:
    """driver_id is set exactly when the status is one of DRIVER_BOUND_STATUSES."""
    return (order.driver_id is not None) == (order.status in DRIVER_BOUND_STATUSES)
