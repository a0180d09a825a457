"""
Purpose: Outbound events for customers, drivers and admins.
What it does:
Lifecycle transitions emit OrderEvent objects to an injected push service
(anything with notify(recipient_id, event)). Delivery, retries and device
tokens belong to that service; a failing push service is logged and never
rolls back or fails the transition that emitted the event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple

from orders.models import Order, utcnow

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    ORDER_CREATED = "ORDER_CREATED"
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    ORDER_REASSIGNED = "ORDER_REASSIGNED"
    ORDER_STATUS = "ORDER_STATUS"
    NO_DRIVER_AVAILABLE = "NO_DRIVER_AVAILABLE"
    DRIVER_LOCATION = "DRIVER_LOCATION"
    ASSIGNMENT_REMINDER = "ASSIGNMENT_REMINDER"


ADMIN_RECIPIENT = "admins"

STATUS_MESSAGES = {
    "PENDING": "Your order has been received and is awaiting assignment.",
    "ASSIGNED": "A driver has been assigned and will accept shortly.",
    "ACCEPTED": "Your driver has accepted and is preparing for delivery.",
    "PICKED_UP": "Your gas cylinder has been picked up and delivery is underway.",
    "IN_TRANSIT": "Your driver is en route. Track progress in the app.",
    "DELIVERED": "Your order has been delivered. Thank you!",
    "CANCELLED": "The order has been cancelled. You can place a new one anytime.",
}


@dataclass(frozen=True)
class OrderEvent:
    type: EventType
    order_id: str
    status: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)

    @classmethod
    def for_order(cls, event_type: EventType, order: Order, **payload) -> OrderEvent:
        payload.setdefault("order_code", order.order_id)
        return cls(type=event_type, order_id=order.id, status=order.status.value, payload=payload)


class PushService(Protocol):
    def notify(self, recipient_id: str, event: OrderEvent) -> None: ...


class LoggingPushService:
    """Default push service: writes events to the log and delivers nothing."""

    def notify(self, recipient_id: str, event: OrderEvent) -> None:
        logger.info("event %s for %s: order=%s status=%s", event.type.value, recipient_id, event.order_id, event.status)


class RecordingPushService:
    """Keeps every event in memory. Used by the simulation script and tests."""

    def __init__(self):
        self.sent: List[Tuple[str, OrderEvent]] = []

    def notify(self, recipient_id: str, event: OrderEvent) -> None:
        self.sent.append((recipient_id, event))

    def events_for(self, recipient_id: str) -> List[OrderEvent]:
        return [event for recipient, event in self.sent if recipient == recipient_id]


class EventEmitter:
    """
    Thin wrapper that isolates callers from push service failures.
    """

    def __init__(self, push_service: Optional[PushService] = None):
        self.push_service = push_service or LoggingPushService()

    def emit(self, recipient_id: Optional[str], event: OrderEvent) -> None:
        if not recipient_id:
            return
        try:
            self.push_service.notify(str(recipient_id), event)
        except Exception:
            logger.exception("Failed to deliver %s for order %s to %s", event.type.value, event.order_id, recipient_id)

    def order_status(self, order: Order) -> None:
        event = OrderEvent.for_order(
            EventType.ORDER_STATUS,
            order,
            message=STATUS_MESSAGES.get(order.status.value, f"Order status changed to {order.status.value}"),
        )
        self.emit(order.customer_id, event)
