"""
Purpose: Typed query filters for the repository layer.
What it does:
One explicit struct per query shape, so repository implementations
(in-memory, Django) translate a known set of fields instead of a loose dict.
Fields left as None do not constrain the query.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import FrozenSet, Optional

from .models import Order, OrderStatus, PaymentMethod, PaymentStatus


@dataclass(frozen=True)
class OrderFilter:
    customer_id: Optional[str] = None
    driver_id: Optional[str] = None
    statuses: Optional[FrozenSet[OrderStatus]] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatus] = None
    created_since: Optional[datetime] = None  # inclusive

    def matches(self, order: Order) -> bool:
        if self.customer_id is not None and order.customer_id != self.customer_id:
            return False
        if self.driver_id is not None and order.driver_id != self.driver_id:
            return False
        if self.statuses is not None and order.status not in self.statuses:
            return False
        if self.payment_method is not None and order.payment_method != self.payment_method:
            return False
        if self.payment_status is not None and order.payment_status != self.payment_status:
            return False
        if self.created_since is not None and order.created_at < self.created_since:
            return False
        return True


@dataclass(frozen=True)
class DriverFilter:
    """
    Eligibility query for matching. Defaults are the auto-assignment rule:
    available drivers whose user account is active and not blocked.
    """
    is_available: Optional[bool] = True
    user_is_active: Optional[bool] = True
    user_is_blocked: Optional[bool] = False
    exclude_driver_ids: FrozenSet[str] = frozenset()
    require_location: bool = True
