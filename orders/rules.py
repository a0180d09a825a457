"""
Purpose: Business rules that gate ordering.
What it does:
- Active-order restriction: a customer may hold only one order that is
  not DELIVERED or CANCELLED.
- POS eligibility: a customer may pay on delivery by POS only after at
  least one successful POS payment, and only if no POS payment failed
  inside the trailing window (30 days by default).

Rule: Read-only. Callers that create orders must run validate_new_order
inside repository.customer_lock so the check and the insert are atomic.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from .exceptions import ActiveOrderExists, PosPaymentNotAllowed
from .filters import OrderFilter
from .models import ACTIVE_STATUSES, PaymentMethod, PaymentStatus, utcnow
from .policy import LifecyclePolicy, default_lifecycle_policy
from .repository import OrderRepository

logger = logging.getLogger(__name__)


class BusinessRulesEngine:

    def __init__(
        self,
        repository: OrderRepository,
        policy: Optional[LifecyclePolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.policy = policy or default_lifecycle_policy()
        self.clock = clock

    def has_active_order(self, customer_id: str) -> bool:
        active = self.repository.count_orders(
            OrderFilter(customer_id=str(customer_id), statuses=ACTIVE_STATUSES)
        )
        return active > 0

    def can_use_pos(self, customer_id: str) -> bool:
        """
        successful_pos_ever > 0 and failed_pos_in_window == 0.
        A customer with no POS history is not eligible.
        """
        customer_id = str(customer_id)
        window_start = self.clock() - timedelta(days=self.policy.pos_failure_window_days)

        failed_recently = self.repository.count_orders(
            OrderFilter(
                customer_id=customer_id,
                payment_method=PaymentMethod.POS,
                payment_status=PaymentStatus.FAILED,
                created_since=window_start,
            )
        )
        if failed_recently > 0:
            return False

        successful_ever = self.repository.count_orders(
            OrderFilter(
                customer_id=customer_id,
                payment_method=PaymentMethod.POS,
                payment_status=PaymentStatus.COMPLETED,
            )
        )
        return successful_ever > 0

    def validate_new_order(self, customer_id: str, payment_method: PaymentMethod) -> None:
        """
        Raises ActiveOrderExists or PosPaymentNotAllowed.
        """
        if self.has_active_order(customer_id):
            logger.info("Rejected order for customer %s: active order exists", customer_id)
            raise ActiveOrderExists(customer_id)

        if PaymentMethod(payment_method) == PaymentMethod.POS and not self.can_use_pos(customer_id):
            logger.info("Rejected POS order for customer %s: not eligible", customer_id)
            raise PosPaymentNotAllowed(customer_id)
