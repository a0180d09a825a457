"""
Purpose: Central configuration for the order lifecycle and business rules.
What it does:

Stores all tunable thresholds:

POS_FAILURE_WINDOW_DAYS = 30
MAX_CONCURRENT_RETRIES = 3
AUTO_ASSIGN_ON_CREATE = True
ACKNOWLEDGEMENT_TIMEOUT_S = 300
ALARM_REMINDER_INTERVAL_S = 120

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class LifecyclePolicy:
    """
    Central configuration for order creation, transitions and payment rules.
    """

    # --- POS eligibility ---
    # A failed POS payment inside this trailing window blocks POS.
    pos_failure_window_days: int = 30

    # --- Optimistic concurrency ---
    # How many times a transition re-reads and re-tries after losing a
    # compare-and-set before ConcurrentModification reaches the caller.
    max_concurrent_retries: int = 3

    # --- Dispatch ---
    # Run auto-assignment straight after an order is created.
    auto_assign_on_create: bool = True

    # --- Assignment acknowledgement ---
    # An assigned driver who neither acknowledges nor accepts within this
    # many seconds is declined by the system and the order is re-matched.
    acknowledgement_timeout_s: int = 300
    # Reminder pushes to the driver while the acknowledgement is outstanding.
    alarm_reminder_interval_s: int = 120

    def validate(self) -> None:
        if self.pos_failure_window_days <= 0:
            raise ValueError("pos_failure_window_days must be > 0")

        if self.max_concurrent_retries < 1:
            raise ValueError("max_concurrent_retries must be >= 1")

        if self.acknowledgement_timeout_s <= 0:
            raise ValueError("acknowledgement_timeout_s must be > 0")

        # reminders closer than 30 s apart would flood the driver
        if self.alarm_reminder_interval_s < 30:
            raise ValueError("alarm_reminder_interval_s must be >= 30")

    @classmethod
    def from_env(cls) -> LifecyclePolicy:
        """
        Build a policy from EGAS_* environment variables (a .env file is honoured).
        """
        load_dotenv()
        p = cls(
            pos_failure_window_days=int(os.getenv("EGAS_POS_FAILURE_WINDOW_DAYS", cls.pos_failure_window_days)),
            max_concurrent_retries=int(os.getenv("EGAS_MAX_CONCURRENT_RETRIES", cls.max_concurrent_retries)),
            auto_assign_on_create=os.getenv("EGAS_AUTO_ASSIGN_ON_CREATE", "true").lower() in ("1", "true", "yes"),
            acknowledgement_timeout_s=int(os.getenv("EGAS_ACKNOWLEDGEMENT_TIMEOUT_S", cls.acknowledgement_timeout_s)),
            alarm_reminder_interval_s=int(os.getenv("EGAS_ALARM_REMINDER_INTERVAL_S", cls.alarm_reminder_interval_s)),
        )
        p.validate()
        return p


def default_lifecycle_policy() -> LifecyclePolicy:
    """
    Convenience factory for the default policy.
    """
    p = LifecyclePolicy()
    p.validate()
    return p
