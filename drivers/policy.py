"""
Purpose: Central configuration for driver scoring.
What it does:

Stores all tunable weights used to rank candidate drivers:

DISTANCE_WEIGHT = -0.4
WORKLOAD_WEIGHT = -0.2
EXPERIENCE_WEIGHT = 0.15
WORKLOAD_PER_ORDER = 25
EXPERIENCE_CAP = 100 (reached at 100 trips)

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet

from orders.models import OrderStatus


@dataclass(frozen=True)
class ScoringPolicy:
    """
    Weights for score = distance*w_d + workload*w_w + experience*w_e.
    Weights are tuned, not derived.
    """

    # --- Distance ---
    # Applied to kilometres between driver and delivery point.
    distance_weight: float = -0.4

    # --- Workload ---
    # Each counted order adds workload_per_order points of workload.
    workload_per_order: float = 25.0
    workload_weight: float = -0.2

    # Orders counted as the driver's current workload.
    # DELIVERED is counted here as well; see DESIGN.md before changing it.
    workload_statuses: FrozenSet[OrderStatus] = field(
        default_factory=lambda: frozenset({OrderStatus.ACCEPTED, OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED})
    )

    # --- Experience ---
    # experience = min(cap, trips / trips_for_full_experience * cap)
    experience_cap: float = 100.0
    trips_for_full_experience: int = 100
    experience_weight: float = 0.15

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.distance_weight > 0:
            raise ValueError("distance_weight must be <= 0 (closer drivers must not score lower)")

        if self.workload_weight > 0:
            raise ValueError("workload_weight must be <= 0")

        if self.workload_per_order < 0:
            raise ValueError("workload_per_order must be >= 0")

        if self.experience_cap <= 0 or self.trips_for_full_experience <= 0:
            raise ValueError("experience_cap and trips_for_full_experience must be > 0")

        if not self.workload_statuses:
            raise ValueError("workload_statuses must not be empty")


def default_scoring_policy() -> ScoringPolicy:
    """
    Convenience factory for the default policy.
    """
    p = ScoringPolicy()
    p.validate()
    return p
