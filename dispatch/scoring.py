#Purpose: Ranking/selection model (the "who is best" layer).
#Takes candidates (already eligible) + features (distance, workload, experience)
#Produces an ordered list, best first.
#score = distance_km * -0.4 + (active_orders * 25) * -0.2 + min(100, trips) * 0.15
#(weights live in drivers.policy.ScoringPolicy)
#Tie-breaking: stable sort, so equal scores keep repository order.

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from drivers.models import Driver
from drivers.policy import ScoringPolicy, default_scoring_policy
from routing.geo import distance_km

LatLon = Tuple[float, float]


@dataclass(frozen=True)
class DriverScore:
    driver_id: str
    distance_km: float
    workload_score: float
    experience_score: float
    score: float


def experience_score(total_trips: int, policy: ScoringPolicy) -> float:
    return min(policy.experience_cap, (total_trips / policy.trips_for_full_experience) * policy.experience_cap)


def score_breakdown(
    driver: Driver,
    delivery_location: LatLon,
    active_order_count: int,
    policy: Optional[ScoringPolicy] = None,
) -> DriverScore:
    policy = policy or default_scoring_policy()

    if driver.location is None:
        raise ValueError(f"Driver {driver.id} has no location and cannot be scored")

    delivery_lat, delivery_lon = delivery_location
    distance = distance_km(delivery_lat, delivery_lon, driver.current_lat, driver.current_long)
    workload = active_order_count * policy.workload_per_order
    experience = experience_score(driver.total_trips, policy)

    score = (
        distance * policy.distance_weight
        + workload * policy.workload_weight
        + experience * policy.experience_weight
    )
    return DriverScore(
        driver_id=driver.id,
        distance_km=distance,
        workload_score=workload,
        experience_score=experience,
        score=score,
    )


def score_driver(
    driver: Driver,
    delivery_location: LatLon,
    active_order_count: int,
    policy: Optional[ScoringPolicy] = None,
) -> float:
    """Higher is better."""
    return score_breakdown(driver, delivery_location, active_order_count, policy).score


def rank_candidates(candidates: Sequence, delivery_location: LatLon, policy: Optional[ScoringPolicy] = None) -> List[DriverScore]:
    """
    candidates: items with .driver and .active_order_count (see candidate_filter.Candidate)
    """
    policy = policy or default_scoring_policy()
    scored = [
        score_breakdown(candidate.driver, delivery_location, candidate.active_order_count, policy)
        for candidate in candidates
    ]
    # sorted() is stable: first found wins on exact ties
    return sorted(scored, key=lambda driver_score: driver_score.score, reverse=True)
