#Purpose: Non-routing hard eligibility filtering (rule gates).
#Builds the base candidate set before scoring.
#Rules:
#driver is_available
#driver's user account is active and not blocked
#driver has reported a location (cannot be scored otherwise)
#drivers excluded for this order (e.g. the one who just declined)

#Output: "rule-qualified drivers" (still not ranked), each paired with the
#workload count the scorer needs.

from dataclasses import dataclass
from typing import Iterable, List

from drivers.models import Driver
from drivers.policy import ScoringPolicy
from orders.filters import DriverFilter, OrderFilter
from orders.repository import OrderRepository


@dataclass(frozen=True)
class Candidate:
    driver: Driver
    active_order_count: int


def build_base_candidates(
    repository: OrderRepository,
    policy: ScoringPolicy,
    exclude_driver_ids: Iterable[str] = (),
) -> List[Candidate]:
    """
    Query eligible drivers and attach each one's workload count.
    Order of the result is the repository's stable order.
    """
    driver_filter = DriverFilter(exclude_driver_ids=frozenset(str(d) for d in exclude_driver_ids))
    drivers = repository.find_available_drivers(driver_filter)

    candidates = []
    for driver in drivers:
        #repository implementations may ignore require_location
        if driver.location is None:
            continue

        workload = repository.count_orders(OrderFilter(driver_id=driver.id, statuses=policy.workload_statuses))
        candidates.append(Candidate(driver=driver, active_order_count=workload))

    return candidates
