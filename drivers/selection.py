"""
Purpose: Business rules for whether a driver may be offered an order.
What it does:
Evaluates a DriverFilter against a driver and the user account behind it.
Repositories that filter in Python (the in-memory one) call this; the
Django repository expresses the same rules as an ORM query.
"""

from typing import Iterable, List, Mapping, Optional

from orders.filters import DriverFilter

from .models import Driver, User


def is_eligible(driver: Driver, user: Optional[User], driver_filter: DriverFilter) -> bool:
    if driver.id in driver_filter.exclude_driver_ids:
        return False

    if driver_filter.is_available is not None and driver.is_available != driver_filter.is_available:
        return False

    if driver_filter.require_location and driver.location is None:
        return False

    # a driver profile without an account is never offered work
    if user is None:
        return False

    if driver_filter.user_is_active is not None and user.is_active != driver_filter.user_is_active:
        return False

    if driver_filter.user_is_blocked is not None and user.is_blocked != driver_filter.user_is_blocked:
        return False

    return True


def filter_eligible_drivers(
    drivers: Iterable[Driver],
    users: Mapping[str, User],
    driver_filter: Optional[DriverFilter] = None,
) -> List[Driver]:
    """
    Returns only drivers who pass the filter, keeping the input order.
    """
    driver_filter = driver_filter or DriverFilter()
    return [driver for driver in drivers if is_eligible(driver, users.get(driver.user_id), driver_filter)]
