"""
Driver side effects of order transitions.

A driver is claimed (is_available -> False) when an order is bound to
them and released when the binding ends. Deliveries also count as a
finished trip, which feeds the experience term of the scorer.
"""

from .order_state import OrderAction


class DriverStateException(Exception):
    """Raised when an invalid driver update is attempted."""
    pass


# Actions after which the driver previously bound to the order is free again.
RELEASING_ACTIONS = frozenset({
    OrderAction.DECLINE,
    OrderAction.CANCEL,
    OrderAction.DELIVER,
    OrderAction.REASSIGN,  # the previous driver, not the new one
})


def releases_driver(action: OrderAction) -> bool:
    return action in RELEASING_ACTIONS


def completes_trip(action: OrderAction) -> bool:
    return action == OrderAction.DELIVER


def validate_location(lat: float, lon: float) -> None:
    """
    Rejects pings outside the valid coordinate ranges.
    """
    if lat is None or lon is None:
        raise DriverStateException("Location ping needs both latitude and longitude")

    if not -90.0 <= lat <= 90.0:
        raise DriverStateException(f"Latitude {lat} out of range")

    if not -180.0 <= lon <= 180.0:
        raise DriverStateException(f"Longitude {lon} out of range")
