"""
Typed failures returned by the dispatch engine.

Every error is per-request and recoverable. `retryable` tells the API
layer whether the same request may succeed if simply tried again.
"""


class OrderEngineError(Exception):
    """Base class for business-rule and state-machine failures."""
    retryable = False


class ActiveOrderExists(OrderEngineError):
    """The customer already has an order that is not delivered or cancelled."""

    def __init__(self, customer_id):
        self.customer_id = customer_id
        super().__init__(
            "You already have an active order. Please complete or cancel "
            "your current order before placing a new one."
        )


class PosPaymentNotAllowed(OrderEngineError):
    """The customer is not eligible to pay on delivery with a POS terminal."""

    def __init__(self, customer_id):
        self.customer_id = customer_id
        super().__init__("POS payment is not available for this account.")


class NoDriverAvailable(OrderEngineError):
    """Auto-assignment found nobody; the order stays PENDING for the next sweep."""
    retryable = True

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"No available drivers found for order {order_id}.")


class DriverUnavailable(OrderEngineError):
    """The requested driver does not exist or cannot take an order right now."""

    def __init__(self, driver_id, reason: str = "not found or unavailable"):
        self.driver_id = driver_id
        self.reason = reason
        super().__init__(f"Driver {driver_id} {reason}.")


class InvalidTransition(OrderEngineError):
    """The action is not valid from the order's current status."""

    def __init__(self, order_id, status, action, message: str = None):
        self.order_id = order_id
        self.status = status
        self.action = action
        super().__init__(message or f"Cannot {action} order {order_id} while it is {status}.")


class TransitionNotPermitted(InvalidTransition):
    """The status allows the action but the caller is not allowed to perform it."""

    def __init__(self, order_id, status, action, actor):
        self.actor = actor
        super().__init__(
            order_id,
            status,
            action,
            message=f"{actor.role.value.lower()} {actor.id} may not {action} order {order_id}.",
        )


class OrderNotFound(OrderEngineError):
    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found.")


class ConcurrentModification(OrderEngineError):
    """A compare-and-set lost against another writer."""
    retryable = True

    def __init__(self, order_id, expected_status=None):
        self.order_id = order_id
        self.expected_status = expected_status
        super().__init__(f"Order {order_id} was modified concurrently (expected {expected_status}).")


class TankSizeNotFound(OrderEngineError):
    """The requested cylinder size is not in the catalog or is no longer sold."""

    def __init__(self, size):
        self.size = size
        super().__init__(f"Tank size {size} not found or inactive.")


class NoPendingAcknowledgement(OrderEngineError):
    """There is no driver assignment waiting to be acknowledged for the order."""

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"No assignment awaiting acknowledgement for order {order_id}.")
