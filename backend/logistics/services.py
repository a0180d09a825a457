"""
Wires the dispatch engine to the Django repository for the views.

Objects are built per request: they hold no state of their own besides
configuration, and the repository talks to the database directly.
"""

from dispatch.dispatcher import Dispatcher
from dispatch.notifications import LoggingPushService
from drivers.tracking import DriverTracker
from orders.policy import LifecyclePolicy
from routing.osrm_client import BASE_URL as OSRM_BASE_URL
from routing.osrm_client import OSRMClient

from .repository import DjangoOrderRepository


def get_dispatcher() -> Dispatcher:
    return Dispatcher.build(
        DjangoOrderRepository(),
        push_service=LoggingPushService(),
        lifecycle_policy=LifecyclePolicy.from_env(),
    )


def get_driver_tracker(dispatcher: Dispatcher = None) -> DriverTracker:
    dispatcher = dispatcher or get_dispatcher()
    # ETA falls back to straight-line estimates when no OSRM server is configured
    osrm = OSRMClient() if OSRM_BASE_URL else None
    return DriverTracker(
        dispatcher.lifecycle.repository,
        push_service=dispatcher.lifecycle.events.push_service,
        osrm=osrm,
        matcher=dispatcher.matcher,
    )
