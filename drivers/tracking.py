"""
Purpose: Driver-side updates that do not change an order's status.
What it does:
- update_location: store a GPS ping and push a fresh ETA to every customer
  whose order the driver is currently handling
- set_availability: drivers go on/off shift; coming online re-runs the
  pending-order sweep so waiting orders get a driver
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable, List, Optional

from dispatch.notifications import EventEmitter, EventType, OrderEvent, PushService
from dispatch.state_machines.driver_state import validate_location
from orders.exceptions import DriverUnavailable
from orders.filters import OrderFilter
from orders.models import IN_PROGRESS_STATUSES, OrderStatus, utcnow
from orders.repository import OrderRepository
from routing.eta_service import EtaEstimate, estimate_eta
from routing.osrm_client import OSRMClient

from .models import Driver

if TYPE_CHECKING:
    from dispatch.matcher import DriverMatcher

logger = logging.getLogger(__name__)

# A driver holding one of these cannot declare themselves available.
BUSY_STATUSES = IN_PROGRESS_STATUSES | {OrderStatus.ASSIGNED}


class DriverTracker:

    def __init__(
        self,
        repository: OrderRepository,
        push_service: Optional[PushService] = None,
        osrm: Optional[OSRMClient] = None,
        matcher: Optional[DriverMatcher] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.events = EventEmitter(push_service)
        self.osrm = osrm
        self.matcher = matcher
        self.clock = clock

    def update_location(self, driver_id: str, lat: float, lon: float) -> List[EtaEstimate]:
        """
        Store the ping; returns the ETA computed for each in-progress order.
        Raises DriverStateException for bad coordinates, DriverUnavailable for an unknown driver.
        """
        validate_location(lat, lon)
        driver_id = str(driver_id)

        if self.repository.get_driver(driver_id) is None:
            raise DriverUnavailable(driver_id, "not found")

        now = self.clock()
        driver = self.repository.update_driver_location(driver_id, lat, lon, now)

        orders = self.repository.find_orders(OrderFilter(driver_id=driver_id, statuses=IN_PROGRESS_STATUSES))
        estimates = []
        for order in orders:
            eta = estimate_eta(driver.location, order.delivery_location, osrm=self.osrm)
            estimates.append(eta)
            self.events.emit(
                order.customer_id,
                OrderEvent.for_order(
                    EventType.DRIVER_LOCATION,
                    order,
                    latitude=lat,
                    longitude=lon,
                    distance=eta.distance_text(),
                    duration=eta.duration_text(),
                    estimated_arrival=eta.arrival_at(now).isoformat(),
                ),
            )

        logger.debug("Driver %s at (%.5f, %.5f), %d active orders", driver_id, lat, lon, len(orders))
        return estimates

    def set_availability(self, driver_id: str, available: bool) -> Driver:
        driver_id = str(driver_id)
        if self.repository.get_driver(driver_id) is None:
            raise DriverUnavailable(driver_id, "not found")

        if available:
            # busy check and write are one repository step; an assignment may be claiming the driver right now
            driver = self.repository.make_driver_available(driver_id, BUSY_STATUSES)
        else:
            driver = self.repository.set_driver_availability(driver_id, False)
        logger.info("Driver %s is now %s", driver_id, "available" if available else "offline")

        if available and self.matcher is not None:
            self.matcher.sweep_pending_orders()

        return driver
