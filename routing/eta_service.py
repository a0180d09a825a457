#Purpose: ETA estimation policy.
#Converts routing outputs into the "arrives in X" figures sent to a
#customer while their driver is on the way.
#Road distance/duration come from OSRM when a client is configured;
#otherwise (or when OSRM fails) the straight-line haversine distance is
#used with an average urban speed.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .geo import LatLon, distance_between
from .osrm_client import OSRMClient, OSRMError

logger = logging.getLogger(__name__)

DEFAULT_AVERAGE_SPEED_KMH = 30.0


@dataclass(frozen=True)
class EtaEstimate:
    distance_km: float
    duration_s: float
    source: str  # "osrm" | "haversine"

    def arrival_at(self, now: datetime) -> datetime:
        return now + timedelta(seconds=self.duration_s)

    def distance_text(self) -> str:
        return f"{self.distance_km:.1f} km"

    def duration_text(self) -> str:
        minutes = max(1, round(self.duration_s / 60))
        return f"{minutes} min"


def estimate_eta(
    origin: LatLon,
    destination: LatLon,
    *,
    osrm: Optional[OSRMClient] = None,
    average_speed_kmh: float = DEFAULT_AVERAGE_SPEED_KMH,
) -> EtaEstimate:
    """
    Estimate travel distance and time from origin to destination.
    """
    if average_speed_kmh <= 0:
        raise ValueError("average_speed_kmh must be > 0")

    if osrm is not None:
        try:
            route = osrm.compute_route([origin, destination])
            return EtaEstimate(
                distance_km=route["distance"] / 1000.0,
                duration_s=float(route["duration"]),
                source="osrm",
            )
        except OSRMError as exc:
            logger.warning("OSRM ETA failed, falling back to haversine: %s", exc)

    distance = distance_between(origin, destination)
    return EtaEstimate(
        distance_km=distance,
        duration_s=distance / average_speed_kmh * 3600.0,
        source="haversine",
    )
