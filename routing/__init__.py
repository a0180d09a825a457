#Marks routing as a package.
#Re-exports the public API (distance math, OSRM client, ETA estimation)
#so other modules import from routing without knowing internal file names.
#No business logic.

from .geo import distance_km, distance_between, EARTH_RADIUS_KM
from .osrm_client import OSRMClient, OSRMError
from .eta_service import EtaEstimate, estimate_eta

__all__ = [
    "distance_km",
    "distance_between",
    "EARTH_RADIUS_KM",
    "OSRMClient",
    "OSRMError",
    "EtaEstimate",
    "estimate_eta",
]
