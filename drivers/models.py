"""
Purpose: Core data models for the drivers domain.
What it does:
Defines the structure of a Driver and the User account behind it
without relying on Django ORM constraints.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

LatLon = Tuple[float, float]


class UserRole(str, Enum):
    CLIENT = "CLIENT"
    DRIVER = "DRIVER"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class User:
    """
    Customer or driver account. Matching only looks at the active/blocked flags.
    """
    id: str
    phone_number: str
    role: UserRole = UserRole.CLIENT
    is_active: bool = True
    is_blocked: bool = False


@dataclass(frozen=True)
class Driver:
    """
    A purely stateless representation of a Driver at a specific point in time.
    Always re-read from the repository before acting on it.
    """
    id: str
    user_id: str
    is_available: bool = False
    current_lat: Optional[float] = None
    current_long: Optional[float] = None
    total_trips: int = 0
    rating: float = 0.0
    last_ping_at: Optional[datetime] = None

    @property
    def location(self) -> Optional[LatLon]:
        if self.current_lat is None or self.current_long is None:
            return None
        return (self.current_lat, self.current_long)

    @classmethod
    def new(
        cls,
        driver_id: str,
        user_id: str,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
        is_available: bool = True,
        total_trips: int = 0,
        rating: float = 0.0,
        last_ping_at: Optional[datetime] = None,
    ) -> Driver:
        if total_trips < 0:
            raise ValueError("total_trips must be >= 0")

        return cls(
            id=str(driver_id),
            user_id=str(user_id),
            is_available=is_available,
            current_lat=lat,
            current_long=lon,
            total_trips=total_trips,
            rating=rating,
            last_ping_at=last_ping_at,
        )
