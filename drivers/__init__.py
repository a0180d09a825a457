"""
Drivers domain package.

Public API:
- Domain models: Driver, User, UserRole
- Scoring weights: ScoringPolicy, default_scoring_policy
(DriverTracker lives in drivers.tracking; it depends on dispatch.)
"""
from .models import Driver, User, UserRole
from .policy import ScoringPolicy, default_scoring_policy

__all__ = ["Driver", "User", "UserRole", "ScoringPolicy", "default_scoring_policy"]
