"""
ShieldNet Community Package

Crowd-sourced intelligence: safety alerts, scam pattern aggregation and
community-vouched safe locations.
"""

from .alerts import AlertService
from .patterns import ScamPatternAggregator
from .safe_locations import SafeLocationRegistry

__all__ = ["AlertService", "ScamPatternAggregator", "SafeLocationRegistry"]
