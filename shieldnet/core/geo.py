"""
ShieldNet Geodistance & Area Safety Scoring

Great-circle distance for radius filtering, and the bucketed area safety
score computed from the alerts near a point.

The score is a policy table, not a smooth function: each bucket maps to a
level and a fixed recommendation so that users can be told exactly why an
area was rated the way it was.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Optional

from ..models import (
    AlertType,
    AreaSafetyScore,
    GeoLocation,
    SafetyAlert,
    SafetyLevel,
)


EARTH_RADIUS_KM = 6371.0

NO_INCIDENTS_RECOMMENDATION = "No recent incidents reported in this area"

RECOMMENDATIONS = {
    SafetyLevel.VERY_SAFE: "Area appears safe with minimal recent incidents",
    SafetyLevel.SAFE: "Generally safe area with some minor incidents",
    SafetyLevel.MODERATE: "Exercise normal caution, some incidents reported",
    SafetyLevel.RISKY: "Exercise increased caution, multiple incidents reported",
    SafetyLevel.DANGEROUS: "High risk area, consider avoiding or taking extra precautions",
}


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points.

    Uses the Haversine formula on a sphere of radius 6371 km.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in kilometers
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    # Rounding can push `a` just past 1 near antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def within_radius(
    location: Optional[GeoLocation],
    latitude: float,
    longitude: float,
    radius_km: float,
) -> bool:
    """True if `location` is set and no further than `radius_km` away."""
    if location is None:
        return False
    return distance_km(latitude, longitude, location.latitude, location.longitude) <= radius_km


def _base_score(high_severity_count: int, total: int) -> float:
    # Evaluated top-down, first match wins
    if high_severity_count == 0 and total <= 2:
        return 0.9
    if high_severity_count == 0 and total <= 5:
        return 0.7
    if high_severity_count <= 1:
        return 0.5
    if high_severity_count <= 3:
        return 0.3
    return 0.1


def safety_level(score: float) -> SafetyLevel:
    """Map a safety score to its discrete level."""
    if score >= 0.8:
        return SafetyLevel.VERY_SAFE
    elif score >= 0.6:
        return SafetyLevel.SAFE
    elif score >= 0.4:
        return SafetyLevel.MODERATE
    elif score >= 0.2:
        return SafetyLevel.RISKY
    else:
        return SafetyLevel.DANGEROUS


def safety_score(alerts: Iterable[SafetyAlert]) -> AreaSafetyScore:
    """
    Score an area from the alerts reported in it.

    Args:
        alerts: Alerts already filtered to the area and time window

    Returns:
        AreaSafetyScore with level, incident count, major concerns and
        a recommendation
    """
    alerts = list(alerts)

    if not alerts:
        return AreaSafetyScore(
            score=0.8,
            level=SafetyLevel.SAFE,
            recent_incidents=0,
            major_concerns=[],
            recommendation=NO_INCIDENTS_RECOMMENDATION,
        )

    high_severity = [a for a in alerts if a.is_high_severity]
    score = _base_score(len(high_severity), len(alerts))
    level = safety_level(score)

    # Distinct categories, first-seen order
    major_concerns: List[AlertType] = []
    for alert in high_severity:
        if alert.alert_type not in major_concerns:
            major_concerns.append(alert.alert_type)

    return AreaSafetyScore(
        score=score,
        level=level,
        recent_incidents=len(alerts),
        major_concerns=major_concerns,
        recommendation=RECOMMENDATIONS[level],
    )
