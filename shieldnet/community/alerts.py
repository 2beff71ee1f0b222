"""
ShieldNet Community Alert Service

Submission, moderation and geospatial lookup of community safety alerts.

Rules enforced here:
    - title and description must be non-empty
    - tags are derived from category and hour of day, never client-supplied
    - submitted alerts start unverified with a zero vote count, and expire
      after the configured TTL unless the caller chose an expiry
    - expired alerts (now > expires_at) never appear in active queries
    - verification votes are applied as one atomic store update
    - once verified, an alert stays verified (negative votes only lower
      the counter)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ..config import CommunityConfig
from ..core.geo import safety_score, within_radius
from ..errors import (
    NotFoundError,
    OperationResult,
    StoreError,
    ValidationFailure,
)
from ..models import (
    AlertType,
    AreaSafetyScore,
    SafetyAlert,
    to_millis,
    utc_now,
)
from ..store.base import ALERTS, AlertStore, Document, Filter, OrderBy


logger = logging.getLogger(__name__)


CATEGORY_TAGS = {
    AlertType.MPESA_SCAM_WAVE: ["mpesa", "mobile-money", "sms"],
    AlertType.ROMANCE_SCAM_PROFILE: ["dating", "social-media", "relationship"],
    AlertType.JOB_SCAM_COMPANY: ["employment", "recruitment", "whatsapp"],
    AlertType.PHISHING_CAMPAIGN: ["email", "banking", "credentials"],
}


def time_bucket(hour: int) -> str:
    """Name the part of day an hour (0-23) falls in."""
    if 6 <= hour <= 11:
        return "morning"
    elif 12 <= hour <= 17:
        return "afternoon"
    elif 18 <= hour <= 21:
        return "evening"
    else:
        return "night"


def generate_tags(alert_type: AlertType, created_at: datetime) -> List[str]:
    """Derive the tag set of an alert from its category and creation hour."""
    tags = list(CATEGORY_TAGS.get(alert_type, [alert_type.value.lower()]))
    tags.append(time_bucket(created_at.hour))
    return tags


class AlertService:
    """
    Community safety alerts backed by an AlertStore.

    Usage:
        service = AlertService(store)
        result = await service.submit_alert(alert)
        if result.success:
            alert_id = result.value
    """

    def __init__(
        self,
        store: AlertStore,
        config: Optional[CommunityConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._config = config or CommunityConfig()
        self._clock = clock

    # =========================================================================
    # SUBMISSION & MODERATION
    # =========================================================================

    async def submit_alert(self, alert: SafetyAlert) -> OperationResult[str]:
        """
        Validate, tag and persist an alert.

        Returns:
            Success with the alert id, or failure with ValidationFailure /
            StoreError
        """
        if not alert.title.strip():
            return OperationResult.fail(ValidationFailure("Alert title must not be empty"))
        if not alert.description.strip():
            return OperationResult.fail(ValidationFailure("Alert description must not be empty"))

        # Moderation state always starts fresh
        update = {
            "tags": generate_tags(alert.alert_type, alert.created_at),
            "verification_count": 0,
            "is_verified": False,
        }
        if alert.has_default_expiry:
            update["expires_at"] = alert.created_at + timedelta(hours=self._config.alert_ttl_hours)
        tagged = alert.model_copy(update=update)

        try:
            await self._store.put(ALERTS, tagged.alert_id, tagged.to_document())
        except StoreError as e:
            logger.error(f"Failed to submit safety alert: {e}")
            return OperationResult.fail(e)

        logger.info(f"Safety alert submitted: {tagged.alert_id} ({tagged.alert_type.value})")
        return OperationResult.ok(tagged.alert_id)

    async def get_alert(self, alert_id: str) -> OperationResult[SafetyAlert]:
        try:
            document = await self._store.get(ALERTS, alert_id)
        except StoreError as e:
            logger.error(f"Failed to load alert {alert_id}: {e}")
            return OperationResult.fail(e)

        if document is None:
            return OperationResult.fail(NotFoundError(f"Alert not found: {alert_id}"))
        return OperationResult.ok(SafetyAlert.from_document(document))

    async def verify_alert(self, alert_id: str, is_legitimate: bool) -> OperationResult[SafetyAlert]:
        """
        Record a community verification vote.

        A legitimate vote increments the counter and marks the alert verified
        once the counter reaches the verification threshold. A negative vote
        decrements the counter and leaves the verified flag untouched.

        Returns:
            Success with the updated alert, or failure with NotFoundError /
            StoreError
        """
        threshold = self._config.verification_threshold

        def apply_vote(document: Document) -> Document:
            count = document.get("verification_count", 0)
            if is_legitimate:
                count += 1
                document["is_verified"] = document.get("is_verified", False) or count >= threshold
            else:
                count -= 1
            document["verification_count"] = count
            return document

        try:
            updated = await self._store.update(ALERTS, alert_id, apply_vote)
        except StoreError as e:
            logger.error(f"Failed to verify alert {alert_id}: {e}")
            return OperationResult.fail(e)

        if updated is None:
            return OperationResult.fail(NotFoundError(f"Alert not found: {alert_id}"))

        alert = SafetyAlert.from_document(updated)
        logger.info(
            f"Alert {alert_id} {'confirmed' if is_legitimate else 'disputed'} "
            f"(count={alert.verification_count}, verified={alert.is_verified})"
        )
        return OperationResult.ok(alert)

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_active_alerts(self, limit: Optional[int] = None) -> OperationResult[List[SafetyAlert]]:
        """Non-expired alerts, newest first."""
        limit = limit if limit is not None else self._config.active_alert_limit
        now = self._clock()

        try:
            documents = await self._store.query(
                ALERTS,
                filters=[Filter("expires_at", ">", to_millis(now))],
                order_by=[OrderBy("created_at", descending=True)],
                limit=limit,
            )
        except StoreError as e:
            logger.error(f"Failed to get active alerts: {e}")
            return OperationResult.fail(e)

        return OperationResult.ok([SafetyAlert.from_document(doc) for doc in documents])

    async def get_nearby_alerts(
        self,
        latitude: float,
        longitude: float,
        max_distance_km: Optional[float] = None,
    ) -> OperationResult[List[SafetyAlert]]:
        """
        Active alerts within `max_distance_km` of a point.

        Alerts without a location (regional trend alerts) are excluded.
        Only the most recent `active_alert_limit` active alerts are considered.
        """
        radius = max_distance_km if max_distance_km is not None else self._config.proximity_radius_km

        active = await self.get_active_alerts()
        if not active.success:
            return active

        nearby = [
            alert for alert in active.value
            if within_radius(alert.location, latitude, longitude, radius)
        ]
        return OperationResult.ok(nearby)

    async def get_area_safety_score(
        self,
        latitude: float,
        longitude: float,
        radius_km: Optional[float] = None,
    ) -> OperationResult[AreaSafetyScore]:
        """
        Score an area from alerts created in the trailing window within radius.

        Expired alerts still count here; the score reflects recent history,
        not only what is currently active.
        """
        radius = radius_km if radius_km is not None else self._config.area_radius_km
        since = self._clock() - timedelta(days=self._config.area_window_days)

        try:
            documents = await self._store.query(
                ALERTS,
                filters=[Filter("created_at", ">", to_millis(since))],
            )
        except StoreError as e:
            logger.error(f"Failed to compute area safety score: {e}")
            return OperationResult.fail(e)

        alerts = [SafetyAlert.from_document(doc) for doc in documents]
        nearby = [a for a in alerts if within_radius(a.location, latitude, longitude, radius)]

        score = safety_score(nearby)
        logger.debug(
            f"Area ({latitude:.4f}, {longitude:.4f}) r={radius}km: "
            f"{score.level.value} from {score.recent_incidents} incidents"
        )
        return OperationResult.ok(score)
