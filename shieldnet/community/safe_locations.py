"""
Community safe locations.

Places the community vouches for (police stations, Safaricom shops, bank
branches) where a user can go for help or to verify a transaction in person.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from ..core.geo import distance_km
from ..errors import NotFoundError, OperationResult, StoreError, ValidationFailure
from ..models import SafeLocation, SafeLocationType, to_millis, utc_now
from ..store.base import SAFE_LOCATIONS, AlertStore, Document, Filter


logger = logging.getLogger(__name__)


class SafeLocationRegistry:
    """Registration, verification and proximity search of safe locations."""

    def __init__(
        self,
        store: AlertStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._clock = clock

    async def register_location(self, location: SafeLocation) -> OperationResult[str]:
        if not location.name.strip():
            return OperationResult.fail(ValidationFailure("Safe location name must not be empty"))

        try:
            await self._store.put(SAFE_LOCATIONS, location.location_id, location.to_document())
        except StoreError as e:
            logger.error(f"Failed to register safe location: {e}")
            return OperationResult.fail(e)

        logger.info(f"Safe location registered: {location.name} ({location.location_type.value})")
        return OperationResult.ok(location.location_id)

    async def verify_location(self, location_id: str) -> OperationResult[SafeLocation]:
        """Record that a community member confirmed the location is genuine."""
        now_ms = to_millis(self._clock())

        def confirm(document: Document) -> Document:
            document["verification_count"] = document.get("verification_count", 0) + 1
            document["last_verified"] = now_ms
            return document

        try:
            updated = await self._store.update(SAFE_LOCATIONS, location_id, confirm)
        except StoreError as e:
            logger.error(f"Failed to verify safe location {location_id}: {e}")
            return OperationResult.fail(e)

        if updated is None:
            return OperationResult.fail(NotFoundError(f"Safe location not found: {location_id}"))
        return OperationResult.ok(SafeLocation.from_document(updated))

    async def nearest_safe_locations(
        self,
        latitude: float,
        longitude: float,
        radius_km: float = 10.0,
        location_type: Optional[SafeLocationType] = None,
        limit: int = 5,
    ) -> OperationResult[List[SafeLocation]]:
        """
        Safe locations within `radius_km`, closest first.

        Args:
            latitude, longitude: Search origin
            radius_km: Search radius
            location_type: Restrict to one kind of location
            limit: Maximum results
        """
        filters = []
        if location_type is not None:
            filters.append(Filter("location_type", "==", location_type.value))

        try:
            documents = await self._store.query(SAFE_LOCATIONS, filters=filters)
        except StoreError as e:
            logger.error(f"Failed to search safe locations: {e}")
            return OperationResult.fail(e)

        ranked = []
        for document in documents:
            place = SafeLocation.from_document(document)
            distance = distance_km(
                latitude, longitude,
                place.location.latitude, place.location.longitude,
            )
            if distance <= radius_km:
                ranked.append((distance, place))

        ranked.sort(key=lambda item: item[0])
        return OperationResult.ok([place for _, place in ranked[:limit]])
