"""
ShieldNet Scam Pattern Aggregator

Merges repeated scam reports into one pattern per pattern type and promotes
patterns that keep recurring into a community-visible trend alert.

The merge is a single atomic increment-or-create against the store, so
concurrent reports of the same pattern type never lose an increment.

Trend alerts:
    CROSSING: one alert, from the report whose merge moved report_count
              from below the threshold to at or above it
    EVERY:    one alert per report once report_count is at or above the
              threshold
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from ..config import CommunityConfig, TrendAlertPolicy
from ..errors import NotFoundError, OperationResult, StoreError
from ..models import (
    AlertSeverity,
    AlertType,
    SafetyAlert,
    ScamPattern,
    to_millis,
    utc_now,
)
from ..store.base import PATTERNS, AlertStore, Document, Filter, OrderBy
from .alerts import AlertService


logger = logging.getLogger(__name__)


SYSTEM_REPORTER = "SYSTEM"
TREND_ALERT_TITLE = "New Scam Pattern Detected"

# Most recent raw examples kept per pattern
MAX_EXAMPLES = 5

# A pattern trends once it has more reports than this
TRENDING_MIN_REPORTS = 2


def merge_phrases(existing: Sequence[str], new: Sequence[str]) -> List[str]:
    """Union of two phrase lists, deduplicated, first occurrence kept."""
    merged: List[str] = []
    for phrase in list(existing) + list(new):
        if phrase not in merged:
            merged.append(phrase)
    return merged


class ScamPatternAggregator:
    """
    Community scam pattern aggregation.

    Usage:
        aggregator = ScamPatternAggregator(store, alert_service)
        result = await aggregator.submit_pattern(
            "mpesa_reversal",
            "Fake reversal request after a bogus deposit",
            ["sent to you by mistake", "please reverse"],
        )
    """

    def __init__(
        self,
        store: AlertStore,
        alerts: AlertService,
        config: Optional[CommunityConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._alerts = alerts
        self._config = config or CommunityConfig()
        self._clock = clock

    async def submit_pattern(
        self,
        pattern_type: str,
        description: str,
        phrases: Sequence[str],
        example: Optional[str] = None,
    ) -> OperationResult[str]:
        """
        Record a scam report, merging it into the existing pattern if any.

        Returns:
            Success with the pattern id, or failure with StoreError. A failed
            trend alert is logged and does not fail the submission.
        """
        now_ms = to_millis(self._clock())

        def merge(existing: Optional[Document]) -> Document:
            if existing is None:
                pattern = ScamPattern(
                    pattern_type=pattern_type,
                    description=description,
                    common_phrases=merge_phrases([], phrases),
                    last_seen=self._clock(),
                    examples=[example] if example else [],
                )
                return pattern.to_document()

            existing["report_count"] = existing.get("report_count", 1) + 1
            existing["last_seen"] = now_ms
            existing["common_phrases"] = merge_phrases(existing.get("common_phrases", []), phrases)
            if example:
                existing["examples"] = (existing.get("examples", []) + [example])[-MAX_EXAMPLES:]
            return existing

        try:
            before, after = await self._store.upsert_by_key(
                PATTERNS, "pattern_type", pattern_type, merge
            )
        except StoreError as e:
            logger.error(f"Failed to submit scam pattern {pattern_type}: {e}")
            return OperationResult.fail(e)

        pattern = ScamPattern.from_document(after)
        previous_count = before.get("report_count", 1) if before is not None else 0
        logger.info(
            f"Scam pattern {pattern.pattern_type} reported "
            f"(count={pattern.report_count}, id={pattern.pattern_id})"
        )

        if self._should_emit_trend_alert(previous_count, pattern.report_count):
            await self._emit_trend_alert(pattern)

        return OperationResult.ok(pattern.pattern_id)

    def _should_emit_trend_alert(self, previous_count: int, current_count: int) -> bool:
        threshold = self._config.trend_threshold
        if current_count < threshold:
            return False
        if self._config.trend_alert_policy == TrendAlertPolicy.EVERY:
            return True
        return previous_count < threshold

    async def _emit_trend_alert(self, pattern: ScamPattern) -> None:
        alert = SafetyAlert(
            alert_type=AlertType.SCAM_HOTSPOT,
            title=TREND_ALERT_TITLE,
            description=f"Community reports show increasing activity: {pattern.description}",
            location=None,
            severity=AlertSeverity.MEDIUM,
            reporter_hash=SYSTEM_REPORTER,
            created_at=self._clock(),
        )

        result = await self._alerts.submit_alert(alert)
        if result.success:
            logger.warning(
                f"Trend alert {result.value} raised for pattern {pattern.pattern_type} "
                f"({pattern.report_count} reports)"
            )
        else:
            logger.error(
                f"Failed to raise trend alert for {pattern.pattern_type}: {result.error_message}"
            )

    async def trending_patterns(self, limit: Optional[int] = None) -> OperationResult[List[ScamPattern]]:
        """Patterns with more than two reports, most reported then most recent first."""
        limit = limit if limit is not None else self._config.trending_limit

        try:
            documents = await self._store.query(
                PATTERNS,
                filters=[Filter("report_count", ">", TRENDING_MIN_REPORTS)],
                order_by=[
                    OrderBy("report_count", descending=True),
                    OrderBy("last_seen", descending=True),
                ],
                limit=limit,
            )
        except StoreError as e:
            logger.error(f"Failed to get trending patterns: {e}")
            return OperationResult.fail(e)

        return OperationResult.ok([ScamPattern.from_document(doc) for doc in documents])

    async def get_pattern(self, pattern_type: str) -> OperationResult[ScamPattern]:
        try:
            documents = await self._store.query(
                PATTERNS,
                filters=[Filter("pattern_type", "==", pattern_type)],
                limit=1,
            )
        except StoreError as e:
            logger.error(f"Failed to load pattern {pattern_type}: {e}")
            return OperationResult.fail(e)

        if not documents:
            return OperationResult.fail(NotFoundError(f"Pattern not found: {pattern_type}"))
        return OperationResult.ok(ScamPattern.from_document(documents[0]))

    async def all_patterns(self) -> OperationResult[List[ScamPattern]]:
        """Every known pattern, most reported first."""
        try:
            documents = await self._store.query(
                PATTERNS,
                order_by=[OrderBy("report_count", descending=True)],
            )
        except StoreError as e:
            logger.error(f"Failed to list patterns: {e}")
            return OperationResult.fail(e)

        return OperationResult.ok([ScamPattern.from_document(doc) for doc in documents])
