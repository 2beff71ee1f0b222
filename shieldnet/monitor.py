"""
ShieldNet Real-Time Threat Monitor

A background loop that periodically gathers the current context, runs threat
prediction, and escalates HIGH-or-worse predictions to a sink.

Loop semantics:
    - one background asyncio task per monitor (start() is idempotent)
    - cycles never overlap; a cycle requested while one is in flight is
      skipped
    - a failing cycle is logged and the loop carries on
    - stop() is cooperative: it wakes the interval wait immediately, but an
      in-flight cycle runs to completion
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional, Sequence

import httpx

from .community.alerts import AlertService
from .core.predictor import PredictionEngine
from .models import GeoLocation, RiskLevel, ThreatContext, ThreatPrediction, utc_now


logger = logging.getLogger(__name__)


DEFAULT_INTERVAL_SECONDS = 300.0
ESCALATION_LEVEL = RiskLevel.HIGH


def day_of_week(moment: datetime) -> int:
    """1 = Sunday ... 7 = Saturday."""
    return moment.isoweekday() % 7 + 1


# =============================================================================
# CONTEXT PROVIDERS
# =============================================================================

class ContextProvider(ABC):
    """Supplies the ThreatContext for each monitor cycle."""

    @abstractmethod
    async def collect(self) -> ThreatContext:
        pass


class ClockContextProvider(ContextProvider):
    """Time-only context; every other field takes its default."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock

    async def collect(self) -> ThreatContext:
        now = self._clock()
        return ThreatContext(time_of_day=now.hour, day_of_week=day_of_week(now))


class CommunityContextProvider(ContextProvider):
    """
    Time context plus the active community alerts near a watched location.

    Alert lookup is best-effort: a store failure leaves the alert list empty
    rather than failing the cycle.
    """

    def __init__(
        self,
        alerts: AlertService,
        latitude: float,
        longitude: float,
        radius_km: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._alerts = alerts
        self._location = GeoLocation(latitude=latitude, longitude=longitude)
        self._radius_km = radius_km
        self._clock = clock

    async def collect(self) -> ThreatContext:
        now = self._clock()

        result = await self._alerts.get_nearby_alerts(
            self._location.latitude,
            self._location.longitude,
            self._radius_km,
        )
        if result.success:
            alert_ids = [alert.alert_id for alert in result.value]
        else:
            logger.warning(f"Community alerts unavailable for monitor context: {result.error_message}")
            alert_ids = []

        return ThreatContext(
            user_location=self._location,
            time_of_day=now.hour,
            day_of_week=day_of_week(now),
            community_alerts=alert_ids,
        )


# =============================================================================
# ESCALATION SINKS
# =============================================================================

class EscalationSink(ABC):
    """Receives high-risk predictions. Fire-and-forget."""

    @abstractmethod
    async def escalate(self, predictions: Sequence[ThreatPrediction]) -> None:
        pass

    async def close(self) -> None:
        pass


class LoggingEscalationSink(EscalationSink):
    """Logs one warning per escalated prediction."""

    async def escalate(self, predictions: Sequence[ThreatPrediction]) -> None:
        for threat in predictions:
            logger.warning(
                f"High-risk threat predicted: {threat.threat_type.value} "
                f"({threat.probability:.2f}, {threat.risk_level.value}, "
                f"{threat.time_window.value})"
            )


class WebhookEscalationSink(EscalationSink):
    """
    POSTs escalations as JSON to a webhook.

    Payload:
        {"escalated_at": "<iso8601>", "predictions": [<ThreatPrediction>, ...]}

    HTTP failures are logged and swallowed; the monitor never waits on a
    retry.
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = url
        self._timeout = timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def escalate(self, predictions: Sequence[ThreatPrediction]) -> None:
        payload = {
            "escalated_at": utc_now().isoformat(),
            "predictions": [p.model_dump(mode="json") for p in predictions],
        }

        try:
            client = await self._get_client()
            response = await client.post(self._url, json=payload)
            response.raise_for_status()
            logger.info(f"Escalated {len(predictions)} threats to webhook")
        except httpx.HTTPError as e:
            logger.error(f"Escalation webhook error: {e}")


# =============================================================================
# MONITOR
# =============================================================================

class ThreatMonitor:
    """
    Periodic threat prediction with escalation.

    Usage:
        monitor = ThreatMonitor(engine, ClockContextProvider(), LoggingEscalationSink())
        await monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        engine: PredictionEngine,
        context_provider: ContextProvider,
        sink: EscalationSink,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ):
        self._engine = engine
        self._context_provider = context_provider
        self._sink = sink
        self._interval = interval_seconds

        self._stop_event = asyncio.Event()
        self._cycle_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

        self.cycles_completed = 0
        self.cycles_failed = 0
        self.last_escalated: List[ThreatPrediction] = []

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background loop. No-op if already running."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="shieldnet-threat-monitor")
        logger.info(f"Real-time threat monitoring started (interval={self._interval}s)")

    async def stop(self) -> None:
        """Request the loop to stop and wait for the in-flight cycle to finish."""
        if self._task is None:
            return

        self._stop_event.set()
        try:
            await self._task
        finally:
            self._task = None
        logger.info("Real-time threat monitoring stopped")

    async def run_cycle(self) -> List[ThreatPrediction]:
        """
        Run one gather-predict-escalate cycle.

        Returns:
            The escalated predictions (empty if none, or if another cycle
            was already in flight)

        Raises:
            ShieldNetError: If prediction fails
        """
        if self._cycle_lock.locked():
            logger.debug("Monitor cycle already in flight, skipping")
            return []

        async with self._cycle_lock:
            context = await self._context_provider.collect()

            result = self._engine.predict_threats(context)
            predictions = result.unwrap()

            escalated = [
                p for p in predictions
                if p.risk_level.ordinal >= ESCALATION_LEVEL.ordinal
            ]
            if escalated:
                await self._sink.escalate(escalated)

            self.last_escalated = escalated
            return escalated

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                escalated = await self.run_cycle()
                self.cycles_completed += 1
                logger.debug(f"Monitor cycle complete, {len(escalated)} escalated")
            except Exception as e:
                self.cycles_failed += 1
                logger.error(f"Error in real-time monitoring: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
