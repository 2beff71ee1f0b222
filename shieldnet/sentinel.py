"""
ShieldNet - Main Engine

This module wires every component into one object built from configuration:
    - Alert store (in-memory or Redis)
    - Community alerts, scam pattern aggregation and safe locations
    - Prediction engine (threat, scam and behavioral classifiers)
    - M-Pesa SMS screening
    - Background threat monitor with escalation

Applications hold one ShieldNet per process:

    shieldnet = ShieldNet.from_config(get_config())
    await shieldnet.initialize()
    await shieldnet.start_monitoring()
    ...
    await shieldnet.close()
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from .community.alerts import AlertService
from .community.patterns import ScamPatternAggregator
from .community.safe_locations import SafeLocationRegistry
from .config import ShieldNetConfig, StoreBackend, get_config
from .core.predictor import PredictionEngine
from .cybercrime.mpesa import MpesaScamDetector, ScamAnalysis
from .errors import OperationResult, StoreError
from .models import ScamPrediction, ThreatContext, ThreatPrediction, utc_now
from .monitor import (
    ClockContextProvider,
    CommunityContextProvider,
    ContextProvider,
    EscalationSink,
    LoggingEscalationSink,
    ThreatMonitor,
    WebhookEscalationSink,
)
from .store.base import AlertStore
from .store.memory import InMemoryAlertStore
from .store.redis_store import RedisAlertStore


logger = logging.getLogger(__name__)


def build_store(config: ShieldNetConfig) -> AlertStore:
    """Create the configured alert store backend."""
    if config.store.backend == StoreBackend.REDIS:
        return RedisAlertStore.from_config(config.redis)
    return InMemoryAlertStore()


def build_sink(config: ShieldNetConfig) -> EscalationSink:
    if config.monitor.escalation_webhook_url:
        return WebhookEscalationSink(
            config.monitor.escalation_webhook_url,
            timeout_seconds=config.monitor.escalation_timeout_seconds,
        )
    return LoggingEscalationSink()


def build_context_provider(
    config: ShieldNetConfig,
    alerts: AlertService,
    clock: Callable[[], datetime] = utc_now,
) -> ContextProvider:
    monitor = config.monitor
    if monitor.watch_latitude is not None and monitor.watch_longitude is not None:
        return CommunityContextProvider(
            alerts,
            monitor.watch_latitude,
            monitor.watch_longitude,
            radius_km=config.community.proximity_radius_km,
            clock=clock,
        )
    return ClockContextProvider(clock)


class ShieldNet:
    """
    The ShieldNet community threat-intelligence engine.

    Components are public attributes so callers can reach the full API of
    each service; the methods here cover the cross-component flows.

    Example:
        shieldnet = ShieldNet(store=InMemoryAlertStore(), engine=engine)
        await shieldnet.initialize()

        await shieldnet.alerts.submit_alert(alert)
        threats = shieldnet.predict_threats(context)
    """

    def __init__(
        self,
        store: AlertStore,
        engine: Optional[PredictionEngine] = None,
        config: Optional[ShieldNetConfig] = None,
        sink: Optional[EscalationSink] = None,
        context_provider: Optional[ContextProvider] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or ShieldNetConfig()
        self.store = store

        self.alerts = AlertService(store, self.config.community, clock=clock)
        self.patterns = ScamPatternAggregator(store, self.alerts, self.config.community, clock=clock)
        self.safe_locations = SafeLocationRegistry(store, clock=clock)

        self.engine = engine or PredictionEngine(config=self.config.prediction)
        self.mpesa = MpesaScamDetector()

        self._sink = sink or build_sink(self.config)
        self.monitor = ThreatMonitor(
            self.engine,
            context_provider or build_context_provider(self.config, self.alerts, clock),
            self._sink,
            interval_seconds=self.config.monitor.interval_seconds,
        )

        self._initialized = False

    @classmethod
    def from_config(cls, config: Optional[ShieldNetConfig] = None) -> "ShieldNet":
        """Build every component from configuration (global config by default)."""
        config = config or get_config()
        return cls(
            store=build_store(config),
            engine=PredictionEngine.from_config(config.prediction),
            config=config,
        )

    async def initialize(self) -> None:
        """Verify the store is reachable."""
        if not await self.store.health_check():
            raise StoreError("Alert store is not reachable")

        validation = self.config.validate()
        for message in validation["messages"]:
            logger.warning(f"Configuration: {message}")

        self._initialized = True
        logger.info(
            f"ShieldNet initialized (store={type(self.store).__name__}, "
            f"environment={self.config.environment.value})"
        )

    async def close(self) -> None:
        """Stop monitoring and release all resources."""
        await self.monitor.stop()
        await self._sink.close()
        await self.store.close()
        self.engine.close()
        self._initialized = False
        logger.info("ShieldNet closed")

    # =========================================================================
    # MONITORING
    # =========================================================================

    async def start_monitoring(self) -> None:
        if not self._initialized:
            await self.initialize()
        await self.monitor.start()

    async def stop_monitoring(self) -> None:
        await self.monitor.stop()

    # =========================================================================
    # PREDICTION FLOWS
    # =========================================================================

    def predict_threats(self, context: ThreatContext) -> OperationResult[List[ThreatPrediction]]:
        return self.engine.predict_threats(context)

    async def scan_messages(
        self,
        messages: Sequence[str],
        transactions: Optional[Sequence[str]] = None,
    ) -> OperationResult[List[ScamPrediction]]:
        """
        Score messages with the scam classifier, matching them against the
        community's known scam patterns.

        Pattern lookup is best-effort; on a store failure messages are still
        scored, just without emerging variants.
        """
        known = await self.patterns.all_patterns()
        if not known.success:
            logger.warning(f"Scam patterns unavailable: {known.error_message}")

        return self.engine.detect_scam_patterns(
            messages,
            transactions,
            known_patterns=known.value if known.success else None,
        )

    def screen_sms(self, body: str, sender: Optional[str] = None) -> ScamAnalysis:
        """Rule-based M-Pesa screening of a single SMS."""
        return self.mpesa.analyze_sms(body, sender)
