"""
ShieldNet Test - M-Pesa Scam Wave Scenario

Simulates a reversal-scam wave hitting Nairobi end to end through the
ShieldNet facade:

Test Scenario:
    - Residents around the CBD report a wave of fake reversal SMS
    - Three reports of the same pattern promote it to a trend alert
    - The area safety score drops as high-severity alerts come in
    - Incoming SMS are scored and matched against the community pattern
    - The monitor escalates the resulting M-Pesa threat

This validates that the community, prediction and monitoring layers agree
on the same shared store.
"""

from typing import List

import pytest

from shieldnet import ShieldNet
from shieldnet.community.patterns import TREND_ALERT_TITLE
from shieldnet.config import ShieldNetConfig
from shieldnet.core.classifier import FunctionClassifier
from shieldnet.core.predictor import PredictionEngine
from shieldnet.errors import StoreError
from shieldnet.models import (
    AlertSeverity,
    AlertType,
    RiskLevel,
    SafetyAlert,
    SafetyLevel,
    ScamType,
    ThreatContext,
    ThreatType,
)
from shieldnet.monitor import EscalationSink
from shieldnet.store.memory import InMemoryAlertStore


# =============================================================================
# TEST FIXTURES
# =============================================================================

REVERSAL_PHRASES = ["sent to you by mistake", "please reverse"]

SCAM_SMS = (
    "Hello, I have sent to you by mistake KSH 2,500. "
    "Please reverse to 0712345678 urgently"
)


class RecordingSink(EscalationSink):
    def __init__(self):
        self.batches: List[list] = []

    async def escalate(self, predictions):
        self.batches.append(list(predictions))


def threat_model(features) -> List[float]:
    """M-Pesa threat rises with the number of nearby community alerts."""
    alert_slot = float(features[8])
    mpesa = min(0.3 + alert_slot, 0.95)
    return [mpesa if t == ThreatType.MPESA_SCAM else 0.05 for t in ThreatType]


def scam_model(features) -> List[float]:
    """Reversal likelihood from the M-Pesa keyword and digit-run slots."""
    reversal = 0.4 + 0.5 * float(features[5])
    return [reversal if t == ScamType.MPESA_REVERSAL else 0.0 for t in ScamType]


@pytest.fixture
def engine():
    return PredictionEngine(
        threat_classifier=FunctionClassifier(threat_model, 50, len(ThreatType)),
        scam_classifier=FunctionClassifier(scam_model, 100, len(ScamType)),
    )


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def shieldnet(engine, sink, clock, nairobi_cbd):
    config = ShieldNetConfig()
    config.monitor.watch_latitude = nairobi_cbd.latitude
    config.monitor.watch_longitude = nairobi_cbd.longitude

    return ShieldNet(
        store=InMemoryAlertStore(),
        engine=engine,
        config=config,
        sink=sink,
        clock=clock,
    )


def wave_alert(clock, location) -> SafetyAlert:
    return SafetyAlert(
        alert_type=AlertType.MPESA_SCAM_WAVE,
        title="Reversal SMS wave",
        description="Fake 'sent by mistake' messages asking for reversals",
        location=location,
        reporter_hash="resident",
        severity=AlertSeverity.HIGH,
        created_at=clock.now,
    )


# =============================================================================
# SCENARIO
# =============================================================================

class TestScamWaveScenario:

    @pytest.mark.asyncio
    async def test_full_wave(self, shieldnet, sink, clock, nairobi_cbd, westlands):
        await shieldnet.initialize()

        # Quiet area before the wave
        before = await shieldnet.alerts.get_area_safety_score(*nairobi_cbd.as_tuple)
        assert before.value.level == SafetyLevel.SAFE

        # Residents report the wave
        for location in (nairobi_cbd, westlands, westlands, nairobi_cbd):
            result = await shieldnet.alerts.submit_alert(wave_alert(clock, location))
            assert result.success

        # ...and the underlying scam pattern
        for _ in range(3):
            result = await shieldnet.patterns.submit_pattern(
                "mpesa_reversal",
                "Fake reversal request after a bogus deposit",
                REVERSAL_PHRASES,
                example=SCAM_SMS,
            )
            assert result.success

        active = (await shieldnet.alerts.get_active_alerts()).value
        assert sum(1 for a in active if a.title == TREND_ALERT_TITLE) == 1

        trending = (await shieldnet.patterns.trending_patterns()).value
        assert [p.pattern_type for p in trending] == ["mpesa_reversal"]

        # Four high-severity alerts within 5 km
        after = await shieldnet.alerts.get_area_safety_score(*nairobi_cbd.as_tuple)
        assert after.value.level == SafetyLevel.DANGEROUS
        assert after.value.major_concerns == [AlertType.MPESA_SCAM_WAVE]

        # Incoming SMS matches the community pattern
        scan = await shieldnet.scan_messages([SCAM_SMS])
        assert scan.success
        reversal = scan.value[0]
        assert reversal.scam_type == ScamType.MPESA_REVERSAL
        assert reversal.likelihood == pytest.approx(0.9)
        assert reversal.emerging_variants[0].name == "mpesa_reversal"
        assert reversal.emerging_variants[0].tactics_used == REVERSAL_PHRASES

        screening = shieldnet.screen_sms(SCAM_SMS, sender="0712345678")
        assert screening.risk_factors

        # Monitor sees the nearby alerts and escalates
        escalated = await shieldnet.monitor.run_cycle()
        assert [p.threat_type for p in escalated] == [ThreatType.MPESA_SCAM]
        assert escalated[0].risk_level.ordinal >= RiskLevel.CRITICAL.ordinal
        assert sink.batches == [escalated]

        await shieldnet.close()

    @pytest.mark.asyncio
    async def test_quiet_area_is_not_escalated(self, shieldnet):
        await shieldnet.initialize()

        escalated = await shieldnet.monitor.run_cycle()

        assert escalated == []
        await shieldnet.close()

    @pytest.mark.asyncio
    async def test_monitoring_lifecycle(self, shieldnet):
        await shieldnet.start_monitoring()
        assert shieldnet.monitor.is_running

        await shieldnet.stop_monitoring()
        assert not shieldnet.monitor.is_running
        await shieldnet.close()

    @pytest.mark.asyncio
    async def test_unreachable_store_fails_initialize(self, engine):
        class DownStore(InMemoryAlertStore):
            async def health_check(self):
                return False

        net = ShieldNet(store=DownStore(), engine=engine, sink=RecordingSink())

        with pytest.raises(StoreError):
            await net.initialize()

    @pytest.mark.asyncio
    async def test_from_config_without_models(self, test_config):
        net = ShieldNet.from_config(test_config)
        await net.initialize()

        assert isinstance(net.store, InMemoryAlertStore)
        assert (await net.scan_messages(["hello"])).value == []
        assert net.predict_threats(ThreatContext()).value == []

        await net.close()
