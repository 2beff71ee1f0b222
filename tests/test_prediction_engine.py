"""
ShieldNet Test - Prediction Engine

Validates:
- Threat thresholding, enrichment and ranking
- Model absence semantics per operation
- Scam detection dedupe and community pattern variants
- Behavioral profiling, warnings and recommendations
- Classifier shape errors surface as failed results
"""

from datetime import datetime, timezone
from typing import List

import numpy as np
import pytest

from shieldnet.core.classifier import FunctionClassifier, load_classifier
from shieldnet.core.predictor import (
    DEFAULT_RECOMMENDATION,
    URGENT_ACTION,
    PredictionEngine,
    calculate_confidence,
    determine_geographic_scope,
    determine_risk_level,
    predict_time_window,
)
from shieldnet.errors import ModelUnavailableError, ShieldNetError
from shieldnet.models import (
    GeographicScope,
    PatternType,
    PredictionTimeWindow,
    RiskLevel,
    ScamPattern,
    ScamType,
    ThreatContext,
    ThreatType,
    UserActivity,
    UserRiskProfile,
    WarningType,
    WarningUrgency,
)


# =============================================================================
# TEST FIXTURES
# =============================================================================

def threat_scores(**probabilities: float) -> List[float]:
    """Score vector in ThreatType order, zero for unnamed types."""
    return [probabilities.get(t.name, 0.0) for t in ThreatType]


def scam_scores(**likelihoods: float) -> List[float]:
    return [likelihoods.get(t.name, 0.0) for t in ScamType]


def threat_engine(scores: List[float]) -> PredictionEngine:
    return PredictionEngine(
        threat_classifier=FunctionClassifier(lambda _: scores, 50, len(ThreatType)),
    )


def scam_engine(fn) -> PredictionEngine:
    return PredictionEngine(
        scam_classifier=FunctionClassifier(fn, 100, len(ScamType)),
    )


def behavioral_engine(outputs: List[float]) -> PredictionEngine:
    return PredictionEngine(
        behavioral_classifier=FunctionClassifier(lambda _: outputs, 30, 5),
    )


@pytest.fixture
def afternoon_context():
    return ThreatContext(time_of_day=14, day_of_week=3, community_alerts=["a"])


# =============================================================================
# PURE HELPERS
# =============================================================================

class TestRiskLevel:

    @pytest.mark.parametrize("probability,level", [
        (0.0, RiskLevel.VERY_LOW),
        (0.19, RiskLevel.VERY_LOW),
        (0.2, RiskLevel.LOW),
        (0.4, RiskLevel.MODERATE),
        (0.59, RiskLevel.MODERATE),
        (0.6, RiskLevel.HIGH),
        (0.75, RiskLevel.CRITICAL),
        (0.89, RiskLevel.CRITICAL),
        (0.9, RiskLevel.EXTREME),
        (1.0, RiskLevel.EXTREME),
    ])
    def test_buckets(self, probability, level):
        assert determine_risk_level(probability) == level


class TestEnrichmentHelpers:

    def test_time_windows(self):
        assert predict_time_window(ThreatType.MPESA_SCAM) == PredictionTimeWindow.NEXT_HOUR
        assert predict_time_window(ThreatType.PHISHING_ATTACK) == PredictionTimeWindow.NEXT_HOUR
        assert predict_time_window(ThreatType.ROMANCE_SCAM) == PredictionTimeWindow.NEXT_WEEK
        assert predict_time_window(ThreatType.INVESTMENT_FRAUD) == PredictionTimeWindow.NEXT_WEEK
        assert predict_time_window(ThreatType.RANSOMWARE) == PredictionTimeWindow.NEXT_24_HOURS

    def test_community_alerts_make_scope_local(self):
        context = ThreatContext(community_alerts=["x"])
        for threat_type in ThreatType:
            assert determine_geographic_scope(threat_type, context) == GeographicScope.LOCAL_AREA

    def test_scope_without_community_alerts(self):
        context = ThreatContext()
        assert determine_geographic_scope(ThreatType.MPESA_SCAM, context) == GeographicScope.NATIONAL
        assert determine_geographic_scope(ThreatType.INVESTMENT_FRAUD, context) == GeographicScope.NATIONAL
        assert determine_geographic_scope(ThreatType.PHISHING_ATTACK, context) == GeographicScope.REGIONAL

    def test_confidence_is_clamped(self):
        assert calculate_confidence(5.0, np.ones(10)) == 1.0
        assert calculate_confidence(-5.0, np.zeros(10)) == 0.0

    def test_confidence_blend(self):
        features = np.array([0.0, 0.5, 0.5, 0.0])
        assert calculate_confidence(0.5, features) == pytest.approx(0.5 * 0.7 + 0.5 * 0.3)


# =============================================================================
# THREAT PREDICTION
# =============================================================================

class TestPredictThreats:

    def test_high_probability_mpesa_scam(self, afternoon_context):
        """A single 0.8 M-Pesa score with one community alert nearby."""
        engine = threat_engine(threat_scores(MPESA_SCAM=0.8))

        result = engine.predict_threats(afternoon_context)

        assert result.success
        assert len(result.value) == 1
        threat = result.value[0]
        assert threat.threat_type == ThreatType.MPESA_SCAM
        assert threat.probability == pytest.approx(0.8)
        assert threat.risk_level == RiskLevel.CRITICAL
        assert threat.time_window == PredictionTimeWindow.NEXT_HOUR
        assert threat.geographic_scope == GeographicScope.LOCAL_AREA
        assert threat.recommended_actions[0] == URGENT_ACTION
        assert "Review recent M-Pesa transactions" in threat.recommended_actions
        assert threat.contributing_factors[0].factor == "High M-Pesa usage pattern"
        assert 0.0 <= threat.confidence <= 1.0

    def test_threshold_is_strict(self, afternoon_context):
        engine = threat_engine(threat_scores(MPESA_SCAM=0.10, PHISHING_ATTACK=0.11, RANSOMWARE=0.05))

        result = engine.predict_threats(afternoon_context)

        assert [p.threat_type for p in result.value] == [ThreatType.PHISHING_ATTACK]
        assert all(p.probability > 0.10 for p in result.value)

    def test_urgent_action_only_above_high_risk(self, afternoon_context):
        engine = threat_engine(threat_scores(MPESA_SCAM=0.75))

        threat = engine.predict_threats(afternoon_context).value[0]

        assert URGENT_ACTION not in threat.recommended_actions
        assert threat.risk_level == RiskLevel.CRITICAL

    def test_ordering(self, afternoon_context):
        engine = threat_engine(threat_scores(
            MPESA_SCAM=0.3,
            PHISHING_ATTACK=0.6,
            IDENTITY_THEFT=0.6,
            RANSOMWARE=0.95,
        ))

        result = engine.predict_threats(afternoon_context)

        assert [p.threat_type for p in result.value] == [
            ThreatType.RANSOMWARE,
            ThreatType.PHISHING_ATTACK,
            ThreatType.IDENTITY_THEFT,
            ThreatType.MPESA_SCAM,
        ]
        probabilities = [p.probability for p in result.value]
        assert probabilities == sorted(probabilities, reverse=True)

    def test_default_factor_and_actions(self, afternoon_context):
        engine = threat_engine(threat_scores(CYBERBULLYING=0.5))

        threat = engine.predict_threats(afternoon_context).value[0]

        assert threat.contributing_factors[0].factor == "General online activity"
        assert threat.recommended_actions == ["Stay vigilant and report suspicious activity"]

    def test_no_model_returns_empty(self, afternoon_context):
        result = PredictionEngine().predict_threats(afternoon_context)

        assert result.success
        assert result.value == []

    def test_wrong_output_shape_fails(self, afternoon_context):
        engine = PredictionEngine(
            threat_classifier=FunctionClassifier(lambda _: [0.5] * 3, 50, len(ThreatType)),
        )

        result = engine.predict_threats(afternoon_context)

        assert not result.success
        assert isinstance(result.error, ShieldNetError)
        assert "returned 3 values" in result.error_message

    def test_nan_scores_fail(self, afternoon_context):
        engine = threat_engine([float("nan")] + [0.0] * (len(ThreatType) - 1))

        result = engine.predict_threats(afternoon_context)

        assert not result.success
        assert "non-finite" in result.error_message

    def test_unexpected_classifier_error_fails(self, afternoon_context):
        def broken(_):
            raise KeyError("missing layer")

        engine = PredictionEngine(
            threat_classifier=FunctionClassifier(broken, 50, len(ThreatType)),
        )

        result = engine.predict_threats(afternoon_context)

        assert not result.success
        assert "missing layer" in result.error_message

    def test_classifier_receives_threat_vector(self, afternoon_context):
        seen = []

        def fn(features):
            seen.append(features)
            return threat_scores()

        engine = PredictionEngine(threat_classifier=FunctionClassifier(fn, 50, len(ThreatType)))
        engine.predict_threats(afternoon_context)

        assert seen[0].shape == (50,)
        assert seen[0][0] == pytest.approx(14 / 24)
        assert seen[0][8] == pytest.approx(1 / 5)


# =============================================================================
# SCAM DETECTION
# =============================================================================

class TestDetectScamPatterns:

    def test_no_model_returns_empty(self):
        result = PredictionEngine().detect_scam_patterns(["anything"])

        assert result.success
        assert result.value == []

    def test_likelihood_threshold(self):
        engine = scam_engine(lambda _: scam_scores(MPESA_REVERSAL=0.31, FAKE_LOAN_OFFERS=0.30))

        result = engine.detect_scam_patterns(["Reverse the transaction"])

        assert [p.scam_type for p in result.value] == [ScamType.MPESA_REVERSAL]

    def test_first_message_wins_per_scam_type(self):
        likelihoods = iter([0.5, 0.9])
        engine = scam_engine(lambda _: scam_scores(MPESA_REVERSAL=next(likelihoods)))

        result = engine.detect_scam_patterns(["first", "second https://x.co"])

        assert len(result.value) == 1
        assert result.value[0].likelihood == pytest.approx(0.5)
        assert "Contains a link" not in result.value[0].key_indicators

    def test_enrichment(self):
        engine = scam_engine(lambda _: scam_scores(MPESA_REVERSAL=0.9, CHARITY_SCAMS=0.4))

        result = engine.detect_scam_patterns(["Call 0712345678 or visit https://bit.ly/x"])
        by_type = {p.scam_type: p for p in result.value}

        reversal = by_type[ScamType.MPESA_REVERSAL]
        assert reversal.communication_channels == ["SMS", "Phone calls"]
        assert "Never share your M-Pesa PIN" in reversal.prevention_measures
        assert reversal.key_indicators == [
            "Urgent language",
            "Request for personal info",
            "Contains a link",
            "Contains a phone or account number",
        ]

        charity = by_type[ScamType.CHARITY_SCAMS]
        assert charity.target_demographics == ["Young adults", "Elderly", "Business owners"]
        assert charity.prevention_measures == ["Verify sender identity", "Don't share personal info"]

    def test_known_patterns_become_variants(self):
        last_seen = datetime(2024, 3, 10, tzinfo=timezone.utc)
        known = [
            ScamPattern(
                pattern_type="mpesa_reversal",
                description="Fake reversal requests",
                common_phrases=["Reverse the", "wrong number"],
                report_count=4,
                last_seen=last_seen,
            ),
            ScamPattern(
                pattern_type="fake_job",
                description="Upfront fee job offers",
                common_phrases=["application fee"],
                report_count=20,
            ),
        ]
        engine = scam_engine(lambda _: scam_scores(MPESA_REVERSAL=0.7))

        result = engine.detect_scam_patterns(
            ["I sent to the WRONG NUMBER, please reverse the money"],
            known_patterns=known,
        )

        variants = result.value[0].emerging_variants
        assert len(variants) == 1
        assert variants[0].name == "mpesa_reversal"
        assert variants[0].first_detected == last_seen
        assert variants[0].prevalence_score == pytest.approx(0.4)
        assert variants[0].tactics_used == ["Reverse the", "wrong number"]

    def test_prevalence_is_capped(self):
        known = [ScamPattern(pattern_type="p", description="d", common_phrases=["pin"], report_count=50)]
        engine = scam_engine(lambda _: scam_scores(FAKE_LOAN_OFFERS=0.5))

        result = engine.detect_scam_patterns(["send your PIN"], known_patterns=known)

        assert result.value[0].emerging_variants[0].prevalence_score == 1.0

    def test_classifier_error_fails(self):
        def broken(_):
            raise RuntimeError("model crashed")

        result = scam_engine(broken).detect_scam_patterns(["hello"])

        assert not result.success
        assert "model crashed" in result.error_message

    def test_infinite_scores_fail(self):
        result = scam_engine(lambda _: [float("inf")] * len(ScamType)).detect_scam_patterns(["hello"])

        assert not result.success
        assert "non-finite" in result.error_message

    def test_type_error_fails(self):
        def broken(_):
            raise TypeError("bad tensor")

        result = scam_engine(broken).detect_scam_patterns(["hello"])

        assert not result.success
        assert "bad tensor" in result.error_message


# =============================================================================
# BEHAVIORAL ANALYSIS
# =============================================================================

class TestAnalyzeBehavior:

    def test_no_model_fails(self):
        result = PredictionEngine().analyze_behavior(UserActivity())

        assert not result.success
        assert isinstance(result.error, ModelUnavailableError)

    def test_low_risk_user(self):
        result = behavioral_engine([0.2, 0.1, 0.1, 0.2, 0.3]).analyze_behavior(UserActivity())

        analysis = result.value
        assert analysis.user_risk_profile == UserRiskProfile.LOW_RISK
        assert analysis.anomaly_score == pytest.approx(0.1)
        assert analysis.behavior_patterns == []
        assert analysis.vulnerability_factors == []
        assert analysis.personalized_warnings == []
        assert analysis.adaptive_recommendations == [DEFAULT_RECOMMENDATION]

    @pytest.mark.parametrize("raw,profile", [
        (-3.0, UserRiskProfile.LOW_RISK),
        (0.6, UserRiskProfile.MODERATE_RISK),
        (2.4, UserRiskProfile.HIGH_RISK),
        (3.0, UserRiskProfile.VULNERABLE_USER),
        (9.0, UserRiskProfile.FREQUENT_TARGET),
    ])
    def test_profile_index_is_rounded_and_clamped(self, raw, profile):
        result = behavioral_engine([raw, 0.0, 0.0, 0.0, 0.0]).analyze_behavior(UserActivity())
        assert result.value.user_risk_profile == profile

    def test_patterns_and_warnings(self):
        activity = UserActivity(
            communication_frequency={"sms": 40},
            financial_transactions=["t1", "t2"],
            security_events=["root detected"],
        )
        engine = behavioral_engine([4.0, 0.85, 0.8, 0.45, 0.1])

        analysis = engine.analyze_behavior(activity).value

        assert [p.pattern_type for p in analysis.behavior_patterns] == [
            PatternType.COMMUNICATION,
            PatternType.FINANCIAL,
        ]
        communication = analysis.behavior_patterns[0]
        assert communication.frequency == pytest.approx(0.4)
        assert communication.normalcy == pytest.approx(0.2)
        assert analysis.behavior_patterns[1].frequency == pytest.approx(0.2)

        warning_types = [w.warning_type for w in analysis.personalized_warnings]
        assert warning_types == [
            WarningType.BEHAVIORAL_ANOMALY,
            WarningType.SUSPICIOUS_ACTIVITY,
            WarningType.IMMEDIATE_THREAT,
        ]
        assert analysis.personalized_warnings[-1].urgency == WarningUrgency.CRITICAL

        factors = [v.factor for v in analysis.vulnerability_factors]
        assert factors == ["Repeated targeting", "Recent security events"]

        titles = [r.title for r in analysis.adaptive_recommendations]
        assert titles == [
            "Lock down exposed contact details",
            "Screen unknown contacts",
            "Review mobile money habits",
        ]

    def test_vulnerable_user_warning_is_informational(self):
        analysis = behavioral_engine([3.0, 0.0, 0.0, 0.0, 0.0]).analyze_behavior(UserActivity()).value

        warning = analysis.personalized_warnings[0]
        assert warning.warning_type == WarningType.ENVIRONMENTAL_RISK
        assert warning.action_required is False

    def test_wrong_output_shape_fails(self):
        engine = PredictionEngine(
            behavioral_classifier=FunctionClassifier(lambda _: [0.0, 0.0], 30, 5),
        )

        result = engine.analyze_behavior(UserActivity())

        assert not result.success
        assert not isinstance(result.error, ModelUnavailableError)

    def test_nan_output_fails(self):
        result = behavioral_engine([1.0, float("nan"), 0.0, 0.0, 0.0]).analyze_behavior(UserActivity())

        assert not result.success
        assert "non-finite" in result.error_message


# =============================================================================
# MODEL LOADING
# =============================================================================

class TestModelLoading:

    def test_no_path_disables_classifier(self):
        assert load_classifier(None, 50, 10) is None
        assert load_classifier("", 50, 10) is None

    def test_missing_file_disables_classifier(self, tmp_path):
        assert load_classifier(tmp_path / "missing.pt", 50, 10) is None

    def test_engine_from_config_without_models(self):
        from shieldnet.config import PredictionConfig

        engine = PredictionEngine.from_config(PredictionConfig())

        assert engine.threat_classifier is None
        assert engine.scam_classifier is None
        assert engine.behavioral_classifier is None

    def test_classifier_rejects_wrong_input_size(self):
        classifier = FunctionClassifier(lambda _: [0.0], input_size=4, output_size=1)

        with pytest.raises(ValueError):
            classifier.predict(np.zeros(3))
