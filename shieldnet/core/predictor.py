"""
ShieldNet Prediction Engine

Wraps the three classifiers (threat, scam, behavioral) and turns their raw
score vectors into ranked, explainable predictions.

Pipeline:
    context -> FeatureExtractor -> vector -> Classifier -> scores
            -> threshold -> enrich (risk, window, scope, factors, actions)
            -> rank

Model absence is handled per operation:
    - threat / scam: no model means no predictions (empty list, success)
    - behavioral: no model is a failure (ModelUnavailableError)

Every public operation returns an OperationResult. Nothing in this module
awaits; it is safe to call from the monitor loop or a request handler.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..config import PredictionConfig
from ..errors import ModelUnavailableError, OperationResult, ShieldNetError
from ..models import (
    AdaptiveRecommendation,
    BehavioralAnalysis,
    BehaviorPattern,
    Difficulty,
    FactorImpact,
    GeographicScope,
    PatternType,
    PersonalizedWarning,
    PredictionTimeWindow,
    RecommendationType,
    RiskLevel,
    ScamPattern,
    ScamPrediction,
    ScamType,
    ScamVariant,
    Severity,
    ThreatContext,
    ThreatFactor,
    ThreatPrediction,
    ThreatType,
    UserActivity,
    UserRiskProfile,
    VulnerabilityFactor,
    WarningType,
    WarningUrgency,
    utc_now,
)
from .classifier import Classifier, load_classifier
from .features import LONG_DIGIT_RUN_PATTERN, URL_PATTERN, FeatureExtractor, feature_diversity


logger = logging.getLogger(__name__)


URGENT_ACTION = "URGENT: Take immediate protective measures"


# =============================================================================
# THREAT LOOKUP TABLES
# =============================================================================

_DEFAULT_FACTOR = ThreatFactor(
    factor="General online activity",
    weight=0.5,
    description="Regular internet usage creates exposure",
    impact=FactorImpact.LOW,
)

THREAT_FACTORS: Dict[ThreatType, List[ThreatFactor]] = {
    ThreatType.MPESA_SCAM: [
        ThreatFactor(
            factor="High M-Pesa usage pattern",
            weight=0.8,
            description="Frequent mobile money transactions increase exposure",
            impact=FactorImpact.HIGH,
        ),
    ],
    ThreatType.PHISHING_ATTACK: [
        ThreatFactor(
            factor="High email/message volume",
            weight=0.7,
            description="Large number of communications increase phishing risk",
            impact=FactorImpact.MODERATE,
        ),
    ],
}

THREAT_ACTIONS: Dict[ThreatType, List[str]] = {
    ThreatType.MPESA_SCAM: [
        "Review recent M-Pesa transactions",
        "Enable transaction notifications",
        "Avoid sharing PIN or personal details",
        "Report suspicious messages to Safaricom",
    ],
    ThreatType.PHISHING_ATTACK: [
        "Check sender email addresses carefully",
        "Don't click suspicious links",
        "Enable email security filters",
        "Report phishing attempts",
    ],
}

_DEFAULT_ACTIONS = ["Stay vigilant and report suspicious activity"]

TIME_WINDOWS: Dict[ThreatType, PredictionTimeWindow] = {
    ThreatType.MPESA_SCAM: PredictionTimeWindow.NEXT_HOUR,
    ThreatType.PHISHING_ATTACK: PredictionTimeWindow.NEXT_HOUR,
    ThreatType.ROMANCE_SCAM: PredictionTimeWindow.NEXT_WEEK,
    ThreatType.INVESTMENT_FRAUD: PredictionTimeWindow.NEXT_WEEK,
}

NATIONAL_THREATS = frozenset({ThreatType.MPESA_SCAM, ThreatType.INVESTMENT_FRAUD})


# =============================================================================
# SCAM LOOKUP TABLES
# =============================================================================

_DEFAULT_DEMOGRAPHICS = ["Young adults", "Elderly", "Business owners"]
_DEFAULT_CHANNELS = ["SMS", "Email", "WhatsApp", "Phone calls"]
_DEFAULT_INDICATORS = ["Urgent language", "Request for personal info"]
_DEFAULT_PREVENTION = ["Verify sender identity", "Don't share personal info"]

SCAM_DEMOGRAPHICS: Dict[ScamType, List[str]] = {
    ScamType.FAKE_JOB_OFFERS: ["Young adults", "Recent graduates", "Job seekers"],
    ScamType.DATING_APP_SCAMS: ["Young adults", "Elderly", "Diaspora users"],
    ScamType.FOREX_TRADING_SCAMS: ["Young adults", "Business owners"],
}

SCAM_CHANNELS: Dict[ScamType, List[str]] = {
    ScamType.MPESA_REVERSAL: ["SMS", "Phone calls"],
    ScamType.FAKE_LOAN_OFFERS: ["SMS", "WhatsApp", "Mobile apps"],
    ScamType.DATING_APP_SCAMS: ["Dating apps", "WhatsApp", "Social media"],
    ScamType.TECH_SUPPORT_SCAMS: ["Phone calls", "Email", "Browser pop-ups"],
}

SCAM_PREVENTION: Dict[ScamType, List[str]] = {
    ScamType.MPESA_REVERSAL: [
        "Verify sender identity",
        "Check your M-Pesa balance before sending anything back",
        "Never share your M-Pesa PIN",
    ],
    ScamType.FAKE_LOAN_OFFERS: [
        "Verify sender identity",
        "Never pay an upfront fee for a loan",
    ],
    ScamType.FAKE_JOB_OFFERS: [
        "Verify sender identity",
        "Legitimate employers never charge application fees",
    ],
}


# =============================================================================
# BEHAVIORAL LOOKUP TABLES
# =============================================================================

# Classifier output slots 2..4
BEHAVIOR_PATTERN_SLOTS: Tuple[Tuple[PatternType, int], ...] = (
    (PatternType.COMMUNICATION, 2),
    (PatternType.FINANCIAL, 3),
    (PatternType.TIMING, 4),
)

BEHAVIOR_PATTERN_DESCRIPTIONS: Dict[PatternType, str] = {
    PatternType.COMMUNICATION: "Unusual volume of messages and calls from unknown contacts",
    PatternType.FINANCIAL: "Irregular mobile money activity",
    PatternType.TIMING: "Device activity at unusual hours",
}

VULNERABILITIES: Dict[UserRiskProfile, List[VulnerabilityFactor]] = {
    UserRiskProfile.LOW_RISK: [],
    UserRiskProfile.MODERATE_RISK: [
        VulnerabilityFactor(
            factor="Moderate online exposure",
            severity=Severity.LOW,
            description="Regular activity on channels commonly used by scammers",
            mitigation_strategies=["Review app permissions", "Enable spam filtering"],
        ),
    ],
    UserRiskProfile.HIGH_RISK: [
        VulnerabilityFactor(
            factor="High online exposure",
            severity=Severity.MEDIUM,
            description="Activity profile matches users frequently targeted by fraud",
            mitigation_strategies=[
                "Enable two-factor authentication",
                "Set transaction limits on mobile money",
            ],
        ),
    ],
    UserRiskProfile.VULNERABLE_USER: [
        VulnerabilityFactor(
            factor="Susceptibility to social engineering",
            severity=Severity.HIGH,
            description="Interaction patterns suggest difficulty recognising scam tactics",
            mitigation_strategies=[
                "Verify requests with a trusted contact before acting",
                "Never share PINs or one-time codes",
            ],
        ),
    ],
    UserRiskProfile.FREQUENT_TARGET: [
        VulnerabilityFactor(
            factor="Repeated targeting",
            severity=Severity.CRITICAL,
            description="Contact details appear to be circulating among scammers",
            mitigation_strategies=[
                "Block and report unknown senders",
                "Consider changing exposed phone numbers or emails",
            ],
        ),
    ],
}

SECURITY_EVENT_VULNERABILITY = VulnerabilityFactor(
    factor="Recent security events",
    severity=Severity.MEDIUM,
    description="The device reported security events in the observed period",
    mitigation_strategies=["Run a security scan", "Change important passwords"],
)

PROFILE_RECOMMENDATIONS: Dict[UserRiskProfile, List[AdaptiveRecommendation]] = {
    UserRiskProfile.HIGH_RISK: [
        AdaptiveRecommendation(
            recommendation_type=RecommendationType.SECURITY_ENHANCEMENT,
            title="Enable two-factor authentication",
            description="Protect email, banking and social accounts with a second factor",
            adaptation_reason="Your activity profile carries elevated risk",
            expected_impact="Blocks most account takeover attempts",
            implementation_difficulty=Difficulty.EASY,
        ),
    ],
    UserRiskProfile.VULNERABLE_USER: [
        AdaptiveRecommendation(
            recommendation_type=RecommendationType.AWARENESS_TRAINING,
            title="Learn common scam tactics",
            description="Review how reversal, lottery and job scams approach victims",
            adaptation_reason="Interaction patterns suggest susceptibility to social engineering",
            expected_impact="Faster recognition of scam attempts",
            implementation_difficulty=Difficulty.EASY,
        ),
    ],
    UserRiskProfile.FREQUENT_TARGET: [
        AdaptiveRecommendation(
            recommendation_type=RecommendationType.SECURITY_ENHANCEMENT,
            title="Lock down exposed contact details",
            description="Limit who can see your phone number and email on social platforms",
            adaptation_reason="You are being contacted by scammers repeatedly",
            expected_impact="Fewer scam contacts over time",
            implementation_difficulty=Difficulty.MODERATE,
        ),
    ],
}

PATTERN_RECOMMENDATIONS: Dict[PatternType, AdaptiveRecommendation] = {
    PatternType.COMMUNICATION: AdaptiveRecommendation(
        recommendation_type=RecommendationType.AWARENESS_TRAINING,
        title="Screen unknown contacts",
        description="Do not act on messages from numbers you do not recognise",
        adaptation_reason="Unusual communication pattern detected",
        expected_impact="Reduced exposure to phishing and impersonation",
        implementation_difficulty=Difficulty.EASY,
    ),
    PatternType.FINANCIAL: AdaptiveRecommendation(
        recommendation_type=RecommendationType.BEHAVIOR_MODIFICATION,
        title="Review mobile money habits",
        description="Confirm every transaction request through the official M-Pesa menu",
        adaptation_reason="Irregular financial activity detected",
        expected_impact="Lower risk of reversal and payment scams",
        implementation_difficulty=Difficulty.MODERATE,
    ),
    PatternType.TIMING: AdaptiveRecommendation(
        recommendation_type=RecommendationType.BEHAVIOR_MODIFICATION,
        title="Avoid late-night transactions",
        description="Scammers target users when they are tired; defer payments to daytime",
        adaptation_reason="Activity at unusual hours detected",
        expected_impact="Fewer impulsive decisions under pressure",
        implementation_difficulty=Difficulty.MODERATE,
    ),
}

DEFAULT_RECOMMENDATION = AdaptiveRecommendation(
    recommendation_type=RecommendationType.SYSTEM_UPDATE,
    title="Keep apps up to date",
    description="Install security updates for your phone and apps",
    adaptation_reason="Routine protection",
    expected_impact="Closes known vulnerabilities",
    implementation_difficulty=Difficulty.EASY,
)


# =============================================================================
# PURE HELPERS
# =============================================================================

def determine_risk_level(probability: float) -> RiskLevel:
    """Map a probability to its risk bucket."""
    if probability >= 0.9:
        return RiskLevel.EXTREME
    elif probability >= 0.75:
        return RiskLevel.CRITICAL
    elif probability >= 0.6:
        return RiskLevel.HIGH
    elif probability >= 0.4:
        return RiskLevel.MODERATE
    elif probability >= 0.2:
        return RiskLevel.LOW
    else:
        return RiskLevel.VERY_LOW


def calculate_confidence(probability: float, features: np.ndarray) -> float:
    """Blend model probability with how much of the feature vector is populated."""
    confidence = probability * 0.7 + feature_diversity(features) * 0.3
    return min(max(confidence, 0.0), 1.0)


def predict_time_window(threat_type: ThreatType) -> PredictionTimeWindow:
    return TIME_WINDOWS.get(threat_type, PredictionTimeWindow.NEXT_24_HOURS)


def determine_geographic_scope(threat_type: ThreatType, context: ThreatContext) -> GeographicScope:
    if context.community_alerts:
        return GeographicScope.LOCAL_AREA
    if threat_type in NATIONAL_THREATS:
        return GeographicScope.NATIONAL
    return GeographicScope.REGIONAL


def _dedupe_by(items: Iterable, key) -> list:
    seen = set()
    result = []
    for item in items:
        k = key(item)
        if k not in seen:
            seen.add(k)
            result.append(item)
    return result


# =============================================================================
# PREDICTION ENGINE
# =============================================================================

class PredictionEngine:
    """
    Classifier wrapper and result enrichment.

    Any classifier may be None. The engine never loads models itself except
    through `from_config`, so tests and callers can inject any Classifier.

    Usage:
        engine = PredictionEngine(threat_classifier=FunctionClassifier(...))
        result = engine.predict_threats(context)
        if result.success:
            for prediction in result.value:
                ...
    """

    def __init__(
        self,
        threat_classifier: Optional[Classifier] = None,
        scam_classifier: Optional[Classifier] = None,
        behavioral_classifier: Optional[Classifier] = None,
        extractor: Optional[FeatureExtractor] = None,
        config: Optional[PredictionConfig] = None,
    ):
        self.config = config or PredictionConfig()
        self.threat_classifier = threat_classifier
        self.scam_classifier = scam_classifier
        self.behavioral_classifier = behavioral_classifier
        self.extractor = extractor or FeatureExtractor(
            threat_size=self.config.threat_input_size,
            scam_size=self.config.scam_input_size,
            behavioral_size=self.config.behavioral_input_size,
        )

    @classmethod
    def from_config(cls, config: PredictionConfig) -> "PredictionEngine":
        """Build an engine, loading whichever models are configured."""
        return cls(
            threat_classifier=load_classifier(
                config.threat_model_path, config.threat_input_size, len(ThreatType)
            ),
            scam_classifier=load_classifier(
                config.scam_model_path, config.scam_input_size, len(ScamType)
            ),
            behavioral_classifier=load_classifier(
                config.behavioral_model_path,
                config.behavioral_input_size,
                config.behavioral_output_size,
            ),
            config=config,
        )

    def close(self) -> None:
        """Release all loaded models."""
        for classifier in (self.threat_classifier, self.scam_classifier, self.behavioral_classifier):
            if classifier is not None:
                classifier.close()
        logger.debug("Prediction engine closed")

    # =========================================================================
    # THREATS
    # =========================================================================

    def predict_threats(self, context: ThreatContext) -> OperationResult[List[ThreatPrediction]]:
        """
        Predict likely threats for the given context.

        Returns:
            Success with predictions ordered by probability (desc), ties
            broken by risk level (desc). Empty when no threat model is loaded.
        """
        if self.threat_classifier is None:
            logger.warning("Threat model not available - returning no predictions")
            return OperationResult.ok([])

        try:
            features = self.extractor.threat(context)
            scores = self.threat_classifier.predict(features)
        except Exception as e:
            logger.error(f"Threat prediction failed: {e}")
            return OperationResult.fail(ShieldNetError(f"Threat prediction failed: {e}"))

        predictions = []
        for threat_type, probability in zip(ThreatType, scores):
            probability = float(probability)
            if probability <= self.config.threat_probability_threshold:
                continue
            predictions.append(self._build_threat(threat_type, probability, features, context))

        predictions.sort(key=lambda p: (-p.probability, -p.risk_level.ordinal))

        if predictions:
            logger.info(
                f"Predicted {len(predictions)} threats, top: "
                f"{predictions[0].threat_type.value} ({predictions[0].probability:.2f})"
            )
        return OperationResult.ok(predictions)

    def _build_threat(
        self,
        threat_type: ThreatType,
        probability: float,
        features: np.ndarray,
        context: ThreatContext,
    ) -> ThreatPrediction:
        actions = list(THREAT_ACTIONS.get(threat_type, _DEFAULT_ACTIONS))
        if probability > self.config.high_risk_threshold:
            actions.insert(0, URGENT_ACTION)

        return ThreatPrediction(
            threat_type=threat_type,
            probability=probability,
            confidence=calculate_confidence(probability, features),
            risk_level=determine_risk_level(probability),
            time_window=predict_time_window(threat_type),
            contributing_factors=list(THREAT_FACTORS.get(threat_type, [_DEFAULT_FACTOR])),
            recommended_actions=actions,
            geographic_scope=determine_geographic_scope(threat_type, context),
        )

    # =========================================================================
    # SCAMS
    # =========================================================================

    def detect_scam_patterns(
        self,
        messages: Sequence[str],
        transactions: Optional[Sequence[str]] = None,
        known_patterns: Optional[Sequence[ScamPattern]] = None,
    ) -> OperationResult[List[ScamPrediction]]:
        """
        Classify each message and collect scam predictions.

        Args:
            messages: Message bodies to score
            transactions: Optional transaction descriptions for the same user
            known_patterns: Community scam patterns; any whose phrases appear
                in a message are attached as emerging variants

        Returns:
            Success with at most one prediction per scam type (the first
            message that triggered it wins). Empty when no scam model is loaded.
        """
        if self.scam_classifier is None:
            logger.warning("Scam model not available - returning no predictions")
            return OperationResult.ok([])

        predictions: List[ScamPrediction] = []
        try:
            for message in messages:
                features = self.extractor.scam(message, transactions)
                scores = self.scam_classifier.predict(features)
                variants = self._emerging_variants(message, known_patterns or [])

                for scam_type, likelihood in zip(ScamType, scores):
                    likelihood = float(likelihood)
                    if likelihood <= self.config.scam_probability_threshold:
                        continue
                    predictions.append(ScamPrediction(
                        scam_type=scam_type,
                        likelihood=likelihood,
                        target_demographics=list(
                            SCAM_DEMOGRAPHICS.get(scam_type, _DEFAULT_DEMOGRAPHICS)
                        ),
                        communication_channels=list(
                            SCAM_CHANNELS.get(scam_type, _DEFAULT_CHANNELS)
                        ),
                        key_indicators=self._key_indicators(message),
                        prevention_measures=list(
                            SCAM_PREVENTION.get(scam_type, _DEFAULT_PREVENTION)
                        ),
                        emerging_variants=list(variants),
                    ))
        except Exception as e:
            logger.error(f"Scam detection failed: {e}")
            return OperationResult.fail(ShieldNetError(f"Scam detection failed: {e}"))

        return OperationResult.ok(_dedupe_by(predictions, lambda p: p.scam_type))

    @staticmethod
    def _key_indicators(message: str) -> List[str]:
        indicators = list(_DEFAULT_INDICATORS)
        if URL_PATTERN.search(message):
            indicators.append("Contains a link")
        if LONG_DIGIT_RUN_PATTERN.search(message):
            indicators.append("Contains a phone or account number")
        return indicators

    @staticmethod
    def _emerging_variants(message: str, patterns: Sequence[ScamPattern]) -> List[ScamVariant]:
        lowered = message.lower()
        variants = []
        for pattern in patterns:
            matched = [p for p in pattern.common_phrases if p and p.lower() in lowered]
            if not matched:
                continue
            variants.append(ScamVariant(
                name=pattern.pattern_type,
                description=pattern.description,
                first_detected=pattern.last_seen,
                prevalence_score=min(pattern.report_count / 10, 1.0),
                tactics_used=matched,
            ))
        return variants

    # =========================================================================
    # BEHAVIOR
    # =========================================================================

    def analyze_behavior(self, activity: UserActivity) -> OperationResult[BehavioralAnalysis]:
        """
        Profile a user's activity.

        Classifier output layout:
            0: risk profile index (rounded, clamped to the enum range)
            1: anomaly score
            2-4: communication, financial and timing pattern risk

        Returns:
            Success with the analysis, or failure with ModelUnavailableError
            when no behavioral model is loaded.
        """
        if self.behavioral_classifier is None:
            logger.warning("Behavioral analysis requested without a model")
            return OperationResult.fail(
                ModelUnavailableError("Behavioral analysis model not available")
            )

        try:
            features = self.extractor.behavioral(activity)
            results = self.behavioral_classifier.predict(features)
        except Exception as e:
            logger.error(f"Behavioral analysis failed: {e}")
            return OperationResult.fail(ShieldNetError(f"Behavioral analysis failed: {e}"))

        profiles = list(UserRiskProfile)
        index = min(max(int(round(float(results[0]))), 0), len(profiles) - 1)
        profile = profiles[index]
        anomaly_score = float(results[1])

        patterns = self._behavior_patterns(activity, features, results)

        return OperationResult.ok(BehavioralAnalysis(
            user_risk_profile=profile,
            anomaly_score=anomaly_score,
            behavior_patterns=patterns,
            vulnerability_factors=self._vulnerabilities(activity, profile),
            personalized_warnings=self._warnings(profile, anomaly_score, patterns),
            adaptive_recommendations=self._recommendations(profile, patterns),
        ))

    def _behavior_patterns(
        self,
        activity: UserActivity,
        features: np.ndarray,
        results: np.ndarray,
    ) -> List[BehaviorPattern]:
        frequencies = {
            PatternType.COMMUNICATION: float(features[1]),
            PatternType.FINANCIAL: len(activity.financial_transactions) / 10,
            PatternType.TIMING: float(features[3]),
        }

        patterns = []
        for pattern_type, slot in BEHAVIOR_PATTERN_SLOTS:
            if slot >= len(results):
                continue
            risk = float(results[slot])
            if determine_risk_level(risk).ordinal < RiskLevel.MODERATE.ordinal:
                continue
            patterns.append(BehaviorPattern(
                pattern_type=pattern_type,
                frequency=frequencies[pattern_type],
                normalcy=min(max(1.0 - risk, 0.0), 1.0),
                risk_association=risk,
                description=BEHAVIOR_PATTERN_DESCRIPTIONS[pattern_type],
            ))
        return patterns

    @staticmethod
    def _vulnerabilities(activity: UserActivity, profile: UserRiskProfile) -> List[VulnerabilityFactor]:
        factors = list(VULNERABILITIES.get(profile, []))
        if activity.security_events:
            factors.append(SECURITY_EVENT_VULNERABILITY)
        return factors

    def _warnings(
        self,
        profile: UserRiskProfile,
        anomaly_score: float,
        patterns: List[BehaviorPattern],
    ) -> List[PersonalizedWarning]:
        warnings = []

        if anomaly_score >= self.config.anomaly_threshold:
            warnings.append(PersonalizedWarning(
                warning_type=WarningType.BEHAVIORAL_ANOMALY,
                message="Your recent activity differs sharply from your usual pattern",
                urgency=WarningUrgency.HIGH,
                action_required=True,
                contextual_info=f"Anomaly score {anomaly_score:.2f}",
            ))

        for pattern in patterns:
            if pattern.risk_association >= self.config.high_risk_threshold:
                warnings.append(PersonalizedWarning(
                    warning_type=WarningType.SUSPICIOUS_ACTIVITY,
                    message=pattern.description,
                    urgency=WarningUrgency.MEDIUM,
                    action_required=True,
                    contextual_info=f"{pattern.pattern_type.value} risk {pattern.risk_association:.2f}",
                ))

        if profile == UserRiskProfile.FREQUENT_TARGET:
            warnings.append(PersonalizedWarning(
                warning_type=WarningType.IMMEDIATE_THREAT,
                message="You are being targeted repeatedly - treat every payment request as suspicious",
                urgency=WarningUrgency.CRITICAL,
                action_required=True,
            ))
        elif profile == UserRiskProfile.VULNERABLE_USER:
            warnings.append(PersonalizedWarning(
                warning_type=WarningType.ENVIRONMENTAL_RISK,
                message="Scams active in your area match your activity profile",
                urgency=WarningUrgency.HIGH,
                action_required=False,
            ))

        return warnings

    @staticmethod
    def _recommendations(
        profile: UserRiskProfile,
        patterns: List[BehaviorPattern],
    ) -> List[AdaptiveRecommendation]:
        recommendations = list(PROFILE_RECOMMENDATIONS.get(profile, []))
        for pattern in patterns:
            recommendations.append(PATTERN_RECOMMENDATIONS[pattern.pattern_type])

        recommendations = _dedupe_by(recommendations, lambda r: r.title)
        return recommendations or [DEFAULT_RECOMMENDATION]
