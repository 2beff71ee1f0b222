"""
ShieldNet Core Data Models

This module defines the data structures shared by every ShieldNet layer:
community alerts and scam patterns (owned by the external store), derived
views such as the area safety score, and the outputs of the prediction
pipeline.

Design Philosophy:
    - Pydantic models for validation at the boundary
    - Closed enums for every category the classifiers can emit
    - Persisted models convert to plain documents with epoch-millisecond
      timestamps, so store range predicates compare numbers
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple

from pydantic import BaseModel, Field, ConfigDict, PrivateAttr


DEFAULT_ALERT_TTL_HOURS = 24


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_millis(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds (naive values are UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_millis(value: float) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


# =============================================================================
# ENUMS - Community Intelligence
# =============================================================================

class AlertType(str, Enum):
    """
    Category of a community safety alert.

    SCAM_HOTSPOT is also used for system-generated trend alerts.
    """
    SCAM_HOTSPOT = "SCAM_HOTSPOT"
    FAKE_WEBSITE_SPOTTED = "FAKE_WEBSITE_SPOTTED"
    PHISHING_CAMPAIGN = "PHISHING_CAMPAIGN"
    MPESA_SCAM_WAVE = "MPESA_SCAM_WAVE"
    SOCIAL_MEDIA_THREAT = "SOCIAL_MEDIA_THREAT"
    ROMANCE_SCAM_PROFILE = "ROMANCE_SCAM_PROFILE"
    JOB_SCAM_COMPANY = "JOB_SCAM_COMPANY"
    IDENTITY_THEFT_RISK = "IDENTITY_THEFT_RISK"
    CYBERBULLYING_TREND = "CYBERBULLYING_TREND"
    TECH_SUPPORT_SCAM = "TECH_SUPPORT_SCAM"


class AlertSeverity(str, Enum):
    """
    Reporter-assigned severity.

    LOW: General awareness
    MEDIUM: Caution advised
    HIGH: Immediate attention
    CRITICAL: Urgent community action needed
    """
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class SafetyLevel(str, Enum):
    """Discrete bucket of an area safety score."""
    VERY_SAFE = "VERY_SAFE"
    SAFE = "SAFE"
    MODERATE = "MODERATE"
    RISKY = "RISKY"
    DANGEROUS = "DANGEROUS"


class SafeLocationType(str, Enum):
    """Kinds of places the community vouches for."""
    POLICE_STATION = "POLICE_STATION"
    HOSPITAL = "HOSPITAL"
    SAFARICOM_SHOP = "SAFARICOM_SHOP"
    BANK_BRANCH = "BANK_BRANCH"
    GOVERNMENT_OFFICE = "GOVERNMENT_OFFICE"
    CYBERCAFE_TRUSTED = "CYBERCAFE_TRUSTED"
    COMMUNITY_CENTER = "COMMUNITY_CENTER"
    UNIVERSITY = "UNIVERSITY"
    SHOPPING_MALL = "SHOPPING_MALL"


# =============================================================================
# ENUMS - Prediction Pipeline
# =============================================================================

class _OrderedEnum(str, Enum):
    """String enum whose declaration order is meaningful."""

    @property
    def ordinal(self) -> int:
        return list(type(self)).index(self)


class ThreatType(_OrderedEnum):
    """Output categories of the threat classifier, in output-vector order."""
    MPESA_SCAM = "MPESA_SCAM"
    PHISHING_ATTACK = "PHISHING_ATTACK"
    IDENTITY_THEFT = "IDENTITY_THEFT"
    ROMANCE_SCAM = "ROMANCE_SCAM"
    INVESTMENT_FRAUD = "INVESTMENT_FRAUD"
    CYBERBULLYING = "CYBERBULLYING"
    ACCOUNT_TAKEOVER = "ACCOUNT_TAKEOVER"
    SOCIAL_ENGINEERING = "SOCIAL_ENGINEERING"
    RANSOMWARE = "RANSOMWARE"
    FAKE_NEWS_MISINFORMATION = "FAKE_NEWS_MISINFORMATION"


class ScamType(_OrderedEnum):
    """Output categories of the scam classifier, in output-vector order."""
    MPESA_REVERSAL = "MPESA_REVERSAL"
    FAKE_LOAN_OFFERS = "FAKE_LOAN_OFFERS"
    PYRAMID_SCHEMES = "PYRAMID_SCHEMES"
    FOREX_TRADING_SCAMS = "FOREX_TRADING_SCAMS"
    FAKE_JOB_OFFERS = "FAKE_JOB_OFFERS"
    CHARITY_SCAMS = "CHARITY_SCAMS"
    TECH_SUPPORT_SCAMS = "TECH_SUPPORT_SCAMS"
    DATING_APP_SCAMS = "DATING_APP_SCAMS"


class RiskLevel(_OrderedEnum):
    """
    Risk bucket derived from a probability.

    Mapping:
        VERY_LOW: < 0.2
        LOW: 0.2 - 0.4
        MODERATE: 0.4 - 0.6
        HIGH: 0.6 - 0.75
        CRITICAL: 0.75 - 0.9
        EXTREME: >= 0.9
    """
    VERY_LOW = "VERY_LOW"
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
    EXTREME = "EXTREME"


class PredictionTimeWindow(_OrderedEnum):
    NEXT_HOUR = "NEXT_HOUR"
    NEXT_6_HOURS = "NEXT_6_HOURS"
    NEXT_24_HOURS = "NEXT_24_HOURS"
    NEXT_WEEK = "NEXT_WEEK"
    NEXT_MONTH = "NEXT_MONTH"


class GeographicScope(_OrderedEnum):
    LOCAL_AREA = "LOCAL_AREA"
    CITY_WIDE = "CITY_WIDE"
    REGIONAL = "REGIONAL"
    NATIONAL = "NATIONAL"
    INTERNATIONAL = "INTERNATIONAL"


class FactorImpact(_OrderedEnum):
    NEGLIGIBLE = "NEGLIGIBLE"
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    SEVERE = "SEVERE"


class PatternType(_OrderedEnum):
    COMMUNICATION = "COMMUNICATION"
    FINANCIAL = "FINANCIAL"
    LOCATION = "LOCATION"
    TIMING = "TIMING"
    SOCIAL = "SOCIAL"
    DEVICE_USAGE = "DEVICE_USAGE"


class Severity(_OrderedEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class WarningType(_OrderedEnum):
    IMMEDIATE_THREAT = "IMMEDIATE_THREAT"
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"
    BEHAVIORAL_ANOMALY = "BEHAVIORAL_ANOMALY"
    ENVIRONMENTAL_RISK = "ENVIRONMENTAL_RISK"


class WarningUrgency(_OrderedEnum):
    INFO = "INFO"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class RecommendationType(_OrderedEnum):
    SECURITY_ENHANCEMENT = "SECURITY_ENHANCEMENT"
    BEHAVIOR_MODIFICATION = "BEHAVIOR_MODIFICATION"
    AWARENESS_TRAINING = "AWARENESS_TRAINING"
    SYSTEM_UPDATE = "SYSTEM_UPDATE"


class Difficulty(_OrderedEnum):
    EASY = "EASY"
    MODERATE = "MODERATE"
    CHALLENGING = "CHALLENGING"
    EXPERT_LEVEL = "EXPERT_LEVEL"


class UserRiskProfile(_OrderedEnum):
    """Behavioral classifier output 0, rounded to an index into this enum."""
    LOW_RISK = "LOW_RISK"
    MODERATE_RISK = "MODERATE_RISK"
    HIGH_RISK = "HIGH_RISK"
    VULNERABLE_USER = "VULNERABLE_USER"
    FREQUENT_TARGET = "FREQUENT_TARGET"


# =============================================================================
# COMMUNITY MODELS
# =============================================================================

class GeoLocation(BaseModel):
    """
    Geographic point (WGS84).

    Attributes:
        latitude: -90 to 90
        longitude: -180 to 180
    """
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90, description="WGS84 latitude")
    longitude: float = Field(..., ge=-180, le=180, description="WGS84 longitude")

    @property
    def as_tuple(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    def __str__(self) -> str:
        return f"({self.latitude:.6f}, {self.longitude:.6f})"


def _location_document(location: Optional[GeoLocation]) -> Optional[Dict[str, float]]:
    if location is None:
        return None
    return {"latitude": location.latitude, "longitude": location.longitude}


def _location_from_document(data: Optional[Dict[str, Any]]) -> Optional[GeoLocation]:
    if not data:
        return None
    return GeoLocation(latitude=data["latitude"], longitude=data["longitude"])


class SafetyAlert(BaseModel):
    """
    A time-bounded community report.

    The reporter is only ever known by an opaque hash. Tags are computed
    by the alert service on submission and are never taken from the client.
    """
    alert_id: str = Field(default_factory=_new_id)
    alert_type: AlertType
    title: str
    description: str
    location: Optional[GeoLocation] = None
    created_at: datetime = Field(default_factory=utc_now)
    reporter_hash: str
    severity: AlertSeverity
    verification_count: int = 0
    is_verified: bool = False
    expires_at: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)

    _default_expiry: bool = PrivateAttr(default=False)

    def model_post_init(self, __context: Any) -> None:
        if self.expires_at is None:
            self.expires_at = self.created_at + timedelta(hours=DEFAULT_ALERT_TTL_HOURS)
            self._default_expiry = True

    @property
    def has_default_expiry(self) -> bool:
        """True when the caller did not choose an expiry."""
        return self._default_expiry

    @property
    def is_high_severity(self) -> bool:
        return self.severity in (AlertSeverity.HIGH, AlertSeverity.CRITICAL)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or utc_now()
        return now > self.expires_at

    def to_document(self) -> Dict[str, Any]:
        """Convert to a store document."""
        return {
            "alert_id": self.alert_id,
            "alert_type": self.alert_type.value,
            "title": self.title,
            "description": self.description,
            "location": _location_document(self.location),
            "created_at": to_millis(self.created_at),
            "reporter_hash": self.reporter_hash,
            "severity": self.severity.value,
            "verification_count": self.verification_count,
            "is_verified": self.is_verified,
            "expires_at": to_millis(self.expires_at),
            "tags": list(self.tags),
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "SafetyAlert":
        return cls(
            alert_id=data["alert_id"],
            alert_type=AlertType(data["alert_type"]),
            title=data["title"],
            description=data["description"],
            location=_location_from_document(data.get("location")),
            created_at=from_millis(data["created_at"]),
            reporter_hash=data["reporter_hash"],
            severity=AlertSeverity(data["severity"]),
            verification_count=data.get("verification_count", 0),
            is_verified=data.get("is_verified", False),
            expires_at=from_millis(data["expires_at"]),
            tags=list(data.get("tags", [])),
        )


class ScamPattern(BaseModel):
    """
    An aggregated, recurring scam technique.

    There is at most one pattern per `pattern_type`; duplicate reports are
    merged into it by the pattern aggregator.
    """
    pattern_id: str = Field(default_factory=_new_id)
    pattern_type: str
    description: str
    common_phrases: List[str] = Field(default_factory=list)
    report_count: int = Field(default=1, ge=1)
    last_seen: datetime = Field(default_factory=utc_now)
    effectiveness: float = 0.0
    countermeasures: List[str] = Field(default_factory=list)
    examples: List[str] = Field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        return {
            "pattern_id": self.pattern_id,
            "pattern_type": self.pattern_type,
            "description": self.description,
            "common_phrases": list(self.common_phrases),
            "report_count": self.report_count,
            "last_seen": to_millis(self.last_seen),
            "effectiveness": self.effectiveness,
            "countermeasures": list(self.countermeasures),
            "examples": list(self.examples),
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "ScamPattern":
        return cls(
            pattern_id=data["pattern_id"],
            pattern_type=data["pattern_type"],
            description=data["description"],
            common_phrases=list(data.get("common_phrases", [])),
            report_count=data.get("report_count", 1),
            last_seen=from_millis(data["last_seen"]),
            effectiveness=data.get("effectiveness", 0.0),
            countermeasures=list(data.get("countermeasures", [])),
            examples=list(data.get("examples", [])),
        )


class SafeLocation(BaseModel):
    """A community-vouched safe place (police station, Safaricom shop, ...)."""
    location_id: str = Field(default_factory=_new_id)
    name: str
    location: GeoLocation
    location_type: SafeLocationType
    description: str = ""
    verification_count: int = 0
    last_verified: datetime = Field(default_factory=utc_now)

    def to_document(self) -> Dict[str, Any]:
        return {
            "location_id": self.location_id,
            "name": self.name,
            "location": _location_document(self.location),
            "location_type": self.location_type.value,
            "description": self.description,
            "verification_count": self.verification_count,
            "last_verified": to_millis(self.last_verified),
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "SafeLocation":
        return cls(
            location_id=data["location_id"],
            name=data["name"],
            location=_location_from_document(data["location"]),
            location_type=SafeLocationType(data["location_type"]),
            description=data.get("description", ""),
            verification_count=data.get("verification_count", 0),
            last_verified=from_millis(data["last_verified"]),
        )


class AreaSafetyScore(BaseModel):
    """
    Derived safety view of an area. Computed on every query, never stored.

    score runs from 0.0 (very dangerous) to 1.0 (very safe).
    """
    model_config = ConfigDict(frozen=True)

    score: float = Field(..., ge=0.0, le=1.0)
    level: SafetyLevel
    recent_incidents: int = Field(default=0, ge=0)
    major_concerns: List[AlertType] = Field(default_factory=list)
    recommendation: str


# =============================================================================
# PREDICTION INPUTS
# =============================================================================

class ThreatContext(BaseModel):
    """
    Snapshot of a user's situation fed to the threat classifier.

    day_of_week follows the 1 = Sunday ... 7 = Saturday convention the
    deployed models were trained on.
    """
    user_location: Optional[GeoLocation] = None
    time_of_day: int = Field(default=12, ge=0, le=23)
    day_of_week: int = Field(default=1, ge=1, le=7)
    recent_activity: List[str] = Field(default_factory=list)
    communication_patterns: List[str] = Field(default_factory=list)
    financial_activity: List[str] = Field(default_factory=list)
    social_media_usage: List[str] = Field(default_factory=list)
    device_info: Dict[str, str] = Field(default_factory=dict)
    network_info: Dict[str, str] = Field(default_factory=dict)
    community_alerts: List[str] = Field(default_factory=list)


class UserActivity(BaseModel):
    """Aggregated device activity fed to the behavioral classifier."""
    app_usage_patterns: Dict[str, float] = Field(default_factory=dict)
    communication_frequency: Dict[str, int] = Field(default_factory=dict)
    location_history: List[Tuple[float, float]] = Field(default_factory=list)
    time_patterns: List[int] = Field(default_factory=list)
    financial_transactions: List[str] = Field(default_factory=list)
    social_interactions: List[str] = Field(default_factory=list)
    security_events: List[str] = Field(default_factory=list)


# =============================================================================
# PREDICTION OUTPUTS
# =============================================================================

class ThreatFactor(BaseModel):
    """One explainable contributor to a prediction."""
    model_config = ConfigDict(frozen=True)

    factor: str
    weight: float
    description: str
    impact: FactorImpact


class ThreatPrediction(BaseModel):
    """
    A ranked, explainable threat prediction.

    This is the output of the prediction engine and the unit the monitor
    escalates.
    """
    threat_type: ThreatType
    probability: float
    confidence: float = Field(..., ge=0.0, le=1.0)
    risk_level: RiskLevel
    time_window: PredictionTimeWindow
    contributing_factors: List[ThreatFactor] = Field(default_factory=list)
    recommended_actions: List[str] = Field(default_factory=list)
    geographic_scope: GeographicScope
    timestamp: datetime = Field(default_factory=utc_now)


class ScamVariant(BaseModel):
    """A community-reported pattern observed inside a scored message."""
    name: str
    description: str
    first_detected: datetime
    prevalence_score: float
    tactics_used: List[str] = Field(default_factory=list)


class ScamPrediction(BaseModel):
    scam_type: ScamType
    likelihood: float
    target_demographics: List[str] = Field(default_factory=list)
    communication_channels: List[str] = Field(default_factory=list)
    key_indicators: List[str] = Field(default_factory=list)
    prevention_measures: List[str] = Field(default_factory=list)
    emerging_variants: List[ScamVariant] = Field(default_factory=list)


class BehaviorPattern(BaseModel):
    pattern_type: PatternType
    frequency: float
    normalcy: float
    risk_association: float
    description: str


class VulnerabilityFactor(BaseModel):
    factor: str
    severity: Severity
    description: str
    mitigation_strategies: List[str] = Field(default_factory=list)


class PersonalizedWarning(BaseModel):
    warning_type: WarningType
    message: str
    urgency: WarningUrgency
    action_required: bool
    contextual_info: str = ""


class AdaptiveRecommendation(BaseModel):
    recommendation_type: RecommendationType
    title: str
    description: str
    adaptation_reason: str
    expected_impact: str
    implementation_difficulty: Difficulty


class BehavioralAnalysis(BaseModel):
    user_risk_profile: UserRiskProfile
    anomaly_score: float
    behavior_patterns: List[BehaviorPattern] = Field(default_factory=list)
    vulnerability_factors: List[VulnerabilityFactor] = Field(default_factory=list)
    personalized_warnings: List[PersonalizedWarning] = Field(default_factory=list)
    adaptive_recommendations: List[AdaptiveRecommendation] = Field(default_factory=list)
