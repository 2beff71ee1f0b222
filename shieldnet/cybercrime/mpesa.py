"""
M-Pesa SMS Scam Detector

Rule-based screening of SMS messages for Kenyan mobile money fraud. Runs
without any model, so it is always available as a first line of defence
alongside the scam classifier.

Scoring:
    Each rule that fires adds a risk factor with a severity. Confidence is
    read off a ladder on the counts of HIGH/CRITICAL and MEDIUM factors:
        2+ high    -> 0.9
        1 high     -> 0.7
        2+ medium  -> 0.6
        1 medium   -> 0.4
        otherwise  -> 0.1
    A message is a likely scam at confidence 0.6 or above.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..models import Severity, utc_now


logger = logging.getLogger(__name__)


FAKE_MPESA_PATTERNS = (
    r"you have received.*ksh.*from.*confirm",
    r"mpesa.*reversal.*confirm.*pin",
    r"congratulations.*won.*lottery.*mpesa",
    r"safaricom.*promotion.*send.*pin",
    r"your account.*suspended.*verify.*pin",
    r"urgent.*mpesa.*transaction.*failed",
    r"claim.*prize.*send.*float",
)

SUSPICIOUS_PHONE_PATTERNS = (
    r"0(?!7[0-9]{8})[0-9]{9}",   # not a Kenyan mobile number
    r"\+(?!254)[0-9]+",           # foreign country code
    r"07[0-9]{8}",
)

URGENCY_KEYWORDS = (
    "urgent", "immediately", "asap", "expire", "limited time",
    "act now", "final notice", "last chance", "hurry",
)

SUSPICIOUS_REQUESTS = (
    "send pin", "share pin", "give pin", "tell pin",
    "send password", "confirm with pin", "verify pin",
    "send float", "send money first", "pay fee",
)

KNOWN_SCAMMER_PATTERNS = (
    r"0722.*",
    r"0733.*",
)

OFFICIAL_SENDER = "MPESA"
LIKELY_SCAM_CONFIDENCE = 0.6


class RiskType(str, Enum):
    FAKE_MPESA_MESSAGE = "FAKE_MPESA_MESSAGE"
    SUSPICIOUS_PHONE_NUMBER = "SUSPICIOUS_PHONE_NUMBER"
    PIN_REQUEST = "PIN_REQUEST"
    URGENCY_TACTICS = "URGENCY_TACTICS"
    LOTTERY_SCAM = "LOTTERY_SCAM"
    REVERSAL_SCAM = "REVERSAL_SCAM"
    UNKNOWN_SENDER = "UNKNOWN_SENDER"


@dataclass(frozen=True)
class RiskFactor:
    risk_type: RiskType
    description: str
    severity: Severity

    @property
    def is_high(self) -> bool:
        return self.severity in (Severity.HIGH, Severity.CRITICAL)


@dataclass
class ScamAnalysis:
    """Result of screening one SMS."""
    is_likely_scam: bool
    confidence: float
    detected_patterns: List[str] = field(default_factory=list)
    risk_factors: List[RiskFactor] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    analyzed_at: datetime = field(default_factory=utc_now)

    def has_risk(self, risk_type: RiskType) -> bool:
        return any(f.risk_type == risk_type for f in self.risk_factors)


def confidence_from_factors(factors: Sequence[RiskFactor]) -> float:
    high = sum(1 for f in factors if f.is_high)
    medium = sum(1 for f in factors if f.severity == Severity.MEDIUM)

    if high >= 2:
        return 0.9
    elif high >= 1:
        return 0.7
    elif medium >= 2:
        return 0.6
    elif medium >= 1:
        return 0.4
    else:
        return 0.1


def recommendations_for(factors: Sequence[RiskFactor]) -> List[str]:
    recommendations: List[str] = []

    if any(f.is_high for f in factors):
        recommendations.extend([
            "DO NOT respond to this message",
            "Block the sender immediately",
            "Report to Safaricom fraud department: 0722000000",
        ])

    if any(f.risk_type == RiskType.PIN_REQUEST for f in factors):
        recommendations.extend([
            "NEVER share your M-Pesa PIN with anyone",
            "Safaricom will never ask for your PIN via SMS",
            "Report PIN request scams to DCI Cybercrime Unit",
        ])

    if any(f.risk_type == RiskType.LOTTERY_SCAM for f in factors):
        recommendations.extend([
            "Ignore lottery/prize claims you didn't enter",
            "Legitimate promotions don't require upfront payments",
        ])

    recommendations.extend([
        "When in doubt, visit a Safaricom shop for verification",
        "Report this incident through SafeNet Shield",
        "Share this scam pattern with friends and family",
    ])
    return recommendations


class MpesaScamDetector:
    """
    Screens SMS messages for M-Pesa fraud.

    Usage:
        detector = MpesaScamDetector()
        analysis = detector.analyze_sms(body, sender="0712345678")
        if analysis.is_likely_scam:
            print(detector.generate_report(analysis, body, "0712345678"))
    """

    def __init__(self, known_scammer_patterns: Sequence[str] = KNOWN_SCAMMER_PATTERNS):
        self._fake_patterns = [re.compile(p, re.IGNORECASE) for p in FAKE_MPESA_PATTERNS]
        self._phone_patterns = [re.compile(p) for p in SUSPICIOUS_PHONE_PATTERNS]
        self._scammer_patterns = [re.compile(p) for p in known_scammer_patterns]
        self._stats: Counter = Counter()

    def analyze_sms(self, body: str, sender: Optional[str] = None) -> ScamAnalysis:
        """Run every rule against a message and its sender."""
        text = body.lower()
        patterns: List[str] = []
        factors: List[RiskFactor] = []

        for pattern in self._fake_patterns:
            if pattern.search(text):
                patterns.append("Fake M-Pesa message pattern")
                factors.append(RiskFactor(
                    RiskType.FAKE_MPESA_MESSAGE,
                    "Message mimics official M-Pesa format but contains suspicious elements",
                    Severity.HIGH,
                ))

        if sender is not None:
            if sender != OFFICIAL_SENDER and "mpesa" in text:
                factors.append(RiskFactor(
                    RiskType.UNKNOWN_SENDER,
                    f"M-Pesa message from unofficial sender: {sender}",
                    Severity.HIGH,
                ))
            for pattern in self._phone_patterns:
                if pattern.search(sender):
                    factors.append(RiskFactor(
                        RiskType.SUSPICIOUS_PHONE_NUMBER,
                        "Suspicious phone number format",
                        Severity.MEDIUM,
                    ))

        for request in SUSPICIOUS_REQUESTS:
            if request in text:
                factors.append(RiskFactor(
                    RiskType.PIN_REQUEST,
                    f"Message requests sensitive information: {request}",
                    Severity.CRITICAL,
                ))

        for keyword in URGENCY_KEYWORDS:
            if keyword in text:
                factors.append(RiskFactor(
                    RiskType.URGENCY_TACTICS,
                    f"Uses urgency tactics: {keyword}",
                    Severity.MEDIUM,
                ))

        if ("won" in text and "lottery" in text) or ("congratulations" in text and "prize" in text):
            factors.append(RiskFactor(
                RiskType.LOTTERY_SCAM,
                "Contains lottery/prize scam indicators",
                Severity.HIGH,
            ))

        if "reversal" in text and "confirm" in text:
            factors.append(RiskFactor(
                RiskType.REVERSAL_SCAM,
                "Claims transaction reversal requiring confirmation",
                Severity.HIGH,
            ))

        confidence = confidence_from_factors(factors)
        analysis = ScamAnalysis(
            is_likely_scam=confidence >= LIKELY_SCAM_CONFIDENCE,
            confidence=confidence,
            detected_patterns=patterns,
            risk_factors=factors,
            recommendations=recommendations_for(factors),
        )

        self._record(analysis)
        logger.info(
            f"Scam analysis completed. Confidence: {confidence}, "
            f"Likely scam: {analysis.is_likely_scam}"
        )
        return analysis

    def is_known_scammer(self, phone_number: str) -> bool:
        """Full-match the number against the known scammer patterns."""
        return any(p.fullmatch(phone_number) for p in self._scammer_patterns)

    def _record(self, analysis: ScamAnalysis) -> None:
        if not analysis.is_likely_scam:
            return
        self._stats["total_scams_detected"] += 1
        if analysis.has_risk(RiskType.PIN_REQUEST):
            self._stats["pin_request_scams"] += 1
        if analysis.has_risk(RiskType.LOTTERY_SCAM):
            self._stats["lottery_scams"] += 1
        if analysis.has_risk(RiskType.REVERSAL_SCAM):
            self._stats["reversal_scams"] += 1
        if analysis.has_risk(RiskType.FAKE_MPESA_MESSAGE):
            self._stats["fake_mpesa_messages"] += 1

    def statistics(self) -> Dict[str, int]:
        """Counts of likely scams seen by this detector, by kind."""
        keys = (
            "total_scams_detected",
            "pin_request_scams",
            "lottery_scams",
            "reversal_scams",
            "fake_mpesa_messages",
        )
        return {key: self._stats[key] for key in keys}

    def generate_report(
        self,
        analysis: ScamAnalysis,
        body: str,
        sender: Optional[str] = None,
        user_report: Optional[str] = None,
    ) -> str:
        """Plain-text report suitable for forwarding to the authorities."""
        lines = [
            "M-PESA SCAM REPORT",
            "=" * 40,
            f"Timestamp: {analysis.analyzed_at.strftime('%Y-%m-%d %H:%M:%S')}",
            f"Confidence Level: {round(analysis.confidence * 100)}%",
            f"Likely Scam: {'YES' if analysis.is_likely_scam else 'NO'}",
            "",
            "MESSAGE DETAILS:",
            f"Sender: {sender or 'Unknown'}",
            f"Content: {body}",
            "",
        ]

        if analysis.risk_factors:
            lines.append("DETECTED RISK FACTORS:")
            for factor in analysis.risk_factors:
                lines.append(f"- {factor.description} ({factor.severity.value})")
            lines.append("")

        if user_report is not None:
            lines.extend(["USER REPORT:", user_report, ""])

        lines.append("RECOMMENDATIONS:")
        for recommendation in analysis.recommendations:
            lines.append(f"- {recommendation}")

        return "\n".join(lines) + "\n"
