"""
ShieldNet Feature Extraction

Builds the fixed-length numeric vectors consumed by the classifiers. These
functions are the contract boundary with the deployed models: slot order,
scale constants and padding values must not change without retraining.

All extractors are pure and deterministic. Vectors are float64 numpy arrays
so the same input always yields the same bits.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence

import numpy as np

from ..models import ThreatContext, UserActivity


THREAT_INPUT_SIZE = 50
SCAM_INPUT_SIZE = 100
BEHAVIORAL_INPUT_SIZE = 30

# Padding for unused slots
THREAT_FILL_VALUE = 0.5
SCAM_FILL_VALUE = 0.0
BEHAVIORAL_FILL_VALUE = 0.0

SCAM_KEYWORDS = (
    "urgent", "winner", "congratulations", "prize", "money", "transfer",
    "verify", "click", "link", "account", "suspended", "limited", "time",
)

MPESA_KEYWORDS = ("mpesa", "safaricom", "reversal", "transaction", "pin", "paybill")

URL_PATTERN = re.compile(r"https?://\S+")
LONG_DIGIT_RUN_PATTERN = re.compile(r"\b\d{10,}\b")

# Max variance of hour-of-day samples (12^2)
TIME_VARIANCE_SCALE = 144.0


def fit_vector(values: Sequence[float], size: int, fill_value: float = 0.0) -> np.ndarray:
    """
    Pad or truncate `values` to exactly `size` slots.

    Args:
        values: Leading feature values
        size: Target vector length
        fill_value: Value for slots past the end of `values`

    Returns:
        float64 array of length `size`
    """
    vector = np.full(size, fill_value, dtype=np.float64)
    count = min(len(values), size)
    if count:
        vector[:count] = np.asarray(values[:count], dtype=np.float64)
    return vector


def threat_features(context: ThreatContext, size: int = THREAT_INPUT_SIZE) -> np.ndarray:
    """
    Encode a threat context.

    Slots:
        0: hour of day / 24
        1: day of week / 7
        2-3: latitude, longitude normalized to [0, 1] (0.5, 0.5 if unknown)
        4: recent activity count / 10
        5: communication count / 10
        6: financial activity count / 5
        7: social media count / 10
        8: community alert count / 5
        rest: 0.5
    """
    features: List[float] = [
        context.time_of_day / 24,
        context.day_of_week / 7,
    ]

    if context.user_location is not None:
        features.append((context.user_location.latitude + 90) / 180)
        features.append((context.user_location.longitude + 180) / 360)
    else:
        features.extend([0.5, 0.5])

    features.extend([
        len(context.recent_activity) / 10,
        len(context.communication_patterns) / 10,
        len(context.financial_activity) / 5,
        len(context.social_media_usage) / 10,
        len(context.community_alerts) / 5,
    ])

    return fit_vector(features, size, THREAT_FILL_VALUE)


def scam_features(
    message: str,
    transactions: Optional[Iterable[str]] = None,
    size: int = SCAM_INPUT_SIZE,
) -> np.ndarray:
    """
    Encode a single message for the scam classifier.

    Transaction data is accepted for interface stability; the deployed
    model has no transaction slots.

    Slots:
        0: message length / 1000
        1: word count / 50
        2: fraction of scam keywords contained in any word
        3: fraction of M-Pesa keywords contained in the message
        4: 1.0 if a URL is present
        5: 1.0 if a run of 10+ digits is present
        rest: 0.0
    """
    lowered = message.lower()
    words = lowered.split(" ")

    scam_hits = sum(
        1 for keyword in SCAM_KEYWORDS
        if any(keyword in word for word in words)
    )
    mpesa_hits = sum(1 for keyword in MPESA_KEYWORDS if keyword in lowered)

    features = [
        len(message) / 1000,
        len(words) / 50,
        scam_hits / len(SCAM_KEYWORDS),
        mpesa_hits / len(MPESA_KEYWORDS),
        1.0 if URL_PATTERN.search(message) else 0.0,
        1.0 if LONG_DIGIT_RUN_PATTERN.search(message) else 0.0,
    ]

    return fit_vector(features, size, SCAM_FILL_VALUE)


def behavioral_features(activity: UserActivity, size: int = BEHAVIORAL_INPUT_SIZE) -> np.ndarray:
    """
    Encode aggregated user activity.

    Slots:
        0: largest single-app share of total usage (0 if no usage)
        1: total communications / 100
        2: distinct locations / 10
        3: population variance of hour-of-day samples / 144
        rest: 0.0
    """
    usage = list(activity.app_usage_patterns.values())
    total_usage = sum(usage)
    max_share = max(usage) / total_usage if total_usage > 0 else 0.0

    total_comm = sum(activity.communication_frequency.values())

    distinct_locations = len(set(tuple(point) for point in activity.location_history))

    if activity.time_patterns:
        samples = np.asarray(activity.time_patterns, dtype=np.float64)
        time_variance = float(np.mean((samples - samples.mean()) ** 2))
    else:
        time_variance = 0.0

    features = [
        max_share,
        total_comm / 100,
        distinct_locations / 10,
        time_variance / TIME_VARIANCE_SCALE,
    ]

    return fit_vector(features, size, BEHAVIORAL_FILL_VALUE)


def feature_diversity(features: np.ndarray, threshold: float = 0.1) -> float:
    """Fraction of slots whose value exceeds `threshold`."""
    if features.size == 0:
        return 0.0
    return float(np.count_nonzero(features > threshold)) / features.size


class FeatureExtractor:
    """
    Bundles the three extractors with the configured vector sizes.

    The prediction engine holds one of these so alternative model
    dimensions can be configured in one place.
    """

    def __init__(
        self,
        threat_size: int = THREAT_INPUT_SIZE,
        scam_size: int = SCAM_INPUT_SIZE,
        behavioral_size: int = BEHAVIORAL_INPUT_SIZE,
    ):
        self.threat_size = threat_size
        self.scam_size = scam_size
        self.behavioral_size = behavioral_size

    def threat(self, context: ThreatContext) -> np.ndarray:
        return threat_features(context, self.threat_size)

    def scam(self, message: str, transactions: Optional[Iterable[str]] = None) -> np.ndarray:
        return scam_features(message, transactions, self.scam_size)

    def behavioral(self, activity: UserActivity) -> np.ndarray:
        return behavioral_features(activity, self.behavioral_size)
