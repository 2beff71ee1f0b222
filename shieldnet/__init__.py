"""
ShieldNet - Community Threat Intelligence & Risk Prediction

This package ingests crowd-submitted safety alerts and scam reports, scores
the safety of an area, detects emerging scam trends, and produces ranked,
explainable threat predictions from a feature-vector classification
pipeline that is refreshed on a timer.

Modules:
    - core: geodistance scoring, feature extraction, classifiers, prediction
    - store: document store interface with in-memory and Redis backends
    - community: alerts, scam pattern aggregation, safe locations
    - cybercrime: rule-based M-Pesa SMS screening
    - monitor: background threat monitor and escalation sinks
"""

from .sentinel import ShieldNet

__version__ = "1.0.0"
__license__ = "MIT"

__all__ = ["ShieldNet"]
