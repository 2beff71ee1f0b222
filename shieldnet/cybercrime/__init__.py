"""
ShieldNet Cybercrime Package

Rule-based detectors for mobile money fraud.
"""

from .mpesa import MpesaScamDetector, ScamAnalysis, RiskFactor, RiskType

__all__ = ["MpesaScamDetector", "ScamAnalysis", "RiskFactor", "RiskType"]
