"""
ShieldNet Core Package

Pure computation: geodistance and area scoring, feature extraction, the
classifier boundary and the prediction engine.
"""

from .geo import distance_km, safety_score
from .features import FeatureExtractor, threat_features, scam_features, behavioral_features
from .classifier import Classifier, FunctionClassifier, load_classifier
from .predictor import PredictionEngine

__all__ = [
    "distance_km",
    "safety_score",
    "FeatureExtractor",
    "threat_features",
    "scam_features",
    "behavioral_features",
    "Classifier",
    "FunctionClassifier",
    "load_classifier",
    "PredictionEngine",
]
