"""
ShieldNet Classifier Boundary

A classifier is a pure function from a fixed-length feature vector to a
fixed-length vector of scores. Everything above this module treats it as a
black box, so models can be swapped without touching the prediction engine.

Model absence is explicit: `load_classifier` returns None when no model can
be loaded, and the prediction engine decides per operation whether that is
an empty result or a failure.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import Callable, Optional, Sequence, Union

import numpy as np


logger = logging.getLogger(__name__)


class Classifier(ABC):
    """
    Abstract interface for a feature-vector classifier.

    Implementations can be:
        - TorchClassifier (TorchScript / nn.Module, production)
        - FunctionClassifier (any callable, testing and rule-based models)
    """

    input_size: int
    output_size: int

    @abstractmethod
    def _infer(self, features: np.ndarray) -> Sequence[float]:
        """Run the model on a vector of exactly `input_size` values."""

    def predict(self, features: np.ndarray) -> np.ndarray:
        """
        Score a feature vector.

        Args:
            features: Vector of length `input_size`

        Returns:
            float64 vector of length `output_size`

        Raises:
            ValueError: If the input or output shape does not match, or the
                model produced NaN / infinite scores
        """
        vector = np.asarray(features, dtype=np.float64).reshape(-1)
        if vector.size != self.input_size:
            raise ValueError(
                f"Expected {self.input_size} features, got {vector.size}"
            )

        output = np.asarray(self._infer(vector), dtype=np.float64).reshape(-1)
        if output.size != self.output_size:
            raise ValueError(
                f"Classifier returned {output.size} values, expected {self.output_size}"
            )
        if not np.isfinite(output).all():
            raise ValueError("Classifier returned non-finite scores")
        return output

    def close(self) -> None:
        """Release model resources."""


class FunctionClassifier(Classifier):
    """
    Wraps a plain callable as a classifier.

    Example:
        classifier = FunctionClassifier(
            lambda features: [0.8] + [0.0] * 9,
            input_size=50,
            output_size=10,
        )
    """

    def __init__(
        self,
        fn: Callable[[np.ndarray], Sequence[float]],
        input_size: int,
        output_size: int,
    ):
        self._fn = fn
        self.input_size = input_size
        self.output_size = output_size

    def _infer(self, features: np.ndarray) -> Sequence[float]:
        return self._fn(features)


def load_classifier(
    path: Optional[Union[str, os.PathLike]],
    input_size: int,
    output_size: int,
) -> Optional[Classifier]:
    """
    Load a TorchScript classifier from disk.

    Args:
        path: Model file path (None means no model configured)
        input_size: Expected feature vector length
        output_size: Expected score vector length

    Returns:
        A loaded classifier, or None if the model cannot be loaded
    """
    if not path:
        logger.info("No model path configured - classifier disabled")
        return None

    if not os.path.exists(path):
        logger.warning(f"Model file not found: {path}")
        return None

    try:
        from .torch_classifier import TorchClassifier
    except ImportError:
        logger.warning("PyTorch not installed - install the 'ml' extra to load models")
        return None

    try:
        classifier = TorchClassifier.load(path, input_size, output_size)
    except (RuntimeError, ValueError, OSError) as e:
        logger.error(f"Failed to load model {path}: {e}")
        return None

    logger.info(f"Loaded classifier from {path} ({input_size} -> {output_size})")
    return classifier
