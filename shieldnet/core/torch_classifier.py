"""
PyTorch-backed classifier.

Wraps either an in-process `nn.Module` or a TorchScript file. Inference runs
under `torch.no_grad()` on a single-row float32 batch, matching how the
models are exported.
"""

from __future__ import annotations

import logging
import os
from typing import List, Sequence, Union

import numpy as np
import torch
import torch.nn as nn

from .classifier import Classifier


logger = logging.getLogger(__name__)


class TorchClassifier(Classifier):
    """
    PyTorch model behind the Classifier interface.

    Example:
        model = nn.Sequential(
            nn.Linear(50, 32),
            nn.ReLU(),
            nn.Linear(32, 10),
            nn.Softmax(dim=1),
        )
        classifier = TorchClassifier(model, input_size=50, output_size=10)
    """

    def __init__(self, model: nn.Module, input_size: int, output_size: int):
        self.model = model
        self.model.eval()
        self.input_size = input_size
        self.output_size = output_size

    @classmethod
    def load(
        cls,
        path: Union[str, os.PathLike],
        input_size: int,
        output_size: int,
    ) -> "TorchClassifier":
        """Load a TorchScript model saved with `torch.jit.save`."""
        model = torch.jit.load(str(path), map_location="cpu")
        logger.debug(f"TorchScript model loaded from {path}")
        return cls(model, input_size, output_size)

    def _infer(self, features: np.ndarray) -> Sequence[float]:
        input_tensor = torch.tensor(
            np.asarray(features, dtype=np.float32).reshape(1, -1),
            dtype=torch.float32,
        )

        with torch.no_grad():
            output = self.model(input_tensor)

        probs: List[float] = output[0].tolist()
        return probs
