"""Boundary to the external inference engine.

The model is an opaque callable taking the ``(1, 100, 3)`` wave tensor and
the ``(1, 1)`` sigma tensor and returning two scores ``(neutral, device)``.
Any failure at this boundary is converted into an ``Error`` result; the
pipeline never sees an exception from the model.
"""

from __future__ import annotations

import importlib
import logging
import math
from collections.abc import Sequence
from typing import Protocol

import numpy as np

from .domain_models import DetectionLabel, DetectionResult, FeatureWindow

LOGGER = logging.getLogger(__name__)


class ScoreModel(Protocol):
    def __call__(self, wave: np.ndarray, sigma: np.ndarray) -> Sequence[float]: ...


class StaticScoreModel:
    """Model stand-in that always returns the same ``(neutral, device)`` scores."""

    def __init__(self, neutral: float, device: float):
        self.neutral = float(neutral)
        self.device = float(device)

    def __call__(self, wave: np.ndarray, sigma: np.ndarray) -> Sequence[float]:
        return (self.neutral, self.device)


class ClassifierAdapter:
    def __init__(self, model: ScoreModel | None = None):
        self._model = model
        self._missing_model_logged = False

    @property
    def loaded(self) -> bool:
        return self._model is not None

    def classify(self, window: FeatureWindow) -> DetectionResult:
        if self._model is None:
            if not self._missing_model_logged:
                self._missing_model_logged = True
                LOGGER.warning("No classifier model loaded; every cycle reports Error.")
            return DetectionResult.error()
        try:
            wave, sigma = window.as_model_inputs()
            scores = np.asarray(self._model(wave, sigma), dtype=np.float64).ravel()
            if scores.size < 2:
                raise ValueError(f"model returned {scores.size} score(s), expected 2")
            prob_neutral = float(scores[0])
            prob_device = float(scores[1])
            if not (math.isfinite(prob_neutral) and math.isfinite(prob_device)):
                raise ValueError(f"model returned non-finite scores {scores.tolist()!r}")
        except Exception:
            LOGGER.warning("Classifier call failed; reporting Error.", exc_info=True)
            return DetectionResult.error()

        if prob_device > prob_neutral:
            return DetectionResult(DetectionLabel.DEVICE, prob_device, window.sigma)
        return DetectionResult(DetectionLabel.NEUTRAL, prob_neutral, window.sigma)


def load_model(spec: str | None) -> ScoreModel | None:
    """Build a model from a ``"package.module:factory"`` string.

    The factory is called without arguments and must return a
    :class:`ScoreModel`.  Import or construction failures are logged and
    yield ``None`` so the service still starts and reports ``Error``.
    """
    if not spec:
        return None
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        LOGGER.error("classifier.model must look like 'package.module:factory', got %r", spec)
        return None
    try:
        factory = getattr(importlib.import_module(module_name), attr)
        model = factory()
    except Exception:
        LOGGER.error("Failed to load classifier model %r", spec, exc_info=True)
        return None
    if not callable(model):
        LOGGER.error("Classifier factory %r returned a non-callable %r", spec, type(model))
        return None
    LOGGER.info("Loaded classifier model from %s", spec)
    return model
