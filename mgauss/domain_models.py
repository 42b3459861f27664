"""Domain model objects for the detection pipeline.

Typed, immutable records passed between the sensor producer, the feature
builder, the classifier adapter and the detection state machine.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import StrEnum

import numpy as np

from .constants import WINDOW_SIZE


class DetectionLabel(StrEnum):
    NEUTRAL = "Neutral"
    DEVICE = "Device"
    BUFFERING = "Buffering"
    BUFFERING_GAP = "Buffering (Gap)"
    ERROR = "Error"

    @property
    def is_status_only(self) -> bool:
        """True for labels that report pipeline status rather than a decision."""
        return self in _STATUS_ONLY_LABELS


_STATUS_ONLY_LABELS = frozenset(
    {DetectionLabel.BUFFERING, DetectionLabel.BUFFERING_GAP, DetectionLabel.ERROR}
)


# ---------------------------------------------------------------------------
# 1) Raw sensor snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SensorSnapshot:
    """One magnetometer reading paired with the orientation at that instant.

    ``timestamp`` is a monotonic sensor-clock value in nanoseconds; the
    magnetometer vector is in the device frame and the quaternion is the
    device orientation, stored ``(qx, qy, qz, qw)``.
    """

    timestamp: int
    mx: float
    my: float
    mz: float
    qx: float = 0.0
    qy: float = 0.0
    qz: float = 0.0
    qw: float = 1.0

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.mx * self.mx + self.my * self.my + self.mz * self.mz)

    @property
    def vector(self) -> tuple[float, float, float]:
        return (self.mx, self.my, self.mz)

    @property
    def quaternion(self) -> tuple[float, float, float, float]:
        return (self.qx, self.qy, self.qz, self.qw)


# ---------------------------------------------------------------------------
# 2) Classification outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DetectionResult:
    label: DetectionLabel
    confidence: float
    sigma: float = 0.0

    @classmethod
    def buffering(cls) -> DetectionResult:
        return cls(DetectionLabel.BUFFERING, 0.0, 0.0)

    @classmethod
    def buffering_gap(cls) -> DetectionResult:
        return cls(DetectionLabel.BUFFERING_GAP, 0.0, 0.0)

    @classmethod
    def error(cls) -> DetectionResult:
        return cls(DetectionLabel.ERROR, 0.0, 0.0)

    @property
    def is_status_only(self) -> bool:
        return self.label.is_status_only

    def device_probability(self) -> float:
        """Probability that a device is present, whichever class won."""
        if self.label is DetectionLabel.DEVICE:
            return self.confidence
        return 1.0 - self.confidence

    def to_dict(self) -> dict[str, object]:
        return {
            "label": self.label.value,
            "confidence": self.confidence,
            "sigma": self.sigma,
        }


@dataclass(frozen=True, slots=True)
class FeatureWindow:
    """Normalised earth-frame window, shape ``(WINDOW_SIZE, 3)``, plus sigma."""

    window: np.ndarray
    sigma: float

    def __post_init__(self) -> None:
        if self.window.shape != (WINDOW_SIZE, 3):
            raise ValueError(
                f"FeatureWindow.window must have shape ({WINDOW_SIZE}, 3), "
                f"got {self.window.shape!r}"
            )

    def as_model_inputs(self) -> tuple[np.ndarray, np.ndarray]:
        """Return the ``(1, 100, 3)`` wave tensor and ``(1, 1)`` sigma tensor."""
        wave = np.asarray(self.window, dtype=np.float32).reshape(1, WINDOW_SIZE, 3)
        sigma = np.array([[self.sigma]], dtype=np.float32)
        return wave, sigma


@dataclass(slots=True)
class DetectionState:
    is_active: bool = False
