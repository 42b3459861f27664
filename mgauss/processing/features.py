"""Feature-window construction for the classifier.

All functions here are pure: they take a copied list of snapshots and a
capture time and return either a :class:`~mgauss.domain_models.FeatureWindow`
or a status-only :class:`~mgauss.domain_models.DetectionResult` when there is
not enough history to cover the window.

Order of operations matters for model compatibility:

1. select samples from ``window_start - SAFETY_MARGIN_NS`` onwards,
2. zero-phase filter the raw device-frame axes,
3. rotate each filtered sample with its own quaternion,
4. resample onto the 100 x 10 ms grid anchored at ``window_start``,
5. compute sigma, then one pooled z-score across all three axes.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from ..constants import (
    NS_PER_MS,
    SAFETY_MARGIN_NS,
    TARGET_DURATION_NS,
    TARGET_INTERVAL_MS,
    WINDOW_SIZE,
)
from ..domain_models import DetectionResult, FeatureWindow, SensorSnapshot
from .filters import filtfilt_axes
from .resample import interpolate_to_grid
from .rotation import rotate_batch_to_earth

LOGGER = logging.getLogger(__name__)

# Relative std below which a window counts as flat (float rounding noise).
_FLAT_STD_EPS = 1e-12


def select_relevant(snapshots: Sequence[SensorSnapshot], now_ns: int) -> list[SensorSnapshot]:
    """Samples at or after ``now - 1 s - 200 ms``, in arrival order."""
    cutoff = int(now_ns) - TARGET_DURATION_NS - SAFETY_MARGIN_NS
    return [s for s in snapshots if s.timestamp >= cutoff]


def population_std(values: np.ndarray) -> float:
    """Standard deviation with divisor N; 0.0 for an empty array."""
    if values.size == 0:
        return 0.0
    return float(np.sqrt(np.mean((values - np.mean(values)) ** 2)))


def compute_sigma(resampled: np.ndarray) -> float:
    """Mean of the per-axis population std of an ``(N, 3)`` block."""
    return float(np.mean([population_std(resampled[:, axis]) for axis in range(3)]))


def global_zscore(resampled: np.ndarray) -> np.ndarray:
    """Normalise every value by one mean/std pooled over all axes.

    A flat window maps to all zeros. The pooled mean of a constant is not
    always exact, so a std within rounding noise of the mean counts as flat.
    """
    pooled = np.asarray(resampled, dtype=np.float64)
    if pooled.size == 0:
        return pooled.copy()
    mean = float(np.mean(pooled))
    std = population_std(pooled.ravel())
    if std <= _FLAT_STD_EPS * max(1.0, abs(mean)):
        return np.zeros_like(pooled)
    return (pooled - mean) / std


def build_feature_window(
    snapshots: Sequence[SensorSnapshot],
    now_ns: int,
) -> FeatureWindow | DetectionResult:
    window_start = int(now_ns) - TARGET_DURATION_NS
    relevant = select_relevant(snapshots, now_ns)
    if not relevant:
        return DetectionResult.buffering()
    if relevant[0].timestamp > window_start:
        LOGGER.debug(
            "Oldest sample %d ns is newer than window start %d ns; waiting for history",
            relevant[0].timestamp,
            window_start,
        )
        return DetectionResult.buffering_gap()

    rel_time_ms = np.array(
        [(s.timestamp - window_start) / NS_PER_MS for s in relevant], dtype=np.float64
    )
    raw = np.array([s.vector for s in relevant], dtype=np.float64)
    quats = np.array([s.quaternion for s in relevant], dtype=np.float64)

    filtered = filtfilt_axes(raw)
    earth = rotate_batch_to_earth(filtered, quats)

    resampled = np.empty((WINDOW_SIZE, 3), dtype=np.float64)
    for axis in range(3):
        resampled[:, axis] = interpolate_to_grid(
            rel_time_ms, earth[:, axis], WINDOW_SIZE, 0.0, interval=TARGET_INTERVAL_MS
        )

    sigma = compute_sigma(resampled)
    normalized = global_zscore(resampled)
    return FeatureWindow(window=normalized.astype(np.float32), sigma=sigma)
