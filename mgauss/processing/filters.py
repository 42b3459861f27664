"""Zero-phase IIR smoothing.

The recursion matches a direct-form IIR filter started from rest: samples
before index 0 contribute nothing, there is no padding or reflection at the
edges.  ``filtfilt`` runs it forward and backward so the phase shift cancels.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from ..constants import FILTER_A, FILTER_B


def lfilter(
    x: Sequence[float] | np.ndarray,
    b: Sequence[float] = FILTER_B,
    a: Sequence[float] = FILTER_A,
) -> np.ndarray:
    """Apply ``y[n] = (sum b[i]x[n-i] - sum_{j>=1} a[j]y[n-j]) / a[0]``."""
    xs = np.asarray(x, dtype=np.float64)
    bs = np.asarray(b, dtype=np.float64)
    as_ = np.asarray(a, dtype=np.float64)
    if as_.size == 0 or as_[0] == 0.0:
        raise ValueError("a[0] must be non-zero")
    y = np.zeros(xs.size, dtype=np.float64)
    for n in range(xs.size):
        acc = 0.0
        for i in range(min(bs.size, n + 1)):
            acc += bs[i] * xs[n - i]
        for j in range(1, min(as_.size, n + 1)):
            acc -= as_[j] * y[n - j]
        y[n] = acc / as_[0]
    return y


def filtfilt(
    x: Sequence[float] | np.ndarray,
    b: Sequence[float] = FILTER_B,
    a: Sequence[float] = FILTER_A,
) -> np.ndarray:
    """Forward pass, reverse, second pass, reverse back."""
    forward = lfilter(x, b, a)
    backward = lfilter(forward[::-1], b, a)
    return backward[::-1].copy()


def filtfilt_axes(block: np.ndarray) -> np.ndarray:
    """Filter an ``(N, 3)`` block column by column."""
    if block.ndim != 2:
        raise ValueError(f"expected a 2-D block, got shape {block.shape!r}")
    out = np.empty(block.shape, dtype=np.float64)
    for axis in range(block.shape[1]):
        out[:, axis] = filtfilt(block[:, axis])
    return out
