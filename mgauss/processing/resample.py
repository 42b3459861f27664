"""Linear resampling of irregular samples onto a uniform time grid."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from ..constants import TARGET_INTERVAL_MS


def interpolate_to_grid(
    times: Sequence[float] | np.ndarray,
    values: Sequence[float] | np.ndarray,
    count: int,
    start_offset: float,
    interval: float = TARGET_INTERVAL_MS,
) -> np.ndarray:
    """Sample ``values(times)`` at ``start_offset + i * interval`` for ``i < count``.

    *times* must be non-decreasing (duplicates allowed).  Targets before the
    first sample take the first value, targets past the last sample take the
    last value, and an empty source yields zeros.  A target that falls exactly
    on a duplicated timestamp takes the last sample recorded at that time.
    """
    t = np.asarray(times, dtype=np.float64)
    v = np.asarray(values, dtype=np.float64)
    if t.shape != v.shape:
        raise ValueError(f"times and values differ in shape: {t.shape!r} vs {v.shape!r}")
    result = np.zeros(max(0, int(count)), dtype=np.float64)
    if result.size == 0 or t.size == 0:
        return result
    targets = start_offset + np.arange(result.size, dtype=np.float64) * interval
    # First index whose time is strictly greater than the target.
    ks = np.searchsorted(t, targets, side="right")
    for i, (target, k) in enumerate(zip(targets, ks, strict=True)):
        if k == 0:
            result[i] = v[0]
        elif k >= t.size:
            result[i] = v[-1]
        else:
            t1, t2 = t[k - 1], t[k]
            v1, v2 = v[k - 1], v[k]
            if t2 - t1 > 0:
                result[i] = v1 + (v2 - v1) * ((target - t1) / (t2 - t1))
            else:
                result[i] = v1
    return result
