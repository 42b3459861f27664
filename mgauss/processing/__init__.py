"""Signal processing package.

- :mod:`~mgauss.processing.buffers`: time-bounded, lock-guarded sample buffer.
- :mod:`~mgauss.processing.filters`: zero-phase IIR smoothing.
- :mod:`~mgauss.processing.rotation`: device-to-earth quaternion rotation.
- :mod:`~mgauss.processing.resample`: linear resampling onto a uniform grid.
- :mod:`~mgauss.processing.features`: feature-window orchestration.
"""

from .buffers import SampleBuffer
from .features import build_feature_window, global_zscore
from .filters import filtfilt, lfilter
from .resample import interpolate_to_grid
from .rotation import (
    quaternion_from_rotation_vector,
    rotate_batch_to_earth,
    rotate_from_earth,
    rotate_to_earth,
)

__all__ = [
    "SampleBuffer",
    "build_feature_window",
    "filtfilt",
    "global_zscore",
    "interpolate_to_grid",
    "lfilter",
    "quaternion_from_rotation_vector",
    "rotate_batch_to_earth",
    "rotate_from_earth",
    "rotate_to_earth",
]
