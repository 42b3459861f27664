"""Time-bounded sample buffer shared by the sensor producer and inference cycles.

``SampleBuffer`` keeps every :class:`~mgauss.domain_models.SensorSnapshot`
whose timestamp lies within ``retention_ns`` of the newest one.  Producers
call :meth:`SampleBuffer.push`; consumers take a point-in-time copy with
:meth:`SampleBuffer.snapshot_view` and do all computation outside the lock.
"""

from __future__ import annotations

from collections import deque
from threading import Lock

from ..constants import RETENTION_NS
from ..domain_models import SensorSnapshot


class SampleBuffer:
    def __init__(self, retention_ns: int = RETENTION_NS):
        if retention_ns <= 0:
            raise ValueError(f"retention_ns must be positive, got {retention_ns!r}")
        self.retention_ns = int(retention_ns)
        self._samples: deque[SensorSnapshot] = deque()
        self._lock = Lock()

    def push(self, snapshot: SensorSnapshot) -> None:
        """Append *snapshot* and evict head entries older than the horizon."""
        with self._lock:
            self._samples.append(snapshot)
            horizon = snapshot.timestamp - self.retention_ns
            while self._samples and self._samples[0].timestamp < horizon:
                self._samples.popleft()

    def snapshot_view(self) -> list[SensorSnapshot]:
        """Return a consistent copy; never later than the last completed push."""
        with self._lock:
            return list(self._samples)

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()

    def span_ns(self) -> int:
        with self._lock:
            if len(self._samples) < 2:
                return 0
            return self._samples[-1].timestamp - self._samples[0].timestamp

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)
