"""Shared test helpers for the mgauss test suite."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence

from mgauss.domain_models import SensorSnapshot


def wait_until(predicate, timeout_s: float = 2.0, step_s: float = 0.02) -> bool:
    """Poll *predicate* until it returns truthy, or *timeout_s* expires."""
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(step_s)
    return False


async def async_wait_until(predicate, timeout_s: float = 2.0, step_s: float = 0.02) -> bool:
    """Async version of :func:`wait_until`; yields to the event loop between polls."""
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(step_s)
    return False


# ---------------------------------------------------------------------------
# Sensor stream builders
# ---------------------------------------------------------------------------

MS = 1_000_000


def snapshots_every_10ms(
    start_ns: int,
    end_ns: int,
    vector: Sequence[float] = (20.0, -5.0, 40.0),
) -> list[SensorSnapshot]:
    """Constant-field snapshots from *start_ns* to *end_ns* inclusive, 10 ms apart."""
    return [
        SensorSnapshot(ts, vector[0], vector[1], vector[2])
        for ts in range(start_ns, end_ns + 1, 10 * MS)
    ]
