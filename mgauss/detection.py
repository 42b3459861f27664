"""Hysteretic detection state machine and its repeating feedback tick.

``DetectionStateMachine`` turns per-cycle classifier results into a binary
Neutral/Active state.  The dead band between the two thresholds keeps the
state from flapping when the device probability hovers near a boundary.
Status-only results (buffering, classifier errors) never move the state.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from .constants import ACTIVATE_THRESHOLD, FEEDBACK_INTERVAL_S, RELEASE_THRESHOLD
from .domain_models import DetectionLabel, DetectionResult, DetectionState

LOGGER = logging.getLogger(__name__)


class PeriodicTicker:
    """Cancellable repeating call on a dedicated thread.

    The first call happens immediately on :meth:`start`; later calls follow
    every *interval_s* until :meth:`cancel`, which returns only once the
    thread has stopped (unless invoked from the tick itself).
    """

    def __init__(self, interval_s: float, fn: Callable[[], None], name: str = "mgauss-ticker"):
        self.interval_s = max(0.01, float(interval_s))
        self._fn = fn
        self._name = name
        self._stop: threading.Event | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            stop = threading.Event()
            self._stop = stop
            self._thread = threading.Thread(
                target=self._run, args=(stop,), name=self._name, daemon=True
            )
            self._thread.start()

    def cancel(self) -> None:
        with self._lock:
            stop, thread = self._stop, self._thread
            self._stop = None
            self._thread = None
        if stop is None or thread is None:
            return
        stop.set()
        if thread is not threading.current_thread():
            thread.join()

    def _run(self, stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                self._fn()
            except Exception:
                LOGGER.warning("Ticker %s callback failed", self._name, exc_info=True)
            if stop.wait(self.interval_s):
                break


class DetectionStateMachine:
    def __init__(
        self,
        on_activate: Callable[[], None] | None = None,
        on_deactivate: Callable[[], None] | None = None,
        feedback_tick: Callable[[], None] | None = None,
        feedback_interval_s: float = FEEDBACK_INTERVAL_S,
    ):
        self.state = DetectionState()
        self._on_activate = on_activate
        self._on_deactivate = on_deactivate
        self._ticker = (
            PeriodicTicker(feedback_interval_s, feedback_tick, name="mgauss-feedback")
            if feedback_tick is not None
            else None
        )

    @property
    def is_active(self) -> bool:
        return self.state.is_active

    @property
    def label(self) -> DetectionLabel:
        return DetectionLabel.DEVICE if self.state.is_active else DetectionLabel.NEUTRAL

    @property
    def feedback_running(self) -> bool:
        return self._ticker is not None and self._ticker.running

    def update(self, result: DetectionResult) -> DetectionLabel | None:
        """Feed one cycle; returns the visible label, or ``None`` for status-only results."""
        if result.is_status_only:
            return None
        probability = result.device_probability()
        if not self.state.is_active:
            if probability > ACTIVATE_THRESHOLD:
                self._activate(probability)
        elif probability < RELEASE_THRESHOLD:
            self._deactivate(probability)
        return self.label

    def reset(self) -> None:
        """Return to Neutral and halt the feedback tick without firing callbacks."""
        if self._ticker is not None:
            self._ticker.cancel()
        self.state.is_active = False

    def _activate(self, probability: float) -> None:
        LOGGER.info(
            "Device probability %.3f > %.2f; entering Active", probability, ACTIVATE_THRESHOLD
        )
        self.state.is_active = True
        if self._on_activate is not None:
            try:
                self._on_activate()
            except Exception:
                LOGGER.warning("Activation side effect failed", exc_info=True)
        if self._ticker is not None:
            self._ticker.start()

    def _deactivate(self, probability: float) -> None:
        LOGGER.info(
            "Device probability %.3f < %.2f; returning to Neutral",
            probability,
            RELEASE_THRESHOLD,
        )
        self.state.is_active = False
        if self._ticker is not None:
            self._ticker.cancel()
        if self._on_deactivate is not None:
            try:
                self._on_deactivate()
            except Exception:
                LOGGER.warning("Deactivation side effect failed", exc_info=True)
