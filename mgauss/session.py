"""Detection session: sensor ingestion -> inference cycles -> decisions -> alerts.

One ``DetectionSession`` owns the sample buffer, the state machine and the
inference worker.  Sensor callbacks may arrive on any thread and never wait
for inference; at most one classification cycle runs at a time and cycles
that become due while one is outstanding are skipped.

Stopping detection bumps a generation counter, so a cycle that finishes
after the stop is discarded instead of re-activating the state machine.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Any, Protocol

from .classifier import ClassifierAdapter
from .constants import (
    ALERT_BURST_COUNT,
    ALERT_BURST_INTERVAL_S,
    ANOMALY_MESSAGE,
    FEEDBACK_INTERVAL_S,
    INFERENCE_INTERVAL_NS,
    RETENTION_NS,
    SHORT_ID_LENGTH,
    STATUS_DETECTING,
    STATUS_READY,
    STATUS_STOPPED,
    TARGET_DURATION_NS,
)
from .detection import DetectionStateMachine
from .domain_models import DetectionLabel, DetectionResult, SensorSnapshot
from .events import (
    EventBus,
    FeedbackEvent,
    MagnitudeEvent,
    PeerAlertEvent,
    PredictionEvent,
    StatusEvent,
)
from .processing.buffers import SampleBuffer
from .processing.features import build_feature_window
from .processing.rotation import Quaternion, quaternion_from_rotation_vector
from .worker_pool import WorkerPool

LOGGER = logging.getLogger(__name__)


class AlertSink(Protocol):
    def send_burst(self, count: int = ..., interval_s: float = ...) -> int: ...


def peer_alert_message(sender_uuid: str) -> str:
    return f"⚠️ ALERT FROM {sender_uuid[:SHORT_ID_LENGTH]}"


class DetectionSession:
    def __init__(
        self,
        classifier: ClassifierAdapter,
        events: EventBus | None = None,
        alert_sink: AlertSink | None = None,
        *,
        feedback_interval_s: float = FEEDBACK_INTERVAL_S,
        burst_count: int = ALERT_BURST_COUNT,
        burst_interval_s: float = ALERT_BURST_INTERVAL_S,
        inference_interval_ns: int = INFERENCE_INTERVAL_NS,
        retention_ns: int = RETENTION_NS,
        worker_pool: WorkerPool | None = None,
    ):
        self.classifier = classifier
        self.events = events or EventBus()
        self.alert_sink = alert_sink
        self.burst_count = int(burst_count)
        self.burst_interval_s = float(burst_interval_s)
        self.inference_interval_ns = int(inference_interval_ns)
        self.buffer = SampleBuffer(retention_ns=retention_ns)
        self.state_machine = DetectionStateMachine(
            on_activate=self._on_activate,
            feedback_tick=self._feedback_tick,
            feedback_interval_s=feedback_interval_s,
        )
        self._pool = worker_pool or WorkerPool(
            max_workers=1, max_in_flight=1, thread_name_prefix="mgauss-inference"
        )
        # Guards detecting/generation and serialises state-machine transitions.
        self._lock = threading.Lock()
        self._detecting = False
        self._generation = 0
        self._last_inference_ns: int | None = None
        self._quaternion: Quaternion = (0.0, 0.0, 0.0, 1.0)
        self._acceleration: tuple[float, float, float] = (0.0, 0.0, 0.0)
        self._notify_next_tick = False
        self._burst_threads: list[threading.Thread] = []
        self.status = STATUS_READY
        self.last_result: DetectionResult | None = None
        self.cycles_completed = 0
        self.cycles_discarded = 0
        self.bursts_started = 0

    # -- lifecycle --------------------------------------------------------------

    @property
    def detecting(self) -> bool:
        return self._detecting

    @property
    def label(self) -> DetectionLabel:
        return self.state_machine.label

    def start_detection(self) -> None:
        self._halt()
        with self._lock:
            self.buffer.clear()
            self._detecting = True
            self._generation += 1
            self._last_inference_ns = None
            self.last_result = None
        LOGGER.info("Detection started")
        self._set_status(STATUS_DETECTING)

    def stop_detection(self) -> None:
        self._halt()
        LOGGER.info("Detection stopped")
        self._set_status(STATUS_STOPPED)
        self.events.publish(
            PredictionEvent(
                label=DetectionLabel.NEUTRAL.value,
                confidence=0.0,
                sigma=0.0,
                raw_label=DetectionLabel.NEUTRAL.value,
            )
        )

    def _halt(self) -> None:
        with self._lock:
            self._detecting = False
            self._generation += 1
        # Outside the lock: cancelling joins the feedback thread.
        self.state_machine.reset()

    def close(self) -> None:
        self.stop_detection()
        self._pool.shutdown(wait=True)
        for thread in list(self._burst_threads):
            thread.join(timeout=5.0)

    # -- sensor producer side ---------------------------------------------------

    def on_rotation_vector(self, values: tuple[float, ...] | list[float]) -> None:
        self._quaternion = quaternion_from_rotation_vector(values)

    def on_quaternion(self, qx: float, qy: float, qz: float, qw: float) -> None:
        self._quaternion = (float(qx), float(qy), float(qz), float(qw))

    def on_accelerometer(self, ax: float, ay: float, az: float) -> None:
        # Cached for diagnostics only; the feature window does not use it.
        self._acceleration = (float(ax), float(ay), float(az))

    def on_magnetometer(
        self, timestamp_ns: int, mx: float, my: float, mz: float
    ) -> Future[DetectionResult] | None:
        """Ingest one magnetometer event; returns the cycle future when one was launched."""
        qx, qy, qz, qw = self._quaternion
        snapshot = SensorSnapshot(
            int(timestamp_ns), float(mx), float(my), float(mz), qx, qy, qz, qw
        )
        self.events.publish(MagnitudeEvent(snapshot.timestamp, snapshot.magnitude))

        with self._lock:
            if not self._detecting:
                return None
            self.buffer.push(snapshot)
            generation = self._generation
            last = self._last_inference_ns
        now_ns = snapshot.timestamp
        if last is not None and now_ns - last < self.inference_interval_ns:
            return None

        view = self.buffer.snapshot_view()
        if not view or view[-1].timestamp - view[0].timestamp < TARGET_DURATION_NS:
            return None
        future = self._pool.try_submit(self.run_cycle, view, now_ns, generation)
        if future is None:
            LOGGER.debug("Inference still running at %d ns; skipping cycle", now_ns)
            return None
        with self._lock:
            if generation == self._generation:
                self._last_inference_ns = now_ns
        return future

    # -- consumer side ----------------------------------------------------------

    def run_cycle(
        self,
        snapshots: list[SensorSnapshot],
        now_ns: int,
        generation: int | None = None,
    ) -> DetectionResult:
        """Build features, classify and apply the result to the state machine."""
        try:
            features = build_feature_window(snapshots, now_ns)
        except Exception:
            LOGGER.warning("Feature window construction failed", exc_info=True)
            features = DetectionResult.error()
        if isinstance(features, DetectionResult):
            result = features
        else:
            result = self.classifier.classify(features)
        self._apply(result, generation)
        return result

    def _apply(self, result: DetectionResult, generation: int | None) -> None:
        with self._lock:
            stale = generation is not None and generation != self._generation
            if not self._detecting or stale:
                self.cycles_discarded += 1
                LOGGER.debug("Discarding %s result from a stopped session", result.label)
                return
            self.last_result = result
            self.state_machine.update(result)
            label = self.state_machine.label
            self.cycles_completed += 1
        self.events.publish(
            PredictionEvent(
                label=label.value,
                confidence=result.confidence,
                sigma=result.sigma,
                raw_label=result.label.value,
            )
        )

    # -- side effects -----------------------------------------------------------

    def _on_activate(self) -> None:
        self._notify_next_tick = True
        self.bursts_started += 1
        if self.alert_sink is None:
            return
        thread = threading.Thread(target=self._send_burst, name="peer-alert-burst", daemon=True)
        self._burst_threads = [t for t in self._burst_threads if t.is_alive()]
        self._burst_threads.append(thread)
        thread.start()

    def _send_burst(self) -> None:
        try:
            sent = self.alert_sink.send_burst(self.burst_count, self.burst_interval_s)
            LOGGER.info("Peer alert burst finished: %d/%d sends ok", sent, self.burst_count)
        except Exception:
            LOGGER.warning("Peer alert burst failed", exc_info=True)

    def _feedback_tick(self) -> None:
        show_notification = self._notify_next_tick
        self._notify_next_tick = False
        self.events.publish(FeedbackEvent(show_notification, ANOMALY_MESSAGE))

    def on_peer_alert(self, sender_uuid: str) -> None:
        message = peer_alert_message(sender_uuid)
        LOGGER.info("Peer alert received from %s", sender_uuid)
        self._set_status(message)
        self.events.publish(FeedbackEvent(True, message))
        self.events.publish(PeerAlertEvent(sender_uuid, sender_uuid[:SHORT_ID_LENGTH]))

    def _set_status(self, message: str) -> None:
        self.status = message
        self.events.publish(StatusEvent(message))

    # -- observability ----------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        last = self.last_result
        return {
            "status": self.status,
            "detecting": self.detecting,
            "label": self.label.value,
            "active": self.state_machine.is_active,
            "feedback_running": self.state_machine.feedback_running,
            "last_result": last.to_dict() if last is not None else None,
            "buffered_samples": len(self.buffer),
            "buffer_span_ns": self.buffer.span_ns(),
            "cycles_completed": self.cycles_completed,
            "cycles_discarded": self.cycles_discarded,
            "bursts_started": self.bursts_started,
            "classifier_loaded": self.classifier.loaded,
            "worker": self._pool.stats(),
        }
