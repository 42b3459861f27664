"""Outbound event channel consumed by the UI layer.

The detection core publishes a small closed set of event types; the status
API, the WebSocket hub and the replay CLI subscribe to them.  Publishing is
thread-safe and a failing subscriber never affects the publisher.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StatusEvent:
    message: str


@dataclass(frozen=True, slots=True)
class MagnitudeEvent:
    timestamp_ns: int
    magnitude: float


@dataclass(frozen=True, slots=True)
class PredictionEvent:
    """Per-cycle output: *label* is the state-machine state, *raw_label* the classifier's."""

    label: str
    confidence: float
    sigma: float
    raw_label: str


@dataclass(frozen=True, slots=True)
class PeerAlertEvent:
    sender_uuid: str
    short_id: str


@dataclass(frozen=True, slots=True)
class FeedbackEvent:
    """Request for local vibrate/tone feedback, optionally with a notification."""

    show_notification: bool
    message: str


Event = StatusEvent | MagnitudeEvent | PredictionEvent | PeerAlertEvent | FeedbackEvent

_EVENT_TYPES: dict[type, str] = {
    StatusEvent: "status",
    MagnitudeEvent: "magnitude",
    PredictionEvent: "prediction",
    PeerAlertEvent: "peer_alert",
    FeedbackEvent: "feedback",
}


def event_type_name(event: Event) -> str:
    return _EVENT_TYPES[type(event)]


def event_to_payload(event: Event) -> dict[str, Any]:
    """JSON-ready dict with a ``type`` discriminator."""
    payload: dict[str, Any] = {"type": event_type_name(event)}
    payload.update(asdict(event))
    return payload


Subscriber = Callable[[Event], None]


class EventBus:
    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                try:
                    self._subscribers.remove(callback)
                except ValueError:
                    pass

        return _unsubscribe

    def publish(self, event: Event) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                LOGGER.warning(
                    "Event subscriber %r failed for %s event",
                    callback,
                    event_type_name(event),
                    exc_info=True,
                )
