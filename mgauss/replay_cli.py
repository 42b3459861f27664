"""Replay a JSONL sensor recording through a detection session.

Each line is one sensor event in the same shape the ingest API accepts::

    {"type": "magnetometer", "timestamp_ns": 1000000, "values": [12.0, -3.5, 40.1]}

Recorded timestamps drive the session, so inference cycles fire exactly as
they would have live.  Every cycle is awaited before the next event is fed,
which makes the printed transitions deterministic.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from .api_models import SensorEventModel
from .classifier import ClassifierAdapter, ScoreModel, StaticScoreModel, load_model
from .events import Event, EventBus, PredictionEvent
from .session import DetectionSession

LOGGER = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay a sensor recording through detection")
    parser.add_argument("input", type=Path, help="Input recording (.jsonl)")
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--model",
        default=None,
        help="Score model factory as 'module:callable'",
    )
    group.add_argument(
        "--scores",
        default=None,
        help="Fixed 'neutral,device' scores for every window (e.g. 0.2,0.9)",
    )
    return parser.parse_args(argv)


def _parse_scores(raw: str) -> StaticScoreModel:
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 2:
        raise ValueError(f"--scores expects 'neutral,device', got {raw!r}")
    return StaticScoreModel(float(parts[0]), float(parts[1]))


def _feed(session: DetectionSession, event: SensorEventModel) -> None:
    v = event.values
    if event.type == "magnetometer":
        future = session.on_magnetometer(event.timestamp_ns, v[0], v[1], v[2])
        if future is not None:
            future.result()
    elif event.type == "rotation_vector":
        session.on_rotation_vector(v)
    elif event.type == "quaternion":
        session.on_quaternion(v[0], v[1], v[2], v[3])
    else:
        session.on_accelerometer(v[0], v[1], v[2])


def replay(path: Path, model: ScoreModel | None) -> list[PredictionEvent]:
    """Replay *path*; returns the prediction events where the label changed."""
    events = EventBus()
    transitions: list[PredictionEvent] = []

    def _on_event(event: Event) -> None:
        if not isinstance(event, PredictionEvent):
            return
        if transitions and transitions[-1].label == event.label:
            return
        transitions.append(event)

    unsubscribe = events.subscribe(_on_event)
    session = DetectionSession(ClassifierAdapter(model), events)
    session.start_detection()
    try:
        with path.open("r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    event = SensorEventModel.model_validate_json(line)
                except ValidationError as exc:
                    LOGGER.warning(
                        "Skipping malformed line %d: %s", lineno, exc.errors()[0]["msg"]
                    )
                    continue
                _feed(session, event)
    finally:
        unsubscribe()
        session.close()
    return transitions


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
    if not args.input.exists():
        print(f"Error: input file not found: {args.input}", file=sys.stderr)
        return 1
    try:
        if args.scores is not None:
            model: ScoreModel | None = _parse_scores(args.scores)
        else:
            model = load_model(args.model)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    transitions = replay(args.input, model)
    for event in transitions:
        print(
            json.dumps(
                {
                    "label": event.label,
                    "confidence": round(event.confidence, 4),
                    "sigma": round(event.sigma, 4),
                }
            )
        )
    print(f"{len(transitions)} transition(s)", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
