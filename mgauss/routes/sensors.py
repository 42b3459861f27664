"""Ingest endpoint for sensor bridges that forward raw readings over HTTP."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from fastapi import APIRouter

from ..api_models import SensorEventModel, SensorEventsRequest, SensorEventsResponse

if TYPE_CHECKING:
    from ..app import RuntimeState
    from ..session import DetectionSession


def _dispatch(session: DetectionSession, events: list[SensorEventModel]) -> int:
    launched = 0
    for event in events:
        values = event.values
        if event.type == "magnetometer":
            if session.on_magnetometer(event.timestamp_ns, values[0], values[1], values[2]):
                launched += 1
        elif event.type == "rotation_vector":
            session.on_rotation_vector(values)
        elif event.type == "quaternion":
            session.on_quaternion(values[0], values[1], values[2], values[3])
        else:
            session.on_accelerometer(values[0], values[1], values[2])
    return launched


def create_sensor_routes(state: RuntimeState) -> APIRouter:
    router = APIRouter()

    @router.post("/api/sensors/events", response_model=SensorEventsResponse)
    async def ingest_events(req: SensorEventsRequest) -> SensorEventsResponse:
        launched = await asyncio.to_thread(_dispatch, state.session, req.events)
        return SensorEventsResponse(accepted=len(req.events), cycles_launched=launched)

    return router
