"""Start/stop control for the detection session."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from fastapi import APIRouter

from ..api_models import DetectionStateResponse

if TYPE_CHECKING:
    from ..app import RuntimeState


def create_detection_routes(state: RuntimeState) -> APIRouter:
    router = APIRouter()

    def _state() -> DetectionStateResponse:
        return DetectionStateResponse(
            detecting=state.session.detecting,
            label=state.session.label.value,
            status=state.session.status,
        )

    @router.get("/api/detection", response_model=DetectionStateResponse)
    async def get_detection() -> DetectionStateResponse:
        return _state()

    @router.post("/api/detection/start", response_model=DetectionStateResponse)
    async def start_detection() -> DetectionStateResponse:
        # Stopping an active session joins the feedback thread; keep it off the loop.
        await asyncio.to_thread(state.session.start_detection)
        return _state()

    @router.post("/api/detection/stop", response_model=DetectionStateResponse)
    async def stop_detection() -> DetectionStateResponse:
        await asyncio.to_thread(state.session.stop_detection)
        return _state()

    return router
