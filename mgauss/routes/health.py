"""Health check endpoint."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from ..api_models import HealthResponse
from ..constants import SHORT_ID_LENGTH

if TYPE_CHECKING:
    from ..app import RuntimeState


def create_health_routes(state: RuntimeState) -> APIRouter:
    router = APIRouter()

    @router.get("/api/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        snapshot = state.session.snapshot()
        peer = state.peer_channel
        return {
            "status": "ok",
            "detecting": snapshot["detecting"],
            "label": snapshot["label"],
            "active": snapshot["active"],
            "session_status": snapshot["status"],
            "last_result": snapshot["last_result"],
            "classifier_loaded": snapshot["classifier_loaded"],
            "peer_listening": peer is not None and peer.listening,
            "peer_short_id": peer.session_uuid[:SHORT_ID_LENGTH] if peer is not None else None,
            "websocket_clients": state.ws_hub.connection_count,
            "worker": snapshot["worker"],
        }

    return router
